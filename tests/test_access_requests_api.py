"""
Tests for doctor-to-patient access requests.
"""
from conftest import make_patient


def request_access(client, doctor, patient_id):
    return client.post("/api/access-requests", json={"patientId": patient_id}, headers=doctor["headers"])


def test_doctor_requests_access(client, patient, doctor):
    resp = request_access(client, doctor, patient["id"])

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["status"] == "PENDING"
    assert data["doctorId"] == doctor["id"]
    assert data["patientId"] == patient["id"]


def test_duplicate_request_conflicts(client, patient, doctor):
    request_access(client, doctor, patient["id"])
    assert request_access(client, doctor, patient["id"]).status_code == 409


def test_request_requires_doctor_and_known_patient(client, patient, doctor):
    resp = client.post("/api/access-requests", json={"patientId": patient["id"]}, headers=patient["headers"])
    assert resp.status_code == 403
    assert request_access(client, doctor, 999).status_code == 404


def test_each_side_lists_its_requests(client, patient, doctor):
    request_access(client, doctor, patient["id"])

    doctor_view = client.get("/api/access-requests", headers=doctor["headers"]).json()
    patient_view = client.get("/api/access-requests", headers=patient["headers"]).json()

    assert doctor_view["total"] == 1
    assert patient_view["total"] == 1
    assert patient_view["data"][0]["doctor"]["user"]["name"] == "Dr. Meera Rao"


def test_patient_responds(client, patient, doctor):
    request_id = request_access(client, doctor, patient["id"]).json()["data"]["id"]

    resp = client.patch(f"/api/access-requests/{request_id}", json={"status": "REJECTED"}, headers=patient["headers"])

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "REJECTED"


def test_only_the_patient_can_respond(client, patient, doctor):
    request_id = request_access(client, doctor, patient["id"]).json()["data"]["id"]
    other = make_patient(client, "other@example.com", name="Other", block_id="0x" + "44" * 20)

    url = f"/api/access-requests/{request_id}"
    assert client.patch(url, json={"status": "CONFIRMED"}, headers=other["headers"]).status_code == 403
    assert client.patch(url, json={"status": "PENDING"}, headers=patient["headers"]).status_code == 400
    assert client.patch("/api/access-requests/999", json={"status": "CONFIRMED"}, headers=patient["headers"]).status_code == 404
