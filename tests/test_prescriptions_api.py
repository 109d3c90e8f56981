"""
Tests for prescription issuance, the ledger mirror and merged listings.
"""
from datetime import datetime, timedelta

from conftest import (
    DOCTOR_WALLET, PATIENT_WALLET, MEDICATIONS, signup_and_login, make_patient, make_doctor
)


def issue(client, doctor, patient_id, **extra):
    body = {"patientId": patient_id, "medications": MEDICATIONS, "diagnosis": "Sinusitis", **extra}
    return client.post("/api/prescriptions", json=body, headers=doctor["headers"])


def test_only_doctors_issue_prescriptions(client, patient):
    resp = client.post(
        "/api/prescriptions",
        json={"patientId": patient["id"], "medications": MEDICATIONS},
        headers=patient["headers"]
    )
    assert resp.status_code == 403


def test_prescription_validation(client, patient, doctor):
    assert issue(client, doctor, patient["id"], medications=[]).status_code == 422
    bad_med = [{"name": "", "dosage": "1", "duration": "2 days"}]
    assert issue(client, doctor, patient["id"], medications=bad_med).status_code == 422
    assert issue(client, doctor, patient["id"], validTill="not-a-date").status_code == 422


def test_unknown_patient_is_not_found(client, doctor):
    assert issue(client, doctor, 999).status_code == 404


def test_issue_mirrors_on_ledger(client, ledger, patient, doctor):
    resp = issue(client, doctor, patient["id"])

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["id"].startswith("RX-")
    assert data["chainStatus"] == "confirmed"
    assert data["chainPrescriptionId"] == 1
    assert data["blockchainTxHash"].startswith("0x")
    assert [m["name"] for m in data["medications"]] == ["Amoxicillin", "Paracetamol"]
    assert data["medications"][1]["additionalInstructions"] == ""

    call = [c for c in ledger.calls if c[0] == "issuePrescription"][0]
    assert call[1] == PATIENT_WALLET
    assert call[3] == "Sinusitis"


def test_valid_till_defaults_to_thirty_days(client, patient, doctor):
    data = issue(client, doctor, patient["id"]).json()["data"]
    issued = datetime.fromisoformat(data["issueDate"])
    valid_till = datetime.fromisoformat(data["validTill"])
    assert valid_till - issued == timedelta(days=30)


def test_supplied_tx_hash_skips_ledger_write(client, ledger, patient, doctor):
    data = issue(client, doctor, patient["id"], blockchainTxHash="0xabc123").json()["data"]
    assert data["blockchainTxHash"] == "0xabc123"
    assert data["chainStatus"] == "confirmed"
    assert not [c for c in ledger.calls if c[0] == "issuePrescription"]


def test_patient_without_wallet_skips_ledger(client, doctor):
    nowallet = make_patient(client, "nowallet@example.com", block_id=None)
    data = issue(client, doctor, nowallet["id"]).json()["data"]
    assert data["chainStatus"] == "skipped"


def test_ledger_failure_keeps_row_marked_failed(client, ledger, patient, doctor):
    ledger.fail = True
    resp = issue(client, doctor, patient["id"])

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["chainStatus"] == "failed"
    assert "reverted" in data["chainError"]

    fetched = client.get(f"/api/prescriptions/{data['id']}", headers=patient["headers"])
    assert fetched.status_code == 200
    assert fetched.json()["data"]["chainStatus"] == "failed"


def test_mined_write_without_ledger_id_stays_confirmed(client, ledger, patient, doctor):
    ledger.lose_ids = True
    data = issue(client, doctor, patient["id"]).json()["data"]

    assert data["chainStatus"] == "confirmed"
    assert data["chainPrescriptionId"] is None
    assert data["blockchainTxHash"].startswith("0x")

    resp = client.post(f"/api/prescriptions/{data['id']}/sync", headers=doctor["headers"])
    assert resp.status_code == 409
    assert len([c for c in ledger.calls if c[0] == "issuePrescription"]) == 1


def test_sync_retries_failed_ledger_write(client, ledger, patient, doctor):
    ledger.fail = True
    uid = issue(client, doctor, patient["id"]).json()["data"]["id"]

    ledger.fail = False
    resp = client.post(f"/api/prescriptions/{uid}/sync", headers=doctor["headers"])
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["chainStatus"] == "confirmed"
    assert data["chainError"] is None

    again = client.post(f"/api/prescriptions/{uid}/sync", headers=doctor["headers"])
    assert again.status_code == 409


def test_patient_list_merges_ledger_only_entries(client, ledger, patient, doctor):
    uid = issue(client, doctor, patient["id"]).json()["data"]["id"]
    ledger.add_prescription("0x" + "66" * 20, PATIENT_WALLET, "Ledger only", datetime(2020, 1, 1))
    ledger.add_prescription("0x" + "66" * 20, "0x" + "77" * 20, "Someone else", datetime(2021, 1, 1))

    resp = client.get("/api/prescriptions", headers=patient["headers"])

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [p["id"] for p in data] == [uid, "2"]
    assert data[0]["blockchainOnly"] is False
    assert data[1]["blockchainOnly"] is True
    assert data[1]["diagnosis"] == "Ledger only"


def test_doctor_list_includes_ledger_entries_issued_by_wallet(client, ledger, patient, doctor):
    issue(client, doctor, patient["id"])
    ledger.add_prescription(DOCTOR_WALLET, "0x" + "77" * 20, "Issued elsewhere", datetime(2020, 1, 1))

    data = client.get("/api/prescriptions", params={"role": "doctor"}, headers=doctor["headers"]).json()["data"]

    assert len(data) == 2
    assert data[-1]["diagnosis"] == "Issued elsewhere"


def test_list_falls_back_to_database_when_ledger_down(client, ledger, patient, doctor):
    issue(client, doctor, patient["id"])
    ledger.fail = True

    resp = client.get("/api/prescriptions", headers=patient["headers"])

    assert resp.status_code == 200
    assert len(resp.json()["data"]) == 1


def test_doctor_list_without_profile_is_not_found(client):
    headers = signup_and_login(client, "x@example.com")
    assert client.get("/api/prescriptions", params={"role": "doctor"}, headers=headers).status_code == 404


def test_patient_list_without_profile_is_empty(client, ledger):
    ledger.add_prescription(DOCTOR_WALLET, PATIENT_WALLET, "Not theirs", datetime(2020, 1, 1))
    headers = signup_and_login(client, "noprofile@example.com")

    resp = client.get("/api/prescriptions", headers=headers)

    assert resp.status_code == 200
    assert resp.json() == {"status": "success", "data": [], "total": 0}


def test_get_prescription_visibility(client, patient, doctor):
    uid = issue(client, doctor, patient["id"]).json()["data"]["id"]
    other = make_patient(client, "other@example.com", name="Other", block_id="0x" + "44" * 20)
    other_doctor = make_doctor(client, "dr2@example.com", name="Dr. Second", block_id="0x" + "55" * 20)

    assert client.get(f"/api/prescriptions/{uid}", headers=patient["headers"]).status_code == 200
    assert client.get(f"/api/prescriptions/{uid}", headers=doctor["headers"]).status_code == 200
    assert client.get(f"/api/prescriptions/{uid}", headers=other["headers"]).status_code == 404
    assert client.get(f"/api/prescriptions/{uid}", headers=other_doctor["headers"]).status_code == 404


def test_get_prescription_falls_back_to_ledger(client, ledger, patient):
    chain_id = ledger.add_prescription("0x" + "66" * 20, PATIENT_WALLET, "Ledger only", datetime(2020, 1, 1))
    stranger = make_patient(client, "stranger@example.com", name="Stranger", block_id="0x" + "44" * 20)

    resp = client.get(f"/api/prescriptions/{chain_id}", headers=patient["headers"])
    assert resp.status_code == 200
    assert resp.json()["data"]["blockchainOnly"] is True

    assert client.get(f"/api/prescriptions/{chain_id}", headers=stranger["headers"]).status_code == 404
    assert client.get("/api/prescriptions/42", headers=patient["headers"]).status_code == 404


def test_update_prescription_by_issuing_doctor(client, patient, doctor):
    uid = issue(client, doctor, patient["id"]).json()["data"]["id"]

    resp = client.put(
        f"/api/prescriptions/{uid}",
        json={
            "diagnosis": "Acute sinusitis",
            "medications": [{"name": "Cetirizine", "dosage": "10mg", "duration": "5 days"}],
        },
        headers=doctor["headers"]
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["diagnosis"] == "Acute sinusitis"
    assert [m["name"] for m in data["medications"]] == ["Cetirizine"]
    assert data["notes"] == ""


def test_update_prescription_permissions(client, patient, doctor):
    uid = issue(client, doctor, patient["id"]).json()["data"]["id"]
    other_doctor = make_doctor(client, "dr2@example.com", name="Dr. Second", block_id="0x" + "55" * 20)

    assert client.put(f"/api/prescriptions/{uid}", json={"notes": "x"}, headers=patient["headers"]).status_code == 403
    assert client.put(f"/api/prescriptions/{uid}", json={"notes": "x"}, headers=other_doctor["headers"]).status_code == 404
