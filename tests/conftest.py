"""
Pytest fixtures for HealthChain tests. Each test gets a temporary SQLite
database and an in-memory ledger in place of the web3 client.
"""
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from healthchain.config import settings
from healthchain.database.connection import db_manager
from healthchain.services.blockchain_service import BlockchainError, get_blockchain_service, same_address

PATIENT_WALLET = "0x" + "11" * 20
DOCTOR_WALLET = "0x" + "22" * 20
OPERATOR_WALLET = "0x" + "ab" * 20


class FakeLedger:
    """In-memory stand-in for BlockchainService"""

    def __init__(self):
        self.operator_address = OPERATOR_WALLET
        self.fail = False
        self.lose_ids = False
        self.calls = []
        self.patients = {}
        self.doctors = {}
        self.prescriptions = {}
        self.anonymous = {}
        self.balances = {}
        self._tx_count = 0

    def _tx(self, name, *args):
        if self.fail:
            raise BlockchainError(f"{name} failed: execution reverted")
        self.calls.append((name,) + args)
        self._tx_count += 1
        return "0x" + f"{self._tx_count:064x}"

    def is_connected(self):
        return not self.fail

    # Registration

    def register_patient(self, name):
        return self._tx("registerPatient", name)

    def register_doctor(self, name, speciality, fees):
        return self._tx("registerDoctor", name, speciality, fees)

    def get_patient(self, address):
        return {"name": self.patients.get(address.lower(), ""), "patientAddress": address, "registered": True}

    def get_doctor(self, address):
        return {
            "name": self.doctors.get(address.lower(), "Dr. Ledger"),
            "speciality": "General",
            "fees": Decimal("5"),
            "tokenBalance": Decimal("12.5"),
            "doctorAddress": address,
            "verified": False,
        }

    # Tokens

    def get_doctor_fee(self, address):
        if self.fail:
            raise BlockchainError("getDoctorFee failed: connection refused")
        return Decimal("5")

    def pay_doctor(self, address, amount):
        return self._tx("payDoctor", address, amount)

    def withdraw_tokens(self, amount):
        return self._tx("withdrawTokens", amount)

    def token_balance(self, address):
        return self.balances.get(address.lower(), Decimal("0"))

    def buy_tokens(self, eth_amount):
        return self._tx("buyTokens", eth_amount)

    def approve_spending(self, amount):
        return self._tx("approve", amount)

    # Prescriptions

    def add_prescription(self, doctor_address, patient_address, diagnosis, issued_at):
        prescription_id = len(self.prescriptions) + 1
        self.prescriptions[prescription_id] = {
            "id": prescription_id,
            "doctorAddress": doctor_address,
            "patientAddress": patient_address,
            "diagnosis": diagnosis,
            "issueDate": issued_at,
        }
        return prescription_id

    def issue_prescription(self, patient_address, medications, diagnosis):
        tx_hash = self._tx("issuePrescription", patient_address, list(medications), diagnosis)
        prescription_id = self.add_prescription(self.operator_address, patient_address, diagnosis, datetime.utcnow())
        return {"txHash": tx_hash, "prescriptionId": None if self.lose_ids else prescription_id}

    def _present(self, raw):
        return {
            "id": str(raw["id"]),
            "issueDate": raw["issueDate"].isoformat(),
            "validTill": None,
            "diagnosis": raw["diagnosis"],
            "notes": "",
            "patient": {"blockId": raw["patientAddress"], "user": {"name": "Unknown Patient", "email": ""}},
            "doctor": {"blockId": raw["doctorAddress"], "user": {"name": "Unknown Doctor", "email": ""}},
            "medications": [],
            "blockchainOnly": True,
        }

    def list_prescriptions(self, address=None, as_doctor=False):
        if self.fail:
            raise BlockchainError("prescriptionCounter failed: connection refused")
        key = "doctorAddress" if as_doctor else "patientAddress"
        return [
            self._present(raw) for raw in self.prescriptions.values()
            if address is None or same_address(raw[key], address)
        ]

    def fetch_prescription(self, prescription_id, user_address=None):
        raw = self.prescriptions.get(int(prescription_id))
        if raw is None:
            return None
        if user_address and not (
            same_address(raw["doctorAddress"], user_address)
            or same_address(raw["patientAddress"], user_address)
        ):
            return None
        return self._present(raw)

    # Anonymous prescriptions

    def issue_anonymous_prescription(self, medications, diagnosis, commitment_words, proof):
        tx_hash = self._tx("issueAnonymousPrescription", list(medications), diagnosis, list(commitment_words))
        zk_id = len(self.anonymous) + 1
        self.anonymous[zk_id] = {
            "commitment": list(commitment_words),
            "timestamp": datetime.utcnow().isoformat(),
            "inputs": list(proof.inputs),
            "diagnosis": diagnosis,
            "issueDate": datetime.utcnow().isoformat(),
        }
        if self.lose_ids:
            return {"txHash": tx_hash, "prescriptionId": None, "zkId": None}
        return {"txHash": tx_hash, "prescriptionId": 100 + zk_id, "zkId": zk_id}

    def get_prescription_details(self, prescription_id):
        if self.fail:
            raise BlockchainError("getPrescriptionDetails failed: connection refused")
        entry = self.anonymous[prescription_id - 100]
        return {
            "id": prescription_id,
            "doctorAddress": self.operator_address,
            "diagnosis": entry["diagnosis"],
            "issueDate": entry["issueDate"],
            "isAnonymous": True,
        }

    def verify_anonymous_prescription(self, zk_id):
        if self.fail:
            raise BlockchainError("verifyAnonymousPrescription failed: connection refused")
        return zk_id in self.anonymous

    def get_anonymous_prescription(self, zk_id):
        if self.fail:
            raise BlockchainError("getAnonymousPrescription failed: connection refused")
        entry = self.anonymous[zk_id]
        return {"commitment": entry["commitment"], "timestamp": entry["timestamp"]}


# ==================== Database / app ====================

@pytest.fixture
def database(tmp_path):
    """Fresh SQLite database per test, seeded with the admin account"""
    db_manager.close()
    db_manager.init_database(f"sqlite:///{tmp_path / 'healthchain.db'}")
    yield db_manager
    db_manager.close()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def client(database, ledger):
    """TestClient with the ledger replaced by the in-memory fake"""
    from main import app

    app.dependency_overrides[get_blockchain_service] = lambda: ledger
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def offline_client(database):
    """TestClient with the ledger integration disabled"""
    from main import app

    app.dependency_overrides[get_blockchain_service] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


# ==================== Accounts ====================

def signup_and_login(client, email, name="Test User", password="secret123"):
    resp = client.post("/api/auth/signup", json={"email": email, "password": password, "name": name})
    assert resp.status_code == 201, resp.text
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def patient_profile(block_id=PATIENT_WALLET):
    return {
        "gender": "Female",
        "dateOfBirth": "1990-05-01T00:00:00",
        "bloodType": "O+",
        "chronicDiseases": ["asthma"],
        "emergencyContact": "Ravi Patel, 9876500000",
        "blockId": block_id,
    }


def doctor_profile(block_id=DOCTOR_WALLET, name="Dr. Meera Rao"):
    return {
        "name": name,
        "phoneNumber": "9876543210",
        "aadharNumber": "123412341234",
        "mbbsId": "MBBS-2011-0042",
        "specialty": "Cardiology",
        "fees": "5",
        "blockId": block_id,
    }


def make_patient(client, email, name="Asha Patel", block_id=PATIENT_WALLET):
    headers = signup_and_login(client, email, name)
    resp = client.post("/api/users/patient", json=patient_profile(block_id), headers=headers)
    assert resp.status_code == 201, resp.text
    return {"headers": headers, "id": resp.json()["data"]["id"], "blockId": block_id}


def make_doctor(client, email, name="Dr. Meera Rao", block_id=DOCTOR_WALLET):
    headers = signup_and_login(client, email, name)
    resp = client.post("/api/users/doctor", json=doctor_profile(block_id, name), headers=headers)
    assert resp.status_code == 201, resp.text
    return {"headers": headers, "id": resp.json()["data"]["id"], "blockId": block_id}


@pytest.fixture
def patient(client):
    return make_patient(client, "asha@example.com")


@pytest.fixture
def doctor(client):
    return make_doctor(client, "meera@example.com")


@pytest.fixture
def admin_headers(client):
    resp = client.post(
        "/api/auth/login",
        json={"email": settings.ADMIN_EMAIL, "password": settings.ADMIN_PASSWORD}
    )
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


MEDICATIONS = [
    {"name": "Amoxicillin", "dosage": "500mg", "duration": "7 days", "additionalInstructions": "After meals"},
    {"name": "Paracetamol", "dosage": "650mg", "duration": "3 days"},
]
