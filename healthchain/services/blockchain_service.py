"""
Blockchain Service
web3.py client for the Medical, MedicalWithZK, ZKPrescriptionVerifier and
HealthToken contracts. Transactions are signed by the configured operator
account and sent through a JSON-RPC provider.
"""
import json
import logging
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Optional, List, Dict, Any, Sequence

from web3 import Web3

from healthchain.config import settings

logger = logging.getLogger(__name__)

CONTRACTS_DIR = Path(__file__).resolve().parent.parent / "contracts"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class BlockchainError(Exception):
    """Raised when a contract call or transaction fails"""


def load_abi(contract_name: str) -> List[Dict[str, Any]]:
    """Load a contract ABI shipped with the package"""
    with open(CONTRACTS_DIR / f"{contract_name}.json", encoding="utf-8") as f:
        return json.load(f)["abi"]


def duration_days(duration: Any) -> int:
    """Leading integer of a free-text duration ("7 days" -> 7)"""
    if isinstance(duration, int):
        return duration
    match = re.match(r"\s*(\d+)", str(duration or ""))
    return int(match.group(1)) if match else 0


def medications_to_tuples(medications: Sequence[Dict[str, Any]]) -> List[tuple]:
    """Encode medications as the contract's Medication struct"""
    return [
        (
            m.get("name", ""),
            m.get("dosage", ""),
            duration_days(m.get("duration")),
            m.get("additionalInstructions", m.get("additional_instructions", "")) or "",
        )
        for m in medications
    ]


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def from_epoch(seconds: int) -> datetime:
    """Block timestamp as a naive UTC datetime"""
    return datetime.fromtimestamp(int(seconds), timezone.utc).replace(tzinfo=None)


class BlockchainService:
    """Contract client for the medical records ledger"""

    def __init__(
        self,
        rpc_url: str = None,
        private_key: str = None,
        web3: Web3 = None
    ):
        self.w3 = web3 or Web3(Web3.HTTPProvider(
            rpc_url or settings.RPC_URL,
            request_kwargs={"timeout": 30}
        ))
        private_key = private_key or settings.OPERATOR_PRIVATE_KEY
        self.account = self.w3.eth.account.from_key(private_key) if private_key else None

        self.medical = self._contract("Medical", settings.MEDICAL_CONTRACT_ADDRESS)
        self.medical_zk = self._contract("MedicalWithZK", settings.MEDICAL_ZK_CONTRACT_ADDRESS)
        self.zk_verifier = self._contract("ZKPrescriptionVerifier", settings.ZK_VERIFIER_CONTRACT_ADDRESS)
        self.health_token = self._contract("HealthToken", settings.HEALTHTOKEN_CONTRACT_ADDRESS)

    def _contract(self, name: str, address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=load_abi(name))

    @property
    def operator_address(self) -> Optional[str]:
        return self.account.address if self.account else None

    def is_connected(self) -> bool:
        try:
            return self.w3.is_connected()
        except Exception as e:
            logger.warning(f"RPC connectivity check failed: {e}")
            return False

    # ==================== Low-level helpers ====================

    def _call(self, fn, label: str):
        try:
            return fn.call()
        except Exception as e:
            logger.error(f"Contract call {label} failed: {e}")
            raise BlockchainError(f"{label} failed: {e}") from e

    def _transact(self, fn, label: str, value: int = 0) -> str:
        """Sign, send and wait for a contract transaction; returns the tx hash"""
        if self.account is None:
            raise BlockchainError("No operator key configured for signing transactions")

        try:
            tx = fn.build_transaction({
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address),
                "chainId": self.w3.eth.chain_id,
                "value": value,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=settings.TX_TIMEOUT_SECONDS
            )
        except Exception as e:
            logger.error(f"Transaction {label} failed: {e}")
            raise BlockchainError(f"{label} failed: {e}") from e

        tx_hex = Web3.to_hex(tx_hash)
        if receipt["status"] != 1:
            logger.error(f"Transaction {label} reverted: {tx_hex}")
            raise BlockchainError(f"{label} reverted (tx {tx_hex})")

        logger.info(f"Transaction {label} confirmed: {tx_hex}")
        return tx_hex

    @staticmethod
    def _checksum(address: str) -> str:
        if not address or not Web3.is_address(address):
            raise BlockchainError(f"Invalid address: {address}")
        return Web3.to_checksum_address(address)

    # ==================== Registration ====================

    def register_patient(self, name: str) -> str:
        return self._transact(self.medical.functions.registerPatient(name), "registerPatient")

    def register_doctor(self, name: str, speciality: str, fees: Decimal) -> str:
        fees_wei = Web3.to_wei(Decimal(fees), "ether")
        return self._transact(
            self.medical.functions.registerDoctor(name, speciality, fees_wei), "registerDoctor"
        )

    def get_doctor(self, address: str) -> Dict[str, Any]:
        data = self._call(self.medical.functions.doctors(self._checksum(address)), "doctors")
        return {
            "name": data[0],
            "speciality": data[1],
            "fees": Web3.from_wei(data[2], "ether"),
            "tokenBalance": Web3.from_wei(data[3], "ether"),
            "doctorAddress": data[4],
            "verified": bool(data[5]),
        }

    def get_patient(self, address: str) -> Dict[str, Any]:
        data = self._call(self.medical.functions.patients(self._checksum(address)), "patients")
        return {
            "name": data[0],
            "patientAddress": data[1],
            "registered": bool(data[2]),
        }

    # ==================== Fees & tokens ====================

    def get_doctor_fee(self, address: str) -> Decimal:
        fee = self._call(self.medical.functions.getDoctorFee(self._checksum(address)), "getDoctorFee")
        return Web3.from_wei(fee, "ether")

    def pay_doctor(self, address: str, amount: Decimal) -> str:
        return self._transact(
            self.medical.functions.payDoctor(self._checksum(address), Web3.to_wei(Decimal(amount), "ether")),
            "payDoctor"
        )

    def withdraw_tokens(self, amount: Decimal) -> str:
        return self._transact(
            self.medical.functions.withdrawTokens(Web3.to_wei(Decimal(amount), "ether")),
            "withdrawTokens"
        )

    def token_balance(self, address: str) -> Decimal:
        balance = self._call(self.health_token.functions.balanceOf(self._checksum(address)), "balanceOf")
        return Web3.from_wei(balance, "ether")

    def buy_tokens(self, eth_amount: Decimal) -> str:
        return self._transact(
            self.health_token.functions.buyTokens(), "buyTokens",
            value=Web3.to_wei(Decimal(eth_amount), "ether")
        )

    def approve_spending(self, amount: Decimal) -> str:
        """Allow the Medical contract to spend HTK on the operator's behalf"""
        return self._transact(
            self.health_token.functions.approve(self.medical.address, Web3.to_wei(Decimal(amount), "ether")),
            "approve"
        )

    # ==================== Prescriptions ====================

    def issue_prescription(
        self,
        patient_address: str,
        medications: Sequence[Dict[str, Any]],
        diagnosis: str
    ) -> Dict[str, Any]:
        tx_hash = self._transact(
            self.medical.functions.issuePrescription(
                self._checksum(patient_address), medications_to_tuples(medications), diagnosis or ""
            ),
            "issuePrescription"
        )
        try:
            prescription_id = self.prescription_counter()
        except BlockchainError as e:
            logger.warning(f"issuePrescription mined in {tx_hash} but id lookup failed: {e}")
            prescription_id = None
        return {"txHash": tx_hash, "prescriptionId": prescription_id}

    def prescription_counter(self) -> int:
        return int(self._call(self.medical.functions.prescriptionCounter(), "prescriptionCounter"))

    def get_prescription(self, prescription_id: int) -> Optional[Dict[str, Any]]:
        """Raw ledger prescription, or None when the slot is empty"""
        data = self._call(self.medical.functions.prescriptions(int(prescription_id)), "prescriptions")
        if not data or int(data[0]) == 0:
            return None
        return {
            "id": int(data[0]),
            "doctorAddress": data[1],
            "patientAddress": data[2],
            "diagnosis": data[3],
            "issueDate": int(data[4]),
        }

    def fetch_prescription(self, prescription_id: int, user_address: str = None) -> Optional[Dict[str, Any]]:
        """Ledger prescription in API shape, None if missing or not visible to user_address"""
        raw = self.get_prescription(prescription_id)
        if raw is None:
            return None

        if user_address and not (
            same_address(raw["doctorAddress"], user_address)
            or same_address(raw["patientAddress"], user_address)
        ):
            return None

        return self._present(raw)

    def list_prescriptions(self, address: str = None, as_doctor: bool = False) -> List[Dict[str, Any]]:
        """
        Walk every ledger prescription and return those issued by (as_doctor)
        or to the given address. Entries that fail to load are skipped.
        """
        prescriptions = []
        for i in range(1, self.prescription_counter() + 1):
            try:
                raw = self.get_prescription(i)
                if raw is None:
                    continue

                if address:
                    owner = raw["doctorAddress"] if as_doctor else raw["patientAddress"]
                    if not same_address(owner, address):
                        continue

                prescriptions.append(self._present(raw))
            except BlockchainError as e:
                logger.warning(f"Skipping ledger prescription {i}: {e}")

        return prescriptions

    def _present(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        doctor_info = self.get_doctor(raw["doctorAddress"])
        patient_info = self.get_patient(raw["patientAddress"])
        issue_date = from_epoch(raw["issueDate"])
        valid_till = issue_date + timedelta(days=settings.PRESCRIPTION_VALIDITY_DAYS)

        return {
            "id": str(raw["id"]),
            "issueDate": issue_date.isoformat(),
            "validTill": valid_till.isoformat(),
            "diagnosis": raw.get("diagnosis", ""),
            "notes": "",
            "patient": {
                "blockId": raw["patientAddress"],
                "user": {"name": patient_info["name"] or "Unknown Patient", "email": ""},
            },
            "doctor": {
                "blockId": raw["doctorAddress"],
                "user": {"name": doctor_info["name"] or "Unknown Doctor", "email": ""},
                "specialization": doctor_info["speciality"] or "",
                "licenseNumber": "",
            },
            "medications": [],
            "blockchainOnly": True,
        }

    # ==================== Anonymous prescriptions ====================

    def issue_anonymous_prescription(
        self,
        medications: Sequence[Dict[str, Any]],
        diagnosis: str,
        commitment_words: Sequence[int],
        proof
    ) -> Dict[str, Any]:
        tx_hash = self._transact(
            self.medical_zk.functions.issueAnonymousPrescription(
                medications_to_tuples(medications),
                diagnosis,
                list(commitment_words),
                proof.a,
                proof.b,
                proof.c,
                proof.inputs,
            ),
            "issueAnonymousPrescription"
        )

        prescription_id = zk_id = None
        try:
            issued = self.get_doctor_anonymous_prescriptions(self.operator_address)
            if issued:
                prescription_id = issued[-1]
                zk_id = self.prescription_to_zk_id(prescription_id)
        except BlockchainError as e:
            logger.warning(f"issueAnonymousPrescription mined in {tx_hash} but id lookup failed: {e}")
        return {"txHash": tx_hash, "prescriptionId": prescription_id, "zkId": zk_id}

    def get_doctor_anonymous_prescriptions(self, address: str) -> List[int]:
        ids = self._call(
            self.medical_zk.functions.getDoctorAnonymousPrescriptions(self._checksum(address)),
            "getDoctorAnonymousPrescriptions"
        )
        return [int(i) for i in ids]

    def get_prescription_details(self, prescription_id: int) -> Dict[str, Any]:
        data = self._call(
            self.medical_zk.functions.getPrescriptionDetails(int(prescription_id)), "getPrescriptionDetails"
        )
        return {
            "id": int(data[0]),
            "doctorAddress": data[1],
            "diagnosis": data[2],
            "issueDate": from_epoch(data[3]).isoformat(),
            "isAnonymous": bool(data[4]),
        }

    def prescription_to_zk_id(self, prescription_id: int) -> int:
        return int(self._call(
            self.medical_zk.functions.prescriptionToZKId(int(prescription_id)), "prescriptionToZKId"
        ))

    def verify_anonymous_prescription(self, zk_id: int) -> bool:
        return bool(self._call(
            self.zk_verifier.functions.verifyAnonymousPrescription(int(zk_id)), "verifyAnonymousPrescription"
        ))

    def get_anonymous_prescription(self, zk_id: int) -> Dict[str, Any]:
        data = self._call(
            self.zk_verifier.functions.getAnonymousPrescription(int(zk_id)), "getAnonymousPrescription"
        )
        return {
            "commitment": [int(w) for w in data[0]],
            "timestamp": from_epoch(data[1]).isoformat(),
        }


_blockchain_service = None


def get_blockchain_service() -> Optional[BlockchainService]:
    """Ledger client, or None when the ledger integration is disabled"""
    global _blockchain_service
    if not settings.BLOCKCHAIN_ENABLED:
        return None
    if _blockchain_service is None:
        _blockchain_service = BlockchainService()
    return _blockchain_service
