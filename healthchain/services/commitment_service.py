"""
Commitment Service - Hash commitments for anonymous prescriptions

A commitment binds a prescription's content to a secret key:

    prescription_hash = keccak256(canonical JSON of medications, diagnosis, doctorId, timestamp)
    commitment        = keccak256(prescription_hash || keccak256(secret_key))

Only the commitment is published. Whoever holds the secret key can later
open it by disclosing the key; the commitment is re-derived from the stored
content and compared with the published value.
"""
import hmac
import json
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from web3 import Web3

WORD_COUNT = 8


@dataclass
class CommitmentResult:
    """A freshly derived commitment and the inputs needed to reopen it"""
    commitment: str
    prescription_hash: str
    timestamp: int
    words: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'commitment': self.commitment,
            'prescriptionHash': self.prescription_hash,
            'timestamp': self.timestamp,
            'commitmentWords': self.words,
        }


@dataclass
class ProofPayload:
    """Groth16-shaped proof arguments expected by the verifier contract"""
    a: List[int]
    b: List[List[int]]
    c: List[int]
    inputs: List[int]


def normalize_medication(medication: Any) -> Dict[str, str]:
    if not isinstance(medication, dict):
        medication = medication.model_dump(by_alias=True) if hasattr(medication, 'model_dump') else dict(medication)
    return {
        'name': medication.get('name', ''),
        'dosage': medication.get('dosage', ''),
        'duration': medication.get('duration', ''),
        'additionalInstructions': medication.get(
            'additionalInstructions', medication.get('additional_instructions', '')
        ) or '',
    }


def canonical_payload(
    medications: Sequence[Any],
    diagnosis: str,
    doctor_id: str,
    timestamp: int
) -> str:
    """Compact JSON with a fixed key order, matching JSON.stringify output"""
    payload = {
        'medications': [normalize_medication(m) for m in medications],
        'diagnosis': diagnosis,
        'doctorId': doctor_id,
        'timestamp': int(timestamp),
    }
    return json.dumps(payload, separators=(',', ':'), ensure_ascii=False)


def hash_prescription(
    medications: Sequence[Any],
    diagnosis: str,
    doctor_id: str,
    timestamp: int
) -> bytes:
    return bytes(Web3.keccak(text=canonical_payload(medications, diagnosis, doctor_id, timestamp)))


def hash_secret(secret_key: str) -> bytes:
    return bytes(Web3.keccak(text=secret_key))


def to_u32_words(hex_value: str) -> List[int]:
    """Split a 256-bit hex value into eight big-endian 32-bit words"""
    clean = hex_value[2:] if hex_value.startswith('0x') else hex_value
    padded = clean.rjust(64, '0')
    return [int(padded[i:i + 8], 16) for i in range(0, 64, 8)]


def from_u32_words(words: Sequence[int]) -> str:
    """Inverse of to_u32_words"""
    if len(words) != WORD_COUNT:
        raise ValueError(f"Expected {WORD_COUNT} words, got {len(words)}")
    return '0x' + ''.join(f"{int(w) & 0xFFFFFFFF:08x}" for w in words)


def generate_secret_key() -> str:
    """Random 32-byte secret, hex encoded"""
    return '0x' + secrets.token_hex(32)


def create_commitment(
    medications: Sequence[Any],
    diagnosis: str,
    doctor_id: str,
    secret_key: str,
    timestamp: Optional[int] = None
) -> CommitmentResult:
    """Derive the commitment for a prescription and secret key"""
    if not secret_key:
        raise ValueError("Secret key is required")

    if timestamp is None:
        timestamp = int(time.time())

    prescription_hash = hash_prescription(medications, diagnosis, doctor_id, timestamp)
    commitment = Web3.to_hex(
        Web3.solidity_keccak(['bytes32', 'bytes32'], [prescription_hash, hash_secret(secret_key)])
    )

    return CommitmentResult(
        commitment=commitment,
        prescription_hash=Web3.to_hex(prescription_hash),
        timestamp=int(timestamp),
        words=to_u32_words(commitment),
    )


def verify_commitment(
    commitment: str,
    medications: Sequence[Any],
    diagnosis: str,
    doctor_id: str,
    timestamp: int,
    secret_key: str
) -> bool:
    """Re-derive the commitment from a disclosed secret and compare"""
    if not secret_key or not commitment:
        return False

    derived = create_commitment(medications, diagnosis, doctor_id, secret_key, timestamp).commitment
    expected = commitment if commitment.startswith('0x') else '0x' + commitment
    return hmac.compare_digest(derived.lower(), expected.lower())


def placeholder_proof(commitment: str) -> ProofPayload:
    """
    Proof arguments for issueAnonymousPrescription.

    No circuit is executed; the public input carries the commitment and the
    proof points are zero.
    """
    return ProofPayload(
        a=[0, 0],
        b=[[0, 0], [0, 0]],
        c=[0, 0],
        inputs=[int(commitment, 16)],
    )
