"""
Tests for the anonymous-prescription commitment scheme.
"""
import pytest
from web3 import Web3

from healthchain.services import commitment_service as cs

MEDS = [{"name": "Amoxicillin", "dosage": "500mg", "duration": "7 days", "additionalInstructions": "After meals"}]
DOCTOR = "0x" + "22" * 20
TIMESTAMP = 1700000000


def test_hash_secret_of_empty_string_is_keccak_empty():
    assert Web3.to_hex(cs.hash_secret("")) == (
        "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
    )


def test_canonical_payload_is_compact_with_fixed_key_order():
    payload = cs.canonical_payload(
        [{"name": "A", "dosage": "1", "duration": "2 days"}], "Flu", "0xabc", TIMESTAMP
    )
    assert payload == (
        '{"medications":[{"name":"A","dosage":"1","duration":"2 days","additionalInstructions":""}],'
        '"diagnosis":"Flu","doctorId":"0xabc","timestamp":1700000000}'
    )


def test_canonical_payload_keeps_non_ascii():
    payload = cs.canonical_payload(MEDS, "Fièvre", DOCTOR, TIMESTAMP)
    assert '"diagnosis":"Fièvre"' in payload


def test_snake_case_instructions_normalized():
    snake = [{"name": "A", "dosage": "1", "duration": "2", "additional_instructions": "x"}]
    camel = [{"name": "A", "dosage": "1", "duration": "2", "additionalInstructions": "x"}]
    assert cs.canonical_payload(snake, "d", DOCTOR, 1) == cs.canonical_payload(camel, "d", DOCTOR, 1)


def test_commitment_is_keccak_of_packed_hashes():
    result = cs.create_commitment(MEDS, "Sinusitis", DOCTOR, "0xsecret", TIMESTAMP)
    packed = cs.hash_prescription(MEDS, "Sinusitis", DOCTOR, TIMESTAMP) + cs.hash_secret("0xsecret")
    assert result.commitment == Web3.to_hex(Web3.keccak(packed))
    assert result.timestamp == TIMESTAMP
    assert result.words == cs.to_u32_words(result.commitment)
    assert result.prescription_hash == Web3.to_hex(cs.hash_prescription(MEDS, "Sinusitis", DOCTOR, TIMESTAMP))


def test_commitment_is_deterministic():
    a = cs.create_commitment(MEDS, "Sinusitis", DOCTOR, "key", TIMESTAMP)
    b = cs.create_commitment(MEDS, "Sinusitis", DOCTOR, "key", TIMESTAMP)
    assert a.commitment == b.commitment


def test_commitment_requires_secret():
    with pytest.raises(ValueError, match="Secret key"):
        cs.create_commitment(MEDS, "Sinusitis", DOCTOR, "", TIMESTAMP)


def test_verify_commitment_accepts_only_matching_inputs():
    commitment = cs.create_commitment(MEDS, "Sinusitis", DOCTOR, "right-key", TIMESTAMP).commitment

    assert cs.verify_commitment(commitment, MEDS, "Sinusitis", DOCTOR, TIMESTAMP, "right-key") is True
    assert cs.verify_commitment(commitment, MEDS, "Sinusitis", DOCTOR, TIMESTAMP, "wrong-key") is False
    assert cs.verify_commitment(commitment, MEDS, "Influenza", DOCTOR, TIMESTAMP, "right-key") is False
    assert cs.verify_commitment(commitment, MEDS, "Sinusitis", DOCTOR, TIMESTAMP + 1, "right-key") is False
    assert cs.verify_commitment(commitment, MEDS, "Sinusitis", DOCTOR, TIMESTAMP, "") is False


def test_verify_commitment_ignores_hex_case_and_prefix():
    commitment = cs.create_commitment(MEDS, "Sinusitis", DOCTOR, "k", TIMESTAMP).commitment
    assert cs.verify_commitment(commitment[2:].upper(), MEDS, "Sinusitis", DOCTOR, TIMESTAMP, "k") is True


def test_u32_words_are_big_endian_and_padded():
    assert cs.to_u32_words("0x1") == [0, 0, 0, 0, 0, 0, 0, 1]
    assert cs.to_u32_words("0x" + "ff" * 4 + "00" * 28) == [0xFFFFFFFF] + [0] * 7


def test_from_u32_words_inverts_to_u32_words():
    commitment = cs.create_commitment(MEDS, "Sinusitis", DOCTOR, "k", TIMESTAMP).commitment
    assert cs.from_u32_words(cs.to_u32_words(commitment)) == commitment


def test_from_u32_words_rejects_wrong_length():
    with pytest.raises(ValueError, match="Expected 8 words"):
        cs.from_u32_words([1, 2, 3])


def test_generate_secret_key_is_random_32_bytes():
    a, b = cs.generate_secret_key(), cs.generate_secret_key()
    assert a.startswith("0x") and len(a) == 66
    assert a != b


def test_placeholder_proof_carries_commitment_as_input():
    commitment = cs.create_commitment(MEDS, "Sinusitis", DOCTOR, "k", TIMESTAMP).commitment
    proof = cs.placeholder_proof(commitment)
    assert proof.inputs == [int(commitment, 16)]
    assert proof.a == [0, 0] and proof.c == [0, 0]
    assert proof.b == [[0, 0], [0, 0]]
