"""
HealthChain Records

Patient and doctor registration, appointment booking and prescription
issuance, mirrored onto a smart-contract ledger.
"""
__version__ = "1.0.0"
