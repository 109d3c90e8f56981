"""
Shared route dependencies and request models
"""
from typing import Optional

from fastapi import Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from healthchain.database.connection import get_db
from healthchain.database.models import User, Doctor, Patient
from healthchain.services.auth_service import get_current_user, require_doctor
from healthchain.services.blockchain_service import BlockchainService, get_blockchain_service
from healthchain.services.registration_service import get_registration_service


class CamelModel(BaseModel):
    """Request bodies use camelCase keys on the wire"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MedicationIn(CamelModel):
    name: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    duration: str = Field(min_length=1)
    additional_instructions: Optional[str] = ""

    def to_record(self) -> dict:
        return {
            "name": self.name,
            "dosage": self.dosage,
            "duration": self.duration,
            "additional_instructions": self.additional_instructions or "",
        }


def current_doctor(
    current_user: User = Depends(require_doctor),
    db: Session = Depends(get_db)
) -> Doctor:
    """Doctor profile of the caller"""
    doctor = get_registration_service().get_doctor_for_user(db, current_user)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor profile not found")
    return doctor


def current_patient(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Patient:
    """Patient profile of the caller"""
    patient = get_registration_service().get_patient_for_user(db, current_user)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient profile not found")
    return patient


def require_chain(
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
) -> BlockchainService:
    """Ledger client for ledger-only operations"""
    if chain is None:
        raise HTTPException(status_code=503, detail="Blockchain integration is disabled")
    return chain


def wallet_address(db: Session, user: User) -> str:
    """Wallet address bound to the caller's doctor or patient profile"""
    registration = get_registration_service()
    profile = registration.get_doctor_for_user(db, user) or registration.get_patient_for_user(db, user)
    if not profile or not profile.block_id:
        raise HTTPException(status_code=400, detail="No wallet address registered for this account")
    return profile.block_id
