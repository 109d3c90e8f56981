"""
User Profile API
Role lookup and patient/doctor profile registration
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import Field, field_validator
from sqlalchemy.orm import Session

from healthchain.api.dependencies import CamelModel, current_patient
from healthchain.database.connection import get_db
from healthchain.database.models import User, Patient
from healthchain.services.auth_service import get_current_user
from healthchain.services.blockchain_service import (
    BlockchainService, BlockchainError, get_blockchain_service
)
from healthchain.services.presenters import patient_dict, doctor_dict
from healthchain.services.registration_service import get_registration_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


def _check_wallet(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.startswith("0x"):
        raise ValueError("Wallet address must start with 0x")
    return value


# ==================== Pydantic Models ====================

class PatientProfileCreate(CamelModel):
    gender: str = Field(min_length=1)
    date_of_birth: datetime
    blood_type: str = Field(min_length=1)
    chronic_diseases: List[str] = []
    emergency_contact: str = Field(min_length=1)
    block_id: Optional[str] = None

    @field_validator("block_id")
    @classmethod
    def wallet_prefix(cls, v: Optional[str]) -> Optional[str]:
        return _check_wallet(v)


class PatientProfileUpdate(CamelModel):
    gender: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    blood_type: Optional[str] = None
    chronic_diseases: Optional[List[str]] = None
    emergency_contact: Optional[str] = None
    block_id: Optional[str] = None

    @field_validator("block_id")
    @classmethod
    def wallet_prefix(cls, v: Optional[str]) -> Optional[str]:
        return _check_wallet(v)


class DoctorProfileCreate(CamelModel):
    name: str = Field(min_length=4)
    phone_number: str = Field(min_length=10)
    aadhar_number: str = Field(min_length=12)
    mbbs_id: str = Field(min_length=1)
    specialty: str = Field(min_length=1)
    license_number: Optional[str] = None
    fees: Decimal = Field(default=Decimal("0"), ge=0)
    block_id: str

    @field_validator("block_id")
    @classmethod
    def wallet_prefix(cls, v: str) -> str:
        return _check_wallet(v)


# ==================== Endpoints ====================

@router.get("/role")
async def get_role(current_user: User = Depends(get_current_user)):
    """Caller's role and the dashboard it lands on"""
    return {
        "role": current_user.role.value,
        "dashboard": get_registration_service().dashboard_for(current_user),
    }


@router.post("/patient", status_code=201)
def register_patient(
    request: Request,
    data: PatientProfileCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """Register the caller as a patient"""
    try:
        result = get_registration_service().register_patient(
            db, current_user, data.model_dump(), chain=chain, request=request
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "status": "success",
        "data": patient_dict(result["patient"]),
        "ledger": result["ledger"],
    }


@router.get("/patient")
def get_patient_profile(
    patient: Patient = Depends(current_patient),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """Caller's patient profile, with the ledger record when available"""
    on_chain = None
    if chain is not None and patient.block_id:
        try:
            on_chain = chain.get_patient(patient.block_id)
        except BlockchainError as e:
            logger.warning(f"Could not read ledger patient {patient.block_id}: {e}")

    data = patient_dict(patient)
    data["onChain"] = on_chain
    return data


@router.put("/patient")
async def update_patient_profile(
    request: Request,
    data: PatientProfileUpdate,
    patient: Patient = Depends(current_patient),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    patient = get_registration_service().update_patient(
        db, patient, data.model_dump(exclude_unset=True), user=current_user, request=request
    )
    return {"status": "success", "data": patient_dict(patient)}


@router.post("/doctor", status_code=201)
def register_doctor(
    request: Request,
    data: DoctorProfileCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """Register the caller as a doctor"""
    profile = data.model_dump()
    profile["specialization"] = profile.pop("specialty")

    try:
        result = get_registration_service().register_doctor(
            db, current_user, profile, chain=chain, request=request
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "status": "success",
        "data": doctor_dict(result["doctor"], include_private=True),
        "ledger": result["ledger"],
    }
