"""
Anonymous Prescriptions API
Commitment-backed prescriptions and ownership verification
"""
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import Field
from sqlalchemy.orm import Session

from healthchain.api.dependencies import CamelModel, MedicationIn, current_doctor
from healthchain.database.connection import get_db
from healthchain.database.models import User, Doctor
from healthchain.services.anonymous_prescription_service import get_anonymous_prescription_service
from healthchain.services.auth_service import get_current_user
from healthchain.services.blockchain_service import BlockchainService, get_blockchain_service

router = APIRouter(prefix="/anonymous-prescriptions", tags=["Anonymous Prescriptions"])


# ==================== Pydantic Models ====================

class AnonymousPrescriptionCreate(CamelModel):
    medications: List[MedicationIn] = Field(min_length=1)
    diagnosis: str = Field(min_length=1)
    secret_key: Optional[str] = Field(default=None, min_length=1)


class OwnershipVerification(CamelModel):
    prescription_id: int
    secret_key: str = Field(min_length=1)


# ==================== Endpoints ====================

@router.post("", status_code=201)
def issue_anonymous_prescription(
    request: Request,
    data: AnonymousPrescriptionCreate,
    doctor: Doctor = Depends(current_doctor),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """
    Issue a prescription bound to its patient only by a commitment.

    When no secret key is supplied one is generated and returned in this
    response only; it is not stored and cannot be recovered.
    """
    if not data.diagnosis.strip():
        raise HTTPException(status_code=422, detail="Diagnosis is required")

    service = get_anonymous_prescription_service()
    try:
        result = service.issue(
            db,
            doctor,
            [m.to_record() for m in data.medications],
            data.diagnosis,
            secret_key=data.secret_key,
            chain=chain,
            user=current_user,
            request=request
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "status": "success",
        "data": service.describe(result["record"], chain),
        "commitment": result["commitment"].to_dict(),
        "secretKey": result["secretKey"],
    }


@router.get("")
def list_anonymous_prescriptions(
    doctor: Doctor = Depends(current_doctor),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    service = get_anonymous_prescription_service()
    records = service.list_for_doctor(db, doctor)
    return {
        "status": "success",
        "data": [service.describe(r, chain) for r in records],
        "total": len(records),
    }


@router.post("/verify")
def verify_anonymous_prescription(
    request: Request,
    data: OwnershipVerification,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """Prove ownership of an anonymous prescription by disclosing its secret key"""
    return get_anonymous_prescription_service().verify_ownership(
        db, data.prescription_id, data.secret_key, chain=chain, user=current_user, request=request
    )


@router.get("/{record_id}")
def get_anonymous_prescription(
    record_id: int,
    doctor: Doctor = Depends(current_doctor),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    service = get_anonymous_prescription_service()
    record = service.get(db, record_id)
    if not record or record.doctor_id != doctor.id:
        raise HTTPException(status_code=404, detail="Anonymous prescription not found")

    return {"status": "success", "data": service.describe(record, chain)}
