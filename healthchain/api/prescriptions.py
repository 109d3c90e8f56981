"""
Prescriptions API
Database prescriptions mirrored on the ledger, with merged listings
"""
import logging
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import Field
from sqlalchemy.orm import Session

from healthchain.api.dependencies import CamelModel, MedicationIn, current_doctor
from healthchain.database.connection import get_db
from healthchain.database.models import User, UserRole, Doctor, ChainStatus
from healthchain.services.auth_service import get_current_user
from healthchain.services.blockchain_service import (
    BlockchainService, BlockchainError, get_blockchain_service
)
from healthchain.services.presenters import prescription_dict
from healthchain.services.prescription_service import get_prescription_service
from healthchain.services.registration_service import get_registration_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prescriptions", tags=["Prescriptions"])


# ==================== Pydantic Models ====================

class PrescriptionCreate(CamelModel):
    patient_id: int
    medications: List[MedicationIn] = Field(min_length=1)
    valid_till: Optional[datetime] = None
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    blockchain_tx_hash: Optional[str] = None


class PrescriptionUpdate(CamelModel):
    valid_till: Optional[datetime] = None
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    medications: Optional[List[MedicationIn]] = Field(default=None, min_length=1)


# ==================== Endpoints ====================

@router.get("")
def list_prescriptions(
    role: Optional[str] = Query(None, pattern="^(patient|doctor)$"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """Caller's prescriptions from the database and the ledger, newest first"""
    registration = get_registration_service()
    service = get_prescription_service()

    as_doctor = role == "doctor" if role else current_user.role == UserRole.DOCTOR

    if as_doctor:
        doctor = registration.get_doctor_for_user(db, current_user)
        if not doctor:
            raise HTTPException(status_code=404, detail="Doctor profile not found")
        db_prescriptions = service.list_for_doctor(db, doctor)
        address = doctor.block_id
    else:
        patient = registration.get_patient_for_user(db, current_user)
        db_prescriptions = service.list_for_patient(db, patient) if patient else []
        address = patient.block_id if patient else None

    prescriptions = service.merged_view(db_prescriptions, chain, address, as_doctor=as_doctor)
    return {"status": "success", "data": prescriptions, "total": len(prescriptions)}


@router.post("", status_code=201)
def create_prescription(
    request: Request,
    data: PrescriptionCreate,
    doctor: Doctor = Depends(current_doctor),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """Issue a prescription; also issued on the ledger when both parties have wallets"""
    patient = get_registration_service().get_patient(db, data.patient_id)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")

    prescription = get_prescription_service().create_prescription(
        db,
        doctor,
        patient,
        medications=[m.to_record() for m in data.medications],
        valid_till=data.valid_till,
        diagnosis=data.diagnosis,
        notes=data.notes,
        blockchain_tx_hash=data.blockchain_tx_hash,
        chain=chain,
        user=current_user,
        request=request
    )

    return {
        "status": "success",
        "data": prescription_dict(prescription),
        "message": "Prescription created successfully",
    }


@router.get("/{prescription_id}")
def get_prescription(
    prescription_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """
    Prescription visible to the caller. Numeric ids missing from the
    database are looked up on the ledger.
    """
    registration = get_registration_service()
    service = get_prescription_service()

    if current_user.role == UserRole.DOCTOR:
        profile = registration.get_doctor_for_user(db, current_user)
        prescription = service.get_for_doctor(db, prescription_id, profile) if profile else None
    else:
        profile = registration.get_patient_for_user(db, current_user)
        prescription = service.get_for_patient(db, prescription_id, profile) if profile else None

    if prescription:
        return {"status": "success", "data": prescription_dict(prescription)}

    if chain is not None and prescription_id.isdigit() and profile and profile.block_id:
        try:
            on_chain = chain.fetch_prescription(int(prescription_id), profile.block_id)
        except BlockchainError as e:
            logger.error(f"Error fetching ledger prescription {prescription_id}: {e}")
            on_chain = None
        if on_chain:
            return {"status": "success", "data": on_chain}

    raise HTTPException(status_code=404, detail="Prescription not found")


@router.put("/{prescription_id}")
async def update_prescription(
    request: Request,
    prescription_id: str,
    data: PrescriptionUpdate,
    doctor: Doctor = Depends(current_doctor),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = get_prescription_service()
    prescription = service.get_for_doctor(db, prescription_id, doctor)
    if not prescription:
        raise HTTPException(status_code=404, detail="Prescription not found")

    updates = data.model_dump(exclude_unset=True, exclude={"medications"})
    if data.medications is not None:
        updates["medications"] = [m.to_record() for m in data.medications]

    prescription = service.update_prescription(db, prescription, updates, user=current_user, request=request)
    return {"status": "success", "data": prescription_dict(prescription)}


@router.post("/{prescription_id}/sync")
def sync_prescription(
    prescription_id: str,
    doctor: Doctor = Depends(current_doctor),
    db: Session = Depends(get_db),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """Retry the ledger write for a prescription that is not on the ledger yet"""
    service = get_prescription_service()
    prescription = service.get_for_doctor(db, prescription_id, doctor)
    if not prescription:
        raise HTTPException(status_code=404, detail="Prescription not found")

    if prescription.chain_status == ChainStatus.CONFIRMED:
        raise HTTPException(status_code=409, detail="Prescription is already on the ledger")
    if chain is None:
        raise HTTPException(status_code=503, detail="Blockchain integration is disabled")

    prescription = service.mirror_on_ledger(db, prescription, chain)
    return {"status": "success", "data": prescription_dict(prescription)}
