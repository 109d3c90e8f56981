"""
Access Requests API
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from healthchain.api.dependencies import CamelModel, current_doctor, current_patient
from healthchain.database.connection import get_db
from healthchain.database.models import User, UserRole, Doctor, Patient, AccessRequestStatus
from healthchain.services.access_service import get_access_service
from healthchain.services.auth_service import get_current_user
from healthchain.services.presenters import access_request_dict
from healthchain.services.registration_service import get_registration_service

router = APIRouter(prefix="/access-requests", tags=["Access Requests"])


class AccessRequestCreate(CamelModel):
    patient_id: int


class AccessRequestResponse(BaseModel):
    status: AccessRequestStatus


@router.post("", status_code=201)
async def request_access(
    request: Request,
    data: AccessRequestCreate,
    doctor: Doctor = Depends(current_doctor),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    patient = get_registration_service().get_patient(db, data.patient_id)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")

    try:
        access_request = get_access_service().request_access(
            db, doctor, patient, user=current_user, request=request
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"status": "success", "data": access_request_dict(access_request)}


@router.get("")
async def list_access_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Requests made by the calling doctor, or received by the calling patient"""
    service = get_access_service()
    if current_user.role == UserRole.DOCTOR:
        doctor = current_doctor(current_user, db)
        requests = service.list_for_doctor(db, doctor)
    else:
        patient = current_patient(current_user, db)
        requests = service.list_for_patient(db, patient)

    return {
        "status": "success",
        "data": [access_request_dict(r) for r in requests],
        "total": len(requests),
    }


@router.patch("/{request_id}")
async def respond_to_access_request(
    request: Request,
    request_id: int,
    data: AccessRequestResponse,
    patient: Patient = Depends(current_patient),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """The patient confirms or rejects a doctor's request"""
    service = get_access_service()
    access_request = service.get(db, request_id)
    if not access_request:
        raise HTTPException(status_code=404, detail="Access request not found")
    if access_request.patient_id != patient.id:
        raise HTTPException(status_code=403, detail="Only the patient can respond to this request")

    try:
        access_request = service.respond(db, access_request, data.status, user=current_user, request=request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"status": "success", "data": access_request_dict(access_request)}
