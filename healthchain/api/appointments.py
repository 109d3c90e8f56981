"""
Appointments API
Booking with overlap detection, paginated listing and status changes
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from healthchain.api.dependencies import CamelModel
from healthchain.config import settings
from healthchain.database.connection import get_db
from healthchain.database.models import User, UserRole, AppointmentStatus
from healthchain.services.appointment_service import get_appointment_service, to_naive_utc
from healthchain.services.auth_service import get_current_user
from healthchain.services.presenters import appointment_dict
from healthchain.services.registration_service import get_registration_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


# ==================== Pydantic Models ====================

class AppointmentCreate(CamelModel):
    doctor_id: int
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = None


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


# ==================== Endpoints ====================

@router.post("", status_code=201)
async def create_appointment(
    request: Request,
    data: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Request an appointment with a doctor.

    The caller's patient profile is created with placeholder details if
    missing. Any active appointment of the same doctor or patient that
    overlaps the requested slot is a conflict.
    """
    start_time = to_naive_utc(data.start_time)
    end_time = to_naive_utc(data.end_time)
    if end_time <= start_time:
        raise HTTPException(status_code=400, detail="End time must be after start time")

    registration = get_registration_service()
    appointments = get_appointment_service()

    patient = registration.ensure_patient_profile(db, current_user)

    doctor = registration.get_doctor(db, data.doctor_id)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")

    if settings.REQUIRE_ACCESS_APPROVAL and not appointments.has_confirmed_access(db, doctor, patient):
        raise HTTPException(status_code=403, detail="Doctor has no approved access to this patient")

    conflict = appointments.find_conflict(db, doctor.id, patient.id, start_time, end_time)
    if conflict:
        logger.info(f"Appointment request overlaps appointment {conflict.id}")
        raise HTTPException(status_code=409, detail="Time slot not available")

    appointment = appointments.create_appointment(
        db, doctor, patient, start_time, end_time,
        notes=data.notes, user=current_user, request=request
    )

    return {
        "status": "success",
        "data": appointment_dict(appointment),
        "message": "Appointment requested successfully",
    }


@router.get("")
async def list_appointments(
    status: Optional[AppointmentStatus] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Doctors see their own schedule; everyone else sees their patient appointments"""
    registration = get_registration_service()

    doctor = patient = None
    if current_user.role == UserRole.DOCTOR:
        doctor = registration.get_doctor_for_user(db, current_user)
        if not doctor:
            raise HTTPException(status_code=404, detail="Doctor profile not found")
    else:
        patient = registration.get_patient_for_user(db, current_user)
        if not patient:
            raise HTTPException(status_code=404, detail="Patient profile not found")

    items, total = get_appointment_service().list_appointments(
        db, doctor=doctor, patient=patient, status=status, limit=limit, offset=offset
    )

    return {
        "status": "success",
        "data": [appointment_dict(a) for a in items],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + len(items) < total,
        },
    }


@router.patch("/{appointment_id}")
async def update_appointment_status(
    request: Request,
    appointment_id: int,
    data: AppointmentStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = get_appointment_service()
    appointment = service.get_appointment(db, appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")

    try:
        appointment = service.change_status(db, appointment, data.status, current_user, request=request)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"status": "success", "data": appointment_dict(appointment)}
