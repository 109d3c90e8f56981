"""
Appointment Service
Booking with doctor/patient overlap detection
"""
import logging
from datetime import datetime, timezone
from typing import Optional, List, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from healthchain.database.models import (
    Appointment, AppointmentStatus, AccessRequest, AccessRequestStatus,
    Doctor, Patient, User, UserRole
)
from healthchain.services.auth_service import audit_service

logger = logging.getLogger(__name__)

# Statuses that hold a time slot
ACTIVE_STATUSES = [AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED]


def to_naive_utc(value: datetime) -> datetime:
    """Stored datetimes are naive UTC"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AppointmentService:
    """Appointment booking and listing"""

    def find_conflict(
        self,
        db: Session,
        doctor_id: int,
        patient_id: int,
        start_time: datetime,
        end_time: datetime
    ) -> Optional[Appointment]:
        """
        First active appointment of the doctor or the patient that overlaps
        [start_time, end_time]. Boundaries are inclusive, so back-to-back
        slots sharing an endpoint conflict.
        """
        return db.query(Appointment).filter(
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_time <= end_time,
            Appointment.end_time >= start_time,
            or_(
                Appointment.doctor_id == doctor_id,
                Appointment.patient_id == patient_id,
            )
        ).first()

    def has_confirmed_access(self, db: Session, doctor: Doctor, patient: Patient) -> bool:
        access = db.query(AccessRequest).filter(
            AccessRequest.doctor_id == doctor.id,
            AccessRequest.patient_id == patient.id,
        ).first()
        return access is not None and access.status == AccessRequestStatus.CONFIRMED

    def create_appointment(
        self,
        db: Session,
        doctor: Doctor,
        patient: Patient,
        start_time: datetime,
        end_time: datetime,
        notes: str = None,
        user: User = None,
        request=None
    ) -> Appointment:
        """Create a PENDING appointment; callers check conflicts first"""
        appointment = Appointment(
            doctor_id=doctor.id,
            patient_id=patient.id,
            start_time=to_naive_utc(start_time),
            end_time=to_naive_utc(end_time),
            status=AppointmentStatus.PENDING,
            notes=notes,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)

        audit_service.log(
            db=db,
            action="create",
            resource_type="appointment",
            resource_id=appointment.id,
            description=f"Requested appointment with doctor {doctor.id}",
            new_values={
                "startTime": appointment.start_time.isoformat(),
                "endTime": appointment.end_time.isoformat(),
            },
            user=user,
            request=request
        )
        return appointment

    def list_appointments(
        self,
        db: Session,
        doctor: Doctor = None,
        patient: Patient = None,
        status: Optional[AppointmentStatus] = None,
        limit: int = 10,
        offset: int = 0
    ) -> Tuple[List[Appointment], int]:
        """Appointments for one doctor or one patient, newest first, with total count"""
        q = db.query(Appointment)
        if doctor is not None:
            q = q.filter(Appointment.doctor_id == doctor.id)
        else:
            q = q.filter(Appointment.patient_id == patient.id)

        if status is not None:
            q = q.filter(Appointment.status == status)

        total = q.count()
        items = q.order_by(Appointment.start_time.desc()).offset(offset).limit(limit).all()
        return items, total

    def get_appointment(self, db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    def change_status(
        self,
        db: Session,
        appointment: Appointment,
        status: AppointmentStatus,
        user: User,
        request=None
    ) -> Appointment:
        """
        Doctors may confirm or cancel their appointments; patients may only
        cancel their own. Raises PermissionError for anything else.
        """
        is_doctor = appointment.doctor.user_id == user.id
        is_patient = appointment.patient.user_id == user.id

        if is_doctor:
            allowed = {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELED}
        elif is_patient:
            allowed = {AppointmentStatus.CANCELED}
        elif user.role == UserRole.ADMIN:
            allowed = set(AppointmentStatus)
        else:
            raise PermissionError("Not a participant of this appointment")

        if status not in allowed:
            raise PermissionError(f"Cannot set status {status.value}")

        if appointment.status == AppointmentStatus.CANCELED:
            raise ValueError("Appointment already canceled")

        appointment.status = status
        db.commit()
        db.refresh(appointment)

        audit_service.log(
            db=db,
            action="update_status",
            resource_type="appointment",
            resource_id=appointment.id,
            description=f"Appointment {appointment.id} set to {status.value}",
            user=user,
            request=request
        )
        return appointment


_appointment_service = None


def get_appointment_service() -> AppointmentService:
    global _appointment_service
    if _appointment_service is None:
        _appointment_service = AppointmentService()
    return _appointment_service
