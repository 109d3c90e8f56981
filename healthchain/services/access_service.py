"""
Access Request Service
Doctors request access to a patient's records; the patient decides
"""
import logging
from typing import Optional, List

from sqlalchemy.orm import Session

from healthchain.database.models import (
    AccessRequest, AccessRequestStatus, Doctor, Patient, User
)
from healthchain.services.auth_service import audit_service

logger = logging.getLogger(__name__)


class AccessService:
    """Doctor-to-patient access requests"""

    def request_access(
        self,
        db: Session,
        doctor: Doctor,
        patient: Patient,
        user: User = None,
        request=None
    ) -> AccessRequest:
        existing = db.query(AccessRequest).filter(
            AccessRequest.doctor_id == doctor.id,
            AccessRequest.patient_id == patient.id
        ).first()
        if existing:
            raise ValueError(f"Access request already exists with status {existing.status.value}")

        access_request = AccessRequest(
            doctor_id=doctor.id,
            patient_id=patient.id,
            status=AccessRequestStatus.PENDING
        )
        db.add(access_request)
        db.commit()
        db.refresh(access_request)

        audit_service.log(
            db=db,
            action="request_access",
            resource_type="patient",
            resource_id=patient.id,
            description=f"Doctor {doctor.id} requested access to patient {patient.id}",
            user=user,
            request=request
        )
        return access_request

    def list_for_doctor(self, db: Session, doctor: Doctor) -> List[AccessRequest]:
        return db.query(AccessRequest).filter(
            AccessRequest.doctor_id == doctor.id
        ).order_by(AccessRequest.created_at.desc()).all()

    def list_for_patient(self, db: Session, patient: Patient) -> List[AccessRequest]:
        return db.query(AccessRequest).filter(
            AccessRequest.patient_id == patient.id
        ).order_by(AccessRequest.created_at.desc()).all()

    def get(self, db: Session, request_id: int) -> Optional[AccessRequest]:
        return db.query(AccessRequest).filter(AccessRequest.id == request_id).first()

    def respond(
        self,
        db: Session,
        access_request: AccessRequest,
        status: AccessRequestStatus,
        user: User = None,
        request=None
    ) -> AccessRequest:
        """Patient confirms or rejects a request"""
        if status == AccessRequestStatus.PENDING:
            raise ValueError("Status must be CONFIRMED or REJECTED")

        access_request.status = status
        db.commit()
        db.refresh(access_request)

        audit_service.log(
            db=db,
            action="respond_access",
            resource_type="access_request",
            resource_id=access_request.id,
            description=f"Access request {access_request.id} {status.value}",
            user=user,
            request=request
        )
        return access_request


_access_service = None


def get_access_service() -> AccessService:
    global _access_service
    if _access_service is None:
        _access_service = AccessService()
    return _access_service
