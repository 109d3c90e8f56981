"""
Admin API
User listing, doctor verification and the audit trail
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from healthchain.database.connection import get_db
from healthchain.database.models import User, AuditLog
from healthchain.services.auth_service import require_admin
from healthchain.services.presenters import user_dict, doctor_dict, audit_log_dict
from healthchain.services.registration_service import get_registration_service

router = APIRouter(prefix="/admin", tags=["Admin"])


class DoctorVerification(BaseModel):
    verified: bool = True


@router.get("/users")
async def list_users(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List all users (Admin only)"""
    users = db.query(User).order_by(User.created_at.asc()).all()
    return [user_dict(u) for u in users]


@router.patch("/doctors/{doctor_id}/verify")
async def verify_doctor(
    request: Request,
    doctor_id: int,
    data: DoctorVerification,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    registration = get_registration_service()
    doctor = registration.get_doctor(db, doctor_id)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")

    doctor = registration.set_doctor_verified(db, doctor, data.verified, user=current_user, request=request)
    return {"status": "success", "data": doctor_dict(doctor, include_private=True)}


@router.get("/audit-logs")
async def list_audit_logs(
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Most recent audit entries first (Admin only)"""
    entries = db.query(AuditLog).order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return [audit_log_dict(e) for e in entries]
