"""
Patient Directory API
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from healthchain.database.connection import get_db
from healthchain.database.models import User, UserRole
from healthchain.services.auth_service import get_current_user
from healthchain.services.presenters import patient_dict
from healthchain.services.registration_service import get_registration_service

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.get("")
async def list_patients(
    address: Optional[str] = Query(None, description="Wallet address filter"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Patients ordered by name, or the ones bound to a wallet address. Doctors only."""
    if current_user.role != UserRole.DOCTOR:
        raise HTTPException(status_code=403, detail="Only doctors can access patient list")

    patients = get_registration_service().list_patients(db, address=address)
    return {
        "status": "success",
        "data": [patient_dict(p) for p in patients],
        "total": len(patients),
    }
