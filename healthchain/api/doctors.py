"""
Doctor API
Doctor directory, own profile and on-chain fees
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from healthchain.api.dependencies import current_doctor, require_chain
from healthchain.database.connection import get_db
from healthchain.database.models import User, Doctor
from healthchain.services.auth_service import get_current_user
from healthchain.services.blockchain_service import (
    BlockchainService, BlockchainError, get_blockchain_service
)
from healthchain.services.presenters import doctor_dict, amount
from healthchain.services.registration_service import get_registration_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doctors", tags=["Doctors"])


@router.get("")
async def list_doctors(
    verified: bool = Query(False, description="Only verified doctors"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Doctors available for booking"""
    doctors = get_registration_service().list_doctors(db, verified_only=verified)
    return {
        "status": "success",
        "data": [doctor_dict(d) for d in doctors],
        "total": len(doctors),
    }


@router.get("/me")
def get_my_profile(
    doctor: Doctor = Depends(current_doctor),
    chain: Optional[BlockchainService] = Depends(get_blockchain_service)
):
    """Caller's doctor profile merged with the ledger record"""
    data = doctor_dict(doctor, include_private=True)
    data["onChain"] = None

    if chain is not None and doctor.block_id:
        try:
            on_chain = chain.get_doctor(doctor.block_id)
            data["onChain"] = {
                **on_chain,
                "fees": amount(on_chain["fees"]),
                "tokenBalance": amount(on_chain["tokenBalance"]),
            }
        except BlockchainError as e:
            logger.warning(f"Could not read ledger doctor {doctor.block_id}: {e}")

    return data


@router.get("/{address}/fee")
def get_doctor_fee(
    address: str,
    current_user: User = Depends(get_current_user),
    chain: BlockchainService = Depends(require_chain)
):
    fee = chain.get_doctor_fee(address)
    return {"doctorAddress": address, "fee": amount(fee)}
