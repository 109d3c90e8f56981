"""
HealthToken (HTK) API
Balances, purchases, spending approval and doctor fee payments
"""
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import Field
from sqlalchemy.orm import Session

from healthchain.api.dependencies import CamelModel, current_doctor, require_chain, wallet_address
from healthchain.config import settings
from healthchain.database.connection import get_db
from healthchain.database.models import User, Doctor
from healthchain.services.auth_service import get_current_user, audit_service
from healthchain.services.blockchain_service import BlockchainService
from healthchain.services.presenters import amount

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tokens", tags=["Tokens"])


# ==================== Pydantic Models ====================

class BuyTokensRequest(CamelModel):
    eth_amount: Decimal = Field(gt=0)


class ApproveRequest(CamelModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)


class PayDoctorRequest(CamelModel):
    doctor_address: str = Field(pattern="^0x[0-9a-fA-F]{40}$")


class WithdrawRequest(CamelModel):
    amount: Decimal = Field(gt=0)


# ==================== Endpoints ====================

@router.get("/balance")
def get_balance(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: BlockchainService = Depends(require_chain)
):
    address = wallet_address(db, current_user)
    return {"address": address, "balance": amount(chain.token_balance(address))}


@router.post("/buy")
def buy_tokens(
    request: Request,
    data: BuyTokensRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: BlockchainService = Depends(require_chain)
):
    """Buy HTK with ETH at the fixed exchange rate"""
    tx_hash = chain.buy_tokens(data.eth_amount)
    tokens = data.eth_amount * settings.HTK_PER_ETH

    audit_service.log(
        db=db,
        action="buy_tokens",
        resource_type="token",
        description=f"Bought {tokens} HTK for {data.eth_amount} ETH",
        new_values={"txHash": tx_hash},
        user=current_user,
        request=request
    )

    return {
        "status": "success",
        "txHash": tx_hash,
        "ethAmount": amount(data.eth_amount),
        "tokensBought": amount(tokens),
    }


@router.post("/approve")
def approve_spending(
    request: Request,
    data: ApproveRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: BlockchainService = Depends(require_chain)
):
    """Allow the Medical contract to spend HTK for fee payments"""
    allowance = data.amount or Decimal(settings.DEFAULT_APPROVAL_AMOUNT)
    tx_hash = chain.approve_spending(allowance)

    audit_service.log(
        db=db,
        action="approve_tokens",
        resource_type="token",
        description=f"Approved {allowance} HTK for fee payments",
        new_values={"txHash": tx_hash},
        user=current_user,
        request=request
    )

    return {"status": "success", "txHash": tx_hash, "amount": amount(allowance)}


@router.post("/pay-doctor")
def pay_doctor(
    request: Request,
    data: PayDoctorRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: BlockchainService = Depends(require_chain)
):
    """Pay a doctor's fee as recorded on the ledger"""
    fee = chain.get_doctor_fee(data.doctor_address)
    tx_hash = chain.pay_doctor(data.doctor_address, fee)

    audit_service.log(
        db=db,
        action="pay_doctor",
        resource_type="token",
        resource_id=data.doctor_address,
        description=f"Paid {fee} HTK doctor fee",
        new_values={"txHash": tx_hash},
        user=current_user,
        request=request
    )

    return {"status": "success", "txHash": tx_hash, "amount": amount(fee)}


@router.post("/withdraw")
def withdraw_tokens(
    request: Request,
    data: WithdrawRequest,
    doctor: Doctor = Depends(current_doctor),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chain: BlockchainService = Depends(require_chain)
):
    """Doctors withdraw fees accrued on the ledger"""
    tx_hash = chain.withdraw_tokens(data.amount)

    audit_service.log(
        db=db,
        action="withdraw_tokens",
        resource_type="token",
        resource_id=doctor.block_id,
        description=f"Withdrew {data.amount} HTK",
        new_values={"txHash": tx_hash},
        user=current_user,
        request=request
    )

    return {"status": "success", "txHash": tx_hash, "amount": amount(data.amount)}
