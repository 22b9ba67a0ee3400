"""Finder wallet routes: findertoken balance, ledger history, withdrawals."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.routes.auth import get_current_user_dep, require_role
from findermeister.domain.models import User
from findermeister.domain.schemas import (
    BalanceResponse,
    TokenPackageResponse,
    TransactionResponse,
    WithdrawalCreate,
    WithdrawalResponse,
)
from findermeister.infra.database import get_db
from findermeister.services.auth_service import get_finder_by_user_id
from findermeister.services.errors import MarketplaceError
from findermeister.services.token_ledger import TokenLedger
from findermeister.services.withdrawals import WithdrawalService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tokens"])


@router.get("/api/findertokens/balance", response_model=BalanceResponse)
async def get_balance(
    user: User = Depends(require_role("finder")),
    db: AsyncSession = Depends(get_db),
):
    finder = await get_finder_by_user_id(db, user.id)
    if not finder:
        raise HTTPException(status_code=404, detail="Finder profile not found")
    return BalanceResponse(balance=await TokenLedger(db).get_balance(finder))


@router.get("/api/findertokens/packages", response_model=list[TokenPackageResponse])
async def list_active_packages(db: AsyncSession = Depends(get_db)):
    return await TokenLedger(db).list_packages(active_only=True)


@router.get("/api/transactions/my", response_model=list[TransactionResponse])
async def my_transactions(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await TokenLedger(db).list_transactions(user.id)


@router.post("/api/finder/withdraw", response_model=WithdrawalResponse, status_code=201)
async def request_withdrawal(
    data: WithdrawalCreate,
    user: User = Depends(require_role("finder")),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await WithdrawalService(db).request_withdrawal(
            user, data.amount, data.payment_method, data.payment_details
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/api/finder/withdrawals", response_model=list[WithdrawalResponse])
async def my_withdrawals(
    user: User = Depends(require_role("finder")),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await WithdrawalService(db).list_for_finder(user)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
