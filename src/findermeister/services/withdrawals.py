"""Finder payout requests against the available balance.

Requested funds are held by debiting ``available_balance`` immediately;
a rejected request puts them back.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.domain.enums import WithdrawalStatus
from findermeister.domain.models import Finder, User, WithdrawalRequest, utcnow
from findermeister.services.errors import ConflictError, NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)

_CLOSED = {WithdrawalStatus.APPROVED.value, WithdrawalStatus.REJECTED.value}


class WithdrawalService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _finder_for(self, user: User) -> Finder:
        result = await self.db.execute(select(Finder).where(Finder.user_id == user.id))
        finder = result.scalar_one_or_none()
        if not finder:
            raise NotFoundError("Finder profile not found")
        return finder

    async def request_withdrawal(
        self,
        finder_user: User,
        amount: float,
        payment_method: str,
        payment_details: dict | None = None,
    ) -> WithdrawalRequest:
        if amount <= 0:
            raise ValidationFailedError("Withdrawal amount must be positive")
        finder = await self._finder_for(finder_user)

        held = await self.db.execute(
            update(Finder)
            .where(Finder.id == finder.id, Finder.available_balance >= amount)
            .values(available_balance=Finder.available_balance - amount)
            .execution_options(synchronize_session=False)
        )
        if held.rowcount == 0:
            raise ConflictError("Insufficient balance")

        withdrawal = WithdrawalRequest(
            finder_id=finder.id,
            amount=amount,
            payment_method=payment_method,
            payment_details=payment_details or {},
            status=WithdrawalStatus.PENDING.value,
        )
        self.db.add(withdrawal)
        await self.db.commit()
        await self.db.refresh(withdrawal)
        await self.db.refresh(finder)
        logger.info("Withdrawal %s requested by finder %s: %s", withdrawal.id, finder.id, amount)
        return withdrawal

    async def list_for_finder(self, finder_user: User) -> list[WithdrawalRequest]:
        finder = await self._finder_for(finder_user)
        result = await self.db.execute(
            select(WithdrawalRequest)
            .where(WithdrawalRequest.finder_id == finder.id)
            .order_by(WithdrawalRequest.requested_at.desc())
        )
        return list(result.scalars().all())

    async def list_all(self) -> list[WithdrawalRequest]:
        result = await self.db.execute(
            select(WithdrawalRequest).order_by(WithdrawalRequest.requested_at.desc())
        )
        return list(result.scalars().all())

    async def update_withdrawal(
        self,
        withdrawal_id: str,
        status: WithdrawalStatus,
        admin_notes: str | None,
        admin: User,
    ) -> WithdrawalRequest:
        result = await self.db.execute(
            select(WithdrawalRequest).where(WithdrawalRequest.id == withdrawal_id)
        )
        withdrawal = result.scalar_one_or_none()
        if not withdrawal:
            raise NotFoundError("Withdrawal request not found")
        if withdrawal.status in _CLOSED:
            raise ConflictError(f"Withdrawal request is already {withdrawal.status}")

        withdrawal.status = status.value
        withdrawal.admin_notes = admin_notes
        withdrawal.processed_by = admin.id
        withdrawal.processed_at = utcnow()

        if status == WithdrawalStatus.REJECTED:
            await self.db.execute(
                update(Finder)
                .where(Finder.id == withdrawal.finder_id)
                .values(available_balance=Finder.available_balance + withdrawal.amount)
            )

        await self.db.commit()
        await self.db.refresh(withdrawal)
        logger.info("Withdrawal %s -> %s (admin=%s)", withdrawal.id, status.value, admin.id)
        return withdrawal
