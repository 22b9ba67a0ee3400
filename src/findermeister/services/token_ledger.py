"""Findertoken ledger: balances, grants, charges and monthly distribution.

``finders.token_balance`` is the canonical balance. Every change to it is
paired with a ``Transaction`` row in the same unit of work, and debits use a
conditional UPDATE so two concurrent proposals can never overdraw.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.config import get_settings
from findermeister.domain.enums import TransactionType
from findermeister.domain.models import (
    AdminSetting,
    Finder,
    MonthlyTokenDistribution,
    TokenCharge,
    TokenGrant,
    TokenPackage,
    Transaction,
    utcnow,
)
from findermeister.services.errors import (
    InsufficientTokensError,
    NotFoundError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

PROPOSAL_TOKEN_COST_KEY = "proposal_token_cost"


class TokenLedger:
    """Reads and moves findertokens. Callers own the commit."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Balance movements
    # ------------------------------------------------------------------

    async def get_finder(self, finder_id: str) -> Finder:
        result = await self.db.execute(select(Finder).where(Finder.id == finder_id))
        finder = result.scalar_one_or_none()
        if not finder:
            raise NotFoundError("Finder not found")
        return finder

    async def get_balance(self, finder: Finder) -> int:
        result = await self.db.execute(
            select(Finder.token_balance).where(Finder.id == finder.id)
        )
        return result.scalar_one()

    async def debit(
        self,
        finder: Finder,
        amount: int,
        tx_type: TransactionType,
        description: str,
        reference: str | None = None,
        error_message: str | None = None,
    ) -> Transaction:
        """Take ``amount`` tokens if, and only if, the balance covers it."""
        result = await self.db.execute(
            update(Finder)
            .where(Finder.id == finder.id, Finder.token_balance >= amount)
            .values(token_balance=Finder.token_balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if error_message:
                raise InsufficientTokensError(error_message)
            raise InsufficientTokensError()
        await self.db.refresh(finder, ["token_balance"])
        return self._record(finder, -amount, tx_type, description, reference)

    async def credit(
        self,
        finder: Finder,
        amount: int,
        tx_type: TransactionType,
        description: str,
        reference: str | None = None,
    ) -> Transaction:
        await self.db.execute(
            update(Finder)
            .where(Finder.id == finder.id)
            .values(token_balance=Finder.token_balance + amount)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(finder, ["token_balance"])
        return self._record(finder, amount, tx_type, description, reference)

    def _record(
        self,
        finder: Finder,
        amount: int,
        tx_type: TransactionType,
        description: str,
        reference: str | None,
    ) -> Transaction:
        tx = Transaction(
            user_id=finder.user_id,
            finder_id=finder.id,
            amount=amount,
            type=tx_type.value,
            description=description,
            reference=reference,
        )
        self.db.add(tx)
        return tx

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def grant_tokens(
        self, finder_id: str, amount: int, reason: str, admin_id: str
    ) -> TokenGrant:
        if amount <= 0:
            raise ValidationFailedError("Grant amount must be positive")
        finder = await self.get_finder(finder_id)
        grant = TokenGrant(finder_id=finder.id, amount=amount, reason=reason, granted_by=admin_id)
        self.db.add(grant)
        await self.credit(finder, amount, TransactionType.GRANT, f"Admin grant: {reason}")
        await self.db.commit()
        await self.db.refresh(grant)
        logger.info("Granted %d tokens to finder %s (admin=%s)", amount, finder.id, admin_id)
        return grant

    async def charge_tokens(
        self, finder_id: str, amount: int, reason: str, admin_id: str
    ) -> TokenCharge:
        if amount <= 0:
            raise ValidationFailedError("Charge amount must be positive")
        finder = await self.get_finder(finder_id)
        await self.debit(
            finder,
            amount,
            TransactionType.CHARGE,
            f"Admin charge: {reason}",
            error_message="Finder does not have enough findertokens",
        )
        charge = TokenCharge(finder_id=finder.id, amount=amount, reason=reason, charged_by=admin_id)
        self.db.add(charge)
        await self.db.commit()
        await self.db.refresh(charge)
        logger.info("Charged %d tokens from finder %s (admin=%s)", amount, finder.id, admin_id)
        return charge

    async def distribute_monthly_tokens(self, now: datetime | None = None) -> dict:
        """Credit this month's free tokens to every finder that has not had them.

        Safe to call repeatedly; the (finder, month, year) unique row is the
        idempotency key.
        """
        now = now or utcnow()
        amount = self.settings.monthly_token_amount

        already = await self.db.execute(
            select(MonthlyTokenDistribution.finder_id).where(
                MonthlyTokenDistribution.month == now.month,
                MonthlyTokenDistribution.year == now.year,
            )
        )
        done_ids = set(already.scalars().all())

        finders = (await self.db.execute(select(Finder))).scalars().all()
        distributed = 0
        for finder in finders:
            if finder.id in done_ids:
                continue
            self.db.add(
                MonthlyTokenDistribution(
                    finder_id=finder.id, month=now.month, year=now.year, amount=amount
                )
            )
            await self.credit(
                finder,
                amount,
                TransactionType.MONTHLY_DISTRIBUTION,
                f"Monthly token distribution {now.year}-{now.month:02d}",
            )
            distributed += 1

        await self.db.commit()
        logger.info(
            "Monthly distribution %d-%02d: %d distributed, %d already had tokens",
            now.year, now.month, distributed, len(done_ids),
        )
        return {"distributed": distributed, "already_distributed": len(done_ids)}

    # ------------------------------------------------------------------
    # Settings / queries
    # ------------------------------------------------------------------

    async def get_proposal_token_cost(self) -> int:
        result = await self.db.execute(
            select(AdminSetting.value).where(AdminSetting.key == PROPOSAL_TOKEN_COST_KEY)
        )
        value = result.scalar_one_or_none()
        if value is None:
            return self.settings.default_proposal_token_cost
        return int(value)

    async def set_proposal_token_cost(self, cost: int) -> int:
        if cost < 0:
            raise ValidationFailedError("Proposal token cost cannot be negative")
        result = await self.db.execute(
            select(AdminSetting).where(AdminSetting.key == PROPOSAL_TOKEN_COST_KEY)
        )
        setting = result.scalar_one_or_none()
        if setting:
            setting.value = str(cost)
        else:
            self.db.add(AdminSetting(key=PROPOSAL_TOKEN_COST_KEY, value=str(cost)))
        await self.db.commit()
        return cost

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_grants(self) -> list[TokenGrant]:
        result = await self.db.execute(select(TokenGrant).order_by(TokenGrant.created_at.desc()))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Token packages
    # ------------------------------------------------------------------

    async def list_packages(self, active_only: bool = False) -> list[TokenPackage]:
        query = select(TokenPackage).order_by(TokenPackage.price)
        if active_only:
            query = query.where(TokenPackage.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_package(self, **fields) -> TokenPackage:
        package = TokenPackage(**fields)
        self.db.add(package)
        await self.db.commit()
        await self.db.refresh(package)
        return package

    async def update_package(self, package_id: str, **fields) -> TokenPackage:
        result = await self.db.execute(select(TokenPackage).where(TokenPackage.id == package_id))
        package = result.scalar_one_or_none()
        if not package:
            raise NotFoundError("Token package not found")
        for key, value in fields.items():
            setattr(package, key, value)
        await self.db.commit()
        await self.db.refresh(package)
        return package
