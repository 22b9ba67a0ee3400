"""Maintenance scheduler: periodic jobs for strikes and escrow.

Runs from the app lifespan loop and from the internal cron endpoint.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.services.contract_lifecycle import ContractLifecycleService
from findermeister.services.strike_service import StrikeService

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """Runs periodic maintenance tasks."""

    def __init__(self, db: AsyncSession, email=None):
        self.db = db
        self.email = email

    async def tick(self, now: datetime | None = None) -> dict:
        """Run all scheduled tasks. Returns summary of actions taken."""
        results = {}

        # 1. Expire strikes / lift timed restrictions
        try:
            cleanup = await StrikeService(self.db).cleanup_expired_data(now=now)
            results.update(cleanup)
        except Exception as e:
            await self.db.rollback()
            logger.error("cleanup_expired_data failed: %s", e)
            results["cleanup_error"] = str(e)

        # 2. Release escrow whose review window has passed
        try:
            lifecycle = ContractLifecycleService(self.db, email=self.email)
            results["contracts_auto_released"] = await lifecycle.auto_release_due(now=now)
        except Exception as e:
            await self.db.rollback()
            logger.error("auto_release_due failed: %s", e)
            results["auto_release_error"] = str(e)

        return results
