"""Maintenance cron endpoint, for an external scheduler in multi-instance deploys."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.config import get_settings
from findermeister.infra.database import get_db
from findermeister.services.email_service import EmailService, get_email_service
from findermeister.services.maintenance import MaintenanceScheduler

logger = logging.getLogger(__name__)


async def verify_internal_token(x_internal_token: str = Header(...)):
    """Verify that the request includes a valid internal auth token."""
    settings = get_settings()
    if x_internal_token != settings.internal_token:
        raise HTTPException(status_code=401, detail="Invalid internal token")


router = APIRouter(
    prefix="/api/internal/scheduler",
    tags=["scheduler"],
    dependencies=[Depends(verify_internal_token)],
)


@router.post("/tick")
async def maintenance_tick(
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    """Expire strikes and restrictions, auto-release overdue escrow."""
    results = await MaintenanceScheduler(db, email=email).tick()
    logger.info("Maintenance tick: %s", results)
    return {"ok": True, "results": results}
