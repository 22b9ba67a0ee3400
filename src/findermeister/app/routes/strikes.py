"""Strike system routes: offense catalog, issuance, restrictions, appeals."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.routes.auth import (
    get_authenticated_user_dep,
    get_current_user_dep,
    require_role,
)
from findermeister.domain.enums import DisputeStatus, TrainingStatus, UserRole
from findermeister.domain.models import User
from findermeister.domain.schemas import (
    BadgeCreate,
    BadgeResponse,
    CleanupResponse,
    ConsequenceResponse,
    DisputeCreate,
    DisputeResponse,
    DisputeUpdate,
    OffenseResponse,
    RestrictionResponse,
    StrikeCreate,
    StrikeIssueResponse,
    StrikeResponse,
    StrikeStatisticsResponse,
    TrainingResponse,
    TrainingUpdate,
    UserRestrictionsResponse,
)
from findermeister.infra.database import get_db
from findermeister.services.email_service import EmailService, get_email_service
from findermeister.services.errors import MarketplaceError
from findermeister.services.strike_service import (
    StrikeConsequence,
    StrikeService,
    get_offense_types,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["strikes"])

require_admin = require_role("admin")


def _consequence_view(consequence: StrikeConsequence | None) -> ConsequenceResponse | None:
    if consequence is None:
        return None
    return ConsequenceResponse(
        level=consequence.level,
        consequence=consequence.consequence,
        restriction_type=(
            consequence.restriction_type.value if consequence.restriction_type else None
        ),
        duration_days=consequence.duration_days,
    )


def _ensure_self_or_admin(user: User, user_id: str) -> None:
    if user.id != user_id and user.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=403, detail="Access denied")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@router.get("/api/offenses/{role}", response_model=list[OffenseResponse])
async def list_offenses(role: str, user: User = Depends(get_current_user_dep)):
    try:
        return [
            OffenseResponse(
                offense=o.offense, strike_level=o.strike_level, resolution=o.resolution
            )
            for o in get_offense_types(role)
        ]
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------


@router.post("/api/admin/strikes", response_model=StrikeIssueResponse, status_code=201)
async def issue_strike(
    data: StrikeCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    target = (await db.execute(select(User).where(User.id == data.user_id))).scalar_one_or_none()
    if not target:
        raise HTTPException(status_code=404, detail="User not found")

    service = StrikeService(db, email=email)
    try:
        outcome = await service.issue_strike_by_offense(
            user_id=target.id,
            offense_type=data.offense_type,
            evidence=data.evidence,
            issued_by=admin.id,
            user_role=target.role,
            context_id=data.context_id,
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if outcome.strike is None:
        return StrikeIssueResponse(
            consequence=_consequence_view(outcome.consequence),
            message="User is already at the maximum strike level",
        )
    return StrikeIssueResponse(
        strike=StrikeResponse.model_validate(outcome.strike),
        consequence=_consequence_view(outcome.consequence),
        next_level=_consequence_view(outcome.next_level),
        restriction=(
            RestrictionResponse.model_validate(outcome.restriction)
            if outcome.restriction
            else None
        ),
        training=(
            TrainingResponse.model_validate(outcome.training) if outcome.training else None
        ),
    )


# ---------------------------------------------------------------------------
# Per-user views
# ---------------------------------------------------------------------------


@router.get("/api/users/{user_id}/strikes", response_model=list[StrikeResponse])
async def get_user_strikes(
    user_id: str,
    user: User = Depends(get_authenticated_user_dep),
    db: AsyncSession = Depends(get_db),
):
    _ensure_self_or_admin(user, user_id)
    return await StrikeService(db).get_user_strikes(user_id)


@router.get("/api/users/{user_id}/restrictions", response_model=UserRestrictionsResponse)
async def get_user_restrictions(
    user_id: str,
    user: User = Depends(get_authenticated_user_dep),
    db: AsyncSession = Depends(get_db),
):
    _ensure_self_or_admin(user, user_id)
    summary = await StrikeService(db).get_user_restrictions(user_id)
    return UserRestrictionsResponse(
        restrictions=[RestrictionResponse.model_validate(r) for r in summary.restrictions],
        active_strikes=[StrikeResponse.model_validate(s) for s in summary.active_strikes],
        strike_level=summary.strike_level,
        can_post=summary.can_post,
        can_apply=summary.can_apply,
        can_message=summary.can_message,
        is_suspended=summary.is_suspended,
        is_banned=summary.is_banned,
    )


@router.post("/api/admin/restrictions/{restriction_id}/lift", response_model=RestrictionResponse)
async def lift_restriction(
    restriction_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await StrikeService(db).lift_restriction(restriction_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/api/training/{training_id}", response_model=TrainingResponse)
async def update_training(
    training_id: str,
    data: TrainingUpdate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await StrikeService(db).update_training_status(
            training_id, user, TrainingStatus(data.status)
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ---------------------------------------------------------------------------
# Appeals
# ---------------------------------------------------------------------------


@router.post("/api/disputes", response_model=DisputeResponse, status_code=201)
async def submit_dispute(
    data: DisputeCreate,
    user: User = Depends(get_authenticated_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await StrikeService(db).submit_dispute(
            user.id, data.strike_id, data.description, data.evidence
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/api/admin/disputes", response_model=list[DisputeResponse])
async def list_disputes(
    status: str | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await StrikeService(db).list_disputes(status)


@router.put("/api/admin/disputes/{dispute_id}", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: str,
    data: DisputeUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await StrikeService(db).resolve_dispute(
            dispute_id, DisputeStatus(data.status), data.resolution, admin.id
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ---------------------------------------------------------------------------
# Badges, statistics, maintenance
# ---------------------------------------------------------------------------


@router.post("/api/admin/badges", response_model=BadgeResponse, status_code=201)
async def award_badge(
    data: BadgeCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await StrikeService(db).award_trusted_badge(data.user_id, data.badge_type)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/api/admin/strike-statistics", response_model=StrikeStatisticsResponse)
async def strike_statistics(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await StrikeService(db).get_strike_statistics()


@router.post("/api/admin/strikes/cleanup", response_model=CleanupResponse)
async def cleanup_strikes(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await StrikeService(db).cleanup_expired_data()
    logger.info("Manual strike cleanup by admin %s: %s", admin.id, result)
    return result
