"""Strike system: offense catalog, escalating consequences, appeals.

Strike levels escalate per user: each new strike is recorded one level above
the user's count of active strikes, capped at 4 (permanent ban). The
offense catalog's level is a floor for the consequence applied, so a first
"Impersonation" still bans while a first "Repeated no-shows" restricts.

Consequences by level:

    1  Warning                no restriction
    2  System Restrictions    limited_features for 7 days, communication training
    3  Temporary Suspension   suspended for 30 days, reliability training
    4  Permanent Ban          banned, no end date, User.is_banned set

Expired strikes and restrictions are swept by ``cleanup_expired_data`` (run
from the maintenance loop) and lazily whenever a user's restrictions are read.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.domain.enums import (
    DisputeStatus,
    DisputeType,
    RestrictionType,
    StrikeStatus,
    TrainingModule,
    TrainingStatus,
    UserRole,
)
from findermeister.domain.models import (
    BehavioralTraining,
    Dispute,
    Strike,
    TrustedBadge,
    User,
    UserRestriction,
    utcnow,
)
from findermeister.services.errors import (
    ConflictError,
    InvalidOffenseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

STRIKE_EXPIRY_DAYS = 90
BADGE_CLEAN_WINDOW_DAYS = 90
RECENT_STRIKE_WINDOW_DAYS = 30
MAX_STRIKE_LEVEL = 4


@dataclass(frozen=True)
class OffenseDefinition:
    offense: str
    strike_level: int
    resolution: str


@dataclass(frozen=True)
class StrikeConsequence:
    level: int
    consequence: str
    restriction_type: RestrictionType | None
    duration_days: int | None


CLIENT_OFFENSES: list[OffenseDefinition] = [
    OffenseDefinition("No-show or ghosting after find match", 1, "Warning + auto-removal of find"),
    OffenseDefinition("Fake or malicious find", 2, "Review + block posting for 7 days"),
    OffenseDefinition("Low review average", 2, "7-day review & education period"),
    OffenseDefinition("Refusing payment after confirmed find", 3, "Escrow payout to Finder + 30-day ban"),
    OffenseDefinition("Abuse or harassment of Finders", 3, "Investigation by support team"),
]

FINDER_OFFENSES: list[OffenseDefinition] = [
    OffenseDefinition("Repeated no-shows", 2, "Limited applications for 7 days"),
    OffenseDefinition("Toxic communication", 2, "Temporarily muted + counseling module"),
    OffenseDefinition("Lying about completion", 3, "Possible platform removal"),
    OffenseDefinition("Uploading fake proof", 3, "Escalated to ban on third offense"),
    OffenseDefinition("Impersonation", 4, "Immediate permanent ban"),
    OffenseDefinition("Offering banned/illegal items", 4, "Blacklist + report to authorities"),
]

OFFENSE_CATALOG: dict[str, list[OffenseDefinition]] = {
    UserRole.CLIENT.value: CLIENT_OFFENSES,
    UserRole.FINDER.value: FINDER_OFFENSES,
}

STRIKE_LEVELS: dict[int, StrikeConsequence] = {
    1: StrikeConsequence(1, "Warning", None, None),
    2: StrikeConsequence(2, "System Restrictions", RestrictionType.LIMITED_FEATURES, 7),
    3: StrikeConsequence(3, "Temporary Suspension", RestrictionType.SUSPENDED, 30),
    4: StrikeConsequence(4, "Permanent Ban", RestrictionType.BANNED, None),
}

TRAINING_BY_LEVEL: dict[int, TrainingModule] = {
    2: TrainingModule.COMMUNICATION,
    3: TrainingModule.RELIABILITY,
}

# Restriction types that block each capability
_POST_BLOCKERS = {RestrictionType.POSTING, RestrictionType.SUSPENDED, RestrictionType.BANNED}
_APPLY_BLOCKERS = {RestrictionType.APPLICATIONS, RestrictionType.SUSPENDED, RestrictionType.BANNED}
_MESSAGE_BLOCKERS = {RestrictionType.MESSAGING, RestrictionType.SUSPENDED, RestrictionType.BANNED}


@dataclass
class StrikeOutcome:
    """Result of an issuance. ``strike`` is None when the user was already maxed out."""

    strike: Strike | None
    consequence: StrikeConsequence
    next_level: StrikeConsequence | None
    restriction: UserRestriction | None = None
    training: BehavioralTraining | None = None


@dataclass
class RestrictionSummary:
    restrictions: list[UserRestriction] = field(default_factory=list)
    active_strikes: list[Strike] = field(default_factory=list)
    strike_level: int = 0
    can_post: bool = True
    can_apply: bool = True
    can_message: bool = True
    is_suspended: bool = False
    is_banned: bool = False


def find_offense(offense_type: str, role: str) -> OffenseDefinition | None:
    for offense in OFFENSE_CATALOG.get(role, []):
        if offense.offense == offense_type:
            return offense
    return None


def get_offense_types(role: str) -> list[OffenseDefinition]:
    if role not in OFFENSE_CATALOG:
        raise ValidationFailedError(f'Invalid role "{role}"')
    return list(OFFENSE_CATALOG[role])


class StrikeService:
    """Issues strikes and answers "what may this user do right now"."""

    def __init__(self, db: AsyncSession, email=None):
        self.db = db
        self.email = email

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def issue_strike_by_offense(
        self,
        user_id: str,
        offense_type: str,
        evidence: str | None,
        issued_by: str,
        user_role: str,
        context_id: str | None = None,
        now: datetime | None = None,
    ) -> StrikeOutcome:
        offense = find_offense(offense_type, user_role)
        if offense is None:
            raise InvalidOffenseError(offense_type, user_role)

        now = now or utcnow()
        # Serialises concurrent issuance for the same user on backends with row locks
        result = await self.db.execute(select(User).where(User.id == user_id).with_for_update())
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User not found")

        active_count = await self.get_active_strikes_count(user_id)
        if active_count >= MAX_STRIKE_LEVEL:
            logger.warning(
                "User %s already at strike level %d; ignoring offense %r",
                user_id, MAX_STRIKE_LEVEL, offense_type,
            )
            return StrikeOutcome(
                strike=None,
                consequence=STRIKE_LEVELS[MAX_STRIKE_LEVEL],
                next_level=None,
            )

        level = active_count + 1
        applied_level = max(level, offense.strike_level)
        consequence = STRIKE_LEVELS[applied_level]

        strike = Strike(
            user_id=user_id,
            strike_level=level,
            offense=offense.offense,
            offense_type=offense_type,
            evidence=evidence,
            context_id=context_id,
            issued_by=issued_by,
            status=StrikeStatus.ACTIVE.value,
            expires_at=now + timedelta(days=STRIKE_EXPIRY_DAYS),
            created_at=now,
        )
        self.db.add(strike)
        await self.db.flush()

        restriction = None
        if consequence.restriction_type is not None:
            end_date = None
            if consequence.duration_days is not None:
                end_date = now + timedelta(days=consequence.duration_days)
            restriction = UserRestriction(
                user_id=user_id,
                strike_id=strike.id,
                restriction_type=consequence.restriction_type.value,
                reason=f"Strike Level {applied_level}: {offense.resolution}",
                start_date=now,
                end_date=end_date,
                is_active=True,
                created_by=issued_by,
            )
            self.db.add(restriction)

        if applied_level == MAX_STRIKE_LEVEL:
            user.is_banned = True
            user.banned_reason = f"Permanent ban: {offense.offense}"
            user.banned_at = now

        training = None
        module = TRAINING_BY_LEVEL.get(applied_level)
        if module is not None:
            training = await self.assign_training(user_id, strike.id, module, now=now)

        await self.db.commit()
        await self.db.refresh(strike)
        logger.info(
            "Strike issued: user=%s level=%d applied=%d offense=%r by=%s",
            user_id, level, applied_level, offense.offense, issued_by,
        )
        if applied_level == MAX_STRIKE_LEVEL:
            logger.warning("User %s permanently banned after strike %s", user_id, strike.id)

        if self.email is not None:
            await self.email.notify_strike_issued(
                user.email, applied_level, offense.offense, consequence.consequence
            )

        return StrikeOutcome(
            strike=strike,
            consequence=consequence,
            next_level=STRIKE_LEVELS.get(level + 1),
            restriction=restriction,
            training=training,
        )

    async def assign_training(
        self,
        user_id: str,
        strike_id: str | None,
        module_type: TrainingModule,
        now: datetime | None = None,
    ) -> BehavioralTraining:
        """Queue a training module. Caller commits."""
        training = BehavioralTraining(
            user_id=user_id,
            strike_id=strike_id,
            module_type=module_type.value,
            status=TrainingStatus.ASSIGNED.value,
            assigned_at=now or utcnow(),
        )
        self.db.add(training)
        return training

    async def update_training_status(
        self, training_id: str, user: User, status: TrainingStatus
    ) -> BehavioralTraining:
        result = await self.db.execute(
            select(BehavioralTraining).where(BehavioralTraining.id == training_id)
        )
        training = result.scalar_one_or_none()
        if not training:
            raise NotFoundError("Training not found")
        if training.user_id != user.id:
            raise PermissionDeniedError()
        if training.status == TrainingStatus.COMPLETED.value:
            raise ConflictError("Training already completed")
        training.status = status.value
        if status == TrainingStatus.COMPLETED:
            training.completed_at = utcnow()
        await self.db.commit()
        await self.db.refresh(training)
        return training

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_user_strikes(self, user_id: str) -> list[Strike]:
        result = await self.db.execute(
            select(Strike).where(Strike.user_id == user_id).order_by(Strike.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_active_strikes_count(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(Strike.id)).where(
                Strike.user_id == user_id,
                Strike.status == StrikeStatus.ACTIVE.value,
            )
        )
        return result.scalar_one()

    async def get_user_strike_level(self, user_id: str) -> int:
        return min(await self.get_active_strikes_count(user_id), MAX_STRIKE_LEVEL)

    async def get_user_restrictions(
        self, user_id: str, now: datetime | None = None
    ) -> RestrictionSummary:
        """Aggregate what a user may currently do, expiring stale rows first."""
        now = now or utcnow()
        await self._expire_for_user(user_id, now)

        restrictions = (
            await self.db.execute(
                select(UserRestriction).where(
                    UserRestriction.user_id == user_id,
                    UserRestriction.is_active.is_(True),
                )
            )
        ).scalars().all()
        strikes = (
            await self.db.execute(
                select(Strike)
                .where(Strike.user_id == user_id, Strike.status == StrikeStatus.ACTIVE.value)
                .order_by(Strike.created_at.desc())
            )
        ).scalars().all()
        user = (await self.db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()

        types = {RestrictionType(r.restriction_type) for r in restrictions}
        is_banned = RestrictionType.BANNED in types or bool(user and user.is_banned)
        return RestrictionSummary(
            restrictions=list(restrictions),
            active_strikes=list(strikes),
            strike_level=min(len(strikes), MAX_STRIKE_LEVEL),
            can_post=not (types & _POST_BLOCKERS) and not is_banned,
            can_apply=not (types & _APPLY_BLOCKERS) and not is_banned,
            can_message=not (types & _MESSAGE_BLOCKERS) and not is_banned,
            is_suspended=RestrictionType.SUSPENDED in types,
            is_banned=is_banned,
        )

    async def lift_restriction(self, restriction_id: str) -> UserRestriction:
        result = await self.db.execute(
            select(UserRestriction).where(UserRestriction.id == restriction_id)
        )
        restriction = result.scalar_one_or_none()
        if not restriction:
            raise NotFoundError("Restriction not found")
        restriction.is_active = False
        await self._clear_ban_if_lifted(restriction)
        await self.db.commit()
        await self.db.refresh(restriction)
        logger.info("Restriction %s lifted for user %s", restriction.id, restriction.user_id)
        return restriction

    async def _clear_ban_if_lifted(self, restriction: UserRestriction) -> None:
        """Clear ``User.is_banned`` once no active ``banned`` restriction is left.

        Admin bans carry a restriction row too, so a lifted strike ban never
        undoes a separate admin ban.
        """
        if restriction.restriction_type != RestrictionType.BANNED.value:
            return
        remaining = await self.db.execute(
            select(UserRestriction.id).where(
                UserRestriction.user_id == restriction.user_id,
                UserRestriction.restriction_type == RestrictionType.BANNED.value,
                UserRestriction.is_active.is_(True),
                UserRestriction.id != restriction.id,
            )
        )
        if remaining.first() is not None:
            logger.info(
                "Restriction %s lifted but user %s is still banned",
                restriction.id, restriction.user_id,
            )
            return
        user = (
            await self.db.execute(select(User).where(User.id == restriction.user_id))
        ).scalar_one_or_none()
        if user and user.is_banned:
            user.is_banned = False
            user.banned_reason = None
            user.banned_at = None

    # ------------------------------------------------------------------
    # Appeals
    # ------------------------------------------------------------------

    async def submit_dispute(
        self,
        user_id: str,
        strike_id: str,
        description: str,
        evidence: str | None = None,
    ) -> Dispute:
        result = await self.db.execute(select(Strike).where(Strike.id == strike_id))
        strike = result.scalar_one_or_none()
        if not strike:
            raise NotFoundError("Strike not found")
        if strike.user_id != user_id:
            raise PermissionDeniedError()
        if strike.status != StrikeStatus.ACTIVE.value:
            raise ConflictError("Only active strikes can be appealed")

        now = utcnow()
        dispute = Dispute(
            user_id=user_id,
            type=DisputeType.STRIKE_APPEAL.value,
            strike_id=strike.id,
            description=description,
            evidence=evidence,
            status=DisputeStatus.PENDING.value,
            submitted_at=now,
        )
        self.db.add(dispute)
        strike.status = StrikeStatus.APPEALED.value
        strike.appeal_reason = description
        strike.appealed_at = now
        await self.db.commit()
        await self.db.refresh(dispute)
        logger.info("Strike %s appealed by user %s (dispute %s)", strike.id, user_id, dispute.id)
        return dispute

    async def list_disputes(self, status: str | None = None) -> list[Dispute]:
        query = select(Dispute).order_by(Dispute.submitted_at.desc())
        if status:
            query = query.where(Dispute.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def resolve_dispute(
        self,
        dispute_id: str,
        status: DisputeStatus,
        resolution: str | None,
        admin_id: str,
    ) -> Dispute:
        """Move a dispute forward. Upholding an appeal lifts what the strike caused."""
        result = await self.db.execute(select(Dispute).where(Dispute.id == dispute_id))
        dispute = result.scalar_one_or_none()
        if not dispute:
            raise NotFoundError("Dispute not found")
        if dispute.status in (DisputeStatus.RESOLVED.value, DisputeStatus.REJECTED.value):
            raise ConflictError("Dispute already closed")

        now = utcnow()
        dispute.status = status.value
        dispute.resolution = resolution
        if status in (DisputeStatus.RESOLVED, DisputeStatus.REJECTED):
            dispute.resolved_by = admin_id
            dispute.resolved_at = now

        strike = None
        if dispute.strike_id:
            strike = (
                await self.db.execute(select(Strike).where(Strike.id == dispute.strike_id))
            ).scalar_one_or_none()

        if strike is not None and status == DisputeStatus.RESOLVED:
            strike.status = StrikeStatus.RESOLVED.value
            strike.reviewed_by = admin_id
            strike.reviewed_at = now
            restrictions = (
                await self.db.execute(
                    select(UserRestriction).where(
                        UserRestriction.strike_id == strike.id,
                        UserRestriction.is_active.is_(True),
                    )
                )
            ).scalars().all()
            for restriction in restrictions:
                restriction.is_active = False
                await self._clear_ban_if_lifted(restriction)
        elif strike is not None and status == DisputeStatus.REJECTED:
            if strike.status == StrikeStatus.APPEALED.value:
                strike.status = StrikeStatus.ACTIVE.value
            strike.reviewed_by = admin_id
            strike.reviewed_at = now

        await self.db.commit()
        await self.db.refresh(dispute)
        logger.info("Dispute %s -> %s (admin=%s)", dispute.id, status.value, admin_id)
        return dispute

    # ------------------------------------------------------------------
    # Badges / stats
    # ------------------------------------------------------------------

    async def award_trusted_badge(
        self, user_id: str, badge_type: str, now: datetime | None = None
    ) -> TrustedBadge:
        now = now or utcnow()
        user = (await self.db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        if not user:
            raise NotFoundError("User not found")

        since = now - timedelta(days=BADGE_CLEAN_WINDOW_DAYS)
        recent = await self.db.execute(
            select(func.count(Strike.id)).where(
                Strike.user_id == user_id,
                Strike.created_at >= since,
            )
        )
        if recent.scalar_one() > 0:
            raise ConflictError("User has strikes within the last 90 days")

        badge = TrustedBadge(user_id=user_id, badge_type=badge_type, is_active=True, awarded_at=now)
        self.db.add(badge)
        await self.db.commit()
        await self.db.refresh(badge)
        logger.info("Trusted badge %r awarded to user %s", badge_type, user_id)
        return badge

    async def get_strike_statistics(self, now: datetime | None = None) -> dict:
        now = now or utcnow()
        total_users = (await self.db.execute(select(func.count(User.id)))).scalar_one()

        per_user = (
            await self.db.execute(
                select(Strike.user_id, func.count(Strike.id))
                .where(Strike.status == StrikeStatus.ACTIVE.value)
                .group_by(Strike.user_id)
            )
        ).all()
        breakdown = {str(level): 0 for level in range(1, MAX_STRIKE_LEVEL + 1)}
        for _, count in per_user:
            breakdown[str(min(count, MAX_STRIKE_LEVEL))] += 1

        recent = (
            await self.db.execute(
                select(func.count(Strike.id)).where(
                    Strike.created_at >= now - timedelta(days=RECENT_STRIKE_WINDOW_DAYS)
                )
            )
        ).scalar_one()
        in_review = (
            await self.db.execute(
                select(func.count(Dispute.id)).where(
                    Dispute.status.in_(
                        [DisputeStatus.PENDING.value, DisputeStatus.INVESTIGATING.value]
                    )
                )
            )
        ).scalar_one()

        return {
            "total_users": total_users,
            "users_with_active_strikes": len(per_user),
            "strike_level_breakdown": breakdown,
            "recent_strikes": recent,
            "disputes_in_review": in_review,
        }

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    async def cleanup_expired_data(self, now: datetime | None = None) -> dict:
        """Expire strikes past ``expires_at`` and restrictions past ``end_date``."""
        now = now or utcnow()
        strikes = await self.db.execute(
            update(Strike)
            .where(Strike.status == StrikeStatus.ACTIVE.value, Strike.expires_at <= now)
            .values(status=StrikeStatus.EXPIRED.value)
        )
        restrictions = await self.db.execute(
            update(UserRestriction)
            .where(
                UserRestriction.is_active.is_(True),
                UserRestriction.end_date.is_not(None),
                UserRestriction.end_date <= now,
            )
            .values(is_active=False)
        )
        await self.db.commit()
        counts = {
            "strikes_expired": strikes.rowcount,
            "restrictions_deactivated": restrictions.rowcount,
        }
        if any(counts.values()):
            logger.info("Strike cleanup: %s", counts)
        return counts

    async def _expire_for_user(self, user_id: str, now: datetime) -> None:
        strikes = await self.db.execute(
            update(Strike)
            .where(
                Strike.user_id == user_id,
                Strike.status == StrikeStatus.ACTIVE.value,
                Strike.expires_at <= now,
            )
            .values(status=StrikeStatus.EXPIRED.value)
        )
        restrictions = await self.db.execute(
            update(UserRestriction)
            .where(
                UserRestriction.user_id == user_id,
                UserRestriction.is_active.is_(True),
                UserRestriction.end_date.is_not(None),
                UserRestriction.end_date <= now,
            )
            .values(is_active=False)
        )
        if strikes.rowcount or restrictions.rowcount:
            await self.db.commit()
