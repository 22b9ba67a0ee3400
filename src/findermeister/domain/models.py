"""SQLAlchemy ORM models for the FinderMeister marketplace.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps, stored as naive UTC
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from findermeister.infra.database import Base


def utcnow() -> datetime:
    """Naive UTC now, matching how SQLite hands timestamps back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


def _money(**kwargs) -> Column:
    return Column(Numeric(12, 2, asdecimal=False), **kwargs)


# ---------------------------------------------------------------------------
# Users / finders
# ---------------------------------------------------------------------------


class User(Base):
    """Platform account: client, finder or admin."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="client")  # client, finder, admin
    is_verified = Column(Boolean, default=False, nullable=False)
    is_banned = Column(Boolean, default=False, nullable=False)
    banned_reason = Column(Text, nullable=True)
    banned_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class FinderLevel(Base):
    """Tier a finder reaches through earnings, jobs and review score."""

    __tablename__ = "finder_levels"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    min_earned = _money(default=0, nullable=False)
    min_jobs = Column(Integer, default=0, nullable=False)
    min_review_percentage = Column(Integer, default=0, nullable=False)
    icon = Column(String(50), nullable=True)
    color = Column(String(20), nullable=True)
    order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Finder(Base):
    """Finder profile: earnings, rating, level and the token balance.

    ``token_balance`` is the only store of a finder's tokens; the
    ``transactions`` table is its audit log.
    """

    __tablename__ = "finders"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    bio = Column(Text, nullable=True)
    skills = Column(JSON, default=list)
    hourly_rate = _money(nullable=True)
    jobs_completed = Column(Integer, default=0, nullable=False)
    total_earned = _money(default=0, nullable=False)
    available_balance = _money(default=0, nullable=False)
    average_rating = Column(Numeric(3, 2, asdecimal=False), default=0, nullable=False)
    current_level_id = Column(String(36), ForeignKey("finder_levels.id"), nullable=True)
    token_balance = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)


# ---------------------------------------------------------------------------
# Finds / proposals / contracts
# ---------------------------------------------------------------------------


class Category(Base):
    """Admin-curated find category."""

    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Find(Base):
    """A client's request for a finder to fulfil."""

    __tablename__ = "finds"

    id = Column(String(36), primary_key=True, default=_uuid)
    client_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False)
    budget_min = _money(nullable=True)
    budget_max = _money(nullable=True)
    timeframe = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="open", index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Proposal(Base):
    """A finder's bid on a find. One per (finder, find)."""

    __tablename__ = "proposals"
    __table_args__ = (UniqueConstraint("finder_id", "find_id", name="uq_proposal_finder_find"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    find_id = Column(String(36), ForeignKey("finds.id"), nullable=False, index=True)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=False, index=True)
    approach = Column(Text, nullable=False)
    price = _money(nullable=False)
    timeline = Column(String(100), nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime, default=utcnow)


class Contract(Base):
    """Escrow-backed agreement created when a proposal is accepted.

    ``find_id`` and ``proposal_id`` are unique: a find can carry at most one
    contract, which is what makes a second acceptance fail.
    """

    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=_uuid)
    find_id = Column(String(36), ForeignKey("finds.id"), unique=True, nullable=False)
    proposal_id = Column(String(36), ForeignKey("proposals.id"), unique=True, nullable=False)
    client_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=False, index=True)
    amount = _money(nullable=False)
    escrow_status = Column(String(20), nullable=False, default="held")
    is_completed = Column(Boolean, default=False, nullable=False)
    has_submission = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    released_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class OrderSubmission(Base):
    """Work delivered by a finder against a contract."""

    __tablename__ = "order_submissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    contract_id = Column(String(36), ForeignKey("contracts.id"), nullable=False, index=True)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=False)
    submission_text = Column(Text, nullable=True)
    attachment_paths = Column(JSON, default=list)
    status = Column(String(20), nullable=False, default="submitted")
    client_feedback = Column(Text, nullable=True)
    auto_release_date = Column(DateTime, nullable=True)
    submitted_at = Column(DateTime, default=utcnow)
    reviewed_at = Column(DateTime, nullable=True)


class Review(Base):
    """Client rating of a finder for one contract."""

    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=_uuid)
    contract_id = Column(String(36), ForeignKey("contracts.id"), unique=True, nullable=False)
    client_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)


# ---------------------------------------------------------------------------
# Token economy
# ---------------------------------------------------------------------------


class Transaction(Base):
    """Signed token movement on a finder's balance."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=True, index=True)
    amount = Column(Integer, nullable=False)
    type = Column(String(30), nullable=False)
    description = Column(Text, nullable=True)
    reference = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class TokenGrant(Base):
    """Admin grant of tokens to a finder."""

    __tablename__ = "token_grants"

    id = Column(String(36), primary_key=True, default=_uuid)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    granted_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)


class TokenCharge(Base):
    """Admin deduction of tokens from a finder."""

    __tablename__ = "token_charges"

    id = Column(String(36), primary_key=True, default=_uuid)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    charged_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)


class MonthlyTokenDistribution(Base):
    """Record that a finder got this month's free tokens."""

    __tablename__ = "monthly_token_distributions"
    __table_args__ = (
        UniqueConstraint("finder_id", "month", "year", name="uq_monthly_distribution"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)
    distributed_at = Column(DateTime, default=utcnow)


class TokenPackage(Base):
    """Purchasable bundle of findertokens."""

    __tablename__ = "token_packages"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = _money(nullable=False)
    token_count = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class WithdrawalRequest(Base):
    """Finder request to pay out part of the available balance."""

    __tablename__ = "withdrawal_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=False, index=True)
    amount = _money(nullable=False)
    payment_method = Column(String(50), nullable=False)
    payment_details = Column(JSON, default=dict)
    status = Column(String(20), nullable=False, default="pending")
    admin_notes = Column(Text, nullable=True)
    processed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    requested_at = Column(DateTime, default=utcnow)


class AdminSetting(Base):
    """Key/value platform setting editable by admins."""

    __tablename__ = "admin_settings"

    id = Column(String(36), primary_key=True, default=_uuid)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------


class Conversation(Base):
    """Client/finder thread opened around one proposal."""

    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_uuid)
    client_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    finder_id = Column(String(36), ForeignKey("finders.id"), nullable=False, index=True)
    proposal_id = Column(String(36), ForeignKey("proposals.id"), unique=True, nullable=False)
    last_message_at = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, index=True)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=True)
    attachment_paths = Column(JSON, default=list)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)


# ---------------------------------------------------------------------------
# Strike system
# ---------------------------------------------------------------------------


class Strike(Base):
    """Recorded policy violation. Never deleted; moves to expired/resolved."""

    __tablename__ = "strikes"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    strike_level = Column(Integer, nullable=False)
    offense = Column(Text, nullable=False)
    offense_type = Column(String(100), nullable=False)
    evidence = Column(Text, nullable=True)
    context_id = Column(String(36), nullable=True)
    issued_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    status = Column(String(20), nullable=False, default="active", index=True)
    appeal_reason = Column(Text, nullable=True)
    appealed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class UserRestriction(Base):
    """Active limitation on an account. ``end_date`` None means permanent."""

    __tablename__ = "user_restrictions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    strike_id = Column(String(36), ForeignKey("strikes.id"), nullable=True)
    restriction_type = Column(String(30), nullable=False)
    reason = Column(Text, nullable=False)
    start_date = Column(DateTime, default=utcnow, nullable=False)
    end_date = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Dispute(Base):
    """Appeal or complaint raised by a user."""

    __tablename__ = "disputes"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    strike_id = Column(String(36), ForeignKey("strikes.id"), nullable=True)
    contract_id = Column(String(36), ForeignKey("contracts.id"), nullable=True)
    find_id = Column(String(36), ForeignKey("finds.id"), nullable=True)
    description = Column(Text, nullable=False)
    evidence = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    resolution = Column(Text, nullable=True)
    resolved_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    submitted_at = Column(DateTime, default=utcnow)


class BehavioralTraining(Base):
    """Training module assigned to a user after a level 2 or 3 strike."""

    __tablename__ = "behavioral_training"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    strike_id = Column(String(36), ForeignKey("strikes.id"), nullable=True)
    module_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="assigned")
    assigned_at = Column(DateTime, default=utcnow)
    completed_at = Column(DateTime, nullable=True)


class TrustedBadge(Base):
    __tablename__ = "trusted_badges"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    badge_type = Column(String(50), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    awarded_at = Column(DateTime, default=utcnow)
