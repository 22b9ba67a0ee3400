"""Pydantic v2 schemas for API request/response validation.

The wire format is camelCase (``budgetMin``, ``escrowStatus``); Python code
uses snake_case field names and every schema accepts either on input.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema: camelCase aliases, populated from ORM attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class UserCreate(CamelModel):
    """Schema for registering a client or finder account."""

    email: EmailStr
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str | None = None
    role: Literal["client", "finder"] = "client"


class UserLogin(CamelModel):
    email: str
    password: str


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=6)


class UserUpdate(CamelModel):
    """Schema for updating own profile."""

    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None


class UserResponse(CamelModel):
    """Public view of a user account (never includes the password hash)."""

    id: str
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    role: str
    is_verified: bool
    is_banned: bool
    banned_reason: str | None = None
    banned_at: datetime | None = None
    created_at: datetime | None = None


class FinderResponse(CamelModel):
    id: str
    user_id: str
    bio: str | None = None
    skills: list[str] | None = None
    hourly_rate: float | None = None
    jobs_completed: int
    total_earned: float
    available_balance: float
    average_rating: float
    current_level_id: str | None = None
    token_balance: int


class TokenResponse(CamelModel):
    """Returned by register and login."""

    token: str
    user: UserResponse


class MeResponse(CamelModel):
    user: UserResponse
    profile: FinderResponse | None = None


# ---------------------------------------------------------------------------
# Finds / proposals / contracts
# ---------------------------------------------------------------------------


class FindCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    budget_min: float | None = Field(default=None, ge=0)
    budget_max: float | None = Field(default=None, ge=0)
    timeframe: str | None = None

    @model_validator(mode="after")
    def _budget_range(self):
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError("budgetMin must not exceed budgetMax")
        return self


class FindResponse(CamelModel):
    id: str
    client_id: str
    title: str
    description: str
    category: str
    budget_min: float | None = None
    budget_max: float | None = None
    timeframe: str | None = None
    status: str
    created_at: datetime | None = None


class ProposalCreate(CamelModel):
    find_id: str
    approach: str = Field(min_length=1)
    price: float = Field(gt=0)
    timeline: str = Field(min_length=1)
    notes: str | None = None


class ProposalResponse(CamelModel):
    id: str
    find_id: str
    finder_id: str
    approach: str
    price: float
    timeline: str
    notes: str | None = None
    status: str
    created_at: datetime | None = None


class ContractResponse(CamelModel):
    id: str
    find_id: str
    proposal_id: str
    client_id: str
    finder_id: str
    amount: float
    escrow_status: str
    is_completed: bool
    has_submission: bool
    completed_at: datetime | None = None
    released_at: datetime | None = None
    created_at: datetime | None = None


class AcceptProposalResponse(CamelModel):
    proposal: ProposalResponse
    contract: ContractResponse


class SubmissionCreate(CamelModel):
    contract_id: str
    submission_text: str | None = None
    attachment_paths: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _has_content(self):
        if not (self.submission_text and self.submission_text.strip()) and not self.attachment_paths:
            raise ValueError("Submission text or attachments are required")
        return self


class SubmissionReview(CamelModel):
    status: Literal["accepted", "rejected"]
    client_feedback: str | None = None


class SubmissionResponse(CamelModel):
    id: str
    contract_id: str
    finder_id: str
    submission_text: str | None = None
    attachment_paths: list[str] | None = None
    status: str
    client_feedback: str | None = None
    auto_release_date: datetime | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None


class ContractDetailResponse(CamelModel):
    contract: ContractResponse
    find: FindResponse | None = None
    submission: SubmissionResponse | None = None


class ReviewCreate(CamelModel):
    contract_id: str
    rating: int = Field(ge=1, le=5)
    comment: str | None = None


class ReviewResponse(CamelModel):
    id: str
    contract_id: str
    client_id: str
    finder_id: str
    rating: int
    comment: str | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Token economy
# ---------------------------------------------------------------------------


class TransactionResponse(CamelModel):
    id: str
    user_id: str
    finder_id: str | None = None
    amount: int
    type: str
    description: str | None = None
    reference: str | None = None
    created_at: datetime | None = None


class BalanceResponse(CamelModel):
    balance: int


class TokenGrantCreate(CamelModel):
    finder_id: str
    amount: int = Field(gt=0)
    reason: str = Field(min_length=1)


class TokenChargeCreate(TokenGrantCreate):
    pass


class TokenGrantResponse(CamelModel):
    id: str
    finder_id: str
    amount: int
    reason: str
    granted_by: str
    created_at: datetime | None = None


class TokenChargeResponse(CamelModel):
    id: str
    finder_id: str
    amount: int
    reason: str
    charged_by: str
    created_at: datetime | None = None


class MonthlyDistributionResult(CamelModel):
    distributed: int
    already_distributed: int


class TokenPackageCreate(CamelModel):
    name: str = Field(min_length=1)
    description: str | None = None
    price: float = Field(ge=0)
    token_count: int = Field(gt=0)
    is_active: bool = True


class TokenPackageUpdate(CamelModel):
    name: str | None = None
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    token_count: int | None = Field(default=None, gt=0)
    is_active: bool | None = None


class TokenPackageResponse(CamelModel):
    id: str
    name: str
    description: str | None = None
    price: float
    token_count: int
    is_active: bool


class WithdrawalCreate(CamelModel):
    amount: float = Field(gt=0)
    payment_method: str = Field(min_length=1)
    payment_details: dict = Field(default_factory=dict)


class WithdrawalUpdate(CamelModel):
    status: Literal["processing", "approved", "rejected"]
    admin_notes: str | None = None


class WithdrawalResponse(CamelModel):
    id: str
    finder_id: str
    amount: float
    payment_method: str
    payment_details: dict | None = None
    status: str
    admin_notes: str | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None
    requested_at: datetime | None = None


class SettingsResponse(CamelModel):
    proposal_token_cost: int


class SettingsUpdate(CamelModel):
    proposal_token_cost: int | None = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# Admin catalogs
# ---------------------------------------------------------------------------


class CategoryCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None


class CategoryUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    is_active: bool | None = None


class CategoryResponse(CamelModel):
    id: str
    name: str
    description: str | None = None
    is_active: bool
    created_at: datetime | None = None


class FinderLevelCreate(CamelModel):
    name: str = Field(min_length=1)
    description: str | None = None
    min_earned: float = Field(default=0, ge=0)
    min_jobs: int = Field(default=0, ge=0)
    min_review_percentage: int = Field(default=0, ge=0, le=100)
    icon: str | None = None
    color: str | None = None
    order: int = 0
    is_active: bool = True


class FinderLevelUpdate(CamelModel):
    name: str | None = None
    description: str | None = None
    min_earned: float | None = Field(default=None, ge=0)
    min_jobs: int | None = Field(default=None, ge=0)
    min_review_percentage: int | None = Field(default=None, ge=0, le=100)
    icon: str | None = None
    color: str | None = None
    order: int | None = None
    is_active: bool | None = None


class FinderLevelResponse(CamelModel):
    id: str
    name: str
    description: str | None = None
    min_earned: float
    min_jobs: int
    min_review_percentage: int
    icon: str | None = None
    color: str | None = None
    order: int
    is_active: bool


class BanRequest(CamelModel):
    reason: str | None = None


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------


class ConversationCreate(CamelModel):
    proposal_id: str


class ConversationResponse(CamelModel):
    id: str
    client_id: str
    finder_id: str
    proposal_id: str
    last_message_at: datetime | None = None
    created_at: datetime | None = None


class MessageCreate(CamelModel):
    content: str | None = None
    attachment_paths: list[str] = Field(default_factory=list)


class MessageResponse(CamelModel):
    id: str
    conversation_id: str
    sender_id: str
    content: str | None = None
    attachment_paths: list[str] | None = None
    is_read: bool
    created_at: datetime | None = None


class ConversationSummary(CamelModel):
    conversation: ConversationResponse
    other_party: UserResponse | None = None
    last_message: MessageResponse | None = None
    unread_count: int = 0


# ---------------------------------------------------------------------------
# Strike system
# ---------------------------------------------------------------------------


class OffenseResponse(CamelModel):
    offense: str
    strike_level: int
    resolution: str


class StrikeCreate(CamelModel):
    user_id: str
    offense_type: str
    evidence: str | None = None
    context_id: str | None = None


class StrikeResponse(CamelModel):
    id: str
    user_id: str
    strike_level: int
    offense: str
    offense_type: str
    evidence: str | None = None
    context_id: str | None = None
    issued_by: str
    status: str
    appeal_reason: str | None = None
    appealed_at: datetime | None = None
    expires_at: datetime
    created_at: datetime | None = None


class RestrictionResponse(CamelModel):
    id: str
    user_id: str
    strike_id: str | None = None
    restriction_type: str
    reason: str
    start_date: datetime
    end_date: datetime | None = None
    is_active: bool
    created_by: str


class TrainingResponse(CamelModel):
    id: str
    user_id: str
    strike_id: str | None = None
    module_type: str
    status: str
    assigned_at: datetime | None = None
    completed_at: datetime | None = None


class TrainingUpdate(CamelModel):
    status: Literal["in_progress", "completed"]


class ConsequenceResponse(CamelModel):
    level: int
    consequence: str
    restriction_type: str | None = None
    duration_days: int | None = None


class StrikeIssueResponse(CamelModel):
    strike: StrikeResponse | None = None
    consequence: ConsequenceResponse
    next_level: ConsequenceResponse | None = None
    restriction: RestrictionResponse | None = None
    training: TrainingResponse | None = None
    message: str | None = None


class UserRestrictionsResponse(CamelModel):
    restrictions: list[RestrictionResponse]
    active_strikes: list[StrikeResponse]
    strike_level: int
    can_post: bool
    can_apply: bool
    can_message: bool
    is_suspended: bool
    is_banned: bool


class DisputeCreate(CamelModel):
    strike_id: str
    description: str = Field(min_length=1)
    evidence: str | None = None


class DisputeUpdate(CamelModel):
    status: Literal["investigating", "resolved", "rejected"]
    resolution: str | None = None


class DisputeResponse(CamelModel):
    id: str
    user_id: str
    type: str
    strike_id: str | None = None
    contract_id: str | None = None
    find_id: str | None = None
    description: str
    evidence: str | None = None
    status: str
    resolution: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    submitted_at: datetime | None = None


class BadgeCreate(CamelModel):
    user_id: str
    badge_type: str = Field(min_length=1)


class BadgeResponse(CamelModel):
    id: str
    user_id: str
    badge_type: str
    is_active: bool
    awarded_at: datetime | None = None


class StrikeStatisticsResponse(CamelModel):
    total_users: int
    users_with_active_strikes: int
    strike_level_breakdown: dict[str, int]
    recent_strikes: int
    disputes_in_review: int


class CleanupResponse(CamelModel):
    strikes_expired: int
    restrictions_deactivated: int
