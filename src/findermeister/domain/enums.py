"""Domain enumerations for the FinderMeister marketplace.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserRole(str, Enum):
    """Marketplace role of a user account."""

    CLIENT = "client"
    FINDER = "finder"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# Finds / proposals / contracts
# ---------------------------------------------------------------------------


class FindStatus(str, Enum):
    """Status of a client's find request."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    UNDER_REVIEW = "under_review"
    CANCELLED = "cancelled"


class ProposalStatus(str, Enum):
    """Status of a finder's bid on a find."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class EscrowStatus(str, Enum):
    """Escrow state of a contract's funds."""

    HELD = "held"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    RELEASED = "released"


class SubmissionStatus(str, Enum):
    """Client decision on a finder's work submission."""

    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Token economy
# ---------------------------------------------------------------------------


class TransactionType(str, Enum):
    """Kinds of token ledger entries."""

    SIGNUP_BONUS = "signup_bonus"
    PROPOSAL = "proposal"
    GRANT = "grant"
    CHARGE = "charge"
    MONTHLY_DISTRIBUTION = "monthly_distribution"
    REFUND = "refund"


class WithdrawalStatus(str, Enum):
    """Lifecycle of a finder payout request."""

    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Strike system
# ---------------------------------------------------------------------------


class StrikeStatus(str, Enum):
    """Status of a recorded policy violation."""

    ACTIVE = "active"
    APPEALED = "appealed"
    RESOLVED = "resolved"
    EXPIRED = "expired"


class RestrictionType(str, Enum):
    """Limitation applied to a user account."""

    LIMITED_FEATURES = "limited_features"
    SUSPENDED = "suspended"
    BANNED = "banned"
    POSTING = "posting"
    APPLICATIONS = "applications"
    MESSAGING = "messaging"


class DisputeType(str, Enum):
    """What a dispute is raised against."""

    STRIKE_APPEAL = "strike_appeal"
    CONTRACT_DISPUTE = "contract_dispute"
    PAYMENT_DISPUTE = "payment_dispute"
    OTHER = "other"


class DisputeStatus(str, Enum):
    """Review state of a dispute."""

    PENDING = "pending"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class TrainingModule(str, Enum):
    """Behavioral training modules assigned after a strike."""

    COMMUNICATION = "communication"
    RELIABILITY = "reliability"


class TrainingStatus(str, Enum):
    """Progress of an assigned training module."""

    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
