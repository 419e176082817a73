"""
Canonical enums for contributions.

Status values are persisted verbatim in the ledger; adapters (reviewers,
API clients) MUST map their own vocabulary into these sets.
"""

from enum import Enum


class ContributionStatus(str, Enum):
    """Lifecycle states of a contribution."""

    PENDING = "pending"
    AUTOMATED_PASS = "automated_pass"
    AUTOMATED_NEEDS_CHANGES = "automated_needs_changes"
    AUTOMATED_REJECT = "automated_reject"
    MODERATOR_NEEDS_CHANGES = "moderator_needs_changes"
    PUBLISHED = "published"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        ContributionStatus.PUBLISHED,
        ContributionStatus.REJECTED,
        ContributionStatus.WITHDRAWN,
    }
)


class Trigger(str, Enum):
    """Events that drive a contribution between states."""

    REVIEW_PASSED = "review_passed"
    REVIEW_NEEDS_CHANGES = "review_needs_changes"
    REVIEW_REJECTED = "review_rejected"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"
    REVISE = "revise"
    WITHDRAW = "withdraw"


class ReviewDecision(str, Enum):
    """Three-way verdict produced by the quality reviewer."""

    APPROVE = "approve"
    NEEDS_CHANGES = "needs_changes"
    REJECT = "reject"


class ModeratorAction(str, Enum):
    """Decisions a human moderator can take."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"


class Difficulty(str, Enum):
    """Reading difficulty of a guideline."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class IssueSeverity(str, Enum):
    """Severity of an issue raised by the reviewer."""

    CRITICAL = "critical"
    IMPORTANT = "important"
    SUGGESTION = "suggestion"


class ActorKind(str, Enum):
    """Types of actors recorded in the audit trail."""

    HUMAN = "human"
    AGENT = "agent"
    SYSTEM = "system"


class OutboxStatus(str, Enum):
    """Delivery state of a review request in the outbox."""

    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"
    DEAD = "dead"
