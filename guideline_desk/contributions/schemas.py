"""
Contribution schemas.

Pydantic models for the submitted document, the review/moderation records
attached to a contribution, ledger snapshots and caller-facing projections.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, conint

from .enums import (
    ContributionStatus,
    IssueSeverity,
    ModeratorAction,
    ReviewDecision,
)


def generate_contribution_id() -> str:
    """Generate an opaque contribution identifier."""
    return f"contrib_{uuid.uuid4().hex[:16]}"


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class Classification(BaseModel):
    """Where a guideline lives in the published corpus."""

    model_config = ConfigDict(extra="forbid")

    topic: str = ""
    category: str = ""
    slug: str = ""

    @property
    def path(self) -> str:
        return f"{self.topic}/{self.category}/{self.slug}"


class GuidelinePayload(BaseModel):
    """The submitted document.

    Types are deliberately loose: bounds are checked by
    ``validation.validate_submission`` so every problem can be reported at
    once instead of failing on the first.
    """

    model_config = ConfigDict(extra="forbid")

    title: str = ""
    body: str = ""
    version: str = ""
    tags: List[str] = Field(default_factory=list)
    difficulty: str = ""
    description: str = ""


class FieldError(BaseModel):
    """A single field-level validation failure."""

    field: str
    message: str


class ReviewIssue(BaseModel):
    """An issue raised by the quality reviewer."""

    severity: IssueSeverity = IssueSeverity.SUGGESTION
    description: str
    location: Optional[str] = None


class ReviewResult(BaseModel):
    """Structured assessment returned by a quality reviewer."""

    decision: ReviewDecision
    score: conint(ge=0, le=100) = 0
    summary: str = ""
    feedback: Optional[str] = None
    issues: List[ReviewIssue] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    reviewed_by: str = "unknown"


class AutomatedReview(ReviewResult):
    """A review result as stored on the contribution."""

    reviewed_at: datetime = Field(default_factory=utc_now)


class ModeratorDecision(BaseModel):
    """Record of a human moderation decision."""

    action: ModeratorAction
    moderator: str
    decided_at: datetime = Field(default_factory=utc_now)
    reason: Optional[str] = None


class ContributionRecord(BaseModel):
    """Immutable snapshot of one ledger record.

    New states are produced with ``model_copy(update=...)`` and written back
    through the ledger's conditional update.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_contribution_id)
    status: ContributionStatus = ContributionStatus.PENDING
    owner: str
    topic: str
    category: str
    slug: str
    title: str
    revision: int = 1
    content_key: str = ""
    automated_review: Optional[AutomatedReview] = None
    moderator_decision: Optional[ModeratorDecision] = None
    published_location: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def classification(self) -> Classification:
        return Classification(topic=self.topic, category=self.category, slug=self.slug)


class ContributionSummary(BaseModel):
    """List projection of a contribution (no document body)."""

    id: str
    status: ContributionStatus
    owner: str
    topic: str
    category: str
    slug: str
    title: str
    revision: int
    automated_review: Optional[AutomatedReview] = None
    moderator_decision: Optional[ModeratorDecision] = None
    published_location: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: ContributionRecord) -> "ContributionSummary":
        return cls(**record.model_dump())


class Contribution(ContributionSummary):
    """Full projection of a contribution including its current payload."""

    payload: Optional[GuidelinePayload] = None

    @classmethod
    def from_record(
        cls, record: ContributionRecord, payload: Optional[GuidelinePayload] = None
    ) -> "Contribution":
        return cls(**record.model_dump(), payload=payload)


class ReviewApplication(BaseModel):
    """Outcome of delivering a review result to a contribution."""

    contribution_id: str
    applied: bool
    status: ContributionStatus
    reason: Optional[str] = None


class StoredSubmission(BaseModel):
    """What the content store holds for one revision of a contribution."""

    contribution_id: str
    revision: int
    classification: Classification
    payload: GuidelinePayload


# =============================================================================
# Request bodies
# =============================================================================


class ContributionCreate(BaseModel):
    """Request body for submitting or revising a contribution."""

    model_config = ConfigDict(extra="forbid")

    classification: Classification
    payload: GuidelinePayload


class ModerationRequest(BaseModel):
    """Request body for a moderator decision."""

    model_config = ConfigDict(extra="forbid")

    action: ModeratorAction
    feedback: Optional[str] = None


class HistoryEntry(BaseModel):
    """Audit trail entry exposed to callers."""

    ts: Optional[datetime] = None
    actor_kind: str
    actor_id: str
    action: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    note: Optional[str] = None
