"""
SQLAlchemy models for Guideline Desk.
"""

from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.sql import func

from ..contributions.enums import ContributionStatus, OutboxStatus
from .base import Base

contribution_status_enum = Enum(
    *[s.value for s in ContributionStatus],
    name="contribution_status",
)

outbox_status_enum = Enum(
    *[s.value for s in OutboxStatus],
    name="review_outbox_status",
)

_PUBLISHED_ONLY = text("status = 'published'")


class ContributionModel(Base):
    """Ledger row: the mutable status record of one contribution.

    The payload itself lives in the content store under ``content_key``; this
    row only carries the classification, the review state and bookkeeping.
    """

    __tablename__ = "contributions"

    id = Column(String(64), primary_key=True)
    status = Column(contribution_status_enum, nullable=False, index=True)
    owner = Column(String(128), nullable=False, index=True)

    # Classification triple
    topic = Column(String(100), nullable=False)
    category = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False)

    title = Column(String(200), nullable=False)
    revision = Column(Integer, nullable=False, default=1)
    content_key = Column(String(255), nullable=False)

    automated_review = Column(JSON, nullable=True)
    moderator_decision = Column(JSON, nullable=True)
    published_location = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        Index("ix_contributions_owner_created", "owner", "created_at"),
        Index("ix_contributions_status_created", "status", "created_at"),
        Index("ix_contributions_triple", "topic", "category", "slug"),
        # Only one published guideline per classification triple.
        Index(
            "uq_contributions_published_triple",
            "topic",
            "category",
            "slug",
            unique=True,
            sqlite_where=_PUBLISHED_ONLY,
            postgresql_where=_PUBLISHED_ONLY,
        ),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "status": self.status,
            "owner": self.owner,
            "topic": self.topic,
            "category": self.category,
            "slug": self.slug,
            "title": self.title,
            "revision": self.revision,
            "content_key": self.content_key,
            "automated_review": self.automated_review,
            "moderator_decision": self.moderator_decision,
            "published_location": self.published_location,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ReviewOutboxModel(Base):
    """A pending request for an automated review.

    Written by the engine after submit/revise, consumed by the review worker.
    Delivery is at-least-once; the consumer is idempotent.
    """

    __tablename__ = "review_outbox"

    id = Column(String(64), primary_key=True)
    contribution_id = Column(String(64), nullable=False, index=True)
    revision = Column(Integer, nullable=False)
    status = Column(outbox_status_enum, nullable=False, default="queued", index=True)

    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    claimed_by = Column(String(64), nullable=True)

    enqueued_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_review_outbox_status_enqueued", "status", "enqueued_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "contribution_id": self.contribution_id,
            "revision": self.revision,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "claimed_by": self.claimed_by,
            "enqueued_at": self.enqueued_at.isoformat() if self.enqueued_at else None,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
