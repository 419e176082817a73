"""
Metadata Ledger.

Durable store of contribution records. Reads return immutable
``ContributionRecord`` snapshots; every state change goes through
``put_if_status_matches``, a conditional UPDATE that only succeeds when the
row still carries the status the caller read. A zero rowcount means another
writer got there first.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..contributions.enums import ContributionStatus
from ..contributions.errors import (
    ConcurrentModificationError,
    DuplicateError,
    NotFoundError,
)
from ..contributions.schemas import (
    AutomatedReview,
    ContributionRecord,
    ModeratorDecision,
)
from .models import ContributionModel

logger = structlog.get_logger()


def _to_record(model: ContributionModel) -> ContributionRecord:
    return ContributionRecord(
        id=model.id,
        status=ContributionStatus(model.status),
        owner=model.owner,
        topic=model.topic,
        category=model.category,
        slug=model.slug,
        title=model.title,
        revision=model.revision,
        content_key=model.content_key,
        automated_review=(
            AutomatedReview.model_validate(model.automated_review)
            if model.automated_review
            else None
        ),
        moderator_decision=(
            ModeratorDecision.model_validate(model.moderator_decision)
            if model.moderator_decision
            else None
        ),
        published_location=model.published_location,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_values(record: ContributionRecord) -> Dict[str, Any]:
    return {
        "status": record.status.value,
        "owner": record.owner,
        "topic": record.topic,
        "category": record.category,
        "slug": record.slug,
        "title": record.title,
        "revision": record.revision,
        "content_key": record.content_key,
        "automated_review": (
            record.automated_review.model_dump(mode="json")
            if record.automated_review
            else None
        ),
        "moderator_decision": (
            record.moderator_decision.model_dump(mode="json")
            if record.moderator_decision
            else None
        ),
        "published_location": record.published_location,
        "updated_at": record.updated_at,
    }


class MetadataLedger:
    """SQLAlchemy-backed ledger of contribution records."""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, record: ContributionRecord) -> ContributionRecord:
        """Persist a new record."""
        model = ContributionModel(
            id=record.id,
            created_at=record.created_at,
            **_to_values(record),
        )
        self.db.add(model)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateError(record.topic, record.category, record.slug)
        return record

    def get(self, contribution_id: str) -> Optional[ContributionRecord]:
        model = (
            self.db.query(ContributionModel)
            .filter(ContributionModel.id == contribution_id)
            .execution_options(populate_existing=True)
            .one_or_none()
        )
        return _to_record(model) if model else None

    def require(self, contribution_id: str) -> ContributionRecord:
        """Like ``get`` but raises ``NotFoundError`` for unknown ids."""
        record = self.get(contribution_id)
        if record is None:
            raise NotFoundError(contribution_id)
        return record

    def put_if_status_matches(
        self,
        record: ContributionRecord,
        expected_status: ContributionStatus,
        expected_revision: Optional[int] = None,
    ) -> ContributionRecord:
        """Write ``record`` only if the stored row is still in ``expected_status``.

        When ``expected_revision`` is given the row must also still carry that
        revision; pending -> pending revisions are otherwise indistinguishable.

        Raises:
            ConcurrentModificationError: The row moved on since it was read.
            NotFoundError: The row no longer exists.
            DuplicateError: The write would publish a second guideline at the
                same classification triple.
        """
        query = self.db.query(ContributionModel).filter(
            ContributionModel.id == record.id,
            ContributionModel.status == expected_status.value,
        )
        if expected_revision is not None:
            query = query.filter(ContributionModel.revision == expected_revision)

        try:
            result = query.update(_to_values(record), synchronize_session=False)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(
                "ledger_unique_violation",
                contribution_id=record.id,
                triple=record.classification.path,
            )
            raise DuplicateError(record.topic, record.category, record.slug)

        if result == 0:
            current = self.get(record.id)
            if current is None:
                raise NotFoundError(record.id)
            raise ConcurrentModificationError(
                record.id, expected_status, current.status
            )

        return record

    def query_by_owner(self, owner: str) -> List[ContributionRecord]:
        """All records owned by ``owner``, newest first."""
        models = (
            self.db.query(ContributionModel)
            .filter(ContributionModel.owner == owner)
            .order_by(desc(ContributionModel.created_at), desc(ContributionModel.id))
            .execution_options(populate_existing=True)
            .all()
        )
        return [_to_record(m) for m in models]

    def query_by_status(
        self, status: ContributionStatus, limit: Optional[int] = None
    ) -> List[ContributionRecord]:
        """Records in ``status``, oldest first (queue order)."""
        query = (
            self.db.query(ContributionModel)
            .filter(ContributionModel.status == status.value)
            .order_by(ContributionModel.created_at, ContributionModel.id)
            .execution_options(populate_existing=True)
        )
        if limit:
            query = query.limit(limit)
        return [_to_record(m) for m in query.all()]

    def find_published(
        self,
        topic: str,
        category: str,
        slug: str,
        exclude_id: Optional[str] = None,
    ) -> Optional[ContributionRecord]:
        """Return the published record at a classification triple, if any."""
        query = self.db.query(ContributionModel).filter(
            ContributionModel.status == ContributionStatus.PUBLISHED.value,
            ContributionModel.topic == topic,
            ContributionModel.category == category,
            ContributionModel.slug == slug,
        )
        if exclude_id:
            query = query.filter(ContributionModel.id != exclude_id)
        model = query.execution_options(populate_existing=True).first()
        return _to_record(model) if model else None
