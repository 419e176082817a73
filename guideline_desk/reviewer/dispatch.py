"""
Review dispatch via a database outbox.

Submit and revise enqueue a ``review_outbox`` row; the review worker claims
rows with a conditional UPDATE (only one worker wins a row) and marks them
done or failed. Delivery is at-least-once. A failed row becomes claimable
again once the retry delay has passed, until ``max_attempts``, then it is
parked as ``dead``. Rows stuck in ``processing`` longer than the claim
timeout are handed back to the queue.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import structlog
from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..contributions.enums import ContributionStatus, OutboxStatus
from ..contributions.errors import ReviewerUnavailable
from ..db.models import ContributionModel, ReviewOutboxModel

logger = structlog.get_logger()

OPEN_STATUSES = (
    OutboxStatus.QUEUED.value,
    OutboxStatus.PROCESSING.value,
    OutboxStatus.FAILED.value,
)


@dataclass
class ReviewMessage:
    """A claimed review request."""

    id: str
    contribution_id: str
    revision: int
    attempts: int


class ReviewDispatcher:
    """Outbox producer and consumer operations."""

    def __init__(
        self,
        db: Session,
        max_attempts: Optional[int] = None,
        claim_timeout_seconds: Optional[int] = None,
        retry_delay_seconds: Optional[int] = None,
    ):
        if None in (max_attempts, claim_timeout_seconds, retry_delay_seconds):
            from ..config import get_settings

            settings = get_settings()
            max_attempts = max_attempts or settings.review_max_attempts
            claim_timeout_seconds = (
                claim_timeout_seconds or settings.review_claim_timeout_seconds
            )
            if retry_delay_seconds is None:
                retry_delay_seconds = settings.review_retry_delay_seconds
        self.db = db
        self.max_attempts = max_attempts
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)
        self.retry_delay = timedelta(seconds=retry_delay_seconds)

    # Producer

    def enqueue(self, contribution_id: str, revision: int) -> str:
        """Request a review of one revision.

        An open request for the same revision is reused rather than
        duplicated.

        Raises:
            ReviewerUnavailable: The outbox could not be written.
        """
        try:
            existing = (
                self.db.query(ReviewOutboxModel)
                .filter(
                    ReviewOutboxModel.contribution_id == contribution_id,
                    ReviewOutboxModel.revision == revision,
                    ReviewOutboxModel.status.in_(OPEN_STATUSES),
                )
                .first()
            )
            if existing is not None:
                return existing.id

            message = ReviewOutboxModel(
                id=str(uuid.uuid4()),
                contribution_id=contribution_id,
                revision=revision,
                status=OutboxStatus.QUEUED.value,
                attempts=0,
                enqueued_at=datetime.now(timezone.utc),
            )
            self.db.add(message)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ReviewerUnavailable(
                f"Could not enqueue review for {contribution_id}",
                details={"error": str(e)},
            ) from e

        logger.info(
            "review_enqueued",
            message_id=message.id,
            contribution_id=contribution_id,
            revision=revision,
        )
        return message.id

    # Consumer

    def claim(
        self, worker_id: str, now: Optional[datetime] = None
    ) -> Optional[ReviewMessage]:
        """Atomically claim the oldest claimable message.

        Queued messages are claimable at once; failed ones only after the
        retry delay has passed since their last claim. Uses optimistic
        locking via a status check in the UPDATE.

        Returns:
            ReviewMessage if claimed, None if nothing is available or another
            worker won the race
        """
        now = now or datetime.now(timezone.utc)
        candidate = (
            self.db.query(ReviewOutboxModel)
            .filter(
                or_(
                    ReviewOutboxModel.status == OutboxStatus.QUEUED.value,
                    and_(
                        ReviewOutboxModel.status == OutboxStatus.FAILED.value,
                        ReviewOutboxModel.claimed_at <= now - self.retry_delay,
                    ),
                )
            )
            .order_by(ReviewOutboxModel.enqueued_at.asc())
            .first()
        )
        if candidate is None:
            return None

        seen_status = candidate.status
        attempts = (candidate.attempts or 0) + 1
        result = (
            self.db.query(ReviewOutboxModel)
            .filter(
                ReviewOutboxModel.id == candidate.id,
                ReviewOutboxModel.status == seen_status,
            )
            .update(
                {
                    "status": OutboxStatus.PROCESSING.value,
                    "claimed_by": worker_id,
                    "claimed_at": now,
                    "attempts": attempts,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()

        if result == 0:
            logger.debug("review_claim_lost", message_id=candidate.id)
            return None

        return ReviewMessage(
            id=candidate.id,
            contribution_id=candidate.contribution_id,
            revision=candidate.revision,
            attempts=attempts,
        )

    def complete(self, message_id: str) -> None:
        self._finish(message_id, OutboxStatus.DONE, None)

    def fail(self, message_id: str, error: str) -> OutboxStatus:
        """Record a failed attempt. Returns the message's new status."""
        message = self.db.get(ReviewOutboxModel, message_id)
        attempts = message.attempts if message else 0
        status = (
            OutboxStatus.DEAD if attempts >= self.max_attempts else OutboxStatus.FAILED
        )
        self._finish(message_id, status, error)
        if status == OutboxStatus.DEAD:
            logger.error(
                "review_dead_lettered",
                message_id=message_id,
                attempts=attempts,
                error=error,
            )
        return status

    def _finish(
        self, message_id: str, status: OutboxStatus, error: Optional[str]
    ) -> None:
        values = {"status": status.value, "last_error": error}
        if status in (OutboxStatus.DONE, OutboxStatus.DEAD):
            values["completed_at"] = datetime.now(timezone.utc)
        self.db.query(ReviewOutboxModel).filter(
            ReviewOutboxModel.id == message_id
        ).update(values, synchronize_session=False)
        self.db.commit()

    # Recovery

    def requeue_stale(self, now: Optional[datetime] = None) -> int:
        """Return messages stuck in ``processing`` past the claim timeout."""
        cutoff = (now or datetime.now(timezone.utc)) - self.claim_timeout
        count = (
            self.db.query(ReviewOutboxModel)
            .filter(
                ReviewOutboxModel.status == OutboxStatus.PROCESSING.value,
                ReviewOutboxModel.claimed_at < cutoff,
            )
            .update(
                {"status": OutboxStatus.QUEUED.value, "claimed_by": None},
                synchronize_session=False,
            )
        )
        self.db.commit()
        if count:
            logger.warning("review_claims_requeued", count=count)
        return count

    def requeue_orphans(self) -> List[str]:
        """Enqueue reviews for pending contributions with no open request.

        Covers submits whose enqueue failed and requests that went dead.
        """
        open_pairs = {
            (contribution_id, revision)
            for contribution_id, revision in self.db.query(
                ReviewOutboxModel.contribution_id, ReviewOutboxModel.revision
            ).filter(ReviewOutboxModel.status.in_(OPEN_STATUSES))
        }
        pending = (
            self.db.query(ContributionModel.id, ContributionModel.revision)
            .filter(ContributionModel.status == ContributionStatus.PENDING.value)
            .order_by(ContributionModel.created_at)
            .all()
        )

        requeued: List[str] = []
        for contribution_id, revision in pending:
            if (contribution_id, revision) not in open_pairs:
                self.enqueue(contribution_id, revision)
                requeued.append(contribution_id)

        if requeued:
            logger.info("review_orphans_requeued", count=len(requeued))
        return requeued

    def stats(self) -> Dict[str, int]:
        """Message counts per outbox status."""
        rows = (
            self.db.query(ReviewOutboxModel.status, func.count(ReviewOutboxModel.id))
            .group_by(ReviewOutboxModel.status)
            .all()
        )
        counts = {s.value: 0 for s in OutboxStatus}
        counts.update({status: count for status, count in rows})
        return counts
