"""
Review Worker Loop - consumes the review outbox.

Flow:
1. Recover: hand back claims older than the claim timeout
2. Claim: atomically move the oldest queued message to 'processing'
3. Load: read the contribution and the payload of the requested revision
4. Review: run the configured QualityReviewer
5. Apply: engine.apply_review_result (skips stale or moved-on records)
6. Complete: mark the message done, or failed for a later retry
"""
from __future__ import annotations

import logging
import signal
import time
import uuid
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..config import get_settings
from ..contributions.engine import ContributionEngine, build_contribution_engine
from ..contributions.enums import ContributionStatus
from ..db.base import get_session_local
from .base import QualityReviewer, ReviewRequest, get_reviewer
from .dispatch import ReviewDispatcher, ReviewMessage

logger = logging.getLogger(__name__)

RELATED_TITLES_LIMIT = 10


class ReviewWorkerLoop:
    """Main worker loop for processing review requests."""

    def __init__(
        self,
        reviewer: Optional[QualityReviewer] = None,
        poll_interval: Optional[int] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        engine_factory: Optional[Callable[[Session], ContributionEngine]] = None,
        dispatcher_factory: Optional[Callable[[Session], ReviewDispatcher]] = None,
    ):
        """Initialize worker loop.

        Args:
            reviewer: Reviewer to use (default from REVIEWER_BACKEND)
            poll_interval: Seconds between polls when idle (default from config)
            session_factory: Creates a database session per cycle
            engine_factory: Builds the lifecycle engine for a session
            dispatcher_factory: Builds the outbox dispatcher for a session
        """
        self.settings = get_settings()
        self.reviewer = reviewer or get_reviewer()
        self.poll_interval = poll_interval or self.settings.review_poll_interval
        self.session_factory = session_factory or get_session_local()
        self.engine_factory = engine_factory or build_contribution_engine
        self.dispatcher_factory = dispatcher_factory or ReviewDispatcher
        self.running = False
        self.worker_id = f"reviewer-{uuid.uuid4().hex[:8]}"

        logger.info(
            f"Review worker initialized: id={self.worker_id}, "
            f"reviewer={self.reviewer.name}, "
            f"poll_interval={self.poll_interval}s"
        )

    def start(self) -> None:
        """Start the worker loop. Runs until stopped."""
        self.running = True
        logger.info(f"Review worker {self.worker_id} starting...")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        try:
            while self.running:
                try:
                    if not self.run_once():
                        time.sleep(self.poll_interval)
                except Exception as e:
                    logger.exception(f"Error in review worker loop: {e}")
                    time.sleep(self.poll_interval)
        finally:
            logger.info(f"Review worker {self.worker_id} stopped")

    def stop(self) -> None:
        """Signal the worker to stop after the current message."""
        logger.info(f"Review worker {self.worker_id} stopping...")
        self.running = False

    def _signal_handler(self, signum, frame) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        self.stop()

    def run_once(self) -> bool:
        """Claim and process at most one message.

        Returns:
            True if a message was processed
        """
        db = self.session_factory()
        try:
            dispatcher = self.dispatcher_factory(db)
            dispatcher.requeue_stale()

            message = dispatcher.claim(self.worker_id)
            if message is None:
                return False

            logger.info(
                f"Claimed review {message.id} for {message.contribution_id} "
                f"(revision {message.revision}, attempt {message.attempts})"
            )
            self._process(db, dispatcher, message)
            return True
        finally:
            db.close()

    def drain(self, limit: Optional[int] = None) -> int:
        """Process messages until the queue is empty. Returns the count."""
        processed = 0
        while limit is None or processed < limit:
            if not self.run_once():
                break
            processed += 1
        return processed

    def _related_titles(self, engine: ContributionEngine, topic: str) -> List[str]:
        published = engine.ledger.query_by_status(ContributionStatus.PUBLISHED)
        return [r.title for r in published if r.topic == topic][:RELATED_TITLES_LIMIT]

    def _process(
        self, db: Session, dispatcher: ReviewDispatcher, message: ReviewMessage
    ) -> None:
        try:
            engine = self.engine_factory(db)
            record = engine.ledger.get(message.contribution_id)

            if record is None:
                logger.warning(
                    f"Review {message.id} references missing contribution "
                    f"{message.contribution_id}"
                )
                dispatcher.complete(message.id)
                return

            if (
                record.status != ContributionStatus.PENDING
                or record.revision != message.revision
            ):
                logger.info(
                    f"Skipping review {message.id}: contribution {record.id} is "
                    f"{record.status.value} at revision {record.revision}"
                )
                dispatcher.complete(message.id)
                return

            submission = engine.load_submission(record)
            request = ReviewRequest(
                contribution_id=record.id,
                revision=record.revision,
                classification=submission.classification,
                payload=submission.payload,
                related_titles=self._related_titles(engine, record.topic),
            )

            result = self.reviewer.review(request)
            outcome = engine.apply_review_result(
                record.id, result, revision=message.revision
            )
            dispatcher.complete(message.id)

            logger.info(
                f"Review {message.id} finished: applied={outcome.applied} "
                f"status={outcome.status.value}"
            )

        except Exception as e:
            logger.exception(f"Error processing review {message.id}: {e}")
            db.rollback()
            status = dispatcher.fail(message.id, str(e))
            logger.warning(f"Review {message.id} marked {status.value}")


def run_worker(
    reviewer_backend: Optional[str] = None,
    poll_interval: Optional[int] = None,
    once: bool = False,
) -> int:
    """Run the review worker.

    Args:
        reviewer_backend: "stub" or "claude" (default from config)
        poll_interval: Seconds between polls (default from config)
        once: Drain the queue and exit instead of polling forever

    Returns:
        Number of messages processed when ``once``; 0 otherwise
    """
    loop = ReviewWorkerLoop(
        reviewer=get_reviewer(reviewer_backend),
        poll_interval=poll_interval,
    )
    if once:
        return loop.drain()
    loop.start()
    return 0
