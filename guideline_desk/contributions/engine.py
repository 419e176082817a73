"""
Contribution Lifecycle Engine.

Owns every state change of a contribution. Each operation is one unit of
work:

1. read the record snapshot from the ledger
2. check authorization, then the transition table
3. perform side effects (content store, publisher, review dispatch)
4. commit with a conditional write on the status and revision that were read
5. record an audit entry and log a structured event

A conditional write that loses a race raises
``ConcurrentModificationError``; nothing is retried here.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, List, Optional, Protocol, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.audit_service import CONTRIBUTION_ENTITY, AuditService
from ..db.ledger import MetadataLedger
from ..publisher import Publisher, PublishWriteError
from ..storage import ContentNotFound, ContentStore
from .authorization import Authorizer
from .enums import (
    ActorKind,
    ContributionStatus,
    ModeratorAction,
    Trigger,
)
from .errors import (
    AuthorizationError,
    ConcurrentModificationError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    PublishFailure,
    ReviewerUnavailable,
    ValidationError,
)
from .schemas import (
    AutomatedReview,
    Classification,
    Contribution,
    ContributionRecord,
    ContributionSummary,
    FieldError,
    GuidelinePayload,
    HistoryEntry,
    ModeratorDecision,
    ReviewApplication,
    ReviewResult,
    StoredSubmission,
    generate_contribution_id,
    utc_now,
)
from .state_machine import MODERATOR_TRIGGERS, REVIEW_TRIGGERS, next_status
from .validation import MAX_ACTOR_ID_LENGTH, normalize_payload, validate_submission

logger = structlog.get_logger()


class ReviewRequester(Protocol):
    def enqueue(self, contribution_id: str, revision: int) -> str: ...


def content_key(contribution_id: str, revision: int) -> str:
    """Fresh content store key for one write of a revision's payload.

    Two writers racing on the same revision get distinct keys, so the loser
    can discard its own object without touching the winner's.
    """
    return f"contributions/{contribution_id}/r{revision}-{uuid.uuid4().hex[:8]}.json"


class ContributionEngine:
    """Contribution lifecycle operations."""

    def __init__(
        self,
        ledger: MetadataLedger,
        content_store: ContentStore,
        publisher: Publisher,
        authorizer: Authorizer,
        dispatcher: Optional[ReviewRequester] = None,
        audit: Optional[AuditService] = None,
    ):
        self.ledger = ledger
        self.content_store = content_store
        self.publisher = publisher
        self.authorizer = authorizer
        self.dispatcher = dispatcher
        self.audit = audit

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_owner(self, actor: str, record: ContributionRecord, operation: str) -> None:
        if actor != record.owner:
            raise AuthorizationError(
                actor, operation, f"Only the owner may {operation} this contribution"
            )

    def _require_moderator(self, actor: str, operation: str) -> None:
        if not actor or not self.authorizer.can_moderate(actor):
            raise AuthorizationError(
                actor, operation, f"Moderator access is required to {operation}"
            )

    def _require_reader(self, actor: str, record: ContributionRecord, operation: str) -> None:
        if actor != record.owner and not self.authorizer.can_moderate(actor):
            raise AuthorizationError(actor, operation)

    def _validated(
        self, classification: Classification, payload: GuidelinePayload
    ) -> GuidelinePayload:
        errors = validate_submission(classification, payload)
        if errors:
            raise ValidationError(errors)
        return normalize_payload(payload)

    def _check_not_published(
        self, classification: Classification, exclude_id: Optional[str] = None
    ) -> None:
        existing = self.ledger.find_published(
            classification.topic,
            classification.category,
            classification.slug,
            exclude_id=exclude_id,
        )
        if existing is not None:
            raise DuplicateError(
                classification.topic, classification.category, classification.slug
            )

    def _store_submission(
        self,
        contribution_id: str,
        revision: int,
        classification: Classification,
        payload: GuidelinePayload,
    ) -> str:
        key = content_key(contribution_id, revision)
        submission = StoredSubmission(
            contribution_id=contribution_id,
            revision=revision,
            classification=classification,
            payload=payload,
        )
        self.content_store.put_json(key, submission.model_dump(mode="json"))
        return key

    def _discard_content(self, key: str) -> None:
        try:
            self.content_store.delete(key)
        except OSError as e:
            logger.warning("content_cleanup_failed", key=key, error=str(e))

    def _request_review(self, record: ContributionRecord) -> bool:
        """Enqueue an automated review. Failure is logged, never raised."""
        if self.dispatcher is None:
            logger.warning("review_dispatch_unconfigured", contribution_id=record.id)
            return False
        try:
            self.dispatcher.enqueue(record.id, record.revision)
        except ReviewerUnavailable as e:
            logger.warning(
                "review_dispatch_failed",
                contribution_id=record.id,
                revision=record.revision,
                error=e.message,
            )
            return False
        except Exception as e:
            # The record is already committed; requeue_orphans picks it up
            logger.error(
                "review_dispatch_failed",
                contribution_id=record.id,
                revision=record.revision,
                error=str(e),
                exc_info=True,
            )
            return False
        return True

    def _audited(self, log: Callable[..., Any], **entry: Any) -> None:
        """Write an audit entry for an already committed change.

        A failed audit write is logged; the change itself stands.
        """
        try:
            log(**entry)
        except SQLAlchemyError as e:
            self.audit.db.rollback()
            logger.error(
                "audit_write_failed",
                contribution_id=entry.get("entity_id"),
                action=log.__name__,
                error=str(e),
                exc_info=True,
            )

    def _audit_status(
        self,
        before: ContributionRecord,
        after: ContributionRecord,
        actor_kind: ActorKind,
        actor_id: str,
        note: Optional[str] = None,
    ) -> None:
        if self.audit is None:
            return
        self._audited(
            self.audit.log_status_change,
            entity_kind=CONTRIBUTION_ENTITY,
            entity_id=after.id,
            old_status=before.status.value,
            new_status=after.status.value,
            actor_kind=actor_kind.value,
            actor_id=actor_id,
            note=note,
        )

    def _commit(
        self, before: ContributionRecord, after: ContributionRecord
    ) -> ContributionRecord:
        return self.ledger.put_if_status_matches(
            after, expected_status=before.status, expected_revision=before.revision
        )

    def load_submission(self, record: ContributionRecord) -> StoredSubmission:
        """Load the payload of the record's current revision.

        Raises:
            ContentNotFound: The content object is missing.
        """
        data = self.content_store.get_json(record.content_key)
        return StoredSubmission.model_validate(data)

    def _load_payload(self, record: ContributionRecord) -> Optional[GuidelinePayload]:
        try:
            return self.load_submission(record).payload
        except ContentNotFound:
            logger.warning(
                "contribution_content_missing",
                contribution_id=record.id,
                revision=record.revision,
            )
            return None

    # =========================================================================
    # Contributor operations
    # =========================================================================

    def submit(
        self,
        owner: str,
        classification: Classification,
        payload: GuidelinePayload,
    ) -> Contribution:
        """Create a new pending contribution and request its review.

        Raises:
            AuthorizationError: No usable owner identity.
            ValidationError: The payload or classification is malformed.
            DuplicateError: A guideline is already published at the triple.
        """
        if not owner or len(owner) > MAX_ACTOR_ID_LENGTH:
            raise AuthorizationError(owner, "submit", "An identity is required to submit")

        payload = self._validated(classification, payload)
        self._check_not_published(classification)

        now = utc_now()
        contribution_id = generate_contribution_id()
        key = self._store_submission(contribution_id, 1, classification, payload)
        record = ContributionRecord(
            id=contribution_id,
            owner=owner,
            topic=classification.topic,
            category=classification.category,
            slug=classification.slug,
            title=payload.title,
            content_key=key,
            created_at=now,
            updated_at=now,
        )

        try:
            self.ledger.insert(record)
        except Exception:
            self._discard_content(key)
            raise

        if self.audit is not None:
            self._audited(
                self.audit.log_create,
                entity_kind=CONTRIBUTION_ENTITY,
                entity_id=record.id,
                after={
                    "status": record.status.value,
                    "revision": record.revision,
                    "classification": classification.path,
                    "title": record.title,
                },
                actor_kind=ActorKind.HUMAN.value,
                actor_id=owner,
            )

        logger.info(
            "contribution_submitted",
            contribution_id=record.id,
            owner=owner,
            classification=classification.path,
        )
        self._request_review(record)
        return Contribution.from_record(record, payload)

    def revise(
        self,
        owner: str,
        contribution_id: str,
        classification: Classification,
        payload: GuidelinePayload,
    ) -> Contribution:
        """Replace the payload, clear prior reviews and return to ``pending``.

        The new revision is written under a new content key before the ledger
        swap, so a losing concurrent revision never overwrites the winner's
        payload.
        """
        record = self.ledger.require(contribution_id)
        self._require_owner(owner, record, "revise")
        new_status = next_status(record.status, Trigger.REVISE)

        payload = self._validated(classification, payload)
        self._check_not_published(classification, exclude_id=record.id)

        revision = record.revision + 1
        key = self._store_submission(record.id, revision, classification, payload)
        updated = record.model_copy(
            update={
                "status": new_status,
                "revision": revision,
                "content_key": key,
                "topic": classification.topic,
                "category": classification.category,
                "slug": classification.slug,
                "title": payload.title,
                "automated_review": None,
                "moderator_decision": None,
                "updated_at": utc_now(),
            }
        )

        try:
            self._commit(record, updated)
        except Exception:
            self._discard_content(key)
            raise

        self._discard_content(record.content_key)

        if self.audit is not None:
            self._audited(
                self.audit.log_revision,
                entity_kind=CONTRIBUTION_ENTITY,
                entity_id=record.id,
                before={
                    "status": record.status.value,
                    "revision": record.revision,
                    "classification": record.classification.path,
                },
                after={
                    "status": updated.status.value,
                    "revision": updated.revision,
                    "classification": classification.path,
                },
                actor_kind=ActorKind.HUMAN.value,
                actor_id=owner,
            )

        logger.info(
            "contribution_revised",
            contribution_id=record.id,
            owner=owner,
            previous_status=record.status.value,
            revision=revision,
        )
        self._request_review(updated)
        return Contribution.from_record(updated, payload)

    def withdraw(self, owner: str, contribution_id: str) -> Contribution:
        """Owner retracts a non-terminal contribution."""
        record = self.ledger.require(contribution_id)
        self._require_owner(owner, record, "withdraw")
        new_status = next_status(record.status, Trigger.WITHDRAW)

        updated = record.model_copy(update={"status": new_status, "updated_at": utc_now()})
        self._commit(record, updated)

        self._audit_status(record, updated, ActorKind.HUMAN, owner)
        logger.info(
            "contribution_withdrawn",
            contribution_id=record.id,
            owner=owner,
            previous_status=record.status.value,
        )
        return Contribution.from_record(updated, self._load_payload(updated))

    # =========================================================================
    # Reviewer callback
    # =========================================================================

    def apply_review_result(
        self,
        contribution_id: str,
        result: ReviewResult,
        revision: Optional[int] = None,
    ) -> ReviewApplication:
        """Attach an automated review to a pending contribution.

        The result is skipped (not an error) when the record has left
        ``pending``, when it was computed for an older revision, or when a
        concurrent writer moved the record first. Redelivery is harmless.
        """
        record = self.ledger.require(contribution_id)

        def skipped(status: ContributionStatus, reason: str) -> ReviewApplication:
            logger.info(
                "review_result_skipped",
                contribution_id=contribution_id,
                status=status.value,
                reason=reason,
            )
            return ReviewApplication(
                contribution_id=contribution_id,
                applied=False,
                status=status,
                reason=reason,
            )

        if record.status != ContributionStatus.PENDING:
            return skipped(record.status, f"status is {record.status.value}")
        if revision is not None and revision != record.revision:
            return skipped(
                record.status,
                f"review is for revision {revision}, current is {record.revision}",
            )

        new_status = next_status(record.status, REVIEW_TRIGGERS[result.decision])
        review = AutomatedReview(**result.model_dump())
        updated = record.model_copy(
            update={
                "status": new_status,
                "automated_review": review,
                "updated_at": utc_now(),
            }
        )

        try:
            self._commit(record, updated)
        except ConcurrentModificationError as e:
            return skipped(e.actual_status or record.status, "modified concurrently")

        self._audit_status(
            record,
            updated,
            ActorKind.AGENT,
            result.reviewed_by,
            note=result.summary or None,
        )
        logger.info(
            "review_applied",
            contribution_id=contribution_id,
            decision=result.decision.value,
            score=result.score,
            status=new_status.value,
        )
        return ReviewApplication(
            contribution_id=contribution_id, applied=True, status=new_status
        )

    # =========================================================================
    # Moderator operations
    # =========================================================================

    def moderate(
        self,
        moderator: str,
        contribution_id: str,
        action: Union[ModeratorAction, str],
        feedback: Optional[str] = None,
    ) -> Contribution:
        """Approve, reject or request changes on a contribution.

        Raises:
            AuthorizationError: ``moderator`` lacks the moderate capability.
            InvalidStateError: The action is not legal from the current state.
            ValidationError: ``request_changes`` without feedback.
            PublishFailure: Approval could not be published; state unchanged.
        """
        action = ModeratorAction(action)
        self._require_moderator(moderator, action.value)
        record = self.ledger.require(contribution_id)
        new_status = next_status(record.status, MODERATOR_TRIGGERS[action])

        feedback = feedback.strip() if feedback else None
        if action == ModeratorAction.REQUEST_CHANGES and not feedback:
            raise ValidationError(
                [
                    FieldError(
                        field="feedback",
                        message="Feedback is required when requesting changes",
                    )
                ]
            )

        decision = ModeratorDecision(action=action, moderator=moderator, reason=feedback)

        if action == ModeratorAction.APPROVE:
            updated = self._approve(record, decision)
        else:
            updated = record.model_copy(
                update={
                    "status": new_status,
                    "moderator_decision": decision,
                    "updated_at": utc_now(),
                }
            )
            self._commit(record, updated)

        self._audit_status(record, updated, ActorKind.HUMAN, moderator, note=feedback)
        logger.info(
            "contribution_moderated",
            contribution_id=record.id,
            moderator=moderator,
            action=action.value,
            status=updated.status.value,
        )
        return Contribution.from_record(updated, self._load_payload(updated))

    def _approve(
        self, record: ContributionRecord, decision: ModeratorDecision
    ) -> ContributionRecord:
        """Publish, then commit ``published``; undo the publish if the commit fails."""
        classification = record.classification
        try:
            self._check_not_published(classification, exclude_id=record.id)
        except DuplicateError as e:
            raise PublishFailure(record.id, "duplicate", e.message) from e

        try:
            submission = self.load_submission(record)
        except ContentNotFound as e:
            raise PublishFailure(
                record.id, "content_missing", f"No content stored for revision {record.revision}"
            ) from e

        try:
            document = self.publisher.publish(
                classification, submission.payload, record.id, author=record.owner
            )
        except DuplicateError as e:
            # The document may belong to a concurrent approval of this record
            current = self.ledger.get(record.id)
            if current is None:
                raise NotFoundError(record.id) from e
            if (current.status, current.revision) != (record.status, record.revision):
                raise ConcurrentModificationError(
                    record.id, record.status, current.status
                ) from e
            raise PublishFailure(record.id, "duplicate", e.message) from e
        except PublishWriteError as e:
            logger.error("publish_write_failed", contribution_id=record.id, error=str(e))
            raise PublishFailure(record.id, "write_error", str(e)) from e

        updated = record.model_copy(
            update={
                "status": ContributionStatus.PUBLISHED,
                "moderator_decision": decision,
                "published_location": document.location,
                "updated_at": utc_now(),
            }
        )

        try:
            self._commit(record, updated)
        except DuplicateError as e:
            self.publisher.unpublish(document.path)
            raise PublishFailure(record.id, "duplicate", e.message) from e
        except ConcurrentModificationError:
            self.publisher.unpublish(document.path)
            raise

        return updated

    def retrigger_review(self, actor: str, contribution_id: str) -> bool:
        """Manually request a fresh automated review of a pending contribution.

        Raises:
            ReviewerUnavailable: The request could not be enqueued.
        """
        record = self.ledger.require(contribution_id)
        self._require_reader(actor, record, "request a review of")
        if record.status != ContributionStatus.PENDING:
            raise InvalidStateError(record.status, "request a review of")
        if self.dispatcher is None:
            raise ReviewerUnavailable("No review dispatcher is configured")

        self.dispatcher.enqueue(record.id, record.revision)

        if self.audit is not None:
            self._audited(
                self.audit.log_review_requested,
                entity_kind=CONTRIBUTION_ENTITY,
                entity_id=record.id,
                revision=record.revision,
                actor_kind=ActorKind.HUMAN.value,
                actor_id=actor,
            )
        logger.info("review_retriggered", contribution_id=record.id, actor=actor)
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, actor: str, contribution_id: str) -> Contribution:
        """Read one contribution with its payload (owner or moderator)."""
        record = self.ledger.require(contribution_id)
        self._require_reader(actor, record, "view")
        return Contribution.from_record(record, self._load_payload(record))

    def list_mine(self, owner: str) -> List[ContributionSummary]:
        """Contributions owned by ``owner``, newest first."""
        return [
            ContributionSummary.from_record(r) for r in self.ledger.query_by_owner(owner)
        ]

    def list_by_status(
        self,
        moderator: str,
        status: Union[ContributionStatus, str],
        limit: Optional[int] = None,
    ) -> List[ContributionSummary]:
        """Moderation queue: contributions in ``status``, oldest first."""
        self._require_moderator(moderator, "list contributions by status")
        status = ContributionStatus(status)
        return [
            ContributionSummary.from_record(r)
            for r in self.ledger.query_by_status(status, limit=limit)
        ]

    def history(self, actor: str, contribution_id: str) -> List[HistoryEntry]:
        """Audit trail of a contribution, oldest first (owner or moderator)."""
        record = self.ledger.require(contribution_id)
        self._require_reader(actor, record, "view the history of")
        if self.audit is None:
            return []
        entries = self.audit.query_by_entity(
            CONTRIBUTION_ENTITY, record.id, oldest_first=True
        )
        return [
            HistoryEntry(
                ts=e.ts,
                actor_kind=e.actor_kind,
                actor_id=e.actor_id,
                action=e.action,
                before=e.before,
                after=e.after,
                note=e.note,
            )
            for e in entries
        ]


def build_contribution_engine(
    db: Session,
    content_store: Optional[ContentStore] = None,
    publisher: Optional[Publisher] = None,
    authorizer: Optional[Authorizer] = None,
) -> ContributionEngine:
    """Wire an engine to a database session and the configured stores."""
    from ..config import get_settings
    from ..reviewer.dispatch import ReviewDispatcher
    from ..storage import get_content_store
    from .authorization import get_default_authorizer

    settings = get_settings()
    if content_store is None:
        content_store = get_content_store(settings.content_store_uri)
    if publisher is None:
        publisher = Publisher(
            get_content_store(settings.public_store_uri),
            public_base_url=settings.public_base_url,
        )
    if authorizer is None:
        authorizer = get_default_authorizer()

    return ContributionEngine(
        ledger=MetadataLedger(db),
        content_store=content_store,
        publisher=publisher,
        authorizer=authorizer,
        dispatcher=ReviewDispatcher(db),
        audit=AuditService(db),
    )
