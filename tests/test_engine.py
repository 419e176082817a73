"""
Tests for the contribution lifecycle engine.

Covers:
- submit / revise / withdraw from the contributor side
- automated review application, including stale and late results
- moderator decisions and the publish path
- conditional-write races between two actors
"""

import pytest
import yaml
from sqlalchemy.exc import OperationalError

from guideline_desk.contributions.engine import ContributionEngine
from guideline_desk.contributions.enums import (
    ContributionStatus,
    ModeratorAction,
    ReviewDecision,
)
from guideline_desk.contributions.errors import (
    AuthorizationError,
    ConcurrentModificationError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    PublishFailure,
    ReviewerUnavailable,
    ValidationError,
)
from guideline_desk.contributions.schemas import Classification
from guideline_desk.db.audit_service import AuditService
from guideline_desk.db.ledger import MetadataLedger
from guideline_desk.db.models import ReviewOutboxModel
from guideline_desk.publisher import Publisher
from guideline_desk.reviewer.dispatch import ReviewDispatcher
from guideline_desk.storage import MemoryContentStore

S = ContributionStatus


def race_on_next_read(engine: ContributionEngine, competing) -> None:
    """Run ``competing()`` right after the engine's next ledger read."""
    original = engine.ledger.require

    def require_then_race(contribution_id):
        record = original(contribution_id)
        engine.ledger.require = original
        competing()
        return record

    engine.ledger.require = require_then_race


class FailingDispatcher:
    def enqueue(self, contribution_id, revision):
        raise ReviewerUnavailable("queue is down")


class UnreachableDispatcher:
    def enqueue(self, contribution_id, revision):
        raise ConnectionError("broker unreachable")


class BrokenStore(MemoryContentStore):
    def create(self, key, data):
        raise OSError("disk full")


class BrokenAudit(AuditService):
    def _record(self, *args, **kwargs):
        raise OperationalError("INSERT INTO audit_log", {}, Exception("disk I/O error"))


class TestSubmit:
    """Tests for ContributionEngine.submit()."""

    def test_submit_creates_pending_record(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        assert contribution.id.startswith("contrib_")
        assert contribution.status == S.PENDING
        assert contribution.owner == "alice"
        assert contribution.revision == 1
        assert contribution.automated_review is None
        assert contribution.payload.title == payload.title

    def test_submit_stores_payload_under_revision_key(
        self, engine, content_store, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)

        key = engine.ledger.require(contribution.id).content_key
        assert key.startswith(f"contributions/{contribution.id}/r1-")
        stored = content_store.get_json(key)
        assert stored["classification"] == {
            "topic": "nextjs",
            "category": "security",
            "slug": "csrf",
        }
        assert stored["payload"]["title"] == payload.title

    def test_submit_enqueues_review(self, engine, db_session, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        messages = db_session.query(ReviewOutboxModel).all()
        assert len(messages) == 1
        assert messages[0].contribution_id == contribution.id
        assert messages[0].revision == 1
        assert messages[0].status == "queued"

    def test_submit_normalizes_tags(self, engine, classification, make_payload):
        contribution = engine.submit(
            "alice", classification, make_payload(tags=["Security", "security ", "Forms"])
        )
        assert contribution.payload.tags == ["security", "forms"]

    def test_invalid_title_reports_field(self, engine, classification, make_payload):
        with pytest.raises(ValidationError) as exc:
            engine.submit("alice", classification, make_payload(title="abc"))

        assert "title" in exc.value.fields

    def test_invalid_submission_reports_every_field(self, engine, make_payload):
        bad_classification = Classification(topic="Next JS", category="security", slug="")
        with pytest.raises(ValidationError) as exc:
            engine.submit(
                "alice",
                bad_classification,
                make_payload(version="v1", tags=[], difficulty="expert"),
            )

        assert set(exc.value.fields) == {"topic", "slug", "version", "tags", "difficulty"}

    def test_invalid_submission_writes_nothing(
        self, engine, content_store, db_session, classification, make_payload
    ):
        with pytest.raises(ValidationError):
            engine.submit("alice", classification, make_payload(body="too short"))

        assert content_store.keys() == []
        assert engine.list_mine("alice") == []

    def test_submit_requires_identity(self, engine, classification, payload):
        with pytest.raises(AuthorizationError):
            engine.submit("", classification, payload)
        with pytest.raises(AuthorizationError):
            engine.submit("a" * 129, classification, payload)

    def test_submit_rejects_published_triple(self, engine, classification, payload):
        first = engine.submit("alice", classification, payload)
        engine.moderate("mod-1", first.id, ModeratorAction.APPROVE)

        with pytest.raises(DuplicateError):
            engine.submit("bob", classification, payload)

    @pytest.mark.parametrize("dispatcher_class", [FailingDispatcher, UnreachableDispatcher])
    def test_dispatch_failure_does_not_fail_submit(
        self,
        db_session,
        content_store,
        publisher,
        authorizer,
        classification,
        payload,
        make_payload,
        dispatcher_class,
    ):
        engine = ContributionEngine(
            ledger=MetadataLedger(db_session),
            content_store=content_store,
            publisher=publisher,
            authorizer=authorizer,
            dispatcher=dispatcher_class(),
            audit=AuditService(db_session),
        )

        contribution = engine.submit("alice", classification, payload)
        revised = engine.revise(
            "alice", contribution.id, classification, make_payload(version="1.0.1")
        )

        assert contribution.status == S.PENDING
        assert revised.revision == 2
        assert [c.id for c in engine.list_mine("alice")] == [contribution.id]

    def test_orphan_from_dispatch_failure_is_recovered(
        self, db_session, content_store, publisher, authorizer, classification, payload
    ):
        engine = ContributionEngine(
            ledger=MetadataLedger(db_session),
            content_store=content_store,
            publisher=publisher,
            authorizer=authorizer,
            dispatcher=FailingDispatcher(),
        )
        contribution = engine.submit("alice", classification, payload)

        requeued = ReviewDispatcher(
            db_session, max_attempts=3, claim_timeout_seconds=60, retry_delay_seconds=30
        ).requeue_orphans()

        assert requeued == [contribution.id]


class TestApplyReviewResult:
    """Tests for ContributionEngine.apply_review_result()."""

    @pytest.mark.parametrize(
        "decision,expected",
        [
            (ReviewDecision.APPROVE, S.AUTOMATED_PASS),
            (ReviewDecision.NEEDS_CHANGES, S.AUTOMATED_NEEDS_CHANGES),
            (ReviewDecision.REJECT, S.AUTOMATED_REJECT),
        ],
    )
    def test_decision_maps_to_status(
        self, engine, classification, payload, make_review, decision, expected
    ):
        contribution = engine.submit("alice", classification, payload)

        outcome = engine.apply_review_result(contribution.id, make_review(decision))

        assert outcome.applied is True
        assert outcome.status == expected
        stored = engine.get("alice", contribution.id)
        assert stored.status == expected
        assert stored.automated_review.decision == decision
        assert stored.automated_review.reviewed_by == "test-reviewer"

    def test_second_result_is_skipped(self, engine, classification, payload, make_review):
        contribution = engine.submit("alice", classification, payload)
        engine.apply_review_result(contribution.id, make_review(ReviewDecision.APPROVE))

        outcome = engine.apply_review_result(
            contribution.id, make_review(ReviewDecision.REJECT, score=10)
        )

        assert outcome.applied is False
        assert engine.get("alice", contribution.id).status == S.AUTOMATED_PASS

    def test_late_review_never_overwrites_moderator(
        self, engine, classification, payload, make_review
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.moderate("mod-1", contribution.id, ModeratorAction.REJECT)

        outcome = engine.apply_review_result(contribution.id, make_review())

        assert outcome.applied is False
        assert outcome.status == S.REJECTED
        stored = engine.get("alice", contribution.id)
        assert stored.status == S.REJECTED
        assert stored.automated_review is None

    def test_stale_revision_is_skipped(
        self, engine, classification, payload, make_payload, make_review
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.revise(
            "alice", contribution.id, classification, make_payload(version="1.0.1")
        )

        outcome = engine.apply_review_result(
            contribution.id, make_review(), revision=1
        )

        assert outcome.applied is False
        stored = engine.get("alice", contribution.id)
        assert stored.status == S.PENDING
        assert stored.revision == 2
        assert stored.automated_review is None

    def test_unknown_contribution(self, engine, make_review):
        with pytest.raises(NotFoundError):
            engine.apply_review_result("contrib_missing", make_review())


class TestRevise:
    """Tests for ContributionEngine.revise()."""

    def test_revise_after_needs_changes(
        self, engine, classification, payload, make_payload, make_review
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.apply_review_result(
            contribution.id, make_review(ReviewDecision.NEEDS_CHANGES, score=55)
        )

        revised = engine.revise(
            "alice", contribution.id, classification, make_payload(version="1.1.0")
        )

        assert revised.status == S.PENDING
        assert revised.revision == 2
        assert revised.automated_review is None
        assert revised.moderator_decision is None
        assert revised.payload.version == "1.1.0"

    def test_revise_clears_moderator_feedback(
        self, engine, classification, payload, make_payload
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.moderate(
            "mod-1",
            contribution.id,
            ModeratorAction.REQUEST_CHANGES,
            feedback="Add a section on SameSite cookies",
        )

        revised = engine.revise("alice", contribution.id, classification, make_payload())

        assert revised.status == S.PENDING
        assert revised.moderator_decision is None

    def test_revise_swaps_content_keys(
        self, engine, content_store, classification, payload, make_payload
    ):
        contribution = engine.submit("alice", classification, payload)
        first_key = engine.ledger.require(contribution.id).content_key
        engine.revise("alice", contribution.id, classification, make_payload())

        second_key = engine.ledger.require(contribution.id).content_key
        assert second_key.startswith(f"contributions/{contribution.id}/r2-")
        assert not content_store.exists(first_key)
        assert content_store.keys() == [second_key]

    def test_revise_requests_new_review(
        self, engine, db_session, classification, payload, make_payload
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.revise("alice", contribution.id, classification, make_payload())

        revisions = sorted(
            m.revision
            for m in db_session.query(ReviewOutboxModel).filter_by(
                contribution_id=contribution.id
            )
        )
        assert revisions == [1, 2]

    def test_revise_may_change_classification(
        self, engine, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)
        moved = Classification(topic="nextjs", category="forms", slug="csrf-tokens")

        revised = engine.revise("alice", contribution.id, moved, payload)

        assert (revised.topic, revised.category, revised.slug) == (
            "nextjs",
            "forms",
            "csrf-tokens",
        )

    def test_only_owner_can_revise(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(AuthorizationError):
            engine.revise("bob", contribution.id, classification, payload)

    def test_moderator_is_not_an_owner(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(AuthorizationError):
            engine.revise("mod-1", contribution.id, classification, payload)

    def test_authorization_checked_before_state(
        self, engine, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.withdraw("alice", contribution.id)

        with pytest.raises(AuthorizationError):
            engine.revise("bob", contribution.id, classification, payload)

    def test_cannot_revise_automated_pass(
        self, engine, classification, payload, make_review
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.apply_review_result(contribution.id, make_review(ReviewDecision.APPROVE))

        with pytest.raises(InvalidStateError) as exc:
            engine.revise("alice", contribution.id, classification, payload)

        assert exc.value.current_status == S.AUTOMATED_PASS

    def test_invalid_revision_keeps_previous_state(
        self, engine, classification, payload, make_payload
    ):
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(ValidationError):
            engine.revise(
                "alice", contribution.id, classification, make_payload(title="no")
            )

        stored = engine.get("alice", contribution.id)
        assert stored.revision == 1
        assert stored.payload.title == payload.title


class TestWithdraw:
    """Tests for ContributionEngine.withdraw()."""

    def test_withdraw_pending(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        withdrawn = engine.withdraw("alice", contribution.id)

        assert withdrawn.status == S.WITHDRAWN

    def test_withdraw_then_revise_is_invalid(
        self, engine, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.moderate(
            "mod-1",
            contribution.id,
            ModeratorAction.REQUEST_CHANGES,
            feedback="Explain token rotation",
        )

        engine.withdraw("alice", contribution.id)

        with pytest.raises(InvalidStateError) as exc:
            engine.revise("alice", contribution.id, classification, payload)
        assert exc.value.current_status == S.WITHDRAWN
        assert exc.value.to_dict()["error"]["details"]["current_status"] == "withdrawn"

    def test_withdraw_terminal_is_invalid(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)
        engine.moderate("mod-1", contribution.id, ModeratorAction.APPROVE)

        with pytest.raises(InvalidStateError):
            engine.withdraw("alice", contribution.id)

    def test_moderator_cannot_withdraw_for_owner(
        self, engine, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(AuthorizationError):
            engine.withdraw("mod-1", contribution.id)


class TestModerate:
    """Tests for ContributionEngine.moderate()."""

    def test_reject_review_then_approve_publishes(
        self, engine, public_store, classification, payload, make_review
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.apply_review_result(
            contribution.id, make_review(ReviewDecision.REJECT, score=20)
        )
        assert engine.get("alice", contribution.id).status == S.AUTOMATED_REJECT

        published = engine.moderate("mod-1", contribution.id, ModeratorAction.APPROVE)

        assert published.status == S.PUBLISHED
        assert published.published_location == (
            "https://guides.example.org/guidelines/nextjs/security/csrf.md"
        )
        assert published.moderator_decision.moderator == "mod-1"

        document = public_store.get("guidelines/nextjs/security/csrf.md").decode()
        frontmatter = yaml.safe_load(document.split("---\n")[1])
        assert frontmatter["title"] == payload.title
        assert frontmatter["author"] == "alice"
        assert frontmatter["topic"] == "nextjs"

    def test_audit_failure_does_not_undo_approval(
        self, engine, db_session, public_store, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.audit = BrokenAudit(db_session)

        published = engine.moderate("mod-1", contribution.id, ModeratorAction.APPROVE)

        assert published.status == S.PUBLISHED
        assert engine.ledger.require(contribution.id).status == S.PUBLISHED
        assert public_store.exists("guidelines/nextjs/security/csrf.md")

    def test_approve_from_pending(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        published = engine.moderate("mod-1", contribution.id, "approve")

        assert published.status == S.PUBLISHED

    def test_reject_from_moderator_needs_changes(
        self, engine, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.moderate(
            "mod-1", contribution.id, ModeratorAction.REQUEST_CHANGES, feedback="More detail"
        )

        rejected = engine.moderate(
            "mod-2", contribution.id, ModeratorAction.REJECT, feedback="No response"
        )

        assert rejected.status == S.REJECTED
        assert rejected.moderator_decision.reason == "No response"

    def test_request_changes_requires_feedback(
        self, engine, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(ValidationError) as exc:
            engine.moderate(
                "mod-1", contribution.id, ModeratorAction.REQUEST_CHANGES, feedback="  "
            )

        assert exc.value.fields == ["feedback"]
        assert engine.get("alice", contribution.id).status == S.PENDING

    def test_non_moderator_cannot_moderate(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(AuthorizationError):
            engine.moderate("alice", contribution.id, ModeratorAction.APPROVE)

    def test_approve_not_allowed_after_request_changes(
        self, engine, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.moderate(
            "mod-1", contribution.id, ModeratorAction.REQUEST_CHANGES, feedback="Fix"
        )

        with pytest.raises(InvalidStateError):
            engine.moderate(
                "mod-1", contribution.id, ModeratorAction.APPROVE
            )

    def test_duplicate_publish_fails_and_keeps_state(
        self, engine, classification, payload, make_review
    ):
        first = engine.submit("alice", classification, payload)
        second = engine.submit("bob", classification, payload)
        engine.apply_review_result(second.id, make_review(ReviewDecision.APPROVE))
        engine.moderate("mod-1", first.id, ModeratorAction.APPROVE)

        with pytest.raises(PublishFailure) as exc:
            engine.moderate("mod-1", second.id, ModeratorAction.APPROVE)

        assert exc.value.reason == "duplicate"
        assert engine.get("bob", second.id).status == S.AUTOMATED_PASS

    def test_existing_document_is_a_duplicate(
        self, engine, public_store, classification, payload
    ):
        public_store.put("guidelines/nextjs/security/csrf.md", b"---\ntitle: x\n---\n")
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(PublishFailure) as exc:
            engine.moderate("mod-1", contribution.id, ModeratorAction.APPROVE)

        assert exc.value.reason == "duplicate"
        assert engine.get("alice", contribution.id).status == S.PENDING

    def test_publisher_write_error_keeps_state(
        self, db_session, content_store, authorizer, classification, payload
    ):
        engine = ContributionEngine(
            ledger=MetadataLedger(db_session),
            content_store=content_store,
            publisher=Publisher(BrokenStore()),
            authorizer=authorizer,
        )
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(PublishFailure) as exc:
            engine.moderate("mod-1", contribution.id, ModeratorAction.APPROVE)

        assert exc.value.reason == "write_error"
        stored = engine.get("alice", contribution.id)
        assert stored.status == S.PENDING
        assert stored.published_location is None
        assert stored.moderator_decision is None


class TestConcurrency:
    """Two actors racing on one record: exactly one conditional write wins."""

    def test_concurrent_moderators_one_wins(
        self, engine, public_store, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)
        race_on_next_read(
            engine,
            lambda: engine.moderate("mod-2", contribution.id, ModeratorAction.REJECT),
        )

        with pytest.raises(ConcurrentModificationError) as exc:
            engine.moderate("mod-1", contribution.id, ModeratorAction.APPROVE)

        assert exc.value.actual_status == S.REJECTED
        assert engine.get("alice", contribution.id).status == S.REJECTED
        # The losing approval's document was rolled back
        assert not public_store.exists("guidelines/nextjs/security/csrf.md")

    def test_concurrent_approvals_one_wins(
        self, engine, public_store, classification, payload
    ):
        contribution = engine.submit("alice", classification, payload)
        race_on_next_read(
            engine,
            lambda: engine.moderate("mod-2", contribution.id, ModeratorAction.APPROVE),
        )

        with pytest.raises(ConcurrentModificationError) as exc:
            engine.moderate("mod-1", contribution.id, ModeratorAction.APPROVE)

        assert exc.value.expected_status == S.PENDING
        assert exc.value.actual_status == S.PUBLISHED
        stored = engine.get("alice", contribution.id)
        assert stored.status == S.PUBLISHED
        assert stored.moderator_decision.moderator == "mod-2"
        # The winner's document stays in place
        assert public_store.exists("guidelines/nextjs/security/csrf.md")

    def test_revise_loses_to_reject(
        self, engine, content_store, classification, payload, make_payload, make_review
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.apply_review_result(
            contribution.id, make_review(ReviewDecision.NEEDS_CHANGES, score=50)
        )
        race_on_next_read(
            engine,
            lambda: engine.moderate("mod-1", contribution.id, ModeratorAction.REJECT),
        )

        with pytest.raises(ConcurrentModificationError):
            engine.revise(
                "alice", contribution.id, classification, make_payload(version="2.0.0")
            )

        stored = engine.get("alice", contribution.id)
        assert stored.status == S.REJECTED
        assert stored.revision == 1
        assert stored.payload.version == "1.0.0"
        assert content_store.keys() == [engine.ledger.require(contribution.id).content_key]

    def test_concurrent_revisions_do_not_clobber(
        self, engine, classification, payload, make_payload
    ):
        contribution = engine.submit("alice", classification, payload)
        race_on_next_read(
            engine,
            lambda: engine.revise(
                "alice", contribution.id, classification, make_payload(version="1.1.0")
            ),
        )

        with pytest.raises(ConcurrentModificationError):
            engine.revise(
                "alice", contribution.id, classification, make_payload(version="9.9.9")
            )

        stored = engine.get("alice", contribution.id)
        assert stored.revision == 2
        assert stored.payload.version == "1.1.0"

    def test_review_racing_moderator_is_skipped(
        self, engine, classification, payload, make_review
    ):
        contribution = engine.submit("alice", classification, payload)
        race_on_next_read(
            engine,
            lambda: engine.moderate("mod-1", contribution.id, ModeratorAction.REJECT),
        )

        outcome = engine.apply_review_result(contribution.id, make_review())

        assert outcome.applied is False
        assert outcome.status == S.REJECTED


class TestQueries:
    """Tests for get, list_mine, list_by_status, history and retrigger."""

    def test_get_by_stranger_is_forbidden(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(AuthorizationError):
            engine.get("mallory", contribution.id)

    def test_moderator_can_read(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        assert engine.get("mod-1", contribution.id).id == contribution.id

    def test_get_unknown(self, engine):
        with pytest.raises(NotFoundError):
            engine.get("alice", "contrib_0000000000000000")

    def test_list_mine_newest_first(self, engine, payload):
        first = engine.submit(
            "alice", Classification(topic="react", category="hooks", slug="deps"), payload
        )
        second = engine.submit(
            "alice", Classification(topic="react", category="hooks", slug="cleanup"), payload
        )
        engine.submit(
            "bob", Classification(topic="react", category="hooks", slug="refs"), payload
        )

        mine = engine.list_mine("alice")

        assert [c.id for c in mine] == [second.id, first.id]

    def test_list_by_status_requires_moderator(self, engine):
        with pytest.raises(AuthorizationError):
            engine.list_by_status("alice", S.PENDING)

    def test_list_by_status(self, engine, payload, make_review):
        a = engine.submit(
            "alice", Classification(topic="go", category="errors", slug="wrap"), payload
        )
        b = engine.submit(
            "bob", Classification(topic="go", category="errors", slug="sentinel"), payload
        )
        engine.apply_review_result(a.id, make_review(ReviewDecision.APPROVE))

        assert [c.id for c in engine.list_by_status("mod-1", "automated_pass")] == [a.id]
        assert [c.id for c in engine.list_by_status("mod-1", S.PENDING)] == [b.id]

    def test_history_records_each_transition(
        self, engine, classification, payload, make_review
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.apply_review_result(contribution.id, make_review(ReviewDecision.APPROVE))
        engine.moderate("mod-1", contribution.id, ModeratorAction.APPROVE)

        history = engine.history("alice", contribution.id)

        assert [e.action for e in history] == ["created", "status_changed", "status_changed"]
        assert [(e.actor_kind, e.actor_id) for e in history] == [
            ("human", "alice"),
            ("agent", "test-reviewer"),
            ("human", "mod-1"),
        ]
        assert history[-1].after == {"status": "published"}

    def test_history_forbidden_for_stranger(self, engine, classification, payload):
        contribution = engine.submit("alice", classification, payload)

        with pytest.raises(AuthorizationError):
            engine.history("mallory", contribution.id)

    def test_retrigger_review(self, engine, db_session, classification, payload):
        contribution = engine.submit("alice", classification, payload)
        db_session.query(ReviewOutboxModel).update({"status": "dead"})
        db_session.commit()

        assert engine.retrigger_review("mod-1", contribution.id) is True

        open_messages = (
            db_session.query(ReviewOutboxModel).filter_by(status="queued").count()
        )
        assert open_messages == 1
        assert engine.history("alice", contribution.id)[-1].action == "review_requested"

    def test_retrigger_requires_pending(
        self, engine, classification, payload, make_review
    ):
        contribution = engine.submit("alice", classification, payload)
        engine.apply_review_result(contribution.id, make_review())

        with pytest.raises(InvalidStateError):
            engine.retrigger_review("alice", contribution.id)
