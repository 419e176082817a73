"""Test configuration and fixtures."""

from typing import Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from guideline_desk.contributions.authorization import AllowlistAuthorizer
from guideline_desk.contributions.engine import ContributionEngine
from guideline_desk.contributions.enums import ReviewDecision
from guideline_desk.contributions.schemas import (
    Classification,
    GuidelinePayload,
    ReviewResult,
)
from guideline_desk.db.audit_service import AuditService
from guideline_desk.db.base import create_tables
from guideline_desk.db.ledger import MetadataLedger
from guideline_desk.publisher import Publisher
from guideline_desk.reviewer.dispatch import ReviewDispatcher
from guideline_desk.storage import MemoryContentStore

MODERATORS = ["mod-1", "mod-2"]

GOOD_BODY = """## Why it matters

Cross-site request forgery lets another origin submit forms on behalf of a
signed-in user. Every state-changing request needs proof that it came from
your own pages, and the framework will not add that proof for you when you
write custom route handlers or server actions that accept form posts.

## Bad

Accepting a POST with only the session cookie:

```ts
export async function POST(req: Request) {
  await transfer(await req.formData());
}
```

## Good

Check a per-session token and prefer SameSite cookies instead of relying on
the cookie alone:

```ts
export async function POST(req: Request) {
  const form = await req.formData();
  verifyCsrfToken(form.get("csrf"), req);
  await transfer(form);
}
```

Avoid GET handlers with side effects, because browsers prefetch links and
crawlers follow them. Keep the token out of URLs so it does not leak through
referrer headers or logs, and rotate it when the session is renewed.
"""


@pytest.fixture
def sqlite_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine) -> sessionmaker:
    return sessionmaker(bind=sqlite_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def content_store() -> MemoryContentStore:
    return MemoryContentStore()


@pytest.fixture
def public_store() -> MemoryContentStore:
    return MemoryContentStore()


@pytest.fixture
def publisher(public_store) -> Publisher:
    return Publisher(public_store, public_base_url="https://guides.example.org/")


@pytest.fixture
def authorizer() -> AllowlistAuthorizer:
    return AllowlistAuthorizer(MODERATORS)


@pytest.fixture
def dispatcher(db_session) -> ReviewDispatcher:
    return ReviewDispatcher(
        db_session, max_attempts=3, claim_timeout_seconds=60, retry_delay_seconds=30
    )


@pytest.fixture
def engine_factory(
    content_store, publisher, authorizer
) -> Callable[[Session], ContributionEngine]:
    """Builds an engine around any session, sharing the test's stores."""

    def build(db: Session) -> ContributionEngine:
        return ContributionEngine(
            ledger=MetadataLedger(db),
            content_store=content_store,
            publisher=publisher,
            authorizer=authorizer,
            dispatcher=ReviewDispatcher(
                db, max_attempts=3, claim_timeout_seconds=60, retry_delay_seconds=30
            ),
            audit=AuditService(db),
        )

    return build


@pytest.fixture
def engine(db_session, engine_factory) -> ContributionEngine:
    return engine_factory(db_session)


@pytest.fixture
def classification() -> Classification:
    return Classification(topic="nextjs", category="security", slug="csrf")


@pytest.fixture
def make_payload() -> Callable[..., GuidelinePayload]:
    """Factory for a valid payload; keyword overrides replace fields."""

    def build(**overrides) -> GuidelinePayload:
        data = {
            "title": "Protect Server Actions Against CSRF",
            "body": GOOD_BODY,
            "version": "1.0.0",
            "tags": ["security", "forms"],
            "difficulty": "intermediate",
            "description": "How to guard state-changing requests against cross-site forgery.",
        }
        data.update(overrides)
        return GuidelinePayload(**data)

    return build


@pytest.fixture
def payload(make_payload) -> GuidelinePayload:
    return make_payload()


@pytest.fixture
def make_review() -> Callable[..., ReviewResult]:
    def build(decision: ReviewDecision = ReviewDecision.APPROVE, score: int = 85, **kw):
        return ReviewResult(
            decision=decision,
            score=score,
            summary=kw.pop("summary", f"Review: {decision.value}"),
            reviewed_by=kw.pop("reviewed_by", "test-reviewer"),
            **kw,
        )

    return build
