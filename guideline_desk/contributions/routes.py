"""
Contribution API Routes.

REST endpoints for the contribution lifecycle. All endpoints are prefixed
with /v1/contributions and identify the caller by the X-Actor-Id header.
Domain errors are turned into HTTP responses by the handlers in ``api.py``.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from ..db.base import get_db
from .engine import ContributionEngine, build_contribution_engine
from .enums import ContributionStatus
from .errors import UnauthenticatedError
from .schemas import (
    Contribution,
    ContributionCreate,
    ContributionSummary,
    HistoryEntry,
    ModerationRequest,
)
from .validation import MAX_ACTOR_ID_LENGTH

router = APIRouter(prefix="/v1/contributions", tags=["contributions"])


def get_contribution_engine(db: Session = Depends(get_db)) -> ContributionEngine:
    """Dependency that builds the engine for the request's session."""
    return build_contribution_engine(db)


def get_actor(x_actor_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity from the X-Actor-Id header."""
    if not x_actor_id or not x_actor_id.strip():
        raise UnauthenticatedError("X-Actor-Id header is required")
    actor = x_actor_id.strip()
    if len(actor) > MAX_ACTOR_ID_LENGTH:
        raise UnauthenticatedError(
            f"X-Actor-Id must be at most {MAX_ACTOR_ID_LENGTH} characters"
        )
    return actor


# =============================================================================
# Contributor Endpoints
# =============================================================================


@router.post("", status_code=201, response_model=Contribution)
async def submit_contribution(
    body: ContributionCreate,
    actor: str = Depends(get_actor),
    engine: ContributionEngine = Depends(get_contribution_engine),
) -> Contribution:
    """Submit a new guideline for review."""
    return engine.submit(actor, body.classification, body.payload)


@router.get("", response_model=List[ContributionSummary])
async def list_my_contributions(
    actor: str = Depends(get_actor),
    engine: ContributionEngine = Depends(get_contribution_engine),
) -> List[ContributionSummary]:
    """List the caller's contributions, newest first."""
    return engine.list_mine(actor)


@router.get("/queue", response_model=List[ContributionSummary])
async def moderation_queue(
    status: ContributionStatus = Query(ContributionStatus.AUTOMATED_PASS),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    actor: str = Depends(get_actor),
    engine: ContributionEngine = Depends(get_contribution_engine),
) -> List[ContributionSummary]:
    """Moderator queue: contributions in one status, oldest first."""
    return engine.list_by_status(actor, status, limit=limit)


@router.get("/{contribution_id}", response_model=Contribution)
async def get_contribution(
    contribution_id: str,
    actor: str = Depends(get_actor),
    engine: ContributionEngine = Depends(get_contribution_engine),
) -> Contribution:
    """Get one contribution with its current payload."""
    return engine.get(actor, contribution_id)


@router.put("/{contribution_id}", response_model=Contribution)
async def revise_contribution(
    contribution_id: str,
    body: ContributionCreate,
    actor: str = Depends(get_actor),
    engine: ContributionEngine = Depends(get_contribution_engine),
) -> Contribution:
    """Submit a new revision; prior reviews are cleared."""
    return engine.revise(actor, contribution_id, body.classification, body.payload)


@router.delete("/{contribution_id}", response_model=Contribution)
async def withdraw_contribution(
    contribution_id: str,
    actor: str = Depends(get_actor),
    engine: ContributionEngine = Depends(get_contribution_engine),
) -> Contribution:
    """Withdraw a contribution that has not reached a terminal state."""
    return engine.withdraw(actor, contribution_id)


# =============================================================================
# Moderation Endpoints
# =============================================================================


@router.post("/{contribution_id}/moderation", response_model=Contribution)
async def moderate_contribution(
    contribution_id: str,
    body: ModerationRequest,
    actor: str = Depends(get_actor),
    engine: ContributionEngine = Depends(get_contribution_engine),
) -> Contribution:
    """Approve, reject or request changes."""
    return engine.moderate(actor, contribution_id, body.action, feedback=body.feedback)


@router.post("/{contribution_id}/review", status_code=202)
async def retrigger_review(
    contribution_id: str,
    actor: str = Depends(get_actor),
    engine: ContributionEngine = Depends(get_contribution_engine),
) -> Dict[str, Any]:
    """Request a fresh automated review of a pending contribution."""
    engine.retrigger_review(actor, contribution_id)
    return {"status": "queued", "contribution_id": contribution_id}


@router.get("/{contribution_id}/history", response_model=List[HistoryEntry])
async def contribution_history(
    contribution_id: str,
    actor: str = Depends(get_actor),
    engine: ContributionEngine = Depends(get_contribution_engine),
) -> List[HistoryEntry]:
    """Audit trail of a contribution, oldest first."""
    return engine.history(actor, contribution_id)
