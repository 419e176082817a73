"""
Contribution lifecycle state machine.

The transition table below is the single definition of which moves are
legal. Anything not listed raises ``InvalidStateError``; terminal states
(published, rejected, withdrawn) have no outgoing edges.

    pending ──review──▶ automated_pass | automated_needs_changes | automated_reject
    pending, automated_* ──approve──▶ published
    pending, automated_*, moderator_needs_changes ──reject──▶ rejected
    pending, automated_* ──request_changes──▶ moderator_needs_changes
    pending, automated_needs_changes, moderator_needs_changes ──revise──▶ pending
    any non-terminal ──withdraw──▶ withdrawn
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Tuple

from .enums import (
    ContributionStatus,
    ModeratorAction,
    ReviewDecision,
    Trigger,
)
from .errors import InvalidStateError

S = ContributionStatus

_AUTOMATED = (S.AUTOMATED_PASS, S.AUTOMATED_NEEDS_CHANGES, S.AUTOMATED_REJECT)


def _edges(
    sources: Tuple[ContributionStatus, ...], trigger: Trigger, target: ContributionStatus
) -> Dict[Tuple[ContributionStatus, Trigger], ContributionStatus]:
    return {(source, trigger): target for source in sources}


TRANSITIONS: Dict[Tuple[ContributionStatus, Trigger], ContributionStatus] = {
    **_edges((S.PENDING,), Trigger.REVIEW_PASSED, S.AUTOMATED_PASS),
    **_edges((S.PENDING,), Trigger.REVIEW_NEEDS_CHANGES, S.AUTOMATED_NEEDS_CHANGES),
    **_edges((S.PENDING,), Trigger.REVIEW_REJECTED, S.AUTOMATED_REJECT),
    **_edges((S.PENDING, *_AUTOMATED), Trigger.APPROVE, S.PUBLISHED),
    **_edges(
        (S.PENDING, *_AUTOMATED, S.MODERATOR_NEEDS_CHANGES), Trigger.REJECT, S.REJECTED
    ),
    **_edges(
        (S.PENDING, *_AUTOMATED), Trigger.REQUEST_CHANGES, S.MODERATOR_NEEDS_CHANGES
    ),
    **_edges(
        (S.PENDING, S.AUTOMATED_NEEDS_CHANGES, S.MODERATOR_NEEDS_CHANGES),
        Trigger.REVISE,
        S.PENDING,
    ),
    **_edges(
        (S.PENDING, *_AUTOMATED, S.MODERATOR_NEEDS_CHANGES),
        Trigger.WITHDRAW,
        S.WITHDRAWN,
    ),
}

REVIEW_TRIGGERS: Dict[ReviewDecision, Trigger] = {
    ReviewDecision.APPROVE: Trigger.REVIEW_PASSED,
    ReviewDecision.NEEDS_CHANGES: Trigger.REVIEW_NEEDS_CHANGES,
    ReviewDecision.REJECT: Trigger.REVIEW_REJECTED,
}

MODERATOR_TRIGGERS: Dict[ModeratorAction, Trigger] = {
    ModeratorAction.APPROVE: Trigger.APPROVE,
    ModeratorAction.REJECT: Trigger.REJECT,
    ModeratorAction.REQUEST_CHANGES: Trigger.REQUEST_CHANGES,
}


def next_status(current: ContributionStatus, trigger: Trigger) -> ContributionStatus:
    """Return the state reached by firing ``trigger`` from ``current``.

    Raises:
        InvalidStateError: If the transition is not in the table.
    """
    try:
        return TRANSITIONS[(current, trigger)]
    except KeyError:
        raise InvalidStateError(current, trigger.value) from None


def can_transition(current: ContributionStatus, trigger: Trigger) -> bool:
    return (current, trigger) in TRANSITIONS


def allowed_triggers(current: ContributionStatus) -> FrozenSet[Trigger]:
    """Triggers that are legal from ``current`` (empty for terminal states)."""
    return frozenset(t for (s, t) in TRANSITIONS if s == current)
