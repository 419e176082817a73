"""
Quality reviewers.

A reviewer reads one revision of a contribution and returns a
``ReviewResult``. Reviewers are pure with respect to the ledger: applying the
result is the engine's job.

v0: StubReviewer - deterministic offline heuristics
v1: ClaudeReviewer - Anthropic Messages API (see ``claude.py``)
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from ..contributions.enums import IssueSeverity, ReviewDecision
from ..contributions.schemas import (
    Classification,
    GuidelinePayload,
    ReviewIssue,
    ReviewResult,
)

APPROVE_THRESHOLD = 70
NEEDS_CHANGES_THRESHOLD = 40


@dataclass
class ReviewRequest:
    """Everything a reviewer needs to assess one revision."""

    contribution_id: str
    revision: int
    classification: Classification
    payload: GuidelinePayload

    # Titles already published under the same topic, for duplicate detection
    related_titles: List[str] = field(default_factory=list)


def decision_for_score(score: int) -> ReviewDecision:
    """Map a 0-100 score onto a decision (>=70 approve, 40-69 changes, <40 reject)."""
    if score >= APPROVE_THRESHOLD:
        return ReviewDecision.APPROVE
    if score >= NEEDS_CHANGES_THRESHOLD:
        return ReviewDecision.NEEDS_CHANGES
    return ReviewDecision.REJECT


class QualityReviewer(ABC):
    """Abstract base class for quality reviewers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Reviewer name, stored as ``reviewed_by``."""
        pass

    @abstractmethod
    def review(self, request: ReviewRequest) -> ReviewResult:
        """Assess a submission.

        Raises:
            ReviewerUnavailable: The reviewer could not produce a result.
        """
        pass


_HEADING = re.compile(r"^#{1,6}\s+\S", re.MULTILINE)
_CODE_FENCE = re.compile(r"^```", re.MULTILINE)
_CONTRAST = re.compile(
    r"\b(good|bad|do not|don't|avoid|prefer|instead|incorrect|correct)\b",
    re.IGNORECASE,
)
_PLACEHOLDER = re.compile(r"\b(lorem ipsum|todo|tbd|fixme)\b", re.IGNORECASE)


class StubReviewer(QualityReviewer):
    """Heuristic reviewer for local runs and tests.

    Scores structure rather than technical accuracy:
    - 40 base
    - +15 for at least 150 words, +5 more past 300
    - +10 for section headings
    - +15 for fenced code examples
    - +10 for contrasting good/bad guidance
    - -30 for placeholder text (lorem ipsum, TODO)
    - -40 when the title matches an already published guideline
    """

    @property
    def name(self) -> str:
        return "stub"

    def review(self, request: ReviewRequest) -> ReviewResult:
        body = request.payload.body
        words = len(body.split())
        score = 40
        issues: List[ReviewIssue] = []
        strengths: List[str] = []
        suggestions: List[str] = []

        if words >= 150:
            score += 15
            strengths.append("Covers the topic in depth")
            if words >= 300:
                score += 5
        else:
            suggestions.append("Expand the guideline with more explanation")

        if _HEADING.search(body):
            score += 10
            strengths.append("Organized into sections")
        else:
            issues.append(
                ReviewIssue(
                    severity=IssueSeverity.IMPORTANT,
                    description="No section headings",
                )
            )

        if len(_CODE_FENCE.findall(body)) >= 2:
            score += 15
            strengths.append("Includes code examples")
        else:
            issues.append(
                ReviewIssue(
                    severity=IssueSeverity.IMPORTANT,
                    description="No fenced code examples",
                )
            )

        if _CONTRAST.search(body):
            score += 10
            strengths.append("Contrasts recommended and discouraged patterns")
        else:
            suggestions.append("Show both a good and a bad example")

        placeholder = _PLACEHOLDER.search(body)
        if placeholder:
            score -= 30
            issues.append(
                ReviewIssue(
                    severity=IssueSeverity.CRITICAL,
                    description="Contains placeholder text",
                    location=placeholder.group(0),
                )
            )

        title = request.payload.title.strip().lower()
        if any(title == t.strip().lower() for t in request.related_titles):
            score -= 40
            issues.append(
                ReviewIssue(
                    severity=IssueSeverity.CRITICAL,
                    description="Duplicates an existing guideline",
                    location="title",
                )
            )

        score = max(0, min(100, score))
        decision = decision_for_score(score)
        feedback: Optional[str] = None
        if decision != ReviewDecision.APPROVE:
            feedback = "; ".join(i.description for i in issues) or None

        return ReviewResult(
            decision=decision,
            score=score,
            summary=f"Heuristic review scored {score}/100 ({decision.value})",
            feedback=feedback,
            issues=issues,
            strengths=strengths,
            suggestions=suggestions,
            reviewed_by=self.name,
        )


def get_reviewer(backend: Optional[str] = None) -> QualityReviewer:
    """Factory function to get a reviewer by backend name.

    Args:
        backend: "stub" or "claude" (default from REVIEWER_BACKEND)

    Returns:
        QualityReviewer instance

    Raises:
        ValueError: If backend is unknown
    """
    from ..config import get_settings

    settings = get_settings()
    backend = backend or settings.reviewer_backend

    if backend == "stub":
        return StubReviewer()
    elif backend == "claude":
        from .claude import ClaudeReviewer

        return ClaudeReviewer(
            api_key=settings.anthropic_api_key,
            model=settings.reviewer_model,
            timeout=settings.reviewer_timeout_seconds,
        )
    else:
        raise ValueError(f"Unknown reviewer backend: {backend}. Available: stub, claude")
