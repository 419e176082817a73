"""
Claude-backed quality reviewer.

Sends the submission to the Anthropic Messages API with a review rubric and
parses the JSON assessment out of the reply.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from ..contributions.enums import IssueSeverity, ReviewDecision
from ..contributions.errors import ReviewerUnavailable
from ..contributions.schemas import ReviewIssue, ReviewResult
from .base import QualityReviewer, ReviewRequest

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 2000

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

REVIEW_SYSTEM_PROMPT = """You are a senior technical reviewer for an open encyclopedia of development guidelines. Review submitted guidelines for quality, accuracy and compliance with our standards.

## Review Criteria

1. Content quality (critical): specific and actionable, explains why as well as what, correct code examples, shows both good and bad patterns.
2. Technical accuracy (critical): correct, current for the stated version, no insecure recommendations.
3. Formatting and structure (important): clear sections, fenced and highlighted code blocks.
4. Uniqueness (important): does not duplicate the existing guidelines listed.
5. Clarity for automated agents (nice to have).

## Response Format

Respond with a single JSON object:
{
  "decision": "approve" | "needs_changes" | "reject",
  "score": 0-100,
  "summary": "One sentence summary of your decision",
  "feedback": "Detailed feedback for the contributor (if needs_changes or reject)",
  "issues": [{"type": "critical" | "important" | "suggestion", "description": "...", "location": "optional"}],
  "strengths": ["..."],
  "suggestions": ["..."]
}

## Decision Guidelines

- approve: score >= 70, no critical issues
- needs_changes: score 40-69, fixable issues
- reject: score < 40, fundamentally flawed, off-topic or duplicate"""


def build_review_prompt(request: ReviewRequest) -> str:
    """Render the user message for one submission."""
    payload = request.payload
    classification = request.classification
    if request.related_titles:
        related = "\n".join(f"- {title}" for title in request.related_titles)
    else:
        related = "No existing guidelines found for this topic."

    return f"""## Submission to Review

**Topic:** {classification.topic}
**Category:** {classification.category}
**Title:** {payload.title}
**Slug:** {classification.slug}
**Version:** {payload.version}
**Difficulty:** {payload.difficulty}
**Tags:** {", ".join(payload.tags)}

**Description:**
{payload.description}

**Content:**
{payload.body}

---

## Existing Guidelines in {classification.topic} (for duplicate detection)

{related}

---

Please review this submission and provide your assessment in JSON format."""


def _parse_issues(raw: Any) -> List[ReviewIssue]:
    issues: List[ReviewIssue] = []
    for item in raw or []:
        if not isinstance(item, dict) or not item.get("description"):
            continue
        try:
            severity = IssueSeverity(item.get("type") or item.get("severity"))
        except ValueError:
            severity = IssueSeverity.SUGGESTION
        issues.append(
            ReviewIssue(
                severity=severity,
                description=str(item["description"]),
                location=item.get("location"),
            )
        )
    return issues


def _parse_score(raw: Any) -> int:
    try:
        score = int(raw)
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


def parse_review_text(text: str, reviewed_by: str) -> ReviewResult:
    """Extract the JSON assessment from a model reply.

    The reply may wrap the object in prose or a fenced block. Unknown
    decisions fall back to ``needs_changes``.

    Raises:
        ReviewerUnavailable: No parseable JSON object in the reply.
    """
    match = _JSON_OBJECT.search(text)
    if not match:
        raise ReviewerUnavailable("No JSON found in reviewer response")
    try:
        data: Dict[str, Any] = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ReviewerUnavailable(f"Failed to parse reviewer response: {e}") from e

    try:
        decision = ReviewDecision(data.get("decision"))
    except ValueError:
        decision = ReviewDecision.NEEDS_CHANGES

    return ReviewResult(
        decision=decision,
        score=_parse_score(data.get("score")),
        summary=str(data.get("summary") or ""),
        feedback=data.get("feedback") or None,
        issues=_parse_issues(data.get("issues")),
        strengths=[str(s) for s in data.get("strengths") or []],
        suggestions=[str(s) for s in data.get("suggestions") or []],
        reviewed_by=reviewed_by,
    )


class ClaudeReviewer(QualityReviewer):
    """Reviewer backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "claude-sonnet-4-20250514",
        timeout: float = 60.0,
        client: Optional[httpx.Client] = None,
        api_url: str = ANTHROPIC_API_URL,
    ):
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY is required for the claude reviewer")
        self.model = model
        self.api_url = api_url
        self.client = client or httpx.Client(timeout=timeout)
        self.headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    @property
    def name(self) -> str:
        return self.model

    def close(self) -> None:
        self.client.close()

    def _call(self, prompt: str) -> str:
        body = {
            "model": self.model,
            "max_tokens": MAX_TOKENS,
            "system": REVIEW_SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            response = self.client.post(self.api_url, json=body, headers=self.headers)
        except httpx.RequestError as e:
            logger.error(f"Claude API request failed: {e}")
            raise ReviewerUnavailable(f"Claude API request failed: {e}") from e

        if response.status_code != 200:
            raise ReviewerUnavailable(
                f"Claude API error: {response.status_code}",
                details={"status_code": response.status_code, "body": response.text[:500]},
            )

        data = response.json()
        blocks = [b.get("text", "") for b in data.get("content", []) if b.get("type") == "text"]
        if not blocks:
            raise ReviewerUnavailable("Claude API returned no text content")
        return "".join(blocks)

    def review(self, request: ReviewRequest) -> ReviewResult:
        logger.info(
            f"Requesting Claude review: contribution={request.contribution_id} "
            f"revision={request.revision} model={self.model}"
        )
        text = self._call(build_review_prompt(request))
        result = parse_review_text(text, reviewed_by=self.name)
        logger.info(
            f"Claude review complete: contribution={request.contribution_id} "
            f"decision={result.decision.value} score={result.score}"
        )
        return result
