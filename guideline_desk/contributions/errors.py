"""
Contribution error taxonomy.

Every error carries a stable ``code`` for programmatic handling and renders
itself with ``to_dict()`` for JSON responses.
"""

from typing import Any, Dict, List, Optional

from .enums import ContributionStatus
from .schemas import FieldError


class ContributionError(Exception):
    """Base class for lifecycle errors."""

    code = "CONTRIBUTION_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(f"{self.code}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"error": error}


class ValidationError(ContributionError):
    """The submitted payload failed structural validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: List[FieldError]):
        self.errors = errors
        super().__init__(
            "Invalid guideline format",
            details=[e.model_dump() for e in errors],
        )

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]


class DuplicateError(ContributionError):
    """The classification triple is already taken by published content."""

    code = "DUPLICATE_ERROR"

    def __init__(self, topic: str, category: str, slug: str):
        self.topic = topic
        self.category = category
        self.slug = slug
        super().__init__(
            f"A guideline already exists at {topic}/{category}/{slug}",
            details={"topic": topic, "category": category, "slug": slug},
        )


class NotFoundError(ContributionError):
    """No contribution with the given id."""

    code = "NOT_FOUND"

    def __init__(self, contribution_id: str):
        self.contribution_id = contribution_id
        super().__init__(f"Contribution {contribution_id} not found")


class AuthorizationError(ContributionError):
    """The actor may not perform the requested operation."""

    code = "FORBIDDEN"

    def __init__(self, actor: str, operation: str, message: Optional[str] = None):
        self.actor = actor
        self.operation = operation
        super().__init__(message or f"{actor} is not allowed to {operation}")


class InvalidStateError(ContributionError):
    """The transition is not defined from the contribution's current state."""

    code = "INVALID_STATE"

    def __init__(self, current_status: ContributionStatus, attempted: str):
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} a contribution in status '{current_status.value}'",
            details={"current_status": current_status.value, "attempted": attempted},
        )


class ConcurrentModificationError(ContributionError):
    """The record changed between read and conditional write."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        contribution_id: str,
        expected_status: ContributionStatus,
        actual_status: Optional[ContributionStatus] = None,
    ):
        self.contribution_id = contribution_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        details = {"expected_status": expected_status.value}
        if actual_status is not None:
            details["actual_status"] = actual_status.value
        super().__init__(
            f"Contribution {contribution_id} was modified concurrently; re-read and retry",
            details=details,
        )


class ReviewerUnavailable(ContributionError):
    """The quality reviewer could not be dispatched or failed to answer."""

    code = "REVIEWER_UNAVAILABLE"


class PublishFailure(ContributionError):
    """Publication failed; the approve transition was not committed."""

    code = "PUBLISH_FAILED"

    def __init__(self, contribution_id: str, reason: str, message: str):
        self.contribution_id = contribution_id
        self.reason = reason
        super().__init__(message, details={"reason": reason})


class UnauthenticatedError(ContributionError):
    """The request carried no caller identity."""

    code = "UNAUTHENTICATED"
