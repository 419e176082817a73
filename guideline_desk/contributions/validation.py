"""
Structural validation for submitted guidelines.

Pure functions: no DB access, no request objects. ``validate_submission``
returns every field-level problem it finds so a caller can surface them all
at once; ``normalize_payload`` canonicalizes an already-valid payload before
it is stored.

Rules:
- topic, category, slug: lowercase letters, digits and hyphens, at most 100
  characters
- title: 5-100 characters
- description: 20-300 characters
- version: semver (1.0.0)
- tags: 1-10 non-empty tags
- difficulty: beginner, intermediate or advanced
- body: at least 100 characters
"""

from __future__ import annotations

import re
from typing import List

from .enums import Difficulty
from .schemas import Classification, FieldError, GuidelinePayload

IDENTIFIER_PATTERN = re.compile(r"^[a-z0-9-]+$")
SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

MAX_IDENTIFIER_LENGTH = 100
MAX_ACTOR_ID_LENGTH = 128

MIN_TITLE_LENGTH = 5
MAX_TITLE_LENGTH = 100
MIN_DESCRIPTION_LENGTH = 20
MAX_DESCRIPTION_LENGTH = 300
MIN_TAGS = 1
MAX_TAGS = 10
MIN_BODY_LENGTH = 100

DIFFICULTIES = {d.value for d in Difficulty}


def _check_identifier(field: str, value: str, errors: List[FieldError]) -> None:
    if not value or not IDENTIFIER_PATTERN.match(value):
        errors.append(
            FieldError(field=field, message="Must be lowercase with hyphens only")
        )
    elif len(value) > MAX_IDENTIFIER_LENGTH:
        errors.append(
            FieldError(
                field=field,
                message=f"Must be at most {MAX_IDENTIFIER_LENGTH} characters",
            )
        )


def _check_length(
    field: str, value: str, minimum: int, maximum: int, errors: List[FieldError]
) -> None:
    length = len(value.strip()) if value else 0
    if length < minimum or length > maximum:
        errors.append(
            FieldError(field=field, message=f"Must be {minimum}-{maximum} characters")
        )


def _check_version(version: str, errors: List[FieldError]) -> None:
    if not version or not SEMVER_PATTERN.match(version.strip()):
        errors.append(FieldError(field="version", message="Must be semver format (1.0.0)"))


def _check_tags(tags: List[str], errors: List[FieldError]) -> None:
    if len(tags) < MIN_TAGS or len(tags) > MAX_TAGS:
        errors.append(
            FieldError(field="tags", message=f"Must have {MIN_TAGS}-{MAX_TAGS} tags")
        )
    elif any(not tag or not tag.strip() for tag in tags):
        errors.append(FieldError(field="tags", message="Tags must not be empty"))


def _check_difficulty(difficulty: str, errors: List[FieldError]) -> None:
    if difficulty not in DIFFICULTIES:
        errors.append(
            FieldError(
                field="difficulty",
                message="Must be beginner, intermediate, or advanced",
            )
        )


def _check_body(body: str, errors: List[FieldError]) -> None:
    if not body or len(body.strip()) < MIN_BODY_LENGTH:
        errors.append(
            FieldError(
                field="body",
                message=f"Content must be at least {MIN_BODY_LENGTH} characters",
            )
        )


def validate_classification(classification: Classification) -> List[FieldError]:
    errors: List[FieldError] = []
    _check_identifier("topic", classification.topic, errors)
    _check_identifier("category", classification.category, errors)
    _check_identifier("slug", classification.slug, errors)
    return errors


def validate_payload(payload: GuidelinePayload) -> List[FieldError]:
    errors: List[FieldError] = []
    _check_length("title", payload.title, MIN_TITLE_LENGTH, MAX_TITLE_LENGTH, errors)
    _check_length(
        "description",
        payload.description,
        MIN_DESCRIPTION_LENGTH,
        MAX_DESCRIPTION_LENGTH,
        errors,
    )
    _check_version(payload.version, errors)
    _check_tags(payload.tags, errors)
    _check_difficulty(payload.difficulty, errors)
    _check_body(payload.body, errors)
    return errors


def validate_submission(
    classification: Classification, payload: GuidelinePayload
) -> List[FieldError]:
    """Validate a classification and payload together.

    Returns:
        All field-level errors, classification fields first. Empty when valid.
    """
    return validate_classification(classification) + validate_payload(payload)


def normalize_payload(payload: GuidelinePayload) -> GuidelinePayload:
    """
    Canonicalize a valid payload.

    - title, description and version are stripped
    - tags are stripped, lowercased and de-duplicated (first occurrence wins)
    - body keeps its content but loses trailing whitespace
    """
    seen = set()
    tags: List[str] = []
    for tag in payload.tags:
        canonical = tag.strip().lower()
        if canonical and canonical not in seen:
            seen.add(canonical)
            tags.append(canonical)

    return GuidelinePayload(
        title=payload.title.strip(),
        body=payload.body.rstrip() + "\n",
        version=payload.version.strip(),
        tags=tags,
        difficulty=payload.difficulty,
        description=payload.description.strip(),
    )
