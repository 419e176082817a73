"""
Publisher.

Renders an approved contribution as Markdown with YAML frontmatter and
writes it to the public store at ``guidelines/{topic}/{category}/{slug}.md``.
The write is an exclusive create: an existing document at the same path is
reported as a duplicate, never overwritten.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import structlog
import yaml

from .contributions.errors import DuplicateError
from .contributions.schemas import Classification, GuidelinePayload, utc_now
from .storage import ContentExists, ContentStore

logger = structlog.get_logger()

WORDS_PER_MINUTE = 200
MIN_READ_TIME = 1
MAX_READ_TIME = 60


class PublishWriteError(Exception):
    """The public store could not be written."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Failed to write {path}: {message}")


@dataclass
class PublishedDocument:
    """Where a published guideline ended up."""

    location: str
    path: str


def document_path(classification: Classification) -> str:
    return f"guidelines/{classification.path}.md"


def estimate_read_time(body: str) -> int:
    """Minutes to read ``body`` at ~200 words/minute, clamped to 1-60."""
    words = len(body.split())
    minutes = math.ceil(words / WORDS_PER_MINUTE)
    return max(MIN_READ_TIME, min(MAX_READ_TIME, minutes))


def render_document(
    classification: Classification,
    payload: GuidelinePayload,
    author: str,
    published_at: datetime,
) -> str:
    """Render frontmatter plus body as a Markdown document."""
    timestamp = published_at.isoformat()
    frontmatter: Dict[str, Any] = {
        "title": payload.title,
        "slug": classification.slug,
        "topic": classification.topic,
        "category": classification.category,
        "version": payload.version,
        "description": payload.description,
        "tags": list(payload.tags),
        "difficulty": payload.difficulty,
        "author": author,
        "contributors": [author],
        "createdAt": timestamp,
        "updatedAt": timestamp,
        "estimatedReadTime": estimate_read_time(payload.body),
    }
    header = yaml.safe_dump(
        frontmatter, sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    body = payload.body if payload.body.endswith("\n") else payload.body + "\n"
    return f"---\n{header}---\n\n{body}"


class Publisher:
    """Writes approved guidelines to the public corpus."""

    def __init__(
        self,
        store: ContentStore,
        public_base_url: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.clock = clock

    def location_for(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        return self.store.get_uri(path)

    def publish(
        self,
        classification: Classification,
        payload: GuidelinePayload,
        contribution_id: str,
        author: str,
    ) -> PublishedDocument:
        """Publish one guideline.

        Raises:
            DuplicateError: A document already exists at the target path.
            PublishWriteError: The public store rejected the write.
        """
        path = document_path(classification)
        document = render_document(classification, payload, author, self.clock())

        try:
            self.store.create(path, document.encode("utf-8"))
        except ContentExists:
            raise DuplicateError(
                classification.topic, classification.category, classification.slug
            ) from None
        except (OSError, ValueError) as e:
            raise PublishWriteError(path, str(e)) from e

        location = self.location_for(path)
        logger.info(
            "guideline_published",
            contribution_id=contribution_id,
            path=path,
            location=location,
        )
        return PublishedDocument(location=location, path=path)

    def unpublish(self, path: str) -> bool:
        """Remove a published document. Used only to undo a failed approval."""
        removed = self.store.delete(path)
        logger.info("guideline_unpublished", path=path, removed=removed)
        return removed
