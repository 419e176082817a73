"""
Moderator authorization.

The engine never consults a global list of privileged identities; it asks an
injected ``Authorizer`` whether an identity may moderate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional


class Authorizer(ABC):
    """Answers capability questions about an identity."""

    @abstractmethod
    def can_moderate(self, actor: str) -> bool:
        """Return True if ``actor`` may make moderation decisions."""
        pass


class AllowlistAuthorizer(Authorizer):
    """Grants moderation to a fixed set of identities."""

    def __init__(self, moderators: Iterable[str]):
        self.moderators = frozenset(m for m in moderators if m)

    def can_moderate(self, actor: str) -> bool:
        return actor in self.moderators


def get_default_authorizer(raw: Optional[str] = None) -> AllowlistAuthorizer:
    """Build the allowlist from ``MODERATOR_IDS`` (empty = nobody moderates)."""
    from ..config import get_settings, parse_identity_list

    if raw is None:
        raw = get_settings().moderator_ids
    return AllowlistAuthorizer(parse_identity_list(raw))
