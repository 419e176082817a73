"""
Audit Log Service.

Records contribution lifecycle events. The engine calls it after every
committed transition; ``query_by_entity`` backs the history endpoint.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import asc, desc
from sqlalchemy.orm import Session

from .audit_models import AuditLogModel

CONTRIBUTION_ENTITY = "Contribution"


def generate_audit_id() -> str:
    """Generate an id for an audit log entry."""
    return str(uuid.uuid4())


class AuditService:
    """Service for managing audit log entries.

    Usage:
        audit = AuditService(db_session)
        audit.log_create("Contribution", record.id, snapshot, actor_kind="human", actor_id="alice")
    """

    def __init__(self, db: Session):
        self.db = db

    def _record(
        self,
        action: str,
        entity_kind: str,
        entity_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
        actor_kind: str,
        actor_id: str,
        note: Optional[str],
    ) -> AuditLogModel:
        entry = AuditLogModel(
            id=generate_audit_id(),
            ts=datetime.now(timezone.utc),
            actor_kind=actor_kind,
            actor_id=actor_id,
            action=action,
            entity_kind=entity_kind,
            entity_id=entity_id,
            before=before,
            after=after,
            note=note,
        )

        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def log_create(
        self,
        entity_kind: str,
        entity_id: str,
        after: Dict[str, Any],
        actor_kind: str = "system",
        actor_id: str = "unknown",
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log the creation of an entity.

        Args:
            entity_kind: Type of entity (e.g., "Contribution")
            entity_id: ID of the entity
            after: State of the entity after creation
            actor_kind: Type of actor ("human", "agent", "system")
            actor_id: ID of the actor
            note: Optional human-readable note

        Returns:
            The created AuditLogModel
        """
        return self._record(
            "created", entity_kind, entity_id, None, after, actor_kind, actor_id, note
        )

    def log_revision(
        self,
        entity_kind: str,
        entity_id: str,
        before: Dict[str, Any],
        after: Dict[str, Any],
        actor_kind: str = "human",
        actor_id: str = "unknown",
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log a new revision of an entity's content."""
        return self._record(
            "revised", entity_kind, entity_id, before, after, actor_kind, actor_id, note
        )

    def log_status_change(
        self,
        entity_kind: str,
        entity_id: str,
        old_status: str,
        new_status: str,
        actor_kind: str = "system",
        actor_id: str = "unknown",
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log a status change on an entity.

        Args:
            entity_kind: Type of entity
            entity_id: ID of the entity
            old_status: Previous status value
            new_status: New status value
            actor_kind: Type of actor ("human", "agent", "system")
            actor_id: ID of the actor
            note: Optional human-readable note

        Returns:
            The created AuditLogModel
        """
        return self._record(
            "status_changed",
            entity_kind,
            entity_id,
            {"status": old_status},
            {"status": new_status},
            actor_kind,
            actor_id,
            note or f"Status changed: {old_status} -> {new_status}",
        )

    def log_review_requested(
        self,
        entity_kind: str,
        entity_id: str,
        revision: int,
        actor_kind: str = "system",
        actor_id: str = "unknown",
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log a manual request for a fresh automated review."""
        return self._record(
            "review_requested",
            entity_kind,
            entity_id,
            None,
            {"revision": revision},
            actor_kind,
            actor_id,
            note,
        )

    # Query methods

    def query_by_entity(
        self,
        entity_kind: str,
        entity_id: str,
        limit: int = 100,
        offset: int = 0,
        oldest_first: bool = False,
    ) -> List[AuditLogModel]:
        """Get audit history for a specific entity.

        Args:
            entity_kind: Type of entity
            entity_id: ID of the entity
            limit: Maximum number of entries to return
            offset: Number of entries to skip
            oldest_first: Return entries in chronological order

        Returns:
            List of AuditLogModel entries, newest first unless ``oldest_first``
        """
        order = asc(AuditLogModel.ts) if oldest_first else desc(AuditLogModel.ts)
        return (
            self.db.query(AuditLogModel)
            .filter(
                AuditLogModel.entity_kind == entity_kind,
                AuditLogModel.entity_id == entity_id,
            )
            .order_by(order)
            .offset(offset)
            .limit(limit)
            .all()
        )

    def query_by_actor(
        self,
        actor_kind: str,
        actor_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogModel]:
        """Get all audit entries by a specific actor, newest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(
                AuditLogModel.actor_kind == actor_kind,
                AuditLogModel.actor_id == actor_id,
            )
            .order_by(desc(AuditLogModel.ts))
            .offset(offset)
            .limit(limit)
            .all()
        )
