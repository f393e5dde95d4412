"""Append-only assignment event log."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from quranakh.models import AssignmentEvent, AssignmentStatus
from quranakh.utils.timeutils import utcnow


CREATED_EVENT = "created"


class EventLog:
    """Append and read; events are never updated or deleted."""

    def append(
        self,
        db: Session,
        assignment_id: int,
        event_type: str,
        from_status: Optional[AssignmentStatus],
        to_status: AssignmentStatus,
        actor_id: int,
        reason: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        event = AssignmentEvent(
            assignment_id=assignment_id,
            event_type=event_type,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            reason=reason,
            meta_json=dict(meta or {}),
            created_at=created_at or utcnow(),
        )
        db.add(event)
        db.flush()
        return event.id

    def list_for(self, db: Session, assignment_id: int) -> List[AssignmentEvent]:
        """Events oldest first; ids are assigned in append order."""
        stmt = (
            select(AssignmentEvent)
            .where(AssignmentEvent.assignment_id == assignment_id)
            .order_by(AssignmentEvent.id.asc())
        )
        return list(db.scalars(stmt).all())

    def latest(self, db: Session, assignment_id: int) -> Optional[AssignmentEvent]:
        stmt = (
            select(AssignmentEvent)
            .where(AssignmentEvent.assignment_id == assignment_id)
            .order_by(AssignmentEvent.id.desc())
            .limit(1)
        )
        return db.scalars(stmt).first()
