"""In-app notification dispatch for assignment lifecycle changes."""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from quranakh.db import transaction
from quranakh.errors import NotFound
from quranakh.models import Assignment, AssignmentStatus, Notification, NotificationChannel, User
from quranakh.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# work handed to the teacher vs. feedback handed back to the student
_TEACHER_FACING = {AssignmentStatus.VIEWED, AssignmentStatus.SUBMITTED}
_STUDENT_FACING = {
    AssignmentStatus.REVIEWED,
    AssignmentStatus.COMPLETED,
    AssignmentStatus.REOPENED,
}


class NotificationDispatcher:
    """Writes notification rows inside the caller's transaction."""

    def assignment_changed(
        self,
        db: Session,
        assignment: Assignment,
        to_status: AssignmentStatus,
        event_type: str,
        actor: User,
    ) -> Optional[Notification]:
        if to_status in _TEACHER_FACING:
            recipient_id = assignment.teacher_id
        elif to_status in _STUDENT_FACING:
            recipient_id = assignment.student_id
        else:
            return None
        if recipient_id == actor.id:
            return None

        if event_type == "resubmitted":
            kind = "assignment_resubmitted"
        else:
            kind = f"assignment_{to_status.value}"

        notification = Notification(
            school_id=assignment.school_id,
            user_id=recipient_id,
            channel=NotificationChannel.IN_APP,
            type=kind,
            payload_json={
                "assignment_id": assignment.id,
                "assignment_title": assignment.title,
                "status": to_status.value,
                "actor_name": actor.name,
            },
        )
        db.add(notification)
        db.flush()
        logger.debug("Queued %s notification for user %s", kind, recipient_id)
        return notification

    def list_for_user(
        self, db: Session, user: User, unread_only: bool = False
    ) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user.id)
        if unread_only:
            stmt = stmt.where(Notification.read_at.is_(None))
        return list(db.scalars(stmt.order_by(Notification.id.desc())).all())

    def mark_read(self, db: Session, user: User, notification_id: int) -> Notification:
        with transaction(db):
            notification = db.get(Notification, notification_id)
            if notification is None or notification.user_id != user.id:
                raise NotFound(f"Notification {notification_id} not found")
            if notification.read_at is None:
                notification.read_at = utcnow()
        db.refresh(notification)
        return notification
