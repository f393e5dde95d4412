"""Assignment status state machine.

The module-level functions are the pure transition validator (legal graph and
role matrix). :class:`LifecycleEngine` applies a validated transition: one
compare-and-swap status write plus one event append, in a single transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from quranakh.config import get_settings
from quranakh.db import transaction
from quranakh.errors import ConcurrencyConflict, Forbidden, IllegalTransition, InvalidState
from quranakh.models import Assignment, AssignmentStatus, User, UserRole
from quranakh.services.assignments import AssignmentService
from quranakh.services.events import EventLog
from quranakh.services.notifications import NotificationDispatcher
from quranakh.utils.timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

S = AssignmentStatus

LEGAL_TRANSITIONS: Dict[AssignmentStatus, FrozenSet[AssignmentStatus]] = {
    S.ASSIGNED: frozenset({S.VIEWED}),
    S.VIEWED: frozenset({S.SUBMITTED}),
    S.SUBMITTED: frozenset({S.REVIEWED}),
    S.REVIEWED: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset({S.REOPENED}),
    S.REOPENED: frozenset({S.VIEWED}),
}

_STAFF = frozenset({UserRole.TEACHER, UserRole.ADMIN, UserRole.OWNER})
_STUDENT = frozenset({UserRole.STUDENT})

EDGE_ROLES: Dict[Tuple[AssignmentStatus, AssignmentStatus], FrozenSet[UserRole]] = {
    (S.ASSIGNED, S.VIEWED): _STUDENT,
    (S.VIEWED, S.SUBMITTED): _STUDENT,
    (S.SUBMITTED, S.REVIEWED): _STAFF,
    (S.REVIEWED, S.COMPLETED): _STAFF,
    (S.COMPLETED, S.REOPENED): _STAFF,
    (S.REOPENED, S.VIEWED): _STUDENT,
}

# the late flag is re-evaluated when work is handed in and when it is signed off
_LATE_CHECKPOINTS = frozenset({S.SUBMITTED, S.COMPLETED})


def allowed_targets(from_status: AssignmentStatus) -> FrozenSet[AssignmentStatus]:
    return LEGAL_TRANSITIONS.get(from_status, frozenset())


def is_legal(from_status: AssignmentStatus, to_status: AssignmentStatus) -> bool:
    return to_status in allowed_targets(from_status)


def can_transition(
    role: UserRole, from_status: AssignmentStatus, to_status: AssignmentStatus
) -> bool:
    """Permission matrix: may ``role`` move an assignment along this edge?

    Illegal edges are never permitted, whatever the role.
    """
    return role in EDGE_ROLES.get((from_status, to_status), frozenset())


def validate_transition(
    role: UserRole, from_status: AssignmentStatus, to_status: AssignmentStatus
) -> None:
    if not is_legal(from_status, to_status):
        valid = ", ".join(sorted(s.value for s in allowed_targets(from_status))) or "none"
        raise IllegalTransition(
            f"Cannot transition from {from_status.value} to {to_status.value}. "
            f"Valid transitions: {valid}",
            extra={"from_status": from_status.value, "to_status": to_status.value},
        )
    if not can_transition(role, from_status, to_status):
        raise Forbidden(
            f"Role {role.value} may not transition assignment to {to_status.value}",
            extra={"role": role.value, "to_status": to_status.value},
        )


def transition_event_type(from_status: AssignmentStatus, to_status: AssignmentStatus) -> str:
    return f"transition_{from_status.value}_to_{to_status.value}"


def is_late(due_at: datetime, at: datetime) -> bool:
    return ensure_utc(at) > ensure_utc(due_at)


class LifecycleEngine:
    """Applies status transitions to assignments."""

    def __init__(
        self,
        assignments: Optional[AssignmentService] = None,
        events: Optional[EventLog] = None,
        notifications: Optional[NotificationDispatcher] = None,
    ) -> None:
        self.assignments = assignments or AssignmentService()
        self.events = events or EventLog()
        self.notifications = notifications or NotificationDispatcher()

    def transition(
        self,
        db: Session,
        actor: User,
        assignment_id: int,
        to_status: AssignmentStatus,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Assignment:
        """Move an assignment to ``to_status`` on behalf of ``actor``.

        ``expected_version`` lets a caller assert the version it last read;
        a mismatch raises :class:`ConcurrencyConflict` before anything is written.
        """
        with transaction(db):
            assignment = self.assignments.get_visible(db, assignment_id, actor)
            if assignment.is_archived:
                raise InvalidState(f"Assignment {assignment_id} is archived")
            if expected_version is not None and expected_version != assignment.version:
                raise ConcurrencyConflict(
                    f"Assignment {assignment_id} changed since version {expected_version}",
                    extra={"expected_version": expected_version, "version": assignment.version},
                )

            from_status = assignment.status
            validate_transition(actor.role, from_status, to_status)
            # submitted is only reachable through SubmissionStore.submit
            if to_status == S.SUBMITTED:
                raise InvalidState(
                    "cannot transition to submitted without a submission; use submit"
                )

            self.apply(
                db,
                assignment,
                to_status,
                actor,
                event_type=transition_event_type(from_status, to_status),
                reason=reason,
                now=now,
            )
        db.refresh(assignment)
        return assignment

    def apply(
        self,
        db: Session,
        assignment: Assignment,
        to_status: AssignmentStatus,
        actor: User,
        event_type: str,
        reason: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Compare-and-swap the status and append the event; caller owns the transaction.

        Returns the new event id.
        """
        now = ensure_utc(now) or utcnow()
        from_status = assignment.status
        seen_version = assignment.version

        values: Dict[str, Any] = {
            "status": to_status,
            "version": seen_version + 1,
            "updated_at": now,
        }
        if to_status in _LATE_CHECKPOINTS:
            values["late"] = is_late(assignment.due_at, now)
        if from_status == S.COMPLETED and to_status == S.REOPENED:
            limit = get_settings().max_reopen_count
            if assignment.reopen_count >= limit:
                raise InvalidState(f"Maximum reopen count ({limit}) exceeded")
            values["reopen_count"] = assignment.reopen_count + 1

        result = db.execute(
            update(Assignment)
            .where(Assignment.id == assignment.id, Assignment.version == seen_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Lost transition race on assignment %s (%s -> %s, version %s)",
                assignment.id, from_status.value, to_status.value, seen_version,
            )
            raise ConcurrencyConflict(
                f"Assignment {assignment.id} was modified concurrently; re-read and retry",
                extra={"version": seen_version},
            )

        event_meta = {"actor_role": actor.role.value}
        event_meta.update(meta or {})
        event_id = self.events.append(
            db,
            assignment_id=assignment.id,
            event_type=event_type,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor.id,
            reason=reason,
            meta=event_meta,
            created_at=now,
        )
        self.notifications.assignment_changed(db, assignment, to_status, event_type, actor)
        logger.info(
            "Assignment %s: %s -> %s by user %s (%s)",
            assignment.id, from_status.value, to_status.value, actor.id, event_type,
        )
        return event_id
