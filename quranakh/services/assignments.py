"""Assignment aggregate: creation, visibility, listing and the composed view.

The view joins the assignment row, its ordered event history, the active
submission and the attached rubric so dashboards read one consistent object.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from quranakh.db import transaction
from quranakh.errors import Forbidden, InvalidState, NotFound, ValidationError
from quranakh.models import (
    Assignment,
    AssignmentRubric,
    AssignmentStatus,
    ParentStudent,
    Submission,
    User,
    UserRole,
)
from quranakh.schemas.assignments import (
    AssignmentDetailResponse,
    AssignmentResponse,
    EventResponse,
    SubmissionResponse,
)
from quranakh.services.events import CREATED_EVENT, EventLog
from quranakh.services.people import get_school_member, is_parent_of
from quranakh.utils.timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

MAX_DUE_AHEAD = timedelta(days=366)


class AssignmentService:
    """Queries and writes on assignments that are not status transitions."""

    def __init__(self, events: Optional[EventLog] = None) -> None:
        self.events = events or EventLog()

    # === visibility ===

    def is_visible(self, db: Session, assignment: Assignment, actor: User) -> bool:
        if assignment.school_id != actor.school_id:
            return False
        if actor.role in (UserRole.OWNER, UserRole.ADMIN):
            return True
        if actor.role == UserRole.TEACHER:
            return assignment.teacher_id == actor.id
        if actor.role == UserRole.STUDENT:
            return assignment.student_id == actor.id
        if actor.role == UserRole.PARENT:
            return is_parent_of(db, actor.id, assignment.student_id)
        return False

    def get_visible(self, db: Session, assignment_id: int, actor: User) -> Assignment:
        """Load an assignment the actor may see; anything else is ``NotFound``."""
        assignment = db.get(Assignment, assignment_id)
        if assignment is None or not self.is_visible(db, assignment, actor):
            raise NotFound(f"Assignment {assignment_id} not found")
        return assignment

    # === writes ===

    def create_assignment(
        self,
        db: Session,
        actor: User,
        student_id: int,
        title: str,
        due_at: datetime,
        description: Optional[str] = None,
        teacher_id: Optional[int] = None,
    ) -> Assignment:
        if not actor.role.is_staff:
            raise Forbidden("Only teachers, admins and owners can create assignments")
        due_at = ensure_utc(due_at)
        now = utcnow()
        if due_at > now + MAX_DUE_AHEAD:
            raise ValidationError("Due date cannot be more than 1 year in the future")

        with transaction(db):
            get_school_member(db, actor.school_id, student_id, UserRole.STUDENT)
            if actor.role == UserRole.TEACHER or teacher_id is None:
                owner_id = actor.id
            else:
                owner_id = get_school_member(
                    db, actor.school_id, teacher_id, UserRole.TEACHER
                ).id

            assignment = Assignment(
                school_id=actor.school_id,
                student_id=student_id,
                teacher_id=owner_id,
                title=title,
                description=description,
                due_at=due_at,
                status=AssignmentStatus.ASSIGNED,
                late=False,
                reopen_count=0,
                version=1,
                created_at=now,
                updated_at=now,
            )
            db.add(assignment)
            db.flush()
            self.events.append(
                db,
                assignment_id=assignment.id,
                event_type=CREATED_EVENT,
                from_status=None,
                to_status=AssignmentStatus.ASSIGNED,
                actor_id=actor.id,
                meta={"actor_role": actor.role.value},
                created_at=now,
            )
        db.refresh(assignment)
        logger.info("Created assignment %s for student %s", assignment.id, student_id)
        return assignment

    def archive(self, db: Session, actor: User, assignment_id: int) -> Assignment:
        """Assignments are never deleted; archiving freezes them."""
        with transaction(db):
            assignment = self.get_visible(db, assignment_id, actor)
            if not actor.role.is_staff:
                raise Forbidden("Only staff can archive assignments")
            if assignment.is_archived:
                raise InvalidState(f"Assignment {assignment_id} is already archived")
            assignment.archived_at = utcnow()
        db.refresh(assignment)
        return assignment

    # === reads ===

    def list_assignments(
        self,
        db: Session,
        actor: User,
        status: Optional[AssignmentStatus] = None,
        late_only: bool = False,
        student_id: Optional[int] = None,
        include_archived: bool = False,
    ) -> List[Assignment]:
        stmt = select(Assignment).where(Assignment.school_id == actor.school_id)
        # role scope first, then the caller's filters
        if actor.role == UserRole.TEACHER:
            stmt = stmt.where(Assignment.teacher_id == actor.id)
        elif actor.role == UserRole.STUDENT:
            stmt = stmt.where(Assignment.student_id == actor.id)
        elif actor.role == UserRole.PARENT:
            children = select(ParentStudent.student_id).where(
                ParentStudent.parent_id == actor.id
            )
            stmt = stmt.where(Assignment.student_id.in_(children))

        if status is not None:
            stmt = stmt.where(Assignment.status == status)
        if late_only:
            stmt = stmt.where(Assignment.late.is_(True))
        if student_id is not None:
            stmt = stmt.where(Assignment.student_id == student_id)
        if not include_archived:
            stmt = stmt.where(Assignment.archived_at.is_(None))
        return list(db.scalars(stmt.order_by(Assignment.due_at.asc(), Assignment.id.asc())).all())

    def active_submission(self, db: Session, assignment_id: int) -> Optional[Submission]:
        stmt = (
            select(Submission)
            .where(Submission.assignment_id == assignment_id)
            .order_by(Submission.id.desc())
            .limit(1)
        )
        return db.scalars(stmt).first()

    def get_view(self, db: Session, actor: User, assignment_id: int) -> AssignmentDetailResponse:
        assignment = self.get_visible(db, assignment_id, actor)
        events = self.events.list_for(db, assignment.id)
        submission = self.active_submission(db, assignment.id)
        link = db.get(AssignmentRubric, assignment.id)
        return AssignmentDetailResponse(
            **AssignmentResponse.model_validate(assignment).model_dump(),
            events=[EventResponse.model_validate(e) for e in events],
            submission=SubmissionResponse.model_validate(submission) if submission else None,
            rubric_id=link.rubric_id if link else None,
        )
