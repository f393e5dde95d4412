"""Submission store.

A submission and the viewed -> submitted transition are one unit of work: the
submission row is flushed first, then the status is swapped and the event
appended, all before a single commit.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from quranakh.config import get_settings
from quranakh.db import transaction
from quranakh.errors import Forbidden, InvalidState, ValidationError
from quranakh.models import AssignmentStatus, Submission, User, UserRole
from quranakh.schemas.assignments import AttachmentSchema
from quranakh.services.assignments import AssignmentService
from quranakh.services.lifecycle import LifecycleEngine
from quranakh.utils.timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "audio/mp4",
        "audio/mpeg",
    }
)


def validate_attachments(attachments: Sequence[AttachmentSchema]) -> None:
    settings = get_settings()
    errors: List[str] = []
    if len(attachments) > settings.max_attachments:
        errors.append(f"Maximum {settings.max_attachments} attachments allowed")
    for index, attachment in enumerate(attachments, start=1):
        if attachment.mime_type not in ALLOWED_MIME_TYPES:
            errors.append(f"Attachment {index}: invalid file type {attachment.mime_type}")
        if attachment.size > settings.max_attachment_bytes:
            errors.append(
                f"Attachment {index}: file size {attachment.size} bytes exceeds "
                f"maximum {settings.max_attachment_bytes} bytes"
            )
    if errors:
        raise ValidationError("; ".join(errors), extra={"errors": errors})


class SubmissionStore:
    def __init__(
        self,
        assignments: Optional[AssignmentService] = None,
        lifecycle: Optional[LifecycleEngine] = None,
    ) -> None:
        self.assignments = assignments or AssignmentService()
        self.lifecycle = lifecycle or LifecycleEngine(assignments=self.assignments)

    def submit(
        self,
        db: Session,
        actor: User,
        assignment_id: int,
        text: Optional[str],
        attachments: Sequence[AttachmentSchema] = (),
        now: Optional[datetime] = None,
    ) -> Tuple[Submission, bool]:
        """Create a submission and move the assignment to ``submitted``.

        Returns the submission and whether it supersedes an earlier one.
        """
        now = ensure_utc(now) or utcnow()
        attachments = list(attachments)
        text = text.strip() if text else None

        with transaction(db):
            assignment = self.assignments.get_visible(db, assignment_id, actor)
            if actor.role != UserRole.STUDENT or assignment.student_id != actor.id:
                raise Forbidden("You can only submit your own assignments")
            if assignment.is_archived:
                raise InvalidState(f"Assignment {assignment_id} is archived")
            if assignment.status != AssignmentStatus.VIEWED:
                raise InvalidState(
                    "cannot submit: assignment is not in viewed state",
                    extra={"status": assignment.status.value},
                )
            if not text and not attachments:
                raise ValidationError("Submission must include text or attachments")
            validate_attachments(attachments)

            # earlier rows stay as history
            previous = self.get_active(db, assignment.id)
            submission = Submission(
                assignment_id=assignment.id,
                student_id=actor.id,
                text=text,
                attachments_json=[a.model_dump() for a in attachments],
                created_at=now,
            )
            db.add(submission)
            db.flush()  # need submission.id for the event

            is_resubmission = previous is not None
            self.lifecycle.apply(
                db,
                assignment,
                AssignmentStatus.SUBMITTED,
                actor,
                event_type="resubmitted" if is_resubmission else "submitted",
                meta={
                    "submission_id": submission.id,
                    "has_text": bool(text),
                    "attachment_count": len(attachments),
                    "is_resubmission": is_resubmission,
                },
                now=now,
            )
        db.refresh(submission)
        logger.info(
            "Submission %s for assignment %s (resubmission=%s)",
            submission.id, assignment_id, is_resubmission,
        )
        return submission, is_resubmission

    def get_active(self, db: Session, assignment_id: int) -> Optional[Submission]:
        return self.assignments.active_submission(db, assignment_id)

    def list_for(self, db: Session, actor: User, assignment_id: int) -> List[Submission]:
        """Every version, oldest first."""
        self.assignments.get_visible(db, assignment_id, actor)
        stmt = (
            select(Submission)
            .where(Submission.assignment_id == assignment_id)
            .order_by(Submission.id.asc())
        )
        return list(db.scalars(stmt).all())
