"""Gradebook API for students, parents and staff."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quranakh.db import get_db
from quranakh.errors import Forbidden, ValidationError
from quranakh.models import User, UserRole
from quranakh.schemas.gradebook import ParentGradebook, SchoolGradebook, StudentGradebook
from quranakh.api.v1.auth import get_current_user, require_parent, require_staff
from quranakh.services.gradebook import GradebookAggregator
from quranakh.services.people import get_school_member

router = APIRouter()
aggregator = GradebookAggregator()


@router.get("/student", response_model=StudentGradebook)
async def student_gradebook(
    student_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Students read their own gradebook; staff may read any student in the school."""
    if current_user.role == UserRole.STUDENT:
        if student_id is not None and student_id != current_user.id:
            raise Forbidden("Students can only view their own gradebook")
        return aggregator.student_gradebook(db, current_user.id)
    if current_user.role == UserRole.PARENT:
        raise Forbidden("Parents use the parent gradebook")
    if student_id is None:
        raise ValidationError("student_id is required")
    get_school_member(db, current_user.school_id, student_id, UserRole.STUDENT)
    return aggregator.student_gradebook(db, student_id)


@router.get("/parent", response_model=ParentGradebook)
async def parent_gradebook(
    child_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_parent),
):
    return aggregator.parent_gradebook(db, current_user.id, child_id=child_id)


@router.get("/school", response_model=SchoolGradebook)
async def school_gradebook(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    """Owners and admins get every student; teachers get their own assignments."""
    return aggregator.school_gradebook(db, current_user)
