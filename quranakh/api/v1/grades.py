"""Grade API: per-criterion upserts and the assignment grade sheet."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quranakh.db import get_db
from quranakh.models import User
from quranakh.schemas.gradebook import (
    AssignmentGradesResponse,
    BulkGradeCreate,
    BulkGradeResponse,
    GradeCreate,
    GradeWithProgressResponse,
)
from quranakh.api.v1.auth import get_current_user, require_staff
from quranakh.api.v1.assignments import grading

router = APIRouter()


@router.post("/", response_model=GradeWithProgressResponse)
async def submit_grade(
    data: GradeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    """Grade one criterion. Re-grading the same criterion updates it in place."""
    grade, overall = grading.submit_grade(
        db,
        current_user,
        assignment_id=data.assignment_id,
        student_id=data.student_id,
        criterion_id=data.criterion_id,
        score=data.score,
        max_score=data.max_score,
        comments=data.comments,
    )
    return {"grade": grade, "overall_progress": overall}


@router.post("/bulk", response_model=BulkGradeResponse)
async def submit_grades_bulk(
    data: BulkGradeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    grades, overall, weighted = grading.submit_grades_bulk(
        db,
        current_user,
        assignment_id=data.assignment_id,
        student_id=data.student_id,
        items=data.grades,
    )
    return {"grades": grades, "overall_progress": overall, "weighted_score": weighted}


@router.get("/assignment/{assignment_id}", response_model=AssignmentGradesResponse)
async def get_assignment_grades(
    assignment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    assignment, rubric, grades, overall, weighted = grading.assignment_grades(
        db, current_user, assignment_id
    )
    return {
        "assignment_id": assignment.id,
        "student_id": assignment.student_id,
        "rubric": rubric,
        "grades": grades,
        "overall_progress": overall,
        "weighted_score": weighted,
    }
