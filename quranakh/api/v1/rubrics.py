"""Rubric API."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from quranakh.db import get_db
from quranakh.models import User
from quranakh.schemas.gradebook import (
    CriterionCreate,
    CriterionResponse,
    CriterionUpdate,
    RubricCreate,
    RubricListResponse,
    RubricResponse,
    RubricUpdate,
)
from quranakh.api.v1.auth import get_current_user, require_staff
from quranakh.api.v1.assignments import grading

router = APIRouter()


# === Rubrics ===

@router.post("/", response_model=RubricResponse, status_code=201)
async def create_rubric(
    data: RubricCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    """Create a rubric; criterion weights must add up to 100."""
    return grading.create_rubric(
        db,
        current_user,
        name=data.name,
        criteria=data.criteria,
        description=data.description,
    )


@router.get("/", response_model=RubricListResponse)
async def list_rubrics(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    rubrics = grading.list_rubrics(db, current_user)
    return {"rubrics": rubrics, "total": len(rubrics)}


@router.get("/{rubric_id}", response_model=RubricResponse)
async def get_rubric(
    rubric_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return grading.get_rubric(db, current_user, rubric_id)


@router.patch("/{rubric_id}", response_model=RubricResponse)
async def update_rubric(
    rubric_id: int,
    data: RubricUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    """Rename a rubric or replace its criteria (only while nothing is graded)."""
    return grading.update_rubric(
        db,
        current_user,
        rubric_id,
        name=data.name,
        description=data.description,
        criteria=data.criteria,
    )


@router.delete("/{rubric_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rubric(
    rubric_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    grading.delete_rubric(db, current_user, rubric_id)


# === Criteria ===

@router.post("/{rubric_id}/criteria", response_model=CriterionResponse, status_code=201)
async def add_criterion(
    rubric_id: int,
    data: CriterionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    return grading.add_criterion(db, current_user, rubric_id, data)


@router.patch("/criteria/{criterion_id}", response_model=CriterionResponse)
async def update_criterion(
    criterion_id: int,
    data: CriterionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    return grading.update_criterion(db, current_user, criterion_id, data)


@router.delete("/criteria/{criterion_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_criterion(
    criterion_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    grading.delete_criterion(db, current_user, criterion_id)
