"""Assignment lifecycle API: create, read, transition, submit, archive."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quranakh.db import get_db
from quranakh.models import AssignmentStatus, User
from quranakh.schemas.assignments import (
    AssignmentCreate,
    AssignmentDetailResponse,
    AssignmentListResponse,
    AssignmentResponse,
    SubmissionListResponse,
    SubmissionResponse,
    SubmitRequest,
    SubmitResponse,
    TransitionRequest,
)
from quranakh.schemas.gradebook import AttachRubricRequest, AttachRubricResponse
from quranakh.api.v1.auth import get_current_user, require_staff
from quranakh.services.assignments import AssignmentService
from quranakh.services.grading import GradingEngine
from quranakh.services.lifecycle import LifecycleEngine
from quranakh.services.submissions import SubmissionStore

router = APIRouter()

assignment_service = AssignmentService()
lifecycle = LifecycleEngine(assignments=assignment_service)
submission_store = SubmissionStore(assignments=assignment_service, lifecycle=lifecycle)
grading = GradingEngine(assignments=assignment_service)


# === Assignments ===

@router.post("/", response_model=AssignmentResponse, status_code=201)
async def create_assignment(
    data: AssignmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    return assignment_service.create_assignment(
        db,
        current_user,
        student_id=data.student_id,
        title=data.title,
        due_at=data.due_at,
        description=data.description,
        teacher_id=data.teacher_id,
    )


@router.get("/", response_model=AssignmentListResponse)
async def list_assignments(
    status: Optional[AssignmentStatus] = None,
    late_only: bool = False,
    student_id: Optional[int] = None,
    include_archived: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Assignments visible to the caller, soonest due first."""
    assignments = assignment_service.list_assignments(
        db,
        current_user,
        status=status,
        late_only=late_only,
        student_id=student_id,
        include_archived=include_archived,
    )
    return {"assignments": assignments, "total": len(assignments)}


@router.get("/{assignment_id}", response_model=AssignmentDetailResponse)
async def get_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Assignment with ordered events and the active submission."""
    return assignment_service.get_view(db, current_user, assignment_id)


# === Lifecycle ===

@router.post("/{assignment_id}/transition", response_model=AssignmentResponse)
async def transition_assignment(
    assignment_id: int,
    data: TransitionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return lifecycle.transition(
        db,
        current_user,
        assignment_id,
        data.to_status,
        reason=data.reason,
        expected_version=data.expected_version,
    )


@router.post("/{assignment_id}/submit", response_model=SubmitResponse)
async def submit_assignment(
    assignment_id: int,
    data: SubmitRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    submission, is_resubmission = submission_store.submit(
        db, current_user, assignment_id, data.text, data.attachments
    )
    # reload to pick up the bumped status and version
    assignment = assignment_service.get_visible(db, assignment_id, current_user)
    return {
        "assignment": assignment,
        "submission": submission,
        "is_resubmission": is_resubmission,
    }


@router.get("/{assignment_id}/submissions", response_model=SubmissionListResponse)
async def list_submissions(
    assignment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Every submitted version, oldest first."""
    submissions = submission_store.list_for(db, current_user, assignment_id)
    return {
        "submissions": [SubmissionResponse.model_validate(s) for s in submissions],
        "total": len(submissions),
    }


# === Staff actions ===

@router.post("/{assignment_id}/archive", response_model=AssignmentResponse)
async def archive_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    return assignment_service.archive(db, current_user, assignment_id)


@router.post("/{assignment_id}/rubric", response_model=AttachRubricResponse)
async def attach_rubric(
    assignment_id: int,
    data: AttachRubricRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    rubric = grading.attach_rubric(db, current_user, assignment_id, data.rubric_id)
    return {"assignment_id": assignment_id, "rubric_id": rubric.id, "rubric": rubric}
