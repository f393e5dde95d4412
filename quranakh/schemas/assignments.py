"""Request/response models for assignments, events and submissions."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from quranakh.models.enums import AssignmentStatus


class AttachmentSchema(BaseModel):
    url: str
    mime_type: str
    file_name: str
    size: int = Field(ge=0)


class AssignmentCreate(BaseModel):
    student_id: int
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    due_at: datetime
    # admins/owners may assign on behalf of a teacher; teachers always own what they create
    teacher_id: Optional[int] = None


class TransitionRequest(BaseModel):
    to_status: AssignmentStatus
    reason: Optional[str] = Field(default=None, max_length=2000)
    expected_version: Optional[int] = None


class SubmitRequest(BaseModel):
    text: Optional[str] = Field(default=None, max_length=10000)
    attachments: List[AttachmentSchema] = Field(default_factory=list)


class AssignmentResponse(BaseModel):
    id: int
    school_id: int
    student_id: int
    teacher_id: int
    title: str
    description: Optional[str]
    due_at: datetime
    status: AssignmentStatus
    late: bool
    reopen_count: int
    version: int
    archived_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class EventResponse(BaseModel):
    id: int
    assignment_id: int
    event_type: str
    from_status: Optional[AssignmentStatus]
    to_status: AssignmentStatus
    actor_id: int
    reason: Optional[str]
    meta_json: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"from_attributes": True}


class SubmissionResponse(BaseModel):
    id: int
    assignment_id: int
    student_id: int
    text: Optional[str]
    attachments_json: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime

    model_config = {"from_attributes": True}


class AssignmentDetailResponse(AssignmentResponse):
    """Assignment plus its full event history and active submission."""

    events: List[EventResponse] = Field(default_factory=list)
    submission: Optional[SubmissionResponse] = None
    rubric_id: Optional[int] = None


class AssignmentListResponse(BaseModel):
    assignments: List[AssignmentResponse]
    total: int


class SubmitResponse(BaseModel):
    assignment: AssignmentResponse
    submission: SubmissionResponse
    is_resubmission: bool


class SubmissionListResponse(BaseModel):
    submissions: List[SubmissionResponse]
    total: int
