"""Rubric, grade and gradebook models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from quranakh.models.enums import AssignmentStatus


# === Rubrics ===

class CriterionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    weight: float = Field(allow_inf_nan=False)
    max_score: float = Field(allow_inf_nan=False)
    order: Optional[int] = None


class RubricCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    criteria: List[CriterionCreate] = Field(default_factory=list)


class RubricUpdate(BaseModel):
    """Name and description may always change; ``criteria`` replaces the whole set."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    criteria: Optional[List[CriterionCreate]] = None


class CriterionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    weight: Optional[float] = Field(default=None, allow_inf_nan=False)
    max_score: Optional[float] = Field(default=None, allow_inf_nan=False)
    order: Optional[int] = None


class CriterionResponse(BaseModel):
    id: int
    rubric_id: int
    name: str
    description: Optional[str]
    weight: float
    max_score: float
    order: int

    model_config = {"from_attributes": True}


class RubricResponse(BaseModel):
    id: int
    school_id: int
    name: str
    description: Optional[str]
    created_by: int
    created_at: datetime
    criteria: List[CriterionResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class RubricListResponse(BaseModel):
    rubrics: List[RubricResponse]
    total: int


class AttachRubricRequest(BaseModel):
    rubric_id: int


class AttachRubricResponse(BaseModel):
    assignment_id: int
    rubric_id: int
    rubric: RubricResponse


# === Grades ===

class GradeCreate(BaseModel):
    assignment_id: int
    student_id: int
    criterion_id: int
    score: float = Field(allow_inf_nan=False)
    max_score: Optional[float] = Field(default=None, allow_inf_nan=False)
    comments: Optional[str] = Field(default=None, max_length=2000)


class BulkGradeItem(BaseModel):
    criterion_id: int
    score: float = Field(allow_inf_nan=False)
    comments: Optional[str] = Field(default=None, max_length=2000)


class BulkGradeCreate(BaseModel):
    assignment_id: int
    student_id: int
    grades: List[BulkGradeItem] = Field(min_length=1)


class GradeResponse(BaseModel):
    id: int
    assignment_id: int
    student_id: int
    criterion_id: int
    score: float
    max_score: float
    comments: Optional[str]
    graded_by: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class GradingProgress(BaseModel):
    graded_criteria: int
    total_criteria: int
    percentage: float


class GradeWithProgressResponse(BaseModel):
    grade: GradeResponse
    overall_progress: GradingProgress


class BulkGradeResponse(BaseModel):
    grades: List[GradeResponse]
    overall_progress: GradingProgress
    weighted_score: float


class AssignmentGradesResponse(BaseModel):
    assignment_id: int
    student_id: int
    rubric: Optional[RubricResponse]
    grades: List[GradeResponse]
    overall_progress: GradingProgress
    weighted_score: float


# === Gradebook ===

class GradebookEntry(BaseModel):
    assignment_id: int
    assignment_title: str
    assignment_due_at: datetime
    assignment_status: AssignmentStatus
    rubric_id: int
    rubric_name: str
    graded_criteria: int
    total_criteria: int
    completion_percentage: float
    weighted_score: float
    letter_grade: str
    graded_at: Optional[datetime]
    grades: List[GradeResponse] = Field(default_factory=list)


class GradebookStats(BaseModel):
    total_assignments: int
    fully_graded_assignments: int
    average_score: float
    highest_score: float
    lowest_score: float
    letter_grade: str


class StudentGradebook(BaseModel):
    student_id: int
    student_name: str
    entries: List[GradebookEntry]
    stats: GradebookStats


class ParentGradebook(BaseModel):
    parent_id: int
    children: List[StudentGradebook]


class StudentSummary(BaseModel):
    student_id: int
    student_name: str
    total_assignments: int
    total_grades: int
    average_score: float
    letter_grade: str
    last_graded: Optional[datetime]


class SchoolGradebook(BaseModel):
    school_id: int
    teacher_id: Optional[int] = None
    total_students_with_grades: int
    total_assignments: int
    total_grades: int
    school_wide_average: float
    students: List[StudentSummary]
