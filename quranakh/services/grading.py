"""Rubric and grading engine.

Weights are percentages that must add up to 100; a criterion's contribution
to the weighted score is ``score / max_score * weight``, so a fully graded
rubric lands in ``[0, 100]``.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from quranakh.db import transaction
from quranakh.errors import (
    ConcurrencyConflict,
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    OutOfRange,
    ValidationError,
)
from quranakh.models import (
    Assignment,
    AssignmentRubric,
    Grade,
    Rubric,
    RubricCriterion,
    User,
    UserRole,
)
from quranakh.schemas.gradebook import (
    BulkGradeItem,
    CriterionCreate,
    CriterionUpdate,
    GradingProgress,
)
from quranakh.services.assignments import AssignmentService
from quranakh.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

REQUIRED_WEIGHT_TOTAL = 100.0
WEIGHT_TOLERANCE = 0.01
MAX_CRITERIA_PER_RUBRIC = 20


# === pure helpers ===

def validate_criteria(criteria: Sequence[CriterionCreate]) -> None:
    if not criteria:
        raise ValidationError("Rubric must have at least one criterion")
    if len(criteria) > MAX_CRITERIA_PER_RUBRIC:
        raise ValidationError(
            f"Rubric cannot have more than {MAX_CRITERIA_PER_RUBRIC} criteria"
        )
    for criterion in criteria:
        if not (math.isfinite(criterion.weight) and math.isfinite(criterion.max_score)):
            raise ValidationError(
                f"Criterion '{criterion.name}' weight and max_score must be finite numbers"
            )
        if criterion.weight < 0 or criterion.weight > REQUIRED_WEIGHT_TOTAL:
            raise ValidationError(
                f"Criterion '{criterion.name}' weight must be between 0 and 100, "
                f"got {criterion.weight}"
            )
        if criterion.max_score <= 0:
            raise ValidationError(
                f"Criterion '{criterion.name}' max_score must be greater than 0"
            )
    total = sum(c.weight for c in criteria)
    if abs(total - REQUIRED_WEIGHT_TOTAL) > WEIGHT_TOLERANCE:
        raise ValidationError(
            f"Criterion weights must sum to 100. Current total: {total:g}",
            extra={"total_weight": total},
        )


def validate_score(score: float, max_score: float) -> None:
    if not (math.isfinite(score) and math.isfinite(max_score)):
        raise OutOfRange("score and max_score must be finite numbers")
    if max_score <= 0:
        raise OutOfRange(f"max_score must be greater than 0, got {max_score:g}")
    if score < 0:
        raise OutOfRange(f"Score cannot be negative. Got: {score:g}")
    if score > max_score:
        raise OutOfRange(f"Score ({score:g}) cannot exceed max_score ({max_score:g})")


def completion_percentage(graded: int, total: int) -> float:
    """``graded / total * 100`` to one decimal; zero criteria yields 0."""
    if total <= 0:
        return 0.0
    return round(graded / total * 100, 1)


def weighted_score(pairs: Iterable[Tuple[Grade, RubricCriterion]]) -> float:
    """Sum of ``score / max_score * weight`` over graded criteria."""
    total = 0.0
    for grade, criterion in pairs:
        if grade.max_score <= 0:
            continue
        total += grade.score / grade.max_score * criterion.weight
    return round(min(max(total, 0.0), REQUIRED_WEIGHT_TOTAL), 2)


def letter_grade(percentage: float) -> str:
    if percentage >= 90:
        return "A"
    if percentage >= 80:
        return "B"
    if percentage >= 70:
        return "C"
    if percentage >= 60:
        return "D"
    return "F"


def progress(graded: int, total: int) -> GradingProgress:
    return GradingProgress(
        graded_criteria=graded,
        total_criteria=total,
        percentage=completion_percentage(graded, total),
    )


def _criterion_from(item: CriterionCreate, index: int) -> RubricCriterion:
    return RubricCriterion(
        name=item.name,
        description=item.description,
        weight=item.weight,
        max_score=item.max_score,
        order=item.order if item.order is not None else index,
    )


def _as_create(criterion: RubricCriterion, **changes) -> CriterionCreate:
    values = {
        "name": criterion.name,
        "description": criterion.description,
        "weight": criterion.weight,
        "max_score": criterion.max_score,
        "order": criterion.order,
    }
    values.update(changes)
    return CriterionCreate(**values)


class GradingEngine:
    """Rubric lifecycle and grade upserts."""

    def __init__(self, assignments: Optional[AssignmentService] = None) -> None:
        self.assignments = assignments or AssignmentService()

    # === rubrics ===

    def create_rubric(
        self,
        db: Session,
        actor: User,
        name: str,
        criteria: Sequence[CriterionCreate],
        description: Optional[str] = None,
    ) -> Rubric:
        if not actor.role.is_staff:
            raise Forbidden("Only teachers, admins and owners can create rubrics")
        validate_criteria(criteria)

        with transaction(db):
            rubric = Rubric(
                school_id=actor.school_id,
                name=name,
                description=description,
                created_by=actor.id,
            )
            for index, item in enumerate(criteria):
                rubric.criteria.append(_criterion_from(item, index))
            db.add(rubric)
        db.refresh(rubric)
        logger.info("Created rubric %s with %d criteria", rubric.id, len(criteria))
        return rubric

    def get_rubric(self, db: Session, actor: User, rubric_id: int) -> Rubric:
        rubric = db.get(Rubric, rubric_id)
        if rubric is None or rubric.school_id != actor.school_id:
            raise NotFound(f"Rubric {rubric_id} not found")
        return rubric

    def list_rubrics(self, db: Session, actor: User) -> List[Rubric]:
        stmt = (
            select(Rubric)
            .where(Rubric.school_id == actor.school_id)
            .options(selectinload(Rubric.criteria))
            .order_by(Rubric.id.asc())
        )
        return list(db.scalars(stmt).all())

    def update_rubric(
        self,
        db: Session,
        actor: User,
        rubric_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        criteria: Optional[Sequence[CriterionCreate]] = None,
    ) -> Rubric:
        """Rename or redescribe a rubric, or replace its criteria wholesale.

        Replacing criteria is refused with ``Conflict`` once any grade
        references the rubric.
        """
        with transaction(db):
            rubric = self._manageable(db, actor, rubric_id)
            if criteria is not None:
                self._ensure_ungraded(db, rubric)
                validate_criteria(criteria)
                rubric.criteria.clear()
                db.flush()  # orphans are deleted before the new set is inserted
                for index, item in enumerate(criteria):
                    rubric.criteria.append(_criterion_from(item, index))
            if name is not None:
                rubric.name = name
            if description is not None:
                rubric.description = description
        db.refresh(rubric)
        logger.info("Updated rubric %s", rubric.id)
        return rubric

    def delete_rubric(self, db: Session, actor: User, rubric_id: int) -> None:
        with transaction(db):
            rubric = self._manageable(db, actor, rubric_id)
            in_use = db.scalar(
                select(func.count())
                .select_from(AssignmentRubric)
                .where(AssignmentRubric.rubric_id == rubric.id)
            ) or 0
            if in_use:
                raise Conflict(
                    f"Cannot delete rubric '{rubric.name}'. "
                    f"It is used by {in_use} assignment(s)",
                    extra={"assignment_count": in_use},
                )
            db.delete(rubric)
        logger.info("Deleted rubric %s", rubric_id)

    def add_criterion(
        self, db: Session, actor: User, rubric_id: int, item: CriterionCreate
    ) -> RubricCriterion:
        """Append a criterion; the enlarged set must still weigh 100 in total."""
        with transaction(db):
            rubric = self._manageable(db, actor, rubric_id)
            self._ensure_ungraded(db, rubric)
            validate_criteria([_as_create(c) for c in rubric.criteria] + [item])
            criterion = _criterion_from(item, len(rubric.criteria))
            rubric.criteria.append(criterion)
        db.refresh(criterion)
        return criterion

    def update_criterion(
        self, db: Session, actor: User, criterion_id: int, changes: CriterionUpdate
    ) -> RubricCriterion:
        """Edit one criterion.

        Labels and order may change at any time. Weight and max_score are
        frozen once the rubric is graded.
        """
        with transaction(db):
            criterion, rubric = self._manageable_criterion(db, actor, criterion_id)
            fields = changes.model_dump(exclude_unset=True, exclude_none=True)
            if {"weight", "max_score"} & fields.keys():
                self._ensure_ungraded(db, rubric)
                proposed = [
                    _as_create(c, **fields) if c.id == criterion.id else _as_create(c)
                    for c in rubric.criteria
                ]
                validate_criteria(proposed)
            for key, value in fields.items():
                setattr(criterion, key, value)
        db.refresh(criterion)
        return criterion

    def delete_criterion(self, db: Session, actor: User, criterion_id: int) -> None:
        with transaction(db):
            criterion, rubric = self._manageable_criterion(db, actor, criterion_id)
            self._ensure_ungraded(db, rubric)
            validate_criteria([_as_create(c) for c in rubric.criteria if c.id != criterion.id])
            rubric.criteria.remove(criterion)
        logger.info("Deleted criterion %s from rubric %s", criterion_id, rubric.id)

    def attached_rubric(self, db: Session, assignment_id: int) -> Optional[Rubric]:
        link = db.get(AssignmentRubric, assignment_id)
        return link.rubric if link else None

    def attach_rubric(
        self, db: Session, actor: User, assignment_id: int, rubric_id: int
    ) -> Rubric:
        """One rubric per assignment; swapping is refused once grades exist."""
        if not actor.role.is_staff:
            raise Forbidden("Only teachers, admins and owners can attach rubrics")
        with transaction(db):
            assignment = self.assignments.get_visible(db, assignment_id, actor)
            if assignment.is_archived:
                raise InvalidState(f"Assignment {assignment_id} is archived")
            rubric = self.get_rubric(db, actor, rubric_id)

            link = db.get(AssignmentRubric, assignment.id)
            if link is None:
                db.add(AssignmentRubric(assignment_id=assignment.id, rubric_id=rubric.id))
            elif link.rubric_id != rubric.id:
                if self._grade_count(db, assignment.id) > 0:
                    raise Conflict(
                        f"Assignment {assignment_id} already has grades against "
                        f"rubric {link.rubric_id}",
                        extra={"attached_rubric_id": link.rubric_id},
                    )
                link.rubric_id = rubric.id
        db.refresh(rubric)
        return rubric

    # === grades ===

    def submit_grade(
        self,
        db: Session,
        actor: User,
        assignment_id: int,
        student_id: int,
        criterion_id: int,
        score: float,
        max_score: Optional[float] = None,
        comments: Optional[str] = None,
    ) -> Tuple[Grade, GradingProgress]:
        """Upsert one criterion grade and return it with the assignment's progress."""
        with transaction(db):
            assignment, rubric = self._gradable(db, actor, assignment_id, student_id)
            criterion = self._criterion_of(rubric, criterion_id)
            grade = self._upsert(
                db, actor, assignment, criterion, score, max_score, comments
            )
        db.refresh(grade)
        graded = self._grade_count(db, assignment_id, student_id)
        logger.info(
            "Graded assignment %s criterion %s: %s/%s",
            assignment_id, criterion_id, grade.score, grade.max_score,
        )
        return grade, progress(graded, len(rubric.criteria))

    def submit_grades_bulk(
        self,
        db: Session,
        actor: User,
        assignment_id: int,
        student_id: int,
        items: Sequence[BulkGradeItem],
    ) -> Tuple[List[Grade], GradingProgress, float]:
        """All-or-nothing grading of several criteria."""
        with transaction(db):
            assignment, rubric = self._gradable(db, actor, assignment_id, student_id)
            grades = [
                self._upsert(
                    db,
                    actor,
                    assignment,
                    self._criterion_of(rubric, item.criterion_id),
                    item.score,
                    None,
                    item.comments,
                )
                for item in items
            ]
        for grade in grades:
            db.refresh(grade)
        pairs = self.grades_with_criteria(db, assignment_id, student_id)
        return (
            grades,
            progress(len(pairs), len(rubric.criteria)),
            weighted_score(pairs),
        )

    def grades_with_criteria(
        self, db: Session, assignment_id: int, student_id: int
    ) -> List[Tuple[Grade, RubricCriterion]]:
        stmt = (
            select(Grade, RubricCriterion)
            .join(RubricCriterion, Grade.criterion_id == RubricCriterion.id)
            .where(Grade.assignment_id == assignment_id, Grade.student_id == student_id)
            .order_by(RubricCriterion.order.asc(), RubricCriterion.id.asc())
        )
        return [(grade, criterion) for grade, criterion in db.execute(stmt).all()]

    def assignment_grades(
        self, db: Session, actor: User, assignment_id: int
    ) -> Tuple[Assignment, Optional[Rubric], List[Grade], GradingProgress, float]:
        assignment = self.assignments.get_visible(db, assignment_id, actor)
        rubric = self.attached_rubric(db, assignment.id)
        pairs = self.grades_with_criteria(db, assignment.id, assignment.student_id)
        total = len(rubric.criteria) if rubric else 0
        return (
            assignment,
            rubric,
            [grade for grade, _ in pairs],
            progress(len(pairs), total),
            weighted_score(pairs),
        )

    # === internals ===

    def _gradable(
        self, db: Session, actor: User, assignment_id: int, student_id: int
    ) -> Tuple[Assignment, Rubric]:
        if not actor.role.is_staff:
            raise Forbidden("Only teachers can submit grades")
        assignment = self.assignments.get_visible(db, assignment_id, actor)
        if assignment.is_archived:
            raise InvalidState(f"Assignment {assignment_id} is archived")
        if assignment.student_id != student_id:
            raise ValidationError(
                f"Student {student_id} is not assigned to assignment {assignment_id}"
            )
        rubric = self.attached_rubric(db, assignment.id)
        if rubric is None:
            raise InvalidState(f"Assignment {assignment_id} has no rubric attached")
        return assignment, rubric

    def _criterion_of(self, rubric: Rubric, criterion_id: int) -> RubricCriterion:
        criteria: Dict[int, RubricCriterion] = {c.id: c for c in rubric.criteria}
        criterion = criteria.get(criterion_id)
        if criterion is None:
            raise ValidationError(
                f"Criterion {criterion_id} does not belong to this assignment's rubric"
            )
        return criterion

    def _existing_grade(
        self, db: Session, assignment: Assignment, criterion: RubricCriterion
    ) -> Optional[Grade]:
        return db.scalars(
            select(Grade).where(
                Grade.assignment_id == assignment.id,
                Grade.student_id == assignment.student_id,
                Grade.criterion_id == criterion.id,
            )
        ).first()

    def _upsert(
        self,
        db: Session,
        actor: User,
        assignment: Assignment,
        criterion: RubricCriterion,
        score: float,
        max_score: Optional[float],
        comments: Optional[str],
    ) -> Grade:
        bound = criterion.max_score if max_score is None else max_score
        if bound > criterion.max_score:
            raise OutOfRange(
                f"max_score ({bound:g}) cannot exceed the criterion's "
                f"max_score ({criterion.max_score:g})"
            )
        validate_score(score, bound)

        grade = self._existing_grade(db, assignment, criterion)
        if grade is None:
            grade = Grade(
                assignment_id=assignment.id,
                student_id=assignment.student_id,
                criterion_id=criterion.id,
            )
            db.add(grade)
        grade.score = score
        grade.max_score = bound
        grade.comments = comments
        grade.graded_by = actor.id
        grade.updated_at = utcnow()
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflict(
                f"Criterion {criterion.id} was graded concurrently; re-read and retry"
            ) from exc
        return grade

    def _manageable(self, db: Session, actor: User, rubric_id: int) -> Rubric:
        """Owners and admins manage every rubric of their school, teachers their own."""
        rubric = self.get_rubric(db, actor, rubric_id)
        if not actor.role.is_staff:
            raise Forbidden("Only teachers, admins and owners can change rubrics")
        if actor.role == UserRole.TEACHER and rubric.created_by != actor.id:
            raise Forbidden("Teachers can only change rubrics they created")
        return rubric

    def _manageable_criterion(
        self, db: Session, actor: User, criterion_id: int
    ) -> Tuple[RubricCriterion, Rubric]:
        criterion = db.get(RubricCriterion, criterion_id)
        if criterion is None:
            raise NotFound(f"Criterion {criterion_id} not found")
        rubric = self._manageable(db, actor, criterion.rubric_id)
        return criterion, rubric

    def _ensure_ungraded(self, db: Session, rubric: Rubric) -> None:
        graded = db.scalar(
            select(func.count(Grade.id))
            .join(RubricCriterion, Grade.criterion_id == RubricCriterion.id)
            .where(RubricCriterion.rubric_id == rubric.id)
        ) or 0
        if graded:
            raise Conflict(
                f"Rubric '{rubric.name}' has {graded} grade(s); its criteria can no longer change",
                extra={"grade_count": graded},
            )

    def _grade_count(
        self, db: Session, assignment_id: int, student_id: Optional[int] = None
    ) -> int:
        stmt = select(func.count(Grade.id)).where(Grade.assignment_id == assignment_id)
        if student_id is not None:
            stmt = stmt.where(Grade.student_id == student_id)
        return db.scalar(stmt) or 0
