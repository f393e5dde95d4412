"""Gradebook aggregation for student, parent and teacher views.

Authorization (who may read whose gradebook) is decided by the routes; this
module only aggregates.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from quranakh.errors import NotFound
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
    GradebookEntry,
    GradebookStats,
    GradeResponse,
    ParentGradebook,
    SchoolGradebook,
    StudentGradebook,
    StudentSummary,
)
from quranakh.services.grading import completion_percentage, letter_grade, weighted_score
from quranakh.services.people import linked_student_ids
from quranakh.utils.timeutils import ensure_utc


class GradebookAggregator:
    def student_gradebook(self, db: Session, student_id: int) -> StudentGradebook:
        student = db.get(User, student_id)
        if student is None or student.role != UserRole.STUDENT:
            raise NotFound(f"Student {student_id} not found")

        entries = self.entries_for(db, student_id)
        return StudentGradebook(
            student_id=student.id,
            student_name=student.name,
            entries=entries,
            stats=self.stats(entries),
        )

    def parent_gradebook(
        self, db: Session, parent_id: int, child_id: Optional[int] = None
    ) -> ParentGradebook:
        """Gradebooks of the parent's linked children, optionally just one of them.

        An unlinked ``child_id`` yields no children rather than an error.
        """
        children = sorted(linked_student_ids(db, parent_id))
        if child_id is not None:
            children = [c for c in children if c == child_id]
        return ParentGradebook(
            parent_id=parent_id,
            children=[self.student_gradebook(db, c) for c in children],
        )

    def school_gradebook(self, db: Session, actor: User) -> SchoolGradebook:
        """Per-student summaries, best average first.

        Owners and admins see the whole school. A teacher sees only the
        assignments they gave.
        """
        teacher_id = actor.id if actor.role == UserRole.TEACHER else None
        stmt = (
            select(User)
            .join(Assignment, Assignment.student_id == User.id)
            .join(Grade, Grade.assignment_id == Assignment.id)
            .where(Assignment.school_id == actor.school_id, Assignment.archived_at.is_(None))
            .distinct()
            .order_by(User.id.asc())
        )
        if teacher_id is not None:
            stmt = stmt.where(Assignment.teacher_id == teacher_id)

        # students with any grade in scope; entries_for applies the rubric rules
        summaries: List[StudentSummary] = []
        assignment_ids = set()
        for student in db.scalars(stmt).all():
            entries = self.entries_for(db, student.id, teacher_id=teacher_id)
            if not entries:
                continue
            stats = self.stats(entries)
            assignment_ids.update(e.assignment_id for e in entries)
            summaries.append(
                StudentSummary(
                    student_id=student.id,
                    student_name=student.name,
                    total_assignments=len(entries),
                    total_grades=sum(e.graded_criteria for e in entries),
                    average_score=stats.average_score,
                    letter_grade=stats.letter_grade,
                    last_graded=max(e.graded_at for e in entries),
                )
            )
        summaries.sort(key=lambda s: s.average_score, reverse=True)

        averages = [s.average_score for s in summaries]
        return SchoolGradebook(
            school_id=actor.school_id,
            teacher_id=teacher_id,
            total_students_with_grades=len(summaries),
            total_assignments=len(assignment_ids),
            total_grades=sum(s.total_grades for s in summaries),
            school_wide_average=round(sum(averages) / len(averages), 1) if averages else 0.0,
            students=summaries,
        )

    def entries_for(
        self, db: Session, student_id: int, teacher_id: Optional[int] = None
    ) -> List[GradebookEntry]:
        """One entry per assignment that has a rubric and at least one grade."""
        stmt = (
            select(Assignment, Rubric)
            .join(AssignmentRubric, AssignmentRubric.assignment_id == Assignment.id)
            .join(Rubric, Rubric.id == AssignmentRubric.rubric_id)
            .where(Assignment.student_id == student_id, Assignment.archived_at.is_(None))
            .order_by(Assignment.due_at.asc(), Assignment.id.asc())
        )
        if teacher_id is not None:
            stmt = stmt.where(Assignment.teacher_id == teacher_id)
        rows = db.execute(stmt).all()
        if not rows:
            return []

        grades_by_assignment: Dict[int, List[Tuple[Grade, RubricCriterion]]] = defaultdict(list)
        graded = db.execute(
            select(Grade, RubricCriterion)
            .join(RubricCriterion, Grade.criterion_id == RubricCriterion.id)
            .where(
                Grade.student_id == student_id,
                Grade.assignment_id.in_([assignment.id for assignment, _ in rows]),
            )
            .order_by(RubricCriterion.order.asc(), RubricCriterion.id.asc())
        ).all()
        for grade, criterion in graded:
            grades_by_assignment[grade.assignment_id].append((grade, criterion))

        entries: List[GradebookEntry] = []
        for assignment, rubric in rows:
            # grades against a swapped-out rubric do not count
            pairs = [
                (g, c) for g, c in grades_by_assignment.get(assignment.id, [])
                if c.rubric_id == rubric.id
            ]
            if not pairs:
                continue
            entries.append(self._entry(assignment, rubric, pairs))
        return entries

    def stats(self, entries: List[GradebookEntry]) -> GradebookStats:
        scores = [e.weighted_score for e in entries]
        average = round(sum(scores) / len(scores), 1) if scores else 0.0
        return GradebookStats(
            total_assignments=len(entries),
            fully_graded_assignments=sum(
                1 for e in entries if e.graded_criteria == e.total_criteria
            ),
            average_score=average,
            highest_score=max(scores) if scores else 0.0,
            lowest_score=min(scores) if scores else 0.0,
            letter_grade=letter_grade(average),
        )

    def _entry(
        self,
        assignment: Assignment,
        rubric: Rubric,
        pairs: List[Tuple[Grade, RubricCriterion]],
    ) -> GradebookEntry:
        score = weighted_score(pairs)
        graded_at = max(ensure_utc(g.updated_at) for g, _ in pairs)
        return GradebookEntry(
            assignment_id=assignment.id,
            assignment_title=assignment.title,
            assignment_due_at=assignment.due_at,
            assignment_status=assignment.status,
            rubric_id=rubric.id,
            rubric_name=rubric.name,
            graded_criteria=len(pairs),
            total_criteria=len(rubric.criteria),
            completion_percentage=completion_percentage(len(pairs), len(rubric.criteria)),
            weighted_score=score,
            letter_grade=letter_grade(score),
            graded_at=graded_at,
            grades=[GradeResponse.model_validate(g) for g, _ in pairs],
        )
