from datetime import timedelta

import pytest

from quranakh.errors import NotFound
from quranakh.schemas.gradebook import BulkGradeItem, CriterionCreate
from quranakh.services.gradebook import GradebookAggregator
from quranakh.services.grading import GradingEngine


@pytest.fixture
def grading():
    return GradingEngine()


def _graded_assignment(
    session, school, make_assignment, grading, title, scores, due_in, teacher=None, student=None
):
    teacher = teacher or school.teacher
    student = student or school.student
    assignment = make_assignment(title=title, due_in=due_in, actor=teacher, student_id=student.id)
    rubric = grading.create_rubric(
        session,
        teacher,
        f"{title} rubric",
        [
            CriterionCreate(name="Accuracy", weight=60, max_score=10),
            CriterionCreate(name="Tajweed", weight=40, max_score=10),
        ],
    )
    grading.attach_rubric(session, teacher, assignment.id, rubric.id)
    items = [
        BulkGradeItem(criterion_id=c.id, score=s) for c, s in zip(rubric.criteria, scores)
    ]
    if items:
        grading.submit_grades_bulk(session, teacher, assignment.id, student.id, items)
    return assignment


def test_student_gradebook_entries_and_stats(session, school, make_assignment, grading):
    first = _graded_assignment(
        session, school, make_assignment, grading, "Al-Fatiha", [10, 10], timedelta(days=1)
    )
    second = _graded_assignment(
        session, school, make_assignment, grading, "Al-Ikhlas", [5], timedelta(days=2)
    )
    # rubric attached but nothing graded yet: not listed
    _graded_assignment(
        session, school, make_assignment, grading, "An-Nas", [], timedelta(days=3)
    )

    book = GradebookAggregator().student_gradebook(session, school.student.id)

    assert book.student_name == school.student.name
    assert [e.assignment_id for e in book.entries] == [first.id, second.id]
    full, partial = book.entries
    assert full.weighted_score == 100
    assert full.letter_grade == "A"
    assert full.completion_percentage == 100
    assert partial.graded_criteria == 1
    assert partial.completion_percentage == 50
    assert partial.weighted_score == 30
    assert partial.graded_at is not None

    assert book.stats.total_assignments == 2
    assert book.stats.fully_graded_assignments == 1
    assert book.stats.average_score == 65
    assert book.stats.highest_score == 100
    assert book.stats.lowest_score == 30
    assert book.stats.letter_grade == "D"


def test_empty_gradebook(session, school):
    book = GradebookAggregator().student_gradebook(session, school.other_student.id)
    assert book.entries == []
    assert book.stats.average_score == 0
    assert book.stats.letter_grade == "F"


def test_student_gradebook_rejects_non_students(session, school):
    with pytest.raises(NotFound):
        GradebookAggregator().student_gradebook(session, school.teacher.id)


def test_parent_gradebook_lists_linked_children(session, school, make_assignment, grading):
    _graded_assignment(
        session, school, make_assignment, grading, "Al-Fatiha", [8, 6], timedelta(days=1)
    )
    aggregator = GradebookAggregator()

    book = aggregator.parent_gradebook(session, school.parent.id)
    assert book.parent_id == school.parent.id
    assert [c.student_id for c in book.children] == [school.student.id]
    assert book.children[0].entries[0].weighted_score == 72

    only = aggregator.parent_gradebook(session, school.parent.id, child_id=school.student.id)
    assert len(only.children) == 1
    unlinked = aggregator.parent_gradebook(
        session, school.parent.id, child_id=school.other_student.id
    )
    assert unlinked.children == []


def test_school_gradebook_ranks_students(session, school, make_assignment, grading):
    _graded_assignment(
        session, school, make_assignment, grading, "Al-Fatiha", [10, 10], timedelta(days=1)
    )
    _graded_assignment(
        session, school, make_assignment, grading, "Al-Ikhlas", [5, 5], timedelta(days=2),
        student=school.other_student,
    )
    _graded_assignment(
        session, school, make_assignment, grading, "An-Nas", [10, 10], timedelta(days=3),
        teacher=school.other_teacher, student=school.other_student,
    )
    aggregator = GradebookAggregator()

    book = aggregator.school_gradebook(session, school.owner)
    assert book.teacher_id is None
    assert book.total_students_with_grades == 2
    assert book.total_assignments == 3
    assert book.total_grades == 6
    assert [s.student_id for s in book.students] == [school.student.id, school.other_student.id]
    best, second = book.students
    assert best.average_score == 100
    assert best.letter_grade == "A"
    assert second.total_assignments == 2
    assert second.average_score == 75
    assert second.letter_grade == "C"
    assert book.school_wide_average == 87.5

    # a teacher only sees the assignments they gave
    own = aggregator.school_gradebook(session, school.teacher)
    assert own.teacher_id == school.teacher.id
    assert [(s.student_id, s.average_score) for s in own.students] == [
        (school.student.id, 100),
        (school.other_student.id, 50),
    ]
    assert own.school_wide_average == 75

    other = aggregator.school_gradebook(session, school.other_teacher)
    assert [s.student_id for s in other.students] == [school.other_student.id]
    assert other.total_assignments == 1


def test_school_gradebook_without_grades(session, school, make_assignment, grading):
    _graded_assignment(
        session, school, make_assignment, grading, "Al-Kawthar", [], timedelta(days=1)
    )
    book = GradebookAggregator().school_gradebook(session, school.admin)
    assert book.students == []
    assert book.total_students_with_grades == 0
    assert book.school_wide_average == 0
