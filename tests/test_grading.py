import json

import pytest
from pydantic import ValidationError as SchemaError

from quranakh.errors import (
    ConcurrencyConflict,
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    OutOfRange,
    ValidationError,
)
from quranakh.models import Grade, RubricCriterion, User
from quranakh.schemas.gradebook import (
    BulkGradeItem,
    CriterionCreate,
    CriterionUpdate,
    GradeCreate,
)
from quranakh.services.grading import (
    GradingEngine,
    completion_percentage,
    letter_grade,
    validate_criteria,
    validate_score,
    weighted_score,
)


def _criteria(*weights, max_score=10):
    return [
        CriterionCreate(name=f"Criterion {i}", weight=w, max_score=max_score)
        for i, w in enumerate(weights, start=1)
    ]


@pytest.fixture
def grading():
    return GradingEngine()


@pytest.fixture
def graded_setup(session, school, make_assignment, grading):
    """Assignment with a 50/50 rubric (Tajweed, Fluency) attached."""
    assignment = make_assignment()
    rubric = grading.create_rubric(
        session,
        school.teacher,
        "Recitation",
        [
            CriterionCreate(name="Tajweed", weight=50, max_score=10),
            CriterionCreate(name="Fluency", weight=50, max_score=10),
        ],
    )
    grading.attach_rubric(session, school.teacher, assignment.id, rubric.id)
    return assignment, rubric


# === pure helpers ===

def test_validate_criteria_weights():
    validate_criteria(_criteria(50, 50))
    validate_criteria(_criteria(33.33, 33.33, 33.34))

    with pytest.raises(ValidationError, match="Current total: 90"):
        validate_criteria(_criteria(45, 45))
    with pytest.raises(ValidationError):
        validate_criteria([])
    with pytest.raises(ValidationError):
        validate_criteria(_criteria(150, -50))
    with pytest.raises(ValidationError):
        validate_criteria(_criteria(100, max_score=0))
    with pytest.raises(ValidationError):
        validate_criteria(_criteria(*([5] * 20), 0))


def test_validate_criteria_rejects_non_finite_numbers():
    def raw(weight, max_score=10):
        # skips field validation, as a direct service caller would
        return CriterionCreate.model_construct(name="Raw", weight=weight, max_score=max_score)

    with pytest.raises(ValidationError, match="finite"):
        validate_criteria([raw(50), raw(float("nan")), raw(50)])
    with pytest.raises(ValidationError, match="finite"):
        validate_criteria([raw(100, max_score=float("inf"))])
    with pytest.raises(ValidationError, match="finite"):
        validate_criteria([raw(float("inf")), raw(-float("inf"))])


def test_validate_score_rejects_non_finite_numbers():
    validate_score(5, 10)
    with pytest.raises(OutOfRange):
        validate_score(float("nan"), 10)
    with pytest.raises(OutOfRange):
        validate_score(5, float("inf"))
    with pytest.raises(OutOfRange):
        validate_score(float("inf"), float("inf"))


def test_schemas_reject_nan_from_json():
    body = json.loads(
        '{"assignment_id": 1, "student_id": 2, "criterion_id": 3, "score": NaN}'
    )
    with pytest.raises(SchemaError):
        GradeCreate(**body)
    with pytest.raises(SchemaError):
        GradeCreate(assignment_id=1, student_id=2, criterion_id=3, score=5, max_score=float("inf"))
    with pytest.raises(SchemaError):
        BulkGradeItem(criterion_id=1, score=float("nan"))
    with pytest.raises(SchemaError):
        CriterionCreate(name="Tajweed", weight=float("nan"), max_score=10)
    with pytest.raises(SchemaError):
        CriterionUpdate(max_score=float("inf"))


def test_completion_percentage():
    assert completion_percentage(0, 0) == 0
    assert completion_percentage(1, 3) == 33.3
    assert completion_percentage(2, 2) == 100


def test_letter_grade_boundaries():
    assert letter_grade(90) == "A"
    assert letter_grade(89.99) == "B"
    assert letter_grade(80) == "B"
    assert letter_grade(70) == "C"
    assert letter_grade(60) == "D"
    assert letter_grade(59.9) == "F"


# === engine ===

def test_rubric_creation_rejects_bad_weights(session, school, grading):
    with pytest.raises(ValidationError):
        grading.create_rubric(session, school.teacher, "Broken", _criteria(45, 45))
    with pytest.raises(Forbidden):
        grading.create_rubric(session, school.student, "Mine", _criteria(100))


def test_grading_progress_and_weighted_score(session, school, graded_setup, grading):
    assignment, rubric = graded_setup
    tajweed, fluency = rubric.criteria

    grade, progress = grading.submit_grade(
        session, school.teacher, assignment.id, school.student.id, tajweed.id, 8
    )
    assert grade.max_score == 10
    assert progress.graded_criteria == 1
    assert progress.total_criteria == 2
    assert progress.percentage == 50

    _, progress = grading.submit_grade(
        session, school.teacher, assignment.id, school.student.id, fluency.id, 10
    )
    assert progress.percentage == 100

    _, _, _, overall, weighted = grading.assignment_grades(session, school.teacher, assignment.id)
    assert overall.percentage == 100
    assert weighted == 90


def test_score_out_of_range(session, school, graded_setup, grading):
    assignment, rubric = graded_setup
    criterion = rubric.criteria[0]

    with pytest.raises(OutOfRange) as exc_info:
        grading.submit_grade(
            session, school.teacher, assignment.id, school.student.id, criterion.id, 11
        )
    assert exc_info.value.error_code == "INVALID_SCORE"
    with pytest.raises(OutOfRange):
        grading.submit_grade(
            session, school.teacher, assignment.id, school.student.id, criterion.id, -1
        )
    with pytest.raises(OutOfRange):
        grading.submit_grade(
            session, school.teacher, assignment.id, school.student.id, criterion.id, 5,
            max_score=20,
        )
    assert session.query(Grade).count() == 0


def test_regrading_updates_in_place(session, school, graded_setup, grading):
    assignment, rubric = graded_setup
    criterion = rubric.criteria[0]

    first, _ = grading.submit_grade(
        session, school.teacher, assignment.id, school.student.id, criterion.id, 6
    )
    second, progress = grading.submit_grade(
        session, school.teacher, assignment.id, school.student.id, criterion.id, 9,
        comments="Much better",
    )

    assert second.id == first.id
    assert second.score == 9
    assert second.comments == "Much better"
    assert progress.graded_criteria == 1
    assert session.query(Grade).count() == 1


def test_grade_requires_rubric_and_matching_student(session, school, make_assignment, grading):
    assignment = make_assignment()
    with pytest.raises(InvalidState):
        grading.submit_grade(session, school.teacher, assignment.id, school.student.id, 1, 5)
    with pytest.raises(ValidationError):
        grading.submit_grade(
            session, school.teacher, assignment.id, school.other_student.id, 1, 5
        )


def test_criterion_from_another_rubric(session, school, graded_setup, grading):
    assignment, _ = graded_setup
    other = grading.create_rubric(session, school.teacher, "Other", _criteria(100))
    with pytest.raises(ValidationError):
        grading.submit_grade(
            session, school.teacher, assignment.id, school.student.id, other.criteria[0].id, 5
        )


def test_bulk_grading_is_all_or_nothing(session, school, graded_setup, grading):
    assignment, rubric = graded_setup
    tajweed, fluency = rubric.criteria

    with pytest.raises(OutOfRange):
        grading.submit_grades_bulk(
            session,
            school.teacher,
            assignment.id,
            school.student.id,
            [
                BulkGradeItem(criterion_id=tajweed.id, score=7),
                BulkGradeItem(criterion_id=fluency.id, score=70),
            ],
        )
    assert session.query(Grade).count() == 0

    grades, progress, weighted = grading.submit_grades_bulk(
        session,
        school.teacher,
        assignment.id,
        school.student.id,
        [
            BulkGradeItem(criterion_id=tajweed.id, score=7),
            BulkGradeItem(criterion_id=fluency.id, score=9),
        ],
    )
    assert len(grades) == 2
    assert progress.percentage == 100
    assert weighted == 80


def test_swap_rubric_blocked_after_grading(session, school, graded_setup, grading):
    assignment, rubric = graded_setup
    replacement = grading.create_rubric(session, school.teacher, "Memorisation", _criteria(100))

    # swapping before any grade is allowed
    grading.attach_rubric(session, school.teacher, assignment.id, replacement.id)
    assert grading.attached_rubric(session, assignment.id).id == replacement.id
    grading.attach_rubric(session, school.teacher, assignment.id, rubric.id)

    grading.submit_grade(
        session, school.teacher, assignment.id, school.student.id, rubric.criteria[0].id, 5
    )
    with pytest.raises(Conflict):
        grading.attach_rubric(session, school.teacher, assignment.id, replacement.id)
    # re-attaching the same rubric is a no-op
    grading.attach_rubric(session, school.teacher, assignment.id, rubric.id)


def test_weighted_score_ignores_zero_max():
    class _Row:
        def __init__(self, **kw):
            self.__dict__.update(kw)

    pairs = [
        (_Row(score=5, max_score=10), _Row(weight=60)),
        (_Row(score=0, max_score=0), _Row(weight=40)),
    ]
    assert weighted_score(pairs) == 30


def test_non_finite_scores_never_reach_the_database(session, school, graded_setup, grading):
    assignment, rubric = graded_setup
    criterion = rubric.criteria[0]

    with pytest.raises(OutOfRange):
        grading.submit_grade(
            session, school.teacher, assignment.id, school.student.id, criterion.id,
            float("nan"),
        )
    with pytest.raises(OutOfRange):
        grading.submit_grade(
            session, school.teacher, assignment.id, school.student.id, criterion.id, 5,
            max_score=float("inf"),
        )
    assert session.query(Grade).count() == 0


# === rubric maintenance ===

def test_update_rubric_renames_and_replaces_criteria(session, school, grading):
    rubric = grading.create_rubric(session, school.teacher, "Draft", _criteria(50, 50))

    updated = grading.update_rubric(
        session,
        school.teacher,
        rubric.id,
        name="Hifz review",
        description="Weekly memorisation check",
        criteria=_criteria(30, 70, max_score=5),
    )

    assert updated.name == "Hifz review"
    assert updated.description == "Weekly memorisation check"
    assert [c.weight for c in updated.criteria] == [30, 70]
    assert {c.max_score for c in updated.criteria} == {5}
    assert session.query(RubricCriterion).count() == 2


def test_update_rubric_keeps_criteria_on_bad_weights(session, school, grading):
    rubric = grading.create_rubric(session, school.teacher, "Draft", _criteria(50, 50))

    with pytest.raises(ValidationError):
        grading.update_rubric(session, school.teacher, rubric.id, criteria=_criteria(60, 60))

    session.refresh(rubric)
    assert [c.weight for c in rubric.criteria] == [50, 50]


def test_criterion_edits_keep_weights_at_100(session, school, grading):
    rubric = grading.create_rubric(session, school.teacher, "Recitation", _criteria(50, 50))
    tajweed = rubric.criteria[0]

    with pytest.raises(ValidationError, match="Current total: 110"):
        grading.add_criterion(
            session, school.teacher, rubric.id,
            CriterionCreate(name="Voice", weight=10, max_score=10),
        )
    bonus = grading.add_criterion(
        session, school.teacher, rubric.id,
        CriterionCreate(name="Bonus", weight=0, max_score=5),
    )
    assert bonus.order == 2

    with pytest.raises(ValidationError):
        grading.update_criterion(session, school.teacher, tajweed.id, CriterionUpdate(weight=60))
    relabelled = grading.update_criterion(
        session, school.teacher, tajweed.id,
        CriterionUpdate(name="Makharij", max_score=20),
    )
    assert relabelled.name == "Makharij"
    assert relabelled.max_score == 20
    assert relabelled.weight == 50

    with pytest.raises(ValidationError):
        grading.delete_criterion(session, school.teacher, tajweed.id)
    bonus_id = bonus.id
    grading.delete_criterion(session, school.teacher, bonus_id)

    session.refresh(rubric)
    assert [c.name for c in rubric.criteria] == ["Makharij", "Criterion 2"]
    with pytest.raises(NotFound):
        grading.update_criterion(session, school.teacher, bonus_id, CriterionUpdate(name="x"))


def test_graded_rubric_criteria_are_frozen(session, school, graded_setup, grading):
    assignment, rubric = graded_setup
    tajweed = rubric.criteria[0]
    grading.submit_grade(
        session, school.teacher, assignment.id, school.student.id, tajweed.id, 8
    )

    with pytest.raises(Conflict) as exc_info:
        grading.update_rubric(session, school.teacher, rubric.id, criteria=_criteria(100))
    assert exc_info.value.extra == {"grade_count": 1}
    with pytest.raises(Conflict):
        grading.add_criterion(
            session, school.teacher, rubric.id,
            CriterionCreate(name="Bonus", weight=0, max_score=5),
        )
    with pytest.raises(Conflict):
        grading.update_criterion(
            session, school.teacher, tajweed.id, CriterionUpdate(max_score=20)
        )
    with pytest.raises(Conflict):
        grading.delete_criterion(session, school.teacher, rubric.criteria[1].id)

    # labels may still change
    grading.update_rubric(session, school.teacher, rubric.id, name="Recitation v1")
    renamed = grading.update_criterion(
        session, school.teacher, tajweed.id, CriterionUpdate(description="Rules of recitation")
    )
    assert renamed.description == "Rules of recitation"

    session.refresh(rubric)
    assert rubric.name == "Recitation v1"
    assert [(c.weight, c.max_score) for c in rubric.criteria] == [(50, 10), (50, 10)]


def test_rubric_management_permissions(session, school, grading):
    rubric = grading.create_rubric(session, school.teacher, "Mine", _criteria(100))

    with pytest.raises(Forbidden):
        grading.update_rubric(session, school.other_teacher, rubric.id, name="Theirs")
    with pytest.raises(Forbidden):
        grading.delete_rubric(session, school.other_teacher, rubric.id)
    with pytest.raises(Forbidden):
        grading.update_rubric(session, school.student, rubric.id, name="Student's")

    assert grading.update_rubric(session, school.admin, rubric.id, name="Shared").name == "Shared"
    grading.update_criterion(
        session, school.owner, rubric.criteria[0].id, CriterionUpdate(name="Overall")
    )


def test_delete_rubric_refused_while_attached(session, school, graded_setup, grading):
    _, rubric = graded_setup
    spare = grading.create_rubric(session, school.teacher, "Spare", _criteria(100))

    with pytest.raises(Conflict) as exc_info:
        grading.delete_rubric(session, school.teacher, rubric.id)
    assert exc_info.value.extra == {"assignment_count": 1}

    spare_id = spare.id
    grading.delete_rubric(session, school.teacher, spare_id)
    with pytest.raises(NotFound):
        grading.get_rubric(session, school.teacher, spare_id)
    assert session.query(RubricCriterion).filter_by(rubric_id=spare_id).count() == 0


# === concurrent writers ===

def test_grade_insert_race_between_two_sessions(session, school, graded_setup, session_factory):
    assignment, rubric = graded_setup
    assignment_id = assignment.id
    criterion_id = rubric.criteria[0].id
    teacher_id = school.teacher.id
    student_id = school.student.id
    first, second = session_factory(), session_factory()

    winner = GradingEngine()
    loser = GradingEngine()
    lookup = loser._existing_grade

    def lookup_then_lose_race(db, assignment_row, criterion):
        found = lookup(db, assignment_row, criterion)
        winner.submit_grade(
            first, first.get(User, teacher_id), assignment_id, student_id, criterion_id, 7
        )
        return found

    loser._existing_grade = lookup_then_lose_race

    with pytest.raises(ConcurrencyConflict):
        loser.submit_grade(
            second, second.get(User, teacher_id), assignment_id, student_id, criterion_id, 9
        )

    grades = session.query(Grade).all()
    assert len(grades) == 1
    assert grades[0].score == 7
