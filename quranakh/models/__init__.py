"""SQLAlchemy models."""

from quranakh.models.assignment import Assignment, AssignmentEvent
from quranakh.models.enums import AssignmentStatus, NotificationChannel, UserRole
from quranakh.models.gradebook import AssignmentRubric, Grade, Rubric, RubricCriterion
from quranakh.models.notification import Notification
from quranakh.models.submission import Submission
from quranakh.models.user import ParentStudent, School, User

__all__ = [
    "Assignment",
    "AssignmentEvent",
    "AssignmentRubric",
    "AssignmentStatus",
    "Grade",
    "Notification",
    "NotificationChannel",
    "ParentStudent",
    "Rubric",
    "RubricCriterion",
    "School",
    "Submission",
    "User",
    "UserRole",
]
