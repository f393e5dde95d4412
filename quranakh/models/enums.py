"""Enumerations shared by the models: roles, assignment status, notification channel."""

import enum


class UserRole(str, enum.Enum):
    """Closed set of school roles."""
    OWNER = "owner"
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"

    @property
    def is_staff(self) -> bool:
        return self in (UserRole.OWNER, UserRole.ADMIN, UserRole.TEACHER)


class AssignmentStatus(str, enum.Enum):
    """Assignment lifecycle states.

    assigned -> viewed -> submitted -> reviewed -> completed -> reopened -> viewed ...
    """
    ASSIGNED = "assigned"
    VIEWED = "viewed"
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    COMPLETED = "completed"
    REOPENED = "reopened"


class NotificationChannel(str, enum.Enum):
    IN_APP = "in_app"
    EMAIL = "email"
