"""Assignment and its append-only event history."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from quranakh.db import Base
from quranakh.models.enums import AssignmentStatus


class Assignment(Base):
    """One piece of work given by a teacher to one student.

    ``version`` is the optimistic-concurrency token: every status write is
    ``UPDATE ... WHERE version = <seen>`` and bumps it by one.
    """

    __tablename__ = "assignments"

    # === ownership ===
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    school_id: Mapped[int] = mapped_column(
        ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    teacher_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # === content ===
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # === lifecycle ===
    status: Mapped[AssignmentStatus] = mapped_column(
        Enum(AssignmentStatus), default=AssignmentStatus.ASSIGNED, nullable=False
    )
    late: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)  # now > due_at at submit/complete
    reopen_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # === relations ===
    student = relationship("User", foreign_keys=[student_id])
    teacher = relationship("User", foreign_keys=[teacher_id])
    events = relationship(
        "AssignmentEvent",
        back_populates="assignment",
        order_by="AssignmentEvent.id",
    )
    submissions = relationship(
        "Submission",
        back_populates="assignment",
        order_by="Submission.id",
    )
    rubric_link = relationship("AssignmentRubric", back_populates="assignment", uselist=False)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def __repr__(self) -> str:
        return f"<Assignment(id={self.id}, title={self.title}, status={self.status.value})>"


class AssignmentEvent(Base):
    """Immutable record of a lifecycle step.

    ``from_status`` is null only for the ``created`` event.
    """

    __tablename__ = "assignment_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assignment_id: Mapped[int] = mapped_column(
        ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    from_status: Mapped[Optional[AssignmentStatus]] = mapped_column(Enum(AssignmentStatus))
    to_status: Mapped[AssignmentStatus] = mapped_column(Enum(AssignmentStatus), nullable=False)
    actor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    # e.g. {"actor_role": "teacher", "submission_id": 3, "attachment_count": 1}
    meta_json: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    assignment = relationship("Assignment", back_populates="events")
    actor = relationship("User", foreign_keys=[actor_id])

    def __repr__(self) -> str:
        return f"<AssignmentEvent(id={self.id}, type={self.event_type})>"
