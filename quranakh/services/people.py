"""Schools, users and parent-child links."""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from quranakh.db import transaction
from quranakh.errors import Conflict, Forbidden, NotFound, ValidationError
from quranakh.models import ParentStudent, School, User, UserRole

logger = logging.getLogger(__name__)


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.scalars(select(User).where(User.username == username)).first()


def get_school_member(
    db: Session, school_id: int, user_id: int, role: Optional[UserRole] = None
) -> User:
    """Load a user of ``school_id``; other schools' users are reported as missing."""
    user = db.get(User, user_id)
    if user is None or user.school_id != school_id:
        raise NotFound(f"User {user_id} not found")
    if role is not None and user.role != role:
        raise NotFound(f"{role.value.capitalize()} {user_id} not found")
    return user


def linked_student_ids(db: Session, parent_id: int) -> Set[int]:
    stmt = select(ParentStudent.student_id).where(ParentStudent.parent_id == parent_id)
    return set(db.scalars(stmt).all())


def is_parent_of(db: Session, parent_id: int, student_id: int) -> bool:
    stmt = select(ParentStudent.id).where(
        ParentStudent.parent_id == parent_id, ParentStudent.student_id == student_id
    )
    return db.scalars(stmt).first() is not None


class PeopleService:
    def register_school(
        self, db: Session, school_name: str, username: str, password_hash: str, name: str
    ) -> User:
        """Create a school together with its owner account."""
        with transaction(db):
            if get_user_by_username(db, username):
                raise Conflict("Username already exists")
            school = School(name=school_name)
            db.add(school)
            db.flush()
            owner = User(
                school_id=school.id,
                username=username,
                password_hash=password_hash,
                role=UserRole.OWNER,
                name=name,
            )
            db.add(owner)
        db.refresh(owner)
        logger.info("Registered school %s with owner %s", owner.school_id, owner.id)
        return owner

    def register_user(
        self,
        db: Session,
        school_id: int,
        username: str,
        password_hash: str,
        name: str,
        role: UserRole,
    ) -> User:
        if role == UserRole.OWNER:
            raise ValidationError("Owners are created with their school")
        with transaction(db):
            if db.get(School, school_id) is None:
                raise NotFound(f"School {school_id} not found")
            if get_user_by_username(db, username):
                raise Conflict("Username already exists")
            user = User(
                school_id=school_id,
                username=username,
                password_hash=password_hash,
                role=role,
                name=name,
            )
            db.add(user)
        db.refresh(user)
        return user

    def link_parent(self, db: Session, actor: User, parent_id: int, student_id: int) -> ParentStudent:
        if actor.role not in (UserRole.OWNER, UserRole.ADMIN):
            raise Forbidden("Only school owners and admins can link parents")
        with transaction(db):
            get_school_member(db, actor.school_id, parent_id, UserRole.PARENT)
            get_school_member(db, actor.school_id, student_id, UserRole.STUDENT)
            existing = db.scalars(
                select(ParentStudent).where(
                    ParentStudent.parent_id == parent_id,
                    ParentStudent.student_id == student_id,
                )
            ).first()
            if existing:
                return existing
            link = ParentStudent(parent_id=parent_id, student_id=student_id)
            db.add(link)
        db.refresh(link)
        return link

    def children_of(self, db: Session, parent: User) -> List[User]:
        ids = linked_student_ids(db, parent.id)
        if not ids:
            return []
        stmt = select(User).where(User.id.in_(ids)).order_by(User.id.asc())
        return list(db.scalars(stmt).all())
