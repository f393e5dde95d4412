import os
import sys
from datetime import timedelta
from types import SimpleNamespace

import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("QURANAKH_DATABASE_URL", "sqlite:///:memory:")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from quranakh.api.v1.auth import create_token, hash_password
from quranakh.db import Base, get_db
from quranakh.main import app
from quranakh.models import School, User, UserRole
from quranakh.services.assignments import AssignmentService
from quranakh.services.people import PeopleService
from quranakh.utils.timeutils import utcnow

# Use in-memory SQLite for testing to ensure isolation
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(scope="function")
def session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(session):
    """Open extra sessions on the test database, e.g. to race two writers."""
    opened = []

    def _open():
        db = TestingSessionLocal()
        opened.append(db)
        return db

    yield _open
    for db in opened:
        db.close()


@pytest.fixture(scope="function")
def client(session):
    """
    Create a TestClient that uses the override_get_db dependency.
    """
    def override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _add_user(session, school_id, username, role, name=None):
    user = User(
        school_id=school_id,
        username=username,
        password_hash=PASSWORD_HASH,
        role=role,
        name=name or username.title(),
    )
    session.add(user)
    return user


@pytest.fixture
def school(session):
    """One school with a user per role plus a second teacher and student.

    The parent is linked to ``student`` only.
    """
    s = School(name="Al-Noor")
    session.add(s)
    session.flush()
    people = SimpleNamespace(
        school=s,
        owner=_add_user(session, s.id, "owner", UserRole.OWNER),
        admin=_add_user(session, s.id, "admin", UserRole.ADMIN),
        teacher=_add_user(session, s.id, "teacher", UserRole.TEACHER),
        other_teacher=_add_user(session, s.id, "teacher2", UserRole.TEACHER),
        student=_add_user(session, s.id, "student", UserRole.STUDENT),
        other_student=_add_user(session, s.id, "student2", UserRole.STUDENT),
        parent=_add_user(session, s.id, "parent", UserRole.PARENT),
    )
    session.commit()
    PeopleService().link_parent(session, people.owner, people.parent.id, people.student.id)
    return people


@pytest.fixture
def make_assignment(session, school):
    """Factory for assignments given by ``school.teacher`` to ``school.student``."""

    def _make(title="Surah Al-Mulk, ayat 1-10", due_in=timedelta(days=7), **kwargs):
        kwargs.setdefault("student_id", school.student.id)
        return AssignmentService().create_assignment(
            session,
            kwargs.pop("actor", school.teacher),
            title=title,
            due_at=utcnow() + due_in,
            **kwargs,
        )

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_token(user.id, user.role.value)}"}

    return _headers
