"""Database engine and session management."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import get_settings


settings = get_settings()


class Base(DeclarativeBase):
    """Declarative base for every model."""

    pass


def _prepare_sqlite_path(url: str) -> None:
    database = make_url(url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


if settings.database_url.startswith("sqlite"):
    _prepare_sqlite_path(settings.database_url)

# SQLite needs ``check_same_thread=False`` when sessions cross threads
engine = create_engine(
    settings.database_url, connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {}
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Transactional session scope: commit on success, roll back on error."""

    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Commit the work done inside the block, or roll all of it back."""

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a database session."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
