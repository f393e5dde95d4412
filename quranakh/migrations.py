"""Forward-only SQL migrations for SQLite deployments.

``Base.metadata.create_all`` creates missing tables but never alters existing
ones; files under ``migrations/sql`` bring older databases up to date. Each
file runs once and is recorded in ``schema_migrations`` by its numeric prefix.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations" / "sql"


def run_migrations(engine: Engine, migrations_dir: Optional[Path] = None) -> list[str]:
    """Apply pending migration files and return the versions applied."""
    if engine.url.get_backend_name() != "sqlite":
        return []

    _backup_sqlite_db(engine)

    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE IF NOT EXISTS schema_migrations ("
                "version TEXT PRIMARY KEY, "
                "applied_at DATETIME DEFAULT CURRENT_TIMESTAMP"
                ")"
            )
        )
        applied = {
            row[0]
            for row in conn.execute(text("SELECT version FROM schema_migrations")).fetchall()
        }

    newly_applied: list[str] = []
    for path in _iter_migration_files(migrations_dir or MIGRATIONS_DIR):
        version = path.stem.split("_", 1)[0]
        if version in applied:
            continue
        with engine.begin() as conn:
            for stmt in _split_sql(path.read_text(encoding="utf-8")):
                try:
                    conn.execute(text(stmt))
                except OperationalError as exc:
                    if _is_ignorable_sqlite_error(exc):
                        logger.debug("Skipping already-applied statement in %s", path.name)
                        continue
                    raise
            conn.execute(
                text("INSERT INTO schema_migrations (version) VALUES (:version)"),
                {"version": version},
            )
        logger.info("Applied migration %s", path.name)
        newly_applied.append(version)
    return newly_applied


def _iter_migration_files(directory: Path) -> Iterable[Path]:
    if not directory.exists():
        return []
    return sorted(directory.glob("*.sql"))


def _split_sql(sql: str) -> list[str]:
    # Comment lines may contain ";".
    body = "\n".join(line for line in sql.splitlines() if not line.lstrip().startswith("--"))
    return [stmt.strip() for stmt in body.split(";") if stmt.strip()]


def _is_ignorable_sqlite_error(exc: OperationalError) -> bool:
    message = str(exc).lower()
    return "duplicate column name" in message or "already exists" in message


def _backup_sqlite_db(engine: Engine) -> None:
    db_path = engine.url.database
    if not db_path or db_path == ":memory:":
        return
    source = Path(db_path)
    if source.exists():
        backup = source.with_suffix(source.suffix + ".bak")
        shutil.copy2(source, backup)
