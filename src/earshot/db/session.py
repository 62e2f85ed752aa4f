"""SQLite engine and session management.

One engine and session factory per database file, shared by the API
process and the snapshot job. The database path comes from the caller,
then ``EARSHOT_DB_PATH``, then ``DEFAULT_DB_PATH``.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from earshot.db.schema import Base

DB_PATH_ENV = "EARSHOT_DB_PATH"
DEFAULT_DB_PATH = Path("data/earshot.db")


@dataclass
class _Database:
    engine: Engine
    factory: sessionmaker


# Keyed by resolved database path
_databases: dict[str, _Database] = {}


def resolve_db_path(db_path: Path | str | None = None) -> Path:
    """Pick the database file: explicit argument, environment, default."""
    if db_path is not None:
        return Path(db_path)
    env_path = os.environ.get(DB_PATH_ENV)
    return Path(env_path) if env_path else DEFAULT_DB_PATH


def _database(db_path: Path | str | None) -> _Database:
    path = resolve_db_path(db_path)
    key = str(path.resolve())

    database = _databases.get(key)
    if database is None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # One connection shared across FastAPI worker threads
        engine = create_engine(
            f"sqlite:///{path}",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        database = _Database(engine=engine, factory=sessionmaker(bind=engine))
        _databases[key] = database
    return database


def get_engine(db_path: Path | str | None = None) -> Engine:
    """Cached engine for a database file."""
    return _database(db_path).engine


def get_session(db_path: Path | str | None = None) -> Session:
    """New session; the caller closes it. Prefer get_db_session()."""
    return _database(db_path).factory()


@contextmanager
def get_db_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """Session scope: commit on success, rollback on error, always close.

    Example:
        with get_db_session() as session:
            generate_snapshot(session)
    """
    session = get_session(db_path)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create all tables. Safe to call on every startup."""
    Base.metadata.create_all(get_engine(db_path))


def dispose_engines() -> None:
    """Close every cached engine and forget it."""
    for database in _databases.values():
        database.engine.dispose()
    _databases.clear()
