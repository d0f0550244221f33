"""Run history storage for ci_release.

Run and job records are kept in a SQLAlchemy database (SQLite by
default). Jobs finish on worker threads but their records are written
from the thread that owns the session.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """Base class for run history models."""

    pass


def get_engine(db_url: str) -> Engine:
    """Create an engine for a database URL.

    The directory of a file-backed SQLite database is created if needed.

    Args:
        db_url: SQLAlchemy database URL.

    Returns:
        SQLAlchemy Engine.
    """
    url = make_url(db_url)
    connect_args: dict[str, object] = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    return create_engine(url, connect_args=connect_args, echo=False)


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory bound to an engine.

    Objects stay readable after commit so callers can render them once
    the session is closed.
    """
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_all_tables(engine: Engine) -> None:
    """Create the run history tables if they do not exist.

    There are no migrations; the schema is created on first use.
    """
    from ci_release.runs import models as runs_models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def open_database(db_url: str) -> tuple[Engine, sessionmaker[Session]]:
    """Open the run history database, creating tables on first use.

    Args:
        db_url: SQLAlchemy database URL.

    Returns:
        Tuple of (engine, session factory). The caller disposes the engine.
    """
    engine = get_engine(db_url)
    create_all_tables(engine)
    return engine, get_session_factory(engine)


@contextmanager
def get_session(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations.

    Commits on success, rolls back on any exception.

    Yields:
        SQLAlchemy Session instance.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def database_reachable(session_factory: sessionmaker[Session]) -> bool:
    """Return True if a trivial query succeeds."""
    try:
        with session_factory() as session:
            session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return False
    return True


__all__ = [
    "Base",
    "create_all_tables",
    "database_reachable",
    "get_engine",
    "get_session",
    "get_session_factory",
    "open_database",
]
