"""Shared SQLAlchemy engine/session helpers for local SQLite usage."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from aaa_core.exceptions import StorageUnavailable

Base = declarative_base()

DEFAULT_PRAGMAS: dict[str, Any] = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "foreign_keys": "ON",
    "busy_timeout": 5000,
    "temp_store": "MEMORY",
    # pages when positive, KiB when negative (~64MB)
    "cache_size": -64000,
}


def _sqlite_engine(
    db_path: str,
    *,
    echo: bool = False,
    pragmas: Mapping[str, Any] | None = None,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
) -> Engine:
    """Create a SQLite engine with WAL, tuned pooling, and busy timeout defaults."""
    path = Path(db_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    url = f"sqlite:///{path}"
    busy_timeout_ms = int(
        (pragmas or {}).get("busy_timeout", DEFAULT_PRAGMAS["busy_timeout"])
    )
    engine = create_engine(
        url,
        future=True,
        echo=echo,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=3600,
        connect_args={
            "timeout": busy_timeout_ms / 1000.0,
            "check_same_thread": False,
        },
    )
    applied = {**DEFAULT_PRAGMAS, **dict(pragmas or {})}

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):  # noqa: ANN001
        cursor = dbapi_conn.cursor()
        try:
            for name, value in applied.items():
                cursor.execute(f"PRAGMA {name}={value}")
        finally:
            cursor.close()

    return engine


def get_session_factory(
    db_path: str,
    *,
    echo: bool = False,
    pragmas: Mapping[str, Any] | None = None,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
) -> sessionmaker[Session]:
    """Return a sessionmaker bound to a tuned SQLite engine."""
    engine = _sqlite_engine(
        db_path,
        echo=echo,
        pragmas=pragmas,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
    )
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations.

    Lock timeouts and I/O failures surface as :class:`StorageUnavailable`;
    every other error propagates unchanged after rollback.
    """
    session: Session = factory()
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        raise StorageUnavailable(
            "Storage operation failed", {"error": str(exc.orig)}
        ) from exc
    except DBAPIError as exc:
        session.rollback()
        if exc.connection_invalidated:
            raise StorageUnavailable(
                "Storage connection lost", {"error": str(exc.orig)}
            ) from exc
        raise
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
