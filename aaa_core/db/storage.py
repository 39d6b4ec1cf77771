"""
Shared storage handle injected into every AAA component.

One handle owns one engine/session factory; stores, the session manager,
the query facade and the retention job all receive the same instance so the
whole core shares one connection pool and one set of PRAGMA tunings.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from aaa_core.db import models  # noqa: F401  (registers tables on Base)
from aaa_core.db.engine import Base, get_session_factory, session_scope
from aaa_core.exceptions import StorageUnavailable
from aaa_core.utils.logger import get_logger

logger = get_logger("aaa_core.db.storage", component="storage")

# Track which database paths we have already announced as initialized
_ANNOUNCED_DB_PATHS: set[str] = set()


class AAAStorage:
    """Engine, session factory and schema bootstrap for one SQLite database."""

    def __init__(
        self,
        db_path: str | Path = "data/radius.db",
        *,
        pragmas: Mapping[str, Any] | None = None,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        echo: bool = False,
        run_migrations: bool = True,
    ) -> None:
        self.db_path = str(db_path)
        self._engine_kwargs: dict[str, Any] = {
            "pragmas": dict(pragmas or {}),
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "echo": echo,
        }
        self._run_migrations = run_migrations
        self._lock = threading.RLock()
        self._session_factory = self._create_session_factory()

        resolved = str(Path(self.db_path).resolve())
        if resolved not in _ANNOUNCED_DB_PATHS:
            _ANNOUNCED_DB_PATHS.add(resolved)
            logger.info(
                "AAA database initialized",
                event="aaa.db.initialized",
                db_path=self.db_path,
            )

    @classmethod
    def from_config(cls, db_cfg: Mapping[str, Any]) -> AAAStorage:
        """Build a storage handle from ``AAAConfig.get_database_config()``."""
        return cls(
            db_cfg["path"],
            pragmas=db_cfg.get("pragmas"),
            pool_size=int(db_cfg.get("pool_size", 10)),
            max_overflow=int(db_cfg.get("max_overflow", 20)),
            pool_timeout=int(db_cfg.get("pool_timeout", 30)),
            echo=bool(db_cfg.get("echo", False)),
        )

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------
    def _create_session_factory(self) -> sessionmaker[Session]:
        try:
            factory = get_session_factory(self.db_path, **self._engine_kwargs)
            engine = factory.kw.get("bind")
            if engine is None:
                raise RuntimeError("SQLAlchemy engine not initialized for AAA storage")
            self._ensure_schema(engine)
        except OperationalError as exc:
            raise StorageUnavailable(
                "Cannot open AAA database", {"db_path": self.db_path, "error": str(exc)}
            ) from exc
        return factory

    def _ensure_schema(self, engine: Engine) -> None:
        """Run Alembic migrations if available, then create anything still missing."""
        if self._run_migrations:
            self._run_alembic(engine)
        Base.metadata.create_all(engine)

    def _run_alembic(self, engine: Engine) -> None:
        project_root = Path(__file__).resolve().parents[2]
        ini_path = project_root / "alembic.ini"
        script_location = project_root / "alembic"
        if not ini_path.exists() or not script_location.exists():
            return

        cfg = Config(str(ini_path))
        cfg.set_main_option("script_location", str(script_location))
        cfg.set_main_option("sqlalchemy.url", str(engine.url))
        try:
            command.upgrade(cfg, "head")
        except Exception as exc:
            logger.warning(
                "Alembic upgrade failed; falling back to metadata create_all",
                event="aaa.db.migration_failed",
                db_path=self.db_path,
                error=str(exc),
            )

    @property
    def engine(self) -> Engine:
        return self._session_factory.kw["bind"]

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional unit of work; commits on success, rolls back on error."""
        with session_scope(self._session_factory) as session:
            yield session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Dispose the underlying SQLAlchemy engine."""
        with self._lock:
            try:
                self.engine.dispose()
            except Exception as exc:
                logger.warning(
                    "AAA database close failed",
                    event="aaa.db.close_failed",
                    db_path=self.db_path,
                    error=str(exc),
                )

    def reload(self) -> None:
        """Recreate the session factory and ensure schema."""
        with self._lock:
            self.close()
            self._session_factory = self._create_session_factory()

    def ping(self) -> bool:
        try:
            with self.session() as session:
                session.execute(select(func.count()).select_from(models.NasClientModel))
            return True
        except StorageUnavailable:
            return False

    def pragma(self, name: str) -> Any:
        """Read back a PRAGMA value from a pooled connection."""
        with self.engine.connect() as conn:
            return conn.exec_driver_sql(f"PRAGMA {name}").scalar()

    def vacuum(self) -> None:
        """Reclaim free pages; must run outside any open transaction."""
        try:
            with self.engine.connect().execution_options(
                isolation_level="AUTOCOMMIT"
            ) as conn:
                conn.execute(text("VACUUM"))
        except OperationalError as exc:
            raise StorageUnavailable(
                "VACUUM failed", {"db_path": self.db_path, "error": str(exc)}
            ) from exc
        logger.info("Database compacted", event="aaa.db.vacuumed", db_path=self.db_path)
