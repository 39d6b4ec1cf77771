"""Purge Closed accounting sessions older than a retention window."""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from sqlalchemy import delete

from aaa_core.accounting.manager import row_to_session
from aaa_core.accounting.models import AccountingSession
from aaa_core.db.models import AccountingSessionModel
from aaa_core.db.storage import AAAStorage
from aaa_core.exceptions import ValidationError
from aaa_core.utils.logger import get_logger
from aaa_core.utils.metrics import retention_deleted_total, retention_runs_total
from aaa_core.utils.timeutils import Clock, utcnow

logger = get_logger(__name__, component="retention")

ExportHook = Callable[[Sequence[AccountingSession], datetime], Any]

_sessions = AccountingSessionModel.__table__


@dataclass(frozen=True)
class RetentionResult:
    deleted_count: int
    cutoff: datetime
    exported: Any = None


class JsonExportHook:
    """Write the sessions about to be purged to ``accounting-backup-<ts>.json``.

    Nothing is written when there is nothing to purge.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)

    def __call__(
        self, sessions: Sequence[AccountingSession], cutoff: datetime
    ) -> Path | None:
        if not sessions:
            return None
        self.directory.mkdir(parents=True, exist_ok=True)
        stamp = utcnow().strftime("%Y%m%dT%H%M%S%fZ")
        path = self.directory / f"accounting-backup-{stamp}.json"
        payload = {
            "cutoff": cutoff.isoformat(),
            "count": len(sessions),
            "sessions": [s.to_dict() for s in sessions],
        }
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        logger.info(
            "Accounting sessions exported",
            event="aaa.retention.exported",
            path=str(path),
            count=len(sessions),
        )
        return path


def _validate_days(retention_days: object) -> int:
    if isinstance(retention_days, bool):
        raise ValidationError(
            "Retention days must be an integer", field="retention_days", value=retention_days
        )
    try:
        days = int(retention_days)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "Retention days must be an integer",
            field="retention_days",
            value=retention_days,
        ) from exc
    if days < 0:
        raise ValidationError(
            "Retention days must not be negative", field="retention_days", value=days
        )
    return days


def _expired_before(cutoff: datetime):
    return _sessions.c.stop_time.is_not(None) & (_sessions.c.stop_time < cutoff)


class RetentionJob:
    """Delete Closed sessions whose stop time precedes ``now - retention_days``.

    Open sessions are never touched regardless of age. The sweep only deletes
    rows already in the terminal state, so it is safe to run while live
    accounting traffic is being written, and running it twice in a row is a
    no-op the second time.
    """

    def __init__(
        self,
        storage: AAAStorage,
        *,
        clock: Clock = utcnow,
        export_hook: ExportHook | None = None,
        vacuum: bool = False,
    ) -> None:
        self.storage = storage
        self._clock = clock
        self.export_hook = export_hook
        self.vacuum = vacuum

    def run(self, retention_days: int) -> RetentionResult:
        days = _validate_days(retention_days)
        cutoff = self._clock() - timedelta(days=days)
        expired = _expired_before(cutoff)
        exported = None
        try:
            with self.storage.session() as session:
                if self.export_hook is None:
                    deleted = session.execute(delete(_sessions).where(expired)).rowcount
                else:
                    # The hook sees exactly the rows removed; a failing hook rolls back
                    rows = session.execute(
                        delete(_sessions).where(expired).returning(*_sessions.c)
                    ).all()
                    deleted = len(rows)
                    exported = self.export_hook(
                        [row_to_session(row) for row in rows], cutoff
                    )
        except Exception as exc:
            retention_runs_total.labels(outcome="error").inc()
            logger.error(
                "Retention sweep failed",
                event="aaa.retention.failed",
                retention_days=days,
                cutoff=cutoff.isoformat(),
                error=str(exc),
            )
            raise

        retention_runs_total.labels(outcome="ok").inc()
        if deleted:
            retention_deleted_total.inc(deleted)
        logger.info(
            "Retention sweep finished",
            event="aaa.retention.completed",
            retention_days=days,
            cutoff=cutoff.isoformat(),
            deleted_count=deleted,
        )
        if self.vacuum and deleted:
            self.storage.vacuum()
        return RetentionResult(deleted_count=deleted, cutoff=cutoff, exported=exported)
