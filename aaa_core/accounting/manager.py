"""Accounting session lifecycle: start, interim update, stop.

Every state transition is a single atomic statement against the store:

* start is an INSERT guarded by the unique constraint on ``unique_id``;
* interim update and stop are conditional UPDATEs restricted to rows whose
  ``stop_time`` is still NULL, so a Closed session can never be reopened or
  modified and two racing stops cannot both succeed.

Counters reported by the NAS are cumulative; an update never lowers a stored
counter, which keeps a late or reordered interim from regressing a session.
"""

from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError

from aaa_core.auth.validation import validate_subscriber_id
from aaa_core.db.models import AccountingSessionModel
from aaa_core.db.storage import AAAStorage
from aaa_core.exceptions import (
    AlreadyClosed,
    DuplicateUniqueId,
    NotFound,
    SessionNotFound,
    ValidationError,
)
from aaa_core.nas.registry import validate_nas_address
from aaa_core.utils.logger import get_logger
from aaa_core.utils.metrics import accounting_events_total, accounting_latency_seconds
from aaa_core.utils.timeutils import Clock, as_utc, utcnow

from .models import (
    CONNECT_INFO,
    DEFAULT_FRAMED_PROTOCOL,
    DEFAULT_NAS_PORT_TYPE,
    DEFAULT_SERVICE_TYPE,
    DEFAULT_TERMINATE_CAUSE,
    AccountingSession,
)

logger = get_logger(__name__, component="accounting")

_sessions = AccountingSessionModel.__table__


def _require(value: object, field: str) -> str:
    s = "" if value is None else str(value).strip()
    if not s:
        raise ValidationError(f"{field} is required", field=field, value=value)
    return s


def _counter(value: object, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field, value=value)
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"{field} must be an integer", field=field, value=value
        ) from exc
    if number < 0:
        raise ValidationError(f"{field} must not be negative", field=field, value=number)
    return number


def _not_less(column, value: int):
    # Stored counters only move forward
    return case((column < value, value), else_=column)


def _record(kind: str, outcome: str) -> None:
    accounting_events_total.labels(kind=kind, outcome=outcome).inc()


def row_to_session(row: AccountingSessionModel) -> AccountingSession:
    return AccountingSession(
        id=row.id,
        session_id=row.session_id,
        unique_id=row.unique_id,
        subscriber_id=row.subscriber_id,
        nas_address=row.nas_address,
        start_time=as_utc(row.start_time),
        nas_port_id=row.nas_port_id,
        nas_port_type=row.nas_port_type,
        update_time=as_utc(row.update_time),
        stop_time=as_utc(row.stop_time),
        session_time=int(row.session_time or 0),
        input_octets=int(row.input_octets or 0),
        output_octets=int(row.output_octets or 0),
        terminate_cause=row.terminate_cause,
        authentic=row.authentic,
        connect_info_start=row.connect_info_start,
        connect_info_stop=row.connect_info_stop,
        service_type=row.service_type,
        framed_protocol=row.framed_protocol,
        framed_ip_address=row.framed_ip_address,
        calling_station_id=row.calling_station_id,
        called_station_id=row.called_station_id,
    )


class AccountingSessionManager:
    """Persists the Open → Closed session state machine."""

    LIST_BATCH_SIZE = 500

    def __init__(self, storage: AAAStorage, *, clock: Clock = utcnow) -> None:
        self.storage = storage
        self._clock = clock

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(
        self,
        session_id: str,
        unique_id: str,
        subscriber_id: str,
        nas_address: str,
        nas_port_id: str = "",
        nas_port_type: str = DEFAULT_NAS_PORT_TYPE,
        framed_ip: str = "",
        calling_station_id: str = "",
        called_station_id: str = "",
        *,
        authentic: str | None = None,
        service_type: str = DEFAULT_SERVICE_TYPE,
        framed_protocol: str = DEFAULT_FRAMED_PROTOCOL,
    ) -> AccountingSession:
        """Open a new session.

        Raises DuplicateUniqueId when ``unique_id`` was already used; the
        existing row is left untouched.
        """
        session_id = _require(session_id, "session_id")
        unique_id = _require(unique_id, "unique_id")
        subscriber_id = validate_subscriber_id(subscriber_id)
        nas_address = validate_nas_address(nas_address)
        now = self._clock()

        row = AccountingSessionModel(
            session_id=session_id,
            unique_id=unique_id,
            subscriber_id=subscriber_id,
            nas_address=nas_address,
            nas_port_id=nas_port_id or "",
            nas_port_type=nas_port_type or DEFAULT_NAS_PORT_TYPE,
            start_time=now,
            update_time=now,
            session_time=0,
            input_octets=0,
            output_octets=0,
            authentic=authentic,
            connect_info_start=CONNECT_INFO,
            service_type=service_type,
            framed_protocol=framed_protocol,
            framed_ip_address=framed_ip or "",
            calling_station_id=calling_station_id or "",
            called_station_id=called_station_id or "",
            created_at=now,
        )
        try:
            with accounting_latency_seconds.time(), self.storage.session() as session:
                session.add(row)
                session.flush()
                record = row_to_session(row)
        except IntegrityError as exc:
            _record("start", "duplicate")
            logger.warning(
                "Duplicate accounting start rejected",
                event="aaa.accounting.start_duplicate",
                unique_id=unique_id,
                session_id=session_id,
                subscriber_id=subscriber_id,
            )
            raise DuplicateUniqueId(
                f"Accounting unique id '{unique_id}' already exists",
                {"unique_id": unique_id, "session_id": session_id},
            ) from exc
        _record("start", "ok")
        logger.info(
            "Accounting start recorded",
            event="aaa.accounting.started",
            session_id=session_id,
            unique_id=unique_id,
            subscriber_id=subscriber_id,
            nas_address=nas_address,
        )
        return record

    def interim_update(
        self,
        session_id: str,
        subscriber_id: str,
        session_seconds: int,
        input_octets: int,
        output_octets: int,
    ) -> AccountingSession:
        """Refresh counters of the Open session matching (session_id, subscriber_id).

        Unknown or already Closed sessions raise SessionNotFound; nothing is
        created on their behalf.
        """
        seconds = _counter(session_seconds, "session_seconds")
        octets_in = _counter(input_octets, "input_octets")
        octets_out = _counter(output_octets, "output_octets")
        now = self._clock()
        stmt = (
            update(_sessions)
            .where(
                _sessions.c.session_id == session_id,
                _sessions.c.subscriber_id == subscriber_id,
                _sessions.c.stop_time.is_(None),
            )
            .values(
                update_time=now,
                session_time=_not_less(_sessions.c.session_time, seconds),
                input_octets=_not_less(_sessions.c.input_octets, octets_in),
                output_octets=_not_less(_sessions.c.output_octets, octets_out),
            )
            .returning(_sessions.c.id)
        )
        with accounting_latency_seconds.time(), self.storage.session() as session:
            ids = list(session.execute(stmt).scalars())
            if not ids:
                _record("interim", "not_found")
                raise SessionNotFound(
                    f"No open session '{session_id}' for '{subscriber_id}'",
                    {"session_id": session_id, "subscriber_id": subscriber_id},
                )
            record = self._latest_of(session, ids)
        self._warn_if_ambiguous("interim", session_id, subscriber_id, ids)
        _record("interim", "ok")
        logger.debug(
            "Accounting interim recorded",
            event="aaa.accounting.interim",
            session_id=session_id,
            subscriber_id=subscriber_id,
            session_seconds=record.session_time,
        )
        return record

    def stop(
        self,
        session_id: str,
        subscriber_id: str,
        session_seconds: int,
        input_octets: int,
        output_octets: int,
        terminate_cause: str = DEFAULT_TERMINATE_CAUSE,
    ) -> AccountingSession:
        """Close the Open session matching (session_id, subscriber_id).

        Raises AlreadyClosed if only a Closed session carries that key, and
        SessionNotFound if none does.
        """
        seconds = _counter(session_seconds, "session_seconds")
        octets_in = _counter(input_octets, "input_octets")
        octets_out = _counter(output_octets, "output_octets")
        cause = terminate_cause or DEFAULT_TERMINATE_CAUSE
        now = self._clock()
        stmt = (
            update(_sessions)
            .where(
                _sessions.c.session_id == session_id,
                _sessions.c.subscriber_id == subscriber_id,
                _sessions.c.stop_time.is_(None),
            )
            .values(
                stop_time=now,
                update_time=now,
                session_time=_not_less(_sessions.c.session_time, seconds),
                input_octets=_not_less(_sessions.c.input_octets, octets_in),
                output_octets=_not_less(_sessions.c.output_octets, octets_out),
                terminate_cause=cause,
                connect_info_stop=CONNECT_INFO,
            )
            .returning(_sessions.c.id)
        )
        with accounting_latency_seconds.time(), self.storage.session() as session:
            ids = list(session.execute(stmt).scalars())
            if not ids:
                closed = session.execute(
                    select(AccountingSessionModel.id)
                    .where(
                        AccountingSessionModel.session_id == session_id,
                        AccountingSessionModel.subscriber_id == subscriber_id,
                        AccountingSessionModel.stop_time.is_not(None),
                    )
                    .limit(1)
                ).scalar_one_or_none()
                details = {"session_id": session_id, "subscriber_id": subscriber_id}
                if closed is not None:
                    _record("stop", "already_closed")
                    logger.info(
                        "Stop for closed session ignored",
                        event="aaa.accounting.already_closed",
                        **details,
                    )
                    raise AlreadyClosed(
                        f"Session '{session_id}' for '{subscriber_id}' is already closed",
                        details,
                    )
                _record("stop", "not_found")
                raise SessionNotFound(
                    f"No open session '{session_id}' for '{subscriber_id}'", details
                )
            record = self._latest_of(session, ids)
        self._warn_if_ambiguous("stop", session_id, subscriber_id, ids)
        _record("stop", "ok")
        logger.info(
            "Accounting stop recorded",
            event="aaa.accounting.stopped",
            session_id=session_id,
            subscriber_id=subscriber_id,
            session_seconds=record.session_time,
            terminate_cause=cause,
        )
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_active(self) -> Iterator[AccountingSession]:
        """Yield Open sessions, most recently started first.

        A fresh query runs on every call; sessions closed before the query
        starts are never yielded.
        """
        with self.storage.session() as session:
            rows = session.execute(
                select(AccountingSessionModel)
                .where(AccountingSessionModel.stop_time.is_(None))
                .order_by(
                    AccountingSessionModel.start_time.desc(),
                    AccountingSessionModel.id.desc(),
                )
                .execution_options(yield_per=self.LIST_BATCH_SIZE)
            ).scalars()
            for row in rows:
                yield row_to_session(row)

    def get(self, unique_id: str) -> AccountingSession:
        with self.storage.session() as session:
            row = session.execute(
                select(AccountingSessionModel).where(
                    AccountingSessionModel.unique_id == unique_id
                )
            ).scalar_one_or_none()
            if row is None:
                raise NotFound(
                    f"No accounting session with unique id '{unique_id}'",
                    {"unique_id": unique_id},
                )
            return row_to_session(row)

    def history_for(self, subscriber_id: str, limit: int = 50) -> list[AccountingSession]:
        """Most recent sessions of a subscriber, Open and Closed alike."""
        if limit <= 0:
            raise ValidationError("limit must be positive", field="limit", value=limit)
        with self.storage.session() as session:
            rows = session.execute(
                select(AccountingSessionModel)
                .where(AccountingSessionModel.subscriber_id == subscriber_id)
                .order_by(
                    AccountingSessionModel.start_time.desc(),
                    AccountingSessionModel.id.desc(),
                )
                .limit(limit)
            ).scalars()
            return [row_to_session(row) for row in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _latest_of(self, session, ids: list[int]) -> AccountingSession:
        row = session.execute(
            select(AccountingSessionModel)
            .where(AccountingSessionModel.id.in_(ids))
            .order_by(
                AccountingSessionModel.start_time.desc(),
                AccountingSessionModel.id.desc(),
            )
            .limit(1)
        ).scalar_one()
        return row_to_session(row)

    @staticmethod
    def _warn_if_ambiguous(
        kind: str, session_id: str, subscriber_id: str, ids: list[int]
    ) -> None:
        # Same NAS session id reused by one subscriber; every match was updated
        if len(ids) > 1:
            logger.warning(
                "Accounting event matched several open sessions",
                event="aaa.accounting.ambiguous_match",
                kind=kind,
                session_id=session_id,
                subscriber_id=subscriber_id,
                matched=len(ids),
            )
