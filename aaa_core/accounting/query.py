"""Read-only views over accounting sessions for dashboards and reports."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, distinct, func, select

from aaa_core.auth.validation import validate_group
from aaa_core.db.models import AccountingSessionModel, GroupMembershipModel
from aaa_core.db.storage import AAAStorage
from aaa_core.utils.metrics import active_sessions
from aaa_core.utils.timeutils import as_utc

from .manager import row_to_session
from .models import AccountingSession, ConnectionStatus, UsageSummary

_open = AccountingSessionModel.stop_time.is_(None)
_newest_first = (AccountingSessionModel.start_time.desc(), AccountingSessionModel.id.desc())


class QueryFacade:
    """Queries never write; every call observes committed state only."""

    def __init__(self, storage: AAAStorage) -> None:
        self.storage = storage

    def active_session_count(self) -> int:
        with self.storage.session() as session:
            count = session.execute(
                select(func.count()).select_from(AccountingSessionModel).where(_open)
            ).scalar_one()
        active_sessions.set(count)
        return int(count)

    def active_sessions_for(self, subscriber_id: str) -> list[AccountingSession]:
        with self.storage.session() as session:
            rows = session.execute(
                select(AccountingSessionModel)
                .where(AccountingSessionModel.subscriber_id == subscriber_id, _open)
                .order_by(*_newest_first)
            ).scalars()
            return [row_to_session(row) for row in rows]

    def online_counts_by_group(self) -> dict[str, int]:
        """Distinct online subscribers per group; groups with nobody online map to 0."""
        stmt = (
            select(
                GroupMembershipModel.group_name,
                func.count(distinct(AccountingSessionModel.subscriber_id)),
            )
            .select_from(GroupMembershipModel)
            .outerjoin(
                AccountingSessionModel,
                and_(
                    AccountingSessionModel.subscriber_id
                    == GroupMembershipModel.subscriber_id,
                    _open,
                ),
            )
            .group_by(GroupMembershipModel.group_name)
            .order_by(GroupMembershipModel.group_name)
        )
        with self.storage.session() as session:
            return {group: int(count) for group, count in session.execute(stmt)}

    def online_for_group(self, group: str) -> list[AccountingSession]:
        group = validate_group(group)
        with self.storage.session() as session:
            rows = session.execute(
                select(AccountingSessionModel)
                .join(
                    GroupMembershipModel,
                    GroupMembershipModel.subscriber_id
                    == AccountingSessionModel.subscriber_id,
                )
                .where(GroupMembershipModel.group_name == group, _open)
                .order_by(*_newest_first)
            ).scalars()
            return [row_to_session(row) for row in rows]

    def connection_status(self, subscriber_id: str) -> ConnectionStatus:
        with self.storage.session() as session:
            current = session.execute(
                select(AccountingSessionModel)
                .where(AccountingSessionModel.subscriber_id == subscriber_id, _open)
                .order_by(*_newest_first)
                .limit(1)
            ).scalar_one_or_none()
            if current is not None:
                return ConnectionStatus(
                    subscriber_id=subscriber_id,
                    online=True,
                    session_id=current.session_id,
                    nas_address=current.nas_address,
                    framed_ip_address=current.framed_ip_address,
                    start_time=as_utc(current.start_time),
                    session_time=int(current.session_time or 0),
                )
            last_stop = session.execute(
                select(func.max(AccountingSessionModel.stop_time)).where(
                    AccountingSessionModel.subscriber_id == subscriber_id
                )
            ).scalar_one_or_none()
        if isinstance(last_stop, str):
            # Aggregates bypass the column type and come back as raw text
            last_stop = datetime.fromisoformat(last_stop)
        return ConnectionStatus(
            subscriber_id=subscriber_id, online=False, last_seen=as_utc(last_stop)
        )

    def usage_summary(
        self, subscriber_id: str, *, since: datetime | None = None
    ) -> UsageSummary:
        """Totals over the subscriber's sessions, optionally from ``since`` on.

        A naive ``since`` is taken as UTC.
        """
        stmt = select(
            func.count(AccountingSessionModel.id),
            func.coalesce(func.sum(AccountingSessionModel.session_time), 0),
            func.coalesce(func.sum(AccountingSessionModel.input_octets), 0),
            func.coalesce(func.sum(AccountingSessionModel.output_octets), 0),
        ).where(AccountingSessionModel.subscriber_id == subscriber_id)
        if since is not None:
            # Stored times are UTC wall-clock digits
            stmt = stmt.where(AccountingSessionModel.start_time >= as_utc(since))
        with self.storage.session() as session:
            count, seconds, octets_in, octets_out = session.execute(stmt).one()
        return UsageSummary(
            subscriber_id=subscriber_id,
            session_count=int(count),
            total_seconds=int(seconds),
            total_input_octets=int(octets_in),
            total_output_octets=int(octets_out),
        )
