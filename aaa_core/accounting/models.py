"""Accounting session records and the decoded events that drive them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

DEFAULT_NAS_PORT_TYPE = "Virtual"
DEFAULT_SERVICE_TYPE = "Framed-User"
DEFAULT_FRAMED_PROTOCOL = "PPP"
DEFAULT_TERMINATE_CAUSE = "User-Request"
CONNECT_INFO = "RADIUS"


@dataclass(frozen=True)
class AccountingSession:
    """One connection session. Open while ``stop_time`` is None."""

    id: int
    session_id: str
    unique_id: str
    subscriber_id: str
    nas_address: str
    start_time: datetime
    nas_port_id: str | None = None
    nas_port_type: str | None = None
    update_time: datetime | None = None
    stop_time: datetime | None = None
    session_time: int = 0
    input_octets: int = 0
    output_octets: int = 0
    terminate_cause: str | None = None
    authentic: str | None = None
    connect_info_start: str | None = None
    connect_info_stop: str | None = None
    service_type: str | None = None
    framed_protocol: str | None = None
    framed_ip_address: str | None = None
    calling_station_id: str | None = None
    called_station_id: str | None = None

    @property
    def is_open(self) -> bool:
        return self.stop_time is None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            data[name] = value.isoformat() if isinstance(value, datetime) else value
        return data


class EventKind(str, Enum):
    START = "start"
    INTERIM = "interim"
    STOP = "stop"


@dataclass(frozen=True)
class AccountingEvent:
    """A transport-decoded accounting event.

    ``attributes`` carries the kind-specific arguments of the matching
    :class:`~aaa_core.accounting.manager.AccountingSessionManager` call.
    """

    kind: EventKind
    session_id: str
    subscriber_id: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def ordering_key(self) -> tuple[str, str]:
        return (self.session_id, self.subscriber_id)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> AccountingEvent:
        """Build an event from a decoded mapping with ``kind``, ``session_id``
        and ``subscriber_id`` keys; every other key becomes an attribute."""
        payload = dict(data)
        kind = EventKind(str(payload.pop("kind", "")).lower())
        session_id = str(payload.pop("session_id", "") or "")
        subscriber_id = str(payload.pop("subscriber_id", "") or "")
        return cls(kind, session_id, subscriber_id, payload)


@dataclass(frozen=True)
class ConnectionStatus:
    """Whether a subscriber is online now, or when it was last seen."""

    subscriber_id: str
    online: bool
    session_id: str | None = None
    nas_address: str | None = None
    framed_ip_address: str | None = None
    start_time: datetime | None = None
    session_time: int = 0
    last_seen: datetime | None = None


@dataclass(frozen=True)
class UsageSummary:
    subscriber_id: str
    session_count: int = 0
    total_seconds: int = 0
    total_input_octets: int = 0
    total_output_octets: int = 0

    @property
    def total_octets(self) -> int:
        return self.total_input_octets + self.total_output_octets
