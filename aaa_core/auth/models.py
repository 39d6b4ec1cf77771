"""Shared dataclasses for subscriber credentials and policy records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

DEFAULT_CHECK_ATTRIBUTE = "Cleartext-Password"
DEFAULT_CHECK_OP = "=="
DEFAULT_REPLY_OP = "="

GROUP_KIND_CHECK = "check"
GROUP_KIND_REPLY = "reply"
GROUP_KINDS = (GROUP_KIND_CHECK, GROUP_KIND_REPLY)


@dataclass(frozen=True)
class Credential:
    """Authentication check attribute of one subscriber."""

    subscriber_id: str
    attribute: str
    op: str
    value: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscriber_id": self.subscriber_id,
            "attribute": self.attribute,
            "op": self.op,
            "value": self.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class ReplyAttribute:
    """Attribute returned to the NAS when a subscriber is authorized."""

    subscriber_id: str
    attribute: str
    op: str
    value: str

    def as_pair(self) -> tuple[str, str]:
        return (self.attribute, self.value)


@dataclass(frozen=True)
class GroupAttribute:
    group: str
    kind: str
    attribute: str
    op: str
    value: str


@dataclass(frozen=True)
class GroupMembership:
    subscriber_id: str
    group: str
    priority: int = 1
