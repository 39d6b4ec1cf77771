"""Network Access Server client records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

DEFAULT_NAS_TYPE = "other"


@dataclass(frozen=True)
class NasClient:
    """A device allowed to send authentication and accounting events."""

    id: int
    nas_address: str
    short_name: str
    nas_type: str
    secret: str
    server: str | None = None
    community: str | None = None
    description: str | None = None
    ports: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self, *, include_secret: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "nas_address": self.nas_address,
            "short_name": self.short_name,
            "nas_type": self.nas_type,
            "server": self.server,
            "community": self.community,
            "description": self.description,
            "ports": self.ports,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_secret:
            data["secret"] = self.secret
        return data
