"""SQLite-backed registry of NAS clients and their shared secrets."""

from __future__ import annotations

import hmac
import ipaddress
import re
from collections.abc import Iterator
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from aaa_core.db.models import NasClientModel
from aaa_core.db.storage import AAAStorage
from aaa_core.exceptions import DuplicateNas, NotFound, ValidationError
from aaa_core.utils.logger import get_logger
from aaa_core.utils.timeutils import Clock, as_utc, utcnow

from .models import DEFAULT_NAS_TYPE, NasClient

logger = get_logger(__name__, component="nas_registry")

# Hostname labels per RFC 1123, dot separated, max 253 chars overall
_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)
_SHORT_NAME_RE = re.compile(r"^[A-Za-z0-9 ._\-]{1,64}$")

_UPDATABLE_FIELDS = frozenset(
    {"short_name", "nas_type", "secret", "server", "community", "description", "ports"}
)


def validate_nas_address(address: object) -> str:
    """Normalise an IP address, or accept a hostname-like identifier.

    Raises ValidationError on anything else.
    """
    if address is None:
        raise ValidationError("NAS address is required", field="nas_address")
    s = str(address).strip()
    if not s:
        raise ValidationError("NAS address cannot be empty", field="nas_address")
    try:
        return str(ipaddress.ip_address(s))
    except ValueError:
        pass
    if not _HOSTNAME_RE.match(s):
        raise ValidationError(
            "NAS address must be an IP address or hostname",
            field="nas_address",
            value=address,
        )
    return s.lower()


def validate_short_name(name: object) -> str:
    s = str(name or "").strip()
    if not _SHORT_NAME_RE.match(s):
        raise ValidationError(
            "Invalid NAS short name. Allowed characters: letters, digits, space, '.', '_', '-' (max 64 chars)",
            field="short_name",
            value=name,
        )
    return s


def validate_secret(secret: object) -> str:
    if secret is None or not str(secret):
        raise ValidationError("NAS shared secret cannot be empty", field="secret")
    return str(secret)


def _validate_ports(ports: object) -> int | None:
    if ports is None:
        return None
    try:
        value = int(ports)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError("Ports must be an integer", field="ports", value=ports) from exc
    if value < 0:
        raise ValidationError("Ports must not be negative", field="ports", value=value)
    return value


class NasRegistry:
    """NAS inventory keyed by address."""

    def __init__(self, storage: AAAStorage, *, clock: Clock = utcnow) -> None:
        self.storage = storage
        self._clock = clock

    def register(
        self,
        nas_address: str,
        short_name: str,
        nas_type: str = DEFAULT_NAS_TYPE,
        secret: str = "",
        *,
        server: str | None = None,
        community: str | None = None,
        description: str | None = None,
        ports: int | None = None,
    ) -> NasClient:
        """Insert a NAS client; an address already on file raises DuplicateNas."""
        nas_address = validate_nas_address(nas_address)
        short_name = validate_short_name(short_name)
        secret = validate_secret(secret)
        ports = _validate_ports(ports)
        now = self._clock()
        try:
            with self.storage.session() as session:
                row = NasClientModel(
                    nas_address=nas_address,
                    short_name=short_name,
                    nas_type=(nas_type or DEFAULT_NAS_TYPE).strip(),
                    secret=secret,
                    server=server,
                    community=community,
                    description=description,
                    ports=ports,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                session.flush()
                record = self._row_to_client(row)
        except IntegrityError as exc:
            raise DuplicateNas(
                f"NAS '{nas_address}' is already registered",
                {"nas_address": nas_address},
            ) from exc
        logger.info(
            "NAS registered",
            event="aaa.nas.registered",
            nas_address=nas_address,
            short_name=short_name,
            nas_type=record.nas_type,
        )
        return record

    def lookup(self, nas_address: str) -> NasClient:
        key = validate_nas_address(nas_address)
        with self.storage.session() as session:
            row = session.execute(
                select(NasClientModel).where(NasClientModel.nas_address == key)
            ).scalar_one_or_none()
            if row is None:
                raise NotFound(
                    f"NAS '{key}' is not registered", {"nas_address": key}
                )
            return self._row_to_client(row)

    def update(self, nas_address: str, /, **fields: Any) -> NasClient:
        """Change any of the mutable NAS fields; the address itself is fixed."""
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown NAS fields: {', '.join(sorted(unknown))}",
                field="fields",
                value=sorted(unknown),
            )
        if "short_name" in fields:
            fields["short_name"] = validate_short_name(fields["short_name"])
        if "secret" in fields:
            fields["secret"] = validate_secret(fields["secret"])
        if "ports" in fields:
            fields["ports"] = _validate_ports(fields["ports"])
        if "nas_type" in fields:
            fields["nas_type"] = (fields["nas_type"] or DEFAULT_NAS_TYPE).strip()

        key = validate_nas_address(nas_address)
        with self.storage.session() as session:
            row = session.execute(
                select(NasClientModel).where(NasClientModel.nas_address == key)
            ).scalar_one_or_none()
            if row is None:
                raise NotFound(f"NAS '{key}' is not registered", {"nas_address": key})
            for name, value in fields.items():
                setattr(row, name, value)
            row.updated_at = self._clock()
            session.flush()
            record = self._row_to_client(row)
        logger.info(
            "NAS updated",
            event="aaa.nas.updated",
            nas_address=key,
            fields=sorted(fields),
        )
        return record

    def unregister(self, nas_address: str) -> bool:
        key = validate_nas_address(nas_address)
        with self.storage.session() as session:
            deleted = session.execute(
                delete(NasClientModel).where(NasClientModel.nas_address == key)
            ).rowcount
        if deleted:
            logger.info("NAS unregistered", event="aaa.nas.unregistered", nas_address=key)
        return bool(deleted)

    def list_all(self) -> Iterator[NasClient]:
        with self.storage.session() as session:
            rows = session.execute(
                select(NasClientModel).order_by(NasClientModel.id)
            ).scalars()
            for row in rows:
                yield self._row_to_client(row)

    def verify_secret(self, nas_address: str, secret: str) -> bool:
        """Constant-time check of a shared secret; unknown NAS → False."""
        try:
            client = self.lookup(nas_address)
        except (NotFound, ValidationError):
            return False
        return hmac.compare_digest(
            client.secret.encode("utf-8"), str(secret).encode("utf-8")
        )

    @staticmethod
    def _row_to_client(row: NasClientModel) -> NasClient:
        return NasClient(
            id=row.id,
            nas_address=row.nas_address,
            short_name=row.short_name,
            nas_type=row.nas_type,
            secret=row.secret,
            server=row.server,
            community=row.community,
            description=row.description,
            ports=row.ports,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )
