"""Structured logging configuration helpers."""

from __future__ import annotations

import json
import logging
import os
import socket
import traceback
from collections.abc import Iterable, MutableMapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any

__all__ = [
    "configure_logging",
    "get_structured_logger",
    "bind_context",
    "clear_context",
    "logging_context",
    "parse_level",
    "StructuredJSONFormatter",
    "StructuredTextFormatter",
    "StructuredLoggerAdapter",
]

_RESERVED_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "context", "taskName"}

_context: ContextVar[dict[str, Any]] = ContextVar("aaa_logging_context", default={})
_logging_configured = False


@lru_cache(maxsize=1)
def _hostname() -> str:
    return os.getenv("HOSTNAME") or socket.gethostname() or "unknown"


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Collect bound context and per-call fields attached to a record."""
    fields: dict[str, Any] = {}
    context = getattr(record, "context", None) or _context.get()
    if context:
        fields.update(context)
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS or key.startswith("_"):
            continue
        fields[key] = value
    return fields


class StructuredJSONFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "schema": "aaa.log.v1",
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": "aaa_core",
            "env": os.getenv("AAA_ENV") or os.getenv("ENV") or "dev",
            "host": _hostname(),
        }
        for key, value in _record_fields(record).items():
            payload.setdefault(key, value)

        if record.exc_info:
            payload["error"] = {
                "type": getattr(record.exc_info[0], "__name__", ""),
                "message": str(record.exc_info[1]),
                "stack": "".join(traceback.format_exception(*record.exc_info)).strip(),
            }
        if record.stack_info:
            payload["stack"] = record.stack_info
        return json.dumps(payload, default=repr, ensure_ascii=True)


class StructuredTextFormatter(logging.Formatter):
    """Human-readable formatter: message followed by key=value pairs."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = _record_fields(record)
        if not fields:
            return base
        pairs = " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
        return f"{base} {pairs}"


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that merges bound context, static context and kwargs.

    Unknown keyword arguments become structured fields, so calls read like
    ``logger.info("Session opened", event="aaa.accounting.start", unique_id=uid)``.
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = kwargs.setdefault("extra", {})
        for key in list(kwargs.keys()):
            if key not in {"exc_info", "stack_info", "stacklevel", "extra"}:
                extra.setdefault(key, kwargs.pop(key))

        bound = _context.get()
        if bound or self.extra:
            extra.setdefault("context", {**dict(bound), **dict(self.extra or {})})
        return msg, kwargs


def parse_level(value: str | int | None, default: int = logging.INFO) -> int:
    """Translate a level name such as ``"debug"`` into a logging constant."""
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).strip().upper())
    return level if isinstance(level, int) else default


def configure_logging(
    level: int = logging.INFO,
    *,
    fmt: str = "json",
    stream: Any | None = None,
    handlers: Iterable[logging.Handler] | None = None,
    reset: bool = True,
) -> None:
    """Configure root logging with structured output."""

    global _logging_configured

    formatter: logging.Formatter = (
        StructuredTextFormatter() if fmt == "text" else StructuredJSONFormatter()
    )
    resolved = list(handlers) if handlers else [logging.StreamHandler(stream)]

    root = logging.getLogger()
    if reset:
        root.handlers = []
    for handler in resolved:
        if handler.formatter is None:
            handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)
    _logging_configured = True


def get_structured_logger(name: str, **context: Any) -> StructuredLoggerAdapter:
    """Return a structured logger adapter with optional static context."""
    if not _logging_configured:
        configure_logging()
    static = {k: v for k, v in context.items() if v is not None}
    return StructuredLoggerAdapter(logging.getLogger(name), static)


def bind_context(**kwargs: Any) -> Token:
    """Bind key/value pairs to the contextual log scope."""
    current = dict(_context.get())
    current.update({k: v for k, v in kwargs.items() if v is not None})
    return _context.set(current)


def clear_context(token: Token | None = None) -> None:
    """Clear contextual information, optionally using a context token."""
    if token is not None:
        _context.reset(token)
    else:
        _context.set({})


@contextmanager
def logging_context(**kwargs: Any):
    """Context manager that binds log context for the enclosed block."""
    token = bind_context(**kwargs)
    try:
        yield
    finally:
        clear_context(token)
