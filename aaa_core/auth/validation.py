"""Input validation shared by the subscriber and policy stores."""

from __future__ import annotations

import re

from aaa_core.exceptions import ValidationError

# RADIUS User-Name is at most 253 octets; printable, no whitespace at the edges
_IDENTIFIER_MAX = 253
_ATTRIBUTE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:\-]{0,127}$")
_GROUP_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 ._@\-]{0,63}$")

CHECK_OPERATORS = frozenset({"==", ":=", "!=", ">", ">=", "<", "<=", "=~", "!~", "=*", "!*"})
REPLY_OPERATORS = frozenset({"=", ":=", "+="})


def validate_subscriber_id(value: object) -> str:
    if value is None:
        raise ValidationError("Subscriber identifier is required", field="subscriber_id")
    s = str(value)
    if not s.strip() or s != s.strip():
        raise ValidationError(
            "Subscriber identifier cannot be empty or padded with whitespace",
            field="subscriber_id",
            value=value,
        )
    if len(s.encode("utf-8")) > _IDENTIFIER_MAX:
        raise ValidationError(
            "Subscriber identifier exceeds 253 octets", field="subscriber_id"
        )
    return s


def validate_attribute(value: object) -> str:
    s = str(value or "").strip()
    if not _ATTRIBUTE_RE.match(s):
        raise ValidationError(
            "Invalid attribute name", field="attribute", value=value
        )
    return s


def validate_group(value: object) -> str:
    s = str(value or "").strip()
    if not _GROUP_RE.match(s):
        raise ValidationError(
            "Invalid group name. Allowed characters: letters, digits, space, '.', '_', '@', '-' (max 64 chars)",
            field="group",
            value=value,
        )
    return s


def validate_operator(op: object, allowed: frozenset[str]) -> str:
    s = str(op or "").strip()
    if s not in allowed:
        raise ValidationError(
            f"Unsupported operator {s!r}", field="op", value=op, allowed=sorted(allowed)
        )
    return s


def validate_value(value: object) -> str:
    if value is None:
        raise ValidationError("Attribute value is required", field="value")
    return str(value)
