"""Evaluation of group check attributes against an access request."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .models import GroupAttribute

AUTH_TYPE = "Auth-Type"
AUTH_TYPE_REJECT = "Reject"


@dataclass
class CheckResult:
    """Outcome of the check items that apply to one subscriber."""

    allowed: bool
    failed: GroupAttribute | None = None
    denial_message: str = ""


def _ordered(left: str, right: str) -> tuple[object, object]:
    try:
        return int(left), int(right)
    except ValueError:
        return left, right


def check_matches(check: GroupAttribute, request: Mapping[str, str]) -> bool:
    """Whether one check item holds for the request attributes."""
    op = check.op
    if check.attribute == AUTH_TYPE:
        # Auth-Type is a control item, not a request attribute
        return check.value.lower() != AUTH_TYPE_REJECT.lower()
    if op == ":=":
        return True
    present = check.attribute in request
    if op == "=*":
        return present
    if op == "!*":
        return not present
    if not present:
        return False
    actual = str(request[check.attribute])
    if op == "==":
        return actual == check.value
    if op == "!=":
        return actual != check.value
    if op in ("=~", "!~"):
        try:
            found = re.search(check.value, actual) is not None
        except re.error:
            return False
        return found if op == "=~" else not found
    left, right = _ordered(actual, check.value)
    try:
        if op == ">":
            return left > right  # type: ignore[operator]
        if op == ">=":
            return left >= right  # type: ignore[operator]
        if op == "<":
            return left < right  # type: ignore[operator]
        if op == "<=":
            return left <= right  # type: ignore[operator]
    except TypeError:
        return False
    return False


def evaluate_checks(
    checks: Iterable[GroupAttribute], request: Mapping[str, str] | None = None
) -> CheckResult:
    """Every check item must hold; the first failing one is reported."""
    attrs = dict(request or {})
    for check in checks:
        if not check_matches(check, attrs):
            return CheckResult(
                False,
                failed=check,
                denial_message=(
                    f"Check {check.attribute} {check.op} {check.value!r} "
                    f"of group {check.group} failed"
                ),
            )
    return CheckResult(True)
