from __future__ import annotations

import pytest

from aaa_core.auth.models import ReplyAttribute
from aaa_core.exceptions import ValidationError


def test_set_and_list(replies):
    replies.set("alice", "Framed-IP-Address", "100.64.0.10")
    replies.set("alice", "Mikrotik-Rate-Limit", "10M/10M", op=":=")

    assert replies.list_for("alice") == frozenset(
        {
            ReplyAttribute("alice", "Framed-IP-Address", "=", "100.64.0.10"),
            ReplyAttribute("alice", "Mikrotik-Rate-Limit", ":=", "10M/10M"),
        }
    )
    assert replies.list_for("bob") == frozenset()


def test_set_replaces_existing_pair(replies):
    replies.set("alice", "Mikrotik-Rate-Limit", "10M/10M")
    replies.set("alice", "Mikrotik-Rate-Limit", "20M/20M")

    attrs = replies.list_for("alice")
    assert len(attrs) == 1
    (attr,) = attrs
    assert attr.value == "20M/20M"
    assert attr.as_pair() == ("Mikrotik-Rate-Limit", "20M/20M")


def test_remove(replies):
    replies.set("alice", "Session-Timeout", "3600")
    assert replies.remove("alice", "Session-Timeout") is True
    assert replies.remove("alice", "Session-Timeout") is False
    assert replies.list_for("alice") == frozenset()


def test_reply_operator_validated(replies):
    with pytest.raises(ValidationError):
        replies.set("alice", "Session-Timeout", "3600", op="==")


def test_value_required(replies):
    with pytest.raises(ValidationError):
        replies.set("alice", "Session-Timeout", None)
