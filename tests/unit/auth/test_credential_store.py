from __future__ import annotations

import pytest
from sqlalchemy import func, select

from aaa_core.db.models import CredentialModel
from aaa_core.exceptions import NotFound, ValidationError


def test_upsert_then_get(credentials, clock):
    cred = credentials.upsert("alice", "s3cret")
    assert cred.subscriber_id == "alice"
    assert cred.attribute == "Cleartext-Password"
    assert cred.op == "=="
    assert cred.value == "s3cret"
    assert cred.created_at == clock.now

    fetched = credentials.get("alice")
    assert fetched == cred


def test_upsert_replaces_without_duplicating(credentials, storage, clock):
    first = credentials.upsert("alice", "one")
    clock.advance(minutes=5)
    second = credentials.upsert("alice", "two")

    assert second.value == "two"
    assert second.created_at == first.created_at
    assert second.updated_at == clock.now
    with storage.session() as session:
        rows = session.execute(
            select(func.count()).select_from(CredentialModel)
        ).scalar_one()
    assert rows == 1


def test_get_unknown_subscriber_raises(credentials):
    with pytest.raises(NotFound):
        credentials.get("nobody")


def test_delete_cascades_to_policy_rows(credentials, replies, groups):
    credentials.upsert("alice", "pw")
    replies.set("alice", "Framed-IP-Address", "100.64.0.10")
    groups.add_membership("alice", "gold")
    groups.add_membership("bob", "gold")

    assert credentials.delete("alice") is True

    with pytest.raises(NotFound):
        credentials.get("alice")
    assert replies.list_for("alice") == frozenset()
    assert groups.memberships_for("alice") == []
    # Other subscribers untouched
    assert [m.subscriber_id for m in groups.memberships_for("bob")] == ["bob"]
    assert credentials.delete("alice") is False


def test_list_all_is_ordered_and_restartable(credentials):
    for name in ("carol", "alice", "bob"):
        credentials.upsert(name, f"{name}-pw")

    first = [c.subscriber_id for c in credentials.list_all()]
    second = [c.subscriber_id for c in credentials.list_all()]
    assert first == ["alice", "bob", "carol"]
    assert second == first


def test_verify(credentials):
    credentials.upsert("alice", "pw")
    credentials.upsert("hashed", "abc", attribute="MD5-Password")
    assert credentials.verify("alice", "pw") is True
    assert credentials.verify("alice", "wrong") is False
    assert credentials.verify("ghost", "pw") is False
    assert credentials.verify("hashed", "abc") is False


@pytest.mark.parametrize("bad", ["", "   ", " alice", "alice ", "x" * 254])
def test_upsert_rejects_invalid_subscriber(credentials, bad):
    with pytest.raises(ValidationError):
        credentials.upsert(bad, "pw")


def test_upsert_rejects_invalid_attribute(credentials):
    with pytest.raises(ValidationError):
        credentials.upsert("alice", "pw", attribute="bad attribute!")
