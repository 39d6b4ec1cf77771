from __future__ import annotations

from datetime import UTC, timedelta, timezone

import pytest
from prometheus_client import REGISTRY

from aaa_core.accounting.query import QueryFacade


@pytest.fixture
def queries(storage) -> QueryFacade:
    return QueryFacade(storage)


def test_active_session_count_updates_gauge(manager, queries):
    assert queries.active_session_count() == 0
    manager.start("S1", "U1", "alice", "10.0.0.1")
    manager.start("S2", "U2", "bob", "10.0.0.1")
    manager.start("S3", "U3", "carol", "10.0.0.1")
    manager.stop("S3", "carol", 1, 1, 1)

    assert queries.active_session_count() == 2
    assert REGISTRY.get_sample_value("aaa_active_sessions") == 2


def test_active_sessions_for(manager, queries, clock):
    manager.start("S1", "U1", "alice", "10.0.0.1")
    clock.advance(seconds=5)
    manager.start("S2", "U2", "alice", "10.0.0.2")
    manager.start("S3", "U3", "bob", "10.0.0.1")

    assert [s.unique_id for s in queries.active_sessions_for("alice")] == ["U2", "U1"]
    assert queries.active_sessions_for("nobody") == []


def test_online_counts_by_group(manager, groups, queries):
    for sub in ("alice", "bob"):
        groups.add_membership(sub, "gold")
    groups.add_membership("carol", "silver")
    groups.add_membership("dave", "bronze")

    manager.start("S1", "U1", "alice", "10.0.0.1")
    # Two sessions for one subscriber count once
    manager.start("S2", "U2", "alice", "10.0.0.2")
    manager.start("S3", "U3", "carol", "10.0.0.1")
    manager.start("S4", "U4", "dave", "10.0.0.1")
    manager.stop("S4", "dave", 1, 1, 1)

    assert queries.online_counts_by_group() == {"bronze": 0, "gold": 1, "silver": 1}


def test_online_for_group(manager, groups, queries):
    groups.add_membership("alice", "gold")
    groups.add_membership("bob", "silver")
    manager.start("S1", "U1", "alice", "10.0.0.1")
    manager.start("S2", "U2", "bob", "10.0.0.1")

    assert [s.subscriber_id for s in queries.online_for_group("gold")] == ["alice"]
    assert queries.online_for_group("platinum") == []


def test_connection_status(manager, queries, clock):
    never = queries.connection_status("alice")
    assert never.online is False
    assert never.last_seen is None

    manager.start("S1", "U1", "alice", "10.0.0.1", framed_ip="100.64.0.9")
    online = queries.connection_status("alice")
    assert online.online is True
    assert online.nas_address == "10.0.0.1"
    assert online.framed_ip_address == "100.64.0.9"
    assert online.start_time == clock.now

    clock.advance(minutes=30)
    manager.stop("S1", "alice", 1800, 10, 10)
    offline = queries.connection_status("alice")
    assert offline.online is False
    assert offline.last_seen == clock.now


def test_usage_summary(manager, queries, clock):
    manager.start("S1", "U1", "alice", "10.0.0.1")
    manager.stop("S1", "alice", 100, 1000, 2000)
    clock.advance(days=2)
    manager.start("S2", "U2", "alice", "10.0.0.1")
    manager.interim_update("S2", "alice", 50, 500, 700)

    summary = queries.usage_summary("alice")
    assert summary.session_count == 2
    assert summary.total_seconds == 150
    assert summary.total_input_octets == 1500
    assert summary.total_output_octets == 2700
    assert summary.total_octets == 4200

    recent = queries.usage_summary("alice", since=clock.now - timedelta(days=1))
    assert recent.session_count == 1
    assert recent.total_seconds == 50

    empty = queries.usage_summary("nobody")
    assert (empty.session_count, empty.total_octets) == (0, 0)


def test_usage_summary_since_accepts_any_timezone(manager, queries, clock):
    manager.start("S1", "U1", "alice", "10.0.0.1")
    one_hour_before = (clock.now - timedelta(hours=1)).astimezone(
        timezone(timedelta(hours=2))
    )
    assert one_hour_before.hour == 13
    assert queries.usage_summary("alice", since=one_hour_before).session_count == 1

    one_hour_after = (clock.now + timedelta(hours=1)).astimezone(
        timezone(timedelta(hours=-5))
    )
    assert queries.usage_summary("alice", since=one_hour_after).session_count == 0

    naive = (clock.now - timedelta(minutes=1)).astimezone(UTC).replace(tzinfo=None)
    assert queries.usage_summary("alice", since=naive).session_count == 1
