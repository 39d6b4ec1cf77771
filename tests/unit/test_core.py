from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from aaa_core.accounting.dispatcher import AsyncAccountingDispatcher
from aaa_core.accounting.models import AccountingEvent, EventKind
from aaa_core.config import AAAConfig
from aaa_core.core import AAACore


def _auth_total(outcome: str) -> float:
    return REGISTRY.get_sample_value("aaa_authorization_total", {"outcome": outcome}) or 0.0


@pytest.fixture
def core(storage, clock):
    return AAACore(storage, clock=clock)


def test_authorize_accepts_and_resolves_attributes(core):
    core.credentials.upsert("alice", "pw")
    core.replies.set("alice", "Framed-IP-Address", "100.64.0.7")
    core.groups.set_group_attribute("gold", "Rate-Limit", "100M/100M")
    core.groups.add_membership("alice", "gold")

    before = _auth_total("accept")
    attributes = core.authorize("alice", "pw")
    assert attributes == [
        ("Framed-IP-Address", "100.64.0.7"),
        ("Rate-Limit", "100M/100M"),
    ]
    assert _auth_total("accept") == before + 1


@pytest.mark.parametrize(
    "subscriber,secret", [("alice", "wrong"), ("nobody", "pw")]
)
def test_authorize_rejects(core, subscriber, secret):
    core.credentials.upsert("alice", "pw")
    before = _auth_total("reject")
    assert core.authorize(subscriber, secret) is None
    assert _auth_total("reject") == before + 1


def test_components_share_storage(core, storage):
    core.sessions.start("S1", "U1", "alice", "10.0.0.1")
    assert core.queries.active_session_count() == 1
    assert core.dispatcher.dispatch(
        AccountingEvent(EventKind.STOP, "S1", "alice", {
            "session_seconds": 10, "input_octets": 1, "output_octets": 2,
        })
    ).stop_time is not None
    assert core.retention.storage is storage


def test_async_dispatcher_uses_configured_workers(storage):
    core = AAACore(storage, async_workers=3, queue_size=5)
    dispatcher = core.async_dispatcher()
    assert isinstance(dispatcher, AsyncAccountingDispatcher)
    assert dispatcher.dispatcher is core.dispatcher
    assert dispatcher._worker_count == 3


def test_health_and_close_without_scheduler(core, storage):
    health = core.health()
    assert health["database"] is True
    assert health["db_path"] == storage.db_path
    assert health["retention_scheduler"] is False
    core.start()
    core.close()


def test_from_config_builds_scheduler_when_enabled(tmp_path):
    conf = tmp_path / "aaa.conf"
    conf.write_text(
        f"[database]\npath = {tmp_path / 'core.db'}\n\n"
        "[retention]\nenabled = true\ndays = 30\ninterval_hours = 12\n"
        f"export_dir = {tmp_path / 'exports'}\n\n"
        "[accounting]\nmax_retries = 1\n"
    )
    core = AAACore.from_config(AAAConfig(str(conf)))
    try:
        assert core.scheduler is not None
        assert core.scheduler.retention_days == 30
        assert core.retention.export_hook is not None
        assert core.dispatcher.policy.max_retries == 1
        core.start()
        assert core.health()["retention_scheduler"] is True
    finally:
        core.close()
    assert core.scheduler.running is False


def test_from_config_without_retention(tmp_path):
    conf = tmp_path / "aaa.conf"
    conf.write_text(f"[database]\npath = {tmp_path / 'core.db'}\n")
    core = AAACore.from_config(AAAConfig(str(conf)))
    try:
        assert core.scheduler is None
        assert core.retention.export_hook is None
    finally:
        core.close()


def test_authorize_applies_group_check_items(core):
    core.credentials.upsert("alice", "pw")
    core.groups.add_membership("alice", "bras-only")
    core.groups.set_group_attribute(
        "bras-only", "NAS-IP-Address", "10.0.0.1", "==", kind="check"
    )

    before = _auth_total("reject")
    assert core.authorize("alice", "pw", {"NAS-IP-Address": "10.0.0.2"}) is None
    assert core.authorize("alice", "pw") is None
    assert _auth_total("reject") == before + 2
    assert core.authorize("alice", "pw", {"NAS-IP-Address": "10.0.0.1"}) == []


def test_authorize_group_reject_rule(core):
    core.credentials.upsert("mallory", "pw")
    core.groups.add_membership("mallory", "suspended")
    core.groups.set_group_attribute("suspended", "Auth-Type", "Reject", ":=", kind="check")
    assert core.authorize("mallory", "pw") is None
