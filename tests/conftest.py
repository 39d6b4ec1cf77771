"""Shared fixtures: a throwaway SQLite database per test and a steerable clock."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from aaa_core.accounting.manager import AccountingSessionManager
from aaa_core.auth.credential_store import CredentialStore
from aaa_core.auth.group_store import PolicyGroupStore
from aaa_core.auth.reply_store import ReplyAttributeStore
from aaa_core.db.storage import AAAStorage
from aaa_core.nas.registry import NasRegistry


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def storage(tmp_path):
    store = AAAStorage(tmp_path / "aaa.db")
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def credentials(storage, clock) -> CredentialStore:
    return CredentialStore(storage, clock=clock)


@pytest.fixture
def replies(storage, clock) -> ReplyAttributeStore:
    return ReplyAttributeStore(storage, clock=clock)


@pytest.fixture
def groups(storage, clock) -> PolicyGroupStore:
    return PolicyGroupStore(storage, clock=clock)


@pytest.fixture
def nas_registry(storage, clock) -> NasRegistry:
    return NasRegistry(storage, clock=clock)


@pytest.fixture
def manager(storage, clock) -> AccountingSessionManager:
    return AccountingSessionManager(storage, clock=clock)
