from __future__ import annotations

import asyncio
import threading
import time

import pytest

from aaa_core.accounting.dispatcher import AccountingDispatcher, AsyncAccountingDispatcher
from aaa_core.accounting.models import AccountingEvent, EventKind
from aaa_core.exceptions import SessionNotFound


class RecordingDispatcher:
    """Stand-in dispatcher that records the order events are applied in."""

    def __init__(self) -> None:
        self.applied: list[AccountingEvent] = []
        self._lock = threading.Lock()

    def dispatch(self, event: AccountingEvent):
        # Give other workers a chance to interleave
        time.sleep(0.001)
        with self._lock:
            self.applied.append(event)
        return event.attributes.get("seq")


def _interim(session_id: str, subscriber_id: str, seq: int) -> AccountingEvent:
    return AccountingEvent(EventKind.INTERIM, session_id, subscriber_id, {"seq": seq})


@pytest.mark.asyncio
async def test_per_session_order_is_preserved():
    recorder = RecordingDispatcher()
    async with AsyncAccountingDispatcher(recorder, workers=4) as dispatcher:
        futures = []
        for seq in range(25):
            for key in (("S1", "alice"), ("S2", "bob"), ("S3", "carol")):
                futures.append(await dispatcher.enqueue(_interim(*key, seq)))
        results = await asyncio.gather(*futures)

    assert sorted(results) == sorted(list(range(25)) * 3)
    for key in (("S1", "alice"), ("S2", "bob"), ("S3", "carol")):
        seqs = [e.attributes["seq"] for e in recorder.applied if e.ordering_key == key]
        assert seqs == list(range(25))


@pytest.mark.asyncio
async def test_same_key_always_maps_to_same_shard():
    dispatcher = AsyncAccountingDispatcher(RecordingDispatcher(), workers=8)
    event = _interim("S1", "alice", 0)
    shard = dispatcher.shard_for(event)
    assert all(dispatcher.shard_for(_interim("S1", "alice", i)) == shard for i in range(20))
    assert 0 <= shard < 8


@pytest.mark.asyncio
async def test_lifecycle_through_real_manager(manager):
    async with AsyncAccountingDispatcher(AccountingDispatcher(manager), workers=2) as d:
        await d.submit(
            AccountingEvent(
                EventKind.START,
                "S1",
                "alice",
                {"unique_id": "U1", "nas_address": "10.0.0.1"},
            )
        )
        await d.submit(
            AccountingEvent(
                EventKind.INTERIM,
                "S1",
                "alice",
                {"session_seconds": 60, "input_octets": 1000, "output_octets": 2000},
            )
        )
        stopped = await d.submit(
            AccountingEvent(
                EventKind.STOP,
                "S1",
                "alice",
                {"session_seconds": 120, "input_octets": 5000, "output_octets": 9000},
            )
        )
        assert stopped.session_time == 120
        assert stopped.stop_time is not None
        # Stop on a closed session is acknowledged, not raised
        again = await d.submit(
            AccountingEvent(
                EventKind.STOP,
                "S1",
                "alice",
                {"session_seconds": 120, "input_octets": 5000, "output_octets": 9000},
            )
        )
        assert again is None
    assert list(manager.list_active()) == []


@pytest.mark.asyncio
async def test_errors_are_delivered_to_the_submitter(manager):
    async with AsyncAccountingDispatcher(AccountingDispatcher(manager), workers=1) as d:
        with pytest.raises(SessionNotFound):
            await d.submit(
                AccountingEvent(
                    EventKind.INTERIM,
                    "ghost",
                    "alice",
                    {"session_seconds": 1, "input_octets": 1, "output_octets": 1},
                )
            )
        # Worker keeps running after a failure
        started = await d.submit(
            AccountingEvent(
                EventKind.START,
                "S2",
                "alice",
                {"unique_id": "U2", "nas_address": "10.0.0.1"},
            )
        )
        assert started.unique_id == "U2"


@pytest.mark.asyncio
async def test_submit_requires_running_dispatcher():
    dispatcher = AsyncAccountingDispatcher(RecordingDispatcher(), workers=1)
    with pytest.raises(RuntimeError):
        await dispatcher.submit(_interim("S1", "alice", 0))
    await dispatcher.start()
    assert dispatcher.queue_depths() == [0]
    await dispatcher.stop()
    assert dispatcher.running is False
