"""Route decoded accounting events to the session manager.

``AccountingDispatcher`` is the synchronous entry point used by transports:
it maps an :class:`AccountingEvent` onto the matching manager call and
retries ``StorageUnavailable`` with bounded exponential backoff.

``AsyncAccountingDispatcher`` fronts it for asyncio transports. Events are
sharded by ``(session_id, subscriber_id)`` onto a fixed pool of queues; each
queue has exactly one worker, so events for one session are applied in the
order they were submitted while unrelated sessions proceed in parallel.
"""

from __future__ import annotations

import asyncio
import time
import zlib
from collections.abc import Callable
from typing import Any

from aaa_core.exceptions import AlreadyClosed, ValidationError
from aaa_core.utils.logger import get_logger
from aaa_core.utils.retry import RetryPolicy, call_with_retry

from .manager import AccountingSessionManager
from .models import AccountingEvent, AccountingSession, EventKind

logger = get_logger(__name__, component="accounting_dispatcher")

_STOP = object()


class AccountingDispatcher:
    """Apply accounting events with retry on transient storage failures."""

    def __init__(
        self,
        manager: AccountingSessionManager,
        *,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.manager = manager
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def dispatch(self, event: AccountingEvent) -> AccountingSession | None:
        """Apply one event and return the resulting session.

        A stop for an already Closed session is acknowledged and returns
        None; every other failure propagates to the caller.
        """
        handler = self._handler_for(event.kind)
        try:
            return call_with_retry(
                handler,
                event.session_id,
                event.subscriber_id,
                policy=self.policy,
                sleep=self._sleep,
                **event.attributes,
            )
        except AlreadyClosed:
            return None
        except TypeError as exc:
            raise ValidationError(
                f"Malformed {event.kind.value} event: {exc}",
                field="attributes",
                value=sorted(event.attributes),
            ) from exc

    def _handler_for(self, kind: EventKind) -> Callable[..., AccountingSession]:
        if kind is EventKind.START:
            return self._start
        if kind is EventKind.INTERIM:
            return self.manager.interim_update
        return self.manager.stop

    def _start(
        self, session_id: str, subscriber_id: str, **attributes: Any
    ) -> AccountingSession:
        unique_id = attributes.pop("unique_id", None)
        nas_address = attributes.pop("nas_address", None)
        return self.manager.start(
            session_id, unique_id, subscriber_id, nas_address, **attributes
        )


class AsyncAccountingDispatcher:
    """Ordered-per-session asyncio front end for :class:`AccountingDispatcher`."""

    def __init__(
        self,
        dispatcher: AccountingDispatcher,
        *,
        workers: int = 8,
        queue_size: int = 10000,
    ) -> None:
        self.dispatcher = dispatcher
        self._worker_count = max(1, int(workers))
        self._queue_size = max(1, int(queue_size))
        self._queues: list[asyncio.Queue] = []
        self._workers: list[asyncio.Task] = []
        self.running = False

    async def __aenter__(self) -> AsyncAccountingDispatcher:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def start(self) -> None:
        if self.running:
            return
        self._queues = [
            asyncio.Queue(maxsize=self._queue_size) for _ in range(self._worker_count)
        ]
        self._workers = [
            asyncio.create_task(self._worker(queue), name=f"aaa-acct-worker-{i}")
            for i, queue in enumerate(self._queues)
        ]
        self.running = True
        logger.info(
            "Accounting dispatcher started",
            event="aaa.dispatcher.started",
            workers=self._worker_count,
        )

    async def stop(self) -> None:
        """Drain every queue, then stop the workers."""
        if not self.running:
            return
        self.running = False
        for queue in self._queues:
            await queue.put(_STOP)
        await asyncio.gather(*self._workers)
        self._workers = []
        self._queues = []
        logger.info("Accounting dispatcher stopped", event="aaa.dispatcher.stopped")

    def shard_for(self, event: AccountingEvent) -> int:
        session_id, subscriber_id = event.ordering_key
        key = f"{session_id}\x00{subscriber_id}".encode()
        return zlib.crc32(key) % self._worker_count

    async def enqueue(self, event: AccountingEvent) -> asyncio.Future:
        """Queue an event and return a future resolved once it is applied.

        Waits for queue space, so submission order is application order for
        every event of the same session.
        """
        if not self.running:
            raise RuntimeError("Accounting dispatcher is not running")
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queues[self.shard_for(event)].put((event, future))
        return future

    async def submit(self, event: AccountingEvent) -> AccountingSession | None:
        future = await self.enqueue(event)
        return await future

    def queue_depths(self) -> list[int]:
        return [queue.qsize() for queue in self._queues]

    async def _worker(self, queue: asyncio.Queue) -> None:
        while True:
            item = await queue.get()
            try:
                if item is _STOP:
                    return
                event, future = item
                try:
                    result = await asyncio.to_thread(self.dispatcher.dispatch, event)
                except Exception as exc:
                    logger.warning(
                        "Accounting event failed",
                        event="aaa.dispatcher.event_failed",
                        kind=event.kind.value,
                        session_id=event.session_id,
                        subscriber_id=event.subscriber_id,
                        error=str(exc),
                    )
                    if not future.done():
                        future.set_exception(exc)
                else:
                    if not future.done():
                        future.set_result(result)
            finally:
                queue.task_done()
