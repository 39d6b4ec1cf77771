"""Service container wiring every AAA component to one storage handle."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from aaa_core.accounting.dispatcher import AccountingDispatcher, AsyncAccountingDispatcher
from aaa_core.accounting.manager import AccountingSessionManager
from aaa_core.accounting.query import QueryFacade
from aaa_core.auth import CredentialStore, PolicyGroupStore, ReplyAttributeStore
from aaa_core.auth.policy import evaluate_checks
from aaa_core.config import AAAConfig
from aaa_core.db.storage import AAAStorage
from aaa_core.nas import NasRegistry
from aaa_core.retention import JsonExportHook, RetentionJob, RetentionScheduler
from aaa_core.utils.logger import get_logger
from aaa_core.utils.metrics import authorization_total
from aaa_core.utils.retry import RetryPolicy
from aaa_core.utils.timeutils import Clock, utcnow

logger = get_logger(__name__, component="core")


class AAACore:
    """Holds the stores, session manager, queries and retention job.

    Components share ``storage`` and never reach each other's tables; the
    container is the only place that knows about all of them.
    """

    def __init__(
        self,
        storage: AAAStorage,
        *,
        clock: Clock = utcnow,
        retry_policy: RetryPolicy | None = None,
        retention_job: RetentionJob | None = None,
        async_workers: int = 8,
        queue_size: int = 10000,
    ) -> None:
        self.storage = storage
        self.credentials = CredentialStore(storage, clock=clock)
        self.replies = ReplyAttributeStore(storage, clock=clock)
        self.groups = PolicyGroupStore(storage, clock=clock)
        self.nas = NasRegistry(storage, clock=clock)
        self.sessions = AccountingSessionManager(storage, clock=clock)
        self.dispatcher = AccountingDispatcher(self.sessions, policy=retry_policy)
        self.queries = QueryFacade(storage)
        self.retention = retention_job or RetentionJob(storage, clock=clock)
        self.scheduler: RetentionScheduler | None = None
        self._async_workers = async_workers
        self._queue_size = queue_size

    @classmethod
    def from_config(cls, config: AAAConfig | None = None) -> AAACore:
        config = config or AAAConfig()
        storage = AAAStorage.from_config(config.get_database_config())
        acct = config.get_accounting_config()
        ret = config.get_retention_config()
        hook = JsonExportHook(ret["export_dir"]) if ret["export_dir"] else None
        core = cls(
            storage,
            retry_policy=RetryPolicy.from_config(acct),
            retention_job=RetentionJob(storage, export_hook=hook, vacuum=ret["vacuum"]),
            async_workers=acct["async_workers"],
            queue_size=acct["queue_size"],
        )
        if ret["enabled"]:
            core.scheduler = RetentionScheduler.from_config(core.retention, ret)
        return core

    def authorize(
        self,
        subscriber_id: str,
        secret: str,
        request: Mapping[str, str] | None = None,
    ) -> list[tuple[str, str]] | None:
        """Check the credential and group check items, then return reply attributes.

        ``request`` carries the access-request attributes the group check
        items are compared against. Returns None when the subscriber is
        unknown, the secret is wrong, or a check item fails.
        """
        if not self.credentials.verify(subscriber_id, secret):
            authorization_total.labels(outcome="reject").inc()
            logger.info(
                "Authorization rejected",
                event="aaa.auth.rejected",
                subscriber_id=subscriber_id,
            )
            return None
        checks = evaluate_checks(self.groups.check_attributes_for(subscriber_id), request)
        if not checks.allowed:
            authorization_total.labels(outcome="reject").inc()
            logger.info(
                "Authorization rejected by group check",
                event="aaa.auth.check_failed",
                subscriber_id=subscriber_id,
                reason=checks.denial_message,
            )
            return None
        attributes = self.groups.resolve_effective_attributes(subscriber_id)
        authorization_total.labels(outcome="accept").inc()
        logger.info(
            "Authorization accepted",
            event="aaa.auth.accepted",
            subscriber_id=subscriber_id,
            attribute_count=len(attributes),
        )
        return attributes

    def async_dispatcher(self) -> AsyncAccountingDispatcher:
        return AsyncAccountingDispatcher(
            self.dispatcher, workers=self._async_workers, queue_size=self._queue_size
        )

    def start(self) -> None:
        if self.scheduler is not None:
            self.scheduler.start()

    def health(self) -> dict[str, Any]:
        return {
            "database": self.storage.ping(),
            "db_path": self.storage.db_path,
            "retention_scheduler": bool(self.scheduler and self.scheduler.running),
        }

    def close(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()
        self.storage.close()
