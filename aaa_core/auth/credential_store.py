"""SQLite-backed persistence for subscriber authentication credentials."""

from __future__ import annotations

import hmac
from collections.abc import Iterator

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from aaa_core.db.models import (
    CredentialModel,
    GroupMembershipModel,
    ReplyAttributeModel,
)
from aaa_core.db.storage import AAAStorage
from aaa_core.exceptions import NotFound
from aaa_core.utils.logger import get_logger
from aaa_core.utils.timeutils import Clock, as_utc, utcnow

from .models import DEFAULT_CHECK_ATTRIBUTE, DEFAULT_CHECK_OP, Credential
from .validation import validate_attribute, validate_subscriber_id, validate_value

logger = get_logger(__name__, component="credentials")


class CredentialStore:
    """One authentication check attribute per subscriber.

    The unique constraint on ``subscriber_id`` is what makes :meth:`upsert`
    safe under concurrent writers: the insert-or-update is a single
    ``INSERT ... ON CONFLICT DO UPDATE`` statement.
    """

    LIST_BATCH_SIZE = 500

    def __init__(self, storage: AAAStorage, *, clock: Clock = utcnow) -> None:
        self.storage = storage
        self._clock = clock

    def get(self, subscriber_id: str) -> Credential:
        with self.storage.session() as session:
            row = session.execute(
                select(CredentialModel).where(
                    CredentialModel.subscriber_id == subscriber_id
                )
            ).scalar_one_or_none()
            if row is None:
                raise NotFound(
                    f"No credential for subscriber '{subscriber_id}'",
                    {"subscriber_id": subscriber_id},
                )
            return self._row_to_credential(row)

    def upsert(
        self,
        subscriber_id: str,
        secret: str,
        *,
        attribute: str = DEFAULT_CHECK_ATTRIBUTE,
    ) -> Credential:
        subscriber_id = validate_subscriber_id(subscriber_id)
        attribute = validate_attribute(attribute)
        secret = validate_value(secret)
        now = self._clock()
        stmt = sqlite_insert(CredentialModel).values(
            subscriber_id=subscriber_id,
            attribute=attribute,
            op=DEFAULT_CHECK_OP,
            value=secret,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CredentialModel.subscriber_id],
            set_={
                "attribute": stmt.excluded.attribute,
                "value": stmt.excluded.value,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        with self.storage.session() as session:
            session.execute(stmt)
            row = session.execute(
                select(CredentialModel).where(
                    CredentialModel.subscriber_id == subscriber_id
                )
            ).scalar_one()
            record = self._row_to_credential(row)
        logger.info(
            "Credential stored",
            event="aaa.credential.upserted",
            subscriber_id=subscriber_id,
            attribute=attribute,
        )
        return record

    def delete(self, subscriber_id: str) -> bool:
        """Remove the credential and every reply/membership row of the subscriber.

        Returns whether a credential existed. Policy rows are removed even
        when it did not, so no orphan survives a delete.
        """
        with self.storage.session() as session:
            removed = session.execute(
                delete(CredentialModel).where(
                    CredentialModel.subscriber_id == subscriber_id
                )
            ).rowcount
            replies = session.execute(
                delete(ReplyAttributeModel).where(
                    ReplyAttributeModel.subscriber_id == subscriber_id
                )
            ).rowcount
            memberships = session.execute(
                delete(GroupMembershipModel).where(
                    GroupMembershipModel.subscriber_id == subscriber_id
                )
            ).rowcount
        logger.info(
            "Subscriber removed",
            event="aaa.credential.deleted",
            subscriber_id=subscriber_id,
            existed=removed > 0,
            reply_rows=replies,
            membership_rows=memberships,
        )
        return removed > 0

    def list_all(self) -> Iterator[Credential]:
        """Yield every credential ordered by subscriber id.

        Each call runs a fresh query; the iterator holds a session open until
        it is exhausted or closed.
        """
        with self.storage.session() as session:
            rows = session.execute(
                select(CredentialModel)
                .order_by(CredentialModel.subscriber_id)
                .execution_options(yield_per=self.LIST_BATCH_SIZE)
            ).scalars()
            for row in rows:
                yield self._row_to_credential(row)

    def verify(self, subscriber_id: str, secret: str) -> bool:
        """Constant-time comparison of ``secret`` against a cleartext credential."""
        try:
            credential = self.get(subscriber_id)
        except NotFound:
            return False
        if credential.attribute != DEFAULT_CHECK_ATTRIBUTE:
            return False
        return hmac.compare_digest(
            credential.value.encode("utf-8"), str(secret).encode("utf-8")
        )

    @staticmethod
    def _row_to_credential(row: CredentialModel) -> Credential:
        return Credential(
            subscriber_id=row.subscriber_id,
            attribute=row.attribute,
            op=row.op,
            value=row.value,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )
