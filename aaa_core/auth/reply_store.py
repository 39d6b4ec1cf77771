"""Per-subscriber reply attributes (bandwidth caps, framed addresses, ...)."""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from aaa_core.db.models import ReplyAttributeModel
from aaa_core.db.storage import AAAStorage
from aaa_core.exceptions import StorageUnavailable
from aaa_core.utils.logger import get_logger
from aaa_core.utils.timeutils import Clock, utcnow

from .models import DEFAULT_REPLY_OP, ReplyAttribute
from .validation import (
    REPLY_OPERATORS,
    validate_attribute,
    validate_operator,
    validate_subscriber_id,
    validate_value,
)

logger = get_logger(__name__, component="reply_attributes")


class ReplyAttributeStore:
    """Replace-on-set storage of reply attributes keyed by (subscriber, attribute)."""

    def __init__(self, storage: AAAStorage, *, clock: Clock = utcnow) -> None:
        self.storage = storage
        self._clock = clock

    def set(
        self,
        subscriber_id: str,
        attribute: str,
        value: str,
        op: str = DEFAULT_REPLY_OP,
    ) -> ReplyAttribute:
        """Delete any row for (subscriber, attribute) and insert the new one.

        Both statements run in one transaction; the replaced row's identity
        and creation time are not preserved.
        """
        subscriber_id = validate_subscriber_id(subscriber_id)
        attribute = validate_attribute(attribute)
        op = validate_operator(op, REPLY_OPERATORS)
        value = validate_value(value)
        try:
            with self.storage.session() as session:
                session.execute(
                    delete(ReplyAttributeModel).where(
                        ReplyAttributeModel.subscriber_id == subscriber_id,
                        ReplyAttributeModel.attribute == attribute,
                    )
                )
                session.add(
                    ReplyAttributeModel(
                        subscriber_id=subscriber_id,
                        attribute=attribute,
                        op=op,
                        value=value,
                        created_at=self._clock(),
                    )
                )
        except IntegrityError as exc:
            # Lost a race with a concurrent set of the same pair
            raise StorageUnavailable(
                "Concurrent reply attribute update",
                {"subscriber_id": subscriber_id, "attribute": attribute},
            ) from exc
        logger.info(
            "Reply attribute set",
            event="aaa.reply.set",
            subscriber_id=subscriber_id,
            attribute=attribute,
            op=op,
        )
        return ReplyAttribute(subscriber_id, attribute, op, value)

    def list_for(self, subscriber_id: str) -> frozenset[ReplyAttribute]:
        with self.storage.session() as session:
            rows = session.execute(
                select(ReplyAttributeModel).where(
                    ReplyAttributeModel.subscriber_id == subscriber_id
                )
            ).scalars()
            return frozenset(
                ReplyAttribute(row.subscriber_id, row.attribute, row.op, row.value)
                for row in rows
            )

    def remove(self, subscriber_id: str, attribute: str) -> bool:
        with self.storage.session() as session:
            result = session.execute(
                delete(ReplyAttributeModel).where(
                    ReplyAttributeModel.subscriber_id == subscriber_id,
                    ReplyAttributeModel.attribute == attribute,
                )
            )
            return result.rowcount > 0
