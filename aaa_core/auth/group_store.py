"""Named policy groups, their attributes, and subscriber memberships."""

from __future__ import annotations

from sqlalchemy import delete, select, union
from sqlalchemy.exc import IntegrityError

from aaa_core.db.models import (
    GroupAttributeModel,
    GroupMembershipModel,
    ReplyAttributeModel,
)
from aaa_core.db.storage import AAAStorage
from aaa_core.exceptions import DuplicateMembership, StorageUnavailable, ValidationError
from aaa_core.utils.logger import get_logger
from aaa_core.utils.timeutils import Clock, utcnow

from .models import (
    DEFAULT_REPLY_OP,
    GROUP_KIND_CHECK,
    GROUP_KIND_REPLY,
    GROUP_KINDS,
    GroupAttribute,
    GroupMembership,
)
from .validation import (
    CHECK_OPERATORS,
    REPLY_OPERATORS,
    validate_attribute,
    validate_group,
    validate_operator,
    validate_subscriber_id,
    validate_value,
)

logger = get_logger(__name__, component="policy_groups")


def _validate_kind(kind: str) -> str:
    if kind not in GROUP_KINDS:
        raise ValidationError(
            f"Group attribute kind must be one of {GROUP_KINDS}", field="kind", value=kind
        )
    return kind


def _validate_priority(priority: object) -> int:
    try:
        value = int(priority)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "Priority must be an integer", field="priority", value=priority
        ) from exc
    if value < 0:
        raise ValidationError("Priority must not be negative", field="priority", value=value)
    return value


class PolicyGroupStore:
    """Group check/reply attributes plus subscriber → group membership."""

    def __init__(self, storage: AAAStorage, *, clock: Clock = utcnow) -> None:
        self.storage = storage
        self._clock = clock

    # ------------------------------------------------------------------
    # Group attributes
    # ------------------------------------------------------------------
    def set_group_attribute(
        self,
        group: str,
        attribute: str,
        value: str,
        op: str = DEFAULT_REPLY_OP,
        *,
        kind: str = GROUP_KIND_REPLY,
    ) -> GroupAttribute:
        """Replace-on-set for (group, kind, attribute)."""
        group = validate_group(group)
        kind = _validate_kind(kind)
        attribute = validate_attribute(attribute)
        op = validate_operator(
            op, CHECK_OPERATORS if kind == GROUP_KIND_CHECK else REPLY_OPERATORS
        )
        value = validate_value(value)
        try:
            with self.storage.session() as session:
                session.execute(
                    delete(GroupAttributeModel).where(
                        GroupAttributeModel.group_name == group,
                        GroupAttributeModel.kind == kind,
                        GroupAttributeModel.attribute == attribute,
                    )
                )
                session.add(
                    GroupAttributeModel(
                        group_name=group,
                        kind=kind,
                        attribute=attribute,
                        op=op,
                        value=value,
                        created_at=self._clock(),
                    )
                )
        except IntegrityError as exc:
            raise StorageUnavailable(
                "Concurrent group attribute update",
                {"group": group, "attribute": attribute},
            ) from exc
        logger.info(
            "Group attribute set",
            event="aaa.group.attribute_set",
            group=group,
            kind=kind,
            attribute=attribute,
        )
        return GroupAttribute(group, kind, attribute, op, value)

    def group_attributes(
        self, group: str, *, kind: str = GROUP_KIND_REPLY
    ) -> list[GroupAttribute]:
        group = validate_group(group)
        with self.storage.session() as session:
            rows = session.execute(
                select(GroupAttributeModel)
                .where(
                    GroupAttributeModel.group_name == group,
                    GroupAttributeModel.kind == _validate_kind(kind),
                )
                .order_by(GroupAttributeModel.attribute)
            ).scalars()
            return [
                GroupAttribute(r.group_name, r.kind, r.attribute, r.op, r.value)
                for r in rows
            ]

    def list_groups(self) -> list[str]:
        """Every group that has attributes or members, sorted by name."""
        with self.storage.session() as session:
            names = session.execute(
                union(
                    select(GroupAttributeModel.group_name),
                    select(GroupMembershipModel.group_name),
                )
            ).scalars()
            return sorted(set(names))

    def delete_group(self, group: str) -> bool:
        """Remove a group's attributes and memberships; True if anything existed."""
        group = validate_group(group)
        with self.storage.session() as session:
            attrs = session.execute(
                delete(GroupAttributeModel).where(GroupAttributeModel.group_name == group)
            ).rowcount
            members = session.execute(
                delete(GroupMembershipModel).where(
                    GroupMembershipModel.group_name == group
                )
            ).rowcount
        logger.info(
            "Group deleted",
            event="aaa.group.deleted",
            group=group,
            attribute_rows=attrs,
            membership_rows=members,
        )
        return (attrs + members) > 0

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    def add_membership(
        self, subscriber_id: str, group: str, priority: int = 1
    ) -> GroupMembership:
        """Insert-or-fail on (subscriber, group).

        Changing the priority of an existing membership requires removing it
        first; the unique constraint rejects a second insert.
        """
        subscriber_id = validate_subscriber_id(subscriber_id)
        group = validate_group(group)
        priority = _validate_priority(priority)
        try:
            with self.storage.session() as session:
                session.add(
                    GroupMembershipModel(
                        subscriber_id=subscriber_id,
                        group_name=group,
                        priority=priority,
                        created_at=self._clock(),
                    )
                )
        except IntegrityError as exc:
            raise DuplicateMembership(
                f"Subscriber '{subscriber_id}' is already a member of '{group}'",
                {"subscriber_id": subscriber_id, "group": group},
            ) from exc
        logger.info(
            "Membership added",
            event="aaa.group.membership_added",
            subscriber_id=subscriber_id,
            group=group,
            priority=priority,
        )
        return GroupMembership(subscriber_id, group, priority)

    def remove_membership(self, subscriber_id: str, group: str) -> bool:
        group = validate_group(group)
        with self.storage.session() as session:
            result = session.execute(
                delete(GroupMembershipModel).where(
                    GroupMembershipModel.subscriber_id == subscriber_id,
                    GroupMembershipModel.group_name == group,
                )
            )
            removed = result.rowcount > 0
        if removed:
            logger.info(
                "Membership removed",
                event="aaa.group.membership_removed",
                subscriber_id=subscriber_id,
                group=group,
            )
        return removed

    def memberships_for(self, subscriber_id: str) -> list[GroupMembership]:
        """Memberships ordered by ascending priority, then group name."""
        with self.storage.session() as session:
            rows = session.execute(
                select(GroupMembershipModel)
                .where(GroupMembershipModel.subscriber_id == subscriber_id)
                .order_by(GroupMembershipModel.priority, GroupMembershipModel.group_name)
            ).scalars()
            return [
                GroupMembership(r.subscriber_id, r.group_name, r.priority) for r in rows
            ]

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------
    def resolve_effective_attributes(self, subscriber_id: str) -> list[tuple[str, str]]:
        """Merge subscriber and group reply attributes into one ordered list.

        Subscriber-level attributes come first and always win. Group
        attributes follow in ascending membership priority (ties by group
        name); for a repeated attribute name the first occurrence wins.
        All rows are read in a single transaction.
        """
        with self.storage.session() as session:
            own = session.execute(
                select(ReplyAttributeModel.attribute, ReplyAttributeModel.value)
                .where(ReplyAttributeModel.subscriber_id == subscriber_id)
                .order_by(ReplyAttributeModel.attribute)
            ).all()
            inherited = session.execute(
                select(GroupAttributeModel.attribute, GroupAttributeModel.value)
                .join(
                    GroupMembershipModel,
                    GroupMembershipModel.group_name == GroupAttributeModel.group_name,
                )
                .where(
                    GroupMembershipModel.subscriber_id == subscriber_id,
                    GroupAttributeModel.kind == GROUP_KIND_REPLY,
                )
                .order_by(
                    GroupMembershipModel.priority,
                    GroupMembershipModel.group_name,
                    GroupAttributeModel.attribute,
                )
            ).all()

        resolved: list[tuple[str, str]] = []
        seen: set[str] = set()
        for attribute, value in [*own, *inherited]:
            if attribute in seen:
                continue
            seen.add(attribute)
            resolved.append((attribute, value))
        return resolved

    def check_attributes_for(self, subscriber_id: str) -> list[GroupAttribute]:
        """Group check attributes that apply to the subscriber, by priority."""
        with self.storage.session() as session:
            rows = session.execute(
                select(GroupAttributeModel)
                .join(
                    GroupMembershipModel,
                    GroupMembershipModel.group_name == GroupAttributeModel.group_name,
                )
                .where(
                    GroupMembershipModel.subscriber_id == subscriber_id,
                    GroupAttributeModel.kind == GROUP_KIND_CHECK,
                )
                .order_by(GroupMembershipModel.priority, GroupMembershipModel.group_name)
            ).scalars()
            return [
                GroupAttribute(r.group_name, r.kind, r.attribute, r.op, r.value)
                for r in rows
            ]
