"""SQLAlchemy models for credentials, policies, NAS clients and accounting."""
# ruff: noqa: I001

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from aaa_core.db.engine import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


# Subscriber check/reply attributes


class CredentialModel(Base):
    __tablename__ = "credentials"
    __table_args__ = (
        Index("idx_credentials_subscriber", "subscriber_id"),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscriber_id = Column(String, nullable=False, unique=True)
    attribute = Column(String, nullable=False, default="Cleartext-Password")
    op = Column(String, nullable=False, default="==")
    value = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<Credential id={self.id} subscriber={self.subscriber_id!r}>"


class ReplyAttributeModel(Base):
    __tablename__ = "reply_attributes"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "attribute", name="uq_reply_subscriber_attr"),
        Index("idx_reply_subscriber", "subscriber_id"),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscriber_id = Column(String, nullable=False)
    attribute = Column(String, nullable=False)
    op = Column(String, nullable=False, default="=")
    value = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return (
            f"<ReplyAttribute subscriber={self.subscriber_id!r} "
            f"{self.attribute} {self.op} {self.value!r}>"
        )


# Group policy


class GroupAttributeModel(Base):
    __tablename__ = "group_attributes"
    __table_args__ = (
        UniqueConstraint(
            "group_name", "kind", "attribute", name="uq_group_kind_attr"
        ),
        Index("idx_group_attr_group", "group_name"),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_name = Column(String, nullable=False)
    kind = Column(String, nullable=False, default="reply")
    attribute = Column(String, nullable=False)
    op = Column(String, nullable=False, default="=")
    value = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<GroupAttribute group={self.group_name!r} {self.kind}:{self.attribute}>"


class GroupMembershipModel(Base):
    __tablename__ = "group_memberships"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "group_name", name="uq_membership"),
        Index("idx_membership_subscriber", "subscriber_id"),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscriber_id = Column(String, nullable=False)
    group_name = Column(String, nullable=False)
    priority = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return (
            f"<GroupMembership subscriber={self.subscriber_id!r} "
            f"group={self.group_name!r} priority={self.priority}>"
        )


# Network access servers


class NasClientModel(Base):
    __tablename__ = "nas_clients"
    __table_args__ = (
        Index("idx_nas_address", "nas_address"),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    nas_address = Column(String, nullable=False, unique=True)
    short_name = Column(String, nullable=False)
    nas_type = Column(String, nullable=False, default="other")
    secret = Column(String, nullable=False)
    server = Column(String, nullable=True)
    community = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    ports = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<NasClient id={self.id} address={self.nas_address!r} name={self.short_name!r}>"


# Accounting


class AccountingSessionModel(Base):
    __tablename__ = "accounting_sessions"
    __table_args__ = (
        Index("idx_acct_subscriber", "subscriber_id"),
        Index("idx_acct_session", "session_id"),
        Index("idx_acct_nas", "nas_address"),
        Index("idx_acct_stop_time", "stop_time"),
        Index("idx_acct_update_time", "update_time"),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, nullable=False)
    unique_id = Column(String, nullable=False, unique=True)
    subscriber_id = Column(String, nullable=False)
    nas_address = Column(String, nullable=False)
    nas_port_id = Column(String, nullable=True)
    nas_port_type = Column(String, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    update_time = Column(DateTime(timezone=True), nullable=True)
    stop_time = Column(DateTime(timezone=True), nullable=True)
    session_time = Column(BigInteger, nullable=False, default=0)
    input_octets = Column(BigInteger, nullable=False, default=0)
    output_octets = Column(BigInteger, nullable=False, default=0)
    terminate_cause = Column(String, nullable=True)
    authentic = Column(String, nullable=True)
    connect_info_start = Column(String, nullable=True)
    connect_info_stop = Column(String, nullable=True)
    service_type = Column(String, nullable=True)
    framed_protocol = Column(String, nullable=True)
    framed_ip_address = Column(String, nullable=True)
    calling_station_id = Column(String, nullable=True)
    called_station_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        state = "open" if self.stop_time is None else "closed"
        return (
            f"<AccountingSession id={self.id} unique_id={self.unique_id!r} "
            f"subscriber={self.subscriber_id!r} {state}>"
        )
