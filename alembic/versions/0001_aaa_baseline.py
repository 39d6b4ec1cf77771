# ruff: noqa: I001
"""AAA baseline: policy, NAS and accounting tables with their indexes.

Revision ID: 0001_aaa_baseline
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from alembic import op as alembic_op  # type: ignore[attr-defined]
from sqlalchemy import inspect

op: Any = alembic_op

# revision identifiers, used by Alembic.
revision = "0001_aaa_baseline"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]


def _has_index(table: str, name: str) -> bool:
    insp = inspect(op.get_bind())
    return any(ix.get("name") == name for ix in insp.get_indexes(table))


def upgrade():
    conn = op.get_bind()
    tables = set(inspect(conn).get_table_names())

    if "credentials" not in tables:
        op.create_table(
            "credentials",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("subscriber_id", sa.String(), nullable=False, unique=True),
            sa.Column("attribute", sa.String(), nullable=False),
            sa.Column("op", sa.String(), nullable=False),
            sa.Column("value", sa.String(), nullable=False),
            *_timestamps(),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("idx_credentials_subscriber", "credentials", ["subscriber_id"])

    if "reply_attributes" not in tables:
        op.create_table(
            "reply_attributes",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("subscriber_id", sa.String(), nullable=False),
            sa.Column("attribute", sa.String(), nullable=False),
            sa.Column("op", sa.String(), nullable=False),
            sa.Column("value", sa.String(), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint(
                "subscriber_id", "attribute", name="uq_reply_subscriber_attr"
            ),
        )
        op.create_index("idx_reply_subscriber", "reply_attributes", ["subscriber_id"])

    if "group_attributes" not in tables:
        op.create_table(
            "group_attributes",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("group_name", sa.String(), nullable=False),
            sa.Column("kind", sa.String(), nullable=False),
            sa.Column("attribute", sa.String(), nullable=False),
            sa.Column("op", sa.String(), nullable=False),
            sa.Column("value", sa.String(), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint(
                "group_name", "kind", "attribute", name="uq_group_kind_attr"
            ),
        )
        op.create_index("idx_group_attr_group", "group_attributes", ["group_name"])

    if "group_memberships" not in tables:
        op.create_table(
            "group_memberships",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("subscriber_id", sa.String(), nullable=False),
            sa.Column("group_name", sa.String(), nullable=False),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="1"),
            *_timestamps(),
            sa.UniqueConstraint("subscriber_id", "group_name", name="uq_membership"),
        )
        op.create_index(
            "idx_membership_subscriber", "group_memberships", ["subscriber_id"]
        )

    if "nas_clients" not in tables:
        op.create_table(
            "nas_clients",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("nas_address", sa.String(), nullable=False, unique=True),
            sa.Column("short_name", sa.String(), nullable=False),
            sa.Column("nas_type", sa.String(), nullable=False, server_default="other"),
            sa.Column("secret", sa.String(), nullable=False),
            sa.Column("server", sa.String()),
            sa.Column("community", sa.String()),
            sa.Column("description", sa.Text()),
            sa.Column("ports", sa.Integer()),
            *_timestamps(),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("idx_nas_address", "nas_clients", ["nas_address"])

    if "accounting_sessions" not in tables:
        op.create_table(
            "accounting_sessions",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("session_id", sa.String(), nullable=False),
            sa.Column("unique_id", sa.String(), nullable=False, unique=True),
            sa.Column("subscriber_id", sa.String(), nullable=False),
            sa.Column("nas_address", sa.String(), nullable=False),
            sa.Column("nas_port_id", sa.String()),
            sa.Column("nas_port_type", sa.String()),
            sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
            sa.Column("update_time", sa.DateTime(timezone=True)),
            sa.Column("stop_time", sa.DateTime(timezone=True)),
            sa.Column("session_time", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("input_octets", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("output_octets", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("terminate_cause", sa.String()),
            sa.Column("authentic", sa.String()),
            sa.Column("connect_info_start", sa.String()),
            sa.Column("connect_info_stop", sa.String()),
            sa.Column("service_type", sa.String()),
            sa.Column("framed_protocol", sa.String()),
            sa.Column("framed_ip_address", sa.String()),
            sa.Column("calling_station_id", sa.String()),
            sa.Column("called_station_id", sa.String()),
            *_timestamps(),
        )

    # Retention and active-session scans depend on these
    for name, columns in (
        ("idx_acct_subscriber", ["subscriber_id"]),
        ("idx_acct_session", ["session_id"]),
        ("idx_acct_nas", ["nas_address"]),
        ("idx_acct_stop_time", ["stop_time"]),
        ("idx_acct_update_time", ["update_time"]),
    ):
        if not _has_index("accounting_sessions", name):
            op.create_index(name, "accounting_sessions", columns)


def downgrade():
    for table in (
        "accounting_sessions",
        "nas_clients",
        "group_memberships",
        "group_attributes",
        "reply_attributes",
        "credentials",
    ):
        op.drop_table(table)
