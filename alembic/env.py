# ruff: noqa: I001
from __future__ import annotations

import logging
import os
import sys
from typing import Any, cast

from alembic import context as alembic_context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Engine

# Ensure project root on path for Base import
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from aaa_core.db import models  # noqa: E402,F401
from aaa_core.db.engine import Base  # noqa: E402

context: Any = alembic_context
config = context.config

# Alembic logs go through the application's root handlers; no fileConfig
alembic_logger = logging.getLogger("alembic")
alembic_logger.handlers = []
alembic_logger.propagate = True

target_metadata = Base.metadata


def get_url() -> str:
    env_url = os.getenv("AAA_ALEMBIC_DATABASE_URL")
    if env_url:
        return env_url
    return cast(str, config.get_main_option("sqlalchemy.url"))


def run_migrations_offline() -> None:
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable: Engine = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        url=get_url(),
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
