from __future__ import annotations

import pytest
from sqlalchemy import inspect, text

from aaa_core.db.engine import Base, get_session_factory
from aaa_core.db.models import AccountingSessionModel, NasClientModel
from aaa_core.db.storage import AAAStorage
from aaa_core.exceptions import StorageUnavailable


def test_engine_sqlite_pragmas_and_pool(tmp_path) -> None:
    db_path = tmp_path / "engine.db"
    factory = get_session_factory(str(db_path))
    engine = factory.kw["bind"]
    # PRAGMAs configured by connect listener
    with engine.connect() as conn:
        journal_mode = str(
            conn.exec_driver_sql("PRAGMA journal_mode").scalar() or ""
        ).lower()
        busy_timeout = conn.exec_driver_sql("PRAGMA busy_timeout").scalar()
        synchronous = conn.exec_driver_sql("PRAGMA synchronous").scalar()
        foreign_keys = conn.exec_driver_sql("PRAGMA foreign_keys").scalar()
        cache_size = conn.exec_driver_sql("PRAGMA cache_size").scalar()
    assert journal_mode == "wal"
    assert busy_timeout == 5000
    assert synchronous == 1  # NORMAL
    assert foreign_keys == 1
    assert cache_size == -64000
    pool = engine.pool
    assert getattr(pool, "size")() == 10
    assert getattr(pool, "_max_overflow", None) == 20
    assert getattr(pool, "_timeout", None) == 30
    engine.dispose()


def test_storage_applies_configured_pragmas(tmp_path) -> None:
    storage = AAAStorage(
        tmp_path / "tuned.db",
        pragmas={"busy_timeout": 1234, "synchronous": "FULL"},
        pool_size=3,
    )
    try:
        assert storage.pragma("busy_timeout") == 1234
        assert storage.pragma("synchronous") == 2  # FULL
        assert storage.engine.pool.size() == 3
    finally:
        storage.close()


def test_schema_tables_and_indexes(storage) -> None:
    insp = inspect(storage.engine)
    tables = set(insp.get_table_names())
    assert {
        "credentials",
        "reply_attributes",
        "group_attributes",
        "group_memberships",
        "nas_clients",
        "accounting_sessions",
    }.issubset(tables)

    acct_idx = {idx["name"] for idx in insp.get_indexes("accounting_sessions")}
    assert {
        "idx_acct_subscriber",
        "idx_acct_session",
        "idx_acct_nas",
        "idx_acct_stop_time",
        "idx_acct_update_time",
    }.issubset(acct_idx)
    assert "idx_nas_address" in {i["name"] for i in insp.get_indexes("nas_clients")}
    assert "idx_membership_subscriber" in {
        i["name"] for i in insp.get_indexes("group_memberships")
    }
    assert "idx_reply_subscriber" in {
        i["name"] for i in insp.get_indexes("reply_attributes")
    }
    assert "idx_credentials_subscriber" in {
        i["name"] for i in insp.get_indexes("credentials")
    }


def test_create_all_without_migrations(tmp_path) -> None:
    storage = AAAStorage(tmp_path / "plain.db", run_migrations=False)
    try:
        insp = inspect(storage.engine)
        assert set(Base.metadata.tables).issubset(set(insp.get_table_names()))
        assert storage.ping() is True
    finally:
        storage.close()


def test_unique_id_is_unique_column() -> None:
    assert AccountingSessionModel.__table__.c.unique_id.unique is True
    assert NasClientModel.__table__.c.nas_address.unique is True


def test_session_rolls_back_on_error(storage) -> None:
    with pytest.raises(RuntimeError):
        with storage.session() as session:
            session.add(
                NasClientModel(nas_address="10.9.9.9", short_name="tmp", secret="s")
            )
            session.flush()
            raise RuntimeError("boom")
    with storage.session() as session:
        count = session.execute(text("SELECT COUNT(*) FROM nas_clients")).scalar()
    assert count == 0


def test_operational_error_surfaces_as_storage_unavailable(storage) -> None:
    with pytest.raises(StorageUnavailable):
        with storage.session() as session:
            session.execute(text("SELECT * FROM table_that_does_not_exist"))


def test_vacuum_and_reload(storage) -> None:
    storage.vacuum()
    storage.reload()
    assert storage.ping() is True
