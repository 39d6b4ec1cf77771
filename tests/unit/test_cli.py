from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from aaa_core import cli
from aaa_core.accounting.manager import AccountingSessionManager
from aaa_core.db.storage import AAAStorage


@pytest.fixture(autouse=True)
def _keep_test_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure", lambda **_kw: None)


@pytest.fixture
def config_file(tmp_path):
    db_path = tmp_path / "cli.db"
    path = tmp_path / "aaa.conf"
    path.write_text(f"[database]\npath = {db_path}\n\n[logging]\nlevel = WARNING\n")
    return str(path), db_path


def _seed_closed_session(db_path, clock, when: datetime) -> None:
    storage = AAAStorage(db_path)
    try:
        clock.now = when
        mgr = AccountingSessionManager(storage, clock=clock)
        mgr.start("S1", "U1", "alice", "10.0.0.1")
        mgr.stop("S1", "alice", 60, 1, 2)
    finally:
        storage.close()


def test_check_config_reports_valid(config_file, capsys):
    path, _ = config_file
    assert cli.main(["--config", path, "check-config"]) == 0
    assert "Configuration is valid" in capsys.readouterr().out


def test_check_config_reports_issues(tmp_path, capsys):
    path = tmp_path / "bad.conf"
    path.write_text("[retention]\ndays = -1\n")
    assert cli.main(["--config", str(path), "check-config"]) == 1
    assert "retention.days" in capsys.readouterr().out


def test_init_db_creates_database(config_file, capsys):
    path, db_path = config_file
    assert cli.main(["--config", path, "init-db"]) == 0
    assert db_path.exists()
    assert "Database ready" in capsys.readouterr().out


def test_nas_register_and_list(config_file, capsys):
    path, _ = config_file
    assert (
        cli.main(
            [
                "--config",
                path,
                "nas-register",
                "10.0.0.1",
                "edge-1",
                "--secret",
                "s3cret",
                "--ports",
                "48",
            ]
        )
        == 0
    )
    assert "Registered NAS 10.0.0.1 (edge-1)" in capsys.readouterr().out

    assert cli.main(["--config", path, "nas-list"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["nas_address"] == "10.0.0.1"
    assert record["ports"] == 48
    assert "secret" not in record


def test_nas_register_duplicate_fails(config_file, capsys):
    path, _ = config_file
    args = ["--config", path, "nas-register", "10.0.0.1", "edge-1", "--secret", "x"]
    assert cli.main(args) == 0
    assert cli.main(args) == 1
    assert "Failed to register NAS" in capsys.readouterr().err


def test_credential_set_and_delete(config_file, capsys):
    path, _ = config_file
    assert cli.main(["--config", path, "credential-set", "alice", "--secret", "pw"]) == 0
    assert "Credential stored for alice" in capsys.readouterr().out
    assert cli.main(["--config", path, "credential-delete", "alice"]) == 0
    assert cli.main(["--config", path, "credential-delete", "alice"]) == 1


def test_credential_set_requires_secret(config_file, capsys):
    path, _ = config_file
    assert cli.main(["--config", path, "credential-set", "alice"]) == 1
    assert "secret is required" in capsys.readouterr().err


def test_active_sessions_prints_open_sessions(config_file, capsys):
    path, db_path = config_file
    storage = AAAStorage(db_path)
    try:
        AccountingSessionManager(storage).start("S9", "U9", "bob", "10.0.0.2")
    finally:
        storage.close()
    assert cli.main(["--config", path, "active-sessions"]) == 0
    record = json.loads(capsys.readouterr().out.strip())
    assert record["unique_id"] == "U9"
    assert record["stop_time"] is None


def test_retention_main_purges_old_sessions(config_file, clock, capsys):
    path, db_path = config_file
    _seed_closed_session(db_path, clock, datetime(2020, 1, 1, tzinfo=UTC))
    assert cli.retention_main(["30", "--config", path]) == 0
    assert "Deleted 1 closed sessions" in capsys.readouterr().out


def test_retention_export_dir(config_file, clock, tmp_path, capsys):
    path, db_path = config_file
    _seed_closed_session(db_path, clock, datetime(2020, 1, 1, tzinfo=UTC))
    export_dir = tmp_path / "exports"
    assert cli.main(["--config", path, "retention", "30", "--export-dir", str(export_dir)]) == 0
    files = list(export_dir.glob("accounting-backup-*.json"))
    assert len(files) == 1
    assert json.loads(files[0].read_text())["count"] == 1


def test_retention_negative_days_fails(config_file, capsys):
    path, _ = config_file
    assert cli.retention_main(["--config", path, "--", "-5"]) == 1
    assert "Retention failed" in capsys.readouterr().err


def test_retention_malformed_config_value_fails_cleanly(tmp_path, capsys):
    path = tmp_path / "broken.conf"
    path.write_text(f"[database]\npath = {tmp_path / 'x.db'}\npool_size = lots\n")
    assert cli.retention_main(["7", "--config", str(path)]) == 1
    assert "Retention failed" in capsys.readouterr().err
