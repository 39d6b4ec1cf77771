"""
Configuration management for the AAA core.

Load order: defaults → config file → environment variables. Environment
variables follow the ``AAA_<SECTION>_<KEY>`` pattern and, as for the file,
only fill keys the file leaves unset.
"""

from __future__ import annotations

import configparser
import os
from pathlib import Path
from typing import Any

from aaa_core.utils.logger import get_logger

from .constants import (
    DEFAULT_CONFIG_FILE,
    DEFAULTS,
    ENV_AAA_CONFIG,
    ENV_PREFIX,
    JOURNAL_MODES,
    LOG_FORMATS,
    PRAGMA_KEYS,
    SECTION_ACCOUNTING,
    SECTION_DATABASE,
    SECTION_LOGGING,
    SECTION_RETENTION,
    SYNCHRONOUS_LEVELS,
)

logger = get_logger(__name__)


def apply_env_overrides(
    config: configparser.ConfigParser, section: str, file_keys: set[str]
) -> None:
    """Fill keys of ``section`` the file left unset from ``AAA_<SECTION>_<KEY>``."""
    for key in DEFAULTS.get(section, {}):
        env_var = f"{ENV_PREFIX}{section.upper()}_{key.upper()}"
        value = os.environ.get(env_var)
        if value is None:
            continue
        if key in file_keys:
            logger.debug(
                "Skipping environment override because config already defines the value",
                event="aaa.config.env_override_skipped",
                section=section,
                key=key,
            )
            continue
        config.set(section, key, value)
        logger.debug(
            "Applied environment override for config key",
            event="aaa.config.env_override_applied",
            section=section,
            key=key,
            env_var=env_var,
        )


def load_config(source: str | None) -> configparser.ConfigParser:
    """Build a ConfigParser from defaults, an optional INI file and the environment."""
    parsed = configparser.ConfigParser(interpolation=None)
    if source and Path(source).exists():
        parsed.read(source, encoding="utf-8")
        logger.debug("Loaded configuration file", event="aaa.config.loaded", path=source)
    elif source:
        logger.debug(
            "Configuration file not found, using defaults",
            event="aaa.config.missing",
            path=source,
        )

    merged = configparser.ConfigParser(interpolation=None)
    for section, values in DEFAULTS.items():
        merged.add_section(section)
        for key, value in values.items():
            merged.set(section, key, value)
    for section in parsed.sections():
        if not merged.has_section(section):
            merged.add_section(section)
        for key, value in parsed.items(section):
            merged.set(section, key, value)

    for section in DEFAULTS:
        file_keys = set(parsed[section].keys()) if parsed.has_section(section) else set()
        apply_env_overrides(merged, section, file_keys)
    return merged


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class AAAConfig:
    """AAA core configuration backed by an INI file.

    Getters return plain dictionaries so components never depend on
    ``configparser`` directly.
    """

    def __init__(self, config_file: str | None = None):
        self.config_file = config_file or os.environ.get(
            ENV_AAA_CONFIG, DEFAULT_CONFIG_FILE
        )
        self.config = load_config(self.config_file)

    def reload(self) -> None:
        self.config = load_config(self.config_file)

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------
    def get_database_config(self) -> dict[str, Any]:
        s = self.config[SECTION_DATABASE]
        pragmas: dict[str, Any] = {}
        for key, pragma in PRAGMA_KEYS.items():
            raw = s.get(key, DEFAULTS[SECTION_DATABASE][key])
            try:
                pragmas[pragma] = int(raw)
            except ValueError:
                pragmas[pragma] = str(raw).upper()
        return {
            "path": os.path.expandvars(s.get("path")),
            "pragmas": pragmas,
            "pool_size": int(s.get("pool_size")),
            "max_overflow": int(s.get("max_overflow")),
            "pool_timeout": int(s.get("pool_timeout")),
            "echo": _as_bool(s.get("echo")),
        }

    def get_accounting_config(self) -> dict[str, Any]:
        s = self.config[SECTION_ACCOUNTING]
        return {
            "max_retries": int(s.get("max_retries")),
            "retry_delay": float(s.get("retry_delay")),
            "retry_backoff": float(s.get("retry_backoff")),
            "retry_max_delay": float(s.get("retry_max_delay")),
            "async_workers": int(s.get("async_workers")),
            "queue_size": int(s.get("queue_size")),
        }

    def get_retention_config(self) -> dict[str, Any]:
        s = self.config[SECTION_RETENTION]
        export_dir = s.get("export_dir", "").strip()
        return {
            "days": int(s.get("days")),
            "enabled": _as_bool(s.get("enabled")),
            "interval_hours": float(s.get("interval_hours")),
            "export_dir": os.path.expandvars(export_dir) if export_dir else None,
            "vacuum": _as_bool(s.get("vacuum")),
        }

    def get_logging_config(self) -> dict[str, Any]:
        s = self.config[SECTION_LOGGING]
        return {
            "level": s.get("level").upper(),
            "format": s.get("format").lower(),
        }

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate_config(self) -> list[str]:
        """Return human-readable configuration problems (empty when valid)."""
        issues: list[str] = []
        try:
            db = self.get_database_config()
            mode = str(db["pragmas"]["journal_mode"])
            if mode not in JOURNAL_MODES:
                issues.append(f"database.journal_mode must be one of {sorted(JOURNAL_MODES)}")
            sync = str(db["pragmas"]["synchronous"])
            if sync not in SYNCHRONOUS_LEVELS:
                issues.append(
                    f"database.synchronous must be one of {sorted(SYNCHRONOUS_LEVELS)}"
                )
            if not isinstance(db["pragmas"]["busy_timeout"], int) or (
                db["pragmas"]["busy_timeout"] <= 0
            ):
                issues.append("database.busy_timeout_ms must be a positive integer")
            if db["pool_size"] < 1:
                issues.append("database.pool_size must be at least 1")
        except ValueError as exc:
            issues.append(f"database: {exc}")

        try:
            acct = self.get_accounting_config()
            if acct["max_retries"] < 0:
                issues.append("accounting.max_retries must not be negative")
            if acct["async_workers"] < 1:
                issues.append("accounting.async_workers must be at least 1")
        except ValueError as exc:
            issues.append(f"accounting: {exc}")

        try:
            ret = self.get_retention_config()
            if ret["days"] < 0:
                issues.append("retention.days must not be negative")
            if ret["interval_hours"] <= 0:
                issues.append("retention.interval_hours must be positive")
        except ValueError as exc:
            issues.append(f"retention: {exc}")

        if self.get_logging_config()["format"] not in LOG_FORMATS:
            issues.append(f"logging.format must be one of {sorted(LOG_FORMATS)}")
        return issues
