"""Configuration constants and defaults.

This module contains all default configuration values and constants used
throughout the configuration system.
"""

# Section names
SECTION_DATABASE = "database"
SECTION_ACCOUNTING = "accounting"
SECTION_RETENTION = "retention"
SECTION_LOGGING = "logging"

# Environment variable prefixes
ENV_PREFIX = "AAA_"

# Meta-configuration
ENV_AAA_CONFIG = "AAA_CONFIG"
DEFAULT_CONFIG_FILE = "config/aaa.conf"

# SQLite tuning keys mapped onto PRAGMA names
PRAGMA_KEYS = {
    "journal_mode": "journal_mode",
    "synchronous": "synchronous",
    "busy_timeout_ms": "busy_timeout",
    "cache_size": "cache_size",
    "foreign_keys": "foreign_keys",
    "temp_store": "temp_store",
}

JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
SYNCHRONOUS_LEVELS = {"OFF", "NORMAL", "FULL", "EXTRA"}
LOG_FORMATS = {"json", "text"}

# Default values
DEFAULTS = {
    SECTION_DATABASE: {
        "path": "data/radius.db",
        "journal_mode": "WAL",
        "synchronous": "NORMAL",
        "busy_timeout_ms": "5000",
        "cache_size": "-64000",
        "foreign_keys": "ON",
        "temp_store": "MEMORY",
        "pool_size": "10",
        "max_overflow": "20",
        "pool_timeout": "30",
        "echo": "false",
    },
    SECTION_ACCOUNTING: {
        "max_retries": "3",
        "retry_delay": "0.05",
        "retry_backoff": "2.0",
        "retry_max_delay": "2.0",
        "async_workers": "8",
        "queue_size": "10000",
    },
    SECTION_RETENTION: {
        "days": "90",
        "enabled": "false",
        "interval_hours": "168",
        "export_dir": "",
        "vacuum": "false",
    },
    SECTION_LOGGING: {
        "level": "INFO",
        "format": "json",
    },
}
