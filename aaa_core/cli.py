"""Command line entry points: ``aaa-retention`` and ``aaa-admin``."""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Protocol, cast

from sqlalchemy.exc import SQLAlchemyError

from aaa_core.config import AAAConfig
from aaa_core.config.constants import DEFAULT_CONFIG_FILE, ENV_AAA_CONFIG
from aaa_core.core import AAACore
from aaa_core.db.storage import AAAStorage
from aaa_core.exceptions import AAACoreError
from aaa_core.retention import JsonExportHook, RetentionJob
from aaa_core.utils.logger import configure, get_logger

logger = get_logger(__name__, component="cli")


def _load_config(path: str) -> AAAConfig:
    cfg = AAAConfig(path)
    log_cfg = cfg.get_logging_config()
    configure(level=log_cfg["level"], fmt=log_cfg["format"])
    return cfg


def _config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        "-c",
        default=os.environ.get(ENV_AAA_CONFIG, DEFAULT_CONFIG_FILE),
        help="Path to config file",
    )


# ----------------------------------------------------------------------
# aaa-retention
# ----------------------------------------------------------------------
def build_retention_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="aaa-retention",
        description="Delete closed accounting sessions older than DAYS days",
    )
    p.add_argument("days", type=int, help="Days of closed sessions to retain")
    _config_argument(p)
    p.add_argument(
        "--export-dir", help="Write purged sessions to a JSON file in this directory"
    )
    p.add_argument(
        "--vacuum", action="store_true", help="Compact the database after purging"
    )
    return p


def run_retention(args: argparse.Namespace) -> int:
    storage: AAAStorage | None = None
    try:
        cfg = _load_config(args.config)
        ret_cfg = cfg.get_retention_config()
        export_dir = getattr(args, "export_dir", None) or ret_cfg["export_dir"]
        vacuum = bool(getattr(args, "vacuum", False) or ret_cfg["vacuum"])
        storage = AAAStorage.from_config(cfg.get_database_config())
        job = RetentionJob(
            storage,
            export_hook=JsonExportHook(export_dir) if export_dir else None,
            vacuum=vacuum,
        )
        result = job.run(args.days)
    except (AAACoreError, OSError, ValueError, SQLAlchemyError) as exc:
        logger.error(
            "Retention run failed",
            event="aaa.cli.retention_failed",
            retention_days=args.days,
            error=str(exc),
        )
        print(f"Retention failed: {exc}", file=sys.stderr)
        return 1
    finally:
        if storage is not None:
            storage.close()
    print(f"Deleted {result.deleted_count} closed sessions older than {result.cutoff.isoformat()}")
    return 0


def retention_main(argv: list[str] | None = None) -> int:
    args = build_retention_parser().parse_args(argv)
    return run_retention(args)


# ----------------------------------------------------------------------
# aaa-admin
# ----------------------------------------------------------------------
def _open_core(args: argparse.Namespace) -> AAACore:
    return AAACore.from_config(_load_config(args.config))


def cmd_check_config(args: argparse.Namespace) -> int:
    cfg = AAAConfig(args.config)
    issues = cfg.validate_config()
    if issues:
        print("Configuration validation failed:")
        for i in issues:
            print(f"  - {i}")
        return 1
    print("Configuration is valid")
    return 0


def cmd_init_db(args: argparse.Namespace) -> int:
    core = _open_core(args)
    try:
        ok = core.storage.ping()
        print(f"Database ready: {core.storage.db_path}" if ok else "Database unavailable")
        return 0 if ok else 1
    finally:
        core.close()


def cmd_nas_register(args: argparse.Namespace) -> int:
    core = _open_core(args)
    try:
        client = core.nas.register(
            args.address,
            args.short_name,
            args.type,
            args.secret,
            server=args.server,
            community=args.community,
            description=args.description,
            ports=args.ports,
        )
    except AAACoreError as exc:
        print(f"Failed to register NAS: {exc}", file=sys.stderr)
        return 1
    finally:
        core.close()
    print(f"Registered NAS {client.nas_address} ({client.short_name})")
    return 0


def cmd_nas_list(args: argparse.Namespace) -> int:
    core = _open_core(args)
    try:
        for client in core.nas.list_all():
            print(json.dumps(client.to_dict()))
    finally:
        core.close()
    return 0


def cmd_credential_set(args: argparse.Namespace) -> int:
    secret = args.secret
    if args.stdin:
        secret = sys.stdin.readline().rstrip("\n")
    if not secret:
        print("A secret is required (--secret or --stdin)", file=sys.stderr)
        return 1
    core = _open_core(args)
    try:
        core.credentials.upsert(args.subscriber, secret, attribute=args.attribute)
    except AAACoreError as exc:
        print(f"Failed to store credential: {exc}", file=sys.stderr)
        return 1
    finally:
        core.close()
    print(f"Credential stored for {args.subscriber}")
    return 0


def cmd_credential_delete(args: argparse.Namespace) -> int:
    core = _open_core(args)
    try:
        existed = core.credentials.delete(args.subscriber)
    finally:
        core.close()
    if not existed:
        print(f"No credential for {args.subscriber}", file=sys.stderr)
        return 1
    print(f"Deleted subscriber {args.subscriber}")
    return 0


def cmd_active_sessions(args: argparse.Namespace) -> int:
    core = _open_core(args)
    try:
        count = 0
        for s in core.sessions.list_active():
            count += 1
            print(json.dumps(s.to_dict()))
            if args.limit and count >= args.limit:
                break
    finally:
        core.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="aaa-admin", description="Admin CLI for the AAA core")
    _config_argument(p)
    sub = p.add_subparsers(dest="cmd", required=True)

    sub_check = sub.add_parser("check-config", help="Validate configuration and report issues")
    sub_check.set_defaults(func=cmd_check_config)

    sub_init = sub.add_parser("init-db", help="Create or migrate the database schema")
    sub_init.set_defaults(func=cmd_init_db)

    sub_nas = sub.add_parser("nas-register", help="Register a NAS client")
    sub_nas.add_argument("address", help="NAS IP address or hostname")
    sub_nas.add_argument("short_name", help="Short display name")
    sub_nas.add_argument("--secret", required=True, help="Shared secret")
    sub_nas.add_argument("--type", default="other", help="NAS type (default: other)")
    sub_nas.add_argument("--server")
    sub_nas.add_argument("--community")
    sub_nas.add_argument("--description")
    sub_nas.add_argument("--ports", type=int)
    sub_nas.set_defaults(func=cmd_nas_register)

    sub_nas_list = sub.add_parser("nas-list", help="List registered NAS clients as JSON lines")
    sub_nas_list.set_defaults(func=cmd_nas_list)

    sub_cred = sub.add_parser("credential-set", help="Create or replace a subscriber credential")
    sub_cred.add_argument("subscriber")
    sub_cred.add_argument("--secret", help="Secret (use --stdin to read it instead)")
    sub_cred.add_argument(
        "--stdin", action="store_true", help="Read secret from stdin (single line)"
    )
    sub_cred.add_argument("--attribute", default="Cleartext-Password")
    sub_cred.set_defaults(func=cmd_credential_set)

    sub_del = sub.add_parser(
        "credential-delete", help="Delete a subscriber with its replies and memberships"
    )
    sub_del.add_argument("subscriber")
    sub_del.set_defaults(func=cmd_credential_delete)

    sub_active = sub.add_parser("active-sessions", help="Print open sessions as JSON lines")
    sub_active.add_argument("--limit", type=int, default=0)
    sub_active.set_defaults(func=cmd_active_sessions)

    sub_ret = sub.add_parser("retention", help="Purge closed sessions older than DAYS")
    sub_ret.add_argument("days", type=int)
    sub_ret.add_argument("--export-dir")
    sub_ret.add_argument("--vacuum", action="store_true")
    sub_ret.set_defaults(func=run_retention)

    return p


class _Cmd(Protocol):
    def __call__(self, args: argparse.Namespace) -> int: ...


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    func = cast(_Cmd, getattr(args, "func"))
    return func(args)


if __name__ == "__main__":
    raise SystemExit(main())
