from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from stocksync.app import (
    add_connection,
    list_connections,
    load_authority_table,
    serve,
    sync_account,
)
from stocksync.config import ConfigurationError, configure_logging
from stocksync.domain.model import Platform, SyncField
from stocksync.domain.reconciliation import SyncStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

_EXIT_CODES = {
    SyncStatus.SUCCEEDED: 0,
    SyncStatus.SKIPPED: 0,
    SyncStatus.PARTIAL: 3,
    SyncStatus.FAILED: 1,
    SyncStatus.CANCELLED: 1,
}


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reconcile catalog and stock across Shopify, Square and Clover"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run one sync cycle for an account")
    sync.add_argument("account_id", help="Account whose connections are reconciled")

    subparsers.add_parser("serve", help="Sync every active account on a fixed interval")

    connection = subparsers.add_parser("connection", help="Manage platform connections")
    connection_commands = connection.add_subparsers(dest="connection_command", required=True)

    connection_add = connection_commands.add_parser("add", help="Store a new connection")
    connection_add.add_argument("account_id")
    connection_add.add_argument("platform", choices=[platform.value for platform in Platform])
    connection_add.add_argument(
        "--credential",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Credential for the connector, repeatable (e.g. access_token=...)",
    )
    connection_add.add_argument("--name", default="", help="Display name")

    connection_list = connection_commands.add_parser("list", help="List stored connections")
    connection_list.add_argument("account_id", nargs="?", help="Limit to one account")

    authority = subparsers.add_parser("authority", help="Show the field source-of-truth table")
    authority.add_argument("--file", type=str, help="Authority TOML file to load instead")

    return parser.parse_args(list(argv))


def _parse_credentials(values: Sequence[str]) -> dict[str, str]:
    credentials: dict[str, str] = {}
    for value in values:
        key, separator, secret = value.partition("=")
        if not separator or not key.strip() or not secret.strip():
            raise ValueError(f"Invalid credential {value!r}; expected KEY=VALUE")
        credentials[key.strip()] = secret.strip()
    return credentials


def _run_sync(account_id: str) -> int:
    report = sync_account(account_id)
    for fetch in report.fetches:
        if not fetch.ok:
            log.warning("Fetch from %s failed: %s", fetch.platform, fetch.failure)
    for outcome in report.outcomes:
        if not outcome.succeeded:
            log.warning("%s: %s (%s)", outcome.action, outcome.status, outcome.failure)
    return _EXIT_CODES[report.status]


def _run_serve() -> int:
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        log.info("Scheduler interrupted")
    return 0


def _show_connections(account_id: str | None) -> int:
    connections = list_connections(account_id)
    if not connections:
        log.info("No connections stored")
    for connection in connections:
        log.info(
            "%s %s %s status=%s enabled=%s last_success=%s",
            connection.id,
            connection.account_id,
            connection,
            connection.status,
            connection.is_enabled,
            connection.last_sync_success_at,
        )
    return 0


def _show_authority(path: str | None) -> int:
    table = load_authority_table(Path(path) if path else None)
    for sync_field in SyncField:
        log.info("%-20s %s", sync_field, table.authority_for(sync_field))
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
        credentials: dict[str, str] = {}
        if parsed_args.command == "connection" and parsed_args.connection_command == "add":
            credentials = _parse_credentials(parsed_args.credential)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "sync":
            exit_code = _run_sync(parsed_args.account_id)
        elif parsed_args.command == "serve":
            exit_code = _run_serve()
        elif parsed_args.command == "connection" and parsed_args.connection_command == "add":
            connection = add_connection(
                account_id=parsed_args.account_id,
                platform=Platform(parsed_args.platform),
                credentials=credentials,
                display_name=parsed_args.name,
            )
            log.info("Created connection %s", connection.id)
            exit_code = 0
        elif parsed_args.command == "connection" and parsed_args.connection_command == "list":
            exit_code = _show_connections(parsed_args.account_id)
        elif parsed_args.command == "authority":
            exit_code = _show_authority(parsed_args.file)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except (ConfigurationError, ValueError):
        log.exception("Invalid configuration")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during sync")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


if __name__ == "__main__":
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()
