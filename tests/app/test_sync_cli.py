from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from stocksync.domain.model import Connection, Platform, SyncField
from stocksync.domain.reconciliation import SyncReport, SyncStatus
from stocksync.ui import cli

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _fake_sync(status: SyncStatus, calls: list[str]) -> Callable[[str], SyncReport]:
    def fake_sync(account_id: str) -> SyncReport:
        calls.append(account_id)
        return SyncReport(account_id=account_id, started_at=T0, status=status)

    return fake_sync


def test_sync_command_succeeds(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(cli, "sync_account", _fake_sync(SyncStatus.SUCCEEDED, calls))

    cli.main(["sync", "acct-1"])

    assert calls == ["acct-1"]


@pytest.mark.parametrize(
    ("status", "code"),
    [(SyncStatus.PARTIAL, 3), (SyncStatus.FAILED, 1), (SyncStatus.CANCELLED, 1)],
)
def test_sync_command_exit_codes(
    monkeypatch: pytest.MonkeyPatch, status: SyncStatus, code: int
) -> None:
    monkeypatch.setattr(cli, "sync_account", _fake_sync(status, []))

    with pytest.raises(SystemExit) as exc:
        cli.main(["sync", "acct-1"])

    assert exc.value.code == code


def test_unexpected_errors_exit_with_one(monkeypatch: pytest.MonkeyPatch) -> None:
    def exploding_sync(account_id: str) -> SyncReport:
        raise RuntimeError(f"database for {account_id} is gone")

    monkeypatch.setattr(cli, "sync_account", exploding_sync)

    with pytest.raises(SystemExit) as exc:
        cli.main(["sync", "acct-1"])

    assert exc.value.code == 1


def test_connection_add_parses_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_add(**kwargs: object) -> Connection:
        captured.update(kwargs)
        return Connection(account_id="acct-1", platform=Platform.CLOVER)

    monkeypatch.setattr(cli, "add_connection", fake_add)

    cli.main(
        [
            "connection",
            "add",
            "acct-1",
            "clover",
            "--credential",
            "merchant_id=M1",
            "--credential",
            "access_token = abc=def ",
            "--name",
            "Corner shop",
        ]
    )

    assert captured == {
        "account_id": "acct-1",
        "platform": Platform.CLOVER,
        "credentials": {"merchant_id": "M1", "access_token": "abc=def"},
        "display_name": "Corner shop",
    }


@pytest.mark.parametrize("credential", ["no-separator", "=value", "key="])
def test_malformed_credentials_exit_with_two(
    monkeypatch: pytest.MonkeyPatch, credential: str
) -> None:
    def fake_add(**kwargs: object) -> Connection:
        raise AssertionError("should not be called")

    monkeypatch.setattr(cli, "add_connection", fake_add)

    with pytest.raises(SystemExit) as exc:
        cli.main(["connection", "add", "acct-1", "square", "--credential", credential])

    assert exc.value.code == 2


def test_unknown_platform_is_rejected_by_the_parser() -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["connection", "add", "acct-1", "etsy"])

    assert exc.value.code == 2


def test_connection_list_passes_the_account(monkeypatch: pytest.MonkeyPatch) -> None:
    requested: list[str | None] = []

    def fake_list(account_id: str | None = None) -> list[Connection]:
        requested.append(account_id)
        return [Connection(account_id="acct-1", platform=Platform.SQUARE, display_name="Cafe")]

    monkeypatch.setattr(cli, "list_connections", fake_list)

    cli.main(["connection", "list", "acct-1"])
    cli.main(["connection", "list"])

    assert requested == ["acct-1", None]


def test_authority_command_prints_every_field(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = tmp_path / "authority.toml"
    path.write_text('[fields]\nprice = "clover"\n')
    caplog.set_level(logging.INFO, logger=cli.__name__)

    cli.main(["authority", "--file", str(path)])

    lines = [record.getMessage() for record in caplog.records if record.name == cli.__name__]
    assert len(lines) == len(SyncField)
    assert any(line.startswith("price") and line.endswith("clover") for line in lines)


def test_invalid_authority_file_exits_with_two(tmp_path: Path) -> None:
    path = tmp_path / "authority.toml"
    path.write_text('[fields]\nprice = "etsy"\n')

    with pytest.raises(SystemExit) as exc:
        cli.main(["authority", "--file", str(path)])

    assert exc.value.code == 2
