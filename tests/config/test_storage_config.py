from __future__ import annotations

from pathlib import Path  # noqa: TC003

import pytest  # noqa: TC002

from stocksync.config import storage
from stocksync.config.platforms import (
    CLOVER_SANDBOX_URL,
    SQUARE_PRODUCTION_URL,
    SQUARE_SANDBOX_URL,
    get_platforms_config,
)


def test_storage_prefers_explicit_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    custom = tmp_path / "custom-data"
    monkeypatch.setenv("STOCKSYNC_DATA_DIR", str(custom))

    config = storage.get_storage_config()

    assert config.resolve_data_dir() == custom.resolve()


def test_database_uri_uses_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    config = storage.get_database_config()

    assert config.uri == "sqlite:///override.db"
    assert config.is_sqlite


def test_database_uri_creates_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("STOCKSYNC_DATA_DIR", str(tmp_path / "data-dir"))

    uri = storage.get_database_config().uri

    expected_path = (tmp_path / "data-dir" / storage.DEFAULT_DB_FILENAME).resolve()
    assert uri == f"sqlite+pysqlite:///{expected_path}"
    assert expected_path.parent.exists()


def test_sandbox_environments_switch_base_urls(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SQUARE_ENVIRONMENT", "Sandbox")
    monkeypatch.setenv("CLOVER_ENVIRONMENT", "sandbox")

    config = get_platforms_config()

    assert config.square.resilience.base_url == SQUARE_SANDBOX_URL
    assert config.clover.resilience.base_url == CLOVER_SANDBOX_URL


def test_production_is_the_default_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SQUARE_ENVIRONMENT", raising=False)

    assert get_platforms_config().square.resilience.base_url == SQUARE_PRODUCTION_URL
