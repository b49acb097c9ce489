from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from stocksync.config import AUTHORITY_FILE_ENV, ConfigurationError, load_authority_overrides

if TYPE_CHECKING:
    from pathlib import Path


def test_overrides_are_read_from_the_fields_table(tmp_path: Path) -> None:
    path = tmp_path / "authority.toml"
    path.write_text('[fields]\nprice = "Square"\ntitle = " most_recent "\n')

    assert load_authority_overrides(path) == {"price": "square", "title": "most_recent"}


def test_environment_variable_points_at_the_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    path = tmp_path / "authority.toml"
    path.write_text('[fields]\ninventory_quantity = "clover"\n')
    monkeypatch.setenv(AUTHORITY_FILE_ENV, str(path))

    assert load_authority_overrides() == {"inventory_quantity": "clover"}


def test_no_file_means_no_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(AUTHORITY_FILE_ENV, raising=False)

    assert load_authority_overrides() == {}


def test_file_without_fields_table_is_empty(tmp_path: Path) -> None:
    path = tmp_path / "authority.toml"
    path.write_text("# nothing overridden\n")

    assert load_authority_overrides(path) == {}


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("[fields\n", "not valid TOML"),
        ('fields = "square"\n', "must be a table"),
        ("[fields]\nprice = 3\n", "must be a string"),
    ],
)
def test_malformed_files_are_configuration_errors(
    tmp_path: Path, content: str, message: str
) -> None:
    path = tmp_path / "authority.toml"
    path.write_text(content)

    with pytest.raises(ConfigurationError, match=message):
        load_authority_overrides(path)


def test_missing_file_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_authority_overrides(tmp_path / "absent.toml")
