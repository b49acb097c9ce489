"""Loading of the per-field source-of-truth table."""

from __future__ import annotations

import tomllib
from pathlib import Path

from .env import optional_env
from .errors import ConfigurationError

AUTHORITY_FILE_ENV = "STOCKSYNC_AUTHORITY_FILE"


def load_authority_overrides(path: Path | None = None) -> dict[str, str]:
    """Return ``field -> platform | "most_recent"`` entries from a TOML file.

    The file holds a single ``[fields]`` table. Without a path argument the
    location is taken from ``STOCKSYNC_AUTHORITY_FILE``; when neither is set the
    result is empty and built-in defaults apply.
    """

    if path is None:
        env_path = optional_env(AUTHORITY_FILE_ENV)
        if env_path is None:
            return {}
        path = Path(env_path)

    try:
        with path.expanduser().open("rb") as handle:
            document = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Authority file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Authority file {path} is not valid TOML: {exc}") from exc

    fields = document.get("fields", {})
    if not isinstance(fields, dict):
        raise ConfigurationError(f"Authority file {path}: [fields] must be a table")
    overrides: dict[str, str] = {}
    for key, value in fields.items():
        if not isinstance(value, str):
            raise ConfigurationError(f"Authority file {path}: {key} must be a string")
        overrides[str(key)] = value.strip().lower()
    return overrides
