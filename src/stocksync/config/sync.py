"""Scheduling and push-retry settings for the sync engine."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float, env_int

DEFAULT_SYNC_INTERVAL_SECONDS = 15 * 60
DEFAULT_MAX_CONCURRENT_ACCOUNTS = 4
DEFAULT_ACCOUNT_TIMEOUT_SECONDS = 10 * 60
DEFAULT_PUSH_MAX_ATTEMPTS = 4
DEFAULT_PUSH_BACKOFF_SECONDS = 1.0
DEFAULT_PUSH_MAX_BACKOFF_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class SyncConfig:
    interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS
    max_concurrent_accounts: int = DEFAULT_MAX_CONCURRENT_ACCOUNTS
    account_timeout_seconds: float | None = DEFAULT_ACCOUNT_TIMEOUT_SECONDS
    push_max_attempts: int = DEFAULT_PUSH_MAX_ATTEMPTS
    push_backoff_seconds: float = DEFAULT_PUSH_BACKOFF_SECONDS
    push_max_backoff_seconds: float = DEFAULT_PUSH_MAX_BACKOFF_SECONDS


def get_sync_config() -> SyncConfig:
    timeout = env_float("STOCKSYNC_ACCOUNT_TIMEOUT_SECONDS", DEFAULT_ACCOUNT_TIMEOUT_SECONDS)
    return SyncConfig(
        interval_seconds=env_float(
            "STOCKSYNC_SYNC_INTERVAL_SECONDS", DEFAULT_SYNC_INTERVAL_SECONDS, minimum=1.0
        ),
        max_concurrent_accounts=env_int(
            "STOCKSYNC_MAX_CONCURRENT_ACCOUNTS", DEFAULT_MAX_CONCURRENT_ACCOUNTS, minimum=1
        ),
        # 0 disables the per-account timeout
        account_timeout_seconds=timeout or None,
        push_max_attempts=env_int(
            "STOCKSYNC_PUSH_MAX_ATTEMPTS", DEFAULT_PUSH_MAX_ATTEMPTS, minimum=1
        ),
        push_backoff_seconds=env_float(
            "STOCKSYNC_PUSH_BACKOFF_SECONDS", DEFAULT_PUSH_BACKOFF_SECONDS
        ),
        push_max_backoff_seconds=env_float(
            "STOCKSYNC_PUSH_MAX_BACKOFF_SECONDS", DEFAULT_PUSH_MAX_BACKOFF_SECONDS
        ),
    )
