"""Per-marketplace API settings.

Credentials are not configured here: they belong to a connection and are
handed to connectors at call time. These values only describe how to talk to
each marketplace.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .env import optional_env
from .http_resilience import RateLimit, ResilienceConfig

SHOPIFY_API_VERSION = "2024-10"
SQUARE_API_VERSION = "2024-10-17"
SQUARE_PRODUCTION_URL = "https://connect.squareup.com"
SQUARE_SANDBOX_URL = "https://connect.squareupsandbox.com"
CLOVER_PRODUCTION_URL = "https://api.clover.com"
CLOVER_SANDBOX_URL = "https://apisandbox.dev.clover.com"


def _shopify_resilience() -> ResilienceConfig:
    # base_url is per shop and filled in per connection
    return ResilienceConfig(
        name="shopify",
        timeout_seconds=30.0,
        ratelimit=RateLimit(max_calls=2, per_seconds=1.0),
    )


@dataclass(frozen=True, slots=True)
class ShopifyConfig:
    api_version: str = SHOPIFY_API_VERSION
    product_page_size: int = 250
    inventory_batch_size: int = 50
    resilience: ResilienceConfig = field(default_factory=_shopify_resilience)


@dataclass(frozen=True, slots=True)
class SquareConfig:
    api_version: str = SQUARE_API_VERSION
    resilience: ResilienceConfig = field(
        default_factory=lambda: ResilienceConfig(
            name="square",
            base_url=SQUARE_PRODUCTION_URL,
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
        )
    )


@dataclass(frozen=True, slots=True)
class CloverConfig:
    page_size: int = 100
    resilience: ResilienceConfig = field(
        default_factory=lambda: ResilienceConfig(
            name="clover",
            base_url=CLOVER_PRODUCTION_URL,
            ratelimit=RateLimit(max_calls=16, per_seconds=1.0),
        )
    )


@dataclass(frozen=True, slots=True)
class PlatformsConfig:
    shopify: ShopifyConfig = field(default_factory=ShopifyConfig)
    square: SquareConfig = field(default_factory=SquareConfig)
    clover: CloverConfig = field(default_factory=CloverConfig)


def get_platforms_config() -> PlatformsConfig:
    sandbox = (optional_env("SQUARE_ENVIRONMENT") or "production").lower() == "sandbox"
    clover_sandbox = (optional_env("CLOVER_ENVIRONMENT") or "production").lower() == "sandbox"
    return PlatformsConfig(
        square=SquareConfig(
            resilience=ResilienceConfig(
                name="square",
                base_url=SQUARE_SANDBOX_URL if sandbox else SQUARE_PRODUCTION_URL,
                ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            )
        ),
        clover=CloverConfig(
            resilience=ResilienceConfig(
                name="clover",
                base_url=CLOVER_SANDBOX_URL if clover_sandbox else CLOVER_PRODUCTION_URL,
                ratelimit=RateLimit(max_calls=16, per_seconds=1.0),
            )
        ),
    )
