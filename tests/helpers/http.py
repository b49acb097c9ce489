"""Mock-transport plumbing for connector tests."""

from __future__ import annotations

import json
from collections.abc import Callable  # noqa: TC003
from dataclasses import dataclass, field, replace

import httpx

from stocksync.adapters.http_resilience import ResilienceConfig, ResilientClient

Handler = Callable[[httpx.Request], httpx.Response]


@dataclass
class RecordedRequests:
    requests: list[httpx.Request] = field(default_factory=list[httpx.Request])

    def paths(self, method: str | None = None) -> list[str]:
        return [
            request.url.path
            for request in self.requests
            if method is None or request.method == method
        ]

    def bodies(self, method: str = "POST") -> list[dict[str, object]]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.method == method and request.content
        ]


def make_client_factory(
    handler: Handler,
    recorded: RecordedRequests | None = None,
) -> Callable[[ResilienceConfig], ResilientClient]:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        if recorded is not None:
            recorded.requests.append(request)
        return handler(request)

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        client = ResilientClient(replace(resilience, ratelimit=None))
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            transport=httpx.MockTransport(async_handler),
            base_url=resilience.base_url or "",
            headers=dict(resilience.default_headers or {}),
        )
        return client

    return factory
