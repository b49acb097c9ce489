from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import httpx
import pytest
from pydantic import BaseModel

from stocksync.adapters.http_errors import checked, parse_payload, parse_retry_after
from stocksync.domain.errors import (
    ConnectorAuthError,
    ConnectorDataError,
    ConnectorError,
    ConnectorTransientError,
    Failure,
)
from stocksync.domain.model import Platform

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class _Thing(BaseModel):
    id: int


def _response(status: int, *, content: bytes = b"{}", **headers: str) -> httpx.Response:
    request = httpx.Request("GET", "https://api.example/v1/things")
    return httpx.Response(status, content=content, headers=headers, request=request)


async def _returning(response: httpx.Response) -> httpx.Response:
    return response


def _check(response: httpx.Response) -> httpx.Response:
    return asyncio.run(checked(_returning(response), platform=Platform.SQUARE))


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        (None, None),
        ("", None),
        ("12", 12.0),
        ("0.5", 0.5),
        ("-3", 0.0),
        ("Sun, 01 Mar 2026 09:00:30 GMT", 30.0),
        ("Sun, 01 Mar 2026 08:00:00 GMT", 0.0),
        ("soon", None),
    ],
)
def test_parse_retry_after(header: str | None, expected: float | None) -> None:
    assert parse_retry_after(header, now=NOW) == expected


@pytest.mark.parametrize(
    ("status", "error"),
    [
        (401, ConnectorAuthError),
        (403, ConnectorAuthError),
        (429, ConnectorTransientError),
        (500, ConnectorTransientError),
        (502, ConnectorTransientError),
        (400, ConnectorDataError),
        (404, ConnectorDataError),
        (422, ConnectorDataError),
    ],
)
def test_status_codes_map_to_the_error_taxonomy(status: int, error: type[Exception]) -> None:
    with pytest.raises(error) as excinfo:
        _check(_response(status, content=b"rejected"))

    assert isinstance(excinfo.value, ConnectorError)
    assert excinfo.value.status_code == status
    assert excinfo.value.platform is Platform.SQUARE
    assert "/v1/things" in str(excinfo.value)


def test_rate_limit_carries_retry_after_into_the_failure() -> None:
    with pytest.raises(ConnectorTransientError) as excinfo:
        _check(_response(429, **{"Retry-After": "9"}))

    failure = Failure.from_error(excinfo.value)
    assert failure.retry_after == 9.0


def test_success_passes_through() -> None:
    response = _response(200)

    assert _check(response) is response


def test_long_error_bodies_are_truncated() -> None:
    with pytest.raises(ConnectorDataError) as excinfo:
        _check(_response(400, content=b"x" * 1000))

    assert str(excinfo.value).endswith("...")
    assert len(str(excinfo.value)) < 400


def test_timeouts_are_transient() -> None:
    async def timing_out() -> httpx.Response:
        raise httpx.ReadTimeout("slow")

    with pytest.raises(ConnectorTransientError, match="timed out"):
        asyncio.run(checked(timing_out(), platform=Platform.CLOVER))


@pytest.mark.parametrize("content", [b'{"id": "not a number"}', b"<html>oops</html>"])
def test_unparseable_payloads_are_data_errors(content: bytes) -> None:
    with pytest.raises(ConnectorDataError):
        parse_payload(_response(200, content=content), _Thing, platform=Platform.SHOPIFY)


def test_parse_payload_validates_the_model() -> None:
    thing = parse_payload(_response(200, content=b'{"id": 4}'), _Thing, platform=Platform.SHOPIFY)

    assert thing == _Thing(id=4)
