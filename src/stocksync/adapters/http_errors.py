"""Translate HTTP failures into the connector error taxonomy."""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, ValidationError

from stocksync.domain.errors import (
    ConnectorAuthError,
    ConnectorDataError,
    ConnectorTransientError,
)
from stocksync.domain.ports import RejectedRecord

if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable, Mapping

    from stocksync.domain.model import EntityType, Platform

log = getLogger(__name__)

_MAX_DETAIL = 300


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """Seconds to wait according to a ``Retry-After`` header (delta or HTTP date)."""

    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max((when - (now or datetime.now(UTC))).total_seconds(), 0.0)


def _detail(response: httpx.Response) -> str:
    text = response.text.strip()
    if len(text) > _MAX_DETAIL:
        text = text[:_MAX_DETAIL] + "..."
    return text


def raise_for_response(response: httpx.Response, *, platform: Platform) -> None:
    status = response.status_code
    if status < 400:
        return
    request = response.request
    message = (
        f"{platform} {request.method} {request.url.path} returned {status}: {_detail(response)}"
    )
    if status in {401, 403}:
        raise ConnectorAuthError(message, platform=platform, status_code=status)
    if status == 429 or status >= 500:
        raise ConnectorTransientError(
            message,
            platform=platform,
            status_code=status,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    raise ConnectorDataError(message, platform=platform, status_code=status)


async def checked(call: Awaitable[httpx.Response], *, platform: Platform) -> httpx.Response:
    """Await an HTTP call and raise taxonomy errors for transport or status failures."""

    try:
        response = await call
    except httpx.TimeoutException as exc:
        raise ConnectorTransientError(f"{platform} request timed out", platform=platform) from exc
    except httpx.TransportError as exc:
        raise ConnectorTransientError(
            f"{platform} transport error: {exc}", platform=platform
        ) from exc
    raise_for_response(response, platform=platform)
    return response


def parse_payload[M: BaseModel](
    response: httpx.Response, model: type[M], *, platform: Platform
) -> M:
    try:
        return model.model_validate(response.json())
    except ValidationError as exc:
        log.debug("Invalid %s payload: %s", platform, exc)
        raise ConnectorDataError(
            f"Unexpected {platform} payload from {response.request.url.path}: "
            f"{exc.error_count()} validation errors",
            platform=platform,
            status_code=response.status_code,
        ) from exc
    except ValueError as exc:
        raise ConnectorDataError(
            f"{platform} returned invalid JSON from {response.request.url.path}",
            platform=platform,
            status_code=response.status_code,
        ) from exc


def validate_records[M: BaseModel](
    records: Iterable[Mapping[str, object]],
    model: type[M],
    *,
    platform: Platform,
    entity_type: EntityType,
    id_key: str = "id",
) -> tuple[list[M], list[RejectedRecord]]:
    """Validate list entries one at a time.

    A malformed entry is logged and returned as rejected; the rest of the page
    still counts.
    """

    valid: list[M] = []
    rejected: list[RejectedRecord] = []
    for record in records:
        try:
            valid.append(model.model_validate(record))
        except ValidationError as exc:
            raw_id = record.get(id_key)
            platform_id = None if raw_id is None else str(raw_id)
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first["loc"]) or "<record>"
            reason = f"{location}: {first['msg']}"
            if exc.error_count() > 1:
                reason += f" (+{exc.error_count() - 1} more)"
            log.warning(
                "Skipping malformed %s %s %s: %s",
                platform,
                entity_type,
                platform_id or "<no id>",
                reason,
            )
            rejected.append(
                RejectedRecord(entity_type=entity_type, platform_id=platform_id, reason=reason)
            )
    return valid, rejected
