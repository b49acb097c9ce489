from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from stocksync.adapters.registry import ConnectorRegistry
from stocksync.app import (
    add_connection,
    build_application,
    list_connections,
    load_authority_table,
    retry_schedule,
    serve,
    sync_account,
)
from stocksync.config import ConfigurationError, SyncConfig
from stocksync.domain.model import ConnectionStatus, Platform, SyncField
from stocksync.domain.reconciliation import MOST_RECENT, FieldAuthorityTable, SyncStatus
from tests.helpers.connectors import FakeConnector

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from stocksync.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork
    from stocksync.app import SyncApplication


def _application(
    uow: Callable[[], SqlAlchemyUnitOfWork], *connectors: FakeConnector
) -> SyncApplication:
    return build_application(
        unit_of_work_factory=uow,
        registry=ConnectorRegistry(connectors),
        sync_config=SyncConfig(interval_seconds=3600, account_timeout_seconds=5),
        authority=FieldAuthorityTable(),
    )


def test_connections_are_stored_and_listed(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    created = add_connection(
        account_id=" acct-1 ",
        platform=Platform.SQUARE,
        credentials={"access_token": "sq"},
        display_name="Cafe",
        unit_of_work_factory=sqlite_unit_of_work,
    )
    add_connection(
        account_id="acct-2",
        platform=Platform.CLOVER,
        credentials={"merchant_id": "M1", "access_token": "cl"},
        unit_of_work_factory=sqlite_unit_of_work,
    )

    (listed,) = list_connections("acct-1", unit_of_work_factory=sqlite_unit_of_work)
    assert listed.id == created.id
    assert listed.account_id == "acct-1"
    assert listed.credentials == {"access_token": "sq"}
    assert listed.status is ConnectionStatus.CONNECTED
    assert len(list_connections(unit_of_work_factory=sqlite_unit_of_work)) == 2


def test_blank_account_ids_are_rejected(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    with pytest.raises(ValueError, match="blank"):
        add_connection(
            account_id="  ",
            platform=Platform.SHOPIFY,
            credentials={},
            unit_of_work_factory=sqlite_unit_of_work,
        )


def test_authority_table_is_loaded_from_a_file(tmp_path: Path) -> None:
    path = tmp_path / "authority.toml"
    path.write_text('[fields]\nprice = "square"\n')

    table = load_authority_table(path)

    assert table.authority_for(SyncField.PRICE) is Platform.SQUARE
    assert table.authority_for(SyncField.INVENTORY_QUANTITY) is Platform.SHOPIFY
    assert table.authority_for(SyncField.TITLE) == MOST_RECENT


@pytest.mark.parametrize(
    "content", ['[fields]\ncolour = "square"\n', '[fields]\nprice = "etsy"\n']
)
def test_unknown_authority_entries_are_configuration_errors(
    tmp_path: Path, content: str
) -> None:
    path = tmp_path / "authority.toml"
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        load_authority_table(path)


def test_retry_schedule_follows_the_sync_config() -> None:
    schedule = retry_schedule(
        SyncConfig(push_max_attempts=2, push_backoff_seconds=0.5, push_max_backoff_seconds=4.0)
    )

    assert (schedule.max_attempts, schedule.base_delay, schedule.max_delay) == (2, 0.5, 4.0)


def test_sync_account_runs_one_cycle(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    shopify = FakeConnector(Platform.SHOPIFY)
    square = FakeConnector(Platform.SQUARE)
    location = shopify.add_location("Main")
    square.add_location("Main")
    shopify.add_product("Tee", [("TEE-S", "10")])
    shopify.set_level("TEE-S", location, 2)
    application = _application(sqlite_unit_of_work, shopify, square)
    for connector in (shopify, square):
        add_connection(
            account_id="acct-1",
            platform=connector.platform,
            credentials={"access_token": "token"},
            unit_of_work_factory=sqlite_unit_of_work,
        )

    report = sync_account("acct-1", application=application)

    assert report.status is SyncStatus.SUCCEEDED
    created = square.product_titled("Tee")
    assert created is not None
    assert [variant.sku for variant in created.variants] == ["TEE-S"]


def test_serve_runs_until_stopped(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    shopify = FakeConnector(Platform.SHOPIFY)
    shopify.add_location("Main")
    application = _application(sqlite_unit_of_work, shopify)
    add_connection(
        account_id="acct-1",
        platform=Platform.SHOPIFY,
        credentials={"access_token": "token"},
        unit_of_work_factory=sqlite_unit_of_work,
    )

    async def scenario() -> None:
        stop = asyncio.Event()
        server = asyncio.create_task(serve(application=application, stop=stop))
        for _ in range(200):
            if "fetch_catalog" in shopify.calls:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await server

    asyncio.run(scenario())

    assert shopify.calls[:2] == ["fetch_locations", "fetch_catalog"]
