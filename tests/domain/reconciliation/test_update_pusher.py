from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

from stocksync.adapters.registry import ConnectorRegistry
from stocksync.adapters.sqlalchemy import SqlAlchemyConnectionDirectory
from stocksync.domain.errors import (
    ConnectorAuthError,
    ConnectorDataError,
    ConnectorTransientError,
    ErrorKind,
)
from stocksync.domain.model import Connection, ConnectionStatus, Platform, new_id
from stocksync.domain.reconciliation import (
    ActionType,
    ConsolidatedGraph,
    PushStatus,
    RetrySchedule,
    SyncStatus,
    UpdateAction,
    UpdatePusher,
)
from tests.helpers.connectors import T0, FakeConnector
from tests.helpers.harness import SyncHarness, build_harness

if TYPE_CHECKING:
    from collections.abc import Callable

    from stocksync.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork
    from stocksync.domain.reconciliation import PushOutcome, SyncReport


def _tee_on_shopify_and_square(
    uow: Callable[[], SqlAlchemyUnitOfWork],
) -> tuple[SyncHarness, str]:
    """Shopify owns stock (5 vs 3); Square has the newer price (12 vs 10)."""

    shopify = FakeConnector(Platform.SHOPIFY)
    square = FakeConnector(Platform.SQUARE, now=T0 + timedelta(hours=1))
    harness = build_harness(uow, [shopify, square])
    shop_location = shopify.add_location("Main")
    square_location = square.add_location("Main")
    shopify.add_product("Tee", [("TEE-S", "10")])
    square.add_product("Tee", [("TEE-S", "12")])
    shopify.set_level("TEE-S", shop_location, 5)
    square.set_level("TEE-S", square_location, 3)
    return harness, square_location


def _outcome(report: SyncReport, target: Platform, action_type: ActionType) -> PushOutcome:
    (outcome,) = [
        outcome
        for outcome in report.outcomes
        if outcome.action.target is target and outcome.action.action_type is action_type
    ]
    return outcome


def test_retry_schedule_backs_off_exponentially_up_to_the_cap() -> None:
    schedule = RetrySchedule(max_attempts=5, base_delay=1.0, max_delay=30.0)

    assert [schedule.delay_for(n) for n in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]
    assert schedule.delay_for(1, retry_after=12.0) == 12.0
    assert schedule.delay_for(4, retry_after=2.0) == 8.0
    assert schedule.delay_for(1, retry_after=600.0) == 30.0


def test_transient_failures_are_retried_with_backoff(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    harness, square_location = _tee_on_shopify_and_square(sqlite_unit_of_work)
    square = harness[Platform.SQUARE]
    square.fail(
        "set_inventory_level",
        ConnectorTransientError("connection reset"),
        ConnectorTransientError("slow down", status_code=429, retry_after=6.0),
    )

    report = harness.run()

    outcome = _outcome(report, Platform.SQUARE, ActionType.UPDATE_INVENTORY)
    assert outcome.status is PushStatus.SUCCEEDED
    assert outcome.attempts == 3
    assert harness.sleeps == [1.0, 6.0]
    assert square.level("TEE-S", square_location) == 5
    assert report.status is SyncStatus.SUCCEEDED


def test_retries_stop_after_the_last_attempt(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    harness, square_location = _tee_on_shopify_and_square(sqlite_unit_of_work)
    square = harness[Platform.SQUARE]
    square.fail("set_inventory_level", *(ConnectorTransientError("down") for _ in range(3)))

    report = harness.run()

    outcome = _outcome(report, Platform.SQUARE, ActionType.UPDATE_INVENTORY)
    assert outcome.status is PushStatus.RETRIED_THEN_FAILED
    assert outcome.attempts == 3
    assert outcome.failure is not None
    assert outcome.failure.kind is ErrorKind.TRANSIENT
    assert harness.sleeps == [1.0, 2.0]
    assert square.level("TEE-S", square_location) == 3
    # the Shopify price update is unaffected
    assert _outcome(report, Platform.SHOPIFY, ActionType.UPDATE_PRODUCT).succeeded
    assert report.status is SyncStatus.PARTIAL


def test_auth_failure_aborts_the_platform_and_flags_the_connection(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    shopify = FakeConnector(Platform.SHOPIFY)
    clover = FakeConnector(Platform.CLOVER)
    harness = build_harness(sqlite_unit_of_work, [shopify, clover])
    shop_location = shopify.add_location("Main")
    clover_location = clover.add_location("Main")
    for connector, location, quantities in (
        (shopify, shop_location, (5, 6)),
        (clover, clover_location, (1, 1)),
    ):
        connector.add_product("Tee", [("TEE-S", "10"), ("TEE-M", "10")])
        connector.set_level("TEE-S", location, quantities[0])
        connector.set_level("TEE-M", location, quantities[1])
    clover.fail("set_inventory_level", ConnectorAuthError("token expired", status_code=401))

    report = harness.run()

    statuses = [
        outcome.status for outcome in report.outcomes if outcome.action.target is Platform.CLOVER
    ]
    assert statuses == [PushStatus.FAILED, PushStatus.ABORTED_AUTH]
    assert clover.calls.count("set_inventory_level") == 1
    assert harness.connection(Platform.CLOVER).status is ConnectionStatus.NEEDS_REAUTH
    assert harness.connection(Platform.CLOVER).last_sync_success_at is None
    assert harness.connection(Platform.SHOPIFY).last_sync_success_at is not None
    assert report.status is SyncStatus.PARTIAL


def test_data_errors_fail_only_their_action(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    harness, _square_location = _tee_on_shopify_and_square(sqlite_unit_of_work)
    harness[Platform.SHOPIFY].fail("update_product", ConnectorDataError("price rejected"))

    report = harness.run()

    product = _outcome(report, Platform.SHOPIFY, ActionType.UPDATE_PRODUCT)
    assert product.status is PushStatus.FAILED
    assert product.attempts == 1
    assert _outcome(report, Platform.SQUARE, ActionType.UPDATE_INVENTORY).succeeded
    assert harness.sleeps == []


def test_refused_stock_write_is_a_failure(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    harness, _square_location = _tee_on_shopify_and_square(sqlite_unit_of_work)
    harness[Platform.SQUARE].accept_inventory = False

    report = harness.run()

    outcome = _outcome(report, Platform.SQUARE, ActionType.UPDATE_INVENTORY)
    assert outcome.status is PushStatus.FAILED
    assert outcome.failure is not None
    assert outcome.failure.kind is ErrorKind.DATA


def test_inventory_write_carries_stored_variant_meta(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    harness, square_location = _tee_on_shopify_and_square(sqlite_unit_of_work)
    square = harness[Platform.SQUARE]

    harness.run()

    variant_id = square.variant_id("TEE-S")
    assert square.inventory_writes == [
        (variant_id, square_location, 5, {"inventory_item_id": f"item-{variant_id}"})
    ]


def test_unresolved_and_unconnected_targets_are_skipped(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    square = FakeConnector(Platform.SQUARE)
    pusher = UpdatePusher(
        ConnectorRegistry([square, FakeConnector(Platform.CLOVER)]),
        sqlite_unit_of_work,
        SqlAlchemyConnectionDirectory(sqlite_unit_of_work),
    )
    actions = [
        UpdateAction(
            action_type=ActionType.UPDATE_INVENTORY,
            target=target,
            entity_id=new_id(),
            location_id=new_id(),
            quantity=4,
        )
        for target in (Platform.SQUARE, Platform.CLOVER)
    ]

    outcomes = asyncio.run(
        pusher.push(
            actions,
            graph=ConsolidatedGraph(account_id="acct-1"),
            connections={
                Platform.SQUARE: Connection(account_id="acct-1", platform=Platform.SQUARE)
            },
        )
    )

    assert [outcome.action for outcome in outcomes] == actions
    assert [outcome.status for outcome in outcomes] == [
        PushStatus.SKIPPED_UNRESOLVED,
        PushStatus.SKIPPED_NO_CONNECTION,
    ]
    assert square.calls == []


def test_created_product_is_mapped_and_stocked_on_the_next_cycle(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    shopify = FakeConnector(Platform.SHOPIFY)
    clover = FakeConnector(Platform.CLOVER)
    harness = build_harness(sqlite_unit_of_work, [shopify, clover])
    shop_location = shopify.add_location("Main")
    clover_location = clover.add_location("Main")
    shopify.add_product("Mug", [("MUG-1", "8.50")])
    shopify.set_level("MUG-1", shop_location, 9)

    first = harness.run()
    second = harness.run()
    third = harness.run()

    assert [(o.action.action_type, o.status) for o in first.outcomes] == [
        (ActionType.CREATE_PRODUCT, PushStatus.SUCCEEDED)
    ]
    created = clover.product_titled("Mug")
    assert created is not None
    assert [variant.sku for variant in created.variants] == ["MUG-1"]
    assert [(o.action.action_type, o.status) for o in second.outcomes] == [
        (ActionType.UPDATE_INVENTORY, PushStatus.SUCCEEDED)
    ]
    assert clover.level("MUG-1", clover_location) == 9
    assert third.outcomes == []
    assert sum(third.created.values()) == 0


def test_exhausted_retries_fail_only_their_own_action(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    shopify = FakeConnector(Platform.SHOPIFY)
    square = FakeConnector(Platform.SQUARE)
    harness = build_harness(sqlite_unit_of_work, [shopify, square])
    shop_location = shopify.add_location("Main")
    square_location = square.add_location("Main")
    for sku, quantity in (("TEE-S", 5), ("TEE-M", 6), ("TEE-L", 7)):
        for connector, location in ((shopify, shop_location), (square, square_location)):
            connector.add_product(f"Tee {sku}", [(sku, "10")])
        shopify.set_level(sku, shop_location, quantity)
        square.set_level(sku, square_location, 1)
    # first write goes through, the second action fails all 3 attempts, the third goes through
    square.fail(
        "set_inventory_level",
        None,
        ConnectorTransientError("gateway timeout"),
        ConnectorTransientError("gateway timeout"),
        ConnectorTransientError("gateway timeout"),
    )

    report = harness.run()

    assert report.status is SyncStatus.PARTIAL
    square_outcomes = [o for o in report.outcomes if o.action.target is Platform.SQUARE]
    assert [(o.action.action_type, o.status, o.attempts) for o in square_outcomes] == [
        (ActionType.UPDATE_INVENTORY, PushStatus.SUCCEEDED, 1),
        (ActionType.UPDATE_INVENTORY, PushStatus.RETRIED_THEN_FAILED, 3),
        (ActionType.UPDATE_INVENTORY, PushStatus.SUCCEEDED, 1),
    ]
    failed = square_outcomes[1].failure
    assert failed is not None
    assert failed.kind is ErrorKind.TRANSIENT
    assert harness.sleeps == [1.0, 2.0]
    assert len(square.inventory_writes) == 5
    levels = [square.level(sku, square_location) for sku in ("TEE-S", "TEE-M", "TEE-L")]
    assert levels.count(1) == 1
    assert harness.connection(Platform.SQUARE).last_sync_success_at is None
