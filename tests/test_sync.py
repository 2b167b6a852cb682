"""
Tests for `services/sync_service.py` and `repositories/zaico_client.py`.

The HTTP layer is replaced by the FakeSession from conftest; sleeps are
recorded instead of waited.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List

import pytest

from domain.errors import SyncFailure
from domain.sync import OutboundShipment, ShipmentDelivery, SyncStatus
from repositories.store import InMemorySyncLogStore
from repositories.zaico_client import ZaicoClient, parse_remote_item
from services.sync_service import (
    ACTION_PACKING_SLIP,
    ACTION_PULL,
    ExternalSyncAdapter,
    RetryPolicy,
)

from conftest import build_lot


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def adapter(fake_session, sleeps) -> ExternalSyncAdapter:
    client = ZaicoClient("https://zaico.test/api/v1", token="secret", session=fake_session)
    return ExternalSyncAdapter(
        client,
        InMemorySyncLogStore(),
        retry=RetryPolicy(max_attempts=3, base_delay_seconds=1.0),
        page_size=2,
        page_delay_seconds=0.5,
        sleep=sleeps.append,
    )


def _shipment(*deliveries: ShipmentDelivery) -> OutboundShipment:
    return OutboundShipment(
        reference="SLIP-TEST",
        sale_id="SALE-1",
        customer_name="John Smith",
        delivery_date=date(2025, 1, 10),
        deliveries=deliveries,
        memo="ebay",
    )


DELIVERY = ShipmentDelivery(external_inventory_id="9001", quantity=2, unit_price=3750, lot_id="LOT-1")


def test_retry_delays_double() -> None:
    policy = RetryPolicy(max_attempts=4, base_delay_seconds=0.5)

    assert [policy.delay_for(i) for i in range(3)] == [0.5, 1.0, 2.0]


def test_packing_slip_push_sends_idempotency_key(adapter, fake_session) -> None:
    fake_session.add(200, {"data_id": 77})

    outcome = adapter.push_outbound(_shipment(DELIVERY))

    assert outcome.ok
    assert outcome.remote_id == "77"
    (call,) = fake_session.calls
    assert call["method"] == "POST"
    assert call["url"] == "https://zaico.test/api/v1/packing_slips"
    assert call["headers"]["Idempotency-Key"] == "SLIP-TEST"
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["json"]["deliveries"] == [{"inventory_id": "9001", "quantity": 2, "unit_price": 3750}]
    assert [entry.status for entry in adapter.activity()] == [SyncStatus.SUCCESS]


def test_connection_errors_are_retried_with_backoff(adapter, fake_session, connection_error, sleeps) -> None:
    fake_session.fail(connection_error).fail(connection_error).add(200, {"data_id": 5})

    outcome = adapter.push_outbound(_shipment(DELIVERY))

    assert outcome.ok
    assert outcome.attempts == 3
    assert sleeps == [1.0, 2.0]
    assert len(fake_session.calls) == 3


def test_exhausted_retries_log_one_error_and_do_not_raise(adapter, fake_session, sleeps) -> None:
    for _ in range(3):
        fake_session.add(503, {"message": "maintenance"})

    outcome = adapter.push_outbound(_shipment(DELIVERY))

    assert outcome.status == SyncStatus.ERROR
    assert outcome.attempts == 3
    assert sleeps == [1.0, 2.0]
    (entry,) = adapter.activity()
    assert entry.status == SyncStatus.ERROR
    assert entry.action == ACTION_PACKING_SLIP
    assert entry.details["sale_id"] == "SALE-1"
    assert entry.details["status_code"] == 503


def test_client_errors_are_not_retried(adapter, fake_session, sleeps) -> None:
    fake_session.add(400, {"message": "bad payload"})

    outcome = adapter.push_outbound(_shipment(DELIVERY))

    assert outcome.status == SyncStatus.ERROR
    assert outcome.attempts == 1
    assert "bad payload" in outcome.message
    assert sleeps == []


def test_shipment_without_linked_lots_is_skipped(adapter, fake_session) -> None:
    outcome = adapter.push_outbound(_shipment())

    assert outcome.status == SyncStatus.SKIPPED
    assert fake_session.calls == []
    assert adapter.activity()[0].status == SyncStatus.SKIPPED


def test_unconfigured_adapter_skips_pushes() -> None:
    adapter = ExternalSyncAdapter(None, InMemorySyncLogStore())

    outcome = adapter.push_outbound(_shipment(DELIVERY))

    assert not adapter.enabled
    assert outcome.status == SyncStatus.SKIPPED
    assert adapter.activity()[0].details["reason"] == "sync not configured"


def test_inventory_create_returns_remote_id(adapter, fake_session) -> None:
    fake_session.add(200, {"data_id": 321})

    outcome = adapter.push_inventory_create(build_lot("LOT-1", quantity=2, price=3000))

    assert outcome.remote_id == "321"
    payload = fake_session.calls[0]["json"]
    assert payload["quantity"] == "2"
    assert payload["state"] == "A"
    assert fake_session.calls[0]["headers"]["Idempotency-Key"] == "inventory-LOT-1"


def test_quantity_update_needs_a_linked_lot(adapter, fake_session) -> None:
    unlinked = adapter.push_inventory_quantity(build_lot("LOT-1", quantity=2, price=3000))
    linked = adapter.push_inventory_quantity(build_lot("LOT-2", quantity=1, price=3000, external_id="55"))

    assert unlinked.status == SyncStatus.SKIPPED
    assert linked.ok
    (call,) = fake_session.calls
    assert call["method"] == "PUT"
    assert call["url"].endswith("/inventories/55")


def test_pull_pages_until_short_page(adapter, fake_session, sleeps) -> None:
    fake_session.add(200, [{"id": 1, "title": "a", "quantity": "1"}, {"id": 2, "title": "b", "quantity": "2"}])
    fake_session.add(200, [{"id": 3, "title": "c", "quantity": "3"}])

    items = adapter.pull()

    assert [item.remote_id for item in items] == ["1", "2", "3"]
    assert [call["params"]["page"] for call in fake_session.calls] == [1, 2]
    assert sleeps == [0.5]
    assert adapter.activity()[-1].action == ACTION_PULL
    assert adapter.activity()[-1].status == SyncStatus.SUCCESS


def test_pull_stops_at_max_pages(adapter, fake_session) -> None:
    fake_session.add(200, [{"id": 1}, {"id": 2}])

    items = adapter.pull(max_pages=1)

    assert len(items) == 2
    assert len(fake_session.calls) == 1


def test_pull_failure_raises_and_logs(adapter, fake_session, connection_error) -> None:
    for _ in range(3):
        fake_session.fail(connection_error)

    with pytest.raises(SyncFailure) as exc:
        adapter.pull()

    assert exc.value.attempts == 3
    (entry,) = adapter.activity()
    assert entry.status == SyncStatus.ERROR
    assert entry.action == ACTION_PULL


def test_pull_without_client_raises() -> None:
    with pytest.raises(SyncFailure):
        ExternalSyncAdapter(None, InMemorySyncLogStore()).pull()


def test_parse_remote_item_reads_purchase_price_attribute() -> None:
    item = parse_remote_item(
        {
            "id": 10,
            "title": "PlayStation 5",
            "quantity": "3.0",
            "category": "ゲーム機",
            "created_at": "2025-01-05T12:00:00+09:00",
            "optional_attributes": [
                {"name": "査定ランク", "value": "A"},
                {"name": "仕入単価", "value": "32,000"},
            ],
        }
    )

    assert item.remote_id == "10"
    assert item.quantity == 3
    assert item.purchase_price == Decimal("32000")
    assert item.created_at.isoformat() == "2025-01-05T03:00:00+00:00"
