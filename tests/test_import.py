"""
Tests for `services/inventory_import_service.py`.
"""

from __future__ import annotations

from datetime import date

import pytest

from domain.errors import SyncFailure
from domain.lot import LotSource
from domain.product import ProductType
from services.inventory_import_service import import_event_id

from conftest import build_lot

REMOTE = [
    {
        "id": 1,
        "title": "PlayStation 5",
        "quantity": "2",
        "category": "ゲーム機",
        "created_at": "2025-01-05T00:00:00Z",
        "optional_attributes": [{"name": "仕入単価", "value": "30000.4"}],
    },
    {"id": 2, "title": "Empty", "quantity": "0", "created_at": "2025-01-05T00:00:00Z"},
    {"id": 3, "title": "ゼルダの伝説", "quantity": "1", "category": "ゲームソフト", "created_at": "2025-02-01T00:00:00Z"},
]


def test_import_registers_unknown_records(synced_engine, fake_session) -> None:
    fake_session.add(200, REMOTE)

    report = synced_engine.importer.import_remote_inventory()

    assert report.fetched == 3
    assert report.imported == 2
    assert report.skipped_zero_quantity == 1

    console, software = report.lots
    assert console.source == LotSource.ZAICO_IMPORT
    assert console.rank is None
    assert console.external_id == "1"
    assert console.acquisition_unit_price == 30000
    assert console.management_numbers == ("ZAICO-1",)
    assert software.descriptor.product_type == ProductType.SOFTWARE
    assert synced_engine.ledger.has_event(import_event_id("1"))


def test_reimport_skips_linked_and_sold_out_records(synced_engine, fake_session) -> None:
    fake_session.add(200, REMOTE)
    first = synced_engine.importer.import_remote_inventory()

    # Sell out the console lot; its record still exists remotely.
    console = first.lots[0]
    synced_engine.lots.apply_changes([], [console.lot_id])
    fake_session.add(200, REMOTE)

    second = synced_engine.importer.import_remote_inventory()

    assert second.imported == 0
    assert second.skipped_existing == 2


def test_import_respects_date_range(synced_engine, fake_session) -> None:
    fake_session.add(200, REMOTE)

    report = synced_engine.importer.import_remote_inventory(date_from=date(2025, 2, 1), date_to=date(2025, 2, 1))

    assert report.imported == 1
    assert report.skipped_out_of_range == 1
    assert report.lots[0].external_id == "3"


def test_import_reports_linked_lots_missing_remotely(synced_engine, fake_session) -> None:
    synced_engine.lots.add(build_lot("LOT-GONE", quantity=1, price=1000, external_id="999"))
    fake_session.add(200, REMOTE)

    report = synced_engine.importer.import_remote_inventory()

    assert report.missing_remote == ["LOT-GONE"]


def test_import_fails_when_pull_fails(synced_engine, fake_session, connection_error) -> None:
    for _ in range(synced_engine.settings.sync_max_attempts):
        fake_session.fail(connection_error)

    with pytest.raises(SyncFailure):
        synced_engine.importer.import_remote_inventory()

    assert synced_engine.lots.list_lots() == []


def test_import_without_sync_configured_fails(engine) -> None:
    with pytest.raises(SyncFailure):
        engine.importer.import_remote_inventory()
