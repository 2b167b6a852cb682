"""
Tests for legacy ledger migration.

Covers versioned parsing (`repositories/legacy_event_schemas.py`) and
`LedgerAggregator.migrate_legacy`.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from domain.ledger import LedgerStatus
from repositories.legacy_event_schemas import duplicate_key, parse_legacy_sale
from repositories.store import InMemoryLedgerEventStore
from services.ledger_service import LedgerAggregator

V1_SALE = {
    "id": "s1",
    "inventoryItemId": "inv1",
    "soldPrice": 30000,
    "soldAt": "2024-05-01T10:00:00Z",
    "soldTo": "Bob Jones",
    "salesChannel": "ebay",
    "quantity": 2,
    "shippingFee": 1500,
}

V2_SALE = {
    "id": "s2",
    "inventoryItemId": "inv2",
    "soldPrice": "15,000",
    "soldPriceUSD": "100.00",
    "shippingFeeUSD": "10.00",
    "shippingFeeJPY": 1500,
    "soldAt": "2024-06-01T10:00:00Z",
    "soldTo": "Carol",
    "buyer": {"name": "Carol King", "country": "US", "postalCode": "90210"},
    "salesChannel": "shopify",
    "quantity": 1,
}

INVENTORY = {
    "id": "inv1",
    "quantity": 1,
    "acquisitionPrice": 10000,
    "registeredDate": "2024-04-01T00:00:00Z",
    "managementNumbers": ["M1", "M2", "M3"],
    "productType": "console",
    "console": "ps5",
    "consoleLabel": "PlayStation 5",
    "assessedRank": "A",
    "customer": {
        "name": "田中 一郎",
        "address": "東京都港区",
        "postalCode": "105-0001",
        "occupation": "学生",
        "birthDate": "2001-02-03",
    },
}


@pytest.fixture
def aggregator() -> LedgerAggregator:
    return LedgerAggregator(InMemoryLedgerEventStore())


def test_v1_sale_is_upgraded() -> None:
    record = parse_legacy_sale(V1_SALE)

    assert record.shipping_fee_jpy == Decimal("1500")
    assert record.buyer.name == "Bob Jones"
    assert record.sold_price_usd is None
    assert record.total_price_jpy == Decimal("30000")


def test_v2_sale_keeps_structured_buyer() -> None:
    record = parse_legacy_sale(V2_SALE)

    assert record.sold_price == Decimal("15000")
    assert record.sold_price_usd == Decimal("100.00")
    assert record.buyer_name == "Carol King"
    assert record.buyer.country == "US"


def test_sale_without_id_is_rejected() -> None:
    with pytest.raises(ValidationError):
        parse_legacy_sale({"soldPrice": 100})


def test_duplicate_key_ignores_number_formatting() -> None:
    a = parse_legacy_sale({**V1_SALE, "soldPrice": "30000.0"})
    b = parse_legacy_sale(V1_SALE)

    assert duplicate_key(a) == duplicate_key(b)


def test_migration_adds_back_sold_units_to_purchase(aggregator) -> None:
    """Legacy inventory holds what is left; the purchase covers remaining + sold."""

    result = aggregator.migrate_legacy([V1_SALE], [INVENTORY])

    assert result.purchases_added == 1
    assert result.sales_added == 1
    assert result.invalid_records == []

    (record,) = result.records
    assert record.identity == "inv1"
    assert record.purchase.total_quantity == 3
    assert record.sale.total_quantity == 2
    assert record.sale.total_revenue_jpy == 30000
    assert record.sale.total_shipping_jpy == 1500
    assert record.status == LedgerStatus.PARTIAL
    assert record.counterpart.name == "田中 一郎"
    assert record.sale.events[0].unit_price_jpy == 15000
    assert record.sale.events[0].buyer.name == "Bob Jones"


def test_migration_is_idempotent(aggregator) -> None:
    aggregator.migrate_legacy([V1_SALE, V2_SALE], [INVENTORY])

    again = aggregator.migrate_legacy([V1_SALE, V2_SALE], [INVENTORY])

    assert again.purchases_added == 0
    assert again.sales_added == 0
    assert aggregator.rebuild("inv1").sale.total_quantity == 2


def test_exact_duplicates_are_dropped(aggregator) -> None:
    result = aggregator.migrate_legacy([V2_SALE, dict(V2_SALE, id="s2-copy")])

    assert result.duplicates_skipped == 1
    assert result.sales_added == 1


def test_settlement_amounts_are_split_per_unit(aggregator) -> None:
    aggregator.migrate_legacy([dict(V2_SALE, quantity=2)])

    event = aggregator.rebuild("inv2").sale.events[0]

    assert event.total_price_settlement == Decimal("100.00")
    assert event.unit_price_settlement == Decimal("50.00")
    assert event.shipping_fee_settlement == Decimal("10.00")
    assert event.unit_price_jpy == 7500


def test_sale_matched_by_management_number(aggregator) -> None:
    sale = {"id": "s3", "soldPrice": 12000, "soldAt": "2024-05-02", "managementNumbers": "M2"}

    result = aggregator.migrate_legacy([sale], [INVENTORY])

    assert [record.identity for record in result.records] == ["inv1"]
    assert aggregator.rebuild("inv1").sale.total_quantity == 1


def test_unmatched_sale_gets_its_own_identity(aggregator) -> None:
    result = aggregator.migrate_legacy([{"id": "s4", "soldPrice": 5000, "soldAt": "2024-05-03"}])

    (record,) = result.records
    assert record.identity == "LEGACY-s4"
    assert record.status == LedgerStatus.SOLD


def test_invalid_records_are_reported_not_migrated(aggregator) -> None:
    result = aggregator.migrate_legacy(
        [{"soldPrice": 100}, dict(V1_SALE, id="bad-date", soldAt="not a date")],
        [{"quantity": 1}],
    )

    assert result.sales_added == 0
    assert result.purchases_added == 0
    assert len(result.invalid_records) == 3
