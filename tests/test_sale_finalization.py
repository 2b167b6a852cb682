"""
Tests for `services/sale_finalization_service.py`.

Scenarios:
- A: a full lot sells out; revenue, cost and profit come from one rate snapshot
- C: the packing slip push fails; the sale is still recorded and the failure
  is logged once against the sale id
- Validation failures leave lots and ledger untouched
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from domain.counterpart import Buyer
from domain.errors import AllocationMismatch, InsufficientStock, InvalidPricingInput, QuoteExpired
from domain.ledger import LedgerStatus
from domain.rank import ConditionRank
from domain.sale import Allocation, SaleLine, ShippingTerms
from domain.sync import SyncStatus
from domain.time import utc_now
from services.pricing_service import RateSnapshot, calculate_sale_quote
from services.sale_finalization_service import SaleRequest

from conftest import PS5, build_lot

BUYER = Buyer(name="John Smith", country="US", postal_code="10001", address="1 Main St")


def _line(quantity: int, price: str = "25.00", line_id: str = "1") -> SaleLine:
    return SaleLine(line_id=line_id, descriptor=PS5, requested_quantity=quantity, unit_price=Decimal(price))


def _request(lines, allocations, **kwargs) -> SaleRequest:
    return SaleRequest(buyer=BUYER, lines=lines, allocations=allocations, staff="sato", **kwargs)


def test_sale_sells_out_lot_and_reports_profit(engine) -> None:
    """Scenario A: 5 units bought at 3,000 sold at 25.00 with a rate of 150."""

    engine.lots.add(build_lot("LOT-1", quantity=5, price=3000))
    engine.ledger.append_purchase(engine.lots.get("LOT-1"))

    result = engine.finalizer.finalize_sale(
        _request([_line(5)], [Allocation(line_id="1", lot_id="LOT-1", quantity=5)], sale_id="SALE-A")
    )

    assert result.revenue_jpy == 18750
    assert result.cost_jpy == 15000
    assert result.profit.profit_jpy == 3750
    assert result.profit.margin_percent == Decimal("20.0")
    assert engine.lots.get("LOT-1") is None
    assert engine.allocator.list_candidates(_line(1)) == []

    (event,) = result.events
    assert event.event_id == "SALE-A-1"
    assert event.unit_price_jpy == 3750
    assert event.total_price_settlement == Decimal("125.00")
    assert event.management_numbers == ("LOT-1-1", "LOT-1-2", "LOT-1-3", "LOT-1-4", "LOT-1-5")
    assert event.staff == "sato"

    record = engine.ledger.rebuild("LOT-1")
    assert record.status == LedgerStatus.SOLD
    assert record.profit_jpy == 3750

    # Sync is not configured: the push is skipped, not failed.
    assert result.sync.status == SyncStatus.SKIPPED
    assert result.warnings == []


def test_line_split_across_lots_shares_shipping(engine) -> None:
    engine.lots.add(build_lot("LOT-A", quantity=2, price=3000, rank=ConditionRank.A))
    engine.lots.add(build_lot("LOT-B", quantity=3, price=2000, rank=ConditionRank.B))

    result = engine.finalizer.finalize_sale(
        _request(
            [_line(4)],
            [
                Allocation(line_id="1", lot_id="LOT-A", quantity=2),
                Allocation(line_id="1", lot_id="LOT-B", quantity=2),
            ],
            shipping=ShippingTerms(fee=Decimal("30.00")),
        )
    )

    assert [e.identity for e in result.events] == ["LOT-A", "LOT-B"]
    assert [e.shipping_fee_settlement for e in result.events] == [Decimal("15.00"), Decimal("15.00")]
    assert [e.shipping_fee_jpy for e in result.events] == [2250, 2250]
    assert result.cost_jpy == 2 * 3000 + 2 * 2000
    assert result.quote.total_settlement == Decimal("130.00")
    assert engine.lots.get("LOT-A") is None
    assert engine.lots.get("LOT-B").total_quantity == 1


def test_sync_failure_keeps_sale_and_logs_one_error(synced_engine, fake_session, connection_error) -> None:
    """Scenario C."""

    synced_engine.lots.add(build_lot("LOT-1", quantity=5, price=3000, external_id="9001"))
    for _ in range(synced_engine.settings.sync_max_attempts):
        fake_session.fail(connection_error)

    result = synced_engine.finalizer.finalize_sale(
        _request([_line(2)], [Allocation(line_id="1", lot_id="LOT-1", quantity=2)], sale_id="SALE-C")
    )

    assert result.sync.status == SyncStatus.ERROR
    assert len(result.events) == 1
    assert synced_engine.lots.get("LOT-1").total_quantity == 3
    assert synced_engine.ledger.rebuild("LOT-1").sale.total_quantity == 2
    assert any("sync failed" in warning for warning in result.warnings)

    errors = synced_engine.sync.activity(status=SyncStatus.ERROR)
    assert len(errors) == 1
    assert errors[0].details["sale_id"] == "SALE-C"


def test_successful_push_sends_linked_lots_only(synced_engine, fake_session) -> None:
    synced_engine.lots.add(build_lot("LOT-1", quantity=1, price=3000, external_id="9001"))
    synced_engine.lots.add(build_lot("LOT-2", quantity=1, price=3000, rank=ConditionRank.B))
    fake_session.add(200, {"data_id": 1})

    result = synced_engine.finalizer.finalize_sale(
        _request(
            [_line(2)],
            [
                Allocation(line_id="1", lot_id="LOT-1", quantity=1),
                Allocation(line_id="1", lot_id="LOT-2", quantity=1),
            ],
        )
    )

    assert result.sync.ok
    assert fake_session.calls[0]["json"]["deliveries"] == [{"inventory_id": "9001", "quantity": 1, "unit_price": 3750}]
    assert result.warnings == ["Lots not linked to the external inventory service: LOT-2"]


def test_allocation_mismatch_changes_nothing(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=5, price=3000))

    with pytest.raises(AllocationMismatch):
        engine.finalizer.finalize_sale(_request([_line(5)], [Allocation(line_id="1", lot_id="LOT-1", quantity=4)]))

    assert engine.lots.get("LOT-1").total_quantity == 5
    assert engine.ledger.records() == []


def test_allocation_for_unknown_line_is_rejected(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=5, price=3000))

    with pytest.raises(AllocationMismatch):
        engine.finalizer.finalize_sale(
            _request(
                [_line(1)],
                [
                    Allocation(line_id="1", lot_id="LOT-1", quantity=1),
                    Allocation(line_id="9", lot_id="LOT-1", quantity=1),
                ],
            )
        )


def test_stock_gone_since_allocation_changes_nothing(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=1, price=3000))

    with pytest.raises(InsufficientStock):
        engine.finalizer.finalize_sale(_request([_line(2)], [Allocation(line_id="1", lot_id="LOT-1", quantity=2)]))

    assert engine.lots.get("LOT-1").total_quantity == 1


def test_expired_quote_is_rejected(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=1, price=3000))
    quoted_at = utc_now() - timedelta(minutes=30)
    quote = calculate_sale_quote([_line(1)], RateSnapshot(rate=Decimal("150"), taken_at=quoted_at), now=quoted_at)

    with pytest.raises(QuoteExpired):
        engine.finalizer.finalize_sale(
            _request([_line(1)], [Allocation(line_id="1", lot_id="LOT-1", quantity=1)], quote=quote)
        )

    assert engine.lots.get("LOT-1").total_quantity == 1


def test_sale_uses_quoted_rate_not_current_rate(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=1, price=3000))
    quote = calculate_sale_quote([_line(1)], RateSnapshot(rate=Decimal("140"), taken_at=utc_now()))
    engine.rates.set_rate(Decimal("160"))

    result = engine.finalizer.finalize_sale(
        _request([_line(1)], [Allocation(line_id="1", lot_id="LOT-1", quantity=1)], quote=quote)
    )

    assert result.events[0].unit_price_jpy == 3500


def test_quote_for_other_quantities_is_rejected(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=3, price=3000))
    quote = calculate_sale_quote([_line(1)], RateSnapshot(rate=Decimal("150"), taken_at=utc_now()))

    with pytest.raises(InvalidPricingInput):
        engine.finalizer.finalize_sale(
            _request([_line(2)], [Allocation(line_id="1", lot_id="LOT-1", quantity=2)], quote=quote)
        )


def test_management_number_shortage_is_a_warning(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=2, price=3000, management_numbers=["M1"]))

    result = engine.finalizer.finalize_sale(
        _request([_line(2)], [Allocation(line_id="1", lot_id="LOT-1", quantity=2)])
    )

    assert result.events[0].management_numbers == ("M1",)
    assert len(result.warnings) == 1
    assert "management numbers" in result.warnings[0]


def test_reused_sale_id_is_rejected_before_any_change(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=5, price=3000))
    engine.finalizer.finalize_sale(
        _request([_line(1)], [Allocation(line_id="1", lot_id="LOT-1", quantity=1)], sale_id="SALE-X")
    )

    with pytest.raises(ValueError, match="SALE-X"):
        engine.finalizer.finalize_sale(
            _request([_line(1)], [Allocation(line_id="1", lot_id="LOT-1", quantity=1)], sale_id="SALE-X")
        )

    assert engine.lots.get("LOT-1").total_quantity == 4
    assert len(engine.ledger.rebuild("LOT-1").sale.events) == 1


def test_quote_for_other_unit_price_is_rejected(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=1, price=3000))
    quote = calculate_sale_quote([_line(1, price="25.00")], RateSnapshot(rate=Decimal("150"), taken_at=utc_now()))

    with pytest.raises(InvalidPricingInput, match="quoted at 25.00"):
        engine.finalizer.finalize_sale(
            _request([_line(1, price="30.00")], [Allocation(line_id="1", lot_id="LOT-1", quantity=1)], quote=quote)
        )

    assert engine.lots.get("LOT-1").total_quantity == 1


def test_future_dated_quote_is_rejected(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=1, price=3000))
    quoted_at = utc_now() + timedelta(days=1)
    quote = calculate_sale_quote([_line(1)], RateSnapshot(rate=Decimal("1"), taken_at=quoted_at), now=quoted_at)

    with pytest.raises(InvalidPricingInput, match="future"):
        engine.finalizer.finalize_sale(
            _request([_line(1)], [Allocation(line_id="1", lot_id="LOT-1", quantity=1)], quote=quote)
        )

    assert engine.lots.get("LOT-1").total_quantity == 1


def test_issued_quote_is_used_once_at_its_rate(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=2, price=3000))
    quote = engine.finalizer.quote([_line(1)])
    engine.rates.set_rate(Decimal("160"))

    result = engine.finalizer.finalize_sale(
        _request([_line(1)], [Allocation(line_id="1", lot_id="LOT-1", quantity=1)], quote_id=quote.quote_id)
    )
    assert result.events[0].unit_price_jpy == 3750

    with pytest.raises(InvalidPricingInput, match="already used"):
        engine.finalizer.finalize_sale(
            _request([_line(1)], [Allocation(line_id="1", lot_id="LOT-1", quantity=1)], quote_id=quote.quote_id)
        )
    assert engine.lots.get("LOT-1").total_quantity == 1


def test_expected_rate_must_match_the_pricing_rate(engine) -> None:
    engine.lots.add(build_lot("LOT-1", quantity=1, price=3000))

    with pytest.raises(InvalidPricingInput, match="does not match"):
        engine.finalizer.finalize_sale(
            _request([_line(1)], [Allocation(line_id="1", lot_id="LOT-1", quantity=1)], expected_rate=Decimal("1"))
        )

    assert engine.lots.get("LOT-1").total_quantity == 1
