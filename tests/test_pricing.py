"""
Tests for `services/pricing_service.py`.

Covers:
- Half-up rounding into whole yen and two-place settlement amounts.
- Round-trip drift stays within one minor unit and does not compound.
- Shipping apportionment sums exactly to the fee.
- Quote totals, expiry and input validation.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from domain.errors import InvalidPricingInput
from domain.sale import SaleLine
from services.pricing_service import (
    RateSnapshot,
    apportion_shipping,
    calculate_sale_quote,
    line_total,
    profit_summary,
    to_ledger_currency,
    to_settlement_currency,
)

from conftest import PS5, T0

RATE = RateSnapshot(rate=Decimal("150"), taken_at=T0)


def _line(line_id: str, quantity: int, price: str) -> SaleLine:
    return SaleLine(line_id=line_id, descriptor=PS5, requested_quantity=quantity, unit_price=Decimal(price))


def test_ledger_conversion_rounds_half_up() -> None:
    assert to_ledger_currency(Decimal("0.01"), Decimal("150")) == 2  # 1.5 -> 2
    assert to_ledger_currency(Decimal("10.00"), Decimal("149.95")) == 1500  # 1499.5 -> 1500
    assert to_ledger_currency(Decimal("0"), Decimal("150")) == 0


def test_settlement_conversion_rounds_to_cents() -> None:
    assert to_settlement_currency(1000, Decimal("150")) == Decimal("6.67")
    assert to_settlement_currency(15000, 150) == Decimal("100.00")


def test_round_trip_drift_is_bounded_and_does_not_compound() -> None:
    rate = Decimal("151.37")
    for cents in range(1, 2000, 37):
        amount = Decimal(cents) / 100
        once = to_settlement_currency(to_ledger_currency(amount, rate), rate)
        twice = to_settlement_currency(to_ledger_currency(once, rate), rate)
        assert abs(once - amount) <= Decimal("0.01")
        assert twice == once


def test_invalid_inputs_are_rejected() -> None:
    with pytest.raises(InvalidPricingInput):
        to_ledger_currency(Decimal("-1"), Decimal("150"))
    with pytest.raises(InvalidPricingInput):
        to_ledger_currency(Decimal("1"), Decimal("0"))
    with pytest.raises(InvalidPricingInput):
        to_ledger_currency(Decimal("NaN"), Decimal("150"))
    with pytest.raises(InvalidPricingInput):
        line_total(Decimal("1"), -1)


def test_line_total_keeps_unit_price_times_quantity() -> None:
    assert line_total(15000, 3) == 45000
    assert line_total(Decimal("33.33"), 3) == Decimal("99.99")


def test_apportion_shipping_sums_exactly() -> None:
    shares = apportion_shipping(Decimal("10.00"), [1, 1, 1])

    assert shares == [Decimal("3.33"), Decimal("3.33"), Decimal("3.34")]
    assert sum(shares) == Decimal("10.00")


def test_apportion_shipping_is_proportional_to_quantity() -> None:
    shares = apportion_shipping(Decimal("40.00"), [3, 1])

    assert shares == [Decimal("30.00"), Decimal("10.00")]


def test_quote_totals_and_shipping() -> None:
    quote = calculate_sale_quote(
        [_line("1", 2, "100.00"), _line("2", 1, "50.50")],
        RATE,
        shipping_fee=Decimal("30.00"),
        now=T0,
    )

    first = quote.line("1")
    assert first.unit_price_jpy == 15000
    assert first.total_jpy == 30000
    assert first.total_settlement == Decimal("200.00")
    assert first.shipping_settlement == Decimal("20.00")

    second = quote.line("2")
    assert second.unit_price_jpy == 7575
    assert second.shipping_settlement == Decimal("10.00")

    assert quote.subtotal_settlement == Decimal("250.50")
    assert quote.subtotal_jpy == 37575
    assert quote.total_settlement == Decimal("280.50")
    assert quote.shipping_jpy == 4500
    assert quote.total_items == 3


def test_quote_expires_after_validity_window() -> None:
    quote = calculate_sale_quote([_line("1", 1, "10.00")], RATE, quote_validity_minutes=15, now=T0)

    assert quote.expires_at == T0 + timedelta(minutes=15)
    assert not quote.is_expired(T0 + timedelta(minutes=14))
    assert quote.is_expired(T0 + timedelta(minutes=16))


def test_quote_requires_lines_and_valid_prices() -> None:
    with pytest.raises(InvalidPricingInput):
        calculate_sale_quote([], RATE)
    with pytest.raises(InvalidPricingInput):
        calculate_sale_quote([_line("1", 1, "-5.00")], RATE)
    with pytest.raises(InvalidPricingInput):
        calculate_sale_quote([_line("1", 1, "5.00")], RATE, shipping_fee=Decimal("-1"))


def test_profit_summary_margin() -> None:
    summary = profit_summary(revenue_jpy=30000, cost_jpy=20000)

    assert summary.profit_jpy == 10000
    assert summary.margin_percent == Decimal("33.3")
    assert profit_summary(0, 500).margin_percent == Decimal("0.0")
