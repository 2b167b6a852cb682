"""
Pricing service for sale quotes and currency conversion.

Sales are priced in the settlement currency (USD) and recorded in the ledger
currency (JPY). Rules:
- Conversion rounds half-up: whole units for JPY, cents for USD.
- A line total is always unit price x quantity in the *same* currency. The JPY
  unit price is converted from the USD unit price; a JPY total is never derived
  by converting a USD total.
- The exchange rate is snapshotted when a quote is built and the same snapshot
  is used when the sale is finalized.

Everything here is pure; the only input from outside is the RateSnapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional, Sequence, Union
from uuid import uuid4

from domain.errors import InvalidPricingInput
from domain.sale import SaleLine
from domain.time import require_utc_timestamp, utc_now
from repositories.exchange_rate_repository import ExchangeRateSource

CENT = Decimal("0.01")
WHOLE = Decimal("1")
DEFAULT_QUOTE_VALIDITY_MINUTES = 15

Number = Union[int, Decimal]


def new_quote_id() -> str:
    return f"Q-{uuid4().hex[:16].upper()}"


def _as_decimal(value: Number, name: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidPricingInput(f"{name} must be a number")
    try:
        number = Decimal(value) if isinstance(value, int) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidPricingInput(f"{name} is not a number: {value!r}") from e
    if not number.is_finite():
        raise InvalidPricingInput(f"{name} must be finite")
    return number


def _require_amount(value: Number, name: str = "amount") -> Decimal:
    number = _as_decimal(value, name)
    if number < 0:
        raise InvalidPricingInput(f"{name} must be >= 0")
    return number


def _require_rate(rate: Number) -> Decimal:
    number = _as_decimal(rate, "rate")
    if number <= 0:
        raise InvalidPricingInput("rate must be > 0")
    return number


def _require_quantity(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidPricingInput("quantity must be an integer")
    if quantity < 0:
        raise InvalidPricingInput("quantity must be >= 0")
    return quantity


def to_ledger_currency(amount: Number, rate: Number) -> int:
    """
    Convert a settlement-currency amount to whole ledger-currency units.

    Example:
        to_ledger_currency(Decimal("25.00"), Decimal("150"))  # 3750
    """

    value = _require_amount(amount) * _require_rate(rate)
    return int(value.quantize(WHOLE, rounding=ROUND_HALF_UP))


def to_settlement_currency(amount: Number, rate: Number) -> Decimal:
    """
    Convert a ledger-currency amount to settlement currency, rounded to cents.

    Example:
        to_settlement_currency(18750, Decimal("150"))  # Decimal("125.00")
    """

    value = _require_amount(amount) / _require_rate(rate)
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Number, quantity: int) -> Number:
    """
    unit price x quantity, in the unit price's currency.

    Integer (ledger currency) prices stay integers; Decimal prices are
    quantized to cents.
    """

    qty = _require_quantity(quantity)
    price = _require_amount(unit_price, "unit_price")
    if isinstance(unit_price, int):
        return int(price) * qty
    return (price * qty).quantize(CENT, rounding=ROUND_HALF_UP)


def apportion_shipping(fee: Number, quantities: Sequence[int]) -> List[Decimal]:
    """
    Split a settlement-currency shipping fee across shares by quantity.

    Each share is rounded to cents; the rounding remainder goes to the last
    share so the parts always add up to the fee exactly.

    Raises:
        InvalidPricingInput: On a negative fee or quantity.
    """

    total_fee = _require_amount(fee, "shipping fee").quantize(CENT, rounding=ROUND_HALF_UP)
    qtys = [_require_quantity(q) for q in quantities]
    if not qtys:
        return []

    total_qty = sum(qtys)
    if total_qty == 0:
        shares = [Decimal("0.00")] * len(qtys)
        shares[-1] = total_fee
        return shares

    shares = [
        (total_fee * q / total_qty).quantize(CENT, rounding=ROUND_HALF_UP)
        for q in qtys[:-1]
    ]
    shares.append(total_fee - sum(shares, Decimal("0.00")))
    return shares


@dataclass(frozen=True, slots=True)
class RateSnapshot:
    """Exchange rate captured once per quote (ledger units per settlement unit)."""

    rate: Decimal
    taken_at: datetime
    settlement_currency: str = "USD"
    ledger_currency: str = "JPY"

    def __post_init__(self) -> None:
        _require_rate(self.rate)
        require_utc_timestamp("taken_at", self.taken_at)


def take_rate_snapshot(
    source: ExchangeRateSource,
    settlement_currency: str = "USD",
    ledger_currency: str = "JPY",
    now: Optional[datetime] = None,
) -> RateSnapshot:
    return RateSnapshot(
        rate=_require_rate(source.current_rate()),
        taken_at=now or utc_now(),
        settlement_currency=settlement_currency,
        ledger_currency=ledger_currency,
    )


@dataclass(frozen=True, slots=True)
class QuoteLine:
    """Pricing for one sale line in both currencies."""

    line_id: str
    quantity: int
    unit_price_settlement: Decimal
    unit_price_jpy: int
    total_settlement: Decimal
    total_jpy: int
    shipping_settlement: Decimal
    shipping_jpy: int


@dataclass(frozen=True, slots=True)
class SaleQuote:
    """
    Complete sale quote with itemized breakdown.

    Includes:
    - Per-line prices in both currencies
    - Subtotals and apportioned shipping
    - The rate snapshot the sale must be finalized with
    - Quote expiration (prevents finalizing on a stale rate)
    """

    lines: List[QuoteLine]
    subtotal_settlement: Decimal
    subtotal_jpy: int
    shipping_settlement: Decimal
    shipping_jpy: int
    rate: RateSnapshot
    created_at: datetime
    expires_at: datetime
    quote_id: str = field(default_factory=new_quote_id)

    @property
    def total_settlement(self) -> Decimal:
        return self.subtotal_settlement + self.shipping_settlement

    @property
    def total_jpy(self) -> int:
        return self.subtotal_jpy + self.shipping_jpy

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    def line(self, line_id: str) -> QuoteLine:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        raise KeyError(line_id)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if this quote has expired."""
        return (now or datetime.now(timezone.utc)) > self.expires_at


def calculate_sale_quote(
    lines: Sequence[SaleLine],
    rate: RateSnapshot,
    shipping_fee: Number = Decimal("0.00"),
    quote_validity_minutes: int = DEFAULT_QUOTE_VALIDITY_MINUTES,
    now: Optional[datetime] = None,
) -> SaleQuote:
    """
    Price a set of sale lines.

    Args:
        lines: Sale lines with settlement-currency unit prices
        rate: Exchange rate snapshot to price with
        shipping_fee: Settlement-currency shipping fee for the whole sale
        quote_validity_minutes: How long the quote is valid (default: 15 minutes)
        now: Quote time (defaults to the current UTC time)

    Returns:
        SaleQuote with itemized pricing

    Raises:
        InvalidPricingInput: On negative or non-finite prices, or an empty sale

    Example:
        quote = calculate_sale_quote([line], snapshot, shipping_fee=Decimal("20.00"))
        print(f"Total: ${quote.total_settlement} / JPY {quote.total_jpy}")
    """

    if not lines:
        raise InvalidPricingInput("A quote needs at least one sale line")

    shipping_shares = apportion_shipping(shipping_fee, [line.requested_quantity for line in lines])

    quote_lines: List[QuoteLine] = []
    for line, shipping_share in zip(lines, shipping_shares):
        unit_settlement = _require_amount(line.unit_price, "unit_price").quantize(CENT, rounding=ROUND_HALF_UP)
        unit_jpy = to_ledger_currency(unit_settlement, rate.rate)
        quote_lines.append(
            QuoteLine(
                line_id=line.line_id,
                quantity=line.requested_quantity,
                unit_price_settlement=unit_settlement,
                unit_price_jpy=unit_jpy,
                total_settlement=line_total(unit_settlement, line.requested_quantity),
                total_jpy=line_total(unit_jpy, line.requested_quantity),
                shipping_settlement=shipping_share,
                shipping_jpy=to_ledger_currency(shipping_share, rate.rate),
            )
        )

    created_at = now or utc_now()
    return SaleQuote(
        lines=quote_lines,
        subtotal_settlement=sum((line.total_settlement for line in quote_lines), Decimal("0.00")),
        subtotal_jpy=sum(line.total_jpy for line in quote_lines),
        shipping_settlement=sum(shipping_shares, Decimal("0.00")),
        shipping_jpy=sum(line.shipping_jpy for line in quote_lines),
        rate=rate,
        created_at=created_at,
        expires_at=created_at + timedelta(minutes=quote_validity_minutes),
    )


@dataclass(frozen=True, slots=True)
class ProfitSummary:
    revenue_jpy: int
    cost_jpy: int
    profit_jpy: int
    margin_percent: Decimal


def profit_summary(revenue_jpy: int, cost_jpy: int) -> ProfitSummary:
    """Profit and margin (percent of revenue, one decimal place)."""

    profit = revenue_jpy - cost_jpy
    if revenue_jpy > 0:
        margin = (Decimal(profit) * 100 / Decimal(revenue_jpy)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    else:
        margin = Decimal("0.0")
    return ProfitSummary(revenue_jpy=revenue_jpy, cost_jpy=cost_jpy, profit_jpy=profit, margin_percent=margin)


__all__ = [
    "DEFAULT_QUOTE_VALIDITY_MINUTES",
    "ProfitSummary",
    "QuoteLine",
    "RateSnapshot",
    "SaleQuote",
    "apportion_shipping",
    "calculate_sale_quote",
    "line_total",
    "new_quote_id",
    "profit_summary",
    "take_rate_snapshot",
    "to_ledger_currency",
    "to_settlement_currency",
]
