"""
Domain: compliance ledger events and records.

A LedgerRecord is the aggregate of every purchase and sale event that refers
to one inventory identity (a lot id, or an item id carried over from legacy
data). It is the unit the antiques-dealer ledger report is built from.

Rules captured here:
- Records are derived, never edited: `build_ledger_record` is a pure fold over
  the events and yields the same record regardless of event insertion order.
- "First purchase" and "last sale" are chosen by timestamp (event id breaks
  ties), not by insertion order.
- The counterpart identity fields required by law are carried from the
  originating purchase and survive a rebuild even when no sale exists yet.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

from .counterpart import Buyer, Counterpart, Supplier
from .lot import LotSource
from .product import ProductSnapshot
from .sale import SaleEvent
from .time import require_utc_timestamp


class LedgerStatus(str, Enum):
    IN_STOCK = "in_stock"
    PARTIAL = "partial"
    SOLD = "sold"


@dataclass(frozen=True, slots=True)
class PurchaseEvent:
    """Immutable record of units entering the business (buyback, supplier intake, import)."""

    event_id: str
    identity: str
    occurred_at: datetime
    quantity: int
    unit_price_jpy: int
    product: ProductSnapshot
    source: LotSource
    performer: str = ""
    counterpart: Optional[Counterpart] = None
    supplier: Optional[Supplier] = None
    application_number: str = ""
    management_numbers: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        require_utc_timestamp("occurred_at", self.occurred_at)
        if self.quantity < 0:
            raise ValueError("PurchaseEvent quantity must be >= 0")
        if self.unit_price_jpy < 0:
            raise ValueError("PurchaseEvent unit_price_jpy must be >= 0")

    @property
    def total_cost_jpy(self) -> int:
        return self.unit_price_jpy * self.quantity


@dataclass(frozen=True, slots=True)
class PurchaseSummary:
    total_quantity: int
    total_cost_jpy: int
    average_unit_cost_jpy: Decimal
    events: Tuple[PurchaseEvent, ...]


@dataclass(frozen=True, slots=True)
class SaleSummary:
    total_quantity: int
    total_revenue_jpy: int
    total_revenue_settlement: Decimal
    total_shipping_jpy: int
    total_shipping_settlement: Decimal
    events: Tuple[SaleEvent, ...]


@dataclass(frozen=True, slots=True)
class LedgerRecord:
    identity: str
    product: Optional[ProductSnapshot]
    management_numbers: Tuple[str, ...]
    purchase: PurchaseSummary
    sale: SaleSummary
    status: LedgerStatus
    first_purchase_at: Optional[datetime]
    last_sale_at: Optional[datetime]
    counterpart: Optional[Counterpart]
    supplier: Optional[Supplier]
    source: Optional[LotSource]
    application_number: str
    cost_of_sold_jpy: int

    @property
    def has_sale(self) -> bool:
        return self.sale.total_quantity > 0

    @property
    def profit_jpy(self) -> int:
        return self.sale.total_revenue_jpy - self.cost_of_sold_jpy

    @property
    def activity_at(self) -> Optional[datetime]:
        """Date the ledger view sorts on: last sale, else first purchase."""

        return self.last_sale_at or self.first_purchase_at

    @property
    def last_buyer(self) -> Optional[Buyer]:
        if not self.sale.events:
            return None
        return self.sale.events[-1].buyer

    @property
    def unit_price_jpy(self) -> Optional[int]:
        """Acquisition unit price of the originating purchase."""

        if not self.purchase.events:
            return None
        return self.purchase.events[0].unit_price_jpy


def _event_order(event: PurchaseEvent | SaleEvent) -> tuple[datetime, str]:
    return (event.occurred_at, event.event_id)


def _merge_unique(groups: Iterable[Sequence[str]]) -> Tuple[str, ...]:
    seen: dict[str, None] = {}
    for group in groups:
        for value in group:
            if value:
                seen.setdefault(value, None)
    return tuple(seen)


def _status(purchased: int, sold: int) -> LedgerStatus:
    if sold == 0:
        return LedgerStatus.IN_STOCK
    if sold >= purchased:
        return LedgerStatus.SOLD
    return LedgerStatus.PARTIAL


def build_ledger_record(
    identity: str,
    purchases: Iterable[PurchaseEvent],
    sales: Iterable[SaleEvent],
) -> LedgerRecord:
    """
    Fold every event for `identity` into a LedgerRecord.

    Pure and deterministic: events are sorted by (timestamp, event id) before
    folding, so the result does not depend on the order they were stored in.
    """

    purchase_events = tuple(sorted((e for e in purchases if e.identity == identity), key=_event_order))
    sale_events = tuple(sorted((e for e in sales if e.identity == identity), key=_event_order))

    purchased_qty = sum(e.quantity for e in purchase_events)
    total_cost = sum(e.total_cost_jpy for e in purchase_events)
    average_cost = (
        (Decimal(total_cost) / Decimal(purchased_qty)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if purchased_qty > 0
        else Decimal("0.00")
    )

    sold_qty = sum(e.quantity for e in sale_events)
    sale_summary = SaleSummary(
        total_quantity=sold_qty,
        total_revenue_jpy=sum(e.total_price_jpy for e in sale_events),
        total_revenue_settlement=sum((e.total_price_settlement for e in sale_events), Decimal("0.00")),
        total_shipping_jpy=sum(e.shipping_fee_jpy for e in sale_events),
        total_shipping_settlement=sum((e.shipping_fee_settlement for e in sale_events), Decimal("0.00")),
        events=sale_events,
    )

    # Cost of the units actually sold, pro rata to the purchase cost.
    if purchased_qty > 0 and sold_qty > 0:
        cost_of_sold = int(
            (Decimal(total_cost) * Decimal(min(sold_qty, purchased_qty)) / Decimal(purchased_qty)).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        )
    else:
        cost_of_sold = 0

    product: Optional[ProductSnapshot] = None
    if purchase_events:
        product = purchase_events[0].product
    else:
        for event in reversed(sale_events):
            if event.product is not None:
                product = event.product
                break

    counterpart = next((e.counterpart for e in purchase_events if e.counterpart is not None), None)
    supplier = next((e.supplier for e in purchase_events if e.supplier is not None), None)
    application_number = next((e.application_number for e in purchase_events if e.application_number), "")

    return LedgerRecord(
        identity=identity,
        product=product,
        management_numbers=_merge_unique(
            [e.management_numbers for e in purchase_events] + [e.management_numbers for e in sale_events]
        ),
        purchase=PurchaseSummary(
            total_quantity=purchased_qty,
            total_cost_jpy=total_cost,
            average_unit_cost_jpy=average_cost,
            events=purchase_events,
        ),
        sale=sale_summary,
        status=_status(purchased_qty, sold_qty),
        first_purchase_at=purchase_events[0].occurred_at if purchase_events else None,
        last_sale_at=sale_events[-1].occurred_at if sale_events else None,
        counterpart=counterpart,
        supplier=supplier,
        source=purchase_events[0].source if purchase_events else None,
        application_number=application_number,
        cost_of_sold_jpy=cost_of_sold,
    )
