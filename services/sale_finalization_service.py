"""
Sale finalization service.

Turns a priced, fully allocated sale into persisted state.

Handles:
- Validation of pricing and allocations before anything is written
- All-or-nothing lot commit through the allocator
- One immutable SaleEvent per allocation, priced from a single rate snapshot
- Best-effort packing slip push; sync failures become warnings, never errors

Finalization is not atomic across a crash: the lot commit and the ledger
append happen before the external push, and the sync activity log is what
reconciles a sale whose push failed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from domain.counterpart import Buyer
from domain.errors import AllocationMismatch, InvalidPricingInput, QuoteExpired
from domain.lot import InventoryLot
from domain.sale import Allocation, SaleEvent, SaleLine, ShippingTerms
from domain.sync import OutboundShipment, ShipmentDelivery, SyncOutcome, SyncStatus
from domain.time import require_utc_timestamp, utc_now
from repositories.exchange_rate_repository import ExchangeRateSource
from services.inventory_allocation_service import CommitResult, InventoryAllocator
from services.ledger_service import LedgerAggregator
from services.pricing_service import (
    CENT,
    DEFAULT_QUOTE_VALIDITY_MINUTES,
    ProfitSummary,
    SaleQuote,
    apportion_shipping,
    calculate_sale_quote,
    line_total,
    profit_summary,
    take_rate_snapshot,
    to_ledger_currency,
)
from services.sync_service import ExternalSyncAdapter, new_shipment_reference

logger = logging.getLogger(__name__)


def new_sale_id() -> str:
    return f"SALE-{uuid4().hex[:12].upper()}"


@dataclass(frozen=True, slots=True)
class SaleRequest:
    """
    Request to finalize one sale.

    `allocations` must cover every line exactly. Pricing comes from `quote`,
    else from the quote this finalizer issued as `quote_id`, else from a fresh
    rate snapshot. `expected_rate`, when set, must equal the rate used.
    """
    buyer: Buyer
    lines: List[SaleLine]
    allocations: List[Allocation]
    shipping: ShippingTerms = field(default_factory=ShippingTerms)
    staff: str = ""
    sales_channel: str = ""
    quote: Optional[SaleQuote] = None
    quote_id: Optional[str] = None
    expected_rate: Optional[Decimal] = None
    sale_id: Optional[str] = None
    sold_at: Optional[datetime] = None
    memo: str = ""


@dataclass(frozen=True, slots=True)
class SaleFinalizationResult:
    """
    Result of a finalized sale.

    sale_id: Identifier shared by every event of the sale
    events: Sale events appended to the ledger (one per allocation)
    quote: Pricing the events were recorded with
    profit: Revenue (goods, JPY), cost of the sold units and margin
    warnings: Non-fatal problems (management numbers, external sync)
    sync: Outcome of the packing slip push
    """
    sale_id: str
    events: List[SaleEvent]
    quote: SaleQuote
    profit: ProfitSummary
    warnings: List[str]
    sync: SyncOutcome

    @property
    def revenue_jpy(self) -> int:
        return self.profit.revenue_jpy

    @property
    def cost_jpy(self) -> int:
        return self.profit.cost_jpy


class SaleFinalizer:
    """
    Coordinates allocator, ledger and sync adapter for one sale at a time.

    Args:
        allocator: Inventory allocator (the only writer of lot quantities)
        ledger: Ledger aggregator receiving the sale events
        sync: External sync adapter for the packing slip
        rates: Exchange rate source, used when a request carries no quote
        quote_validity_minutes: Validity window of quotes built here
    """

    def __init__(
        self,
        allocator: InventoryAllocator,
        ledger: LedgerAggregator,
        sync: ExternalSyncAdapter,
        rates: ExchangeRateSource,
        quote_validity_minutes: int = DEFAULT_QUOTE_VALIDITY_MINUTES,
    ):
        self._allocator = allocator
        self._ledger = ledger
        self._sync = sync
        self._rates = rates
        self._quote_validity_minutes = quote_validity_minutes
        self._issued: Dict[str, SaleQuote] = {}
        self._issued_lock = threading.Lock()

    def _price(self, lines: Sequence[SaleLine], shipping: ShippingTerms, now: datetime) -> SaleQuote:
        return calculate_sale_quote(
            lines,
            take_rate_snapshot(self._rates, now=now),
            shipping_fee=shipping.fee,
            quote_validity_minutes=self._quote_validity_minutes,
            now=now,
        )

    def quote(
        self,
        lines: Sequence[SaleLine],
        shipping: Optional[ShippingTerms] = None,
        now: Optional[datetime] = None,
    ) -> SaleQuote:
        """
        Price lines with a fresh rate snapshot and keep the quote.

        A sale finalized with the returned `quote_id` is recorded at exactly
        these prices, as long as the quote has not expired. Each issued quote
        can be used for one sale.
        """

        issued_at = now or utc_now()
        quote = self._price(lines, shipping or ShippingTerms(), issued_at)
        with self._issued_lock:
            current = utc_now()
            for quote_id in [q.quote_id for q in self._issued.values() if q.is_expired(current)]:
                del self._issued[quote_id]
            self._issued[quote.quote_id] = quote
        return quote

    def issued_quote(self, quote_id: str) -> Optional[SaleQuote]:
        with self._issued_lock:
            return self._issued.get(quote_id)

    def _resolve_quote(self, request: SaleRequest, now: datetime) -> SaleQuote:
        if request.quote is not None:
            quote = request.quote
        elif request.quote_id:
            quote = self.issued_quote(request.quote_id)
            if quote is None:
                raise InvalidPricingInput(f"Unknown or already used quote: {request.quote_id}")
        else:
            quote = self._price(request.lines, request.shipping, now)

        if request.expected_rate is not None and Decimal(request.expected_rate) != quote.rate.rate:
            raise InvalidPricingInput(
                f"Exchange rate {request.expected_rate} does not match the rate {quote.rate.rate} of the sale"
            )
        if quote.created_at > now:
            raise InvalidPricingInput(f"Quote is dated in the future: {quote.created_at.isoformat()}")
        if quote.is_expired(now):
            raise QuoteExpired(f"Quote expired at {quote.expires_at.isoformat()}. Please request a new quote.")
        for line in request.lines:
            try:
                quoted = quote.line(line.line_id)
            except KeyError:
                raise InvalidPricingInput(f"Line {line.line_id} is not part of the quote") from None
            if quoted.quantity != line.requested_quantity:
                raise InvalidPricingInput(
                    f"Line {line.line_id} was quoted for {quoted.quantity} units, not {line.requested_quantity}"
                )
            unit_price = Decimal(line.unit_price)
            if not unit_price.is_finite() or (
                unit_price.quantize(CENT, rounding=ROUND_HALF_UP) != quoted.unit_price_settlement
            ):
                raise InvalidPricingInput(
                    f"Line {line.line_id} was quoted at {quoted.unit_price_settlement}, not {line.unit_price}"
                )
        return quote

    def _require_new_sale_id(self, sale_id: str, event_count: int) -> None:
        for index in range(event_count):
            event_id = f"{sale_id}-{index + 1}"
            if self._ledger.has_event(event_id):
                raise ValueError(f"Sale id already used: {sale_id} (event {event_id} exists)")

    def _validate_allocations(self, request: SaleRequest) -> Dict[str, InventoryLot]:
        lines_by_id = {line.line_id: line for line in request.lines}
        for allocation in request.allocations:
            if allocation.line_id not in lines_by_id:
                raise AllocationMismatch(line_id=allocation.line_id, requested=0, selected=allocation.quantity)
        for line in request.lines:
            self._allocator.validate(line, request.allocations)

        lots = self._allocator.check_stock(request.allocations)
        for allocation in request.allocations:
            line = lines_by_id[allocation.line_id]
            if not line.descriptor.matches(lots[allocation.lot_id].descriptor):
                raise ValueError(f"Lot {allocation.lot_id} does not match the product of line {line.line_id}")
        return lots

    def _sale_events(
        self,
        request: SaleRequest,
        quote: SaleQuote,
        commit: CommitResult,
        sale_id: str,
        sold_at: datetime,
    ) -> List[SaleEvent]:
        by_line: Dict[str, List[int]] = {}
        for index, item in enumerate(commit.committed):
            by_line.setdefault(item.allocation.line_id, []).append(index)

        # Each line's shipping share is split again across its allocations.
        shipping_by_index: Dict[int, Decimal] = {}
        for line_id, indexes in by_line.items():
            shares = apportion_shipping(
                quote.line(line_id).shipping_settlement,
                [commit.committed[i].allocation.quantity for i in indexes],
            )
            shipping_by_index.update(zip(indexes, shares))

        events: List[SaleEvent] = []
        for index, item in enumerate(commit.committed):
            quoted = quote.line(item.allocation.line_id)
            quantity = item.allocation.quantity
            shipping = shipping_by_index[index]
            events.append(
                SaleEvent(
                    event_id=f"{sale_id}-{index + 1}",
                    sale_id=sale_id,
                    identity=item.lot.lot_id,
                    occurred_at=sold_at,
                    buyer=request.buyer,
                    quantity=quantity,
                    unit_price_jpy=quoted.unit_price_jpy,
                    unit_price_settlement=quoted.unit_price_settlement,
                    total_price_jpy=line_total(quoted.unit_price_jpy, quantity),
                    total_price_settlement=line_total(quoted.unit_price_settlement, quantity),
                    shipping_fee_jpy=to_ledger_currency(shipping, quote.rate.rate),
                    shipping_fee_settlement=shipping,
                    sales_channel=request.sales_channel,
                    staff=request.staff,
                    management_numbers=item.management_numbers,
                    product=item.lot.snapshot,
                    notes=request.memo,
                )
            )
        return events

    def _shipment(
        self,
        request: SaleRequest,
        commit: CommitResult,
        events: List[SaleEvent],
        sale_id: str,
        sold_at: datetime,
    ) -> OutboundShipment:
        deliveries: List[ShipmentDelivery] = []
        unlinked: List[str] = []
        for item, event in zip(commit.committed, events):
            if item.lot.external_id:
                deliveries.append(
                    ShipmentDelivery(
                        external_inventory_id=item.lot.external_id,
                        quantity=event.quantity,
                        unit_price=event.unit_price_jpy,
                        lot_id=item.lot.lot_id,
                    )
                )
            elif item.lot.lot_id not in unlinked:
                unlinked.append(item.lot.lot_id)

        memo_parts = [request.memo, request.sales_channel, request.shipping.tracking_number]
        return OutboundShipment(
            reference=new_shipment_reference(),
            sale_id=sale_id,
            customer_name=request.buyer.name,
            delivery_date=sold_at.date(),
            deliveries=tuple(deliveries),
            memo=" / ".join(part for part in memo_parts if part),
            unlinked_lot_ids=tuple(unlinked),
        )

    def finalize_sale(self, request: SaleRequest) -> SaleFinalizationResult:
        """
        Finalize a sale.

        Process:
        1. Resolve pricing (request quote, an issued quote id, or a fresh rate snapshot)
        2. Validate every allocation against its line and the current lots
        3. Commit all lot changes at once
        4. Append one sale event per allocation
        5. Push the packing slip; a failure is logged and reported as a warning

        Raises (before any mutation):
            InvalidPricingInput: On unusable prices or a quote that does not
                match the lines
            QuoteExpired: If the supplied quote is past its validity window
            AllocationMismatch: If a line's allocations do not sum to its quantity
            InsufficientStock: If a lot no longer covers its allocations
            ValueError: On an empty sale, a lot that does not match its line,
                or a sale id that already has events

        Example:
            result = finalizer.finalize_sale(SaleRequest(buyer=buyer, lines=[line], allocations=plan))
            if result.warnings:
                print("Completed with warnings:", result.warnings)
        """

        if not request.lines:
            raise ValueError("A sale needs at least one line")
        if len({line.line_id for line in request.lines}) != len(request.lines):
            raise ValueError("Sale line ids must be unique")

        now = utc_now()
        sale_id = request.sale_id or new_sale_id()
        sold_at = request.sold_at or now
        require_utc_timestamp("sold_at", sold_at)

        quote = self._resolve_quote(request, now)
        self._validate_allocations(request)
        self._require_new_sale_id(sale_id, len(request.allocations))

        commit = self._allocator.commit(request.allocations)
        if request.quote_id and request.quote is None:
            with self._issued_lock:
                self._issued.pop(request.quote_id, None)

        events = self._sale_events(request, quote, commit, sale_id, sold_at)
        for event in events:
            self._ledger.append_sale(event)

        warnings = [str(w) for w in commit.warnings]

        shipment = self._shipment(request, commit, events, sale_id, sold_at)
        outcome = self._sync.push_outbound(shipment)
        if outcome.status == SyncStatus.ERROR:
            warnings.append(f"External inventory sync failed: {outcome.message}")
        if shipment.unlinked_lot_ids and self._sync.enabled:
            warnings.append(
                "Lots not linked to the external inventory service: " + ", ".join(shipment.unlinked_lot_ids)
            )

        profit = profit_summary(sum(e.total_price_jpy for e in events), commit.total_cost_jpy)

        logger.info(
            "Sale finalized",
            extra={
                "sale_id": sale_id,
                "events": len(events),
                "revenue_jpy": profit.revenue_jpy,
                "cost_jpy": profit.cost_jpy,
                "sync_status": outcome.status.value,
                "warnings": len(warnings),
            },
        )

        return SaleFinalizationResult(
            sale_id=sale_id,
            events=events,
            quote=quote,
            profit=profit,
            warnings=warnings,
            sync=outcome,
        )


__all__ = [
    "SaleFinalizationResult",
    "SaleFinalizer",
    "SaleRequest",
    "new_sale_id",
]
