"""
Domain: sale lines, allocations and sale events.

Rules captured here:
- A SaleLine is what the buyer asked for, independent of which lots fill it.
- An Allocation binds part of a line to one lot; quantities are always positive.
- A SaleEvent is the immutable record of one finalized disposition of units
  from one lot. It is never edited afterwards; corrections are recorded as new
  compensating events carrying a negative quantity.

This module captures sale events. Allocation decisions and enforcement live in
the allocation service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from .counterpart import Buyer
from .product import ProductDescriptor, ProductSnapshot
from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class SaleLine:
    line_id: str
    descriptor: ProductDescriptor
    requested_quantity: int
    unit_price: Decimal  # settlement currency

    def __post_init__(self) -> None:
        if self.requested_quantity <= 0:
            raise ValueError("requested_quantity must be > 0")


@dataclass(frozen=True, slots=True)
class Allocation:
    line_id: str
    lot_id: str
    quantity: int

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("Allocation quantity must be > 0")


@dataclass(frozen=True, slots=True)
class ShippingTerms:
    fee: Decimal = Decimal("0.00")  # settlement currency, whole shipment
    country: str = ""
    delivery_days: str = ""
    tracking_number: str = ""


@dataclass(frozen=True, slots=True)
class SaleEvent:
    """
    Immutable record of units leaving one lot in one sale.

    Totals are always unit price x quantity in the same currency; the ledger
    currency unit price is converted from the settlement unit price, never
    from a settlement total.
    """

    event_id: str
    sale_id: str
    identity: str  # lot id, or legacy item id
    occurred_at: datetime
    buyer: Buyer
    quantity: int
    unit_price_jpy: int
    unit_price_settlement: Decimal
    total_price_jpy: int
    total_price_settlement: Decimal
    shipping_fee_jpy: int = 0
    shipping_fee_settlement: Decimal = Decimal("0.00")
    sales_channel: str = ""
    staff: str = ""
    management_numbers: Tuple[str, ...] = ()
    product: Optional[ProductSnapshot] = None
    notes: str = ""
    is_correction: bool = False

    def __post_init__(self) -> None:
        require_utc_timestamp("occurred_at", self.occurred_at)
        if self.quantity == 0:
            raise ValueError("SaleEvent quantity must be non-zero")
        if self.quantity < 0 and not self.is_correction:
            raise ValueError("Negative quantities are only allowed on correction events")

    @property
    def descriptor(self) -> Optional[ProductDescriptor]:
        return self.product.descriptor if self.product is not None else None
