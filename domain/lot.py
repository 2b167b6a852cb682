"""
Domain: inventory lots.

A lot is a physical batch of identical-condition units sharing a rank and an
acquisition price.

Invariants enforced here:
- 0 <= allocated <= total at all times.
- available = total - allocated is never negative.
- Management numbers handed to a sale are drawn from the front of the lot's
  list and removed from it, so a lot never assigns more numbers than it holds.

Lots are immutable; quantity changes return a new instance. Only the
allocator's commit step is allowed to persist a changed lot.

This module contains only pure domain entities/value objects: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple
from uuid import uuid4

from .counterpart import Counterpart, Supplier
from .product import ProductDescriptor, ProductSnapshot
from .rank import ConditionRank
from .time import require_utc_timestamp


class LotSource(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    ZAICO_IMPORT = "zaico_import"


def new_lot_id() -> str:
    return f"LOT-{uuid4().hex[:12].upper()}"


@dataclass(frozen=True, slots=True)
class InventoryLot:
    lot_id: str
    descriptor: ProductDescriptor
    rank: Optional[ConditionRank]
    acquisition_unit_price: int  # ledger currency (JPY), whole units
    total_quantity: int
    registered_at: datetime
    source: LotSource
    allocated_quantity: int = 0
    management_numbers: Tuple[str, ...] = ()
    external_id: Optional[str] = None
    counterpart: Optional[Counterpart] = None
    supplier: Optional[Supplier] = None
    application_number: str = ""
    title: str = ""

    def __post_init__(self) -> None:
        require_utc_timestamp("registered_at", self.registered_at)
        if self.total_quantity < 0:
            raise ValueError("total_quantity must be >= 0")
        if not 0 <= self.allocated_quantity <= self.total_quantity:
            raise ValueError("allocated_quantity must satisfy 0 <= allocated <= total")
        if self.acquisition_unit_price < 0:
            raise ValueError("acquisition_unit_price must be >= 0")

    @property
    def available_quantity(self) -> int:
        return self.total_quantity - self.allocated_quantity

    @property
    def is_depleted(self) -> bool:
        return self.total_quantity == 0

    @property
    def snapshot(self) -> ProductSnapshot:
        return ProductSnapshot(descriptor=self.descriptor, rank=self.rank, title=self.title)

    def consume(self, quantity: int) -> tuple["InventoryLot", Tuple[str, ...], int]:
        """
        Remove `quantity` sold units from the lot.

        Returns (updated_lot, consumed_management_numbers, shortfall) where
        shortfall counts units that could not be paired with a management
        number. Raises ValueError when quantity exceeds the available units.
        """

        if quantity <= 0:
            raise ValueError("quantity must be > 0")
        if quantity > self.available_quantity:
            raise ValueError(
                f"Cannot consume {quantity} units from lot {self.lot_id}: "
                f"only {self.available_quantity} available"
            )

        numbers = self.management_numbers[:quantity]
        shortfall = quantity - len(numbers)
        updated = replace(
            self,
            total_quantity=self.total_quantity - quantity,
            management_numbers=self.management_numbers[len(numbers):],
        )
        return updated, numbers, shortfall

    def with_external_id(self, external_id: str) -> "InventoryLot":
        return replace(self, external_id=external_id)
