"""
Domain: external inventory synchronization records.

The activity log is append-only. Every push or pull attempt against the
external inventory service leaves exactly one entry, which is what operators
use to reconcile local state after a partial failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from .time import require_utc_timestamp


class SyncStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class SyncActivity:
    timestamp: datetime
    action: str
    status: SyncStatus
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


@dataclass(frozen=True, slots=True)
class ShipmentDelivery:
    external_inventory_id: str
    quantity: int
    unit_price: int  # ledger currency
    lot_id: str = ""


@dataclass(frozen=True, slots=True)
class OutboundShipment:
    """
    One packing slip for the external service.

    `reference` is generated locally and doubles as the idempotency key, so a
    retried create never produces a second remote slip.
    """

    reference: str
    sale_id: str
    customer_name: str
    delivery_date: date
    deliveries: Tuple[ShipmentDelivery, ...]
    memo: str = ""
    unlinked_lot_ids: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SyncOutcome:
    action: str
    status: SyncStatus
    reference: str = ""
    remote_id: Optional[str] = None
    message: str = ""
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.SUCCESS


@dataclass(frozen=True, slots=True)
class RemoteInventoryItem:
    """Inventory row as returned by the external service."""

    remote_id: str
    title: str
    quantity: int
    category: str = ""
    state: str = ""
    place: str = ""
    memo: str = ""
    purchase_price: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
