"""
Lot intake service.

Registers newly acquired stock: the lot itself, its purchase event in the
ledger, and the matching record in the external inventory service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from domain.counterpart import Counterpart, Supplier
from domain.ledger import PurchaseEvent
from domain.lot import InventoryLot, LotSource, new_lot_id
from domain.product import ProductDescriptor
from domain.rank import ConditionRank
from domain.sync import SyncOutcome
from domain.time import utc_now
from repositories.product_master_repository import with_labels
from repositories.store import LotStore
from services.ledger_service import LedgerAggregator
from services.sync_service import ExternalSyncAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LotIntake:
    descriptor: ProductDescriptor
    quantity: int
    acquisition_unit_price: int
    source: LotSource = LotSource.CUSTOMER
    rank: Optional[ConditionRank] = None
    management_numbers: Sequence[str] = ()
    counterpart: Optional[Counterpart] = None
    supplier: Optional[Supplier] = None
    application_number: str = ""
    title: str = ""
    performer: str = ""
    memo: str = ""
    registered_at: Optional[datetime] = None
    lot_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LotIntakeResult:
    lot: InventoryLot
    purchase: PurchaseEvent
    sync: SyncOutcome
    missing_fields: List[str] = field(default_factory=list)


class LotIntakeService:
    def __init__(self, lots: LotStore, ledger: LedgerAggregator, sync: ExternalSyncAdapter):
        self._lots = lots
        self._ledger = ledger
        self._sync = sync

    def register_lot(self, intake: LotIntake) -> LotIntakeResult:
        """
        Register a lot and record its purchase.

        The external create is best-effort: on success the returned remote id
        is linked to the lot, on failure the lot stays unlinked and the
        activity log holds the error.

        Compliance gaps (e.g. a customer buyback without the seller's
        occupation) do not block intake; they are returned as missing fields.

        Raises:
            ValueError: On a non-positive quantity, a negative price, more
                management numbers than units, or a duplicate lot id
        """

        if intake.quantity <= 0:
            raise ValueError("quantity must be > 0")
        numbers = tuple(n.strip() for n in intake.management_numbers if n and n.strip())
        if len(numbers) > intake.quantity:
            raise ValueError(f"{len(numbers)} management numbers given for {intake.quantity} units")
        if len(set(numbers)) != len(numbers):
            raise ValueError("management numbers must be unique")

        lot = InventoryLot(
            lot_id=intake.lot_id or new_lot_id(),
            descriptor=with_labels(intake.descriptor),
            rank=intake.rank,
            acquisition_unit_price=intake.acquisition_unit_price,
            total_quantity=intake.quantity,
            registered_at=intake.registered_at or utc_now(),
            source=intake.source,
            management_numbers=numbers,
            counterpart=intake.counterpart,
            supplier=intake.supplier,
            application_number=intake.application_number,
            title=intake.title,
        )
        self._lots.add(lot)
        purchase = self._ledger.append_purchase(lot, performer=intake.performer)

        outcome = self._sync.push_inventory_create(lot, memo=intake.memo)
        if outcome.ok and outcome.remote_id:
            lot = self._lots.link_external_id(lot.lot_id, outcome.remote_id)

        missing: List[str] = []
        record = self._ledger.rebuild(lot.lot_id)
        if record is not None:
            missing = [m.value for m in self._ledger.row_for(record).missing_fields]

        logger.info(
            "Lot registered",
            extra={
                "lot_id": lot.lot_id,
                "quantity": lot.total_quantity,
                "source": lot.source.value,
                "external_id": lot.external_id,
                "missing_fields": missing,
            },
        )
        return LotIntakeResult(lot=lot, purchase=purchase, sync=outcome, missing_fields=missing)


__all__ = ["LotIntake", "LotIntakeResult", "LotIntakeService"]
