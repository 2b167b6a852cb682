"""
Remote inventory import.

Pulls every record from the external inventory service and registers the ones
the engine does not know yet as `zaico_import` lots, each with its purchase
event. Existing lots are never modified here; linked lots whose remote record
disappeared are only reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from domain.lot import InventoryLot, LotSource, new_lot_id
from domain.product import ProductDescriptor, ProductType
from domain.sync import RemoteInventoryItem
from domain.time import utc_now
from repositories.product_master_repository import SOFTWARE_CATEGORY
from repositories.store import LotStore
from services.ledger_service import LedgerAggregator
from services.sync_service import ExternalSyncAdapter

logger = logging.getLogger(__name__)

IMPORT_PERFORMER = "zaico-import"


@dataclass(frozen=True, slots=True)
class ImportReport:
    fetched: int
    imported: int
    skipped_zero_quantity: int
    skipped_existing: int
    skipped_out_of_range: int
    lots: List[InventoryLot] = field(default_factory=list)
    missing_remote: List[str] = field(default_factory=list)


def import_event_id(remote_id: str) -> str:
    return f"zaico-import-{remote_id}"


def _in_date_range(item: RemoteInventoryItem, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from is None and date_to is None:
        return True
    if item.created_at is None:
        return False
    day = item.created_at.date()
    if date_from is not None and day < date_from:
        return False
    if date_to is not None and day > date_to:
        return False
    return True


def lot_from_remote(item: RemoteInventoryItem) -> InventoryLot:
    """Build an unranked lot from a remote record; the title stands in for every product field."""

    is_software = item.category == SOFTWARE_CATEGORY
    name = item.title or f"zaico-{item.remote_id}"
    descriptor = ProductDescriptor(
        product_type=ProductType.SOFTWARE if is_software else ProductType.CONSOLE,
        console=name,
        console_label=name,
        software_name=name if is_software else "",
    )
    return InventoryLot(
        lot_id=new_lot_id(),
        descriptor=descriptor,
        rank=None,
        acquisition_unit_price=int(item.purchase_price.quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
        total_quantity=item.quantity,
        registered_at=item.created_at or utc_now(),
        source=LotSource.ZAICO_IMPORT,
        management_numbers=(f"ZAICO-{item.remote_id}",),
        external_id=item.remote_id,
        title=item.title,
    )


class InventoryImportService:
    def __init__(self, lots: LotStore, ledger: LedgerAggregator, sync: ExternalSyncAdapter):
        self._lots = lots
        self._ledger = ledger
        self._sync = sync

    def import_remote_inventory(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        max_pages: Optional[int] = None,
    ) -> ImportReport:
        """
        Import remote inventory records as local lots.

        Skips records with no stock, records already linked to a lot (or
        imported before and since sold out), and, when a date range is
        given, records created outside it.

        Raises:
            SyncFailure: If the pull fails after retries (nothing is imported)
        """

        items = self._sync.pull(max_pages=max_pages)

        imported: List[InventoryLot] = []
        zero = existing = out_of_range = 0
        for item in items:
            if item.quantity <= 0:
                zero += 1
                continue
            if not _in_date_range(item, date_from, date_to):
                out_of_range += 1
                continue
            event_id = import_event_id(item.remote_id)
            if self._lots.find_by_external_id(item.remote_id) is not None or self._ledger.has_event(event_id):
                existing += 1
                continue

            lot = lot_from_remote(item)
            self._lots.add(lot)
            self._ledger.append_purchase(lot, performer=IMPORT_PERFORMER, event_id=event_id)
            imported.append(lot)

        remote_ids = {item.remote_id for item in items}
        missing_remote = sorted(
            lot.lot_id
            for lot in self._lots.list_lots()
            if lot.external_id and lot.external_id not in remote_ids
        )

        report = ImportReport(
            fetched=len(items),
            imported=len(imported),
            skipped_zero_quantity=zero,
            skipped_existing=existing,
            skipped_out_of_range=out_of_range,
            lots=imported,
            missing_remote=missing_remote if max_pages is None else [],
        )
        logger.info(
            "Remote inventory imported",
            extra={
                "fetched": report.fetched,
                "imported": report.imported,
                "skipped_zero_quantity": zero,
                "skipped_existing": existing,
                "skipped_out_of_range": out_of_range,
                "missing_remote": len(report.missing_remote),
            },
        )
        return report


__all__ = ["ImportReport", "InventoryImportService", "import_event_id", "lot_from_remote"]
