"""
External inventory synchronization service.

Keeps the Zaico inventory service consistent with local state, best-effort:
- Pushes (packing slips, inventory creates and quantity updates) never raise.
  Every push ends in exactly one activity-log entry: `success`, `error`, or
  `skipped` when there is nothing the remote side knows about.
- Pulls paginate exhaustively and raise SyncFailure once retries run out.
- Retryable failures (connection errors, timeouts, HTTP 429/5xx) are retried
  with exponential backoff: base_delay x 2**attempt, for a bounded number of
  attempts. Other failures are not retried.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar
from uuid import uuid4

from domain.errors import SyncFailure
from domain.lot import InventoryLot
from domain.sync import OutboundShipment, RemoteInventoryItem, SyncActivity, SyncOutcome, SyncStatus
from domain.time import utc_now
from repositories.product_master_repository import category_for
from repositories.store import SyncLogStore
from repositories.zaico_client import (
    ZaicoApiError,
    ZaicoClient,
    lot_to_inventory_payload,
    parse_remote_item,
    shipment_to_packing_slip_payload,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTION_PACKING_SLIP = "create_packing_slip"
ACTION_INVENTORY_CREATE = "create_inventory"
ACTION_INVENTORY_UPDATE = "update_inventory_quantity"
ACTION_PULL = "pull_inventories"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the zero-based `attempt` failed."""
        return self.base_delay_seconds * (2**attempt)


def new_shipment_reference() -> str:
    return f"SLIP-{uuid4().hex[:16].upper()}"


class ExternalSyncAdapter:
    """
    Push/pull bridge to the external inventory service.

    Args:
        client: Zaico HTTP client, or None when sync is not configured (every
            push is then logged as skipped and pulls fail)
        activity_log: Append-only sync activity store
        retry: Retry policy for remote calls
        page_size: Page size for pulls; a shorter page ends the pull
        page_delay_seconds: Fixed pause between pulled pages
        sleep: Injected for tests
    """

    def __init__(
        self,
        client: Optional[ZaicoClient],
        activity_log: SyncLogStore,
        retry: RetryPolicy = RetryPolicy(),
        page_size: int = 1000,
        page_delay_seconds: float = 0.3,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if retry.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._client = client
        self._log = activity_log
        self._retry = retry
        self._page_size = page_size
        self._page_delay = page_delay_seconds
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def log_sync_activity(self, action: str, status: SyncStatus, details: Optional[Mapping[str, Any]] = None) -> SyncActivity:
        activity = SyncActivity(timestamp=utc_now(), action=action, status=status, details=dict(details or {}))
        self._log.append(activity)
        log = logger.warning if status == SyncStatus.ERROR else logger.info
        log("Sync activity", extra={"action": action, "status": status.value, "details": activity.details})
        return activity

    def activity(self, status: Optional[SyncStatus] = None, limit: Optional[int] = None) -> List[SyncActivity]:
        return self._log.list_activity(status=status, limit=limit)

    # ------------------------------------------------------------------
    # Retry core
    # ------------------------------------------------------------------

    def _call_with_retry(self, action: str, call: Callable[[], T]) -> tuple[T, int]:
        """
        Run `call`, retrying retryable failures.

        Returns (result, attempts). Raises SyncFailure with the last error once
        attempts run out or on a non-retryable error.
        """

        attempt = 0
        while True:
            try:
                return call(), attempt + 1
            except ZaicoApiError as e:
                last_attempt = attempt + 1 >= self._retry.max_attempts
                if not e.retryable or last_attempt:
                    raise SyncFailure(action, str(e), attempts=attempt + 1, status_code=e.status_code) from e
                delay = self._retry.delay_for(attempt)
                logger.info(
                    "Retrying sync call",
                    extra={"action": action, "attempt": attempt + 1, "delay_seconds": delay, "error": str(e)},
                )
                self._sleep(delay)
                attempt += 1

    def _push(self, action: str, reference: str, details: Dict[str, Any], call: Callable[[], Optional[str]]) -> SyncOutcome:
        if self._client is None:
            self.log_sync_activity(action, SyncStatus.SKIPPED, {**details, "reason": "sync not configured"})
            return SyncOutcome(action=action, status=SyncStatus.SKIPPED, reference=reference, message="sync not configured")

        try:
            remote_id, attempts = self._call_with_retry(action, call)
        except SyncFailure as e:
            self.log_sync_activity(
                action,
                SyncStatus.ERROR,
                {**details, "error": str(e), "attempts": e.attempts, "status_code": e.status_code},
            )
            return SyncOutcome(
                action=action, status=SyncStatus.ERROR, reference=reference, message=str(e), attempts=e.attempts
            )

        self.log_sync_activity(action, SyncStatus.SUCCESS, {**details, "remote_id": remote_id, "attempts": attempts})
        return SyncOutcome(
            action=action, status=SyncStatus.SUCCESS, reference=reference, remote_id=remote_id or None, attempts=attempts
        )

    # ------------------------------------------------------------------
    # Pushes
    # ------------------------------------------------------------------

    def push_outbound(self, shipment: OutboundShipment) -> SyncOutcome:
        """
        Create the packing slip for a finalized sale.

        Idempotent: the shipment reference is sent as the idempotency key, so a
        retried create cannot produce a second remote slip. Never raises.
        """

        details: Dict[str, Any] = {
            "sale_id": shipment.sale_id,
            "reference": shipment.reference,
            "deliveries": len(shipment.deliveries),
        }
        if shipment.unlinked_lot_ids:
            details["unlinked_lot_ids"] = list(shipment.unlinked_lot_ids)

        if not shipment.deliveries:
            self.log_sync_activity(
                ACTION_PACKING_SLIP, SyncStatus.SKIPPED, {**details, "reason": "no lots linked to the external service"}
            )
            return SyncOutcome(
                action=ACTION_PACKING_SLIP,
                status=SyncStatus.SKIPPED,
                reference=shipment.reference,
                message="no lots linked to the external service",
            )

        payload = shipment_to_packing_slip_payload(shipment)
        client = self._client
        return self._push(
            ACTION_PACKING_SLIP,
            shipment.reference,
            details,
            lambda: client.create_packing_slip(payload, idempotency_key=shipment.reference) if client else None,
        )

    def push_inventory_create(self, lot: InventoryLot, memo: str = "") -> SyncOutcome:
        """Create the remote inventory record for a newly registered lot. Never raises."""

        details = {"lot_id": lot.lot_id, "quantity": lot.total_quantity}
        if lot.external_id:
            self.log_sync_activity(ACTION_INVENTORY_CREATE, SyncStatus.SKIPPED, {**details, "reason": "already linked"})
            return SyncOutcome(
                action=ACTION_INVENTORY_CREATE,
                status=SyncStatus.SKIPPED,
                reference=lot.lot_id,
                remote_id=lot.external_id,
                message="already linked",
            )

        payload = lot_to_inventory_payload(lot, category=category_for(lot.descriptor), memo=memo)
        client = self._client
        return self._push(
            ACTION_INVENTORY_CREATE,
            lot.lot_id,
            details,
            lambda: client.create_inventory(payload, idempotency_key=f"inventory-{lot.lot_id}") if client else None,
        )

    def push_inventory_quantity(self, lot: InventoryLot) -> SyncOutcome:
        """Overwrite the remote record with the lot's current quantity. Never raises."""

        details = {"lot_id": lot.lot_id, "quantity": lot.total_quantity}
        if not lot.external_id:
            self.log_sync_activity(ACTION_INVENTORY_UPDATE, SyncStatus.SKIPPED, {**details, "reason": "lot not linked"})
            return SyncOutcome(
                action=ACTION_INVENTORY_UPDATE, status=SyncStatus.SKIPPED, reference=lot.lot_id, message="lot not linked"
            )

        external_id = lot.external_id
        payload = lot_to_inventory_payload(lot, category=category_for(lot.descriptor))
        client = self._client

        def call() -> Optional[str]:
            if client is None:
                return None
            client.update_inventory(external_id, payload)
            return external_id

        return self._push(ACTION_INVENTORY_UPDATE, lot.lot_id, {**details, "external_id": external_id}, call)

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull(self, max_pages: Optional[int] = None) -> List[RemoteInventoryItem]:
        """
        Fetch every remote inventory record.

        Pages are requested until one comes back shorter than the page size
        (or `max_pages` is reached), pausing a fixed delay between pages.

        Raises:
            SyncFailure: If sync is not configured, or a page fails after retries
        """

        if self._client is None:
            raise SyncFailure(ACTION_PULL, "sync not configured", attempts=0)
        if max_pages is not None and max_pages < 1:
            raise ValueError("max_pages must be >= 1")

        client = self._client
        items: List[RemoteInventoryItem] = []
        page = 1
        try:
            while True:
                rows, _ = self._call_with_retry(
                    ACTION_PULL, lambda: client.get_inventories(page=page, per_page=self._page_size)
                )
                items.extend(parse_remote_item(row) for row in rows)
                if len(rows) < self._page_size or (max_pages is not None and page >= max_pages):
                    break
                page += 1
                self._sleep(self._page_delay)
        except SyncFailure as e:
            self.log_sync_activity(ACTION_PULL, SyncStatus.ERROR, {"page": page, "error": str(e), "attempts": e.attempts})
            raise

        self.log_sync_activity(ACTION_PULL, SyncStatus.SUCCESS, {"pages": page, "items": len(items)})
        return items


__all__ = [
    "ACTION_INVENTORY_CREATE",
    "ACTION_INVENTORY_UPDATE",
    "ACTION_PACKING_SLIP",
    "ACTION_PULL",
    "ExternalSyncAdapter",
    "RetryPolicy",
    "new_shipment_reference",
]
