"""
Store interfaces and in-memory implementations.

Components never touch storage directly; each receives the store it owns:
- LotStore: inventory lots and their quantities (pure data access, no rules).
- LedgerEventStore: append-only purchase and sale events.
- SyncLogStore: append-only external sync activity log.

Every store must tolerate being empty at startup. The in-memory stores keep
insertion order, which is the order `list_*` methods return, and guard their
state with a lock so a single `apply_changes` call is all-or-nothing.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from domain.ledger import PurchaseEvent
from domain.lot import InventoryLot
from domain.sale import SaleEvent
from domain.sync import SyncActivity, SyncStatus


class LotStore(ABC):
    @abstractmethod
    def get(self, lot_id: str) -> Optional[InventoryLot]:
        ...

    @abstractmethod
    def list_lots(self) -> List[InventoryLot]:
        ...

    @abstractmethod
    def add(self, lot: InventoryLot) -> None:
        ...

    @abstractmethod
    def apply_changes(self, updated: Sequence[InventoryLot], removed: Sequence[str]) -> None:
        """Persist quantity changes for several lots as one unit of work."""

    @abstractmethod
    def link_external_id(self, lot_id: str, external_id: str) -> InventoryLot:
        ...

    def find_by_external_id(self, external_id: str) -> Optional[InventoryLot]:
        return next((lot for lot in self.list_lots() if lot.external_id == external_id), None)


class LedgerEventStore(ABC):
    @abstractmethod
    def append_purchase(self, event: PurchaseEvent) -> None:
        ...

    @abstractmethod
    def append_sale(self, event: SaleEvent) -> None:
        ...

    @abstractmethod
    def has_event(self, event_id: str) -> bool:
        ...

    @abstractmethod
    def purchases_for(self, identity: str) -> List[PurchaseEvent]:
        ...

    @abstractmethod
    def sales_for(self, identity: str) -> List[SaleEvent]:
        ...

    @abstractmethod
    def identities(self) -> List[str]:
        """Every identity with at least one event, in first-seen order."""


class SyncLogStore(ABC):
    @abstractmethod
    def append(self, activity: SyncActivity) -> None:
        ...

    @abstractmethod
    def list_activity(self, status: Optional[SyncStatus] = None, limit: Optional[int] = None) -> List[SyncActivity]:
        """Most recent entries last."""


class InMemoryLotStore(LotStore):
    def __init__(self, lots: Iterable[InventoryLot] = ()):
        self._lock = threading.Lock()
        self._lots: Dict[str, InventoryLot] = {}
        for lot in lots:
            self.add(lot)

    def get(self, lot_id: str) -> Optional[InventoryLot]:
        with self._lock:
            return self._lots.get(lot_id)

    def list_lots(self) -> List[InventoryLot]:
        with self._lock:
            return list(self._lots.values())

    def add(self, lot: InventoryLot) -> None:
        with self._lock:
            if lot.lot_id in self._lots:
                raise ValueError(f"Lot already exists: {lot.lot_id}")
            self._lots[lot.lot_id] = lot

    def apply_changes(self, updated: Sequence[InventoryLot], removed: Sequence[str]) -> None:
        with self._lock:
            missing = [lot.lot_id for lot in updated if lot.lot_id not in self._lots]
            missing += [lot_id for lot_id in removed if lot_id not in self._lots]
            if missing:
                raise ValueError(f"Unknown lot(s): {', '.join(missing)}")
            for lot in updated:
                self._lots[lot.lot_id] = lot
            for lot_id in removed:
                del self._lots[lot_id]

    def link_external_id(self, lot_id: str, external_id: str) -> InventoryLot:
        with self._lock:
            lot = self._lots.get(lot_id)
            if lot is None:
                raise ValueError(f"Unknown lot: {lot_id}")
            linked = replace(lot, external_id=external_id)
            self._lots[lot_id] = linked
            return linked


class InMemoryLedgerEventStore(LedgerEventStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._purchases: List[PurchaseEvent] = []
        self._sales: List[SaleEvent] = []
        self._event_ids: set[str] = set()
        self._identities: Dict[str, None] = {}

    def _register(self, event_id: str, identity: str) -> None:
        if event_id in self._event_ids:
            raise ValueError(f"Ledger event already recorded: {event_id}")
        self._event_ids.add(event_id)
        self._identities.setdefault(identity, None)

    def append_purchase(self, event: PurchaseEvent) -> None:
        with self._lock:
            self._register(event.event_id, event.identity)
            self._purchases.append(event)

    def append_sale(self, event: SaleEvent) -> None:
        with self._lock:
            self._register(event.event_id, event.identity)
            self._sales.append(event)

    def has_event(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._event_ids

    def purchases_for(self, identity: str) -> List[PurchaseEvent]:
        with self._lock:
            return [e for e in self._purchases if e.identity == identity]

    def sales_for(self, identity: str) -> List[SaleEvent]:
        with self._lock:
            return [e for e in self._sales if e.identity == identity]

    def identities(self) -> List[str]:
        with self._lock:
            return list(self._identities)


class InMemorySyncLogStore(SyncLogStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: List[SyncActivity] = []

    def append(self, activity: SyncActivity) -> None:
        with self._lock:
            self._entries.append(activity)

    def list_activity(self, status: Optional[SyncStatus] = None, limit: Optional[int] = None) -> List[SyncActivity]:
        with self._lock:
            entries = [e for e in self._entries if status is None or e.status == status]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries


__all__ = [
    "InMemoryLedgerEventStore",
    "InMemoryLotStore",
    "InMemorySyncLogStore",
    "LedgerEventStore",
    "LotStore",
    "SyncLogStore",
]
