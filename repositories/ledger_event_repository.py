"""
Ledger event repository (persistence).

Append-only storage for purchase and sale events in the `ledger_events`
table. Rows are never updated or deleted; a duplicate event id is rejected by
the primary key and surfaced as a ValueError.
"""

from __future__ import annotations

from typing import Any, List, Mapping

from supabase import Client  # type: ignore[import-not-found]

from domain.ledger import PurchaseEvent
from domain.sale import SaleEvent
from domain.time import to_iso_utc
from repositories.serialization import (
    payload_to_purchase_event,
    payload_to_sale_event,
    purchase_event_to_payload,
    sale_event_to_payload,
)
from repositories.store import LedgerEventStore

# Supabase table name for ledger events.
# Keep this aligned with your database schema.
_EVENTS_TABLE: str = "ledger_events"

_PURCHASE = "purchase"
_SALE = "sale"


def _row_to_purchase(row: Mapping[str, Any]) -> PurchaseEvent:
    return payload_to_purchase_event(
        str(row["event_id"]), str(row["identity"]), row["occurred_at_utc"], row.get("payload") or {}
    )


def _row_to_sale(row: Mapping[str, Any]) -> SaleEvent:
    return payload_to_sale_event(
        str(row["event_id"]), str(row["identity"]), row["occurred_at_utc"], row.get("payload") or {}
    )


class SupabaseLedgerEventStore(LedgerEventStore):
    def __init__(self, client: Client):
        self._client = client

    def _insert(self, event_id: str, event_type: str, identity: str, occurred_at: Any, payload: dict) -> None:
        row = {
            "event_id": event_id,
            "event_type": event_type,
            "identity": identity,
            "occurred_at_utc": to_iso_utc(occurred_at, name="occurred_at"),
            "payload": payload,
        }
        response = self._client.table(_EVENTS_TABLE).insert(row).execute()
        error = getattr(response, "error", None)
        if error:
            if str(getattr(error, "code", None)) == "23505":
                raise ValueError(f"Ledger event already recorded: {event_id}") from None
            raise RuntimeError(f"Failed to append ledger event: {error}")

    def _select(self, event_type: str, identity: str) -> List[Mapping[str, Any]]:
        response = (
            self._client.table(_EVENTS_TABLE)
            .select("*")
            .eq("event_type", event_type)
            .eq("identity", identity)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to fetch ledger events: {error}")
        return getattr(response, "data", None) or []

    def append_purchase(self, event: PurchaseEvent) -> None:
        self._insert(event.event_id, _PURCHASE, event.identity, event.occurred_at, purchase_event_to_payload(event))

    def append_sale(self, event: SaleEvent) -> None:
        self._insert(event.event_id, _SALE, event.identity, event.occurred_at, sale_event_to_payload(event))

    def has_event(self, event_id: str) -> bool:
        response = (
            self._client.table(_EVENTS_TABLE).select("event_id").eq("event_id", event_id).limit(1).execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to check ledger event: {error}")
        return bool(getattr(response, "data", None))

    def purchases_for(self, identity: str) -> List[PurchaseEvent]:
        return [_row_to_purchase(row) for row in self._select(_PURCHASE, identity)]

    def sales_for(self, identity: str) -> List[SaleEvent]:
        return [_row_to_sale(row) for row in self._select(_SALE, identity)]

    def identities(self) -> List[str]:
        response = (
            self._client.table(_EVENTS_TABLE).select("identity").order("recorded_at_utc").execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to list ledger identities: {error}")
        seen: dict[str, None] = {}
        for row in getattr(response, "data", None) or []:
            seen.setdefault(str(row["identity"]), None)
        return list(seen)


__all__ = ["SupabaseLedgerEventStore"]
