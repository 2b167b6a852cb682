"""
Lot repository (persistence).

Supabase-backed LotStore. This module contains no allocation rules; it only
stores and fetches lots. Multi-lot quantity changes go through the
`apply_lot_changes` PostgreSQL function so a commit lands as one transaction.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from supabase import Client  # type: ignore[import-not-found]

from domain.lot import InventoryLot, LotSource
from domain.rank import ConditionRank
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.serialization import (
    counterpart_to_dict,
    descriptor_to_dict,
    dict_to_counterpart,
    dict_to_descriptor,
    dict_to_supplier,
    supplier_to_dict,
)
from repositories.store import LotStore

# Supabase table name for inventory lots.
# Keep this aligned with your database schema.
_LOTS_TABLE: str = "inventory_lots"
_APPLY_CHANGES_RPC: str = "apply_lot_changes"


def _json_column(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value) if value else None
    return value


def _row_to_lot(row: Mapping[str, Any]) -> InventoryLot:
    """Convert a Supabase row into an InventoryLot."""

    return InventoryLot(
        lot_id=str(row["lot_id"]),
        descriptor=dict_to_descriptor(_json_column(row.get("descriptor")) or {}),
        rank=ConditionRank.parse(row.get("rank")),
        acquisition_unit_price=int(row.get("acquisition_unit_price") or 0),
        total_quantity=int(row.get("total_quantity") or 0),
        allocated_quantity=int(row.get("allocated_quantity") or 0),
        registered_at=parse_utc_datetime(row["registered_at_utc"]),
        source=LotSource(str(row.get("source") or LotSource.CUSTOMER.value)),
        management_numbers=tuple(str(n) for n in _json_column(row.get("management_numbers")) or ()),
        external_id=row.get("external_id") or None,
        counterpart=dict_to_counterpart(_json_column(row.get("counterpart"))),
        supplier=dict_to_supplier(_json_column(row.get("supplier"))),
        application_number=str(row.get("application_number") or ""),
        title=str(row.get("title") or ""),
    )


def _lot_to_row(lot: InventoryLot) -> Dict[str, Any]:
    return {
        "lot_id": lot.lot_id,
        "descriptor": descriptor_to_dict(lot.descriptor),
        "rank": lot.rank.value if lot.rank else None,
        "acquisition_unit_price": lot.acquisition_unit_price,
        "total_quantity": lot.total_quantity,
        "allocated_quantity": lot.allocated_quantity,
        "registered_at_utc": to_iso_utc(lot.registered_at, name="registered_at"),
        "source": lot.source.value,
        "management_numbers": list(lot.management_numbers),
        "external_id": lot.external_id,
        "counterpart": counterpart_to_dict(lot.counterpart),
        "supplier": supplier_to_dict(lot.supplier),
        "application_number": lot.application_number,
        "title": lot.title,
    }


def _raise_on_error(response: Any, action: str) -> List[Mapping[str, Any]]:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


class SupabaseLotStore(LotStore):
    def __init__(self, client: Client):
        self._client = client

    def get(self, lot_id: str) -> Optional[InventoryLot]:
        response = self._client.table(_LOTS_TABLE).select("*").eq("lot_id", lot_id).limit(1).execute()
        rows = _raise_on_error(response, "fetch lot")
        return _row_to_lot(rows[0]) if rows else None

    def list_lots(self) -> List[InventoryLot]:
        response = self._client.table(_LOTS_TABLE).select("*").order("registered_at_utc").execute()
        return [_row_to_lot(row) for row in _raise_on_error(response, "list lots")]

    def add(self, lot: InventoryLot) -> None:
        response = self._client.table(_LOTS_TABLE).insert(_lot_to_row(lot)).execute()
        error = getattr(response, "error", None)
        if error:
            if str(getattr(error, "code", None)) == "23505":
                raise ValueError(f"Lot already exists: {lot.lot_id}") from None
            raise RuntimeError(f"Failed to create lot: {error}")

    def apply_changes(self, updated: Sequence[InventoryLot], removed: Sequence[str]) -> None:
        """
        Write updated lots and delete removed ones in one database transaction.

        The PostgreSQL function raises (and rolls back) when any referenced lot
        no longer exists.
        """

        response = self._client.rpc(
            _APPLY_CHANGES_RPC,
            {
                "p_updated": [_lot_to_row(lot) for lot in updated],
                "p_removed": list(removed),
            },
        ).execute()
        _raise_on_error(response, "apply lot changes")

    def link_external_id(self, lot_id: str, external_id: str) -> InventoryLot:
        response = (
            self._client.table(_LOTS_TABLE)
            .update({"external_id": external_id})
            .eq("lot_id", lot_id)
            .execute()
        )
        rows = _raise_on_error(response, "link external id")
        if not rows:
            raise ValueError(f"Unknown lot: {lot_id}")
        return _row_to_lot(rows[0])

    def find_by_external_id(self, external_id: str) -> Optional[InventoryLot]:
        response = (
            self._client.table(_LOTS_TABLE).select("*").eq("external_id", external_id).limit(1).execute()
        )
        rows = _raise_on_error(response, "fetch lot by external id")
        return _row_to_lot(rows[0]) if rows else None


__all__ = ["SupabaseLotStore"]
