"""
Sync activity log repository (persistence).

Append-only; entries are never trimmed so an operator can reconcile any
partial failure after the fact.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.sync import SyncActivity, SyncStatus
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.store import SyncLogStore

# Supabase table name for the sync activity log.
# Keep this aligned with your database schema.
_SYNC_LOG_TABLE: str = "sync_activity_log"


def _row_to_activity(row: Mapping[str, Any]) -> SyncActivity:
    return SyncActivity(
        timestamp=parse_utc_datetime(row["timestamp_utc"]),
        action=str(row["action"]),
        status=SyncStatus(str(row["status"])),
        details=row.get("details") or {},
    )


class SupabaseSyncLogStore(SyncLogStore):
    def __init__(self, client: Client):
        self._client = client

    def append(self, activity: SyncActivity) -> None:
        payload = {
            "timestamp_utc": to_iso_utc(activity.timestamp, name="timestamp"),
            "action": activity.action,
            "status": activity.status.value,
            "details": dict(activity.details),
        }
        response = self._client.table(_SYNC_LOG_TABLE).insert(payload).execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to append sync activity: {error}")

    def list_activity(self, status: Optional[SyncStatus] = None, limit: Optional[int] = None) -> List[SyncActivity]:
        query = self._client.table(_SYNC_LOG_TABLE).select("*")
        if status is not None:
            query = query.eq("status", status.value)
        query = query.order("timestamp_utc", desc=True)
        if limit is not None:
            query = query.limit(limit)
        response = query.execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to list sync activity: {error}")
        rows = getattr(response, "data", None) or []
        # Fetched newest-first for the limit; callers expect oldest-first.
        return [_row_to_activity(row) for row in reversed(rows)]


__all__ = ["SupabaseSyncLogStore"]
