"""
Sync API Endpoints.

Endpoints for the external inventory service: activity log, pull/import and
manual pushes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_engine
from api.models import (
    ErrorResponse,
    RemoteImportRequest,
    RemoteImportResponse,
    SyncActivityResponse,
    SyncOutcomeResponse,
)
from domain.errors import SyncFailure
from domain.sync import SyncOutcome, SyncStatus
from services.engine import Engine

router = APIRouter()


def _outcome_response(outcome: SyncOutcome) -> SyncOutcomeResponse:
    return SyncOutcomeResponse(
        action=outcome.action,
        status=outcome.status.value,
        reference=outcome.reference,
        remote_id=outcome.remote_id,
        message=outcome.message,
        attempts=outcome.attempts,
    )


@router.get(
    "/sync/activity",
    response_model=List[SyncActivityResponse],
    summary="Sync Activity Log",
    description="Most recent sync activity entries, oldest first."
)
def list_activity(
    status: Optional[SyncStatus] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    engine: Engine = Depends(get_engine),
):
    return [
        SyncActivityResponse(
            timestamp=entry.timestamp,
            action=entry.action,
            status=entry.status.value,
            details=dict(entry.details),
        )
        for entry in engine.sync.activity(status=status, limit=limit)
    ]


@router.post(
    "/sync/import",
    response_model=RemoteImportResponse,
    responses={502: {"model": ErrorResponse}},
    summary="Import Remote Inventory",
    description="Pull every remote inventory record and register unknown ones as lots."
)
def import_remote(request: RemoteImportRequest, engine: Engine = Depends(get_engine)):
    """
    Import remote inventory.

    Returns 502 when the external service cannot be reached after retries;
    nothing is imported in that case.
    """
    try:
        report = engine.importer.import_remote_inventory(
            date_from=request.date_from,
            date_to=request.date_to,
            max_pages=request.max_pages,
        )
    except SyncFailure as e:
        raise HTTPException(status_code=502, detail=str(e))

    return RemoteImportResponse(
        fetched=report.fetched,
        imported=report.imported,
        skipped_zero_quantity=report.skipped_zero_quantity,
        skipped_existing=report.skipped_existing,
        skipped_out_of_range=report.skipped_out_of_range,
        imported_lot_ids=[lot.lot_id for lot in report.lots],
        missing_remote=report.missing_remote,
    )


@router.post(
    "/sync/lots/{lot_id}",
    response_model=SyncOutcomeResponse,
    summary="Push Lot",
    description="Create the lot remotely if it is not linked yet, otherwise overwrite the remote quantity."
)
def push_lot(lot_id: str, engine: Engine = Depends(get_engine)):
    lot = engine.lots.get(lot_id)
    if lot is None:
        raise HTTPException(status_code=404, detail=f"Lot not found: {lot_id}")

    if lot.external_id:
        outcome = engine.sync.push_inventory_quantity(lot)
    else:
        outcome = engine.sync.push_inventory_create(lot)
        if outcome.ok and outcome.remote_id:
            engine.lots.link_external_id(lot.lot_id, outcome.remote_id)
    return _outcome_response(outcome)
