"""
Ledger API Endpoints.

Endpoints for the compliance ledger view, its CSV export and legacy data
migration.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from api.dependencies import get_engine
from api.mappers import ledger_row_response
from api.models import LedgerPageResponse, LedgerRowResponse, LegacyMigrationRequest, LegacyMigrationResponse
from services.engine import Engine
from services.ledger_export_service import generate_ledger_csv
from services.ledger_service import LedgerFilters, TransactionType

router = APIRouter()


def _filters(
    date_from: Optional[date] = Query(None, description="Inclusive start date (UTC)"),
    date_to: Optional[date] = Query(None, description="Inclusive end date (UTC)"),
    transaction_type: TransactionType = Query(TransactionType.ALL),
    product: str = Query("", description="Search title, console, software and manufacturer"),
    sku: str = Query("", description="Search record id and management numbers"),
    customer: str = Query("", description="Search seller and buyer names"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=500),
) -> LedgerFilters:
    return LedgerFilters(
        date_from=date_from,
        date_to=date_to,
        transaction_type=transaction_type,
        product_search=product,
        sku_search=sku,
        customer_search=customer,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/ledger",
    response_model=LedgerPageResponse,
    summary="Query Ledger",
    description="Filtered, paginated ledger, newest activity first. Non-compliant rows are flagged, not hidden."
)
def query_ledger(
    filters: LedgerFilters = Depends(_filters),
    as_of: Optional[date] = Query(None, description="Date ages are computed at (default: today)"),
    engine: Engine = Depends(get_engine),
):
    page = engine.ledger.query(filters, as_of)
    return LedgerPageResponse(
        rows=[ledger_row_response(row) for row in page.rows],
        total_count=page.total_count,
        page=page.page,
        page_size=page.page_size,
        total_pages=page.total_pages,
    )


@router.get(
    "/ledger/export",
    summary="Export Ledger CSV",
    description="Download every matching ledger record as CSV (UTF-8 with BOM).",
    response_class=Response
)
def export_ledger(
    filters: LedgerFilters = Depends(_filters),
    as_of: Optional[date] = Query(None, description="Date ages are computed at (default: today)"),
    engine: Engine = Depends(get_engine),
):
    """
    Download the ledger as CSV.

    **Security:**
    - CSV injection prevention (dangerous leading characters stripped)
    - Every stripped value is logged for audit
    """
    csv_content = generate_ledger_csv(engine.ledger, filters, as_of)
    filename = f"ledger_{(as_of or date.today()).isoformat()}.csv"
    return Response(
        content=csv_content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.get(
    "/ledger/records/{identity}",
    response_model=LedgerRowResponse,
    summary="Get Ledger Record",
)
def get_ledger_record(identity: str, engine: Engine = Depends(get_engine)):
    record = engine.ledger.rebuild(identity)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Ledger record not found: {identity}")
    return ledger_row_response(engine.ledger.row_for(record))


@router.post(
    "/ledger/migrate",
    response_model=LegacyMigrationResponse,
    summary="Migrate Legacy Records",
    description="Import legacy flat sale and inventory records. Safe to run repeatedly."
)
def migrate_legacy(request: LegacyMigrationRequest, engine: Engine = Depends(get_engine)):
    """
    Migrate legacy records into the event ledger.

    Exact duplicate sales are dropped, records that fail schema validation
    are reported in `invalid_records`, and events already migrated are
    skipped, so re-running the same payload adds nothing.
    """
    result = engine.ledger.migrate_legacy(request.sales, request.inventory)
    return LegacyMigrationResponse(
        records=len(result.records),
        purchases_added=result.purchases_added,
        sales_added=result.sales_added,
        duplicates_skipped=result.duplicates_skipped,
        invalid_records=result.invalid_records,
    )
