"""
Lots API Endpoints.

Endpoints for registering lots and browsing stock.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_engine, get_staff_name
from api.mappers import lot_response, to_counterpart, to_descriptor, to_supplier
from api.models import LotCreateRequest, LotIntakeResponse, LotListResponse, LotResponse, ProductDescriptorModel
from domain.lot import LotSource
from domain.rank import ConditionRank
from domain.sale import SaleLine
from services.engine import Engine
from services.lot_intake_service import LotIntake

router = APIRouter()


@router.post(
    "/lots",
    response_model=LotIntakeResponse,
    status_code=201,
    summary="Register Lot",
    description="Register newly acquired stock, record its purchase and push it to the external inventory service."
)
def register_lot(
    request: LotCreateRequest,
    engine: Engine = Depends(get_engine),
    staff: str = Depends(get_staff_name),
):
    """
    Register a lot.

    The purchase event is recorded immediately. The external inventory
    create is best-effort: its status is reported in `sync_status` and a
    failure never rejects the intake. Missing compliance fields are reported,
    not enforced.
    """
    if request.rank and ConditionRank.parse(request.rank) is None:
        raise HTTPException(status_code=400, detail=f"Unknown rank: {request.rank}")

    try:
        result = engine.intake.register_lot(
            LotIntake(
                descriptor=to_descriptor(request.descriptor),
                quantity=request.quantity,
                acquisition_unit_price=request.acquisition_unit_price,
                source=LotSource(request.source),
                rank=ConditionRank.parse(request.rank),
                management_numbers=request.management_numbers,
                counterpart=to_counterpart(request.counterpart),
                supplier=to_supplier(request.supplier),
                application_number=request.application_number,
                title=request.title,
                performer=staff,
                memo=request.memo,
            )
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return LotIntakeResponse(
        lot=lot_response(result.lot),
        purchase_event_id=result.purchase.event_id,
        sync_status=result.sync.status.value,
        sync_message=result.sync.message,
        missing_fields=result.missing_fields,
    )


@router.get(
    "/lots",
    response_model=LotListResponse,
    summary="List Lots",
)
def list_lots(
    console: Optional[str] = Query(None, description="Only lots of this console"),
    available_only: bool = Query(False, description="Hide lots with nothing available"),
    engine: Engine = Depends(get_engine),
):
    lots = engine.lots.list_lots()
    if console:
        lots = [lot for lot in lots if lot.descriptor.console == console]
    if available_only:
        lots = [lot for lot in lots if lot.available_quantity > 0]
    return LotListResponse(items=[lot_response(lot) for lot in lots], total_count=len(lots))


@router.get(
    "/lots/{lot_id}",
    response_model=LotResponse,
    summary="Get Lot",
)
def get_lot(lot_id: str, engine: Engine = Depends(get_engine)):
    lot = engine.lots.get(lot_id)
    if lot is None:
        raise HTTPException(status_code=404, detail=f"Lot not found: {lot_id}")
    return lot_response(lot)


@router.post(
    "/lots/candidates",
    response_model=LotListResponse,
    summary="List Allocation Candidates",
    description="Lots that can fill a product request, best condition first, then cheapest."
)
def list_candidates(descriptor: ProductDescriptorModel, engine: Engine = Depends(get_engine)):
    line = SaleLine(line_id="candidates", descriptor=to_descriptor(descriptor), requested_quantity=1, unit_price=0)
    lots = engine.allocator.list_candidates(line)
    return LotListResponse(items=[lot_response(lot) for lot in lots], total_count=len(lots))
