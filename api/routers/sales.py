"""
Sales API Endpoints.

Endpoints for quoting, allocating and finalizing sales.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_engine, get_staff_name
from api.mappers import quote_response, sale_event_response, to_buyer, to_sale_lines, to_shipping
from api.models import (
    AllocationModel,
    AllocationSuggestionRequest,
    AllocationSuggestionResponse,
    ErrorResponse,
    FinalizeSaleRequest,
    FinalizeSaleResponse,
    QuoteRequest,
    QuoteResponse,
)
from domain.errors import AllocationMismatch, InsufficientStock, InvalidPricingInput, QuoteExpired
from domain.sale import Allocation
from services.engine import Engine
from services.sale_finalization_service import SaleRequest

router = APIRouter()


@router.post(
    "/sales/quote",
    response_model=QuoteResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Calculate Sale Quote",
    description="Price sale lines at the current exchange rate. The quote is kept server-side for a limited time."
)
def calculate_quote(request: QuoteRequest, engine: Engine = Depends(get_engine)):
    """
    Calculate a sale quote.

    Returns per-line prices in both currencies, shipping apportioned across
    lines by quantity, and the rate snapshot. Finalize with the returned
    `quote_id` to sell at exactly these prices.
    """
    try:
        quote = engine.finalizer.quote(to_sale_lines(request.lines), to_shipping(request.shipping))
    except InvalidPricingInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    return quote_response(quote)


@router.post(
    "/sales/allocations/suggest",
    response_model=AllocationSuggestionResponse,
    summary="Suggest Allocations",
    description="Greedy allocation plan per line: best rank first, then cheapest lot. Nothing is reserved."
)
def suggest_allocations(request: AllocationSuggestionRequest, engine: Engine = Depends(get_engine)):
    allocations = []
    shortfalls = {}
    for line in to_sale_lines(request.lines):
        plan = engine.allocator.suggest(line)
        allocations.extend(plan)
        planned = sum(a.quantity for a in plan)
        if planned < line.requested_quantity:
            shortfalls[line.line_id] = line.requested_quantity - planned
    return AllocationSuggestionResponse(
        allocations=[AllocationModel(line_id=a.line_id, lot_id=a.lot_id, quantity=a.quantity) for a in allocations],
        shortfalls=shortfalls,
    )


@router.post(
    "/sales",
    response_model=FinalizeSaleResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Finalize Sale",
    description="Commit allocations, record sale events and push the packing slip."
)
def finalize_sale(
    request: FinalizeSaleRequest,
    engine: Engine = Depends(get_engine),
    staff: str = Depends(get_staff_name),
):
    """
    Finalize a sale.

    **Process:**
    1. Validates prices against the issued quote (or the current rate) and
       that allocations cover every line exactly
    2. Re-reads every lot and rejects the sale if stock ran out
    3. Commits all lot changes at once
    4. Records one sale event per allocation
    5. Pushes the packing slip to the external inventory service

    Validation failures reject the sale with no changes (400 or 409).
    A failed external push does not: the sale is recorded and the failure is
    returned in `warnings`.
    """
    lines = to_sale_lines(request.lines)
    shipping = to_shipping(request.shipping)

    try:
        result = engine.finalizer.finalize_sale(
            SaleRequest(
                buyer=to_buyer(request.buyer),
                lines=lines,
                allocations=[
                    Allocation(line_id=a.line_id, lot_id=a.lot_id, quantity=a.quantity) for a in request.allocations
                ],
                shipping=shipping,
                staff=request.staff or staff,
                sales_channel=request.sales_channel,
                quote_id=request.quote_id,
                expected_rate=request.rate,
                memo=request.memo,
            )
        )
    except (InvalidPricingInput, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (AllocationMismatch, InsufficientStock, QuoteExpired) as e:
        raise HTTPException(status_code=409, detail=str(e))

    if result.warnings:
        message = "Sale completed with warnings. " + " ".join(result.warnings)
    else:
        message = "Sale completed successfully."

    return FinalizeSaleResponse(
        success=True,
        sale_id=result.sale_id,
        events=[sale_event_response(event) for event in result.events],
        total_settlement=result.quote.total_settlement,
        total_jpy=result.quote.total_jpy,
        revenue_jpy=result.profit.revenue_jpy,
        cost_jpy=result.profit.cost_jpy,
        profit_jpy=result.profit.profit_jpy,
        margin_percent=result.profit.margin_percent,
        sync_status=result.sync.status.value,
        warnings=result.warnings,
        message=message,
    )
