"""
Conversion between API models and domain objects.
"""

from __future__ import annotations

from typing import List, Optional

from api.models import (
    BuyerModel,
    CounterpartModel,
    LedgerRowResponse,
    LotResponse,
    ProductDescriptorModel,
    QuoteLineResponse,
    QuoteResponse,
    SaleEventResponse,
    SaleLineModel,
    ShippingModel,
    SupplierModel,
)
from domain.counterpart import Buyer, Counterpart, Supplier
from domain.lot import InventoryLot
from domain.product import ProductDescriptor
from domain.sale import SaleEvent, SaleLine, ShippingTerms
from repositories.serialization import descriptor_to_dict, dict_to_descriptor
from services.compliance_service import record_unit_price
from services.ledger_service import LedgerRow
from services.pricing_service import SaleQuote


def to_descriptor(model: ProductDescriptorModel) -> ProductDescriptor:
    return dict_to_descriptor(model.model_dump())


def to_counterpart(model: Optional[CounterpartModel]) -> Optional[Counterpart]:
    if model is None:
        return None
    return Counterpart(**model.model_dump())


def to_supplier(model: Optional[SupplierModel]) -> Optional[Supplier]:
    if model is None:
        return None
    return Supplier(**model.model_dump())


def to_buyer(model: BuyerModel) -> Buyer:
    return Buyer(**model.model_dump())


def to_sale_lines(models: List[SaleLineModel]) -> List[SaleLine]:
    return [
        SaleLine(
            line_id=line.line_id,
            descriptor=to_descriptor(line.descriptor),
            requested_quantity=line.quantity,
            unit_price=line.unit_price,
        )
        for line in models
    ]


def to_shipping(model: ShippingModel) -> ShippingTerms:
    return ShippingTerms(
        fee=model.fee,
        country=model.country,
        delivery_days=model.delivery_days,
        tracking_number=model.tracking_number,
    )


def lot_response(lot: InventoryLot) -> LotResponse:
    return LotResponse(
        lot_id=lot.lot_id,
        title=lot.title or lot.descriptor.title,
        descriptor=ProductDescriptorModel(**descriptor_to_dict(lot.descriptor)),
        rank=lot.rank.value if lot.rank else None,
        acquisition_unit_price=lot.acquisition_unit_price,
        total_quantity=lot.total_quantity,
        allocated_quantity=lot.allocated_quantity,
        available_quantity=lot.available_quantity,
        management_numbers=list(lot.management_numbers),
        source=lot.source.value,
        external_id=lot.external_id,
        registered_at=lot.registered_at,
    )


def quote_response(quote: SaleQuote) -> QuoteResponse:
    return QuoteResponse(
        quote_id=quote.quote_id,
        lines=[
            QuoteLineResponse(
                line_id=line.line_id,
                quantity=line.quantity,
                unit_price_settlement=line.unit_price_settlement,
                unit_price_jpy=line.unit_price_jpy,
                total_settlement=line.total_settlement,
                total_jpy=line.total_jpy,
                shipping_settlement=line.shipping_settlement,
                shipping_jpy=line.shipping_jpy,
            )
            for line in quote.lines
        ],
        subtotal_settlement=quote.subtotal_settlement,
        subtotal_jpy=quote.subtotal_jpy,
        shipping_settlement=quote.shipping_settlement,
        shipping_jpy=quote.shipping_jpy,
        total_settlement=quote.total_settlement,
        total_jpy=quote.total_jpy,
        rate=quote.rate.rate,
        settlement_currency=quote.rate.settlement_currency,
        ledger_currency=quote.rate.ledger_currency,
        total_items=quote.total_items,
        created_at=quote.created_at,
        expires_at=quote.expires_at,
    )


def sale_event_response(event: SaleEvent) -> SaleEventResponse:
    return SaleEventResponse(
        event_id=event.event_id,
        lot_id=event.identity,
        quantity=event.quantity,
        unit_price_jpy=event.unit_price_jpy,
        unit_price_settlement=event.unit_price_settlement,
        total_price_jpy=event.total_price_jpy,
        total_price_settlement=event.total_price_settlement,
        shipping_fee_jpy=event.shipping_fee_jpy,
        shipping_fee_settlement=event.shipping_fee_settlement,
        management_numbers=list(event.management_numbers),
    )


def ledger_row_response(row: LedgerRow) -> LedgerRowResponse:
    record = row.record
    product = record.product
    counterpart = record.counterpart
    supplier = record.supplier
    buyer = record.last_buyer

    name = address = occupation = None
    if counterpart is not None:
        name, address, occupation = counterpart.name, counterpart.full_address, counterpart.occupation
    elif supplier is not None:
        name, address = supplier.name, supplier.address

    return LedgerRowResponse(
        identity=record.identity,
        product_title=product.display_title if product else "",
        features=product.features if product else "",
        rank=product.rank.value if product and product.rank else None,
        management_numbers=list(record.management_numbers),
        status=record.status.value,
        transaction_type="sale" if record.has_sale else "purchase",
        first_purchase_at=record.first_purchase_at,
        last_sale_at=record.last_sale_at,
        purchase_quantity=record.purchase.total_quantity,
        unit_price_jpy=record_unit_price(record),
        purchase_cost_jpy=record.purchase.total_cost_jpy,
        sold_quantity=record.sale.total_quantity,
        revenue_jpy=record.sale.total_revenue_jpy,
        shipping_jpy=record.sale.total_shipping_jpy,
        cost_of_sold_jpy=record.cost_of_sold_jpy,
        profit_jpy=record.profit_jpy,
        counterpart_name=name,
        counterpart_address=address,
        counterpart_occupation=occupation,
        counterpart_age=row.counterpart_age,
        buyer_name=buyer.name if buyer else None,
        is_compliant=row.is_compliant,
        missing_fields=[m.value for m in row.missing_fields],
    )
