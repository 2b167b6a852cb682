"""
Row <-> domain conversion shared by the Supabase repositories.

Nested value objects are stored as JSON columns. Money in the ledger currency
is stored as integers; settlement-currency money as strings so no precision is
lost through floats.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from domain.counterpart import Buyer, Counterpart, Supplier
from domain.ledger import PurchaseEvent
from domain.lot import LotSource
from domain.product import ProductDescriptor, ProductSnapshot, ProductType
from domain.rank import ConditionRank
from domain.sale import SaleEvent
from domain.time import parse_optional_date, parse_utc_datetime, to_iso_utc


def descriptor_to_dict(descriptor: ProductDescriptor) -> Dict[str, Any]:
    return {
        "product_type": descriptor.product_type.value,
        "console": descriptor.console,
        "manufacturer": descriptor.manufacturer,
        "color": descriptor.color,
        "software_name": descriptor.software_name,
        "manufacturer_label": descriptor.manufacturer_label,
        "console_label": descriptor.console_label,
        "color_label": descriptor.color_label,
    }


def dict_to_descriptor(data: Mapping[str, Any]) -> ProductDescriptor:
    return ProductDescriptor(
        product_type=ProductType(str(data.get("product_type") or ProductType.CONSOLE.value)),
        console=str(data.get("console") or ""),
        manufacturer=str(data.get("manufacturer") or ""),
        color=str(data.get("color") or ""),
        software_name=str(data.get("software_name") or ""),
        manufacturer_label=str(data.get("manufacturer_label") or ""),
        console_label=str(data.get("console_label") or ""),
        color_label=str(data.get("color_label") or ""),
    )


def snapshot_to_dict(snapshot: Optional[ProductSnapshot]) -> Optional[Dict[str, Any]]:
    if snapshot is None:
        return None
    return {
        "descriptor": descriptor_to_dict(snapshot.descriptor),
        "rank": snapshot.rank.value if snapshot.rank else None,
        "title": snapshot.title,
    }


def dict_to_snapshot(data: Optional[Mapping[str, Any]]) -> Optional[ProductSnapshot]:
    if not data:
        return None
    return ProductSnapshot(
        descriptor=dict_to_descriptor(data.get("descriptor") or {}),
        rank=ConditionRank.parse(data.get("rank")),
        title=str(data.get("title") or ""),
    )


def counterpart_to_dict(counterpart: Optional[Counterpart]) -> Optional[Dict[str, Any]]:
    if counterpart is None:
        return None
    return {
        "name": counterpart.name,
        "address": counterpart.address,
        "postal_code": counterpart.postal_code,
        "occupation": counterpart.occupation,
        "birth_date": counterpart.birth_date.isoformat() if counterpart.birth_date else None,
        "id_document_ref": counterpart.id_document_ref,
        "phone": counterpart.phone,
    }


def dict_to_counterpart(data: Optional[Mapping[str, Any]]) -> Optional[Counterpart]:
    if not data:
        return None
    return Counterpart(
        name=str(data.get("name") or ""),
        address=str(data.get("address") or ""),
        postal_code=str(data.get("postal_code") or ""),
        occupation=str(data.get("occupation") or ""),
        birth_date=parse_optional_date(data.get("birth_date")),
        id_document_ref=str(data.get("id_document_ref") or ""),
        phone=str(data.get("phone") or ""),
    )


def supplier_to_dict(supplier: Optional[Supplier]) -> Optional[Dict[str, Any]]:
    if supplier is None:
        return None
    return {"name": supplier.name, "invoice_number": supplier.invoice_number, "address": supplier.address}


def dict_to_supplier(data: Optional[Mapping[str, Any]]) -> Optional[Supplier]:
    if not data:
        return None
    return Supplier(
        name=str(data.get("name") or ""),
        invoice_number=str(data.get("invoice_number") or ""),
        address=str(data.get("address") or ""),
    )


def buyer_to_dict(buyer: Buyer) -> Dict[str, Any]:
    return {
        "name": buyer.name,
        "buyer_id": buyer.buyer_id,
        "country": buyer.country,
        "postal_code": buyer.postal_code,
        "address": buyer.address,
        "email": buyer.email,
    }


def dict_to_buyer(data: Optional[Mapping[str, Any]]) -> Buyer:
    data = data or {}
    return Buyer(
        name=str(data.get("name") or ""),
        buyer_id=str(data.get("buyer_id") or ""),
        country=str(data.get("country") or ""),
        postal_code=str(data.get("postal_code") or ""),
        address=str(data.get("address") or ""),
        email=str(data.get("email") or ""),
    )


def purchase_event_to_payload(event: PurchaseEvent) -> Dict[str, Any]:
    return {
        "quantity": event.quantity,
        "unit_price_jpy": event.unit_price_jpy,
        "product": snapshot_to_dict(event.product),
        "source": event.source.value,
        "performer": event.performer,
        "counterpart": counterpart_to_dict(event.counterpart),
        "supplier": supplier_to_dict(event.supplier),
        "application_number": event.application_number,
        "management_numbers": list(event.management_numbers),
    }


def payload_to_purchase_event(
    event_id: str, identity: str, occurred_at: Any, payload: Mapping[str, Any]
) -> PurchaseEvent:
    product = dict_to_snapshot(payload.get("product"))
    if product is None:
        raise ValueError(f"Purchase event {event_id} has no product snapshot")
    return PurchaseEvent(
        event_id=event_id,
        identity=identity,
        occurred_at=parse_utc_datetime(occurred_at),
        quantity=int(payload.get("quantity", 0)),
        unit_price_jpy=int(payload.get("unit_price_jpy", 0)),
        product=product,
        source=LotSource(str(payload.get("source") or LotSource.CUSTOMER.value)),
        performer=str(payload.get("performer") or ""),
        counterpart=dict_to_counterpart(payload.get("counterpart")),
        supplier=dict_to_supplier(payload.get("supplier")),
        application_number=str(payload.get("application_number") or ""),
        management_numbers=tuple(str(n) for n in payload.get("management_numbers") or ()),
    )


def sale_event_to_payload(event: SaleEvent) -> Dict[str, Any]:
    return {
        "sale_id": event.sale_id,
        "buyer": buyer_to_dict(event.buyer),
        "quantity": event.quantity,
        "unit_price_jpy": event.unit_price_jpy,
        "unit_price_settlement": str(event.unit_price_settlement),
        "total_price_jpy": event.total_price_jpy,
        "total_price_settlement": str(event.total_price_settlement),
        "shipping_fee_jpy": event.shipping_fee_jpy,
        "shipping_fee_settlement": str(event.shipping_fee_settlement),
        "sales_channel": event.sales_channel,
        "staff": event.staff,
        "management_numbers": list(event.management_numbers),
        "product": snapshot_to_dict(event.product),
        "notes": event.notes,
        "is_correction": event.is_correction,
    }


def payload_to_sale_event(
    event_id: str, identity: str, occurred_at: Any, payload: Mapping[str, Any]
) -> SaleEvent:
    return SaleEvent(
        event_id=event_id,
        sale_id=str(payload.get("sale_id") or ""),
        identity=identity,
        occurred_at=parse_utc_datetime(occurred_at),
        buyer=dict_to_buyer(payload.get("buyer")),
        quantity=int(payload["quantity"]),
        unit_price_jpy=int(payload.get("unit_price_jpy", 0)),
        unit_price_settlement=Decimal(str(payload.get("unit_price_settlement", "0"))),
        total_price_jpy=int(payload.get("total_price_jpy", 0)),
        total_price_settlement=Decimal(str(payload.get("total_price_settlement", "0"))),
        shipping_fee_jpy=int(payload.get("shipping_fee_jpy", 0)),
        shipping_fee_settlement=Decimal(str(payload.get("shipping_fee_settlement", "0"))),
        sales_channel=str(payload.get("sales_channel") or ""),
        staff=str(payload.get("staff") or ""),
        management_numbers=tuple(str(n) for n in payload.get("management_numbers") or ()),
        product=dict_to_snapshot(payload.get("product")),
        notes=str(payload.get("notes") or ""),
        is_correction=bool(payload.get("is_correction", False)),
    )


__all__ = [
    "buyer_to_dict",
    "counterpart_to_dict",
    "descriptor_to_dict",
    "dict_to_buyer",
    "dict_to_counterpart",
    "dict_to_descriptor",
    "dict_to_snapshot",
    "dict_to_supplier",
    "payload_to_purchase_event",
    "payload_to_sale_event",
    "purchase_event_to_payload",
    "sale_event_to_payload",
    "snapshot_to_dict",
    "supplier_to_dict",
    "to_iso_utc",
]
