"""
Versioned schemas for legacy flat records.

Historical data predates the event ledger: sales were kept as one flat record
per sale ("salesHistory") and stock as flat inventory rows. Two sale shapes
exist in the wild:

- V1: JPY-only. `soldPrice` is the sale total, `soldTo` the buyer name and
  `shippingFee` the JPY shipping fee.
- V2: adds settlement-currency amounts (`soldPriceUSD`, `shippingFeeUSD`),
  `shippingFeeJPY`, `totalSalesAmount` and a structured `buyer`.

Every record is parsed through its own model and upgraded explicitly to the
latest version; nothing downstream reads raw dicts.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

_V2_ONLY_KEYS = ("soldPriceUSD", "shippingFeeJPY", "shippingFeeUSD", "totalSalesAmount", "buyer")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        number = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class _LegacyModel(BaseModel):
    class Config:
        populate_by_name = True
        extra = "ignore"


class LegacyProductFields(_LegacyModel):
    product_type: Optional[str] = Field(default=None, alias="productType")
    manufacturer: Optional[str] = None
    manufacturer_label: Optional[str] = Field(default=None, alias="manufacturerLabel")
    console: Optional[str] = None
    console_label: Optional[str] = Field(default=None, alias="consoleLabel")
    color: Optional[str] = None
    color_label: Optional[str] = Field(default=None, alias="colorLabel")
    software_name: Optional[str] = Field(default=None, alias="softwareName")
    assessed_rank: Optional[str] = Field(default=None, alias="assessedRank")
    title: Optional[str] = None


class LegacyBuyer(_LegacyModel):
    name: Optional[str] = None
    country: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = Field(default=None, alias="postalCode")


class LegacyCustomer(_LegacyModel):
    name: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = Field(default=None, alias="postalCode")
    occupation: Optional[str] = None
    birth_date: Optional[str] = Field(default=None, alias="birthDate")
    phone: Optional[str] = None
    id_document_ref: Optional[str] = Field(default=None, alias="idDocumentRef")


class LegacySupplier(_LegacyModel):
    name: Optional[str] = None
    invoice_number: Optional[str] = Field(default=None, alias="invoiceNumber")
    address: Optional[str] = None


class LegacySaleV1(LegacyProductFields):
    id: str
    inventory_item_id: Optional[str] = Field(default=None, alias="inventoryItemId")
    sold_price: Optional[Decimal] = Field(default=None, alias="soldPrice")
    sold_at: Optional[str] = Field(default=None, alias="soldAt")
    sold_to: Optional[str] = Field(default=None, alias="soldTo")
    sales_channel: Optional[str] = Field(default=None, alias="salesChannel")
    quantity: Optional[int] = None
    management_numbers: List[str] = Field(default_factory=list, alias="managementNumbers")
    acquisition_price: Optional[Decimal] = Field(default=None, alias="acquisitionPrice")
    sales_staff_name: Optional[str] = Field(default=None, alias="salesStaffName")
    shipping_fee: Optional[Decimal] = Field(default=None, alias="shippingFee")

    @field_validator("id", "inventory_item_id", "sold_at", "sold_to", "sales_channel", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _to_text(value)

    @field_validator("sold_price", "acquisition_price", "shipping_fee", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Optional[Decimal]:
        return _to_decimal(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, value: Any) -> Optional[int]:
        number = _to_decimal(value)
        return int(number) if number is not None else None

    @field_validator("management_numbers", mode="before")
    @classmethod
    def _numbers(cls, value: Any) -> List[str]:
        if not value:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return [str(v) for v in value if v not in (None, "")]


class LegacySaleV2(LegacySaleV1):
    sold_price_usd: Optional[Decimal] = Field(default=None, alias="soldPriceUSD")
    shipping_fee_jpy: Optional[Decimal] = Field(default=None, alias="shippingFeeJPY")
    shipping_fee_usd: Optional[Decimal] = Field(default=None, alias="shippingFeeUSD")
    total_sales_amount: Optional[Decimal] = Field(default=None, alias="totalSalesAmount")
    buyer: Optional[LegacyBuyer] = None

    @field_validator("sold_price_usd", "shipping_fee_jpy", "shipping_fee_usd", "total_sales_amount", mode="before")
    @classmethod
    def _money_v2(cls, value: Any) -> Optional[Decimal]:
        return _to_decimal(value)

    @field_validator("buyer", mode="before")
    @classmethod
    def _buyer(cls, value: Any) -> Any:
        return value or None

    @property
    def total_price_jpy(self) -> Decimal:
        return self.sold_price if self.sold_price is not None else (self.total_sales_amount or Decimal("0"))

    @property
    def buyer_name(self) -> str:
        if self.buyer is not None and self.buyer.name:
            return self.buyer.name
        return self.sold_to or ""

    @property
    def effective_quantity(self) -> int:
        if self.quantity is not None and self.quantity > 0:
            return self.quantity
        return len(self.management_numbers) or 1


class LegacyInventoryV1(LegacyProductFields):
    id: str
    quantity: int = 0
    acquisition_price: Optional[Decimal] = Field(default=None, alias="acquisitionPrice")
    buyback_price: Optional[Decimal] = Field(default=None, alias="buybackPrice")
    registered_date: Optional[str] = Field(default=None, alias="registeredDate")
    management_numbers: List[str] = Field(default_factory=list, alias="managementNumbers")
    source_type: Optional[str] = Field(default=None, alias="sourceType")
    customer: Optional[LegacyCustomer] = None
    supplier: Optional[LegacySupplier] = None
    application_number: Optional[str] = Field(default=None, alias="applicationNumber")
    zaico_id: Optional[str] = Field(default=None, alias="zaicoId")

    @field_validator("id", "zaico_id", "registered_date", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _to_text(value)

    @field_validator("acquisition_price", "buyback_price", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Optional[Decimal]:
        return _to_decimal(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, value: Any) -> int:
        number = _to_decimal(value)
        return int(number) if number is not None else 0

    @field_validator("management_numbers", mode="before")
    @classmethod
    def _numbers(cls, value: Any) -> List[str]:
        if not value:
            return []
        return [str(v) for v in value if v not in (None, "")]

    @field_validator("customer", "supplier", mode="before")
    @classmethod
    def _party(cls, value: Any) -> Any:
        return value or None

    @property
    def unit_price_jpy(self) -> Decimal:
        return self.acquisition_price or self.buyback_price or Decimal("0")


def upgrade_sale_v1(record: LegacySaleV1) -> LegacySaleV2:
    """V1 -> V2: the JPY shipping fee moves to `shipping_fee_jpy`; `soldTo` becomes the buyer."""

    data: Dict[str, Any] = record.model_dump()
    data["shipping_fee_jpy"] = record.shipping_fee
    data["buyer"] = LegacyBuyer(name=record.sold_to) if record.sold_to else None
    return LegacySaleV2.model_validate(data)


def parse_legacy_sale(raw: Mapping[str, Any]) -> LegacySaleV2:
    """
    Parse one flat legacy sale at whatever version it was written in.

    Raises:
        pydantic.ValidationError: If the record is not a recognizable sale.
    """

    version = raw.get("schemaVersion")
    if version == 2 or (version is None and any(key in raw for key in _V2_ONLY_KEYS)):
        record = LegacySaleV2.model_validate(raw)
        if record.shipping_fee_jpy is None and record.shipping_fee is not None:
            record = record.model_copy(update={"shipping_fee_jpy": record.shipping_fee})
        return record
    return upgrade_sale_v1(LegacySaleV1.model_validate(raw))


def parse_legacy_inventory(raw: Mapping[str, Any]) -> LegacyInventoryV1:
    return LegacyInventoryV1.model_validate(raw)


def _key_part(value: Union[str, Decimal, None]) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def duplicate_key(record: LegacySaleV2) -> Tuple[str, str, str, str, str]:
    """
    Composite key used to detect duplicated legacy sales.

    Two records are duplicates only when item, price, timestamp, buyer and
    channel all repeat exactly.
    """

    return (
        _key_part(record.inventory_item_id),
        _key_part(record.sold_price),
        _key_part(record.sold_at),
        _key_part(record.sold_to),
        _key_part(record.sales_channel),
    )


__all__ = [
    "LegacyBuyer",
    "LegacyCustomer",
    "LegacyInventoryV1",
    "LegacySaleV1",
    "LegacySaleV2",
    "LegacySupplier",
    "duplicate_key",
    "parse_legacy_inventory",
    "parse_legacy_sale",
    "upgrade_sale_v1",
]
