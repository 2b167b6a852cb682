"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Money in the settlement currency is a Decimal with two places; ledger
currency (JPY) amounts are whole integers.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Shared Models
# ============================================================================

class ProductDescriptorModel(BaseModel):
    """What kind of unit a lot holds or a sale line asks for."""
    product_type: str = Field("console", pattern="^(console|software)$")
    console: str = Field(..., min_length=1)
    manufacturer: str = ""
    color: str = ""
    software_name: str = ""
    manufacturer_label: str = ""
    console_label: str = ""
    color_label: str = ""


class CounterpartModel(BaseModel):
    """Individual the goods were bought from (buyback)."""
    name: str
    address: str = ""
    postal_code: str = ""
    occupation: str = ""
    birth_date: Optional[date] = None
    id_document_ref: str = ""
    phone: str = ""


class SupplierModel(BaseModel):
    name: str
    invoice_number: str = ""
    address: str = ""


class BuyerModel(BaseModel):
    name: str = Field(..., min_length=1)
    buyer_id: str = ""
    country: str = ""
    postal_code: str = ""
    address: str = ""
    email: str = ""


# ============================================================================
# Lot Models
# ============================================================================

class LotCreateRequest(BaseModel):
    """Request to register a newly acquired lot."""
    descriptor: ProductDescriptorModel
    quantity: int = Field(..., gt=0)
    acquisition_unit_price: int = Field(..., ge=0, description="Unit price in JPY")
    source: str = Field("customer", pattern="^(customer|supplier|zaico_import)$")
    rank: Optional[str] = Field(None, description="Condition rank S, A, B, C or D")
    management_numbers: List[str] = []
    counterpart: Optional[CounterpartModel] = None
    supplier: Optional[SupplierModel] = None
    application_number: str = ""
    title: str = ""
    memo: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "descriptor": {"product_type": "console", "console": "ps5", "manufacturer": "sony", "color": "white"},
                "quantity": 3,
                "acquisition_unit_price": 42000,
                "source": "customer",
                "rank": "A",
                "management_numbers": ["MG-1001", "MG-1002", "MG-1003"],
                "counterpart": {
                    "name": "山田 太郎",
                    "address": "東京都千代田区1-1",
                    "postal_code": "100-0001",
                    "occupation": "会社員",
                    "birth_date": "1985-04-01"
                }
            }
        }


class LotResponse(BaseModel):
    lot_id: str
    title: str
    descriptor: ProductDescriptorModel
    rank: Optional[str] = None
    acquisition_unit_price: int
    total_quantity: int
    allocated_quantity: int
    available_quantity: int
    management_numbers: List[str]
    source: str
    external_id: Optional[str] = None
    registered_at: datetime


class LotListResponse(BaseModel):
    items: List[LotResponse]
    total_count: int


class LotIntakeResponse(BaseModel):
    lot: LotResponse
    purchase_event_id: str
    sync_status: str
    sync_message: str = ""
    missing_fields: List[str] = []


# ============================================================================
# Sale Models
# ============================================================================

class SaleLineModel(BaseModel):
    line_id: str = Field(..., min_length=1)
    descriptor: ProductDescriptorModel
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0, description="Unit price in the settlement currency")


class AllocationModel(BaseModel):
    line_id: str
    lot_id: str
    quantity: int = Field(..., gt=0)


class ShippingModel(BaseModel):
    fee: Decimal = Field(Decimal("0.00"), ge=0, description="Shipping fee for the whole sale (settlement currency)")
    country: str = ""
    delivery_days: str = ""
    tracking_number: str = ""


class QuoteRequest(BaseModel):
    """Request to price sale lines."""
    lines: List[SaleLineModel] = Field(..., min_length=1)
    shipping: ShippingModel = ShippingModel()

    class Config:
        json_schema_extra = {
            "example": {
                "lines": [
                    {
                        "line_id": "1",
                        "descriptor": {"product_type": "console", "console": "ps5"},
                        "quantity": 2,
                        "unit_price": "420.00"
                    }
                ],
                "shipping": {"fee": "35.00", "country": "US"}
            }
        }


class QuoteLineResponse(BaseModel):
    line_id: str
    quantity: int
    unit_price_settlement: Decimal
    unit_price_jpy: int
    total_settlement: Decimal
    total_jpy: int
    shipping_settlement: Decimal
    shipping_jpy: int


class QuoteResponse(BaseModel):
    """Sale quote. Pass `quote_id` back when finalizing to sell at this quote."""
    quote_id: str
    lines: List[QuoteLineResponse]
    subtotal_settlement: Decimal
    subtotal_jpy: int
    shipping_settlement: Decimal
    shipping_jpy: int
    total_settlement: Decimal
    total_jpy: int
    rate: Decimal
    settlement_currency: str
    ledger_currency: str
    total_items: int
    created_at: datetime
    expires_at: datetime


class AllocationSuggestionRequest(BaseModel):
    lines: List[SaleLineModel] = Field(..., min_length=1)


class AllocationSuggestionResponse(BaseModel):
    allocations: List[AllocationModel]
    shortfalls: Dict[str, int]


class FinalizeSaleRequest(BaseModel):
    """
    Request to finalize a sale.

    Allocations must cover every line exactly. `quote_id` names a quote issued
    by `/sales/quote`; without it the sale is priced at the current rate.
    `rate` is a confirmation only: the sale is rejected when it differs from
    the rate the server prices with.
    """
    buyer: BuyerModel
    lines: List[SaleLineModel] = Field(..., min_length=1)
    allocations: List[AllocationModel] = Field(..., min_length=1)
    shipping: ShippingModel = ShippingModel()
    sales_channel: str = ""
    staff: str = ""
    quote_id: Optional[str] = None
    rate: Optional[Decimal] = Field(None, gt=0, description="Expected exchange rate (confirmation only)")
    memo: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "buyer": {"name": "John Smith", "country": "US", "address": "1 Main St, Springfield"},
                "lines": [
                    {
                        "line_id": "1",
                        "descriptor": {"product_type": "console", "console": "ps5"},
                        "quantity": 5,
                        "unit_price": "420.00"
                    }
                ],
                "allocations": [
                    {"line_id": "1", "lot_id": "LOT-AAA", "quantity": 3},
                    {"line_id": "1", "lot_id": "LOT-BBB", "quantity": 2}
                ],
                "shipping": {"fee": "35.00", "country": "US"},
                "sales_channel": "ebay",
                "quote_id": "Q-3F2A9C1B7D4E8F60",
                "rate": "150.00"
            }
        }


class SaleEventResponse(BaseModel):
    event_id: str
    lot_id: str
    quantity: int
    unit_price_jpy: int
    unit_price_settlement: Decimal
    total_price_jpy: int
    total_price_settlement: Decimal
    shipping_fee_jpy: int
    shipping_fee_settlement: Decimal
    management_numbers: List[str]


class FinalizeSaleResponse(BaseModel):
    """Response after a sale is finalized; warnings do not mean failure."""
    success: bool
    sale_id: str
    events: List[SaleEventResponse]
    total_settlement: Decimal
    total_jpy: int
    revenue_jpy: int
    cost_jpy: int
    profit_jpy: int
    margin_percent: Decimal
    sync_status: str
    warnings: List[str]
    message: Optional[str] = None


# ============================================================================
# Ledger Models
# ============================================================================

class LedgerRowResponse(BaseModel):
    identity: str
    product_title: str
    features: str
    rank: Optional[str] = None
    management_numbers: List[str]
    status: str
    transaction_type: str
    first_purchase_at: Optional[datetime] = None
    last_sale_at: Optional[datetime] = None
    purchase_quantity: int
    unit_price_jpy: Optional[int] = None
    purchase_cost_jpy: int
    sold_quantity: int
    revenue_jpy: int
    shipping_jpy: int
    cost_of_sold_jpy: int
    profit_jpy: int
    counterpart_name: Optional[str] = None
    counterpart_address: Optional[str] = None
    counterpart_occupation: Optional[str] = None
    counterpart_age: Optional[int] = None
    buyer_name: Optional[str] = None
    is_compliant: bool
    missing_fields: List[str]


class LedgerPageResponse(BaseModel):
    rows: List[LedgerRowResponse]
    total_count: int
    page: int
    page_size: int
    total_pages: int


class LegacyMigrationRequest(BaseModel):
    """Legacy flat records, as exported from the previous system."""
    sales: List[Dict[str, Any]] = []
    inventory: List[Dict[str, Any]] = []


class LegacyMigrationResponse(BaseModel):
    records: int
    purchases_added: int
    sales_added: int
    duplicates_skipped: int
    invalid_records: List[str]


# ============================================================================
# Sync Models
# ============================================================================

class SyncActivityResponse(BaseModel):
    timestamp: datetime
    action: str
    status: str
    details: Dict[str, Any]


class SyncOutcomeResponse(BaseModel):
    action: str
    status: str
    reference: str = ""
    remote_id: Optional[str] = None
    message: str = ""
    attempts: int = 0


class RemoteImportRequest(BaseModel):
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    max_pages: Optional[int] = Field(None, ge=1)


class RemoteImportResponse(BaseModel):
    fetched: int
    imported: int
    skipped_zero_quantity: int
    skipped_existing: int
    skipped_out_of_range: int
    imported_lot_ids: List[str]
    missing_remote: List[str]


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Allocation mismatch",
                "detail": "Allocation mismatch for line 1. Requested: 5, Selected: 4",
                "status_code": 409
            }
        }
