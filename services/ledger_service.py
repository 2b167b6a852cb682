"""
Ledger aggregation service.

Folds purchase and sale events into one LedgerRecord per inventory identity
and serves the filtered, paginated ledger view.

Rules:
- Events are append-only; a duplicate event id is rejected.
- Records are always rebuilt from events (`build_ledger_record`), so a rebuild
  is idempotent and independent of the order events were stored in.
- Every row of the ledger view carries its compliance findings; non-compliant
  rows are flagged, never filtered out.
- Legacy flat records are migrated through versioned schemas with
  deterministic event ids, so running a migration twice adds nothing.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from domain.counterpart import Buyer, Counterpart, Supplier
from domain.ledger import LedgerRecord, PurchaseEvent, build_ledger_record
from domain.lot import InventoryLot, LotSource
from domain.product import DEFAULT_TITLE, ProductDescriptor, ProductSnapshot, ProductType
from domain.rank import ConditionRank
from domain.sale import SaleEvent
from domain.time import parse_optional_date, parse_utc_datetime, utc_now
from repositories.legacy_event_schemas import (
    LegacyInventoryV1,
    LegacyProductFields,
    LegacySaleV2,
    duplicate_key,
    parse_legacy_inventory,
    parse_legacy_sale,
)
from repositories.store import LedgerEventStore
from services.compliance_service import ComplianceValidator, MissingField

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
LEGACY_PERFORMER = "import"
LEGACY_NOTE = "legacy-import"


class TransactionType(str, Enum):
    ALL = "all"
    PURCHASE = "purchase"  # nothing sold yet
    SALE = "sale"  # at least one sale


@dataclass(frozen=True, slots=True)
class LedgerFilters:
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    transaction_type: TransactionType = TransactionType.ALL
    product_search: str = ""
    sku_search: str = ""
    customer_search: str = ""
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")


@dataclass(frozen=True, slots=True)
class LedgerRow:
    record: LedgerRecord
    missing_fields: List[MissingField]
    counterpart_age: Optional[int] = None

    @property
    def is_compliant(self) -> bool:
        return not self.missing_fields


@dataclass(frozen=True, slots=True)
class LedgerPage:
    rows: List[LedgerRow]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.total_count + self.page_size - 1) // self.page_size


@dataclass(frozen=True, slots=True)
class DuplicateCleanupResult:
    kept: List[LegacySaleV2]
    duplicates: List[LegacySaleV2]


@dataclass(frozen=True, slots=True)
class MigrationResult:
    records: List[LedgerRecord]
    purchases_added: int
    sales_added: int
    duplicates_skipped: int
    invalid_records: List[str] = field(default_factory=list)


def purchase_event_for_lot(
    lot: InventoryLot,
    performer: str = "",
    occurred_at: Optional[datetime] = None,
    event_id: Optional[str] = None,
) -> PurchaseEvent:
    """Purchase event recording a lot's registration."""

    return PurchaseEvent(
        event_id=event_id or f"purchase-{lot.lot_id}",
        identity=lot.lot_id,
        occurred_at=occurred_at or lot.registered_at,
        quantity=lot.total_quantity,
        unit_price_jpy=lot.acquisition_unit_price,
        product=lot.snapshot,
        source=lot.source,
        performer=performer,
        counterpart=lot.counterpart,
        supplier=lot.supplier,
        application_number=lot.application_number,
        management_numbers=lot.management_numbers,
    )


def _contains(haystack: Iterable[str], needle: str) -> bool:
    return any(needle in value.lower() for value in haystack if value)


def _in_range(moment: datetime, date_from: Optional[date], date_to: Optional[date]) -> bool:
    day = moment.date()
    if date_from is not None and day < date_from:
        return False
    if date_to is not None and day > date_to:
        return False
    return True


def matches_filters(record: LedgerRecord, filters: LedgerFilters) -> bool:
    """
    Whether a record belongs in the filtered ledger view.

    With a date range, a record matches when its first purchase or any of its
    sales falls inside the range. A record with neither date never matches.
    """

    if filters.date_from is not None or filters.date_to is not None:
        moments = [event.occurred_at for event in record.sale.events]
        if record.first_purchase_at is not None:
            moments.append(record.first_purchase_at)
        if not any(_in_range(moment, filters.date_from, filters.date_to) for moment in moments):
            return False

    if filters.transaction_type == TransactionType.PURCHASE and record.has_sale:
        return False
    if filters.transaction_type == TransactionType.SALE and not record.has_sale:
        return False

    if filters.product_search:
        term = filters.product_search.strip().lower()
        product_terms: Tuple[str, ...] = ()
        if record.product is not None:
            product_terms = (record.product.display_title,) + record.product.descriptor.search_terms
        if not _contains(product_terms, term):
            return False

    if filters.sku_search:
        term = filters.sku_search.strip().lower()
        if not _contains((record.identity,) + record.management_numbers, term):
            return False

    if filters.customer_search:
        term = filters.customer_search.strip().lower()
        names = [event.buyer.name for event in record.sale.events]
        if record.counterpart is not None:
            names.append(record.counterpart.name)
        if record.supplier is not None:
            names.append(record.supplier.name)
        if not _contains(names, term):
            return False

    return True


def _sort_key(record: LedgerRecord) -> Tuple[int, float, str]:
    activity = record.activity_at
    return (0 if activity is not None else 1, -activity.timestamp() if activity else 0.0, record.identity)


def _legacy_descriptor(fields: LegacyProductFields) -> ProductDescriptor:
    return ProductDescriptor(
        product_type=ProductType.SOFTWARE if fields.product_type == ProductType.SOFTWARE.value else ProductType.CONSOLE,
        console=fields.console or "",
        manufacturer=fields.manufacturer or "",
        color=fields.color or "",
        software_name=fields.software_name or "",
        manufacturer_label=fields.manufacturer_label or "",
        console_label=fields.console_label or "",
        color_label=fields.color_label or "",
    )


def _legacy_snapshot(fields: LegacyProductFields) -> ProductSnapshot:
    title = fields.title or fields.console_label or fields.software_name or DEFAULT_TITLE
    return ProductSnapshot(
        descriptor=_legacy_descriptor(fields),
        rank=ConditionRank.parse(fields.assessed_rank),
        title=title,
    )


def _legacy_source(source_type: Optional[str]) -> LotSource:
    if source_type == LotSource.SUPPLIER.value:
        return LotSource.SUPPLIER
    if source_type == LotSource.ZAICO_IMPORT.value:
        return LotSource.ZAICO_IMPORT
    return LotSource.CUSTOMER


def _yen(value: Optional[Decimal]) -> int:
    if value is None:
        return 0
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _cents(value: Optional[Decimal]) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _legacy_sale_event_id(record: LegacySaleV2) -> str:
    digest = hashlib.sha1("\x1f".join(duplicate_key(record)).encode("utf-8")).hexdigest()
    return f"legacy-sale-{digest[:20]}"


class LedgerAggregator:
    """
    Owns the ledger event log and everything derived from it.

    Args:
        events: Ledger event store
        validator: Compliance validator used to flag rows in `query`
    """

    def __init__(self, events: LedgerEventStore, validator: Optional[ComplianceValidator] = None):
        self._events = events
        self._validator = validator or ComplianceValidator()

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def append_purchase(
        self,
        lot: InventoryLot,
        performer: str = "",
        occurred_at: Optional[datetime] = None,
        event_id: Optional[str] = None,
    ) -> PurchaseEvent:
        """
        Record a lot's registration as a purchase event.

        Raises:
            ValueError: If an event with the same id was already recorded
        """

        event = purchase_event_for_lot(lot, performer=performer, occurred_at=occurred_at, event_id=event_id)
        self.append_purchase_event(event)
        return event

    def append_purchase_event(self, event: PurchaseEvent) -> None:
        self._events.append_purchase(event)
        logger.info(
            "Ledger purchase recorded",
            extra={"event_id": event.event_id, "identity": event.identity, "quantity": event.quantity},
        )

    def append_sale(self, event: SaleEvent) -> None:
        """
        Append a sale event.

        Raises:
            ValueError: If an event with the same id was already recorded
        """

        self._events.append_sale(event)
        logger.info(
            "Ledger sale recorded",
            extra={
                "event_id": event.event_id,
                "sale_id": event.sale_id,
                "identity": event.identity,
                "quantity": event.quantity,
            },
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def has_event(self, event_id: str) -> bool:
        return self._events.has_event(event_id)

    def rebuild(self, identity: str) -> Optional[LedgerRecord]:
        """Recompute the record for `identity`; None when it has no events."""

        purchases = self._events.purchases_for(identity)
        sales = self._events.sales_for(identity)
        if not purchases and not sales:
            return None
        return build_ledger_record(identity, purchases, sales)

    def records(self) -> List[LedgerRecord]:
        result = []
        for identity in self._events.identities():
            record = self.rebuild(identity)
            if record is not None:
                result.append(record)
        return result

    def row_for(self, record: LedgerRecord, as_of: Optional[date] = None) -> LedgerRow:
        return LedgerRow(
            record=record,
            missing_fields=self._validator.validate(record, as_of),
            counterpart_age=self._validator.counterpart_age(record, as_of),
        )

    def filtered_rows(self, filters: Optional[LedgerFilters] = None, as_of: Optional[date] = None) -> List[LedgerRow]:
        """Every matching row, sorted by latest activity (newest first), unpaginated."""

        filters = filters or LedgerFilters()
        matching = [record for record in self.records() if matches_filters(record, filters)]
        matching.sort(key=_sort_key)
        return [self.row_for(record, as_of) for record in matching]

    def query(self, filters: Optional[LedgerFilters] = None, as_of: Optional[date] = None) -> LedgerPage:
        """
        Filtered, sorted, paginated ledger view.

        Args:
            filters: Date range, transaction type, text searches and paging
            as_of: Date used to derive counterpart ages (default: today, UTC)

        Returns:
            LedgerPage whose rows carry compliance findings

        Example:
            page = aggregator.query(LedgerFilters(customer_search="tanaka", page_size=50))
            flagged = [row for row in page.rows if not row.is_compliant]
        """

        filters = filters or LedgerFilters()
        rows = self.filtered_rows(filters, as_of)
        start = (filters.page - 1) * filters.page_size
        return LedgerPage(
            rows=rows[start : start + filters.page_size],
            total_count=len(rows),
            page=filters.page,
            page_size=filters.page_size,
        )

    # ------------------------------------------------------------------
    # Legacy migration
    # ------------------------------------------------------------------

    def cleanup_duplicate_sales(self, flat_events: Iterable[Mapping]) -> DuplicateCleanupResult:
        """
        Parse legacy sales and split exact duplicates out.

        The first record with a given (item, price, timestamp, buyer, channel)
        key is kept; later ones are duplicates.

        Raises:
            pydantic.ValidationError: On a record that is not a legacy sale
        """

        return self._dedupe([parse_legacy_sale(raw) for raw in flat_events])

    @staticmethod
    def _dedupe(sales: Sequence[LegacySaleV2]) -> DuplicateCleanupResult:
        seen: Dict[Tuple[str, ...], None] = {}
        kept: List[LegacySaleV2] = []
        duplicates: List[LegacySaleV2] = []
        for sale in sales:
            key = duplicate_key(sale)
            if key in seen:
                duplicates.append(sale)
                continue
            seen[key] = None
            kept.append(sale)
        return DuplicateCleanupResult(kept=kept, duplicates=duplicates)

    def migrate_legacy(
        self,
        flat_events: Iterable[Mapping],
        legacy_inventory: Iterable[Mapping] = (),
        migrated_at: Optional[datetime] = None,
    ) -> MigrationResult:
        """
        Migrate legacy flat sale records (and optionally legacy inventory rows).

        Process:
        1. Parse every record through its versioned schema; unparseable
           records are reported, not migrated
        2. Drop exact duplicate sales
        3. Match each sale to its originating inventory item (by item id,
           then by shared management number), falling back to the sale's
           item id or `LEGACY-<sale id>`
        4. Append purchase and sale events under deterministic ids, skipping
           ids already present
        5. Rebuild one record per touched identity

        Args:
            flat_events: Legacy sale dicts (any schema version)
            legacy_inventory: Legacy inventory dicts; each becomes a purchase
            migrated_at: Timestamp for records that carry no date of their own

        Returns:
            MigrationResult with the rebuilt records and counts
        """

        migrated_at = migrated_at or utc_now()
        invalid: List[str] = []

        inventory: List[LegacyInventoryV1] = []
        for raw in legacy_inventory:
            try:
                inventory.append(parse_legacy_inventory(raw))
            except ValidationError as e:
                invalid.append(f"inventory {raw.get('id', '?')}: {e.error_count()} validation error(s)")

        sales: List[LegacySaleV2] = []
        for raw in flat_events:
            try:
                sales.append(parse_legacy_sale(raw))
            except ValidationError as e:
                invalid.append(f"sale {raw.get('id', '?')}: {e.error_count()} validation error(s)")

        deduped = self._dedupe(sales)
        by_id = {item.id: item for item in inventory}

        def match(sale: LegacySaleV2) -> Tuple[str, Optional[LegacyInventoryV1]]:
            if sale.inventory_item_id and sale.inventory_item_id in by_id:
                return sale.inventory_item_id, by_id[sale.inventory_item_id]
            if sale.management_numbers:
                wanted = set(sale.management_numbers)
                for item in inventory:
                    if wanted.intersection(item.management_numbers):
                        return item.id, item
            return sale.inventory_item_id or f"LEGACY-{sale.id}", None

        matched = [(sale, *match(sale)) for sale in deduped.kept]
        sold_per_item: Dict[str, int] = {}
        for sale, identity, item in matched:
            if item is not None:
                sold_per_item[identity] = sold_per_item.get(identity, 0) + sale.effective_quantity

        touched: Dict[str, None] = {}
        purchases_added = 0
        for item in inventory:
            event_id = f"legacy-purchase-{item.id}"
            touched.setdefault(item.id, None)
            if self._events.has_event(event_id):
                continue
            try:
                event = self._legacy_purchase(item, event_id, sold_per_item.get(item.id, 0), migrated_at)
            except ValueError as e:
                invalid.append(f"inventory {item.id}: {e}")
                continue
            self._events.append_purchase(event)
            purchases_added += 1

        sales_added = 0
        for sale, identity, item in matched:
            event_id = _legacy_sale_event_id(sale)
            touched.setdefault(identity, None)
            if self._events.has_event(event_id):
                continue
            try:
                sale_event = self._legacy_sale(sale, identity, item, event_id, migrated_at)
            except ValueError as e:
                invalid.append(f"sale {sale.id}: {e}")
                continue
            self._events.append_sale(sale_event)
            sales_added += 1

        records = [record for record in (self.rebuild(identity) for identity in touched) if record is not None]

        logger.info(
            "Legacy ledger migration finished",
            extra={
                "records": len(records),
                "purchases_added": purchases_added,
                "sales_added": sales_added,
                "duplicates_skipped": len(deduped.duplicates),
                "invalid_records": len(invalid),
            },
        )

        return MigrationResult(
            records=records,
            purchases_added=purchases_added,
            sales_added=sales_added,
            duplicates_skipped=len(deduped.duplicates),
            invalid_records=invalid,
        )

    @staticmethod
    def _legacy_purchase(item: LegacyInventoryV1, event_id: str, sold: int, migrated_at: datetime) -> PurchaseEvent:
        # Legacy inventory rows hold the remaining stock; add back what was sold.
        counterpart = None
        if item.customer is not None and item.customer.name:
            counterpart = Counterpart(
                name=item.customer.name,
                address=item.customer.address or "",
                postal_code=item.customer.postal_code or "",
                occupation=item.customer.occupation or "",
                birth_date=parse_optional_date(item.customer.birth_date),
                id_document_ref=item.customer.id_document_ref or "",
                phone=item.customer.phone or "",
            )
        supplier = None
        if item.supplier is not None and item.supplier.name:
            supplier = Supplier(
                name=item.supplier.name,
                invoice_number=item.supplier.invoice_number or "",
                address=item.supplier.address or "",
            )
        return PurchaseEvent(
            event_id=event_id,
            identity=item.id,
            occurred_at=parse_utc_datetime(item.registered_date) if item.registered_date else migrated_at,
            quantity=max(item.quantity, 0) + sold,
            unit_price_jpy=_yen(item.unit_price_jpy),
            product=_legacy_snapshot(item),
            source=_legacy_source(item.source_type),
            performer=LEGACY_PERFORMER,
            counterpart=counterpart,
            supplier=supplier,
            application_number=item.application_number or "",
            management_numbers=tuple(item.management_numbers),
        )

    @staticmethod
    def _legacy_sale(
        sale: LegacySaleV2,
        identity: str,
        item: Optional[LegacyInventoryV1],
        event_id: str,
        migrated_at: datetime,
    ) -> SaleEvent:
        quantity = sale.effective_quantity
        total_jpy = _yen(sale.total_price_jpy)
        total_settlement = _cents(sale.sold_price_usd)
        has_own_product = bool(sale.console or sale.software_name)
        product = _legacy_snapshot(sale) if has_own_product or item is None else _legacy_snapshot(item)
        legacy_buyer = sale.buyer
        return SaleEvent(
            event_id=event_id,
            sale_id=sale.id,
            identity=identity,
            occurred_at=parse_utc_datetime(sale.sold_at) if sale.sold_at else migrated_at,
            buyer=Buyer(
                name=sale.buyer_name,
                country=(legacy_buyer.country or "") if legacy_buyer else "",
                postal_code=(legacy_buyer.postal_code or "") if legacy_buyer else "",
                address=(legacy_buyer.address or "") if legacy_buyer else "",
                email=(legacy_buyer.email or "") if legacy_buyer else "",
            ),
            quantity=quantity,
            unit_price_jpy=_yen(Decimal(total_jpy) / quantity),
            unit_price_settlement=_cents(total_settlement / quantity),
            total_price_jpy=total_jpy,
            total_price_settlement=total_settlement,
            shipping_fee_jpy=_yen(sale.shipping_fee_jpy),
            shipping_fee_settlement=_cents(sale.shipping_fee_usd),
            sales_channel=sale.sales_channel or "",
            staff=sale.sales_staff_name or "",
            management_numbers=tuple(sale.management_numbers),
            product=product,
            notes=LEGACY_NOTE,
        )


__all__ = [
    "DuplicateCleanupResult",
    "LedgerAggregator",
    "LedgerFilters",
    "LedgerPage",
    "LedgerRow",
    "MigrationResult",
    "TransactionType",
    "matches_filters",
    "purchase_event_for_lot",
]
