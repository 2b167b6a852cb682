"""
CSV export service for the compliance ledger.

Generates the antiques-dealer ledger as CSV: the legally mandated fields for
every record plus cost, revenue, shipping, profit, status and a compliance
flag. Non-compliant records are exported and flagged, never skipped.

Output is deterministic for the same events and `as_of` date.

Security:
- CSV Injection Prevention: Sanitizes all free-text fields to prevent formula execution
- Security Logging: Logs when dangerous characters are stripped
"""

from __future__ import annotations

import csv
import logging
from datetime import date, datetime
from io import StringIO
from typing import List, Optional, Sequence

from domain.ledger import LedgerStatus
from services.compliance_service import record_unit_price
from services.ledger_service import LedgerAggregator, LedgerFilters, LedgerRow

logger = logging.getLogger(__name__)

UTF8_BOM = "\ufeff"
EMPTY = "-"

HEADER = [
    "取引日",
    "取引種別",
    "SKU",
    "管理番号",
    "品目",
    "特徴",
    "ランク",
    "数量",
    "単価",
    "代価",
    "相手方氏名",
    "相手方住所",
    "相手方職業",
    "相手方年齢",
    "販売日",
    "販売数量",
    "販売価格",
    "販売価格(USD)",
    "送料",
    "販売原価",
    "利益",
    "販売先",
    "販売先住所",
    "状態",
    "適合",
    "不足項目",
]

_STATUS_LABELS = {
    LedgerStatus.IN_STOCK: "在庫",
    LedgerStatus.PARTIAL: "一部販売",
    LedgerStatus.SOLD: "販売済",
}


def sanitize_csv_field(value: str | None, field_name: str = "unknown") -> str:
    """
    Sanitize field to prevent CSV injection attacks with security logging.

    Strips leading characters that can trigger formula execution in Excel/Sheets:
    =, +, -, @, tab, carriage return

    If dangerous characters are found and stripped, a warning is logged for
    security monitoring.

    Args:
        value: Field value to sanitize
        field_name: Name of the field being sanitized (for logging)

    Returns:
        Sanitized string safe for CSV export

    Example:
        sanitize_csv_field("=HYPERLINK(...)", "counterpart_name")
        # Returns "HYPERLINK(...)" and logs warning about stripped "=" character
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    original_text = text
    dangerous_chars = {'=', '+', '-', '@', '\t', '\r'}

    stripped_chars = []
    while text and text[0] in dangerous_chars:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],
                "sanitized_value": text[:100],
                "modification_type": "csv_injection_prevention",
            },
        )

    return text


def _text(value: Optional[str], field_name: str) -> str:
    return sanitize_csv_field(value, field_name) or EMPTY


def _day(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value is not None else EMPTY


def _export_row(row: LedgerRow) -> List[str]:
    record = row.record
    product = record.product
    counterpart = record.counterpart
    supplier = record.supplier
    buyer = record.last_buyer
    has_sale = record.has_sale
    unit_price = record_unit_price(record)

    if counterpart is not None:
        name, address, occupation = counterpart.name, counterpart.full_address, counterpart.occupation
    elif supplier is not None:
        name, address, occupation = supplier.name, supplier.address, ""
    else:
        name = address = occupation = ""

    return [
        _day(record.first_purchase_at or record.last_sale_at),
        "販売" if has_sale else "買取",
        _text(record.identity, "identity"),
        _text(", ".join(record.management_numbers), "management_numbers"),
        _text(product.display_title if product else "", "item"),
        _text(product.features if product else "", "features"),
        product.rank.value if product and product.rank else EMPTY,
        str(record.purchase.total_quantity),
        str(unit_price) if unit_price is not None else EMPTY,
        str(record.purchase.total_cost_jpy),
        _text(name, "counterpart_name"),
        _text(address, "counterpart_address"),
        _text(occupation, "counterpart_occupation"),
        str(row.counterpart_age) if row.counterpart_age is not None else EMPTY,
        _day(record.last_sale_at) if has_sale else EMPTY,
        str(record.sale.total_quantity) if has_sale else EMPTY,
        str(record.sale.total_revenue_jpy) if has_sale else EMPTY,
        str(record.sale.total_revenue_settlement) if has_sale else EMPTY,
        str(record.sale.total_shipping_jpy) if has_sale else EMPTY,
        str(record.cost_of_sold_jpy) if has_sale else EMPTY,
        str(record.profit_jpy) if has_sale else EMPTY,
        _text(buyer.name, "buyer_name") if has_sale and buyer else EMPTY,
        _text(buyer.full_address, "buyer_address") if has_sale and buyer else EMPTY,
        _STATUS_LABELS[record.status],
        "OK" if row.is_compliant else "NG",
        " ".join(m.value for m in row.missing_fields),
    ]


def rows_to_csv(rows: Sequence[LedgerRow], include_bom: bool = True) -> str:
    """Render ledger rows as CSV, one line per record, in the given order."""

    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(HEADER)
    for row in rows:
        writer.writerow(_export_row(row))

    content = output.getvalue()
    return UTF8_BOM + content if include_bom else content


def generate_ledger_csv(
    aggregator: LedgerAggregator,
    filters: Optional[LedgerFilters] = None,
    as_of: Optional[date] = None,
    include_bom: bool = True,
) -> str:
    """
    Generate the ledger CSV for every record matching `filters` (no paging).

    Args:
        aggregator: Ledger aggregator to read records from
        filters: Optional ledger filters; paging fields are ignored
        as_of: Date used to derive counterpart ages (pass it for reproducible output)
        include_bom: Prefix a UTF-8 BOM so spreadsheet apps detect the encoding

    Returns:
        CSV content as a string

    Example:
        csv_content = generate_ledger_csv(engine.ledger, as_of=date(2025, 3, 31))
        Path("ledger.csv").write_text(csv_content, encoding="utf-8")
    """

    rows = aggregator.filtered_rows(filters, as_of)
    flagged = sum(1 for row in rows if not row.is_compliant)
    logger.info("Ledger export generated", extra={"rows": len(rows), "non_compliant_rows": flagged})
    return rows_to_csv(rows, include_bom=include_bom)


__all__ = [
    "HEADER",
    "generate_ledger_csv",
    "rows_to_csv",
    "sanitize_csv_field",
]
