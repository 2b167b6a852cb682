"""
Compliance validation for the antiques-dealer ledger.

Every ledger record must carry the legally mandated fields:
transaction date, item description, distinguishing features, quantity, unit
price, and the counterpart's name, address, occupation and age.

Non-compliant records are flagged, never dropped: the ledger view and the
export keep every row and mark the missing fields.
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import List, Optional

from domain.errors import ComplianceViolation
from domain.ledger import LedgerRecord
from domain.time import utc_now

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.25


class MissingField(str, Enum):
    TRANSACTION_DATE = "transaction_date"
    ITEM_DESCRIPTION = "item_description"
    FEATURES = "features"
    QUANTITY = "quantity"
    UNIT_PRICE = "unit_price"
    COUNTERPART_NAME = "counterpart_name"
    COUNTERPART_ADDRESS = "counterpart_address"
    COUNTERPART_OCCUPATION = "counterpart_occupation"
    COUNTERPART_AGE = "counterpart_age"


def age_in_years(birth_date: date, as_of: date) -> int:
    """
    Age in whole years using a 365.25-day year.

    Derived at validation time; ages are never stored.
    """

    return int((as_of - birth_date).days // DAYS_PER_YEAR)


def record_unit_price(record: LedgerRecord) -> Optional[int]:
    """Acquisition unit price, else the last sale's unit price for sale-only records."""

    if record.unit_price_jpy is not None:
        return record.unit_price_jpy
    if record.sale.events:
        return record.sale.events[-1].unit_price_jpy
    return None


class ComplianceValidator:
    """
    Checks ledger records for mandated fields.

    Corporate suppliers have no occupation or age; records sourced from a
    supplier only need the supplier's name and address.
    """

    def validate(self, record: LedgerRecord, as_of: Optional[date] = None) -> List[MissingField]:
        as_of = as_of or utc_now().date()
        missing: List[MissingField] = []

        if record.activity_at is None:
            missing.append(MissingField.TRANSACTION_DATE)

        product = record.product
        if product is None or not product.display_title:
            missing.append(MissingField.ITEM_DESCRIPTION)
        if product is None or not product.features:
            missing.append(MissingField.FEATURES)

        if record.purchase.total_quantity <= 0 and record.sale.total_quantity <= 0:
            missing.append(MissingField.QUANTITY)
        if record_unit_price(record) is None:
            missing.append(MissingField.UNIT_PRICE)

        counterpart = record.counterpart
        if counterpart is not None:
            if not counterpart.name.strip():
                missing.append(MissingField.COUNTERPART_NAME)
            if not counterpart.full_address:
                missing.append(MissingField.COUNTERPART_ADDRESS)
            if not counterpart.occupation.strip():
                missing.append(MissingField.COUNTERPART_OCCUPATION)
            if counterpart.birth_date is None or counterpart.birth_date > as_of:
                missing.append(MissingField.COUNTERPART_AGE)
        elif record.supplier is not None:
            if not record.supplier.name.strip():
                missing.append(MissingField.COUNTERPART_NAME)
            if not record.supplier.address.strip():
                missing.append(MissingField.COUNTERPART_ADDRESS)
        else:
            missing.extend(
                [
                    MissingField.COUNTERPART_NAME,
                    MissingField.COUNTERPART_ADDRESS,
                    MissingField.COUNTERPART_OCCUPATION,
                    MissingField.COUNTERPART_AGE,
                ]
            )

        return missing

    def counterpart_age(self, record: LedgerRecord, as_of: Optional[date] = None) -> Optional[int]:
        if record.counterpart is None or record.counterpart.birth_date is None:
            return None
        as_of = as_of or utc_now().date()
        if record.counterpart.birth_date > as_of:
            return None
        return age_in_years(record.counterpart.birth_date, as_of)

    def require_compliant(self, record: LedgerRecord, as_of: Optional[date] = None) -> None:
        """
        Raise ComplianceViolation when a mandated field is missing.

        Advisory: callers that want strictness catch it and decide; the engine
        itself never refuses to display or export a record.
        """

        missing = self.validate(record, as_of)
        if missing:
            logger.info(
                "Ledger record is not compliant",
                extra={"identity": record.identity, "missing": [m.value for m in missing]},
            )
            raise ComplianceViolation(record.identity, [m.value for m in missing])


__all__ = ["ComplianceValidator", "MissingField", "age_in_years", "record_unit_price"]
