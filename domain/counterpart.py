"""
Domain: transaction counterparts.

- Counterpart: the individual who sold goods to the business (buyback). The
  antiques-dealer ledger must record name, address, occupation and age.
- Supplier: a business the goods were bought from.
- Buyer: the customer a sale ships to.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True, slots=True)
class Counterpart:
    name: str
    address: str = ""
    postal_code: str = ""
    occupation: str = ""
    birth_date: Optional[date] = None
    id_document_ref: str = ""
    phone: str = ""

    @property
    def full_address(self) -> str:
        return f"{self.postal_code} {self.address}".strip()


@dataclass(frozen=True, slots=True)
class Supplier:
    name: str
    invoice_number: str = ""
    address: str = ""


@dataclass(frozen=True, slots=True)
class Buyer:
    name: str
    buyer_id: str = ""
    country: str = ""
    postal_code: str = ""
    address: str = ""
    email: str = ""

    @property
    def full_address(self) -> str:
        return " ".join(part for part in (self.postal_code, self.address, self.country) if part)
