"""
Domain: product descriptors.

A descriptor identifies what kind of unit a lot holds (console, software,
color) independently of which physical lot holds it. Sale lines carry a
descriptor and are matched against lots by `ProductDescriptor.matches`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .rank import ConditionRank


class ProductType(str, Enum):
    CONSOLE = "console"
    SOFTWARE = "software"


DEFAULT_TITLE = "Game product"


@dataclass(frozen=True, slots=True)
class ProductDescriptor:
    product_type: ProductType
    console: str
    manufacturer: str = ""
    color: str = ""
    software_name: str = ""

    # Display labels (free text, not used for matching)
    manufacturer_label: str = ""
    console_label: str = ""
    color_label: str = ""

    def matches(self, candidate: "ProductDescriptor") -> bool:
        """
        Decide whether a lot with descriptor `candidate` can fill a request for `self`.

        - The console must match.
        - Color only constrains the match when the request names one.
        - Software requests must match the software title.
        """

        if candidate.console != self.console:
            return False
        if self.color and candidate.color != self.color:
            return False
        if self.product_type == ProductType.SOFTWARE and candidate.software_name != self.software_name:
            return False
        return True

    @property
    def title(self) -> str:
        if self.product_type == ProductType.SOFTWARE and self.software_name:
            return f"{self.software_name} ({self.console_label or self.console})"
        return self.console_label or self.software_name or self.console or DEFAULT_TITLE

    @property
    def search_terms(self) -> tuple[str, ...]:
        """Text fields the ledger's product search runs over."""

        return tuple(
            value
            for value in (
                self.title,
                self.console_label,
                self.software_name,
                self.manufacturer_label,
            )
            if value
        )


@dataclass(frozen=True, slots=True)
class ProductSnapshot:
    """
    Product state captured on a ledger event.

    Ledger records must stay readable even after the lot is sold out and
    removed, so every event carries what was known about the item at the time.
    """

    descriptor: ProductDescriptor
    rank: Optional[ConditionRank] = None
    title: str = ""

    @property
    def display_title(self) -> str:
        return self.title or self.descriptor.title

    @property
    def features(self) -> str:
        """Distinguishing features: color and condition rank."""

        parts = []
        color = self.descriptor.color_label or self.descriptor.color
        if color:
            parts.append(color)
        if self.rank is not None:
            parts.append(f"Rank:{self.rank.value}")
        return " ".join(parts)
