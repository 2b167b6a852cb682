"""
Exchange rate sources.

A source returns the current settlement -> ledger currency rate (e.g. JPY per
USD). The pricing calculator snapshots whatever the source returns when a
quote is built; sources themselves hold no snapshot state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from supabase import Client  # type: ignore[import-not-found]

DEFAULT_RATE = Decimal("150")


class ExchangeRateSource(ABC):
    @abstractmethod
    def current_rate(self) -> Decimal:
        ...


class FixedExchangeRateSource(ExchangeRateSource):
    """Configured rate; the default for local runs and tests."""

    def __init__(self, rate: Decimal = DEFAULT_RATE):
        self._rate = Decimal(rate)

    def current_rate(self) -> Decimal:
        return self._rate

    def set_rate(self, rate: Decimal) -> None:
        self._rate = Decimal(rate)


class SupabaseExchangeRateSource(ExchangeRateSource):
    """
    Reads the active rate from the `exchange_rates` table.

    Only the row with no `effective_to` is active, as with pricing rules.
    Falls back to `fallback` when no active row exists.
    """

    def __init__(
        self,
        client: Client,
        base_currency: str = "USD",
        quote_currency: str = "JPY",
        fallback: Optional[Decimal] = DEFAULT_RATE,
    ):
        self._client = client
        self._base = base_currency
        self._quote = quote_currency
        self._fallback = fallback

    def current_rate(self) -> Decimal:
        response = (
            self._client.table("exchange_rates")
            .select("rate")
            .eq("base_currency", self._base)
            .eq("quote_currency", self._quote)
            .is_("effective_to", "null")
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to fetch exchange rate: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            if self._fallback is None:
                raise RuntimeError(f"No active exchange rate for {self._base}/{self._quote}")
            return self._fallback
        return Decimal(str(rows[0]["rate"]))


__all__ = ["DEFAULT_RATE", "ExchangeRateSource", "FixedExchangeRateSource", "SupabaseExchangeRateSource"]
