"""
Engine configuration.

Settings are read from the environment, after loading a `.env` file from the
project root if one exists. Nothing here talks to a backend; the settings
object is handed to `services.engine.build_engine`.

Environment variables:
- STORAGE_BACKEND: "memory" (default) or "supabase"
- SUPABASE_URL / SUPABASE_KEY: required for the supabase backend
- ZAICO_API_URL / ZAICO_API_TOKEN: external inventory service (sync disabled if unset)
- EXCHANGE_RATE: settlement -> ledger currency rate (default 150)
- SETTLEMENT_CURRENCY / LEDGER_CURRENCY: currency codes (default USD / JPY)
- SYNC_MAX_ATTEMPTS, SYNC_BASE_DELAY_SECONDS, SYNC_PAGE_DELAY_SECONDS,
  SYNC_PAGE_SIZE, SYNC_TIMEOUT_SECONDS: retry and pagination bounds
- QUOTE_VALIDITY_MINUTES: how long a sale quote stays valid (default 15)
- LOG_LEVEL / LOG_JSON: logging setup for the API process
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_ENV_PATH = Path(__file__).parent.parent / ".env"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class EngineSettings:
    storage_backend: str = "memory"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    zaico_api_url: Optional[str] = None
    zaico_api_token: Optional[str] = None
    exchange_rate: Decimal = Decimal("150")
    settlement_currency: str = "USD"
    ledger_currency: str = "JPY"
    sync_max_attempts: int = 3
    sync_base_delay_seconds: float = 1.0
    sync_page_delay_seconds: float = 0.3
    sync_page_size: int = 1000
    sync_timeout_seconds: float = 10.0
    quote_validity_minutes: int = 15
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def sync_enabled(self) -> bool:
        return bool(self.zaico_api_url)


def load_settings(env_path: Optional[Path] = None) -> EngineSettings:
    """
    Build EngineSettings from the environment.

    Raises:
        ValueError: If a numeric variable cannot be parsed.
    """

    load_dotenv(dotenv_path=env_path or _ENV_PATH)

    return EngineSettings(
        storage_backend=os.getenv("STORAGE_BACKEND", "memory").strip().lower(),
        supabase_url=os.getenv("SUPABASE_URL") or None,
        supabase_key=os.getenv("SUPABASE_KEY") or None,
        zaico_api_url=os.getenv("ZAICO_API_URL") or None,
        zaico_api_token=os.getenv("ZAICO_API_TOKEN") or None,
        exchange_rate=Decimal(os.getenv("EXCHANGE_RATE", "150")),
        settlement_currency=os.getenv("SETTLEMENT_CURRENCY", "USD"),
        ledger_currency=os.getenv("LEDGER_CURRENCY", "JPY"),
        sync_max_attempts=int(os.getenv("SYNC_MAX_ATTEMPTS", "3")),
        sync_base_delay_seconds=float(os.getenv("SYNC_BASE_DELAY_SECONDS", "1.0")),
        sync_page_delay_seconds=float(os.getenv("SYNC_PAGE_DELAY_SECONDS", "0.3")),
        sync_page_size=int(os.getenv("SYNC_PAGE_SIZE", "1000")),
        sync_timeout_seconds=float(os.getenv("SYNC_TIMEOUT_SECONDS", "10")),
        quote_validity_minutes=int(os.getenv("QUOTE_VALIDITY_MINUTES", "15")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_env_bool("LOG_JSON", False),
    )


__all__ = ["EngineSettings", "load_settings"]
