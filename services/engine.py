"""
Engine wiring.

Builds every component from EngineSettings with the stores and collaborators
injected explicitly. There are no module-level singletons: the API, the
scripts and the tests each build their own Engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from repositories.config import EngineSettings
from repositories.exchange_rate_repository import ExchangeRateSource, FixedExchangeRateSource
from repositories.store import (
    InMemoryLedgerEventStore,
    InMemoryLotStore,
    InMemorySyncLogStore,
    LedgerEventStore,
    LotStore,
    SyncLogStore,
)
from repositories.zaico_client import ZaicoClient
from services.compliance_service import ComplianceValidator
from services.inventory_allocation_service import InventoryAllocator
from services.inventory_import_service import InventoryImportService
from services.ledger_service import LedgerAggregator
from services.lot_intake_service import LotIntakeService
from services.sale_finalization_service import SaleFinalizer
from services.sync_service import ExternalSyncAdapter, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    settings: EngineSettings
    lots: LotStore
    events: LedgerEventStore
    sync_log: SyncLogStore
    rates: ExchangeRateSource
    allocator: InventoryAllocator
    ledger: LedgerAggregator
    sync: ExternalSyncAdapter
    finalizer: SaleFinalizer
    intake: LotIntakeService
    importer: InventoryImportService


def build_engine(
    settings: Optional[EngineSettings] = None,
    *,
    lots: Optional[LotStore] = None,
    events: Optional[LedgerEventStore] = None,
    sync_log: Optional[SyncLogStore] = None,
    rates: Optional[ExchangeRateSource] = None,
    zaico: Optional[ZaicoClient] = None,
) -> Engine:
    """
    Assemble an Engine.

    Stores not passed explicitly come from the configured backend
    ("memory" or "supabase"). A Zaico client is created when ZAICO_API_URL is
    set; without one every push is logged as skipped.

    Raises:
        ValueError: On an unknown storage backend
        RuntimeError: If the supabase backend is selected without credentials
    """

    settings = settings or EngineSettings()

    if settings.storage_backend == "supabase":
        from repositories.client import get_supabase_client
        from repositories.exchange_rate_repository import SupabaseExchangeRateSource
        from repositories.ledger_event_repository import SupabaseLedgerEventStore
        from repositories.lot_repository import SupabaseLotStore
        from repositories.sync_log_repository import SupabaseSyncLogStore

        client = get_supabase_client(settings)
        lots = lots if lots is not None else SupabaseLotStore(client)
        events = events if events is not None else SupabaseLedgerEventStore(client)
        sync_log = sync_log if sync_log is not None else SupabaseSyncLogStore(client)
        rates = rates if rates is not None else SupabaseExchangeRateSource(
            client,
            base_currency=settings.settlement_currency,
            quote_currency=settings.ledger_currency,
            fallback=settings.exchange_rate,
        )
    elif settings.storage_backend == "memory":
        lots = lots if lots is not None else InMemoryLotStore()
        events = events if events is not None else InMemoryLedgerEventStore()
        sync_log = sync_log if sync_log is not None else InMemorySyncLogStore()
        rates = rates if rates is not None else FixedExchangeRateSource(settings.exchange_rate)
    else:
        raise ValueError(f"Unknown storage backend: {settings.storage_backend!r}")

    if zaico is None and settings.sync_enabled:
        zaico = ZaicoClient(
            settings.zaico_api_url or "",
            token=settings.zaico_api_token,
            timeout=settings.sync_timeout_seconds,
        )

    allocator = InventoryAllocator(lots)
    ledger = LedgerAggregator(events, ComplianceValidator())
    sync = ExternalSyncAdapter(
        zaico,
        sync_log,
        retry=RetryPolicy(
            max_attempts=settings.sync_max_attempts,
            base_delay_seconds=settings.sync_base_delay_seconds,
        ),
        page_size=settings.sync_page_size,
        page_delay_seconds=settings.sync_page_delay_seconds,
    )

    logger.info(
        "Engine built",
        extra={"storage_backend": settings.storage_backend, "sync_enabled": sync.enabled},
    )

    return Engine(
        settings=settings,
        lots=lots,
        events=events,
        sync_log=sync_log,
        rates=rates,
        allocator=allocator,
        ledger=ledger,
        sync=sync,
        finalizer=SaleFinalizer(
            allocator, ledger, sync, rates, quote_validity_minutes=settings.quote_validity_minutes
        ),
        intake=LotIntakeService(lots, ledger, sync),
        importer=InventoryImportService(lots, ledger, sync),
    )


__all__ = ["Engine", "build_engine"]
