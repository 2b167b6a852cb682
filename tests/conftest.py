"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api modules.
"""

import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
import requests

from domain.counterpart import Counterpart
from domain.lot import InventoryLot, LotSource
from domain.product import ProductDescriptor, ProductType
from domain.rank import ConditionRank
from repositories.config import EngineSettings
from repositories.exchange_rate_repository import FixedExchangeRateSource
from repositories.zaico_client import ZaicoClient
from services.engine import build_engine

T0 = datetime(2025, 1, 10, 9, 0, 0, tzinfo=timezone.utc)

PS5 = ProductDescriptor(product_type=ProductType.CONSOLE, console="ps5", manufacturer="sony", console_label="PlayStation 5")

SELLER = Counterpart(
    name="山田 太郎",
    address="東京都千代田区1-1",
    postal_code="100-0001",
    occupation="会社員",
    birth_date=date(1985, 4, 1),
)


def build_lot(
    lot_id: str,
    quantity: int,
    price: int,
    rank: Optional[ConditionRank] = ConditionRank.A,
    descriptor: ProductDescriptor = PS5,
    management_numbers: Optional[List[str]] = None,
    external_id: Optional[str] = None,
    registered_at: datetime = T0,
    counterpart: Optional[Counterpart] = SELLER,
) -> InventoryLot:
    numbers = management_numbers if management_numbers is not None else [f"{lot_id}-{i + 1}" for i in range(quantity)]
    return InventoryLot(
        lot_id=lot_id,
        descriptor=descriptor,
        rank=rank,
        acquisition_unit_price=price,
        total_quantity=quantity,
        registered_at=registered_at,
        source=LotSource.CUSTOMER,
        management_numbers=tuple(numbers),
        external_id=external_id,
        counterpart=counterpart,
    )


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None):
        self.status_code = status_code
        self._body = body if body is not None else {}
        self.text = str(self._body)
        self.content = b"" if body is None and status_code == 204 else self.text.encode("utf-8")

    def json(self) -> Any:
        return self._body


class FakeSession:
    """
    Stand-in for requests.Session.

    Queued items are returned (or raised, for exceptions) in order; once the
    queue is empty every call returns 200 with an empty object.
    """

    def __init__(self) -> None:
        self.queue: List[Any] = []
        self.calls: List[dict] = []

    def add(self, status_code: int = 200, body: Any = None) -> "FakeSession":
        self.queue.append(FakeResponse(status_code, body))
        return self

    def fail(self, error: Exception) -> "FakeSession":
        self.queue.append(error)
        return self

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "params": params, "json": json, "headers": headers or {}, "timeout": timeout}
        )
        if not self.queue:
            return FakeResponse(200, {})
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def make_lot():
    return build_lot


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def connection_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection refused")


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(sync_base_delay_seconds=0.0, sync_page_delay_seconds=0.0)


@pytest.fixture
def engine(settings):
    """In-memory engine with sync disabled and a fixed 150 JPY/USD rate."""
    return build_engine(settings, rates=FixedExchangeRateSource(150))


@pytest.fixture
def synced_engine(settings, fake_session):
    """In-memory engine talking to a fake Zaico API."""
    client = ZaicoClient("https://zaico.test/api/v1", token="test-token", session=fake_session)
    return build_engine(settings, rates=FixedExchangeRateSource(150), zaico=client)
