"""
Zaico inventory service HTTP client.

This module contains *only* transport and payload mapping: one method per
remote call, each issuing a single request with a bounded timeout. Retry,
backoff and activity logging live in `services.sync_service`.

Errors are raised as `ZaicoApiError`, flagged retryable for connection errors,
timeouts, HTTP 429 and HTTP 5xx.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

import requests

from domain.lot import InventoryLot
from domain.sync import OutboundShipment, RemoteInventoryItem
from domain.time import parse_utc_datetime

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CATEGORY = "ゲーム機"
DEFAULT_PLACE = "ZAICO倉庫"
UNRANKED_LABEL = "未評価"

# Optional attribute names used by the remote inventory records.
ATTR_PURCHASE_PRICE = "仕入単価"
ATTR_BUYBACK_PRICE = "買取単価"
ATTR_RANK = "査定ランク"
ATTR_MANAGEMENT_NUMBERS = "管理番号"
ATTR_REGISTERED_DATE = "登録日"
_PURCHASE_PRICE_ATTRS = (ATTR_PURCHASE_PRICE, "purchase_price", "仕入価格")


class ZaicoApiError(Exception):
    """A single remote call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


def lot_to_inventory_payload(lot: InventoryLot, category: str = DEFAULT_CATEGORY, memo: str = "") -> Dict[str, Any]:
    """Map a lot onto the remote inventory record format."""

    return {
        "title": lot.title or lot.descriptor.title,
        "quantity": str(lot.total_quantity),
        "category": category,
        "state": lot.rank.value if lot.rank else UNRANKED_LABEL,
        "place": DEFAULT_PLACE,
        "etc": memo,
        "optional_attributes": [
            {"name": ATTR_PURCHASE_PRICE, "value": str(lot.acquisition_unit_price)},
            {"name": ATTR_BUYBACK_PRICE, "value": str(lot.acquisition_unit_price)},
            {"name": ATTR_RANK, "value": lot.rank.value if lot.rank else UNRANKED_LABEL},
            {"name": ATTR_MANAGEMENT_NUMBERS, "value": ", ".join(lot.management_numbers)},
            {"name": ATTR_REGISTERED_DATE, "value": lot.registered_at.date().isoformat()},
        ],
    }


def shipment_to_packing_slip_payload(shipment: OutboundShipment) -> Dict[str, Any]:
    return {
        "num": shipment.reference,
        "customer_name": shipment.customer_name,
        "status": "completed_delivery",
        "delivery_date": shipment.delivery_date.isoformat(),
        "memo": shipment.memo,
        "deliveries": [
            {
                "inventory_id": delivery.external_inventory_id,
                "quantity": delivery.quantity,
                "unit_price": delivery.unit_price,
            }
            for delivery in shipment.deliveries
        ],
    }


def _parse_price(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        price = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        return None
    return price if price.is_finite() else None


def parse_remote_item(row: Mapping[str, Any]) -> RemoteInventoryItem:
    """Convert one remote inventory row into a RemoteInventoryItem."""

    purchase_price: Optional[Decimal] = None
    for attribute in row.get("optional_attributes") or []:
        if attribute.get("name") in _PURCHASE_PRICE_ATTRS:
            purchase_price = _parse_price(attribute.get("value"))
            if purchase_price is not None:
                break

    try:
        quantity = int(Decimal(str(row.get("quantity") or 0)))
    except (InvalidOperation, ValueError):
        quantity = 0

    created_raw = row.get("created_at")
    return RemoteInventoryItem(
        remote_id=str(row["id"]),
        title=str(row.get("title") or ""),
        quantity=quantity,
        category=str(row.get("category") or ""),
        state=str(row.get("state") or ""),
        place=str(row.get("place") or ""),
        memo=str(row.get("etc") or row.get("memo") or ""),
        purchase_price=purchase_price or Decimal("0"),
        created_at=parse_utc_datetime(created_raw) if created_raw else None,
    )


class ZaicoClient:
    """
    Thin wrapper around the Zaico REST API.

    Args:
        base_url: API root, e.g. https://web.zaico.co.jp/api/v1
        token: API token, sent as a bearer token
        timeout: Per-request timeout in seconds
        session: Optional requests.Session (tests pass a stub)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Mapping[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = dict(self._headers)
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            response = self._session.request(
                method, url, params=params, json=json, headers=headers, timeout=self.timeout
            )
        except requests.Timeout as e:
            logger.warning("Zaico API timeout", extra={"method": method, "path": path, "timeout": self.timeout})
            raise ZaicoApiError(f"Timeout calling {method} {path}", retryable=True) from e
        except requests.ConnectionError as e:
            logger.warning("Zaico API connection error", extra={"method": method, "path": path, "error": str(e)})
            raise ZaicoApiError(f"Connection error calling {method} {path}: {e}", retryable=True) from e
        except requests.RequestException as e:
            raise ZaicoApiError(f"Request failed for {method} {path}: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
                message = body.get("message") or body.get("error") or response.text
            except ValueError:
                message = response.text
            raise ZaicoApiError(
                f"HTTP {response.status_code} from {method} {path}: {message}",
                status_code=response.status_code,
                retryable=_is_retryable_status(response.status_code),
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ZaicoApiError(f"Invalid JSON from {method} {path}", status_code=response.status_code) from e

    def get_inventories(self, page: int = 1, per_page: int = 1000) -> List[Mapping[str, Any]]:
        result = self._request("GET", "/inventories", params={"page": page, "per_page": per_page})
        if isinstance(result, list):
            return result
        data = result.get("data") if isinstance(result, Mapping) else None
        return data if isinstance(data, list) else []

    def create_inventory(self, payload: Mapping[str, Any], idempotency_key: Optional[str] = None) -> str:
        """Create a remote inventory record and return its remote id."""

        result = self._request("POST", "/inventories", json=payload, idempotency_key=idempotency_key)
        remote_id = result.get("data_id") or result.get("id") if isinstance(result, Mapping) else None
        if not remote_id:
            raise ZaicoApiError("Inventory created but no id was returned")
        return str(remote_id)

    def update_inventory(self, remote_id: str, payload: Mapping[str, Any]) -> None:
        self._request("PUT", f"/inventories/{remote_id}", json=payload)

    def create_packing_slip(self, payload: Mapping[str, Any], idempotency_key: Optional[str] = None) -> str:
        result = self._request("POST", "/packing_slips", json=payload, idempotency_key=idempotency_key)
        remote_id = result.get("data_id") or result.get("id") if isinstance(result, Mapping) else None
        return str(remote_id) if remote_id else ""


__all__ = [
    "ZaicoApiError",
    "ZaicoClient",
    "lot_to_inventory_payload",
    "parse_remote_item",
    "shipment_to_packing_slip_payload",
]
