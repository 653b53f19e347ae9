# pickup_sdk/client.py
import logging
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from pickup.config import Settings
from pickup.core import (
    CategoryMembershipIn,
    CategoryNameIn,
    CategoryOrderIn,
    RecommendedIn,
    ReservationRequest,
    _payload,
)
from pickup.errors import AuthenticationFailure, BoundaryFailure
from pickup.models import Category, DeliveryConfig, Product, Reservation

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

ReservationId = Union[int, str]


def _one_line(text: Any) -> str:
    return " ".join(str(text).split())


def _unwrap(data: Any) -> Any:
    if isinstance(data, dict) and "response" in data:
        return data["response"]
    return data


def _error_message(r: httpx.Response, fallback: str) -> str:
    try:
        data = _unwrap(r.json())
    except ValueError:
        return fallback
    if isinstance(data, dict):
        message = data.get("message") or data.get("detail")
        if message:
            return _one_line(message)
    return fallback


def _items(data: Any, key: str) -> List[Any]:
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get(key) or []
    if not isinstance(data, list):
        raise BoundaryFailure(f"Expected a list of {key} from the server.")
    return data


def _parse(model: Type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ModelValidationError as e:
        raise BoundaryFailure(
            f"Server returned a malformed {model.__name__.lower()}.",
            details={"errors": e.errors(include_url=False)},
        ) from e


def _epoch_ms(value: float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def parse_server_time(data: Any) -> datetime:
    """Epoch milliseconds (bare or wrapped) or an ISO-8601 string."""
    if isinstance(data, dict):
        for key in ("epoch_ms", "server_time", "now"):
            if data.get(key) is not None:
                data = data[key]
                break
        else:
            raise BoundaryFailure("Server time missing from response.")

    if isinstance(data, bool):
        raise BoundaryFailure("Server time is not a timestamp.")
    if isinstance(data, (int, float)):
        return _epoch_ms(data)
    if isinstance(data, str):
        text = data.strip()
        if text.lstrip("-").isdigit():
            return _epoch_ms(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise BoundaryFailure(f"Server time is not a timestamp: {_one_line(text)}")
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise BoundaryFailure("Server time is not a timestamp.")


def _reservation_id(data: Any) -> ReservationId:
    if isinstance(data, dict):
        for key in ("id", "reservation_id", "reservationId"):
            if data.get(key) not in (None, ""):
                return data[key]
    elif isinstance(data, int) and not isinstance(data, bool):
        return data
    elif isinstance(data, str) and data.strip():
        return data.strip()
    raise BoundaryFailure("Reservation id missing from server response.")


def _flag(data: Any, *keys: str) -> bool:
    if isinstance(data, bool):
        return data
    if isinstance(data, dict):
        for key in keys:
            if key in data:
                return bool(data[key])
    raise BoundaryFailure("Unexpected eligibility response from the server.")


def _member_id(item: Any) -> int:
    if isinstance(item, dict):
        item = item.get("product_id", item.get("id"))
    try:
        return int(item)
    except (TypeError, ValueError):
        raise BoundaryFailure("Unexpected membership entry from the server.")


class PickupClient:
    """Async client for the catalog / reservation / category API."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8085",
        token: Optional[str] = None,
        timeout: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout, transport=transport
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "PickupClient":
        return cls(settings.API_BASE, token=settings.API_TOKEN, timeout=settings.REQUEST_TIMEOUT, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "PickupClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            r = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise BoundaryFailure(
                f"Could not reach the server ({e.__class__.__name__}).", details={"path": path}
            ) from e

        if r.status_code in (401, 403):
            raise AuthenticationFailure(
                _error_message(r, "Please sign in again."), status_code=r.status_code, details={"path": path}
            )
        if r.is_error:
            logger.warning("%s %s returned %s", method, path, r.status_code)
            raise BoundaryFailure(
                _error_message(r, f"Request failed ({r.status_code})."),
                status_code=r.status_code,
                details={"path": path},
            )
        if not r.content:
            return None
        try:
            return _unwrap(r.json())
        except ValueError:
            raise BoundaryFailure("Server returned an unreadable response.", status_code=r.status_code)

    # ---------------------------
    # Catalog
    # ---------------------------
    async def fetch_products(
        self, date_from: date, date_to: date, category_id: Optional[int] = None
    ) -> List[Product]:
        params = {"from": date_from.isoformat(), "to": date_to.isoformat()}
        if category_id is not None:
            params["category_id"] = str(category_id)
        data = await self._request("GET", "/api/products", params=params)
        return [_parse(Product, item) for item in _items(data, "products")]

    async def fetch_server_time(self) -> datetime:
        return parse_server_time(await self._request("GET", "/api/server-time"))

    # ---------------------------
    # Reservations
    # ---------------------------
    async def submit_reservation(
        self, product_id: int, quantity: int, pickup_date: date, amount: int
    ) -> ReservationId:
        body = ReservationRequest(product_id=product_id, quantity=quantity, pickup_date=pickup_date, amount=amount)
        data = await self._request("POST", "/api/reservations", json=_payload(body))
        return _reservation_id(data)

    async def submit_self_pickup(self, reservation_id: ReservationId) -> None:
        await self._request("PATCH", f"/api/reservations/{reservation_id}/self-pick")

    async def cancel_reservation(self, reservation_id: ReservationId) -> None:
        await self._request("DELETE", f"/api/reservations/{reservation_id}")

    async def fetch_reservations(self, date_from: date, date_to: date) -> List[Reservation]:
        params = {"from": date_from.isoformat(), "to": date_to.isoformat()}
        data = await self._request("GET", "/api/reservations", params=params)
        return [_parse(Reservation, item) for item in _items(data, "reservations")]

    async def check_self_pick_eligibility(self) -> bool:
        data = await self._request("GET", "/api/self-pick/eligibility")
        return _flag(data, "eligible", "can_self_pick", "allowed")

    async def fetch_delivery_config(self) -> DeliveryConfig:
        return _parse(DeliveryConfig, await self._request("GET", "/api/delivery/config") or {})

    # ---------------------------
    # Categories (admin)
    # ---------------------------
    async def fetch_categories(self) -> List[Category]:
        data = await self._request("GET", "/api/admin/categories")
        return [_parse(Category, item) for item in _items(data, "categories")]

    async def create_category(self, name: str) -> Optional[Category]:
        data = await self._request("POST", "/api/admin/categories", json=_payload(CategoryNameIn(name=name)))
        if isinstance(data, dict) and "id" in data:
            return _parse(Category, data)
        return None

    async def rename_category(self, category_id: int, name: str) -> None:
        await self._request("PATCH", f"/api/admin/categories/{category_id}", json=_payload(CategoryNameIn(name=name)))

    async def delete_category(self, category_id: int) -> None:
        await self._request("DELETE", f"/api/admin/categories/{category_id}")

    async def reorder_categories(self, ids: Iterable[int]) -> None:
        await self._request("PUT", "/api/admin/categories/order", json=_payload(CategoryOrderIn(ids=list(ids))))

    async def fetch_category_membership(self, category_id: int) -> List[int]:
        data = await self._request("GET", f"/api/admin/categories/{category_id}/products")
        return [_member_id(item) for item in _items(data, "product_ids")]

    async def replace_category_membership(self, category_id: int, product_ids: Iterable[int]) -> None:
        body = CategoryMembershipIn(product_ids=list(product_ids))
        await self._request("PUT", f"/api/admin/categories/{category_id}/products", json=_payload(body))

    async def set_recommended(self, product_id: int, recommended: bool) -> None:
        body = RecommendedIn(recommended=recommended)
        await self._request("PATCH", f"/api/admin/products/{product_id}/recommended", json=_payload(body))
