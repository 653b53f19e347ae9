# tests/conftest.py
import asyncio
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import pytest

from pickup.clock import FixedClock
from pickup.config import Settings
from pickup.grouping import GroupingManager
from pickup.models import Category, DeliveryConfig, Product
from pickup.reservations import ReservationLifecycle
from pickup.state import CatalogStore, ProductsRefreshed
from pickup.storefront import Storefront
from pickup.windows import WindowCalculator

KST = ZoneInfo("Asia/Seoul")
TODAY = date(2025, 3, 10)
TOMORROW = TODAY + timedelta(days=1)


def kst(hour: int, minute: int = 0, second: int = 0, day: date = TODAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=KST)


def make_product(id: int = 1, **overrides) -> Product:
    data: Dict[str, Any] = {"id": id, "name": f"Product {id}", "price": 1000, "stock": 10, "sell_date": TODAY}
    data.update(overrides)
    return Product(**data)


class FakeBoundary:
    """In-memory boundary. Records every call; ``fail`` makes a call raise,
    ``gates`` holds a call until the event is set."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.products: List[Product] = []
        self.categories: Dict[int, Category] = {}
        self.reservations: list = []
        self.server_time = kst(12)
        self.eligible = True
        self.delivery = DeliveryConfig(enabled=True, min_amount=0)
        self.fail: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self._next_id = 100

    async def _call(self, name: str, *args) -> None:
        self.calls.append((name, args))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        error = self.fail.get(name)
        if error is not None:
            raise error

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def args(self, name: str) -> List[tuple]:
        return [args for call, args in self.calls if call == name]

    # catalog
    async def fetch_products(self, date_from, date_to, category_id=None):
        await self._call("fetch_products", date_from, date_to, category_id)
        return list(self.products)

    async def fetch_server_time(self):
        await self._call("fetch_server_time")
        return self.server_time

    # reservations
    async def submit_reservation(self, product_id, quantity, pickup_date, amount):
        await self._call("submit_reservation", product_id, quantity, pickup_date, amount)
        self._next_id += 1
        return self._next_id

    async def submit_self_pickup(self, reservation_id):
        await self._call("submit_self_pickup", reservation_id)

    async def cancel_reservation(self, reservation_id):
        await self._call("cancel_reservation", reservation_id)

    async def fetch_reservations(self, date_from, date_to):
        await self._call("fetch_reservations", date_from, date_to)
        return list(self.reservations)

    async def check_self_pick_eligibility(self):
        await self._call("check_self_pick_eligibility")
        return self.eligible

    async def fetch_delivery_config(self):
        await self._call("fetch_delivery_config")
        return self.delivery

    # categories
    def add_category(self, id: int, name: str, product_ids=(), order_index: Optional[int] = None) -> Category:
        category = Category(
            id=id,
            name=name,
            product_ids=tuple(product_ids),
            order_index=len(self.categories) if order_index is None else order_index,
        )
        self.categories[id] = category
        return category

    async def fetch_categories(self):
        await self._call("fetch_categories")
        return list(self.categories.values())

    async def create_category(self, name):
        await self._call("create_category", name)
        return self.add_category(max(self.categories, default=0) + 1, name)

    async def rename_category(self, category_id, name):
        await self._call("rename_category", category_id, name)
        self.categories[category_id] = self.categories[category_id].model_copy(update={"name": name})

    async def delete_category(self, category_id):
        await self._call("delete_category", category_id)
        self.categories.pop(category_id)

    async def reorder_categories(self, ids):
        await self._call("reorder_categories", list(ids))
        for i, cid in enumerate(ids):
            self.categories[cid] = self.categories[cid].model_copy(update={"order_index": i})

    async def fetch_category_membership(self, category_id):
        await self._call("fetch_category_membership", category_id)
        return list(self.categories[category_id].product_ids)

    async def replace_category_membership(self, category_id, product_ids):
        await self._call("replace_category_membership", category_id, list(product_ids))
        self.categories[category_id] = self.categories[category_id].model_copy(
            update={"product_ids": tuple(product_ids)}
        )

    async def set_recommended(self, product_id, recommended):
        await self._call("set_recommended", product_id, recommended)
        self.products = [
            p.model_copy(update={"recommended": recommended}) if p.id == product_id else p
            for p in self.products
        ]


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(kst(12))


@pytest.fixture
def boundary() -> FakeBoundary:
    return FakeBoundary()


@pytest.fixture
def windows(clock, settings) -> WindowCalculator:
    return WindowCalculator(clock, settings)


@pytest.fixture
def store() -> CatalogStore:
    return CatalogStore()


@pytest.fixture
def lifecycle(boundary, store, windows, settings) -> ReservationLifecycle:
    return ReservationLifecycle(boundary, store, windows, settings)


@pytest.fixture
def grouping(boundary, settings) -> GroupingManager:
    return GroupingManager(boundary, settings)


@pytest.fixture
def shop(boundary, settings, clock) -> Storefront:
    return Storefront(boundary, settings, clock=clock)


def load(store: CatalogStore, *products: Product) -> None:
    store.dispatch(ProductsRefreshed(tuple(products)))
