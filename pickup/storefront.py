"""
Storefront: wires the clock, windows, catalog store, reservation lifecycle and
category manager around one boundary client. This is what a UI drives.
"""
import logging
from datetime import date
from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

from .clock import ClockSynchronizer
from .config import Settings, get_settings
from .grouping import GroupingManager, move
from .models import (
    Category,
    CategoryRef,
    DeliveryIntent,
    Product,
    ProductView,
    RecommendedCategory,
    Reservation,
    ReservationOutcome,
)
from .ranking import rank_products
from .reservations import ReservationId, ReservationLifecycle
from .state import CatalogStore, ProductsRefreshed
from .windows import WindowCalculator, available_dates, closest_date_with_results, resolve_active_date

if TYPE_CHECKING:
    from pickup_sdk.client import PickupClient

logger = logging.getLogger(__name__)


class Storefront:
    def __init__(self, boundary: "PickupClient", settings: Optional[Settings] = None, clock=None) -> None:
        self.boundary = boundary
        self.settings = settings or get_settings()
        self.synchronizer: Optional[ClockSynchronizer] = None
        if clock is None:
            self.synchronizer = ClockSynchronizer(
                boundary.fetch_server_time, interval=self.settings.CLOCK_SYNC_INTERVAL_SECONDS
            )
            clock = self.synchronizer
        self.clock = clock
        self.windows = WindowCalculator(clock, self.settings)
        self.store = CatalogStore()
        self.reservations = ReservationLifecycle(boundary, self.store, self.windows, self.settings)
        self.grouping = GroupingManager(boundary, self.settings)
        self._closed = False

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def start(self) -> None:
        if self.synchronizer is not None:
            await self.synchronizer.sync()
            self.synchronizer.start(immediate=False)
        await self.refresh_products()

    async def close(self) -> None:
        self._closed = True
        self.reservations.dispose()
        if self.synchronizer is not None:
            await self.synchronizer.stop()

    @property
    def is_clock_stale(self) -> bool:
        return self.synchronizer is not None and self.synchronizer.is_stale

    # ---------------------------
    # Catalog
    # ---------------------------
    def horizon(self) -> List[date]:
        return self.windows.horizon()

    async def refresh_products(self, category: Optional[CategoryRef] = None) -> Tuple[Product, ...]:
        date_from, date_to = self.windows.bounds()
        category_id = category.id if isinstance(category, Category) else None
        products = await self.boundary.fetch_products(date_from, date_to, category_id=category_id)
        if self._closed:
            logger.info("Discarding late product refresh (%d products)", len(products))
            return self.store.products
        self.store.dispatch(ProductsRefreshed(tuple(products)))
        return self.store.products

    def listing(
        self,
        active_date: date,
        term: Optional[str] = None,
        category: Optional[CategoryRef] = None,
    ) -> List[ProductView]:
        ranked = rank_products(
            self.store.products, active_date, self.windows.now(), self.windows.tz, term=term, category=category
        )
        return [self.windows.view(p, self.store.draft(p.id)) for p in ranked]

    def available_dates(self, term: Optional[str] = None) -> List[date]:
        return available_dates(self.store.products, self.horizon(), term)

    def active_date(self, current: date, term: Optional[str] = None) -> date:
        return resolve_active_date(current, self.available_dates(term))

    def closest_date(self, active_date: date, term: Optional[str]) -> Optional[date]:
        return closest_date_with_results(self.store.products, self.horizon(), active_date, term)

    # ---------------------------
    # Reservations
    # ---------------------------
    def increment(self, product_id: int) -> int:
        return self.reservations.increment(product_id)

    def decrement(self, product_id: int) -> int:
        return self.reservations.decrement(product_id)

    async def reserve(self, product_id: int) -> Optional[ReservationOutcome]:
        return await self.reservations.submit(product_id)

    async def choose_self_pickup(self, reservation_id: ReservationId) -> Optional[Reservation]:
        return await self.reservations.choose_self_pickup(reservation_id)

    async def choose_delivery(self, reservation_id: ReservationId) -> Optional[DeliveryIntent]:
        return await self.reservations.choose_delivery(reservation_id)

    async def cancel(self, reservation_id: ReservationId) -> Optional[Reservation]:
        return await self.reservations.cancel(reservation_id)

    async def my_reservations(
        self, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> List[Reservation]:
        if date_from is None:
            date_from = self.windows.now().astimezone(self.windows.tz).date()
        if date_to is None:
            date_to = self.windows.bounds()[1]
        return await self.reservations.refresh_reservations(date_from, date_to)

    # ---------------------------
    # Categories
    # ---------------------------
    def categories(self) -> List[CategoryRef]:
        return self.grouping.choices()

    async def refresh_categories(self) -> List[Category]:
        return await self.grouping.refresh()

    async def create_category(self, name: str) -> List[Category]:
        return await self.grouping.create(name)

    async def rename_category(self, category: CategoryRef, name: str) -> Category:
        return await self.grouping.rename(category, name)

    async def delete_category(self, category: CategoryRef) -> List[Category]:
        return await self.grouping.delete(category)

    async def reorder_categories(self, ids_in_order: Iterable[int]) -> List[Category]:
        return await self.grouping.reorder(ids_in_order)

    async def move_category(self, from_index: int, to_index: int) -> List[Category]:
        ids = [c.id for c in self.grouping.categories]
        return await self.grouping.reorder(move(ids, from_index, to_index))

    async def category_membership(self, category: CategoryRef) -> List[int]:
        return await self.grouping.membership(category, self.store.products)

    async def replace_category_membership(self, category: CategoryRef, product_ids: Iterable[int]) -> List[int]:
        try:
            return await self.grouping.replace_membership(category, product_ids, self.store.products)
        finally:
            if isinstance(category, RecommendedCategory):
                # recommended flags live on the products; reload even after a partial save
                await self.refresh_products()
