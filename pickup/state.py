from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import AsyncIterator, Mapping, Optional, Set, Tuple, Union

from .models import Product

# Client-side catalog state. Every change is an event applied by reduce();
# a refresh from the boundary replaces the product list wholesale.


def clamp_quantity(current: int, delta: int, stock: int) -> int:
    return max(0, min(stock, current + delta))


@dataclass(frozen=True)
class CatalogState:
    products: Tuple[Product, ...] = ()
    drafts: Mapping[int, int] = field(default_factory=dict)
    generation: int = 0

    def product(self, product_id: int) -> Optional[Product]:
        for p in self.products:
            if p.id == product_id:
                return p
        return None

    def draft(self, product_id: int) -> int:
        return self.drafts.get(product_id, 0)


@dataclass(frozen=True)
class ProductsRefreshed:
    products: Tuple[Product, ...]


@dataclass(frozen=True)
class QuantityChanged:
    product_id: int
    delta: int


@dataclass(frozen=True)
class ReservationCommitted:
    product_id: int
    quantity: int


Event = Union[ProductsRefreshed, QuantityChanged, ReservationCommitted]


def reduce(state: CatalogState, event: Event) -> CatalogState:
    if isinstance(event, ProductsRefreshed):
        return CatalogState(products=tuple(event.products), drafts={}, generation=state.generation + 1)

    if isinstance(event, QuantityChanged):
        product = state.product(event.product_id)
        if product is None:
            return state
        drafts = dict(state.drafts)
        drafts[product.id] = clamp_quantity(state.draft(product.id), event.delta, product.stock)
        return replace(state, drafts=drafts)

    if isinstance(event, ReservationCommitted):
        product = state.product(event.product_id)
        if product is None:
            return state
        remaining = max(0, product.stock - event.quantity)
        products = tuple(
            p.model_copy(update={"stock": remaining}) if p.id == product.id else p
            for p in state.products
        )
        drafts = dict(state.drafts)
        drafts[product.id] = 0
        return replace(state, products=products, drafts=drafts)

    raise TypeError(f"unknown event: {event!r}")


class CatalogStore:
    """Owner of the current CatalogState."""

    def __init__(self, state: Optional[CatalogState] = None) -> None:
        self.state = state or CatalogState()

    def dispatch(self, event: Event) -> CatalogState:
        self.state = reduce(self.state, event)
        return self.state

    @property
    def products(self) -> Tuple[Product, ...]:
        return self.state.products

    def product(self, product_id: int) -> Optional[Product]:
        return self.state.product(product_id)

    def draft(self, product_id: int) -> int:
        return self.state.draft(product_id)


class InFlightGuard:
    """Per-key exclusion: a second caller for a held key is turned away, not queued."""

    def __init__(self) -> None:
        self._held: Set[str] = set()

    def is_held(self, key: str) -> bool:
        return key in self._held

    def try_acquire(self, key: str) -> bool:
        if key in self._held:
            return False
        self._held.add(key)
        return True

    def release(self, key: str) -> None:
        self._held.discard(key)

    @asynccontextmanager
    async def holding(self, key: str) -> AsyncIterator[bool]:
        if not self.try_acquire(key):
            yield False
            return
        try:
            yield True
        finally:
            self.release(key)
