"""
Ranking & filtering of the product list for one pickup date.

Display order:
  0  orderable now (open, in stock)
  1  opening later today (in stock, not yet open), soonest first
  2  sold out

Every sort key ends with the product id, so the result does not depend on
the order the products arrived in.
"""
from datetime import date, datetime, tzinfo
from typing import Iterable, List, Optional, Tuple

from .models import CategoryRef, Product, RecommendedCategory
from .windows import is_open, sell_instant

RANK_OPEN = 0
RANK_PENDING = 1
RANK_SOLD_OUT = 2

_NO_INSTANT = datetime.max


def rank_of(product: Product, now: datetime, tz: tzinfo) -> int:
    if product.stock <= 0:
        return RANK_SOLD_OUT
    return RANK_OPEN if is_open(product, now, tz) else RANK_PENDING


def _order_index_key(product: Product) -> Tuple[int, int]:
    # undefined order_index sorts after any defined value
    if product.order_index is None:
        return (1, 0)
    return (0, product.order_index)


def sort_key(product: Product, now: datetime, tz: tzinfo) -> tuple:
    rank = rank_of(product, now, tz)
    if rank == RANK_OPEN:
        return (rank, _order_index_key(product), -product.total_sold, -product.stock, product.id)
    if rank == RANK_PENDING:
        instant = sell_instant(product, tz)
        opens_at = instant.replace(tzinfo=None) if instant is not None else _NO_INSTANT
        return (rank, opens_at, _order_index_key(product), product.id)
    return (rank, _order_index_key(product), -product.total_sold, product.id)


def matches_search(name: str, term: Optional[str]) -> bool:
    query = (term or "").strip().lower()
    if not query:
        return True
    return query in name.lower()


def matches_category(product: Product, category: Optional[CategoryRef]) -> bool:
    if category is None:
        return True
    if isinstance(category, RecommendedCategory):
        return product.recommended
    return product.id in category.product_ids


def filter_products(
    products: Iterable[Product],
    active_date: date,
    term: Optional[str] = None,
    category: Optional[CategoryRef] = None,
) -> List[Product]:
    out = []
    for p in products:
        if p.sell_date != active_date:
            continue
        if not matches_category(p, category):
            continue
        if not matches_search(p.name, term):
            continue
        out.append(p)
    return out


def rank_products(
    products: Iterable[Product],
    active_date: date,
    now: datetime,
    tz: tzinfo,
    term: Optional[str] = None,
    category: Optional[CategoryRef] = None,
) -> List[Product]:
    selected = filter_products(products, active_date, term=term, category=category)
    return sorted(selected, key=lambda p: sort_key(p, now, tz))
