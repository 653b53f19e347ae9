"""
Pickup windows and per-product open state.

The horizon is a rolling list of pickup dates in the shop's time zone. Once
the daily reservation deadline passes, today is no longer orderable and the
horizon starts tomorrow.

A product opens on its sell date. If it also carries a sell time, it opens at
that exact instant; before then it is visible but pending. Sold out always
wins over not-yet-open.
"""
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import Settings
from .models import Product, ProductState, ProductView


# ---------------------------
# Horizon
# ---------------------------
def compute_horizon(now: datetime, cutoff: time, horizon_length: int, tz: tzinfo) -> List[date]:
    local = now.astimezone(tz)
    start = local.date()
    if local.time() >= cutoff:
        start += timedelta(days=1)
    return [start + timedelta(days=i) for i in range(horizon_length)]


def horizon_bounds(now: datetime, cutoff: time, horizon_length: int, tz: tzinfo) -> Tuple[date, date]:
    days = compute_horizon(now, cutoff, horizon_length, tz)
    return days[0], days[-1]


def cutoff_instant(day: date, at: time, tz: tzinfo) -> datetime:
    return datetime.combine(day, at, tzinfo=tz)


# ---------------------------
# Product state
# ---------------------------
def sell_instant(product: Product, tz: tzinfo) -> Optional[datetime]:
    if product.sell_date is None or product.sell_time is None:
        return None
    return datetime.combine(product.sell_date, product.sell_time.replace(tzinfo=None), tzinfo=tz)


def is_open(product: Product, now: datetime, tz: tzinfo) -> bool:
    if product.stock <= 0:
        return False
    if product.sell_date is None:
        return False
    instant = sell_instant(product, tz)
    if instant is None:
        return now.astimezone(tz).date() >= product.sell_date
    return now >= instant


def product_state(product: Product, now: datetime, tz: tzinfo) -> ProductState:
    if product.stock <= 0:
        return ProductState.SOLD_OUT
    if is_open(product, now, tz):
        return ProductState.OPEN
    return ProductState.PENDING_OPEN


def open_countdown(product: Product, now: datetime, tz: tzinfo) -> Optional[timedelta]:
    """Time left until the product opens, floored to whole minutes."""
    instant = sell_instant(product, tz)
    if instant is None:
        return None
    remaining = instant - now
    if remaining <= timedelta(0):
        return None
    return timedelta(minutes=int(remaining.total_seconds() // 60))


def format_countdown(delta: timedelta) -> str:
    total_minutes = int(delta.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


# ---------------------------
# Date buckets
# ---------------------------
def _matches_term(product: Product, term: Optional[str]) -> bool:
    query = (term or "").strip().lower()
    return not query or query in product.name.lower()


def bucket_by_date(products: Iterable[Product], horizon: Sequence[date]) -> Dict[date, List[Product]]:
    buckets: Dict[date, List[Product]] = {d: [] for d in horizon}
    for p in products:
        if p.sell_date is None:
            continue
        bucket = buckets.get(p.sell_date)
        if bucket is not None:
            bucket.append(p)
    return buckets


def available_dates(products: Iterable[Product], horizon: Sequence[date], term: Optional[str] = None) -> List[date]:
    buckets = bucket_by_date((p for p in products if _matches_term(p, term)), horizon)
    return [d for d in horizon if buckets[d]]


def resolve_active_date(current: date, available: Sequence[date]) -> date:
    if not available or current in available:
        return current
    return available[0]


def closest_date_with_results(
    products: Iterable[Product],
    horizon: Sequence[date],
    active_date: date,
    term: Optional[str],
) -> Optional[date]:
    if not (term or "").strip():
        return None
    index = {d: i for i, d in enumerate(horizon)}
    if active_date not in index:
        return None
    best: Optional[date] = None
    best_distance = None
    for p in products:
        if p.sell_date not in index or not _matches_term(p, term):
            continue
        distance = abs(index[p.sell_date] - index[active_date])
        if best_distance is None or distance < best_distance:
            best, best_distance = p.sell_date, distance
    return best


# ---------------------------
# Calculator bound to a clock
# ---------------------------
class WindowCalculator:
    def __init__(self, clock, settings: Settings) -> None:
        self.clock = clock
        self.settings = settings
        self.tz = settings.tz

    def now(self) -> datetime:
        return self.clock.now()

    def horizon(self) -> List[date]:
        return compute_horizon(
            self.now(), self.settings.RESERVATION_DEADLINE, self.settings.HORIZON_DAYS, self.tz
        )

    def bounds(self) -> Tuple[date, date]:
        days = self.horizon()
        return days[0], days[-1]

    def is_valid_pickup_date(self, day: Optional[date]) -> bool:
        return day is not None and day in self.horizon()

    def state_of(self, product: Product) -> ProductState:
        return product_state(product, self.now(), self.tz)

    def is_open(self, product: Product) -> bool:
        return is_open(product, self.now(), self.tz)

    def countdown(self, product: Product) -> Optional[timedelta]:
        if product.stock <= 0:
            return None
        return open_countdown(product, self.now(), self.tz)

    def view(self, product: Product, draft_quantity: int = 0) -> ProductView:
        now = self.now()
        state = product_state(product, now, self.tz)
        countdown = open_countdown(product, now, self.tz) if state is ProductState.PENDING_OPEN else None
        return ProductView(
            product=product,
            state=state,
            countdown=countdown,
            countdown_label=format_countdown(countdown) if countdown is not None else None,
            draft_quantity=draft_quantity,
        )

    def cancellation_instant(self, pickup_date: date) -> datetime:
        return cutoff_instant(pickup_date, self.settings.CANCELLATION_DEADLINE, self.tz)

    def pickup_deadline_instant(self, pickup_date: date) -> datetime:
        return cutoff_instant(pickup_date, self.settings.PICKUP_DEADLINE, self.tz)

    def is_before_cancellation_cutoff(self, pickup_date: date) -> bool:
        return self.now() < self.cancellation_instant(pickup_date)
