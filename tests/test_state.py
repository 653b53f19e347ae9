# tests/test_state.py
import asyncio

import pytest

from pickup.state import (
    CatalogState,
    CatalogStore,
    InFlightGuard,
    ProductsRefreshed,
    QuantityChanged,
    ReservationCommitted,
    clamp_quantity,
    reduce,
)

from conftest import make_product


def test_clamp_quantity():
    assert clamp_quantity(3, 1, 3) == 3
    assert clamp_quantity(0, -1, 3) == 0
    assert clamp_quantity(1, 1, 3) == 2
    assert clamp_quantity(5, -1, 3) == 3


def test_increment_and_decrement_are_clamped():
    store = CatalogStore()
    store.dispatch(ProductsRefreshed((make_product(1, stock=2),)))

    for _ in range(5):
        store.dispatch(QuantityChanged(1, 1))
    assert store.draft(1) == 2

    for _ in range(5):
        store.dispatch(QuantityChanged(1, -1))
    assert store.draft(1) == 0


def test_refresh_replaces_products_and_resets_drafts():
    store = CatalogStore()
    store.dispatch(ProductsRefreshed((make_product(1), make_product(2))))
    store.dispatch(QuantityChanged(1, 2))

    state = store.dispatch(ProductsRefreshed((make_product(1, stock=4),)))
    assert [p.id for p in state.products] == [1]
    assert state.product(1).stock == 4
    assert state.draft(1) == 0
    assert state.generation == 2


def test_commit_decrements_stock_and_clears_draft():
    state = reduce(CatalogState(), ProductsRefreshed((make_product(1, stock=5), make_product(2, stock=5))))
    state = reduce(state, QuantityChanged(1, 3))
    before = state

    state = reduce(state, ReservationCommitted(1, 3))
    assert state.product(1).stock == 2
    assert state.product(2).stock == 5
    assert state.draft(1) == 0
    # previous state is untouched
    assert before.product(1).stock == 5
    assert before.draft(1) == 3


def test_unknown_product_is_a_no_op():
    state = reduce(CatalogState(), ProductsRefreshed((make_product(1),)))
    assert reduce(state, QuantityChanged(99, 1)) is state
    assert reduce(state, ReservationCommitted(99, 1)) is state


def test_unknown_event_raises():
    with pytest.raises(TypeError):
        reduce(CatalogState(), object())


def test_guard_turns_away_second_holder():
    guard = InFlightGuard()
    assert guard.try_acquire("product:1") is True
    assert guard.try_acquire("product:1") is False
    # other keys are independent
    assert guard.try_acquire("product:2") is True
    guard.release("product:1")
    assert guard.is_held("product:1") is False
    assert guard.try_acquire("product:1") is True


@pytest.mark.asyncio
async def test_guard_context_manager_releases_on_error():
    guard = InFlightGuard()

    with pytest.raises(RuntimeError):
        async with guard.holding("k") as acquired:
            assert acquired is True
            async with guard.holding("k") as again:
                assert again is False
            raise RuntimeError("boom")

    assert guard.is_held("k") is False


@pytest.mark.asyncio
async def test_guard_is_held_across_suspension():
    guard = InFlightGuard()
    release = asyncio.Event()
    results = []

    async def work():
        async with guard.holding("k") as acquired:
            results.append(acquired)
            if acquired:
                await release.wait()

    first = asyncio.create_task(work())
    await asyncio.sleep(0)
    await work()
    release.set()
    await first
    assert results == [True, False]
