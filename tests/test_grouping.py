# tests/test_grouping.py
import pytest

from pickup.config import Settings
from pickup.errors import BoundaryFailure, ValidationError
from pickup.grouping import GroupingManager, move
from pickup.models import RECOMMENDED

from conftest import make_product


async def seeded(boundary, grouping):
    boundary.add_category(1, "A", product_ids=(1, 2))
    boundary.add_category(2, "B", product_ids=(1, 4))
    boundary.add_category(3, "C")
    await grouping.refresh()


# ---------------------------
# Names
# ---------------------------
@pytest.mark.asyncio
async def test_validate_name(boundary, grouping):
    await seeded(boundary, grouping)

    assert grouping.validate_name("  Fruit ") == "Fruit"
    with pytest.raises(ValidationError):
        grouping.validate_name("   ")
    with pytest.raises(ValidationError):
        grouping.validate_name("x" * 11)
    assert grouping.validate_name("x" * 10) == "x" * 10
    with pytest.raises(ValidationError):
        grouping.validate_name("Red fruit")
    with pytest.raises(ValidationError):
        grouping.validate_name("A")
    # duplicates are case-sensitive and exclude the category being renamed
    assert grouping.validate_name("a") == "a"
    assert grouping.validate_name("A", exclude_id=1) == "A"


@pytest.mark.asyncio
async def test_create_enforces_category_limit(boundary):
    grouping = GroupingManager(boundary, Settings(_env_file=None, MAX_CATEGORY_COUNT=3))
    await seeded(boundary, grouping)

    with pytest.raises(ValidationError):
        await grouping.create("D")
    assert boundary.count("create_category") == 0


@pytest.mark.asyncio
async def test_create_refreshes(boundary, grouping):
    await seeded(boundary, grouping)
    categories = await grouping.create("Veggie")
    assert [c.name for c in categories] == ["A", "B", "C", "Veggie"]
    assert boundary.args("create_category") == [("Veggie",)]


# ---------------------------
# Recommended pseudo-category
# ---------------------------
@pytest.mark.asyncio
async def test_recommended_cannot_be_renamed_or_deleted(boundary, grouping):
    with pytest.raises(ValidationError):
        await grouping.rename(RECOMMENDED, "Best")
    with pytest.raises(ValidationError):
        await grouping.delete(RECOMMENDED)
    assert boundary.calls == []


def test_choices_start_with_recommended(grouping):
    assert grouping.choices() == [RECOMMENDED]
    assert grouping.recommended is RECOMMENDED


# ---------------------------
# Rename / delete / reorder
# ---------------------------
@pytest.mark.asyncio
async def test_rename_and_delete(boundary, grouping):
    await seeded(boundary, grouping)

    renamed = await grouping.rename(grouping.get(2), "Bread")
    assert renamed.name == "Bread"
    assert [c.name for c in grouping.categories] == ["A", "Bread", "C"]

    await grouping.delete(grouping.get(1))
    assert [c.id for c in grouping.categories] == [2, 3]
    assert boundary.args("delete_category") == [(1,)]


@pytest.mark.asyncio
async def test_rename_unknown_category_makes_no_request(boundary, grouping):
    await seeded(boundary, grouping)
    stale = grouping.get(2)
    await grouping.delete(stale)

    with pytest.raises(ValidationError):
        await grouping.rename(stale, "Bread")
    assert boundary.count("rename_category") == 0


def test_move():
    assert move([1, 2, 3, 4], 0, 2) == [2, 3, 1, 4]
    assert move([1, 2, 3, 4], 3, 0) == [4, 1, 2, 3]
    assert move([1, 2, 3], 1, 1) == [1, 2, 3]
    with pytest.raises(ValidationError):
        move([1, 2, 3], 0, 3)


@pytest.mark.asyncio
async def test_reorder_requires_exact_permutation(boundary, grouping):
    await seeded(boundary, grouping)

    for bad in ([1, 2], [1, 2, 3, 3], [1, 2, 4], [3, 2, 1, 4]):
        with pytest.raises(ValidationError):
            await grouping.reorder(bad)
    assert boundary.count("reorder_categories") == 0


@pytest.mark.asyncio
async def test_reorder_makes_order_contiguous(boundary, grouping):
    await seeded(boundary, grouping)

    categories = await grouping.reorder(move([1, 2, 3], 2, 0))
    assert [(c.id, c.order_index) for c in categories] == [(3, 0), (1, 1), (2, 2)]
    assert boundary.args("reorder_categories") == [([3, 1, 2],)]


@pytest.mark.asyncio
async def test_failed_reorder_keeps_previous_order(boundary, grouping):
    await seeded(boundary, grouping)
    boundary.fail["reorder_categories"] = BoundaryFailure("nope", status_code=500)

    with pytest.raises(BoundaryFailure):
        await grouping.reorder([3, 2, 1])
    assert [c.id for c in grouping.categories] == [1, 2, 3]


# ---------------------------
# Membership
# ---------------------------
@pytest.mark.asyncio
async def test_replace_membership_scenario(boundary, grouping):
    await seeded(boundary, grouping)

    saved = await grouping.replace_membership(grouping.get(1), [2, 3])
    assert saved == [2, 3]
    assert set(grouping.get(1).product_ids) == {2, 3}
    # no other category affected
    assert grouping.get(2).product_ids == (1, 4)
    assert set(await grouping.membership(grouping.get(1))) == {2, 3}
    assert boundary.args("replace_category_membership") == [(1, [2, 3])]


@pytest.mark.asyncio
async def test_failed_membership_save_changes_nothing(boundary, grouping):
    await seeded(boundary, grouping)
    boundary.fail["replace_category_membership"] = BoundaryFailure("nope")

    with pytest.raises(BoundaryFailure):
        await grouping.replace_membership(grouping.get(1), [2, 3])
    assert grouping.get(1).product_ids == (1, 2)


@pytest.mark.asyncio
async def test_recommended_membership_writes_only_the_difference(boundary, grouping):
    products = [make_product(1, recommended=True), make_product(2, recommended=True), make_product(3)]

    assert await grouping.membership(RECOMMENDED, products) == [1, 2]

    await grouping.replace_membership(RECOMMENDED, [2, 3], products)
    assert boundary.args("set_recommended") == [(1, False), (3, True)]
