import logging
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence, Tuple

from .config import Settings
from .errors import ValidationError
from .models import RECOMMENDED, Category, CategoryRef, Product, RecommendedCategory

if TYPE_CHECKING:
    from pickup_sdk.client import PickupClient

logger = logging.getLogger(__name__)


def move(ids: Sequence[int], from_index: int, to_index: int) -> List[int]:
    """Full ordering after dragging the item at ``from_index`` to ``to_index``."""
    out = list(ids)
    if not (0 <= from_index < len(out) and 0 <= to_index < len(out)):
        raise ValidationError(
            "Position is out of range.",
            details={"from_index": from_index, "to_index": to_index, "size": len(out)},
        )
    item = out.pop(from_index)
    out.insert(to_index, item)
    return out


def _reject_recommended(category: CategoryRef, action: str) -> None:
    if isinstance(category, RecommendedCategory):
        raise ValidationError(f"The recommended category cannot be {action}.")


class GroupingManager:
    """Admin-defined categories plus the always-present recommended pseudo-category."""

    def __init__(self, boundary: "PickupClient", settings: Settings) -> None:
        self.boundary = boundary
        self.settings = settings
        self._categories: Tuple[Category, ...] = ()

    @property
    def categories(self) -> List[Category]:
        return sorted(self._categories, key=lambda c: (c.order_index, c.id))

    @property
    def recommended(self) -> RecommendedCategory:
        return RECOMMENDED

    def choices(self) -> List[CategoryRef]:
        return [RECOMMENDED, *self.categories]

    def get(self, category_id: int) -> Category:
        for c in self._categories:
            if c.id == category_id:
                return c
        raise ValidationError("Unknown category.", details={"category_id": category_id})

    def validate_name(self, name: Optional[str], exclude_id: Optional[int] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required.")
        limit = self.settings.CATEGORY_NAME_MAX_LENGTH
        if len(name) > limit:
            raise ValidationError(f"Category name must be at most {limit} characters.", details={"name": name})
        if any(ch.isspace() for ch in name):
            raise ValidationError("Category name cannot contain spaces.", details={"name": name})
        for c in self._categories:
            if c.name == name and c.id != exclude_id:
                raise ValidationError(f"Category '{name}' already exists.", details={"name": name})
        return name

    # ---------------------------
    # Category CRUD
    # ---------------------------
    async def refresh(self) -> List[Category]:
        self._categories = tuple(await self.boundary.fetch_categories())
        return self.categories

    async def create(self, name: str) -> List[Category]:
        name = self.validate_name(name)
        limit = self.settings.MAX_CATEGORY_COUNT
        if len(self._categories) >= limit:
            raise ValidationError(f"At most {limit} categories can be created.")
        await self.boundary.create_category(name)
        logger.info("Created category %r", name)
        return await self.refresh()

    async def rename(self, category: CategoryRef, name: str) -> Category:
        _reject_recommended(category, "renamed")
        current = self.get(category.id)
        name = self.validate_name(name, exclude_id=current.id)
        await self.boundary.rename_category(current.id, name)
        updated = current.model_copy(update={"name": name})
        self._replace(updated)
        return updated

    async def delete(self, category: CategoryRef) -> List[Category]:
        _reject_recommended(category, "deleted")
        await self.boundary.delete_category(category.id)
        self._categories = tuple(c for c in self._categories if c.id != category.id)
        logger.info("Deleted category %s", category.id)
        return self.categories

    async def reorder(self, ids_in_order: Iterable[int]) -> List[Category]:
        ids = list(ids_in_order)
        current = [c.id for c in self._categories]
        if len(ids) != len(set(ids)) or sorted(ids) != sorted(current):
            raise ValidationError(
                "Reorder must list every category exactly once.",
                details={"ids": ids, "expected": sorted(current)},
            )
        await self.boundary.reorder_categories(ids)
        by_id = {c.id: c for c in self._categories}
        self._categories = tuple(
            by_id[cid].model_copy(update={"order_index": i}) for i, cid in enumerate(ids)
        )
        return self.categories

    # ---------------------------
    # Membership
    # ---------------------------
    async def membership(self, category: CategoryRef, products: Iterable[Product] = ()) -> List[int]:
        if isinstance(category, RecommendedCategory):
            return [p.id for p in products if p.recommended]
        ids = tuple(await self.boundary.fetch_category_membership(category.id))
        self._replace(self.get(category.id).model_copy(update={"product_ids": ids}))
        return list(ids)

    async def replace_membership(
        self,
        category: CategoryRef,
        product_ids: Iterable[int],
        products: Iterable[Product] = (),
    ) -> List[int]:
        """Save ``product_ids`` as the complete membership of ``category``.

        For the recommended pseudo-category only the products whose flag
        actually changes are written, one request per product. If one of
        those writes fails the earlier ones stay saved on the server, so the
        caller must reload products either way. For admin categories nothing
        local changes unless the single write succeeds.
        """
        wanted = list(dict.fromkeys(product_ids))

        if isinstance(category, RecommendedCategory):
            previous = {p.id for p in products if p.recommended}
            new = set(wanted)
            for pid in sorted(previous ^ new):
                await self.boundary.set_recommended(pid, pid in new)
            return wanted

        await self.boundary.replace_category_membership(category.id, wanted)
        self._replace(self.get(category.id).model_copy(update={"product_ids": tuple(wanted)}))
        return wanted

    def _replace(self, updated: Category) -> None:
        self._categories = tuple(updated if c.id == updated.id else c for c in self._categories)
