# pickup/models.py
from datetime import date, time, timedelta
from enum import Enum
from typing import Optional, Tuple, Union, Literal, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    price: int = Field(ge=0)
    stock: int = Field(ge=0)
    image_urls: Tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("image_urls", "image_url", "imageUrl", "images")
    )
    description: Optional[str] = None
    sell_date: Optional[date] = Field(default=None, validation_alias=AliasChoices("sell_date", "sellDate"))
    sell_time: Optional[time] = Field(default=None, validation_alias=AliasChoices("sell_time", "sellTime"))
    order_index: Optional[int] = Field(default=None, validation_alias=AliasChoices("order_index", "orderIndex"))
    total_sold: int = Field(default=0, ge=0, validation_alias=AliasChoices("total_sold", "totalSold"))
    delivery_available: bool = Field(
        default=True, validation_alias=AliasChoices("delivery_available", "deliveryAvailable")
    )
    self_pick_allowed: bool = Field(
        default=True, validation_alias=AliasChoices("self_pick_allowed", "selfPickAllowed", "self_pick")
    )
    recommended: bool = False

    @field_validator("image_urls", mode="before")
    @classmethod
    def coerce_image_urls(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,) if v else ()
        return v

    @field_validator("sell_date", "sell_time", "description", mode="before")
    @classmethod
    def blank_is_missing(cls, v):
        return _blank_to_none(v)

    @field_validator("total_sold", mode="before")
    @classmethod
    def missing_total_sold(cls, v):
        return 0 if v is None else v

    @field_validator("delivery_available", "self_pick_allowed", mode="before")
    @classmethod
    def missing_flag_allows(cls, v):
        return True if v is None else v


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["category"] = "category"
    id: int
    name: str = Field(validation_alias=AliasChoices("name", "keyword"))
    order_index: int = Field(default=0, validation_alias=AliasChoices("order_index", "orderIndex", "order"))
    product_ids: Tuple[int, ...] = Field(default=(), validation_alias=AliasChoices("product_ids", "productIds"))
    image_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("image_url", "imageUrl"))

    @field_validator("product_ids", mode="before")
    @classmethod
    def missing_members(cls, v):
        return () if v is None else v


class RecommendedCategory(BaseModel):
    """Always-present pseudo-category backed by ``Product.recommended``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["recommended"] = "recommended"
    name: str = "Recommended"


RECOMMENDED = RecommendedCategory()

CategoryRef = Union[Category, RecommendedCategory]


class ProductState(str, Enum):
    OPEN = "open"
    PENDING_OPEN = "pending_open"
    SOLD_OUT = "sold_out"


class ProductView(BaseModel):
    model_config = ConfigDict(frozen=True)

    product: Product
    state: ProductState
    countdown: Optional[timedelta] = None
    countdown_label: Optional[str] = None
    draft_quantity: int = 0

    @property
    def orderable(self) -> bool:
        return self.state is ProductState.OPEN


class Fulfillment(str, Enum):
    NONE = "none"
    SELF_PICKUP = "self_pickup"
    DELIVERY = "delivery"


class PickupStatus(str, Enum):
    PENDING = "pending"
    PICKED_UP = "picked_up"
    CANCELED = "canceled"


_STATUS_ALIASES = {
    "pending": PickupStatus.PENDING,
    "self_pick": PickupStatus.PENDING,
    "picked": PickupStatus.PICKED_UP,
    "picked_up": PickupStatus.PICKED_UP,
    "completed": PickupStatus.PICKED_UP,
    "canceled": PickupStatus.CANCELED,
    "cancelled": PickupStatus.CANCELED,
}


class Reservation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Union[int, str]
    product_id: int
    product_name: Optional[str] = None
    quantity: int = Field(ge=1)
    pickup_date: date = Field(validation_alias=AliasChoices("pickup_date", "order_date", "pickupDate"))
    amount: int = Field(ge=0)
    fulfillment: Fulfillment = Fulfillment.NONE
    status: PickupStatus = PickupStatus.PENDING
    fulfillment_changed: bool = False

    @model_validator(mode="before")
    @classmethod
    def map_wire_status(cls, data):
        if not isinstance(data, dict):
            return data
        raw = data.get("status")
        if isinstance(raw, str):
            data = dict(data)
            key = raw.strip().lower()
            # unknown statuses are treated as still pending
            data["status"] = _STATUS_ALIASES.get(key, PickupStatus.PENDING)
            if key == "self_pick" and "fulfillment" not in data:
                data["fulfillment"] = Fulfillment.SELF_PICKUP
                data.setdefault("fulfillment_changed", True)
        return data


class DeliveryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    min_amount: int = Field(default=0, ge=0, validation_alias=AliasChoices("min_amount", "minAmount"))

    @field_validator("min_amount", mode="before")
    @classmethod
    def missing_min_amount(cls, v):
        return 0 if v is None else v


class FulfillmentOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    self_pickup: bool = False
    delivery: bool = False
    delivery_min_amount: Optional[int] = None
    self_pickup_denied_reason: Optional[str] = None


class ReservationOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    reservation: Reservation
    options: FulfillmentOptions


class DeliveryIntent(BaseModel):
    model_config = ConfigDict(frozen=True)

    reservation_id: Union[int, str]
    amount: int
    min_amount: int
