from datetime import date
from typing import Dict, Any, List

from pydantic import BaseModel, Field

from .models import Product

# Request payloads sent to the catalog/reservation boundary.


class ReservationRequest(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)
    pickup_date: date
    amount: int = Field(ge=0)


class CategoryNameIn(BaseModel):
    name: str


class CategoryOrderIn(BaseModel):
    ids: List[int]


class CategoryMembershipIn(BaseModel):
    product_ids: List[int]


class RecommendedIn(BaseModel):
    recommended: bool


def _make_reservation_request(product: Product, quantity: int) -> ReservationRequest:
    return ReservationRequest(
        product_id=product.id,
        quantity=quantity,
        pickup_date=product.sell_date,
        amount=product.price * quantity,
    )


def _payload(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json")
