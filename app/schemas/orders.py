from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class SelectedOptionIn(BaseModel):
    section: str = ""
    option: str
    price_modifier_cents: int = 0


class OrderItemIn(BaseModel):
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    combo_id: Optional[int] = None
    quantity: int = Field(1, ge=1)
    selected_options: list[SelectedOptionIn] = Field(default_factory=list)
    notes: Optional[str] = None


class PlaceOrderRequest(BaseModel):
    restaurant_id: int
    service_type: str = "pickup"
    items: list[OrderItemIn] = Field(min_length=1)
    notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str = Field(min_length=1)
    note: Optional[str] = Field(None, max_length=500)
    notify: bool = True


class CancelOrderRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class TransitionsResponse(BaseModel):
    order_id: int
    status: str
    service_type: str
    allowed: list[str]
    is_terminal: bool


class DiscountResponse(BaseModel):
    promotion_id: Optional[int] = None
    promotion_type: str
    amount_cents: int
    item_discounts: dict[int, int] = Field(default_factory=dict)
    description: str = ""
