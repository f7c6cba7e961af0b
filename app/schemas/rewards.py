from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


class VariantOptionResponse(BaseModel):
    id: int
    name: str
    size: Optional[str] = None
    points_cost: Optional[int] = None


class ProductRewardResponse(BaseModel):
    kind: Literal["product"] = "product"
    id: int
    name: str
    price_cents: int
    is_redeemable: bool
    points_cost: Optional[int] = None
    image_url: Optional[str] = None
    variants: list[VariantOptionResponse] = Field(default_factory=list)


class VariantRewardResponse(BaseModel):
    kind: Literal["variant"] = "variant"
    id: int
    name: str
    size: Optional[str] = None
    price_cents: int
    is_redeemable: bool
    points_cost: Optional[int] = None
    product_id: int
    product_name: str


class ComboRewardResponse(BaseModel):
    kind: Literal["combo"] = "combo"
    id: int
    name: str
    price_cents: int
    is_redeemable: bool
    points_cost: Optional[int] = None
    image_url: Optional[str] = None


RewardResponse = Union[ProductRewardResponse, VariantRewardResponse, ComboRewardResponse]
