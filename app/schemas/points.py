from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RedeemPointsRequest(BaseModel):
    order_id: int
    points_to_redeem: int = Field(ge=1)


class PointsBalanceResponse(BaseModel):
    customer_id: int
    balance: int
    point_value_cents: int
    customer_type: Optional[str] = None


class PointsTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    points: int
    type: str
    description: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    is_expired: bool = False
    created_at: Optional[datetime] = None


class PointsHistoryResponse(BaseModel):
    items: list[PointsTransactionResponse]
    total: int
    page: int
    per_page: int


class RedemptionResponse(BaseModel):
    transaction_id: int
    points: int
    balance: int
    credit_cents: int = 0
    order_total_cents: Optional[int] = None
