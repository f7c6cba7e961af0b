from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import get_current_customer, http_error
from app.models.customer import Customer
from app.schemas.points import RedemptionResponse
from app.schemas.rewards import RewardResponse
from app.services.errors import DomainError
from app.services.points import redeem_reward
from app.services.rewards import list_rewards, resolve_reward

router = APIRouter(prefix="/api/rewards", tags=["rewards"])


@router.get("", response_model=list[RewardResponse])
def read_rewards(restaurant_id: Optional[int] = None, db: Session = Depends(get_db)):
    return [asdict(reward) for reward in list_rewards(db, restaurant_id=restaurant_id)]


@router.get("/{reward_type}/{reward_id}", response_model=RewardResponse)
def read_reward(reward_type: str, reward_id: int, db: Session = Depends(get_db)):
    try:
        reward = resolve_reward(db, reward_type, reward_id)
    except DomainError as exc:
        raise http_error(exc)
    return asdict(reward)


@router.post("/{reward_type}/{reward_id}/redeem", response_model=RedemptionResponse)
def redeem(
    reward_type: str,
    reward_id: int,
    db: Session = Depends(get_db),
    customer: Customer = Depends(get_current_customer),
):
    try:
        redemption = redeem_reward(db, customer, reward_type, reward_id)
    except DomainError as exc:
        raise http_error(exc)
    return RedemptionResponse(
        transaction_id=redemption.transaction.id,
        points=redemption.transaction.points,
        balance=redemption.balance,
    )
