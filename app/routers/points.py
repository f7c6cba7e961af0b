from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import get_current_customer, http_error
from app.models.customer import Customer
from app.schemas.points import (
    PointsBalanceResponse,
    PointsHistoryResponse,
    PointsTransactionResponse,
    RedeemPointsRequest,
    RedemptionResponse,
)
from app.services.errors import DomainError
from app.services.orders import get_order_for_customer
from app.services.points import get_balance, get_points_settings, list_transactions, redeem

router = APIRouter(prefix="/api/points", tags=["points"])


@router.get("/balance", response_model=PointsBalanceResponse)
def read_balance(db: Session = Depends(get_db), customer: Customer = Depends(get_current_customer)):
    settings = get_points_settings(db)
    return PointsBalanceResponse(
        customer_id=customer.id,
        balance=get_balance(db, customer),
        point_value_cents=settings.point_value_cents,
        customer_type=customer.customer_type.name if customer.customer_type else None,
    )


@router.get("/history", response_model=PointsHistoryResponse)
def read_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    customer: Customer = Depends(get_current_customer),
):
    rows, total = list_transactions(db, customer, page=page, per_page=per_page)
    return PointsHistoryResponse(
        items=[PointsTransactionResponse.model_validate(row) for row in rows],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/redeem", response_model=RedemptionResponse)
def redeem_points(
    body: RedeemPointsRequest,
    db: Session = Depends(get_db),
    customer: Customer = Depends(get_current_customer),
):
    try:
        order = get_order_for_customer(db, body.order_id, customer.id)
        redemption = redeem(db, customer, order, body.points_to_redeem)
    except DomainError as exc:
        raise http_error(exc)
    return RedemptionResponse(
        transaction_id=redemption.transaction.id,
        points=redemption.transaction.points,
        balance=redemption.balance,
        credit_cents=redemption.credit_cents,
        order_total_cents=redemption.order.total_cents if redemption.order is not None else None,
    )
