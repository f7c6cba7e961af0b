from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.config import OUTBOX_DISPATCH_INLINE
from app.core.database import get_db
from app.deps import Principal, get_current_customer, get_current_principal, get_current_staff, http_error
from app.models.customer import Customer
from app.models.order import Order
from app.schemas.orders import (
    CancelOrderRequest,
    DiscountResponse,
    PlaceOrderRequest,
    StatusUpdateRequest,
    TransitionsResponse,
)
from app.services import outbox
from app.services.errors import DomainError, NotFoundError
from app.services.order_events import build_order_view
from app.services.order_status import allowed_transitions, cancel_order, is_terminal, update_status
from app.services.orders import get_order_for_customer, get_order_for_restaurant, place_order
from app.services.promotions import apply_promotion, get_promotion

router = APIRouter(prefix="/api", tags=["orders"])

logger = logging.getLogger(__name__)


def _schedule_dispatch(background_tasks: BackgroundTasks, event_ids: list[int]) -> None:
    if OUTBOX_DISPATCH_INLINE and event_ids:
        background_tasks.add_task(outbox.dispatch_in_new_session, event_ids)


def _load_order(db: Session, order_id: int, principal: Principal) -> Order:
    """Cliente só enxerga os próprios pedidos; staff só os do seu restaurante."""
    try:
        if principal.is_staff:
            return get_order_for_restaurant(db, order_id, principal.restaurant_id)
        return get_order_for_customer(db, order_id, principal.id)
    except NotFoundError as exc:
        # 404 também para pedidos de outros clientes/restaurantes
        raise http_error(exc)


@router.post("/orders", status_code=201)
def create_order(
    body: PlaceOrderRequest,
    db: Session = Depends(get_db),
    customer: Customer = Depends(get_current_customer),
):
    try:
        order = place_order(
            db,
            restaurant_id=body.restaurant_id,
            customer_id=customer.id,
            service_type=body.service_type,
            items=[item.model_dump() for item in body.items],
            notes=body.notes,
        )
    except DomainError as exc:
        raise http_error(exc)
    return build_order_view(order)


@router.get("/orders/{order_id}")
def read_order(
    order_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return build_order_view(_load_order(db, order_id, principal))


@router.get("/orders/{order_id}/transitions", response_model=TransitionsResponse)
def read_transitions(
    order_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    order = _load_order(db, order_id, principal)
    return TransitionsResponse(
        order_id=order.id,
        status=order.status,
        service_type=order.service_type,
        allowed=allowed_transitions(order),
        is_terminal=is_terminal(order),
    )


@router.patch("/restaurant/orders/{order_id}/status")
def change_status(
    order_id: int,
    body: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    staff: Principal = Depends(get_current_staff),
):
    order = _load_order(db, order_id, staff)
    try:
        change = update_status(
            db,
            order,
            body.status,
            note=body.note,
            actor=staff.as_actor(),
            notify=body.notify,
            dispatch=False,
        )
    except DomainError as exc:
        raise http_error(exc)

    _schedule_dispatch(background_tasks, change.outbox_event_ids)
    return {
        "order": change.event.order,
        "previous_status": change.event.previous_status,
        "new_status": change.event.new_status,
    }


@router.post("/orders/{order_id}/cancel")
def cancel(
    order_id: int,
    body: CancelOrderRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    _customer: Customer = Depends(get_current_customer),
):
    order = _load_order(db, order_id, principal)
    try:
        change = cancel_order(
            db,
            order,
            body.reason,
            actor=principal.as_actor(),
            dispatch=False,
        )
    except DomainError as exc:
        raise http_error(exc)

    _schedule_dispatch(background_tasks, change.outbox_event_ids)
    return change.event.order


@router.post("/orders/{order_id}/promotions/{promotion_id}", response_model=DiscountResponse)
def add_promotion(
    order_id: int,
    promotion_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    order = _load_order(db, order_id, principal)
    if order.status != Order.STATUS_PENDING:
        raise HTTPException(status_code=422, detail="Promoções só podem ser aplicadas a pedidos pendentes")
    try:
        promotion = get_promotion(db, order.restaurant_id, promotion_id)
        result = apply_promotion(db, order, promotion)
    except DomainError as exc:
        raise http_error(exc)
    return DiscountResponse(**asdict(result))
