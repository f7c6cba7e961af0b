"""Máquina de estados do pedido.

`update_status` segue sempre a mesma ordem:

1. valida a transição (estado terminal ou fora da tabela -> InvalidTransitionError);
2. altera o pedido (status anterior, novo status, timestamps);
3. persiste histórico + outbox num único commit;
4. emite um único `order.status.updated` (linha de outbox, entregue em dois canais);
5. agenda os efeitos dependentes (pontos, liberação de promoções, notificação).

Os efeitos do passo 5 são despachados depois do commit. Falhas ali ficam
registradas na outbox e são reprocessadas; nunca desfazem os passos 1-4.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.order import Order
from app.models.order_status_history import OrderStatusHistory
from app.services import outbox
from app.services.errors import InvalidTransitionError, NotFoundError, PersistenceError
from app.services.notifications import template_for_status
from app.services.order_events import Actor, OrderStatusUpdated

logger = logging.getLogger(__name__)

POINTS_AWARD = "points.award"
ORDER_HOLDS_RELEASE = "order.holds.release"
ORDER_CUSTOMER_NOTIFY = "order.customer.notify"

TERMINAL_STATUSES = frozenset({Order.STATUS_COMPLETED, Order.STATUS_CANCELLED, Order.STATUS_REFUNDED})

_COMMON_TRANSITIONS: dict[str, frozenset[str]] = {
    Order.STATUS_PENDING: frozenset({Order.STATUS_PREPARING, Order.STATUS_CANCELLED}),
    Order.STATUS_PREPARING: frozenset({Order.STATUS_READY, Order.STATUS_CANCELLED}),
}

_COUNTER_TRANSITIONS: dict[str, frozenset[str]] = {
    **_COMMON_TRANSITIONS,
    Order.STATUS_READY: frozenset({Order.STATUS_COMPLETED, Order.STATUS_CANCELLED}),
}

_DELIVERY_TRANSITIONS: dict[str, frozenset[str]] = {
    **_COMMON_TRANSITIONS,
    Order.STATUS_READY: frozenset({Order.STATUS_OUT_FOR_DELIVERY, Order.STATUS_CANCELLED}),
    Order.STATUS_OUT_FOR_DELIVERY: frozenset({Order.STATUS_DELIVERED, Order.STATUS_CANCELLED}),
    Order.STATUS_DELIVERED: frozenset({Order.STATUS_COMPLETED}),
}

_TIMESTAMP_FIELDS = {
    Order.STATUS_READY: "ready_at",
    Order.STATUS_DELIVERED: "delivered_at",
    Order.STATUS_COMPLETED: "completed_at",
    Order.STATUS_CANCELLED: "cancelled_at",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_status(status: str | None) -> str:
    return (status or "").strip().lower()


def allowed_next_statuses(current_status: str | None, service_type: str | None) -> frozenset[str]:
    current = _normalize_status(current_status)
    if current in TERMINAL_STATUSES:
        return frozenset()
    table = _DELIVERY_TRANSITIONS if service_type == Order.SERVICE_DELIVERY else _COUNTER_TRANSITIONS
    return table.get(current, frozenset())


def can_transition(order: Order, new_status: str) -> bool:
    return _normalize_status(new_status) in allowed_next_statuses(order.status, order.service_type)


def is_terminal(order: Order) -> bool:
    return _normalize_status(order.status) in TERMINAL_STATUSES


def _lock_order(db: Session, order: Order) -> Order:
    locked = db.query(Order).filter(Order.id == order.id).populate_existing().with_for_update().first()
    if locked is None:
        raise NotFoundError("Pedido não encontrado")
    return locked


@dataclass
class StatusChange:
    order: Order
    event: OrderStatusUpdated
    outbox_event_ids: list[int] = field(default_factory=list)


def update_status(
    db: Session,
    order: Order,
    new_status: str,
    note: str | None = None,
    actor: Actor | None = None,
    notify: bool = True,
    dispatch: bool = True,
    cancellation_reason: str | None = None,
) -> StatusChange:
    actor = actor or Actor()
    target = _normalize_status(new_status)
    # relê e trava a linha: dois pedidos concorrentes não passam os dois pela validação
    order = _lock_order(db, order)
    previous_status = order.status

    if not can_transition(order, target):
        db.rollback()
        logger.info(
            "rejected transition %s -> %s",
            previous_status,
            target,
            extra={"order_id": order.id},
        )
        raise InvalidTransitionError(previous_status, target)

    now = utcnow()
    order.previous_status = previous_status
    order.status = target
    order.status_changed_at = now
    timestamp_field = _TIMESTAMP_FIELDS.get(target)
    if timestamp_field and getattr(order, timestamp_field, None) is None:
        setattr(order, timestamp_field, now)
    if target == Order.STATUS_CANCELLED:
        order.cancellation_reason = cancellation_reason or order.cancellation_reason or note

    db.add(
        OrderStatusHistory(
            order_id=order.id,
            previous_status=previous_status,
            new_status=target,
            changed_by_type=actor.type,
            changed_by_id=actor.id,
            notes=note,
        )
    )

    event = OrderStatusUpdated.for_order(order, previous_status, actor=actor, note=note)
    pending = [outbox.enqueue(db, event.broadcast_as(), event.to_payload())]

    side_effect_payload = {
        "order_id": order.id,
        "customer_id": order.customer_id,
        "restaurant_id": order.restaurant_id,
        "previous_status": previous_status,
        "new_status": target,
    }
    if target == Order.STATUS_COMPLETED:
        pending.append(outbox.enqueue(db, POINTS_AWARD, side_effect_payload))
    if target == Order.STATUS_CANCELLED:
        pending.append(outbox.enqueue(db, ORDER_HOLDS_RELEASE, side_effect_payload))
    if notify and template_for_status(target):
        pending.append(outbox.enqueue(db, ORDER_CUSTOMER_NOTIFY, side_effect_payload))

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("status update commit failed", extra={"order_id": order.id})
        raise PersistenceError("Erro ao atualizar status do pedido") from exc

    change = StatusChange(order=order, event=event, outbox_event_ids=[row.id for row in pending])
    logger.info(
        "order status %s -> %s by %s",
        previous_status,
        target,
        actor.type,
        extra={"order_id": order.id},
    )

    if dispatch:
        try:
            outbox.dispatch_events(db, change.outbox_event_ids)
        except Exception:
            # o commit já aconteceu; a outbox reprocessa o que ficou pendente
            logger.exception("inline outbox dispatch failed", extra={"order_id": order.id})
            db.rollback()
    return change


def cancel_order(
    db: Session,
    order: Order,
    reason: str,
    actor: Actor | None = None,
    dispatch: bool = True,
) -> StatusChange:
    actor = actor or Actor()
    order = _lock_order(db, order)
    current_status = order.status
    if actor.type == "customer" and _normalize_status(current_status) != Order.STATUS_PENDING:
        db.rollback()
        raise InvalidTransitionError(current_status, Order.STATUS_CANCELLED)
    return update_status(
        db,
        order,
        Order.STATUS_CANCELLED,
        note=f"Cancelado: {reason}",
        actor=actor,
        dispatch=dispatch,
        cancellation_reason=reason,
    )


def allowed_transitions(order: Order) -> list[str]:
    return sorted(allowed_next_statuses(order.status, order.service_type))
