from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.models.order import Order
from app.models.order_promotion import OrderPromotion
from app.services import outbox
from app.services.broadcasting import get_broadcaster
from app.services.event_bus import event_bus
from app.services.notifications import get_notifier, template_for_status
from app.services.order_events import ORDER_STATUS_UPDATED, OrderStatusUpdated
from app.services.order_status import ORDER_CUSTOMER_NOTIFY, ORDER_HOLDS_RELEASE, POINTS_AWARD
from app.services.points import earn_for_order


def _with_session(handler):
    def wrapper(payload: dict) -> None:
        bound = outbox.get_bound_session()
        if bound is not None:
            handler(bound, payload)
            return
        db: Session = SessionLocal()
        try:
            handler(db, payload)
        finally:
            db.close()

    wrapper.__name__ = handler.__name__
    return wrapper


def handle_order_status_updated(payload: dict) -> None:
    event = OrderStatusUpdated.from_payload(payload)
    broadcaster = get_broadcaster()
    for channel in event.broadcast_on():
        broadcaster.publish(channel, event.broadcast_as(), event.broadcast_with())


@_with_session
def handle_points_award(db: Session, payload: dict) -> None:
    earn_for_order(db, payload["order_id"])


@_with_session
def handle_holds_release(db: Session, payload: dict) -> None:
    now = datetime.now(timezone.utc)
    (
        db.query(OrderPromotion)
        .filter(OrderPromotion.order_id == payload["order_id"], OrderPromotion.released_at.is_(None))
        .update({OrderPromotion.released_at: now}, synchronize_session=False)
    )
    db.commit()


@_with_session
def handle_customer_notify(db: Session, payload: dict) -> None:
    template = template_for_status(payload.get("new_status"))
    if not template:
        return
    order = db.get(Order, payload["order_id"])
    if order is None:
        return
    get_notifier().send(
        order.customer_id,
        template,
        {
            "order_id": order.id,
            "customer_name": (order.customer.name if order.customer else None) or "Cliente",
            "order_number": order.order_number or order.id,
            "total_cents": int(order.total_cents or 0),
            "status": order.status,
        },
    )


event_bus.subscribe(ORDER_STATUS_UPDATED, handle_order_status_updated)
event_bus.subscribe(POINTS_AWARD, handle_points_award)
event_bus.subscribe(ORDER_HOLDS_RELEASE, handle_holds_release)
event_bus.subscribe(ORDER_CUSTOMER_NOTIFY, handle_customer_notify)
