from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.models.order import Order
from app.models.order_item import OrderItem

ORDER_STATUS_UPDATED = "order.status.updated"


def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


def build_order_item_view(item: OrderItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "variant_id": item.variant_id,
        "combo_id": item.combo_id,
        "name": item.name,
        "quantity": int(item.quantity or 0),
        "unit_price_cents": int(item.unit_price_cents or 0),
        "options_price_cents": int(item.options_price_cents or 0),
        "selected_options": list(item.selected_options or []),
        "subtotal_cents": int(item.subtotal_cents or 0),
        "discount_cents": int(item.discount_cents or 0),
        "promotion_id": item.promotion_id,
    }


def build_order_view(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "restaurant_id": order.restaurant_id,
        "customer_id": order.customer_id,
        "service_type": order.service_type,
        "status": order.status,
        "previous_status": order.previous_status,
        "subtotal_cents": int(order.subtotal_cents or 0),
        "discount_cents": int(order.discount_cents or 0),
        "points_discount_cents": int(order.points_discount_cents or 0),
        "total_cents": int(order.total_cents or 0),
        "applied_promotion_ids": list(order.applied_promotion_ids or []),
        "cancellation_reason": order.cancellation_reason,
        "status_changed_at": _isoformat(order.status_changed_at),
        "created_at": _isoformat(order.created_at),
        "items": [build_order_item_view(item) for item in (order.items or [])],
    }


@dataclass(frozen=True)
class Actor:
    type: str = "system"  # customer / restaurant / system
    id: int | None = None


@dataclass(frozen=True)
class OrderStatusUpdated:
    order: dict[str, Any]
    previous_status: str | None
    new_status: str
    actor: Actor = field(default_factory=Actor)
    note: str | None = None

    @classmethod
    def for_order(
        cls,
        order: Order,
        previous_status: str | None,
        actor: Actor | None = None,
        note: str | None = None,
    ) -> "OrderStatusUpdated":
        return cls(
            order=build_order_view(order),
            previous_status=previous_status,
            new_status=order.status,
            actor=actor or Actor(),
            note=note,
        )

    @staticmethod
    def broadcast_as() -> str:
        return ORDER_STATUS_UPDATED

    def broadcast_on(self) -> tuple[str, str]:
        return (
            f"customer.{self.order['customer_id']}.orders",
            f"restaurant.{self.order['restaurant_id']}.orders",
        )

    def broadcast_with(self) -> dict[str, Any]:
        return {
            "order": self.order,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
        }

    def to_payload(self) -> dict[str, Any]:
        return {
            **self.broadcast_with(),
            "actor": {"type": self.actor.type, "id": self.actor.id},
            "note": self.note,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "OrderStatusUpdated":
        actor = payload.get("actor") or {}
        return cls(
            order=payload["order"],
            previous_status=payload.get("previous_status"),
            new_status=payload["new_status"],
            actor=Actor(type=actor.get("type", "system"), id=actor.get("id")),
            note=payload.get("note"),
        )
