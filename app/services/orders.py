import logging
import uuid
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.menu import Combo, Product, ProductVariant
from app.models.order import Order
from app.models.order_item import OrderItem
from app.models.order_status_history import OrderStatusHistory
from app.services.errors import InvalidOrderError, NotFoundError, PersistenceError


logger = logging.getLogger(__name__)

SERVICE_TYPES = {Order.SERVICE_PICKUP, Order.SERVICE_DELIVERY, Order.SERVICE_DINE_IN}
_SERVICE_TYPE_ALIASES = {
    "pickup": Order.SERVICE_PICKUP,
    "takeout": Order.SERVICE_PICKUP,
    "delivery": Order.SERVICE_DELIVERY,
    "dine_in": Order.SERVICE_DINE_IN,
    "dine-in": Order.SERVICE_DINE_IN,
    "table": Order.SERVICE_DINE_IN,
}


def normalize_service_type(service_type: str | None) -> str:
    normalized = _SERVICE_TYPE_ALIASES.get((service_type or "").strip().lower())
    if normalized is None:
        raise InvalidOrderError(f"Tipo de serviço inválido: {service_type}")
    return normalized


def _get(d: dict, *keys, default=None):
    """Tenta várias chaves possíveis."""
    for k in keys:
        if k in d and d[k] not in (None, ""):
            return d[k]
    return default


def normalize_selected_options(raw_options: list[dict] | None) -> tuple[list[dict], int]:
    normalized: list[dict] = []
    total_cents = 0
    for raw in raw_options or []:
        if not isinstance(raw, dict):
            continue
        section = str(_get(raw, "section", "section_name", default="") or "").strip()
        option = str(_get(raw, "option", "option_name", "name", default="") or "").strip()
        if not option:
            continue
        try:
            price_cents = int(_get(raw, "price_modifier_cents", "price_cents", default=0) or 0)
        except (TypeError, ValueError):
            price_cents = 0
        normalized.append(
            {
                "section": section,
                "option": option,
                "price_modifier_cents": price_cents,
            }
        )
        total_cents += price_cents
    return normalized, total_cents


def _resolve_catalog_entry(db: Session, restaurant_id: int, entry: dict) -> dict[str, Any]:
    variant_id = entry.get("variant_id")
    product_id = entry.get("product_id")
    combo_id = entry.get("combo_id")

    if combo_id is not None:
        combo = db.query(Combo).filter(Combo.id == combo_id, Combo.restaurant_id == restaurant_id).first()
        if not combo or not combo.is_active:
            raise NotFoundError(f"Combo {combo_id} não encontrado")
        return {
            "combo_id": combo.id,
            "name": combo.name,
            "unit_price_cents": int(combo.price_cents or 0),
        }

    if variant_id is not None:
        variant = db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
        if not variant or not variant.is_active or not variant.product or not variant.product.is_active:
            raise NotFoundError(f"Variante {variant_id} não encontrada")
        product = variant.product
        if product.restaurant_id != restaurant_id:
            raise NotFoundError(f"Variante {variant_id} não encontrada")
        return {
            "product_id": product.id,
            "variant_id": variant.id,
            "category_id": product.category_id,
            "name": f"{product.name} {variant.name}".strip(),
            "unit_price_cents": int(variant.price_cents or 0),
        }

    if product_id is not None:
        product = db.query(Product).filter(Product.id == product_id, Product.restaurant_id == restaurant_id).first()
        if not product or not product.is_active:
            raise NotFoundError(f"Produto {product_id} não encontrado")
        return {
            "product_id": product.id,
            "category_id": product.category_id,
            "name": product.name,
            "unit_price_cents": int(product.price_cents or 0),
        }

    raise InvalidOrderError("Item sem produto, variante ou combo")


def build_order_items(db: Session, restaurant_id: int, items: list[dict]) -> tuple[list[OrderItem], int]:
    order_items: list[OrderItem] = []
    subtotal_cents = 0
    for entry in items:
        try:
            quantity = int(_get(entry, "quantity", "qty", default=0) or 0)
        except (TypeError, ValueError):
            quantity = 0
        if quantity < 1:
            raise InvalidOrderError("Quantidade do item deve ser maior que zero")

        resolved = _resolve_catalog_entry(db, restaurant_id, entry)
        options, options_price_cents = normalize_selected_options(entry.get("selected_options"))
        line_subtotal = (resolved["unit_price_cents"] + options_price_cents) * quantity

        order_items.append(
            OrderItem(
                product_id=resolved.get("product_id"),
                variant_id=resolved.get("variant_id"),
                combo_id=resolved.get("combo_id"),
                category_id=resolved.get("category_id"),
                name=resolved["name"],
                quantity=quantity,
                unit_price_cents=resolved["unit_price_cents"],
                options_price_cents=options_price_cents,
                selected_options=options,
                subtotal_cents=line_subtotal,
                discount_cents=0,
                notes=entry.get("notes"),
            )
        )
        subtotal_cents += line_subtotal
    return order_items, subtotal_cents


def _generate_order_number() -> str:
    return uuid.uuid4().hex[:10].upper()


def place_order(
    db: Session,
    *,
    restaurant_id: int,
    customer_id: int,
    service_type: str,
    items: list[dict],
    notes: str | None = None,
) -> Order:
    if not items:
        raise InvalidOrderError("O pedido precisa de pelo menos um item")

    order_items, subtotal_cents = build_order_items(db, restaurant_id, items)
    order = Order(
        restaurant_id=restaurant_id,
        customer_id=customer_id,
        order_number=_generate_order_number(),
        service_type=normalize_service_type(service_type),
        status=Order.STATUS_PENDING,
        subtotal_cents=subtotal_cents,
        discount_cents=0,
        points_discount_cents=0,
        applied_promotion_ids=[],
        notes=notes,
    )
    order.items = order_items
    order.recalculate_total()
    order.status_history.append(
        OrderStatusHistory(
            previous_status=None,
            new_status=Order.STATUS_PENDING,
            changed_by_type="customer",
            changed_by_id=customer_id,
            notes="Pedido criado",
        )
    )

    db.add(order)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("order placement failed restaurant_id=%s customer_id=%s", restaurant_id, customer_id)
        raise PersistenceError("Erro ao criar pedido") from exc
    db.refresh(order)
    logger.info(
        "order placed number=%s total_cents=%s",
        order.order_number,
        order.total_cents,
        extra={"order_id": order.id, "customer_id": customer_id},
    )
    return order


def get_order_for_customer(db: Session, order_id: int, customer_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id, Order.customer_id == customer_id).first()
    if not order:
        raise NotFoundError("Pedido não encontrado")
    return order


def get_order_for_restaurant(db: Session, order_id: int, restaurant_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id, Order.restaurant_id == restaurant_id).first()
    if not order:
        raise NotFoundError("Pedido não encontrado")
    return order
