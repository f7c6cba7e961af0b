from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.order import Order
from app.models.order_promotion import OrderPromotion
from app.models.promotion import Promotion
from app.services.errors import InvalidOrderError, NotFoundError, PersistenceError, PromotionExpiredError
from app.services.promotions.base import DiscountResult, ItemAllocation, is_valid_at, match_promotion_item
from app.services.promotions.resolver import resolver as default_resolver

logger = logging.getLogger(__name__)


def _applied_ids(order: Order) -> list[int]:
    return [int(value) for value in (order.applied_promotion_ids or [])]


def get_promotion(db: Session, restaurant_id: int, promotion_id: int) -> Promotion:
    promotion = (
        db.query(Promotion)
        .filter(Promotion.id == promotion_id, Promotion.restaurant_id == restaurant_id)
        .first()
    )
    if promotion is None:
        raise NotFoundError("Promoção não encontrada")
    return promotion


# combinado primeiro (exclusivo), depois 2x1, prato do dia e por fim desconto %
STACKING_ORDER = {
    Promotion.TYPE_BUNDLE_SPECIAL: 0,
    Promotion.TYPE_TWO_FOR_ONE: 1,
    Promotion.TYPE_DAILY_SPECIAL: 2,
    Promotion.TYPE_PERCENTAGE_DISCOUNT: 3,
}


def allocate_discounts(
    order: Order,
    promotions: list[Promotion],
    at: datetime | None = None,
    new_promotion_id: int | None = None,
    resolver=None,
) -> dict[int, DiscountResult]:
    """Recalcula todas as promoções do pedido juntas, respeitando as regras de acúmulo.

    Só a promoção nova é avaliada em `at`; as já aplicadas mantêm o dia em que
    entraram. Nenhum item recebe desconto maior que o próprio subtotal.
    """
    resolver = resolver or default_resolver
    context: dict[int, ItemAllocation] = {}
    subtotals = {item.id: int(item.subtotal_cents or 0) for item in order.items}
    results: dict[int, DiscountResult] = {}
    for promotion in sorted(promotions, key=lambda p: (STACKING_ORDER.get(p.type, len(STACKING_ORDER)), p.id)):
        strategy = resolver.resolve(promotion.type)
        if strategy is None:
            results[promotion.id] = DiscountResult.empty(promotion)
            continue
        raw = strategy.apply(order, promotion, at if promotion.id == new_promotion_id else None, context=context)
        capped = DiscountResult.empty(promotion, description=raw.description)
        for item_id, cents in raw.item_discounts.items():
            allocation = context.setdefault(item_id, ItemAllocation())
            cents = min(cents, subtotals.get(item_id, 0) - allocation.discount_cents)
            if cents > 0:
                capped.add(item_id, cents)
                allocation.discount_cents += cents
        results[promotion.id] = capped
    return results


def apply_promotion(
    db: Session,
    order: Order,
    promotion: Promotion,
    at: datetime | None = None,
    resolver=None,
) -> DiscountResult:
    """Aplica a promoção ao pedido uma única vez e congela o resultado."""
    at = at or datetime.now(timezone.utc)
    resolver = resolver or default_resolver

    applied = _applied_ids(order)
    if promotion.id in applied:
        logger.info("promotion %s already applied", promotion.id, extra={"order_id": order.id})
        return DiscountResult.empty(promotion, description="já aplicada")

    strategy = resolver.resolve(promotion.type)
    if strategy is None:
        logger.warning("no strategy for promotion type %s", promotion.type, extra={"order_id": order.id})
        return DiscountResult.empty(promotion)

    if not is_valid_at(promotion, at):
        raise PromotionExpiredError(promotion.id, promotion.name)

    previous = db.query(Promotion).filter(Promotion.id.in_(applied)).all() if applied else []
    results = allocate_discounts(order, previous + [promotion], at, promotion.id, resolver)
    result = results[promotion.id]
    if result.amount_cents <= 0:
        return result

    item_totals: dict[int, int] = {}
    for allocated in results.values():
        for item_id, cents in allocated.item_discounts.items():
            item_totals[item_id] = item_totals.get(item_id, 0) + cents
    discount_cents = sum(item_totals.values())
    points_discount = int(order.points_discount_cents or 0)
    if int(order.subtotal_cents or 0) - discount_cents < points_discount:
        logger.info(
            "promotion %s rejected: would consume points credit %s",
            promotion.id,
            points_discount,
            extra={"order_id": order.id},
        )
        raise InvalidOrderError("O desconto da promoção ultrapassa o valor que sobra após o resgate de pontos")

    snapshot = {
        "id": promotion.id,
        "name": promotion.name,
        "type": promotion.type,
        "applied_at": at.isoformat(),
    }
    for item in order.items:
        item.discount_cents = item_totals.get(item.id, 0)
        cents = result.item_discounts.get(item.id)
        if not cents:
            continue
        item.promotion_id = promotion.id
        item.promotion_snapshot = {**snapshot, "discount_cents": cents}

    # promoções anteriores podem perder itens para a nova (ex.: prato do dia sobre desconto %)
    for row in order.promotions:
        if row.promotion_id in results:
            row.discount_cents = results[row.promotion_id].amount_cents
    db.add(
        OrderPromotion(
            order_id=order.id,
            promotion_id=promotion.id,
            promotion_type=promotion.type,
            promotion_name=promotion.name,
            discount_cents=result.amount_cents,
            description=result.description,
        )
    )
    # reatribui a lista para o SQLAlchemy detectar a mudança no JSON
    order.applied_promotion_ids = applied + [promotion.id]
    order.discount_cents = discount_cents
    order.recalculate_total()

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("promotion commit failed", extra={"order_id": order.id})
        raise PersistenceError("Erro ao aplicar promoção") from exc

    logger.info(
        "promotion %s applied discount_cents=%s",
        promotion.id,
        result.amount_cents,
        extra={"order_id": order.id},
    )
    return result


def find_applicable_promotions(db: Session, order: Order, at: datetime | None = None) -> list[Promotion]:
    at = at or datetime.now(timezone.utc)
    applied = set(_applied_ids(order))
    promotions = (
        db.query(Promotion)
        .filter(Promotion.restaurant_id == order.restaurant_id, Promotion.is_active.is_(True))
        .order_by(Promotion.id.asc())
        .all()
    )
    applicable = []
    for promotion in promotions:
        if promotion.id in applied or not is_valid_at(promotion, at):
            continue
        if default_resolver.resolve(promotion.type) is None:
            continue
        if any(match_promotion_item(item, promotion.items) is not None for item in order.items):
            applicable.append(promotion)
    return applicable
