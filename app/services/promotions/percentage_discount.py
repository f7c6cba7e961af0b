from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from app.models.promotion import Promotion
from app.services.promotions.base import (
    DiscountResult,
    ItemAllocation,
    PromotionStrategy,
    allocation_for,
    discountable_items,
    match_promotion_item,
    round_half_up,
)

_HUNDRED = Decimal(100)


class PercentageDiscountStrategy(PromotionStrategy):
    promotion_type = Promotion.TYPE_PERCENTAGE_DISCOUNT

    def apply(
        self,
        order,
        promotion: Promotion,
        at: datetime | None = None,
        context: dict[int, ItemAllocation] | None = None,
    ) -> DiscountResult:
        result = DiscountResult.empty(promotion, description=promotion.name)
        for item in discountable_items(order):
            promo_item = match_promotion_item(item, promotion.items)
            if promo_item is None or promo_item.discount_percentage is None:
                continue
            allocation = allocation_for(context, item)
            # prato do dia prevalece sobre o desconto %
            if allocation.exclusive or allocation.unit_price_discounted:
                continue
            units = allocation.open_units(item)
            if units <= 0:
                continue
            pct = min(max(Decimal(str(promo_item.discount_percentage)), Decimal(0)), _HUNDRED)
            base = Decimal(int(item.unit_price_cents or 0) * units)
            cents = round_half_up(base * pct / _HUNDRED)
            if cents > 0:
                result.add(item.id, cents)
                allocation.unit_price_discounted = True
        return result
