from __future__ import annotations

from datetime import datetime

from app.models.promotion import Promotion
from app.services.promotions.base import (
    DiscountResult,
    ItemAllocation,
    PromotionStrategy,
    allocation_for,
    discountable_items,
    match_promotion_item,
)


class DailySpecialStrategy(PromotionStrategy):
    promotion_type = Promotion.TYPE_DAILY_SPECIAL

    def apply(
        self,
        order,
        promotion: Promotion,
        at: datetime | None = None,
        context: dict[int, ItemAllocation] | None = None,
    ) -> DiscountResult:
        result = DiscountResult.empty(promotion, description=promotion.name)
        weekdays = promotion.weekdays or []
        if at is not None and weekdays and at.isoweekday() not in {int(day) for day in weekdays}:
            return result

        for item in discountable_items(order):
            promo_item = match_promotion_item(item, promotion.items)
            if promo_item is None or promo_item.special_price_cents is None:
                continue
            allocation = allocation_for(context, item)
            if allocation.exclusive or allocation.unit_price_discounted:
                continue
            unit = int(item.unit_price_cents or 0)
            special = int(promo_item.special_price_cents)
            units = allocation.open_units(item)
            if special < unit and units > 0:
                result.add(item.id, (unit - special) * units)
                allocation.unit_price_discounted = True
        return result
