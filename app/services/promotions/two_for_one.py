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


class TwoForOneStrategy(PromotionStrategy):
    """2x1: a cada duas unidades elegíveis, a mais barata sai de graça (sem adicionais).

    As unidades que formam pares ficam marcadas; só as que sobram podem
    receber prato do dia ou desconto %.
    """

    promotion_type = Promotion.TYPE_TWO_FOR_ONE

    def apply(
        self,
        order,
        promotion: Promotion,
        at: datetime | None = None,
        context: dict[int, ItemAllocation] | None = None,
    ) -> DiscountResult:
        result = DiscountResult.empty(promotion, description=promotion.name)
        units: list[tuple[int, int]] = []
        allocations: dict[int, ItemAllocation] = {}
        for item in discountable_items(order):
            if match_promotion_item(item, promotion.items) is None:
                continue
            allocation = allocation_for(context, item)
            if allocation.exclusive or allocation.unit_price_discounted:
                continue
            allocations[item.id] = allocation
            units.extend((int(item.unit_price_cents or 0), item.id) for _ in range(allocation.open_units(item)))

        free_units = len(units) // 2
        if free_units == 0:
            return result

        units.sort()
        free = units[:free_units]
        # cada unidade grátis faz par com uma das mais caras, que é paga
        paid = units[len(units) - free_units:]
        for price, item_id in free:
            result.add(item_id, price)
        for _, item_id in free + paid:
            allocations[item_id].paired_units += 1
        return result
