from __future__ import annotations

from datetime import datetime

from app.models.promotion import Promotion
from app.services.promotions.base import (
    DiscountResult,
    ItemAllocation,
    PromotionStrategy,
    allocation_for,
    discountable_items,
    item_matches,
)


class BundleSpecialStrategy(PromotionStrategy):
    """Combinado: os itens da promoção descrevem um pacote (item -> quantidade exigida).

    O desconto por pacote é a diferença entre o preço normal das unidades
    usadas e `bundle_price_cents`, repartida entre os itens do pedido.
    Não se combina: itens já promovidos ficam de fora e os itens usados
    não recebem outras promoções.
    """

    promotion_type = Promotion.TYPE_BUNDLE_SPECIAL

    def apply(
        self,
        order,
        promotion: Promotion,
        at: datetime | None = None,
        context: dict[int, ItemAllocation] | None = None,
    ) -> DiscountResult:
        result = DiscountResult.empty(promotion, description=promotion.name)
        if promotion.bundle_price_cents is None or not promotion.items:
            return result

        candidates = discountable_items(order)
        allocations = {item.id: allocation_for(context, item) for item in candidates}
        items = [item for item in candidates if not allocations[item.id].is_promoted]
        remaining = {item.id: int(item.quantity or 0) for item in items}

        # unidades disponíveis por componente, sem reaproveitar a mesma unidade
        slots: list[tuple[int, list[tuple[int, int]]]] = []
        for promo_item in promotion.items:
            required = max(int(promo_item.quantity or 1), 1)
            units: list[tuple[int, int]] = []
            for item in items:
                if not item_matches(item, promo_item):
                    continue
                for _ in range(remaining[item.id]):
                    units.append((item.id, int(item.unit_price_cents or 0)))
            slots.append((required, units))
            taken: dict[int, int] = {}
            for item_id, _ in units:
                taken[item_id] = taken.get(item_id, 0) + 1
            for item_id, count in taken.items():
                remaining[item_id] -= count

        bundles = min(len(units) // required for required, units in slots)
        if bundles <= 0:
            return result

        used: list[tuple[int, int]] = []
        for required, units in slots:
            used.extend(units[: bundles * required])

        normal_price = sum(price for _, price in used)
        discount = normal_price - bundles * int(promotion.bundle_price_cents)
        if discount <= 0:
            return result

        per_item: dict[int, int] = {}
        for item_id, price in used:
            per_item[item_id] = per_item.get(item_id, 0) + price

        allocated = 0
        ordered_ids = list(per_item)
        for index, item_id in enumerate(ordered_ids):
            if index == len(ordered_ids) - 1:
                share = discount - allocated
            else:
                share = discount * per_item[item_id] // normal_price
            result.add(item_id, share)
            allocated += share
            allocations[item_id].exclusive = True
        result.description = f"{promotion.name} x{bundles}"
        return result
