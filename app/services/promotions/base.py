from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from app.models.promotion import Promotion, PromotionItem


@dataclass
class DiscountResult:
    promotion_id: int | None
    promotion_type: str
    amount_cents: int = 0
    # order_item.id -> desconto em centavos
    item_discounts: dict[int, int] = field(default_factory=dict)
    description: str = ""

    @classmethod
    def empty(cls, promotion, description: str = "") -> "DiscountResult":
        return cls(
            promotion_id=getattr(promotion, "id", None),
            promotion_type=getattr(promotion, "type", "") or "",
            description=description,
        )

    def add(self, item_id: int, cents: int) -> None:
        if cents <= 0:
            return
        self.item_discounts[item_id] = self.item_discounts.get(item_id, 0) + cents
        self.amount_cents += cents


@dataclass
class ItemAllocation:
    """O que as promoções anteriores da mesma rodada já consumiram de um item."""

    # combinado: o item não recebe mais nenhuma promoção
    exclusive: bool = False
    # unidades usadas pelo 2x1 (a paga e a grátis de cada par)
    paired_units: int = 0
    # prato do dia ou desconto % já aplicado às unidades restantes
    unit_price_discounted: bool = False
    discount_cents: int = 0

    @property
    def is_promoted(self) -> bool:
        return self.exclusive or self.paired_units > 0 or self.unit_price_discounted

    def open_units(self, item) -> int:
        return max(int(item.quantity or 0) - self.paired_units, 0)


def allocation_for(context: dict | None, item) -> ItemAllocation:
    if context is None:
        return ItemAllocation()
    return context.setdefault(item.id, ItemAllocation())


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_valid_at(promotion: Promotion, at: datetime) -> bool:
    """Vigência: ativa, janela de datas, janela de horário e dias ISO (1=segunda)."""
    if not promotion.is_active:
        return False
    today = at.date()
    if promotion.valid_from and today < promotion.valid_from:
        return False
    if promotion.valid_until and today > promotion.valid_until:
        return False
    now_time = at.time().replace(tzinfo=None)
    if promotion.time_from and now_time < promotion.time_from:
        return False
    if promotion.time_until and now_time > promotion.time_until:
        return False
    weekdays = promotion.weekdays or []
    if weekdays and at.isoweekday() not in {int(day) for day in weekdays}:
        return False
    return True


def _matches_variant(promo_item: PromotionItem, item) -> bool:
    return promo_item.variant_id is not None and item.variant_id == promo_item.variant_id


def _matches_product(promo_item: PromotionItem, item) -> bool:
    return (
        promo_item.variant_id is None
        and promo_item.product_id is not None
        and item.product_id == promo_item.product_id
    )


def _matches_category(promo_item: PromotionItem, item) -> bool:
    return (
        promo_item.variant_id is None
        and promo_item.product_id is None
        and promo_item.category_id is not None
        and item.category_id == promo_item.category_id
    )


_MATCHERS = (_matches_variant, _matches_product, _matches_category)


def match_promotion_item(item, promotion_items: Iterable[PromotionItem]) -> PromotionItem | None:
    """Variação tem precedência sobre produto, que tem precedência sobre categoria."""
    if getattr(item, "combo_id", None) is not None:
        return None
    candidates = list(promotion_items)
    for matcher in _MATCHERS:
        for promo_item in candidates:
            if matcher(promo_item, item):
                return promo_item
    return None


def item_matches(item, promo_item: PromotionItem) -> bool:
    if getattr(item, "combo_id", None) is not None:
        return False
    return any(matcher(promo_item, item) for matcher in _MATCHERS)


def discountable_items(order) -> list:
    return [item for item in order.items if getattr(item, "combo_id", None) is None]


class PromotionStrategy(ABC):
    promotion_type: str = ""

    def can_handle(self, promotion_type: str) -> bool:
        return promotion_type == self.promotion_type

    @abstractmethod
    def apply(
        self,
        order,
        promotion: Promotion,
        at: datetime | None = None,
        context: dict[int, ItemAllocation] | None = None,
    ) -> DiscountResult:
        """`context` acumula, por item, o que promoções anteriores já usaram."""
        raise NotImplementedError
