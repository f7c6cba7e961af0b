from __future__ import annotations

from app.services.promotions.base import PromotionStrategy
from app.services.promotions.bundle_special import BundleSpecialStrategy
from app.services.promotions.daily_special import DailySpecialStrategy
from app.services.promotions.percentage_discount import PercentageDiscountStrategy
from app.services.promotions.two_for_one import TwoForOneStrategy


class PromotionStrategyResolver:
    def __init__(self, strategies: list[PromotionStrategy] | None = None) -> None:
        # a ordem importa: a primeira estratégia que aceita o tipo vence
        self.strategies = strategies or [
            DailySpecialStrategy(),
            TwoForOneStrategy(),
            PercentageDiscountStrategy(),
            BundleSpecialStrategy(),
        ]

    def resolve(self, promotion_type: str | None) -> PromotionStrategy | None:
        for strategy in self.strategies:
            if strategy.can_handle(promotion_type or ""):
                return strategy
        return None


resolver = PromotionStrategyResolver()
