from app.services.promotions.application import (
    allocate_discounts,
    apply_promotion,
    find_applicable_promotions,
    get_promotion,
)
from app.services.promotions.base import DiscountResult, PromotionStrategy, is_valid_at, round_half_up
from app.services.promotions.resolver import PromotionStrategyResolver, resolver

__all__ = [
    "DiscountResult",
    "PromotionStrategy",
    "PromotionStrategyResolver",
    "allocate_discounts",
    "apply_promotion",
    "find_applicable_promotions",
    "get_promotion",
    "is_valid_at",
    "resolver",
    "round_half_up",
]
