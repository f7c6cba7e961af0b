from datetime import date, datetime, time
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.services.promotions import PromotionStrategyResolver, is_valid_at, round_half_up
from app.services.promotions.bundle_special import BundleSpecialStrategy
from app.services.promotions.daily_special import DailySpecialStrategy
from app.services.promotions.percentage_discount import PercentageDiscountStrategy
from app.services.promotions.two_for_one import TwoForOneStrategy

# 2026-10-19 é uma segunda-feira (ISO 1)
MONDAY_NOON = datetime(2026, 10, 19, 12, 0)


def _item(item_id, unit_price_cents, quantity=1, variant_id=None, product_id=None, category_id=None, combo_id=None):
    return SimpleNamespace(
        id=item_id,
        unit_price_cents=unit_price_cents,
        quantity=quantity,
        variant_id=variant_id,
        product_id=product_id,
        category_id=category_id,
        combo_id=combo_id,
    )


def _promo_item(variant_id=None, product_id=None, category_id=None, **kwargs):
    defaults = {"discount_percentage": None, "special_price_cents": None, "quantity": 1}
    defaults.update(kwargs)
    return SimpleNamespace(variant_id=variant_id, product_id=product_id, category_id=category_id, **defaults)


def _promotion(promo_type, items, **kwargs):
    defaults = {
        "id": 1,
        "name": "Promo",
        "is_active": True,
        "valid_from": None,
        "valid_until": None,
        "time_from": None,
        "time_until": None,
        "weekdays": None,
        "bundle_price_cents": None,
    }
    defaults.update(kwargs)
    return SimpleNamespace(type=promo_type, items=items, **defaults)


def test_resolver_returns_first_matching_strategy_or_none():
    resolver = PromotionStrategyResolver()

    assert isinstance(resolver.resolve("daily_special"), DailySpecialStrategy)
    assert isinstance(resolver.resolve("two_for_one"), TwoForOneStrategy)
    assert isinstance(resolver.resolve("percentage_discount"), PercentageDiscountStrategy)
    assert isinstance(resolver.resolve("bundle_special"), BundleSpecialStrategy)
    assert resolver.resolve("unknown_type") is None
    assert resolver.resolve(None) is None


def test_round_half_up():
    assert round_half_up(Decimal("12.5")) == 13
    assert round_half_up(Decimal("12.49")) == 12
    assert round_half_up(Decimal("49.95")) == 50


def test_two_for_one_frees_the_cheapest_units():
    order = SimpleNamespace(
        items=[
            _item(1, 3000, quantity=2, variant_id=201, product_id=101),
            _item(2, 5000, quantity=1, variant_id=202, product_id=101),
            _item(3, 800, quantity=1, product_id=102),
        ]
    )
    promotion = _promotion("two_for_one", [_promo_item(product_id=101)])

    result = TwoForOneStrategy().apply(order, promotion, MONDAY_NOON)

    assert result.amount_cents == 3000
    assert result.item_discounts == {1: 3000}


def test_two_for_one_needs_at_least_two_units():
    order = SimpleNamespace(items=[_item(1, 3000, product_id=101)])
    promotion = _promotion("two_for_one", [_promo_item(product_id=101)])

    assert TwoForOneStrategy().apply(order, promotion).amount_cents == 0


def test_percentage_discount_rounds_half_up_per_item():
    order = SimpleNamespace(
        items=[
            _item(1, 333, product_id=101),
            _item(2, 125, product_id=102),
        ]
    )
    promotion = _promotion(
        "percentage_discount",
        [
            _promo_item(product_id=101, discount_percentage=Decimal("15")),
            _promo_item(product_id=102, discount_percentage=Decimal("10")),
        ],
    )

    result = PercentageDiscountStrategy().apply(order, promotion)

    assert result.item_discounts == {1: 50, 2: 13}
    assert result.amount_cents == 63


def test_variant_match_takes_precedence_over_category():
    order = SimpleNamespace(items=[_item(1, 3000, quantity=2, variant_id=201, product_id=101, category_id=1)])
    promotion = _promotion(
        "percentage_discount",
        [
            _promo_item(category_id=1, discount_percentage=Decimal("10")),
            _promo_item(variant_id=201, discount_percentage=Decimal("50")),
        ],
    )

    result = PercentageDiscountStrategy().apply(order, promotion)

    assert result.amount_cents == 3000


def test_combo_items_are_never_discounted():
    order = SimpleNamespace(items=[_item(1, 3500, quantity=2, product_id=101, combo_id=301)])
    promotion = _promotion("percentage_discount", [_promo_item(product_id=101, discount_percentage=Decimal("20"))])

    assert PercentageDiscountStrategy().apply(order, promotion).amount_cents == 0
    assert TwoForOneStrategy().apply(order, _promotion("two_for_one", [_promo_item(product_id=101)])).amount_cents == 0


def test_daily_special_uses_special_price_only_on_its_weekdays():
    order = SimpleNamespace(items=[_item(1, 3000, quantity=2, variant_id=201, product_id=101)])
    promotion = _promotion(
        "daily_special",
        [_promo_item(variant_id=201, special_price_cents=2500)],
        weekdays=[1],
    )

    on_monday = DailySpecialStrategy().apply(order, promotion, MONDAY_NOON)
    on_tuesday = DailySpecialStrategy().apply(order, promotion, datetime(2026, 10, 20, 12, 0))

    assert on_monday.amount_cents == 1000
    assert on_tuesday.amount_cents == 0


def test_daily_special_ignores_special_price_above_unit_price():
    order = SimpleNamespace(items=[_item(1, 2000, variant_id=201)])
    promotion = _promotion("daily_special", [_promo_item(variant_id=201, special_price_cents=2500)])

    assert DailySpecialStrategy().apply(order, promotion, MONDAY_NOON).amount_cents == 0


def test_bundle_special_discounts_complete_bundles_only():
    order = SimpleNamespace(
        items=[
            _item(1, 3000, quantity=2, variant_id=201, product_id=101),
            _item(2, 800, quantity=1, product_id=102),
        ]
    )
    promotion = _promotion(
        "bundle_special",
        [_promo_item(product_id=101), _promo_item(product_id=102)],
        bundle_price_cents=3200,
        name="Sub + Refri",
    )

    result = BundleSpecialStrategy().apply(order, promotion)

    assert result.amount_cents == 600
    assert sum(result.item_discounts.values()) == 600
    assert set(result.item_discounts) == {1, 2}
    assert result.description == "Sub + Refri x1"


def test_bundle_special_without_full_bundle_gives_nothing():
    order = SimpleNamespace(items=[_item(1, 3000, quantity=2, product_id=101)])
    promotion = _promotion(
        "bundle_special",
        [_promo_item(product_id=101), _promo_item(product_id=102)],
        bundle_price_cents=3200,
    )

    assert BundleSpecialStrategy().apply(order, promotion).amount_cents == 0


def test_bundle_special_respects_required_quantities():
    order = SimpleNamespace(items=[_item(1, 1000, quantity=5, product_id=103)])
    promotion = _promotion("bundle_special", [_promo_item(product_id=103, quantity=2)], bundle_price_cents=1500)

    result = BundleSpecialStrategy().apply(order, promotion)

    # 2 pacotes de 2 unidades: 4000 normal - 3000 promocional
    assert result.amount_cents == 1000


@pytest.mark.parametrize(
    "overrides, at, expected",
    [
        ({}, MONDAY_NOON, True),
        ({"is_active": False}, MONDAY_NOON, False),
        ({"valid_from": date(2026, 10, 20)}, MONDAY_NOON, False),
        ({"valid_until": date(2026, 10, 18)}, MONDAY_NOON, False),
        ({"valid_from": date(2026, 10, 19), "valid_until": date(2026, 10, 19)}, MONDAY_NOON, True),
        ({"time_from": time(11, 0), "time_until": time(14, 0)}, MONDAY_NOON, True),
        ({"time_from": time(18, 0)}, MONDAY_NOON, False),
        ({"weekdays": [6, 7]}, MONDAY_NOON, False),
        ({"weekdays": [1]}, MONDAY_NOON, True),
    ],
)
def test_is_valid_at(overrides, at, expected):
    promotion = _promotion("two_for_one", [], **overrides)

    assert is_valid_at(promotion, at) is expected
