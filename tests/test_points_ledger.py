from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.models.customer import Customer
from app.models.order import Order
from app.models.points import PointsTransaction
from app.services.errors import InsufficientPointsError, InvalidOrderError, InvalidRewardError
from app.services.points import (
    PointsConfig,
    add_months,
    adjust,
    calculate_points_to_earn,
    earn,
    earn_for_order,
    expire_inactive_points,
    get_balance,
    get_points_settings,
    ledger_sum,
    list_transactions,
    reconcile_balance,
    redeem,
    redeem_reward,
    round_with_threshold,
)
from tests.fixtures_data import add_customer, add_customer_type, add_order, build_session, seed_catalog


def _settings(per_unit="0.1", threshold="0"):
    return PointsConfig(
        points_per_currency_unit=Decimal(per_unit),
        rounding_threshold=Decimal(threshold),
        point_value_cents=10,
        expiration_months=6,
    )


def _setup():
    db = build_session()
    seed_catalog(db)
    customer = add_customer(db)
    return db, customer


def test_round_with_threshold():
    assert round_with_threshold(Decimal("10.49"), Decimal("0")) == 10
    assert round_with_threshold(Decimal("10.49"), Decimal("0.5")) == 10
    assert round_with_threshold(Decimal("10.50"), Decimal("0.5")) == 11
    # parte inteira zero nunca arredonda para cima
    assert round_with_threshold(Decimal("0.90"), Decimal("0.5")) == 0


def test_calculate_points_to_earn_floors_and_applies_multiplier():
    assert calculate_points_to_earn(10500, _settings()) == 10
    assert calculate_points_to_earn(10500, _settings(threshold="0.5")) == 11
    assert calculate_points_to_earn(10500, _settings(), Decimal("1.5")) == 15
    assert calculate_points_to_earn(999, _settings()) == 0
    assert calculate_points_to_earn(0, _settings()) == 0


def test_settings_fall_back_to_config_defaults_without_row():
    db = build_session()

    settings = get_points_settings(db)

    assert settings.points_per_currency_unit == Decimal("0.1")
    assert settings.point_value_cents == 10
    assert settings.expiration_months == 6


def test_add_months_clamps_day_of_month():
    assert add_months(datetime(2026, 1, 31, tzinfo=timezone.utc), 1) == datetime(2026, 2, 28, tzinfo=timezone.utc)
    assert add_months(datetime(2026, 3, 15, tzinfo=timezone.utc), -6) == datetime(2025, 9, 15, tzinfo=timezone.utc)


def test_ledger_sum_matches_cached_balance_after_mixed_operations():
    db, customer = _setup()
    order = add_order(db, customer_id=customer.id)

    earn(db, customer, 120, description="Bônus de boas-vindas")
    earn(db, customer, 30)
    redeem(db, customer, order, 50)
    adjust(db, customer, -20, "Correção manual")
    earn(db, customer, 5)

    db.refresh(customer)
    assert customer.points == ledger_sum(db, customer.id) == get_balance(db, customer) == 85


def test_redeem_above_balance_raises_and_leaves_ledger_untouched():
    db, customer = _setup()
    order = add_order(db, customer_id=customer.id)
    earn(db, customer, 50)

    with pytest.raises(InsufficientPointsError) as exc_info:
        redeem(db, customer, order, 60)

    db.refresh(customer)
    db.refresh(order)
    assert exc_info.value.balance == 50
    assert exc_info.value.requested == 60
    assert customer.points == 50
    assert get_balance(db, customer) == 50
    assert db.query(PointsTransaction).filter(PointsTransaction.type == "redeem").count() == 0
    assert order.points_discount_cents == 0


def test_redeem_credits_order_and_recomputes_total():
    db, customer = _setup()
    order = add_order(db, customer_id=customer.id)
    earn(db, customer, 200)

    redemption = redeem(db, customer, order, 100)

    db.refresh(order)
    assert redemption.credit_cents == 1000
    assert redemption.balance == 100
    assert redemption.transaction.points == -100
    assert redemption.transaction.reference_type == "order"
    assert redemption.transaction.reference_id == order.id
    assert order.points_discount_cents == 1000
    assert order.total_cents == 2000


def test_redeem_rejects_credit_above_order_total():
    db, customer = _setup()
    order = add_order(db, customer_id=customer.id)
    earn(db, customer, 500)

    with pytest.raises(InvalidOrderError):
        redeem(db, customer, order, 301)

    assert get_balance(db, customer) == 500


def test_redeem_rejects_orders_outside_redeemable_states_or_owned_by_others():
    db, customer = _setup()
    other = add_customer(db, customer_id=11)
    earn(db, customer, 100)
    completed = add_order(db, customer_id=customer.id, status=Order.STATUS_COMPLETED)
    foreign = add_order(db, customer_id=other.id)

    with pytest.raises(InvalidOrderError):
        redeem(db, customer, completed, 10)
    with pytest.raises(InvalidOrderError):
        redeem(db, customer, foreign, 10)
    with pytest.raises(ValueError):
        redeem(db, customer, completed, 0)

    assert get_balance(db, customer) == 100


def test_earn_for_order_is_idempotent_and_sets_last_purchase():
    db, customer = _setup()
    order = add_order(db, customer_id=customer.id, status=Order.STATUS_COMPLETED)

    first = earn_for_order(db, order.id)
    second = earn_for_order(db, order.id)

    db.refresh(customer)
    assert first is not None
    assert second.id == first.id
    assert customer.points == 3
    assert customer.last_purchase_at is not None
    assert first.expires_at is not None


def test_earn_for_order_skips_orders_that_are_not_completed():
    db, customer = _setup()
    order = add_order(db, customer_id=customer.id, status=Order.STATUS_READY)

    assert earn_for_order(db, order.id) is None
    assert get_balance(db, customer) == 0


def test_tier_multiplier_and_upgrade():
    db = build_session()
    seed_catalog(db)
    add_customer_type(db, 1, "Bronze", 0, Decimal("1"))
    add_customer_type(db, 2, "Ouro", 100, Decimal("2"))
    customer = add_customer(db, customer_type_id=1)

    earn(db, customer, 120)
    db.refresh(customer)
    assert customer.customer_type_id == 2

    order = add_order(db, customer_id=customer.id, status=Order.STATUS_COMPLETED)
    tx = earn_for_order(db, order.id)
    assert tx.points == 6


def test_expire_inactive_points_zeroes_balance_and_flags_earn_rows():
    db, customer = _setup()
    active = add_customer(db, customer_id=11)
    earn(db, customer, 80)
    earn(db, active, 40)

    now = datetime.now(timezone.utc)
    stale = db.get(Customer, customer.id)
    stale.points_last_activity_at = now - timedelta(days=200)
    db.commit()

    summary = expire_inactive_points(db, now=now)

    db.refresh(customer)
    db.refresh(active)
    assert summary == {"customers": 1, "points": 80, "failures": 0}
    assert customer.points == 0
    assert get_balance(db, customer) == 0
    assert active.points == 40
    expired = db.query(PointsTransaction).filter(PointsTransaction.type == "expired").one()
    assert expired.points == -80
    earned = db.query(PointsTransaction).filter(
        PointsTransaction.customer_id == customer.id, PointsTransaction.type == "earn"
    ).one()
    assert earned.is_expired is True


def test_reconcile_balance_rewrites_drifted_cache():
    db, customer = _setup()
    earn(db, customer, 70)
    customer.points = 999
    db.commit()

    assert reconcile_balance(db, customer) == 70
    db.refresh(customer)
    assert customer.points == 70


def test_list_transactions_is_paginated_newest_first():
    db, customer = _setup()
    for amount in (1, 2, 3, 4, 5):
        earn(db, customer, amount)

    page_one, total = list_transactions(db, customer, page=1, per_page=2)
    page_three, _ = list_transactions(db, customer, page=3, per_page=2)

    assert total == 5
    assert [tx.points for tx in page_one] == [5, 4]
    assert [tx.points for tx in page_three] == [1]


def test_redeem_reward_debits_points_cost():
    db, customer = _setup()
    earn(db, customer, 200)

    redemption = redeem_reward(db, customer, "combo", 301)

    assert redemption.balance == 0
    assert redemption.transaction.reference_type == "combo"
    assert redemption.transaction.reference_id == 301


def test_redeem_reward_rejects_products_with_variants_and_short_balance():
    db, customer = _setup()
    earn(db, customer, 100)

    with pytest.raises(InvalidRewardError):
        redeem_reward(db, customer, "product", 101)
    with pytest.raises(InsufficientPointsError):
        redeem_reward(db, customer, "variant", 201)

    assert get_balance(db, customer) == 100
