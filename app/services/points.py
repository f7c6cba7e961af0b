from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import (
    POINT_VALUE_CENTS,
    POINTS_EXPIRATION_MONTHS,
    POINTS_PER_CURRENCY_UNIT,
    POINTS_ROUNDING_THRESHOLD,
)
from app.models.customer import Customer, CustomerType
from app.models.order import Order
from app.models.points import PointsSettings, PointsTransaction
from app.services.errors import (
    DomainError,
    InsufficientPointsError,
    InvalidOrderError,
    InvalidRewardError,
    NotFoundError,
    PersistenceError,
)
from app.services.rewards import resolve_reward

logger = logging.getLogger(__name__)

REDEEMABLE_ORDER_STATUSES = frozenset({Order.STATUS_PENDING, Order.STATUS_PREPARING, Order.STATUS_READY})


@dataclass(frozen=True)
class PointsConfig:
    points_per_currency_unit: Decimal
    rounding_threshold: Decimal
    point_value_cents: int
    expiration_months: int


@dataclass
class Redemption:
    transaction: PointsTransaction
    balance: int
    credit_cents: int = 0
    order: Order | None = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def get_points_settings(db: Session) -> PointsConfig:
    row = db.query(PointsSettings).order_by(PointsSettings.id.asc()).first()
    if row is None:
        return PointsConfig(
            points_per_currency_unit=POINTS_PER_CURRENCY_UNIT,
            rounding_threshold=POINTS_ROUNDING_THRESHOLD,
            point_value_cents=POINT_VALUE_CENTS,
            expiration_months=POINTS_EXPIRATION_MONTHS,
        )
    return PointsConfig(
        points_per_currency_unit=Decimal(str(row.points_per_currency_unit)),
        rounding_threshold=Decimal(str(row.rounding_threshold or 0)),
        point_value_cents=int(row.point_value_cents),
        expiration_months=int(row.expiration_months),
    )


def round_with_threshold(value: Decimal, threshold: Decimal) -> int:
    """Trunca; arredonda para cima só com parte inteira >= 1 e fração >= threshold."""
    int_part = int(value.to_integral_value(rounding=ROUND_FLOOR))
    if threshold <= 0:
        return int_part
    fraction = (value - int_part).quantize(Decimal("0.01"))
    if int_part >= 1 and fraction >= threshold:
        return int_part + 1
    return int_part


def calculate_points_to_earn(
    total_cents: int,
    settings: PointsConfig,
    multiplier: Decimal = Decimal("1"),
) -> int:
    if total_cents <= 0:
        return 0
    spent = Decimal(int(total_cents)) / Decimal(100)
    base = round_with_threshold(spent * settings.points_per_currency_unit, settings.rounding_threshold)
    if multiplier > 1:
        return round_with_threshold(Decimal(base) * multiplier, settings.rounding_threshold)
    return base


def _customer_multiplier(customer: Customer) -> Decimal:
    customer_type = customer.customer_type
    if customer_type is None or not customer_type.is_active:
        return Decimal("1")
    multiplier = Decimal(str(customer_type.multiplier or 1))
    return multiplier if multiplier > 0 else Decimal("1")


def ledger_sum(db: Session, customer_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(PointsTransaction.points), 0))
        .filter(PointsTransaction.customer_id == customer_id)
        .scalar()
    )
    return int(total or 0)


def get_balance(db: Session, customer: Customer) -> int:
    return ledger_sum(db, customer.id)


def _lock_customer(db: Session, customer_id: int) -> Customer:
    customer = (
        db.query(Customer)
        .filter(Customer.id == customer_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if customer is None:
        raise NotFoundError(f"Cliente {customer_id} não encontrado")
    return customer


def _lock_order(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).populate_existing().with_for_update().first()
    if order is None:
        raise NotFoundError("Pedido não encontrado")
    return order


def _commit(db: Session, message: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(message)
        raise PersistenceError(message) from exc


def _apply_tier(db: Session, customer: Customer) -> None:
    new_type = (
        db.query(CustomerType)
        .filter(CustomerType.is_active.is_(True), CustomerType.min_points <= int(customer.points or 0))
        .order_by(CustomerType.min_points.desc())
        .first()
    )
    if new_type is not None and customer.customer_type_id != new_type.id:
        logger.info(
            "customer tier changed to %s",
            new_type.name,
            extra={"customer_id": customer.id},
        )
        customer.customer_type_id = new_type.id


def _append_transaction(
    db: Session,
    customer: Customer,
    points: int,
    tx_type: str,
    description: str | None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    expires_at: datetime | None = None,
) -> PointsTransaction:
    now = utcnow()
    transaction = PointsTransaction(
        customer_id=customer.id,
        points=points,
        type=tx_type,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        expires_at=expires_at,
        is_expired=False,
    )
    db.add(transaction)
    db.flush()
    # saldo em cache sempre recalculado a partir do ledger, na mesma transação
    customer.points = ledger_sum(db, customer.id)
    customer.points_updated_at = now
    customer.points_last_activity_at = now
    return transaction


def earn(
    db: Session,
    customer: Customer,
    points: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    description: str | None = None,
) -> PointsTransaction:
    if points <= 0:
        raise ValueError("points must be positive")
    try:
        locked = _lock_customer(db, customer.id)
        settings = get_points_settings(db)
        transaction = _append_transaction(
            db,
            locked,
            points,
            PointsTransaction.TYPE_EARN,
            description or "Pontos ganhos",
            reference_type=reference_type,
            reference_id=reference_id,
            expires_at=add_months(utcnow(), settings.expiration_months),
        )
        _apply_tier(db, locked)
    except DomainError:
        db.rollback()
        raise
    _commit(db, "Erro ao registrar pontos")
    logger.info("earned %s points", points, extra={"customer_id": customer.id})
    return transaction


def earn_for_order(db: Session, order_id: int) -> PointsTransaction | None:
    """Crédito de pontos de um pedido concluído; idempotente por pedido."""
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Pedido não encontrado")
    if order.status != Order.STATUS_COMPLETED:
        logger.info("order not completed, skipping points", extra={"order_id": order_id})
        return None
    if order.customer_id is None:
        return None

    locked = _lock_customer(db, order.customer_id)
    existing = (
        db.query(PointsTransaction)
        .filter(
            PointsTransaction.customer_id == locked.id,
            PointsTransaction.type == PointsTransaction.TYPE_EARN,
            PointsTransaction.reference_type == "order",
            PointsTransaction.reference_id == order.id,
        )
        .first()
    )
    if existing is not None:
        db.rollback()
        logger.info("points already credited", extra={"order_id": order_id})
        return existing

    settings = get_points_settings(db)
    points = calculate_points_to_earn(int(order.total_cents or 0), settings, _customer_multiplier(locked))
    locked.last_purchase_at = utcnow()
    if points <= 0:
        _commit(db, "Erro ao registrar compra do cliente")
        return None

    transaction = _append_transaction(
        db,
        locked,
        points,
        PointsTransaction.TYPE_EARN,
        f"Pontos ganhos no pedido #{order.order_number or order.id}",
        reference_type="order",
        reference_id=order.id,
        expires_at=add_months(utcnow(), settings.expiration_months),
    )
    _apply_tier(db, locked)
    _commit(db, "Erro ao creditar pontos do pedido")
    logger.info("credited %s points", points, extra={"order_id": order_id, "customer_id": locked.id})
    return transaction


def redeem(db: Session, customer: Customer, order: Order, points_to_redeem: int) -> Redemption:
    """Troca pontos por crédito no pedido; valida e debita sob lock do cliente."""
    if points_to_redeem < 1:
        raise ValueError("points_to_redeem must be >= 1")

    try:
        locked = _lock_customer(db, customer.id)
        locked_order = _lock_order(db, order.id)
        if locked_order.customer_id != locked.id:
            raise InvalidOrderError("Pedido não pertence ao cliente")
        if locked_order.status not in REDEEMABLE_ORDER_STATUSES:
            raise InvalidOrderError("Pedido não aceita resgate de pontos no status atual")

        balance = ledger_sum(db, locked.id)
        if balance < points_to_redeem:
            raise InsufficientPointsError(balance, points_to_redeem)

        settings = get_points_settings(db)
        credit_cents = points_to_redeem * settings.point_value_cents
        if credit_cents > int(locked_order.total_cents or 0):
            raise InvalidOrderError("Crédito de pontos excede o total do pedido")
    except DomainError:
        db.rollback()
        raise

    transaction = _append_transaction(
        db,
        locked,
        -points_to_redeem,
        PointsTransaction.TYPE_REDEEM,
        f"Resgatados {points_to_redeem} pontos no pedido #{locked_order.order_number or locked_order.id}",
        reference_type="order",
        reference_id=locked_order.id,
    )
    locked_order.points_discount_cents = int(locked_order.points_discount_cents or 0) + credit_cents
    locked_order.recalculate_total()
    _commit(db, "Erro ao resgatar pontos")

    logger.info(
        "redeemed %s points credit_cents=%s",
        points_to_redeem,
        credit_cents,
        extra={"customer_id": locked.id, "order_id": locked_order.id},
    )
    return Redemption(transaction=transaction, balance=int(locked.points), credit_cents=credit_cents, order=locked_order)


def redeem_reward(db: Session, customer: Customer, reward_type: str, reward_id: int) -> Redemption:
    reward = resolve_reward(db, reward_type, reward_id)
    if not reward.is_redeemable or reward.points_cost is None or reward.points_cost <= 0:
        raise InvalidRewardError("Recompensa não disponível para resgate")

    try:
        locked = _lock_customer(db, customer.id)
        balance = ledger_sum(db, locked.id)
        if balance < reward.points_cost:
            raise InsufficientPointsError(balance, reward.points_cost)
    except DomainError:
        db.rollback()
        raise

    transaction = _append_transaction(
        db,
        locked,
        -reward.points_cost,
        PointsTransaction.TYPE_REDEEM,
        f"Resgate de recompensa: {reward.name}",
        reference_type=reward.kind,
        reference_id=reward.id,
    )
    _commit(db, "Erro ao resgatar recompensa")
    logger.info("reward %s:%s redeemed", reward.kind, reward.id, extra={"customer_id": locked.id})
    return Redemption(transaction=transaction, balance=int(locked.points))


def adjust(db: Session, customer: Customer, points: int, description: str) -> PointsTransaction:
    if points == 0:
        raise ValueError("adjustment must not be zero")
    try:
        locked = _lock_customer(db, customer.id)
        balance = ledger_sum(db, locked.id)
        if balance + points < 0:
            raise InsufficientPointsError(balance, -points)
    except DomainError:
        db.rollback()
        raise
    transaction = _append_transaction(db, locked, points, PointsTransaction.TYPE_ADJUSTMENT, description)
    _apply_tier(db, locked)
    _commit(db, "Erro ao ajustar pontos")
    return transaction


def reconcile_balance(db: Session, customer: Customer) -> int:
    locked = _lock_customer(db, customer.id)
    balance = ledger_sum(db, locked.id)
    if int(locked.points or 0) != balance:
        logger.warning(
            "cached balance drift cached=%s ledger=%s",
            locked.points,
            balance,
            extra={"customer_id": locked.id},
        )
        locked.points = balance
        locked.points_updated_at = utcnow()
    _commit(db, "Erro ao reconciliar saldo")
    return balance


def list_transactions(
    db: Session,
    customer: Customer,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[PointsTransaction], int]:
    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)
    query = db.query(PointsTransaction).filter(PointsTransaction.customer_id == customer.id)
    total = query.count()
    rows = (
        query.order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return rows, total


def expire_inactive_points(db: Session, now: datetime | None = None) -> dict[str, int]:
    now = now or utcnow()
    settings = get_points_settings(db)
    cutoff = add_months(now, -settings.expiration_months)

    candidate_ids = [
        row.id
        for row in db.query(Customer.id)
        .filter(
            Customer.points > 0,
            or_(Customer.points_last_activity_at.is_(None), Customer.points_last_activity_at < cutoff),
        )
        .all()
    ]

    summary = {"customers": 0, "points": 0, "failures": 0}
    for customer_id in candidate_ids:
        try:
            locked = _lock_customer(db, customer_id)
            balance = ledger_sum(db, customer_id)
            if balance <= 0:
                db.rollback()
                continue
            db.add(
                PointsTransaction(
                    customer_id=customer_id,
                    points=-balance,
                    type=PointsTransaction.TYPE_EXPIRED,
                    description=f"Pontos expirados por {settings.expiration_months} meses de inatividade",
                    expires_at=now,
                    is_expired=True,
                )
            )
            (
                db.query(PointsTransaction)
                .filter(
                    PointsTransaction.customer_id == customer_id,
                    PointsTransaction.type == PointsTransaction.TYPE_EARN,
                    PointsTransaction.is_expired.is_(False),
                )
                .update({PointsTransaction.is_expired: True}, synchronize_session=False)
            )
            locked.points = 0
            locked.points_updated_at = now
            db.commit()
            summary["customers"] += 1
            summary["points"] += balance
        except Exception:
            db.rollback()
            summary["failures"] += 1
            logger.exception("error expiring points", extra={"customer_id": customer_id})

    logger.info(
        "expired %s points from %s customers failures=%s",
        summary["points"],
        summary["customers"],
        summary["failures"],
    )
    return summary
