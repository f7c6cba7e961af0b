import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base


class Order(Base):
    __tablename__ = "orders"

    STATUS_PENDING = "pending"
    STATUS_PREPARING = "preparing"
    STATUS_READY = "ready"
    STATUS_OUT_FOR_DELIVERY = "out_for_delivery"
    STATUS_DELIVERED = "delivered"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"
    STATUS_REFUNDED = "refunded"

    SERVICE_PICKUP = "pickup"
    SERVICE_DELIVERY = "delivery"
    SERVICE_DINE_IN = "dine_in"

    id = Column(Integer, primary_key=True)

    # Multi-tenant: o restaurante é o tenant
    restaurant_id = Column(Integer, index=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), index=True, nullable=False)
    order_number = Column(String(32), index=True, nullable=True)

    service_type = Column(String(20), default=SERVICE_PICKUP, nullable=False)
    status = Column(String(30), default=STATUS_PENDING, index=True, nullable=False)
    previous_status = Column(String(30), nullable=True)

    # Valores em centavos
    subtotal_cents = Column(Integer, default=0, nullable=False)
    discount_cents = Column(Integer, default=0, nullable=False)
    points_discount_cents = Column(Integer, default=0, nullable=False)
    total_cents = Column(Integer, default=0, nullable=False)

    # ids das promoções já aplicadas (snapshot para não descontar duas vezes)
    applied_promotion_ids = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)

    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    status_changed_at = Column(DateTime(timezone=True), nullable=True)
    ready_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )
    promotions = relationship("OrderPromotion", back_populates="order", cascade="all, delete-orphan")

    def recalculate_total(self) -> int:
        self.total_cents = max(
            int(self.subtotal_cents or 0) - int(self.discount_cents or 0) - int(self.points_discount_cents or 0),
            0,
        )
        return self.total_cents
