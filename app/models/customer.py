from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class CustomerType(Base):
    """Nível de fidelidade: multiplica os pontos ganhos a partir de `min_points`."""

    __tablename__ = "customer_types"

    id = Column(Integer, primary_key=True)
    name = Column(String(60), nullable=False)
    min_points = Column(Integer, nullable=False, default=0)
    multiplier = Column(Numeric(4, 2), nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    customers = relationship("Customer", back_populates="customer_type")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(30), nullable=True, index=True)

    # saldo em cache; a fonte da verdade é a soma de points_transactions
    points = Column(Integer, nullable=False, default=0)
    points_updated_at = Column(DateTime(timezone=True), nullable=True)
    points_last_activity_at = Column(DateTime(timezone=True), nullable=True)
    last_purchase_at = Column(DateTime(timezone=True), nullable=True)
    customer_type_id = Column(Integer, ForeignKey("customer_types.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer_type = relationship("CustomerType", back_populates="customers")
    orders = relationship("Order", back_populates="customer")
    points_transactions = relationship(
        "PointsTransaction",
        back_populates="customer",
        order_by="PointsTransaction.id",
    )
