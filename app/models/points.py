from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class PointsTransaction(Base):
    __tablename__ = "points_transactions"

    TYPE_EARN = "earn"
    TYPE_REDEEM = "redeem"
    TYPE_ADJUSTMENT = "adjustment"
    TYPE_EXPIRED = "expired"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), index=True, nullable=False)
    points = Column(Integer, nullable=False)  # positivo = ganho, negativo = resgate
    type = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    reference_type = Column(String(30), nullable=True)  # order / product / variant / combo
    reference_id = Column(Integer, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_expired = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="points_transactions")


class PointsSettings(Base):
    __tablename__ = "points_settings"

    id = Column(Integer, primary_key=True)
    points_per_currency_unit = Column(Numeric(8, 4), nullable=False)
    rounding_threshold = Column(Numeric(4, 2), nullable=False, default=0)
    point_value_cents = Column(Integer, nullable=False)
    expiration_months = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
