from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class OrderPromotion(Base):
    __tablename__ = "order_promotions"
    __table_args__ = (UniqueConstraint("order_id", "promotion_id", name="uq_order_promotions_order_promotion"),)

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False)
    promotion_type = Column(String(30), nullable=False)
    promotion_name = Column(String(120), nullable=False)
    discount_cents = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)
    released_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="promotions")
