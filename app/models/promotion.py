import sqlalchemy as sa
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Time, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base


class Promotion(Base):
    __tablename__ = "promotions"

    TYPE_TWO_FOR_ONE = "two_for_one"
    TYPE_DAILY_SPECIAL = "daily_special"
    TYPE_PERCENTAGE_DISCOUNT = "percentage_discount"
    TYPE_BUNDLE_SPECIAL = "bundle_special"

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, index=True, nullable=False)
    name = Column(String(120), nullable=False)
    type = Column(String(30), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Vigência (nulo = sem restrição)
    valid_from = Column(Date, nullable=True)
    valid_until = Column(Date, nullable=True)
    time_from = Column(Time, nullable=True)
    time_until = Column(Time, nullable=True)
    weekdays = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)  # ISO: 1=segunda, 7=domingo

    bundle_price_cents = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    items = relationship(
        "PromotionItem",
        back_populates="promotion",
        cascade="all, delete-orphan",
        order_by="PromotionItem.id",
    )


class PromotionItem(Base):
    __tablename__ = "promotion_items"

    id = Column(Integer, primary_key=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), index=True, nullable=False)

    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    category_id = Column(Integer, nullable=True)

    discount_percentage = Column(Numeric(5, 2), nullable=True)
    special_price_cents = Column(Integer, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)

    promotion = relationship("Promotion", back_populates="items")
