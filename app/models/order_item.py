import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    combo_id = Column(Integer, ForeignKey("combos.id"), nullable=True)
    category_id = Column(Integer, nullable=True)

    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price_cents = Column(Integer, nullable=False, default=0)
    options_price_cents = Column(Integer, nullable=False, default=0)
    # [{"section": "Pão", "option": "Integral", "price_modifier_cents": 150}]
    selected_options = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    subtotal_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)

    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=True)
    promotion_snapshot = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def is_combo(self) -> bool:
        return self.combo_id is not None
