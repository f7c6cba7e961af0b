"""Schema inicial: cardápio, clientes e pontos, pedidos, promoções e outbox.

As tabelas são criadas a partir dos models, na ordem das chaves estrangeiras.
"""
from __future__ import annotations

from alembic import op

from app.core.database import Base
import app.models  # noqa: F401

revision = "0001_create_schema"
down_revision = None
branch_labels = None
depends_on = None

TABLES = (
    "products",
    "product_variants",
    "combos",
    "customer_types",
    "customers",
    "points_settings",
    "promotions",
    "promotion_items",
    "orders",
    "order_items",
    "order_status_history",
    "order_promotions",
    "points_transactions",
    "outbox_events",
)


def upgrade() -> None:
    bind = op.get_bind()
    for name in TABLES:
        Base.metadata.tables[name].create(bind=bind, checkfirst=True)


def downgrade() -> None:
    bind = op.get_bind()
    for name in reversed(TABLES):
        Base.metadata.tables[name].drop(bind=bind, checkfirst=True)
