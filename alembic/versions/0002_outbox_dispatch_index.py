from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0002_outbox_dispatch_index"
down_revision = "0001_create_schema"
branch_labels = None
depends_on = None

INDEX_NAME = "ix_outbox_events_status_available_at"


def _indexes_by_name(table_name: str) -> set[str]:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    return {index["name"] for index in inspector.get_indexes(table_name)}


def upgrade() -> None:
    existing = _indexes_by_name("outbox_events")

    # o dispatcher busca sempre por status + available_at
    if INDEX_NAME not in existing:
        op.create_index(INDEX_NAME, "outbox_events", ["status", "available_at"])


def downgrade() -> None:
    existing = _indexes_by_name("outbox_events")

    if INDEX_NAME in existing:
        op.drop_index(INDEX_NAME, table_name="outbox_events")
