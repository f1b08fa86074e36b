"""Add per-user indexes for item, notification and activity lookups

Revision ID: 002
Revises: 001
Create Date: 2026-10-14

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INDEXES = {
    "ix_items_user_created": "items (user_id, created_at)",
    "ix_labels_user": "labels (user_id)",
    "ix_notifications_user_item": "notifications (user_id, item_id)",
    "ix_activity_log_user_item": "activity_log (user_id, item_id)",
    "ix_conversations_user_updated": "conversations (user_id, updated_at)",
}


def upgrade() -> None:
    conn = op.get_bind()
    for name, target in INDEXES.items():
        conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {target}"))


def downgrade() -> None:
    conn = op.get_bind()
    for name in INDEXES:
        conn.execute(text(f"DROP INDEX IF EXISTS {name}"))
