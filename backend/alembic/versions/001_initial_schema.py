"""Initial schema - items, labels, notifications, activity log, conversations

Revision ID: 001
Revises: None
Create Date: 2026-10-12

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS items (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            type TEXT NOT NULL DEFAULT 'task',
            title TEXT NOT NULL,
            details TEXT,
            status TEXT NOT NULL DEFAULT 'not_started',
            priority TEXT NOT NULL DEFAULT 'medium',
            tags_json TEXT NOT NULL DEFAULT '[]',
            due_at TEXT,
            start_at TEXT,
            end_at TEXT,
            estimated_minutes INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS labels (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            color TEXT NOT NULL DEFAULT '#6b7280',
            created_at TEXT NOT NULL
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS item_labels (
            item_id TEXT NOT NULL,
            label_id TEXT NOT NULL,
            PRIMARY KEY (item_id, label_id)
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS notifications (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            item_id TEXT,
            title TEXT NOT NULL,
            due_at TEXT NOT NULL,
            delivered_at TEXT
        )
    """))

    # Append-only; rows are never updated or deleted
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS activity_log (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            item_id TEXT,
            action TEXT NOT NULL,
            data_json TEXT,
            created_at TEXT NOT NULL
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS conversations (
            id INTEGER PRIMARY KEY,
            user_id TEXT NOT NULL,
            messages TEXT DEFAULT '[]',
            title TEXT DEFAULT 'Untitled',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS conversations"))
    conn.execute(text("DROP TABLE IF EXISTS activity_log"))
    conn.execute(text("DROP TABLE IF EXISTS notifications"))
    conn.execute(text("DROP TABLE IF EXISTS item_labels"))
    conn.execute(text("DROP TABLE IF EXISTS labels"))
    conn.execute(text("DROP TABLE IF EXISTS items"))
