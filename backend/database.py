import sqlite3
import json
import logging
import uuid
from typing import Any, Optional
from contextlib import contextmanager

import config
from models import ActivityRecord, Item, ItemCreate, ItemUpdate, Label, Notification
from timeutil import to_iso, utcnow

logger = logging.getLogger(__name__)

DATABASE_PATH = config.DATABASE_PATH

ITEM_COLUMNS = (
    "id", "user_id", "type", "title", "details", "status", "priority", "tags_json",
    "due_at", "start_at", "end_at", "estimated_minutes", "created_at", "updated_at",
)


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def _now() -> str:
    return to_iso(utcnow())


def _row_to_item(row) -> Item:
    """Convert a database row to an Item model."""
    return Item(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        title=row["title"],
        details=row["details"],
        status=row["status"],
        priority=row["priority"],
        tags=json.loads(row["tags_json"]) if row["tags_json"] else [],
        due_at=row["due_at"],
        start_at=row["start_at"],
        end_at=row["end_at"],
        estimated_minutes=row["estimated_minutes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_label(row) -> Label:
    return Label(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        color=row["color"],
        created_at=row["created_at"],
    )


def _row_to_notification(row) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        item_id=row["item_id"],
        title=row["title"],
        due_at=row["due_at"],
        delivered_at=row["delivered_at"],
    )


# Item operations
def create_item(user_id: str, data: ItemCreate) -> Item:
    """Insert a new item owned by user_id and return it."""
    item_id = str(uuid.uuid4())
    now = _now()
    with get_db() as conn:
        conn.execute(
            f"INSERT INTO items ({', '.join(ITEM_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in ITEM_COLUMNS)})",
            (
                item_id, user_id, data.type, data.title, data.details, data.status,
                data.priority, json.dumps(data.tags), data.due_at, data.start_at,
                data.end_at, data.estimated_minutes, now, now,
            )
        )
        conn.commit()

    item = Item(id=item_id, user_id=user_id, created_at=now, updated_at=now, **data.model_dump())
    upsert_notification_for_item(item)
    return item


def get_item(item_id: str, user_id: str) -> Optional[Item]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM items WHERE id = ? AND user_id = ?",
            (item_id, user_id)
        ).fetchone()
        if row:
            return _row_to_item(row)
    return None


def list_items(
    user_id: str,
    type: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
) -> list[Item]:
    """All items for a user, newest first. Filters combine with AND."""
    clauses = ["user_id = ?"]
    params: list[Any] = [user_id]
    for column, value in (("type", type), ("status", status), ("priority", priority)):
        if value:
            clauses.append(f"{column} = ?")
            params.append(value)

    with get_db() as conn:
        rows = conn.execute(
            f"SELECT * FROM items WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, rowid DESC",
            params
        ).fetchall()
        return [_row_to_item(row) for row in rows]


def update_item(item_id: str, patch: dict, user_id: str) -> tuple[Optional[Item], dict]:
    """
    Update an item with any fields provided.
    Only updates fields that differ from current values; None values are ignored.
    Raises ValueError (pydantic ValidationError) for out-of-range values.

    Returns the updated item and the fields that actually changed, keyed by
    model field name. The item is None if it doesn't exist for this user.
    """
    changes = ItemUpdate(**patch).model_dump(exclude_none=True)
    if "tags" in changes:
        changes["tags_json"] = json.dumps(changes.pop("tags"))

    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM items WHERE id = ? AND user_id = ?",
            (item_id, user_id)
        ).fetchone()
        if not row:
            return None, {}

        # Filter updates: only include fields that differ from current values
        changes = {field: value for field, value in changes.items() if row[field] != value}

        if changes:
            changes["updated_at"] = _now()
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [item_id, user_id]
            conn.execute(f"UPDATE items SET {set_clause} WHERE id = ? AND user_id = ?", values)
            conn.commit()

        updated_row = conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        item = _row_to_item(updated_row)

    if "due_at" in changes or "title" in changes:
        upsert_notification_for_item(item)
    applied = {field: value for field, value in changes.items() if field != "updated_at"}
    if "tags_json" in applied:
        applied["tags"] = json.loads(applied.pop("tags_json"))
    return item, applied


def delete_item(item_id: str, user_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM items WHERE id = ? AND user_id = ?",
            (item_id, user_id)
        )
        conn.execute("DELETE FROM item_labels WHERE item_id = ?", (item_id,))
        conn.execute(
            "DELETE FROM notifications WHERE item_id = ? AND user_id = ?",
            (item_id, user_id)
        )
        conn.commit()
        return cursor.rowcount > 0


# Label operations
def create_label(user_id: str, name: str, color: str) -> Label:
    label = Label(id=str(uuid.uuid4()), user_id=user_id, name=name, color=color, created_at=_now())
    with get_db() as conn:
        conn.execute(
            "INSERT INTO labels (id, user_id, name, color, created_at) VALUES (?, ?, ?, ?, ?)",
            (label.id, user_id, name, color, label.created_at)
        )
        conn.commit()
    return label


def list_labels(user_id: str) -> list[Label]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM labels WHERE user_id = ? ORDER BY name ASC",
            (user_id,)
        ).fetchall()
        return [_row_to_label(row) for row in rows]


def get_label(label_id: str, user_id: str) -> Optional[Label]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM labels WHERE id = ? AND user_id = ?",
            (label_id, user_id)
        ).fetchone()
        return _row_to_label(row) if row else None


def add_label_to_item(item_id: str, label_id: str) -> None:
    with get_db() as conn:
        conn.execute(
            "INSERT OR IGNORE INTO item_labels (item_id, label_id) VALUES (?, ?)",
            (item_id, label_id)
        )
        conn.commit()


def remove_label_from_item(item_id: str, label_id: str) -> None:
    with get_db() as conn:
        conn.execute(
            "DELETE FROM item_labels WHERE item_id = ? AND label_id = ?",
            (item_id, label_id)
        )
        conn.commit()


def get_item_labels(item_id: str, user_id: str) -> list[Label]:
    with get_db() as conn:
        rows = conn.execute(
            """SELECT l.* FROM labels l
               INNER JOIN item_labels il ON l.id = il.label_id
               WHERE il.item_id = ? AND l.user_id = ?
               ORDER BY l.name ASC""",
            (item_id, user_id)
        ).fetchall()
        return [_row_to_label(row) for row in rows]


# Notification operations
def upsert_notification_for_item(item: Item) -> None:
    """Keep one pending reminder per item with a due date; drop it when the due date goes away."""
    with get_db() as conn:
        if not item.due_at:
            conn.execute(
                "DELETE FROM notifications WHERE item_id = ? AND user_id = ?",
                (item.id, item.user_id)
            )
            conn.commit()
            return

        row = conn.execute(
            "SELECT id FROM notifications WHERE item_id = ? AND user_id = ?",
            (item.id, item.user_id)
        ).fetchone()
        if row:
            conn.execute(
                "UPDATE notifications SET title = ?, due_at = ? WHERE id = ?",
                (item.title, item.due_at, row["id"])
            )
        else:
            conn.execute(
                "INSERT INTO notifications (id, user_id, item_id, title, due_at) VALUES (?, ?, ?, ?, ?)",
                (str(uuid.uuid4()), item.user_id, item.id, item.title, item.due_at)
            )
        conn.commit()


def create_notification(user_id: str, title: str, due_at: str, item_id: Optional[str] = None) -> Notification:
    notification = Notification(
        id=str(uuid.uuid4()), user_id=user_id, item_id=item_id, title=title, due_at=due_at
    )
    with get_db() as conn:
        conn.execute(
            "INSERT INTO notifications (id, user_id, item_id, title, due_at) VALUES (?, ?, ?, ?, ?)",
            (notification.id, user_id, item_id, title, due_at)
        )
        conn.commit()
    return notification


def list_all_notifications(user_id: str, limit: int = 50) -> list[Notification]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM notifications WHERE user_id = ? ORDER BY due_at DESC LIMIT ?",
            (user_id, limit)
        ).fetchall()
        return [_row_to_notification(row) for row in rows]


def count_pending_notifications(user_id: str) -> int:
    with get_db() as conn:
        row = conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND delivered_at IS NULL",
            (user_id,)
        ).fetchone()
        return row[0]


def mark_notification_delivered(notification_id: str, user_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE notifications SET delivered_at = ? WHERE id = ? AND user_id = ?",
            (_now(), notification_id, user_id)
        )
        conn.commit()
        return cursor.rowcount > 0


def mark_all_notifications_delivered(user_id: str) -> int:
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE notifications SET delivered_at = ? WHERE user_id = ? AND delivered_at IS NULL",
            (_now(), user_id)
        )
        conn.commit()
        return cursor.rowcount


# Activity log (append-only)
def log_activity(user_id: str, action: str, item_id: Optional[str] = None, data: Optional[dict] = None) -> ActivityRecord:
    record = ActivityRecord(
        id=str(uuid.uuid4()), user_id=user_id, action=action, item_id=item_id, data=data, created_at=_now()
    )
    with get_db() as conn:
        conn.execute(
            "INSERT INTO activity_log (id, user_id, item_id, action, data_json, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (record.id, user_id, item_id, action, json.dumps(data) if data is not None else None, record.created_at)
        )
        conn.commit()
    logger.debug("activity %s user=%s item=%s", action, user_id, item_id)
    return record


def list_activity(user_id: str, item_id: Optional[str] = None, limit: Optional[int] = None) -> list[ActivityRecord]:
    sql = "SELECT * FROM activity_log WHERE user_id = ?"
    params: list[Any] = [user_id]
    if item_id:
        sql += " AND item_id = ?"
        params.append(item_id)
    sql += " ORDER BY created_at ASC, rowid ASC"
    if limit:
        sql += " LIMIT ?"
        params.append(limit)

    with get_db() as conn:
        rows = conn.execute(sql, params).fetchall()
        return [
            ActivityRecord(
                id=row["id"],
                user_id=row["user_id"],
                action=row["action"],
                item_id=row["item_id"],
                data=json.loads(row["data_json"]) if row["data_json"] else None,
                created_at=row["created_at"],
            )
            for row in rows
        ]


# Conversation operations
def get_conversation(user_id: str, conversation_id: Optional[int] = None) -> dict:
    """Get a conversation, or the user's most recent one. Returns {"id": int | None, "messages": list}."""
    with get_db() as conn:
        if conversation_id is not None:
            row = conn.execute(
                "SELECT id, messages FROM conversations WHERE id = ? AND user_id = ?",
                (conversation_id, user_id)
            ).fetchone()
        else:
            row = conn.execute(
                "SELECT id, messages FROM conversations WHERE user_id = ? ORDER BY updated_at DESC, id DESC LIMIT 1",
                (user_id,)
            ).fetchone()
        if row:
            return {"id": row["id"], "messages": json.loads(row["messages"])}
        return {"id": None, "messages": []}


def save_conversation(user_id: str, messages: list[dict], conversation_id: int):
    """Save conversation messages for the given conversation_id."""
    now = _now()
    messages_json = json.dumps(messages)
    # Auto-title: set title from first user message if still 'Untitled'
    first_user = next((m["content"] for m in messages if m.get("role") == "user"), None)
    with get_db() as conn:
        row = conn.execute(
            "SELECT title FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id)
        ).fetchone()
        if row:
            if row["title"] == "Untitled" and first_user:
                conn.execute(
                    "UPDATE conversations SET messages = ?, updated_at = ?, title = ? WHERE id = ?",
                    (messages_json, now, first_user[:50], conversation_id)
                )
            else:
                conn.execute(
                    "UPDATE conversations SET messages = ?, updated_at = ? WHERE id = ?",
                    (messages_json, now, conversation_id)
                )
        conn.commit()


def new_conversation(user_id: str) -> int:
    """Create a new empty conversation and return its id."""
    now = _now()
    with get_db() as conn:
        cursor = conn.execute(
            "INSERT INTO conversations (user_id, messages, title, created_at, updated_at) VALUES (?, '[]', 'Untitled', ?, ?)",
            (user_id, now, now)
        )
        conn.commit()
        return cursor.lastrowid
