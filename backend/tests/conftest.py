"""
Shared pytest fixtures for backend tests.
Each test gets its own SQLite file and no completion provider keys.
"""
import pytest
import sqlite3
import sys
import os
from datetime import datetime, timezone

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
import database
from dispatcher import ActionDispatcher

USER = "user-1"
OTHER_USER = "user-2"
FIXED_NOW = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)

SCHEMA = """
    CREATE TABLE items (
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
    );

    CREATE TABLE labels (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        color TEXT NOT NULL DEFAULT '#6b7280',
        created_at TEXT NOT NULL
    );

    CREATE TABLE item_labels (
        item_id TEXT NOT NULL,
        label_id TEXT NOT NULL,
        PRIMARY KEY (item_id, label_id)
    );

    CREATE TABLE notifications (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        item_id TEXT,
        title TEXT NOT NULL,
        due_at TEXT NOT NULL,
        delivered_at TEXT
    );

    CREATE TABLE activity_log (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        item_id TEXT,
        action TEXT NOT NULL,
        data_json TEXT,
        created_at TEXT NOT NULL
    );

    CREATE TABLE conversations (
        id INTEGER PRIMARY KEY,
        user_id TEXT NOT NULL,
        messages TEXT DEFAULT '[]',
        title TEXT DEFAULT 'Untitled',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
"""


@pytest.fixture(autouse=True)
def no_provider_keys(monkeypatch):
    """Never reach a real model from tests; the rule-based fallback answers instead."""
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", None)
    monkeypatch.setattr(config, "OPENAI_API_KEY", None)


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def dispatcher(test_db):
    """Dispatcher with the clock pinned to FIXED_NOW."""
    return ActionDispatcher(clock=lambda: FIXED_NOW)


@pytest.fixture
def app_client(test_db, monkeypatch):
    """
    Create a test client for the FastAPI app.
    Mocks init_db to skip alembic migrations.
    """
    from fastapi.testclient import TestClient
    import main

    # Skip alembic in tests - tables already created by test_db fixture
    monkeypatch.setattr(main, "init_db", lambda: None)

    with TestClient(main.app) as client:
        yield client
