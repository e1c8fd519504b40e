"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database for isolation.
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from models import Settings, TaskTemplate


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
    conn.executescript("""
        CREATE TABLE task_templates (
            id TEXT PRIMARY KEY,
            task_name TEXT NOT NULL,
            description TEXT,
            is_mandatory INTEGER DEFAULT 0,
            priority INTEGER NOT NULL DEFAULT 3,
            is_active INTEGER DEFAULT 1,
            scheduling_type TEXT NOT NULL DEFAULT 'flexible',
            default_time TEXT,
            time_window TEXT,
            duration_minutes INTEGER NOT NULL DEFAULT 0,
            min_duration_minutes INTEGER,
            depends_on TEXT,
            recurrence_rule TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE task_instances (
            id TEXT PRIMARY KEY,
            template_id TEXT NOT NULL,
            date TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            modified_start_time TEXT,
            completed_at TEXT,
            skipped_reason TEXT,
            note TEXT,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE user_settings (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            desired_sleep_duration REAL NOT NULL DEFAULT 7.5,
            default_wake_time TEXT NOT NULL DEFAULT '06:30',
            default_sleep_time TEXT NOT NULL DEFAULT '23:00'
        );

        CREATE TABLE daily_schedules (
            date TEXT PRIMARY KEY,
            result TEXT NOT NULL,
            version TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


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


@pytest.fixture
def settings():
    """Awake 06:00-23:00."""
    return Settings(desired_sleep_duration=7.5, default_wake_time="06:00", default_sleep_time="23:00")


@pytest.fixture
def make_template():
    """Factory for TaskTemplate with flexible/anytime defaults."""
    def _make(id: str, **fields) -> TaskTemplate:
        fields.setdefault("task_name", id.title())
        fields.setdefault("duration_minutes", 30)
        return TaskTemplate(id=id, **fields)
    return _make
