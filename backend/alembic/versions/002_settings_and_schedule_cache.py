"""Add user settings and the per-date schedule cache

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Single-row table
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS user_settings (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            desired_sleep_duration REAL NOT NULL DEFAULT 7.5,
            default_wake_time TEXT NOT NULL DEFAULT '06:30',
            default_sleep_time TEXT NOT NULL DEFAULT '23:00'
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS daily_schedules (
            date TEXT PRIMARY KEY,
            result TEXT NOT NULL,
            version TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS daily_schedules"))
    conn.execute(text("DROP TABLE IF EXISTS user_settings"))
