"""Initial schema - task templates and per-day task instances

Revision ID: 001
Revises: None
Create Date: 2026-10-19

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
        CREATE TABLE IF NOT EXISTS task_templates (
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
        )
    """))

    # One instance per (date, template); id is inst-<date>-<template_id>
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS task_instances (
            id TEXT PRIMARY KEY,
            template_id TEXT NOT NULL,
            date TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            modified_start_time TEXT,
            completed_at TEXT,
            skipped_reason TEXT,
            note TEXT,
            updated_at TEXT NOT NULL
        )
    """))
    conn.execute(text(
        "CREATE INDEX IF NOT EXISTS ix_task_instances_date ON task_instances (date)"
    ))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS task_instances"))
    conn.execute(text("DROP TABLE IF EXISTS task_templates"))
