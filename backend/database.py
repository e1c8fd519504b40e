import sqlite3
import json
import logging
import os
import uuid
from datetime import datetime
from typing import Optional
from contextlib import contextmanager

from models import RecurrenceRule, ScheduleResult, Settings, TaskInstance, TaskTemplate
from recurrence import can_split_at
from timeutil import add_days

logger = logging.getLogger(__name__)

DATABASE_PATH = os.getenv("PLANNER_DATABASE_PATH", "planner.db")

SCHEDULE_CACHE_VERSION = "v1"

TEMPLATE_FIELDS = (
    "task_name", "description", "is_mandatory", "priority", "is_active",
    "scheduling_type", "default_time", "time_window", "duration_minutes",
    "min_duration_minutes", "depends_on", "recurrence_rule",
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

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )

def _now() -> str:
    return datetime.now().isoformat()

def _encode_rule(rule) -> Optional[str]:
    """Serialize a recurrence rule (model or dict) to JSON text for storage."""
    if rule is None or rule == "":
        return None
    if isinstance(rule, RecurrenceRule):
        rule = rule.model_dump(exclude_none=True)
    return json.dumps(rule)

def _decode_rule(text: Optional[str]) -> Optional[RecurrenceRule]:
    if not text:
        return None
    return RecurrenceRule.model_validate(json.loads(text))

def _to_column(field: str, value):
    """Convert a model value to its SQLite storage form."""
    if field == "recurrence_rule":
        return _encode_rule(value)
    if isinstance(value, bool):
        return int(value)
    return value

# Template store

def _row_to_template(row) -> TaskTemplate:
    """Convert a database row to a TaskTemplate model."""
    return TaskTemplate(
        id=row["id"],
        task_name=row["task_name"],
        description=row["description"],
        is_mandatory=bool(row["is_mandatory"]),
        priority=row["priority"] if row["priority"] is not None else 3,
        is_active=bool(row["is_active"]),
        scheduling_type=row["scheduling_type"],
        default_time=row["default_time"],
        time_window=row["time_window"],
        duration_minutes=row["duration_minutes"] or 0,
        min_duration_minutes=row["min_duration_minutes"],
        depends_on=row["depends_on"],
        recurrence_rule=_decode_rule(row["recurrence_rule"]),
    )

def get_all_templates(include_inactive: bool = True) -> list[TaskTemplate]:
    with get_db() as conn:
        query = "SELECT * FROM task_templates"
        if not include_inactive:
            query += " WHERE is_active = 1"
        rows = conn.execute(query + " ORDER BY priority DESC, task_name, created_at").fetchall()
        return [_row_to_template(row) for row in rows]

def get_template(template_id: str) -> Optional[TaskTemplate]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM task_templates WHERE id = ?", (template_id,)).fetchone()
        return _row_to_template(row) if row else None

def create_template_db(
    task_name: str,
    template_id: Optional[str] = None,
    **fields
) -> TaskTemplate:
    """Create a template. Unspecified fields take the TaskTemplate defaults.
    template_id defaults to a fresh uuid4.
    """
    template = TaskTemplate(id=template_id or str(uuid.uuid4()), task_name=task_name, **fields)
    now = _now()
    values = [_to_column(f, getattr(template, f)) for f in TEMPLATE_FIELDS]

    with get_db() as conn:
        conn.execute(
            f"""INSERT INTO task_templates
               (id, {", ".join(TEMPLATE_FIELDS)}, created_at, updated_at)
               VALUES (?, {", ".join("?" for _ in TEMPLATE_FIELDS)}, ?, ?)""",
            (template.id, *values, now, now)
        )
        conn.commit()
    logger.debug("Created template %s (%s)", template.id, template.task_name)
    return template

def update_template_db(template_id: str, **updates) -> Optional[TaskTemplate]:
    """
    Update a template with any fields provided.
    Only writes fields that differ from current values.

    Args:
        template_id: Template ID to update
        **updates: Template field names and new values; None clears optional fields
    """
    with get_db() as conn:
        row = conn.execute("SELECT * FROM task_templates WHERE id = ?", (template_id,)).fetchone()
        if not row:
            return None

        changes = {}
        for field, new_value in updates.items():
            if field not in TEMPLATE_FIELDS:
                continue
            stored = _to_column(field, new_value)
            if stored != row[field]:
                changes[field] = stored

        if changes:
            changes["updated_at"] = _now()
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [template_id]
            conn.execute(f"UPDATE task_templates SET {set_clause} WHERE id = ?", values)
            conn.commit()

        updated_row = conn.execute("SELECT * FROM task_templates WHERE id = ?", (template_id,)).fetchone()
        return _row_to_template(updated_row)

def soft_delete_template_db(template_id: str) -> Optional[TaskTemplate]:
    """Deactivate a template; it stays in the store but is never scheduled."""
    return update_template_db(template_id, is_active=False)

def duplicate_template_db(template_id: str) -> Optional[TaskTemplate]:
    """Copy a template under a new id. The copy is always active."""
    source = get_template(template_id)
    if not source:
        return None
    fields = source.model_dump(include=set(TEMPLATE_FIELDS) - {"task_name"})
    fields["is_active"] = True
    return create_template_db(source.task_name, **fields)

def split_template_series_db(template_id: str, split_date: str, **updates) -> Optional[tuple[TaskTemplate, TaskTemplate]]:
    """
    Apply updates to this and future occurrences of a recurring template.

    The existing template ends the day before split_date; a new template
    carrying the updates starts on split_date and keeps the series' end
    date. Returns (previous, new), or None if the template is missing, not
    recurring, or split_date is not after the series start and within its end.
    """
    previous = get_template(template_id)
    if not previous or previous.recurrence_rule is None:
        return None
    series_rule = previous.recurrence_rule
    if not can_split_at(series_rule, split_date):
        return None

    prev_rule = series_rule.model_copy(update={"end_date": add_days(split_date, -1)})
    previous = update_template_db(template_id, recurrence_rule=prev_rule)

    fields = previous.model_dump(include=set(TEMPLATE_FIELDS))
    fields.update({k: v for k, v in updates.items() if k in TEMPLATE_FIELDS})
    new_rule = updates.get("recurrence_rule")
    if new_rule is None:
        new_rule = series_rule
    elif isinstance(new_rule, dict):
        new_rule = RecurrenceRule.model_validate(new_rule)
    end_date = new_rule.end_date if "recurrence_rule" in updates else series_rule.end_date
    fields["recurrence_rule"] = new_rule.model_copy(update={"start_date": split_date, "end_date": end_date})

    task_name = fields.pop("task_name")
    created = create_template_db(task_name, **fields)
    logger.debug("Split template %s at %s into %s", template_id, split_date, created.id)
    return previous, created

# Instance store

def instance_id_for(date: str, template_id: str) -> str:
    """Deterministic instance id so per-day actions are idempotent."""
    return f"inst-{date}-{template_id}"

def _row_to_instance(row) -> TaskInstance:
    return TaskInstance(
        id=row["id"],
        template_id=row["template_id"],
        date=row["date"],
        status=row["status"],
        modified_start_time=row["modified_start_time"],
        completed_at=row["completed_at"],
        skipped_reason=row["skipped_reason"],
        note=row["note"],
    )

def get_instances_for_date(date: str) -> list[TaskInstance]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM task_instances WHERE date = ? ORDER BY template_id",
            (date,)
        ).fetchall()
        return [_row_to_instance(row) for row in rows]

def get_instance(instance_id: str) -> Optional[TaskInstance]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM task_instances WHERE id = ?", (instance_id,)).fetchone()
        return _row_to_instance(row) if row else None

def upsert_instance_db(template_id: str, date: str, **fields) -> TaskInstance:
    """Create or merge the instance for (date, template_id)."""
    instance_id = instance_id_for(date, template_id)
    current = get_instance(instance_id)
    base = current.model_dump() if current else {"id": instance_id, "template_id": template_id, "date": date}
    base.update(fields)
    instance = TaskInstance.model_validate(base)

    with get_db() as conn:
        conn.execute(
            """INSERT INTO task_instances
               (id, template_id, date, status, modified_start_time, completed_at, skipped_reason, note, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   status = excluded.status,
                   modified_start_time = excluded.modified_start_time,
                   completed_at = excluded.completed_at,
                   skipped_reason = excluded.skipped_reason,
                   note = excluded.note,
                   updated_at = excluded.updated_at""",
            (instance.id, instance.template_id, instance.date, instance.status,
             instance.modified_start_time, instance.completed_at, instance.skipped_reason,
             instance.note, _now())
        )
        conn.commit()
    return instance

def delete_instance_db(instance_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM task_instances WHERE id = ?", (instance_id,))
        conn.commit()
        return cursor.rowcount > 0

def toggle_complete_db(date: str, template_id: str) -> TaskInstance:
    """Flip completed <-> pending for the day."""
    current = get_instance(instance_id_for(date, template_id))
    if current and current.status == "completed":
        return upsert_instance_db(template_id, date, status="pending", completed_at=None)
    return upsert_instance_db(template_id, date, status="completed", completed_at=_now())

def skip_instance_db(date: str, template_id: str, reason: Optional[str] = None) -> TaskInstance:
    return upsert_instance_db(template_id, date, status="skipped", skipped_reason=reason, completed_at=None)

def postpone_instance_db(date: str, template_id: str, note: Optional[str] = None) -> TaskInstance:
    return upsert_instance_db(template_id, date, status="postponed", note=note, completed_at=None)

def undo_instance_status_db(date: str, template_id: str) -> TaskInstance:
    return upsert_instance_db(template_id, date, status="pending", completed_at=None, skipped_reason=None)

def set_instance_start_time_db(date: str, template_id: str, start_time: str, reopen: bool = False) -> TaskInstance:
    """
    Pin the template to start_time for the day (manual anchor). The
    instance keeps its status unless reopen is set, which returns a
    completed, skipped or postponed instance to pending.
    """
    if reopen:
        return upsert_instance_db(
            template_id, date, status="pending", modified_start_time=start_time,
            completed_at=None, skipped_reason=None,
        )
    return upsert_instance_db(template_id, date, modified_start_time=start_time)

# Settings store

def get_settings() -> Settings:
    """Stored settings, or defaults when none have been saved."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM user_settings WHERE id = 1").fetchone()
        if not row:
            return Settings()
        return Settings(
            desired_sleep_duration=row["desired_sleep_duration"],
            default_wake_time=row["default_wake_time"],
            default_sleep_time=row["default_sleep_time"],
        )

def save_settings_db(settings: Settings) -> Settings:
    with get_db() as conn:
        conn.execute(
            """INSERT INTO user_settings (id, desired_sleep_duration, default_wake_time, default_sleep_time)
               VALUES (1, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   desired_sleep_duration = excluded.desired_sleep_duration,
                   default_wake_time = excluded.default_wake_time,
                   default_sleep_time = excluded.default_sleep_time""",
            (settings.desired_sleep_duration, settings.default_wake_time, settings.default_sleep_time)
        )
        conn.commit()
    return settings

# Schedule cache

def get_cached_schedule(date: str) -> Optional[ScheduleResult]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT result, version FROM daily_schedules WHERE date = ?",
            (date,)
        ).fetchone()
        if not row or row["version"] != SCHEDULE_CACHE_VERSION:
            return None
        return ScheduleResult.model_validate(json.loads(row["result"]))

def put_cached_schedule(date: str, result: ScheduleResult):
    with get_db() as conn:
        conn.execute(
            """INSERT INTO daily_schedules (date, result, version, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(date) DO UPDATE SET
                   result = excluded.result,
                   version = excluded.version,
                   updated_at = excluded.updated_at""",
            (date, result.model_dump_json(exclude_none=True), SCHEDULE_CACHE_VERSION, _now())
        )
        conn.commit()

def invalidate_schedule_cache(date: Optional[str] = None) -> int:
    """Drop cached schedules for one date, or every date when date is None."""
    with get_db() as conn:
        if date is None:
            cursor = conn.execute("DELETE FROM daily_schedules")
        else:
            cursor = conn.execute("DELETE FROM daily_schedules WHERE date = ?", (date,))
        conn.commit()
        return cursor.rowcount
