"""
Tests for database.py - template, instance, settings and schedule cache stores.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import (
    create_template_db,
    update_template_db,
    soft_delete_template_db,
    duplicate_template_db,
    split_template_series_db,
    get_all_templates,
    get_template,
    instance_id_for,
    get_instances_for_date,
    get_instance,
    upsert_instance_db,
    delete_instance_db,
    toggle_complete_db,
    skip_instance_db,
    postpone_instance_db,
    undo_instance_status_db,
    set_instance_start_time_db,
    get_settings,
    save_settings_db,
    get_cached_schedule,
    put_cached_schedule,
    invalidate_schedule_cache,
)
from models import RecurrenceRule, Settings
from scheduling import generate_schedule


class TestTemplateCRUD:
    """Tests for template create/read/update/soft delete."""

    def test_create_template_defaults(self, test_db):
        """Create a template with only a name."""
        tpl = create_template_db("Stretch", template_id="tpl-1")

        assert tpl.id == "tpl-1"
        assert tpl.task_name == "Stretch"
        assert tpl.is_active is True
        assert tpl.scheduling_type == "flexible"
        assert tpl.recurrence_rule is None
        assert get_template("tpl-1") == tpl

    def test_create_generates_id(self, test_db):
        """Template id defaults to a uuid."""
        tpl = create_template_db("Read")
        assert len(tpl.id) == 36

    def test_recurrence_rule_round_trips(self, test_db):
        """Recurrence rules survive storage as JSON."""
        rule = RecurrenceRule(frequency="weekly", days_of_week=[1, 3], start_date="2025-01-01")
        create_template_db("Gym", template_id="tpl-1", recurrence_rule=rule)

        assert get_template("tpl-1").recurrence_rule == rule

    def test_get_all_templates_orders_by_priority(self, test_db):
        """Higher priority templates list first."""
        create_template_db("Low", template_id="a", priority=1)
        create_template_db("High", template_id="b", priority=5)

        assert [t.id for t in get_all_templates()] == ["b", "a"]

    def test_update_template_fields(self, test_db):
        """Update several fields at once."""
        create_template_db("Walk", template_id="tpl-1")
        updated = update_template_db("tpl-1", task_name="Long walk", duration_minutes=90, is_mandatory=True)

        assert updated.task_name == "Long walk"
        assert updated.duration_minutes == 90
        assert updated.is_mandatory is True

    def test_update_clears_optional_field(self, test_db):
        """Passing None clears an optional field."""
        create_template_db("Walk", template_id="tpl-1", depends_on="other",
                           recurrence_rule={"frequency": "daily"})
        updated = update_template_db("tpl-1", depends_on=None, recurrence_rule=None)

        assert updated.depends_on is None
        assert updated.recurrence_rule is None

    def test_update_missing_template(self, test_db):
        assert update_template_db("nope", task_name="x") is None

    def test_update_ignores_unknown_fields(self, test_db):
        create_template_db("Walk", template_id="tpl-1")
        updated = update_template_db("tpl-1", id="other", colour="red")
        assert updated.id == "tpl-1"

    def test_soft_delete_keeps_row(self, test_db):
        """Soft delete deactivates instead of removing."""
        create_template_db("Walk", template_id="tpl-1")
        soft_delete_template_db("tpl-1")

        assert get_template("tpl-1").is_active is False
        assert get_all_templates(include_inactive=False) == []
        assert len(get_all_templates()) == 1

    def test_duplicate_template(self, test_db):
        """Duplicate copies fields under a new id and is active."""
        create_template_db("Walk", template_id="tpl-1", is_active=False, priority=4,
                           recurrence_rule={"frequency": "daily"})
        copy = duplicate_template_db("tpl-1")

        assert copy.id != "tpl-1"
        assert copy.task_name == "Walk"
        assert copy.priority == 4
        assert copy.is_active is True
        assert copy.recurrence_rule.frequency == "daily"

    def test_duplicate_missing(self, test_db):
        assert duplicate_template_db("nope") is None


class TestSplitSeries:
    """Tests for splitting a recurring template at a date."""

    def test_split_sets_fence(self, test_db):
        create_template_db("Workout", template_id="tpl-1", duration_minutes=30,
                           recurrence_rule={"frequency": "daily", "start_date": "2025-01-01"})
        previous, created = split_template_series_db("tpl-1", "2025-06-10", duration_minutes=45)

        assert previous.recurrence_rule.end_date == "2025-06-09"
        assert previous.recurrence_rule.start_date == "2025-01-01"
        assert previous.duration_minutes == 30
        assert created.recurrence_rule.start_date == "2025-06-10"
        assert created.recurrence_rule.end_date is None
        assert created.duration_minutes == 45
        assert created.task_name == "Workout"

    def test_split_fence_in_schedule(self, test_db):
        """Exactly one side of the split is scheduled each day."""
        create_template_db("Workout", template_id="tpl-1", recurrence_rule={"frequency": "daily"})
        _, created = split_template_series_db("tpl-1", "2025-03-01")
        templates = get_all_templates()

        before = generate_schedule(Settings(), templates, [], "2025-02-28")
        after = generate_schedule(Settings(), templates, [], "2025-03-01")
        assert [b.template_id for b in before.schedule] == ["tpl-1"]
        assert [b.template_id for b in after.schedule] == [created.id]

    def test_split_updates_rule(self, test_db):
        create_template_db("Workout", template_id="tpl-1", recurrence_rule={"frequency": "daily"})
        _, created = split_template_series_db(
            "tpl-1", "2025-03-01", recurrence_rule={"frequency": "weekly", "days_of_week": [1]}
        )
        assert created.recurrence_rule.frequency == "weekly"
        assert created.recurrence_rule.start_date == "2025-03-01"

    def test_split_requires_recurrence(self, test_db):
        create_template_db("Once", template_id="tpl-1")
        assert split_template_series_db("tpl-1", "2025-03-01") is None
        assert split_template_series_db("missing", "2025-03-01") is None

    def test_split_after_series_end_refused(self, test_db):
        """An ended series is not widened by a later split."""
        rule = {"frequency": "daily", "start_date": "2025-06-01", "end_date": "2025-06-30"}
        create_template_db("Workout", template_id="tpl-1", recurrence_rule=rule)

        assert split_template_series_db("tpl-1", "2025-07-15") is None
        assert get_template("tpl-1").recurrence_rule.end_date == "2025-06-30"
        assert len(get_all_templates()) == 1

    def test_split_on_series_start_refused(self, test_db):
        create_template_db("Workout", template_id="tpl-1",
                           recurrence_rule={"frequency": "daily", "start_date": "2025-06-01"})
        assert split_template_series_db("tpl-1", "2025-06-01") is None
        assert split_template_series_db("tpl-1", "2025-05-20") is None
        assert get_template("tpl-1").recurrence_rule.end_date is None

    def test_split_keeps_series_end(self, test_db):
        """The successor ends where the original series ended."""
        rule = {"frequency": "daily", "start_date": "2025-06-01", "end_date": "2025-06-30"}
        create_template_db("Workout", template_id="tpl-1", recurrence_rule=rule)
        previous, created = split_template_series_db("tpl-1", "2025-06-30")

        assert previous.recurrence_rule.end_date == "2025-06-29"
        assert created.recurrence_rule.start_date == "2025-06-30"
        assert created.recurrence_rule.end_date == "2025-06-30"


class TestInstances:
    """Tests for per-day instance actions."""

    def test_deterministic_id(self):
        assert instance_id_for("2025-02-01", "tpl-1") == "inst-2025-02-01-tpl-1"

    def test_upsert_merges(self, test_db):
        """Second upsert updates the same row."""
        upsert_instance_db("tpl-1", "2025-02-01", note="first")
        upsert_instance_db("tpl-1", "2025-02-01", status="skipped")

        instances = get_instances_for_date("2025-02-01")
        assert len(instances) == 1
        assert instances[0].status == "skipped"
        assert instances[0].note == "first"

    def test_toggle_complete(self, test_db):
        done = toggle_complete_db("2025-02-01", "tpl-1")
        assert done.status == "completed"
        assert done.completed_at is not None

        undone = toggle_complete_db("2025-02-01", "tpl-1")
        assert undone.status == "pending"
        assert undone.completed_at is None

    def test_skip_postpone_undo(self, test_db):
        assert skip_instance_db("2025-02-01", "tpl-1", "tired").skipped_reason == "tired"
        assert postpone_instance_db("2025-02-01", "tpl-1", "tomorrow").status == "postponed"
        restored = undo_instance_status_db("2025-02-01", "tpl-1")
        assert restored.status == "pending"
        assert restored.skipped_reason is None

    def test_set_start_time(self, test_db):
        inst = set_instance_start_time_db("2025-02-01", "tpl-1", "14:30")
        assert inst.modified_start_time == "14:30"
        assert inst.status == "pending"

    def test_set_start_time_keeps_status(self, test_db):
        """Pinning a time does not undo a completion."""
        toggle_complete_db("2025-02-01", "tpl-1")
        inst = set_instance_start_time_db("2025-02-01", "tpl-1", "14:30")
        assert inst.status == "completed"
        assert inst.completed_at is not None
        assert inst.modified_start_time == "14:30"

    def test_set_start_time_reopen(self, test_db):
        skip_instance_db("2025-02-01", "tpl-1", "busy")
        inst = set_instance_start_time_db("2025-02-01", "tpl-1", "14:30", reopen=True)
        assert inst.status == "pending"
        assert inst.skipped_reason is None
        assert inst.modified_start_time == "14:30"

    def test_instances_scoped_by_date(self, test_db):
        upsert_instance_db("tpl-1", "2025-02-01")
        upsert_instance_db("tpl-1", "2025-02-02")
        assert [i.date for i in get_instances_for_date("2025-02-02")] == ["2025-02-02"]

    def test_delete_instance(self, test_db):
        inst = upsert_instance_db("tpl-1", "2025-02-01")
        assert delete_instance_db(inst.id) is True
        assert get_instance(inst.id) is None
        assert delete_instance_db(inst.id) is False


class TestSettings:
    """Tests for the settings store."""

    def test_defaults_when_unsaved(self, test_db):
        settings = get_settings()
        assert settings.default_wake_time == "06:30"
        assert settings.default_sleep_time == "23:00"
        assert settings.desired_sleep_duration == 7.5

    def test_save_and_reload(self, test_db):
        save_settings_db(Settings(desired_sleep_duration=8, default_wake_time="07:00", default_sleep_time="22:30"))
        save_settings_db(Settings(desired_sleep_duration=8, default_wake_time="07:15", default_sleep_time="22:30"))
        assert get_settings().default_wake_time == "07:15"


class TestScheduleCache:
    """Tests for the per-date schedule cache."""

    @pytest.fixture
    def result(self, make_template):
        return generate_schedule(Settings(), [make_template("a")], [], "2025-02-01")

    def test_put_and_get(self, test_db, result):
        put_cached_schedule("2025-02-01", result)
        assert get_cached_schedule("2025-02-01") == result
        assert get_cached_schedule("2025-02-02") is None

    def test_invalidate_one_date(self, test_db, result):
        put_cached_schedule("2025-02-01", result)
        put_cached_schedule("2025-02-02", result)

        assert invalidate_schedule_cache("2025-02-01") == 1
        assert get_cached_schedule("2025-02-01") is None
        assert get_cached_schedule("2025-02-02") is not None

    def test_invalidate_all(self, test_db, result):
        put_cached_schedule("2025-02-01", result)
        put_cached_schedule("2025-02-02", result)

        assert invalidate_schedule_cache() == 2
        assert get_cached_schedule("2025-02-02") is None
