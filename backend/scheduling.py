"""
Daily schedule generation.

generate_schedule is a pure function of its arguments: it never reads the
clock, performs no I/O and does not mutate its inputs. The pipeline is

    filter -> impossibility check -> place anchors -> order flexibles
    -> place flexibles -> assemble

Anchors are manual start-time overrides from the day's instances and fixed
templates. Flexible templates are placed greedily into their time window,
in dependency order with higher priority first among ready tasks.
"""
import logging
from typing import Optional, Sequence

from dependencies import topological_order
from models import (
    DailyOverride,
    DaySummary,
    ScheduleBlock,
    ScheduleResult,
    Settings,
    SleepSchedule,
    TaskInstance,
    TaskTemplate,
)
from placement import BusyInterval, CrunchOptions, next_slot, push_busy
from recurrence import should_generate_for_date
from timeutil import format_date, from_minutes, parse_date, to_minutes

logger = logging.getLogger(__name__)

TIME_WINDOWS = {
    "morning": ("06:00", "12:00"),
    "afternoon": ("12:00", "18:00"),
    "evening": ("18:00", "23:00"),
    "anytime": ("06:00", "23:00"),
}

EXCLUDING_STATUSES = ("completed", "skipped", "postponed")

IMPOSSIBLE_SCHEDULE = "impossible_schedule"


def effective_sleep(settings: Settings, daily_override: Optional[DailyOverride] = None) -> SleepSchedule:
    """Wake/sleep for the day. An override applies only as a complete pair."""
    wake = settings.default_wake_time
    sleep = settings.default_sleep_time
    if daily_override is not None and daily_override.wake_time and daily_override.sleep_time:
        wake = daily_override.wake_time
        sleep = daily_override.sleep_time
    return SleepSchedule(wake_time=wake, sleep_time=sleep, duration=settings.desired_sleep_duration)


def resolve_windows(wake_min: int, sleep_min: int) -> dict[str, tuple[int, int]]:
    """Named time windows clamped to the awake span."""
    return {
        name: (max(wake_min, to_minutes(start)), min(sleep_min, to_minutes(end)))
        for name, (start, end) in TIME_WINDOWS.items()
    }


def applicable_templates(
    templates: Sequence[TaskTemplate],
    instances: Sequence[TaskInstance],
    date: str,
) -> list[TaskTemplate]:
    """Active templates occurring on date and not completed, skipped or postponed that day."""
    excluded = {i.template_id for i in instances if i.status in EXCLUDING_STATUSES}
    return [
        t for t in templates
        if t.is_active
        and t.id not in excluded
        and should_generate_for_date(t.recurrence_rule, date)
    ]


def _same_day(instances: Sequence[TaskInstance], date: str) -> list[TaskInstance]:
    day = parse_date(date)
    return [i for i in instances if parse_date(i.date) == day]


def generate_schedule(
    settings: Settings,
    templates: Sequence[TaskTemplate],
    instances: Sequence[TaskInstance],
    date: str,
    daily_override: Optional[DailyOverride] = None,
    current_time: Optional[str] = None,
) -> ScheduleResult:
    date = format_date(parse_date(date))
    instances = _same_day(instances, date)
    sleep = effective_sleep(settings, daily_override)
    wake_min = to_minutes(sleep.wake_time)
    sleep_min = to_minutes(sleep.sleep_time)
    awake_total = max(0, sleep_min - wake_min)

    active = applicable_templates(templates, instances, date)

    mandatory_total = sum(max(0, t.duration_minutes or 0) for t in active if t.is_mandatory)
    if mandatory_total > awake_total:
        logger.debug(
            "Impossible day %s: %d mandatory minutes, %d awake minutes",
            date, mandatory_total, awake_total,
        )
        return ScheduleResult(
            success=False,
            error=IMPOSSIBLE_SCHEDULE,
            message="Mandatory tasks exceed available waking time.",
            schedule=[],
            sleep_schedule=sleep,
            total_tasks=len(active),
            scheduled_tasks=0,
        )

    busy: list[BusyInterval] = []
    schedule: list[ScheduleBlock] = []
    end_times: dict[str, int] = {}

    def place(template: TaskTemplate, start: int, end: int, is_anchor: bool) -> None:
        push_busy(busy, start, end, is_anchor)
        schedule.append(ScheduleBlock(
            template_id=template.id,
            start_time=from_minutes(start),
            end_time=from_minutes(end),
        ))
        end_times[template.id] = end

    # Manual overrides win over fixed default times
    overrides = {
        i.template_id: to_minutes(i.modified_start_time)
        for i in instances
        if i.modified_start_time and i.status not in EXCLUDING_STATUSES
    }
    anchored = set()
    for t in active:
        if t.id in overrides:
            start = overrides[t.id]
            place(t, start, start + (t.duration_minutes or 0), t.is_mandatory)
            anchored.add(t.id)

    for t in active:
        if t.scheduling_type == "fixed" and t.default_time and t.id not in anchored:
            start = to_minutes(t.default_time)
            place(t, start, start + (t.duration_minutes or 0), t.is_mandatory)
            anchored.add(t.id)

    flexible = [t for t in active if t.scheduling_type != "fixed" and t.id not in anchored]
    order = topological_order(flexible)
    advisories: list[str] = []
    if order.unresolved:
        cyclic = {t.id for t in order.cyclic}
        logger.debug("Dependency cycle on %s among %s", date, sorted(cyclic))
        advisories.extend(
            f"dependency_cycle:{t.id}" if t.id in cyclic else f"dependency_blocked:{t.id}"
            for t in order.unresolved
        )

    windows = resolve_windows(wake_min, sleep_min)
    current = to_minutes(current_time) if current_time else None

    for t in order.ordered:
        win_start, win_end = windows.get(t.time_window or "anytime", windows["anytime"])
        if win_end <= win_start:
            continue

        base = win_start
        if t.depends_on in end_times:
            base = max(base, end_times[t.depends_on])
        if current is not None and win_start <= current < win_end:
            base = max(base, current)

        slot = next_slot(
            busy,
            win_start,
            win_end,
            base,
            t.duration_minutes or 0,
            CrunchOptions(min_duration=t.min_duration_minutes or 0, anchor_only=True, template_id=t.id),
        )
        if slot is None:
            logger.debug("No slot for %s on %s", t.id, date)
            continue
        if slot.advisory:
            advisories.append(slot.advisory)
        place(t, slot.start, slot.end, False)

    schedule.sort(key=lambda b: to_minutes(b.start_time))

    return ScheduleResult(
        success=True,
        schedule=schedule,
        sleep_schedule=sleep,
        total_tasks=len(active),
        scheduled_tasks=len(schedule),
        advisories=advisories or None,
    )


def summarize_day(
    schedule: Sequence[ScheduleBlock],
    instances: Sequence[TaskInstance],
    date: str,
    current_time: Optional[str] = None,
) -> DaySummary:
    """
    Completed, skipped and overdue counts for a day.

    A block is overdue when it starts before current_time and its instance is
    neither completed nor skipped. Without current_time nothing is overdue.
    """
    instances = _same_day(instances, date)
    status = {i.template_id: i.status for i in instances}
    overdue = 0
    if current_time is not None:
        now = to_minutes(current_time)
        overdue = sum(
            1 for b in schedule
            if status.get(b.template_id) not in ("completed", "skipped")
            and to_minutes(b.start_time) < now
        )
    return DaySummary(
        completed=sum(1 for i in instances if i.status == "completed"),
        skipped=sum(1 for i in instances if i.status == "skipped"),
        overdue=overdue,
    )
