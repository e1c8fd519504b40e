"""
Recurrence evaluation for task templates.

Pure functions over a RecurrenceRule and calendar dates. Weekdays follow
the Sunday = 0 convention used by the rule's days_of_week field. Dates
are date-only values, so offsets are whole calendar days.

Rules with an interval above 1 count periods from rule.start_date. When a
rule has no start_date the caller may pass a reference date to anchor the
count; with neither, the interval cannot be anchored and is treated as 1.
"""
from calendar import monthrange
from datetime import date, timedelta
from typing import Optional, Union

from models import RecurrenceRule
from timeutil import format_date, parse_date

FREQUENCIES = ("none", "daily", "weekly", "monthly", "yearly", "custom")
CUSTOM_PATTERNS = ("weekdays", "weekends", "business_days", "nth_weekday", "last_weekday")

DateLike = Union[str, date]


def _coerce_rule(rule) -> Optional[RecurrenceRule]:
    if rule is None or isinstance(rule, RecurrenceRule):
        return rule
    return RecurrenceRule.model_validate(rule)


def _weekday(d: date) -> int:
    """Weekday with Sunday = 0 ... Saturday = 6."""
    return d.isoweekday() % 7


def _interval(rule: RecurrenceRule) -> int:
    return rule.interval if rule.interval and rule.interval > 1 else 1


def _anchor(rule: RecurrenceRule, reference: Optional[date]) -> Optional[date]:
    if rule.start_date:
        return parse_date(rule.start_date)
    return reference


def _matches_day_of_month(day_of_month: Optional[int], target: date) -> bool:
    if not day_of_month:
        return True
    if day_of_month == -1:
        return target.day == monthrange(target.year, target.month)[1]
    return target.day == day_of_month


def is_within_date_range(rule: RecurrenceRule, target: date) -> bool:
    if rule.start_date and target < parse_date(rule.start_date):
        return False
    if rule.end_date and target > parse_date(rule.end_date):
        return False
    return True


def can_split_at(rule: RecurrenceRule, split_date: DateLike) -> bool:
    """A series splits only strictly after its start and on or before its end."""
    split = parse_date(split_date)
    if rule.start_date and split <= parse_date(rule.start_date):
        return False
    if rule.end_date and split > parse_date(rule.end_date):
        return False
    return True


def should_generate_daily(rule: RecurrenceRule, target: date, reference: Optional[date] = None) -> bool:
    interval = _interval(rule)
    start = _anchor(rule, reference)
    if interval == 1 or start is None:
        return True
    days = (target - start).days
    return days >= 0 and days % interval == 0


def should_generate_weekly(rule: RecurrenceRule, target: date, reference: Optional[date] = None) -> bool:
    if not rule.days_of_week or _weekday(target) not in rule.days_of_week:
        return False
    interval = _interval(rule)
    start = _anchor(rule, reference)
    if interval == 1 or start is None:
        return True
    weeks = (target - start).days // 7
    return weeks >= 0 and weeks % interval == 0


def should_generate_monthly(rule: RecurrenceRule, target: date, reference: Optional[date] = None) -> bool:
    if not _matches_day_of_month(rule.day_of_month, target):
        return False
    interval = _interval(rule)
    start = _anchor(rule, reference)
    if interval == 1 or start is None:
        return True
    months = (target.year - start.year) * 12 + (target.month - start.month)
    return months >= 0 and months % interval == 0


def should_generate_yearly(rule: RecurrenceRule, target: date, reference: Optional[date] = None) -> bool:
    if rule.month and rule.month != target.month:
        return False
    if not _matches_day_of_month(rule.day_of_month, target):
        return False
    interval = _interval(rule)
    start = _anchor(rule, reference)
    if interval == 1 or start is None:
        return True
    years = target.year - start.year
    return years >= 0 and years % interval == 0


def should_generate_custom(rule: RecurrenceRule, target: date) -> bool:
    pattern = rule.custom_pattern
    if pattern is None:
        return False
    kind = pattern.type.replace("-", "_")
    dow = _weekday(target)

    if kind in ("weekdays", "business_days"):
        return 1 <= dow <= 5
    if kind == "weekends":
        return dow in (0, 6)
    if kind == "nth_weekday":
        # 1st occurrence falls on days 1-7, 2nd on 8-14, ...
        nth = (target.day - 1) // 7 + 1
        return pattern.day_of_week == dow and pattern.nth_week == nth
    if kind == "last_weekday":
        if pattern.day_of_week != dow:
            return False
        return (target + timedelta(days=7)).month != target.month
    return False


def should_generate_for_date(rule, target: DateLike, reference: Optional[DateLike] = None) -> bool:
    """
    Whether a template with this rule occurs on target.
    A missing rule or frequency "none" is a one-off task and always occurs.
    Unrecognized frequencies never occur. end_after_occurrences is not enforced.
    """
    rule = _coerce_rule(rule)
    if rule is None or rule.frequency == "none":
        return True
    day = parse_date(target)
    ref = parse_date(reference) if reference is not None else None
    if not is_within_date_range(rule, day):
        return False

    if rule.frequency == "daily":
        return should_generate_daily(rule, day, ref)
    if rule.frequency == "weekly":
        return should_generate_weekly(rule, day, ref)
    if rule.frequency == "monthly":
        return should_generate_monthly(rule, day, ref)
    if rule.frequency == "yearly":
        return should_generate_yearly(rule, day, ref)
    if rule.frequency == "custom":
        return should_generate_custom(rule, day)
    return False


def _add_one_year(d: date) -> date:
    try:
        return d.replace(year=d.year + 1)
    except ValueError:
        # Feb 29 -> Feb 28
        return d.replace(year=d.year + 1, day=28)


def get_next_occurrence(rule, from_date: DateLike, reference: Optional[DateLike] = None) -> Optional[date]:
    """First occurrence strictly after from_date, scanning at most one year ahead."""
    cursor = parse_date(from_date) + timedelta(days=1)
    limit = _add_one_year(cursor)
    while cursor <= limit:
        if should_generate_for_date(rule, cursor, reference):
            return cursor
        cursor += timedelta(days=1)
    return None


def get_occurrences_in_range(rule, start: DateLike, end: DateLike, reference: Optional[DateLike] = None) -> list[date]:
    """All dates in [start, end] on which the rule occurs."""
    cursor = parse_date(start)
    last = parse_date(end)
    out: list[date] = []
    while cursor <= last:
        if should_generate_for_date(rule, cursor, reference):
            out.append(cursor)
        cursor += timedelta(days=1)
    return out


def expand_recurrence_pattern(rule, start: DateLike, end: DateLike, reference: Optional[DateLike] = None) -> list[str]:
    return [format_date(d) for d in get_occurrences_in_range(rule, start, end, reference)]


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_recurrence_rule(rule) -> list[str]:
    """
    Structural validation of a recurrence rule (model or plain dict).
    Returns human-readable errors; an empty list means the rule is valid.
    """
    if isinstance(rule, RecurrenceRule):
        rule = rule.model_dump()
    if not isinstance(rule, dict):
        return ["Recurrence rule must be an object"]

    errors: list[str] = []
    frequency = rule.get("frequency")
    if frequency not in FREQUENCIES:
        errors.append("Invalid frequency")

    interval = rule.get("interval")
    if interval is not None and (not _is_int(interval) or interval < 1):
        errors.append("Interval must be a positive integer")

    bounds = {}
    for field in ("start_date", "end_date"):
        value = rule.get(field)
        if value is None:
            continue
        try:
            bounds[field] = parse_date(value)
        except ValueError:
            errors.append(f"{field} must be a YYYY-MM-DD date")
    if len(bounds) == 2 and bounds["start_date"] >= bounds["end_date"]:
        errors.append("End date must be after start date")

    days_of_week = rule.get("days_of_week")
    if frequency == "weekly" and days_of_week is not None:
        ok = isinstance(days_of_week, list) and all(_is_int(d) and 0 <= d <= 6 for d in days_of_week)
        if not ok:
            errors.append("days_of_week must be a list of integers 0-6")

    day_of_month = rule.get("day_of_month")
    if frequency in ("monthly", "yearly") and day_of_month is not None:
        if not _is_int(day_of_month) or ((day_of_month < 1 or day_of_month > 31) and day_of_month != -1):
            errors.append("day_of_month must be an integer 1-31 or -1 for last day")

    month = rule.get("month")
    if frequency == "yearly" and month is not None:
        if not _is_int(month) or not 1 <= month <= 12:
            errors.append("month must be an integer 1-12")

    if frequency == "custom":
        pattern = rule.get("custom_pattern")
        kind = pattern.get("type") if isinstance(pattern, dict) else None
        if not isinstance(kind, str) or kind.replace("-", "_") not in CUSTOM_PATTERNS:
            errors.append("custom_pattern must name a known pattern")

    return errors
