"""
Filtering and sorting for the template library view.
"""
from typing import Iterable, Optional, Sequence

from models import TaskTemplate

SORT_MODES = ("name", "priority")
MANDATORY_FILTERS = ("all", "mandatory", "skippable")


def _normalize(value: Optional[str]) -> str:
    return (value or "").lower().strip()


def matches_query(template: TaskTemplate, query: Optional[str]) -> bool:
    """Case-insensitive substring match over name and description."""
    q = _normalize(query)
    if not q:
        return True
    return q in f"{_normalize(template.task_name)}\n{_normalize(template.description)}"


def matches_mandatory(template: TaskTemplate, mandatory: Optional[str]) -> bool:
    if not mandatory or mandatory == "all":
        return True
    if mandatory == "mandatory":
        return template.is_mandatory
    return not template.is_mandatory


def matches_time_windows(template: TaskTemplate, time_windows: Optional[Iterable[str]]) -> bool:
    windows = set(time_windows or ())
    if not windows:
        return True
    # Fixed templates run at their default_time, whatever the window
    if template.scheduling_type == "fixed":
        return True
    return (template.time_window or "anytime") in windows


def filter_templates(
    templates: Sequence[TaskTemplate],
    query: Optional[str] = None,
    mandatory: Optional[str] = None,
    time_windows: Optional[Iterable[str]] = None,
) -> list[TaskTemplate]:
    windows = set(time_windows or ())
    return [
        t for t in templates
        if matches_query(t, query)
        and matches_mandatory(t, mandatory)
        and matches_time_windows(t, windows)
    ]


def sort_templates(templates: Sequence[TaskTemplate], mode: str) -> list[TaskTemplate]:
    """
    Stable sort: by name A-Z (case-insensitive), or by priority high to low
    with name as the tiebreaker.
    """
    if mode == "name":
        return sorted(templates, key=lambda t: _normalize(t.task_name))
    return sorted(templates, key=lambda t: (-(t.priority or 0), _normalize(t.task_name)))
