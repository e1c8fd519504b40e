"""
Dependency ordering for task templates.

Each template depends on at most one other template (depends_on). Ordering
uses Kahn's algorithm with ready templates taken highest priority first;
nodes that cannot be resolved because they sit on, or downstream of, a
cycle are reported rather than dropped.
"""
import heapq
from typing import NamedTuple, Optional, Sequence

from models import TaskTemplate


class DependencyOrder(NamedTuple):
    ordered: list[TaskTemplate]
    unresolved: list[TaskTemplate]
    cyclic: list[TaskTemplate]  # subset of unresolved that lies on a cycle


class DependencyInfo(NamedTuple):
    status: str  # ok | missing | disabled | cycle
    depends_on_id: str
    depends_on_name: Optional[str] = None


def topological_order(templates: Sequence[TaskTemplate]) -> DependencyOrder:
    """
    Order templates so a prerequisite precedes its dependents when both are
    in the list. Dependencies on templates outside the list are ignored.

    Among templates whose prerequisites are already ordered, higher priority
    goes first and ties keep input order. Unresolved templates follow in
    their original input order.
    """
    ids = {t.id for t in templates}
    indegree = [0] * len(templates)
    dependents: dict[str, list[int]] = {}
    for i, t in enumerate(templates):
        if t.depends_on and t.depends_on in ids:
            indegree[i] += 1
            dependents.setdefault(t.depends_on, []).append(i)

    ready = [(-(t.priority or 0), i) for i, t in enumerate(templates) if indegree[i] == 0]
    heapq.heapify(ready)
    ordered: list[TaskTemplate] = []
    placed: set[int] = set()
    while ready:
        _, i = heapq.heappop(ready)
        node = templates[i]
        ordered.append(node)
        placed.add(i)
        for child in dependents.get(node.id, []):
            indegree[child] -= 1
            if indegree[child] == 0:
                heapq.heappush(ready, (-(templates[child].priority or 0), child))

    unresolved = [t for i, t in enumerate(templates) if i not in placed]
    unresolved_by_id = build_by_id(unresolved)
    cyclic = [t for t in unresolved if _chain_returns_to(t.id, t.depends_on, unresolved_by_id)]
    return DependencyOrder(ordered + unresolved, unresolved, cyclic)


def build_by_id(templates: Sequence[TaskTemplate]) -> dict[str, TaskTemplate]:
    return {t.id: t for t in templates}


def _chain_returns_to(start_id: str, first_dep: str, by_id: dict[str, TaskTemplate]) -> bool:
    seen = set()
    current = first_dep
    while current and current not in seen:
        if current == start_id:
            return True
        seen.add(current)
        node = by_id.get(current)
        current = node.depends_on if node else None
    return False


def dependency_status(template: TaskTemplate, by_id: dict[str, TaskTemplate]) -> Optional[DependencyInfo]:
    """
    Describe a template's prerequisite: None when it has none, otherwise
    "cycle" if following depends_on leads back to the template, "missing"
    if the prerequisite is unknown, "disabled" if it is inactive, else "ok".
    """
    dep_id = template.depends_on
    if not dep_id:
        return None
    if _chain_returns_to(template.id, dep_id, by_id):
        dep = by_id.get(dep_id)
        return DependencyInfo("cycle", dep_id, dep.task_name if dep else template.task_name)
    dep = by_id.get(dep_id)
    if dep is None:
        return DependencyInfo("missing", dep_id)
    if not dep.is_active:
        return DependencyInfo("disabled", dep_id, dep.task_name)
    return DependencyInfo("ok", dep_id, dep.task_name)


def would_create_cycle(template_id: str, depends_on: Optional[str], templates: Sequence[TaskTemplate]) -> bool:
    """Whether pointing template_id at depends_on would close a dependency loop."""
    if not depends_on:
        return False
    by_id = build_by_id(templates)
    return _chain_returns_to(template_id, depends_on, by_id)
