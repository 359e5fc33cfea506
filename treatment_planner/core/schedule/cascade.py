from __future__ import annotations

import logging
from collections import Counter, defaultdict, deque
from datetime import timedelta
from typing import Iterable, Mapping, Optional

from treatment_planner.core.duration import to_days
from treatment_planner.core.errors import InvalidWindowError
from treatment_planner.core.model import DateWindow, DependencyRef, Task
from treatment_planner.core.schedule.resolve import effective_offset_days


logger = logging.getLogger(__name__)


def cascade_updates(
    tasks: Iterable[Task],
    task_id: str,
    new_window: DateWindow,
    current: Mapping[str, DateWindow],
    units: Optional[Mapping[str, int]] = None,
) -> dict[str, DateWindow]:
    """Push dependents of `task_id` forward after it moves to `new_window`.

    `current` holds every task's present window (usually
    `ScheduleResult.windows()`). A dependent moves only when its required
    start (source end + effective offset) is later than its start; it keeps
    its own defined duration, never the span of a previous move. Nothing ever
    moves earlier.

    A task pushed again after it was processed is queued again, so its own
    dependents follow its latest end. Each task is queued at most once per
    task in the plan, which bounds the walk when edges form a cycle.

    Returns the new windows of the tasks that moved, without `task_id`.
    """

    dependents: dict[str, list[tuple[Task, DependencyRef]]] = defaultdict(list)
    task_count = 0
    for t in tasks:
        task_count += 1
        for dep in t.dependencies:
            if dep.active:
                dependents[dep.predecessor_id].append((t, dep))

    updates: dict[str, DateWindow] = {}
    pushes: Counter[str] = Counter()
    queued: set[str] = {task_id}
    worklist: deque[str] = deque([task_id])

    while worklist:
        source_id = worklist.popleft()
        queued.discard(source_id)
        source = new_window if source_id == task_id else updates[source_id]

        for dependent, dep in dependents.get(source_id, []):
            if dependent.id == task_id:
                continue
            required = source.end_at + timedelta(days=effective_offset_days(dep, units))
            known = updates.get(dependent.id) or current.get(dependent.id)
            if known is not None and required <= known.start_at:
                continue

            moved = DateWindow(
                start_at=required,
                end_at=required + timedelta(days=to_days(dependent.duration, units)),
            )
            logger.debug(
                "cascade %s -> %s: start %s",
                source_id,
                dependent.id,
                moved.start_at.isoformat(),
            )
            updates[dependent.id] = moved

            if dependent.id in queued or pushes[dependent.id] >= task_count:
                continue
            pushes[dependent.id] += 1
            queued.add(dependent.id)
            worklist.append(dependent.id)

    return updates


def apply_move(
    overrides: Mapping[str, DateWindow],
    task_id: str,
    new_window: DateWindow,
    delta: Mapping[str, DateWindow],
) -> dict[str, DateWindow]:
    """Return a new override map with a committed move and its cascade merged in."""
    if not new_window.is_valid:
        raise InvalidWindowError(
            code="E_INVALID_WINDOW",
            message=(
                f"start {new_window.start_at.isoformat()} must be before "
                f"end {new_window.end_at.isoformat()}"
            ),
            path=task_id,
        )
    merged = dict(overrides)
    merged[task_id] = new_window
    merged.update(delta)
    return merged
