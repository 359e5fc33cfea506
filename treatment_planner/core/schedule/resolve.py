from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import AbstractSet, Mapping, Optional

from treatment_planner.core.duration import offset_days, to_days
from treatment_planner.core.errors import ScheduleDiagnostic
from treatment_planner.core.model import DateWindow, DependencyRef, Task


logger = logging.getLogger(__name__)


def effective_offset_days(dep: DependencyRef, units: Optional[Mapping[str, int]] = None) -> int:
    """Gap between predecessor end and successor start.

    A zero or missing offset still leaves a one-day gap so the bars never
    overlap.
    """
    days = offset_days(dep.offset, units)
    return days if days > 0 else 1


def resolve_task_dates(
    task: Task,
    resolved: Mapping[str, DateWindow],
    project_start: date,
    units: Optional[Mapping[str, int]] = None,
    known_ids: Optional[AbstractSet[str]] = None,
) -> tuple[DateWindow, list[ScheduleDiagnostic]]:
    """Compute one task's window from its already-resolved predecessors.

    start = max(project_start, pred.end + effective offset for each active
    dependency found in `resolved`); end = start + duration in days.

    Predecessors missing from `resolved` are skipped and reported, except ids
    outside `known_ids` (when given), which the sequencer already reported.
    """

    diagnostics: list[ScheduleDiagnostic] = []
    start = project_start

    for i, dep in enumerate(task.dependencies):
        if not dep.active:
            continue
        pred = resolved.get(dep.predecessor_id)
        if pred is None:
            if known_ids is not None and dep.predecessor_id not in known_ids:
                continue
            diagnostics.append(
                ScheduleDiagnostic(
                    code="W_UNRESOLVED_PREDECESSOR",
                    message=f"predecessor {dep.predecessor_id} has no dates yet; dependency ignored",
                    path=f"{task.id}.dependencies[{i}]",
                )
            )
            continue
        candidate = pred.end_at + timedelta(days=effective_offset_days(dep, units))
        if candidate > start:
            start = candidate

    end = start + timedelta(days=to_days(task.duration, units))
    logger.debug("resolved %s: %s -> %s", task.id, start.isoformat(), end.isoformat())
    return DateWindow(start_at=start, end_at=end), diagnostics
