from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Mapping, Optional

from treatment_planner.core.duration import to_days
from treatment_planner.core.errors import PlanError, ScheduleDiagnostic
from treatment_planner.core.model import DateWindow, ScheduledTask, ScheduleResult, Task
from treatment_planner.core.schedule.resolve import resolve_task_dates
from treatment_planner.core.schedule.sequence import topological_order


logger = logging.getLogger(__name__)


def compute_schedule(
    tasks: Iterable[Task],
    project_start: date,
    overrides: Optional[Mapping[str, DateWindow]] = None,
    units: Optional[Mapping[str, int]] = None,
) -> ScheduleResult:
    """Date every task.

    Tasks are visited in topological order. A valid override (start < end)
    replaces the computed window; either way the window is what later tasks
    see as their predecessor's dates. The result lists tasks in input order.

    Feeding `result.as_overrides()` back in reproduces the same dates.
    """

    task_list = list(tasks)
    overrides = overrides or {}
    known_ids = {t.id for t in task_list}

    ordered, seq_diagnostics = topological_order(task_list)
    diagnostics: list[PlanError] = list(seq_diagnostics)
    best_effort = {d.path for d in seq_diagnostics if d.code == "W_DEPENDENCY_CYCLE"}

    for tid in sorted(set(overrides) - known_ids):
        diagnostics.append(
            ScheduleDiagnostic(
                code="W_UNKNOWN_OVERRIDE",
                message=f"override references unknown task id: {tid}",
                path=f"overrides.{tid}",
            )
        )

    resolved: dict[str, DateWindow] = {}
    sources: dict[str, str] = {}

    for task in ordered:
        override = overrides.get(task.id)
        if override is not None and override.is_valid:
            resolved[task.id] = override
            sources[task.id] = "override"
            continue
        if override is not None:
            diagnostics.append(
                ScheduleDiagnostic(
                    code="W_INVALID_OVERRIDE",
                    message=(
                        f"override ignored: start {override.start_at.isoformat()} "
                        f"is not before end {override.end_at.isoformat()}"
                    ),
                    path=f"overrides.{task.id}",
                )
            )
        window, task_diagnostics = resolve_task_dates(
            task, resolved, project_start, units=units, known_ids=known_ids
        )
        diagnostics.extend(task_diagnostics)
        resolved[task.id] = window
        sources[task.id] = "computed"

    scheduled: list[ScheduledTask] = []
    for task in task_list:
        window = resolved[task.id]
        scheduled.append(
            ScheduledTask(
                task=task,
                start_at=window.start_at,
                end_at=window.end_at,
                duration_days=to_days(task.duration, units),
                source="override" if sources[task.id] == "override" else "computed",
                best_effort=task.id in best_effort,
            )
        )

    logger.debug("scheduled %d task(s) from %s", len(scheduled), project_start.isoformat())
    return ScheduleResult(project_start=project_start, tasks=scheduled, diagnostics=diagnostics)
