from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from treatment_planner.core.errors import PlanError
from treatment_planner.core.model import DateWindow, Duration, Plan, ScheduleResult, Task
from treatment_planner.core.schedule.summary import phase_milestones, summarize_schedule


def plan_to_dict(plan: Plan, overrides: Optional[Mapping[str, DateWindow]] = None) -> dict[str, Any]:
    """Canonical plan document, as written back to disk.

    Dates stay `datetime.date` objects so YAML writes them unquoted.
    """
    out: dict[str, Any] = {"schema_version": plan.schema_version}
    if plan.project_start is not None:
        out["project_start"] = plan.project_start
    out["tasks"] = [task_to_dict(t) for t in plan.tasks]

    windows = plan.overrides if overrides is None else overrides
    if windows:
        out["overrides"] = {
            tid: {"start_at": w.start_at, "end_at": w.end_at} for tid, w in windows.items()
        }
    return out


def task_to_dict(task: Task) -> dict[str, Any]:
    out: dict[str, Any] = {"id": task.id, "name": task.name}
    if task.phase is not None:
        out["phase"] = task.phase
    if task.duration is not None:
        out["duration"] = _duration_to_dict(task.duration)
    out["status"] = task.status
    deps: list[dict[str, Any]] = []
    for d in task.dependencies:
        item: dict[str, Any] = {"predecessor": d.predecessor_id}
        if d.offset is not None:
            item["offset"] = _duration_to_dict(d.offset)
        if not d.active:
            item["active"] = False
        deps.append(item)
    out["dependencies"] = deps
    return out


def schedule_to_dict(result: ScheduleResult) -> dict[str, Any]:
    """JSON-ready view of a schedule (ISO date strings)."""
    stats = summarize_schedule(result)
    return {
        "project_start": result.project_start.isoformat(),
        "tasks": [
            {
                "id": t.id,
                "name": t.task.name,
                "phase": t.task.phase,
                "start_at": t.start_at.isoformat(),
                "end_at": t.end_at.isoformat(),
                "duration_days": t.duration_days,
                "source": t.source,
                "best_effort": t.best_effort,
            }
            for t in result.tasks
        ],
        "milestones": [
            {"phase": m.phase, "date": m.date.isoformat(), "label": m.label}
            for m in phase_milestones(result)
        ],
        "statistics": {
            "total_tasks": stats.total_tasks,
            "total_duration_days": stats.total_duration_days,
            "start_date": stats.start_date.isoformat(),
            "end_date": stats.end_date.isoformat(),
            "status_counts": stats.status_counts,
        },
        "diagnostics": [error_to_dict(d) for d in result.diagnostics],
    }


def windows_to_dict(windows: Mapping[str, DateWindow]) -> dict[str, dict[str, str]]:
    return {
        tid: {"start_at": w.start_at.isoformat(), "end_at": w.end_at.isoformat()}
        for tid, w in sorted(windows.items())
    }


def error_to_dict(e: PlanError) -> dict[str, Any]:
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": e.severity,
    }


def dump_plan_yaml(plan: dict[str, Any], path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(plan, f, sort_keys=False, default_flow_style=False, allow_unicode=True)


def _duration_to_dict(d: Duration) -> dict[str, Any]:
    return {"value": d.value, "unit": d.unit}
