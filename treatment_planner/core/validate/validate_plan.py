from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional, cast

from treatment_planner.core.duration import duration_from_dates
from treatment_planner.core.errors import PlanError, PlanValidationError, ScheduleDiagnostic
from treatment_planner.core.model import DateWindow, DependencyRef, Duration, Plan, Task, TaskStatus


TaskIdFactory = Callable[[int, str], str]

STATUS_ALIASES: dict[str, TaskStatus] = {
    "planned": "planned",
    "planifie": "planned",
    "in-progress": "in-progress",
    "encours": "in-progress",
    "completed": "completed",
    "termine": "completed",
}

# Dependency objects have carried their predecessor id under several names.
PREDECESSOR_KEYS: tuple[str, ...] = ("predecessor", "predecessor_id", "after", "id_tache_precedente", "id")


def default_task_id(index: int, name: str) -> str:
    """Deterministic id for a task that has none: T<position>_<first letters of its name>."""
    clean = re.sub(r"[^a-zA-Z0-9]", "", name or "task").lower()
    return f"T{index + 1}_{clean[:10]}"


def validate_plan(
    plan: dict[str, Any],
    id_factory: Optional[TaskIdFactory] = None,
) -> tuple[Optional[Plan], list[PlanValidationError]]:
    """Validate a loaded plan and normalize it into the canonical model.

    Returns (plan, errors). Plan is None when errors exist. Non-fatal repairs
    (ids assigned to tasks that had none or a duplicate) are returned on
    `plan.diagnostics`.
    """

    file = cast(Optional[str], plan.get("__file__"))
    make_id = id_factory or default_task_id
    errors: list[PlanValidationError] = []
    diagnostics: list[PlanError] = []

    schema_version = plan.get("schema_version")
    if schema_version is not None and (not isinstance(schema_version, str) or not schema_version.strip()):
        errors.append(
            PlanValidationError(
                code="E_INVALID_TYPE",
                message="schema_version must be a non-empty string",
                file=file,
                path="schema_version",
            )
        )

    project_start: Optional[date] = None
    if plan.get("project_start") is not None:
        project_start = parse_date(plan.get("project_start"))
        if project_start is None:
            errors.append(
                PlanValidationError(
                    code="E_INVALID_DATE",
                    message="project_start must be a date (YYYY-MM-DD)",
                    file=file,
                    path="project_start",
                )
            )

    raw_tasks = plan.get("tasks")
    if not isinstance(raw_tasks, list):
        errors.append(
            PlanValidationError(
                code="E_REQUIRED_FIELD",
                message="tasks is required and must be an array",
                file=file,
                path="tasks",
            )
        )
        return None, _sorted(errors)

    tasks: list[Task] = []
    seen_ids: set[str] = set()

    for i, raw in enumerate(raw_tasks):
        task_path = f"tasks[{i}]"
        if not isinstance(raw, dict):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="task must be an object",
                    file=file,
                    path=task_path,
                )
            )
            continue

        name = _first(raw, "name", "nom")
        if not isinstance(name, str) or not name.strip():
            errors.append(
                PlanValidationError(
                    code="E_REQUIRED_FIELD",
                    message="name is required and must be a non-empty string",
                    file=file,
                    path=f"{task_path}.name",
                )
            )
            continue

        tid = raw.get("id")
        if isinstance(tid, int) and not isinstance(tid, bool):
            tid = str(tid)
        if not isinstance(tid, str) or not tid.strip() or tid in seen_ids:
            reason = "duplicate" if isinstance(tid, str) and tid in seen_ids else "missing"
            new_id = make_id(i, name)
            while new_id in seen_ids:
                new_id = f"{new_id}_"
            diagnostics.append(
                ScheduleDiagnostic(
                    code="W_ASSIGNED_ID",
                    message=f"{reason} task id for {name!r}; assigned {new_id}",
                    file=file,
                    path=f"{task_path}.id",
                )
            )
            tid = new_id
        seen_ids.add(tid)

        raw_deps = _first(raw, "dependencies", "dependances")
        if raw_deps is None:
            raw_deps = []
        if not isinstance(raw_deps, list):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="dependencies must be an array",
                    file=file,
                    path=f"{task_path}.dependencies",
                )
            )
            continue

        deps: list[DependencyRef] = []
        for di, raw_dep in enumerate(raw_deps):
            ref = parse_dependency(raw_dep)
            if ref is None:
                errors.append(
                    PlanValidationError(
                        code="E_INVALID_TYPE",
                        message="dependency must be a task id or an object naming its predecessor",
                        file=file,
                        path=f"{task_path}.dependencies[{di}]",
                    )
                )
                continue
            deps.append(ref)

        duration = parse_duration(_first(raw, "duration", "duree"))
        if duration is None:
            duration = _duration_from_span(raw)

        phase = raw.get("phase")
        tasks.append(
            Task(
                id=tid,
                name=name.strip(),
                duration=duration,
                dependencies=tuple(deps),
                phase=str(phase) if phase is not None else None,
                status=parse_status(_first(raw, "status", "statut")),
            )
        )

    overrides = _parse_overrides(plan.get("overrides"), file, errors)

    if errors:
        return None, _sorted(errors)

    return (
        Plan(
            tasks=tuple(tasks),
            project_start=project_start,
            overrides=overrides,
            schema_version=cast(str, schema_version or "0.1.0"),
            file=file,
            diagnostics=diagnostics,
        ),
        [],
    )


def parse_dependency(raw: Any) -> Optional[DependencyRef]:
    """Normalize one dependency from any of its historical shapes.

    A bare string (or integer) is the predecessor id. Objects may name the
    predecessor under any key in PREDECESSOR_KEYS, carry an `offset` or
    `decalage`, and an `active` flag. Legacy `type` tags are dropped: every edge means "after".
    """
    if not isinstance(raw, dict):
        bare = _id_text(raw)
        return DependencyRef(predecessor_id=bare) if bare is not None else None

    pred = None
    for key in PREDECESSOR_KEYS:
        pred = _id_text(raw.get(key))
        if pred is not None:
            break
    if pred is None:
        return None

    return DependencyRef(
        predecessor_id=pred,
        offset=parse_duration(_first(raw, "offset", "decalage")),
        active=raw.get("active") is not False,
    )


def parse_duration(raw: Any) -> Optional[Duration]:
    """{value, unit} or {valeur, unite}; a bare number means days. Anything else is None."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return Duration(value=raw, unit="days")
    if not isinstance(raw, dict):
        return None
    value = _first(raw, "value", "valeur")
    unit = _first(raw, "unit", "unite")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not isinstance(unit, str) or not unit.strip():
        return None
    return Duration(value=value, unit=unit.strip())


def parse_status(raw: Any) -> TaskStatus:
    if isinstance(raw, dict):
        raw = raw.get("id")
    if not isinstance(raw, str):
        return "planned"
    return STATUS_ALIASES.get(raw.strip().lower(), "planned")


def parse_date(raw: Any) -> Optional[date]:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    try:
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        return None


def _parse_overrides(
    raw: Any, file: Optional[str], errors: list[PlanValidationError]
) -> dict[str, DateWindow]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        errors.append(
            PlanValidationError(
                code="E_INVALID_TYPE",
                message="overrides must be a mapping of task id -> {start_at, end_at}",
                file=file,
                path="overrides",
            )
        )
        return {}

    out: dict[str, DateWindow] = {}
    for tid, window in raw.items():
        path = f"overrides.{tid}"
        if not isinstance(window, dict):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="override must be an object with start_at and end_at",
                    file=file,
                    path=path,
                )
            )
            continue
        start = parse_date(_first(window, "start_at", "startAt"))
        end = parse_date(_first(window, "end_at", "endAt"))
        if start is None or end is None:
            errors.append(
                PlanValidationError(
                    code="E_INVALID_DATE",
                    message="override start_at and end_at must be dates (YYYY-MM-DD)",
                    file=file,
                    path=path,
                )
            )
            continue
        out[str(tid)] = DateWindow(start_at=start, end_at=end)
    return out


def _duration_from_span(raw: dict[str, Any]) -> Optional[Duration]:
    # Tasks exported with absolute dates only.
    start = parse_date(_first(raw, "start_at", "startAt", "dateDebut"))
    end = parse_date(_first(raw, "end_at", "endAt", "dateFin"))
    if start is None or end is None or end <= start:
        return None
    return duration_from_dates(start, end)


def _id_text(v: Any) -> Optional[str]:
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    if isinstance(v, str) and v.strip():
        return v
    return None


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in raw:
            return raw[k]
    return None


def _sorted(errors: Iterable[PlanValidationError]) -> list[PlanValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
