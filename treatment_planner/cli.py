from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, NoReturn, Optional

import typer

from treatment_planner.core.config.schedule_config import (
    CONFIG_ENV_VAR,
    ScheduleConfig,
    ScheduleConfigError,
    load_and_merge,
)
from treatment_planner.core.edit.dependencies import (
    add_dependency,
    remove_dependency,
    set_dependency_active,
)
from treatment_planner.core.errors import EditError, PlanError, PlanLoadError, PlanValidationError
from treatment_planner.core.io.dump_plan import (
    dump_plan_yaml,
    error_to_dict,
    plan_to_dict,
    schedule_to_dict,
    windows_to_dict,
)
from treatment_planner.core.io.load_plan import load_plan
from treatment_planner.core.lint.lint_plan import lint_plan
from treatment_planner.core.model import DateWindow, Duration, EditResult, Plan, ScheduleResult
from treatment_planner.core.schedule.cascade import apply_move, cascade_updates
from treatment_planner.core.schedule.compute import compute_schedule
from treatment_planner.core.validate.validate_plan import parse_date, validate_plan

app = typer.Typer(add_completion=False, no_args_is_help=True)

FORMATS = ("text", "json")


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log scheduling decisions to stderr"),
) -> None:
    """Treatment plan scheduler CLI."""
    # core log records only with -v
    logging.getLogger("treatment_planner").setLevel(logging.DEBUG if verbose else logging.ERROR)
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    return


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate a plan file and report its shape."""
    _check_format(format, "E_VALIDATE_UNKNOWN_FORMAT")
    plan = _load_valid(path, format, "validate")

    if format == "json":
        _emit_json(
            "validate",
            True,
            exit_code=0,
            errors=list(plan.diagnostics),
            extra={
                "summary": {
                    "task_count": len(plan.tasks),
                    "dependency_count": sum(len(t.dependencies) for t in plan.tasks),
                    "override_count": len(plan.overrides),
                }
            },
        )

    _print_errors(list(plan.diagnostics))
    deps = sum(len(t.dependencies) for t in plan.tasks)
    typer.echo(f"OK: {len(plan.tasks)} tasks, {deps} dependencies, {len(plan.overrides)} overrides")


@app.command("lint")
def lint(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Lint a plan file (structural rules beyond validation)."""
    _check_format(format, "E_LINT_UNKNOWN_FORMAT")

    try:
        raw = load_plan(path)
    except PlanLoadError as e:
        if format == "json":
            _emit_json("lint", False, exit_code=1, errors=[e])
        _print_errors([e])
        raise typer.Exit(code=1)

    _, validation_errors = validate_plan(raw)
    errors: list[PlanError] = [*lint_plan(raw), *validation_errors]

    if format == "json":
        _emit_json("lint", not errors, exit_code=2 if errors else 0, errors=errors)
    if errors:
        _print_errors(errors)
        raise typer.Exit(code=2)
    typer.echo("OK: lint passed")


@app.command("schedule")
def schedule(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    start: Optional[str] = typer.Option(None, "--start", help="Project start date (YYYY-MM-DD)"),
    config_file: Optional[str] = typer.Option(
        None, "--config", envvar=CONFIG_ENV_VAR, help="Optional YAML scheduling config"
    ),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Compute start/end dates for every task."""
    _check_format(format, "E_SCHEDULE_UNKNOWN_FORMAT")
    config = _load_config(config_file)
    plan = _load_valid(path, format, "schedule")
    anchor = _anchor(start, plan, config)

    result = compute_schedule(plan.tasks, anchor, plan.overrides, units=config.units)
    diagnostics = [*plan.diagnostics, *result.diagnostics]

    if format == "json":
        payload = schedule_to_dict(result)
        payload["diagnostics"] = [error_to_dict(d) for d in diagnostics]
        _emit_json("schedule", True, exit_code=0, errors=[], extra={"schedule": payload})

    _print_errors(diagnostics)
    _print_schedule(result)


@app.command("move")
def move(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    task_id: str = typer.Argument(..., help="Id of the task being moved"),
    new_start: str = typer.Option(..., "--start", help="New start date (YYYY-MM-DD)"),
    new_end: str = typer.Option(..., "--end", help="New end date (YYYY-MM-DD)"),
    project_start: Optional[str] = typer.Option(None, "--project-start", help="Project start date"),
    config_file: Optional[str] = typer.Option(None, "--config", envvar=CONFIG_ENV_VAR),
    out: Optional[str] = typer.Option(None, "--out", help="Write the plan with the move committed"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Move one task and show which dependents have to shift."""
    _check_format(format, "E_MOVE_UNKNOWN_FORMAT")
    config = _load_config(config_file)
    plan = _load_valid(path, format, "move")
    anchor = _anchor(project_start, plan, config)

    if task_id not in {t.id for t in plan.tasks}:
        _fail(
            format,
            "move",
            PlanValidationError(
                code="E_UNKNOWN_TASK", message=f"unknown task id: {task_id}", path="task_id"
            ),
        )

    window = DateWindow(start_at=_date_option(new_start, "start"), end_at=_date_option(new_end, "end"))
    current = compute_schedule(plan.tasks, anchor, plan.overrides, units=config.units)
    delta = cascade_updates(plan.tasks, task_id, window, current.windows(), units=config.units)

    try:
        committed = apply_move(plan.overrides, task_id, window, delta)
    except EditError as e:
        _fail(format, "move", e)

    if out:
        dump_plan_yaml(plan_to_dict(plan, overrides=committed), out)

    if format == "json":
        _emit_json("move", True, exit_code=0, errors=[], extra={"task_id": task_id, "cascade": windows_to_dict(delta)})

    if not delta:
        typer.echo(f"OK: moved {task_id}; no dependent task has to move")
    else:
        typer.echo(f"OK: moved {task_id}; {len(delta)} dependent task(s) shifted:")
        for tid, w in sorted(delta.items()):
            typer.echo(f"- {tid}: {w.start_at.isoformat()} -> {w.end_at.isoformat()}")
    if out:
        typer.echo(f"OK: wrote {out}")


@app.command("link")
def link(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    predecessor: str = typer.Argument(..., help="Task that must finish first"),
    successor: str = typer.Argument(..., help="Task that starts after it"),
    out: str = typer.Option(..., "--out", help="Path to write the edited YAML plan"),
    offset: int = typer.Option(0, "--offset", help="Gap after the predecessor ends"),
    unit: str = typer.Option("days", "--unit", help="Unit of --offset: days|weeks|months"),
    parallel: bool = typer.Option(False, "--parallel", help="Allow a second edge between the same tasks"),
    allow_cycles: Optional[bool] = typer.Option(
        None, "--allow-cycles/--reject-cycles", help="Override the config's cycle policy"
    ),
    config_file: Optional[str] = typer.Option(None, "--config", envvar=CONFIG_ENV_VAR),
) -> None:
    """Add a dependency edge."""
    config = _load_config(config_file)
    plan = _load_valid(path, "text", "link")
    lenient = (not config.reject_cycles) if allow_cycles is None else allow_cycles

    try:
        result = add_dependency(
            plan.tasks,
            predecessor,
            successor,
            Duration(value=offset, unit=unit) if offset else None,
            allow_parallel=parallel,
            allow_cycles=lenient,
        )
    except EditError as e:
        _fail("text", "link", e)
    _write_edit(plan, result, out)


@app.command("unlink")
def unlink(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    predecessor: str = typer.Argument(...),
    successor: str = typer.Argument(...),
    out: str = typer.Option(..., "--out", help="Path to write the edited YAML plan"),
) -> None:
    """Remove a dependency edge."""
    plan = _load_valid(path, "text", "unlink")
    try:
        result = remove_dependency(plan.tasks, predecessor, successor)
    except EditError as e:
        _fail("text", "unlink", e)
    _write_edit(plan, result, out)


@app.command("toggle")
def toggle(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    predecessor: str = typer.Argument(...),
    successor: str = typer.Argument(...),
    active: bool = typer.Option(..., "--active/--inactive", help="Enable or disable the edge"),
    out: str = typer.Option(..., "--out", help="Path to write the edited YAML plan"),
    allow_cycles: Optional[bool] = typer.Option(
        None, "--allow-cycles/--reject-cycles", help="Override the config's cycle policy"
    ),
    config_file: Optional[str] = typer.Option(None, "--config", envvar=CONFIG_ENV_VAR),
) -> None:
    """Enable or disable a dependency edge without deleting it."""
    config = _load_config(config_file)
    plan = _load_valid(path, "text", "toggle")
    lenient = (not config.reject_cycles) if allow_cycles is None else allow_cycles
    try:
        result = set_dependency_active(plan.tasks, predecessor, successor, active, allow_cycles=lenient)
    except EditError as e:
        _fail("text", "toggle", e)
    _write_edit(plan, result, out)


def _write_edit(plan: Plan, result: EditResult, out: str) -> None:
    _print_errors(list(result.diagnostics))
    edited = Plan(
        tasks=result.tasks,
        project_start=plan.project_start,
        overrides=plan.overrides,
        schema_version=plan.schema_version,
        file=plan.file,
    )
    dump_plan_yaml(plan_to_dict(edited), out)
    if result.changed:
        typer.echo(f"OK: wrote {out} (recompute: {', '.join(result.recompute)})")
    else:
        typer.echo(f"OK: wrote {out} (no change)")


def _load_valid(path: str, format: str, command: str) -> Plan:
    try:
        raw = load_plan(path)
    except PlanLoadError as e:
        if format == "json":
            _emit_json(command, False, exit_code=1, errors=[e])
        _print_errors([e])
        raise typer.Exit(code=1)

    plan, errors = validate_plan(raw)
    if errors or plan is None:
        if format == "json":
            _emit_json(command, False, exit_code=2, errors=list(errors))
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    return plan


def _load_config(config_file: Optional[str]) -> ScheduleConfig:
    try:
        return load_and_merge(config_file)
    except FileNotFoundError:
        _print_errors(
            [
                PlanLoadError(
                    code="E_CONFIG_FILE_NOT_FOUND",
                    message=f"config file not found: {config_file}",
                    file=None,
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=1)
    except ScheduleConfigError as e:
        _print_errors(
            [
                PlanValidationError(
                    code="E_CONFIG_FILE_INVALID",
                    message=str(e),
                    file=config_file,
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=2)


def _anchor(start: Optional[str], plan: Plan, config: ScheduleConfig) -> date:
    if start is not None:
        return _date_option(start, "start")
    return plan.project_start or config.project_start or date.today()


def _date_option(value: str, name: str) -> date:
    parsed = parse_date(value)
    if parsed is None:
        _print_errors(
            [
                PlanValidationError(
                    code="E_INVALID_DATE",
                    message=f"--{name} must be a date (YYYY-MM-DD), got {value!r}",
                    file=None,
                    path=name,
                )
            ]
        )
        raise typer.Exit(code=2)
    return parsed


def _check_format(format: str, code: str) -> None:
    if format not in FORMATS:
        err = PlanValidationError(
            code=code,
            message=f"unknown format: {format} (choose one of: {', '.join(FORMATS)})",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _fail(format: str, command: str, error: PlanError) -> NoReturn:
    if format == "json":
        _emit_json(command, False, exit_code=2, errors=[error])
    _print_errors([error])
    raise typer.Exit(code=2)


def _emit_json(
    command: str,
    ok: bool,
    *,
    exit_code: int,
    errors: list[PlanError],
    extra: Optional[dict[str, Any]] = None,
) -> NoReturn:
    payload: dict[str, Any] = {
        "tool": "planner",
        "command": command,
        "ok": ok,
        "error_count": sum(1 for e in errors if e.severity == "error"),
        "errors": [error_to_dict(e) for e in errors],
    }
    if extra:
        payload.update(extra)
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


def _print_schedule(result: ScheduleResult) -> None:
    typer.echo(f"Project start: {result.project_start.isoformat()}")
    for t in result.tasks:
        flags = []
        if t.source == "override":
            flags.append("override")
        if t.best_effort:
            flags.append("best-effort")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        typer.echo(f"- {t.id} {t.task.name}: {t.start_at.isoformat()} -> {t.end_at.isoformat()}{suffix}")


def _print_errors(errors: list[PlanError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="planner")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
