from datetime import date

import yaml

from treatment_planner.core.io.dump_plan import dump_plan_yaml, plan_to_dict, schedule_to_dict
from treatment_planner.core.io.load_plan import load_plan
from treatment_planner.core.model import DateWindow
from treatment_planner.core.schedule.compute import compute_schedule
from treatment_planner.core.validate.validate_plan import validate_plan


def _plan(path: str):
    plan, errors = validate_plan(load_plan(path))
    assert errors == []
    assert plan is not None
    return plan


def test_written_plan_reloads_identically(tmp_path):
    plan = _plan("examples/legacy-plan.json")
    out = tmp_path / "nested" / "plan.yaml"
    dump_plan_yaml(plan_to_dict(plan), str(out))

    again = _plan(str(out))
    assert again.tasks == plan.tasks
    assert again.project_start == plan.project_start
    assert again.diagnostics == []


def test_overrides_written_as_dates(tmp_path):
    plan = _plan("examples/basic-plan.yaml")
    windows = {"A": DateWindow(date(2025, 1, 9), date(2025, 1, 10))}
    out = tmp_path / "plan.yaml"
    dump_plan_yaml(plan_to_dict(plan, overrides=windows), str(out))

    raw = yaml.safe_load(out.read_text(encoding="utf-8"))
    assert raw["overrides"] == {"A": {"start_at": date(2025, 1, 9), "end_at": date(2025, 1, 10)}}
    assert list(raw) == ["schema_version", "project_start", "tasks", "overrides"]


def test_schedule_to_dict():
    plan = _plan("examples/basic-plan.yaml")
    payload = schedule_to_dict(compute_schedule(plan.tasks, plan.project_start))
    assert payload["project_start"] == "2025-01-01"
    assert payload["tasks"][2]["start_at"] == "2025-01-06"
    assert payload["tasks"][2]["duration_days"] == 2
    assert payload["statistics"]["end_date"] == "2025-01-08"
    assert [m["phase"] for m in payload["milestones"]] == ["1", "2", "3"]
    assert payload["diagnostics"] == []
