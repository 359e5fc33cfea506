from datetime import date

from treatment_planner.core.io.load_plan import load_plan
from treatment_planner.core.model import DependencyRef, Duration
from treatment_planner.core.schedule.compute import compute_schedule
from treatment_planner.core.validate.validate_plan import (
    default_task_id,
    parse_date,
    parse_dependency,
    parse_duration,
    parse_status,
    validate_plan,
)


def test_validate_happy_path():
    plan, errors = validate_plan(load_plan("examples/basic-plan.yaml"))
    assert errors == []
    assert plan is not None
    assert [t.id for t in plan.tasks] == ["A", "B", "C", "D"]
    assert plan.project_start == date(2025, 1, 1)
    assert plan.tasks[0].status == "completed"
    assert plan.tasks[2].dependencies == (DependencyRef("B", offset=Duration(2, "days")),)
    assert plan.diagnostics == []


def test_validate_missing_name():
    plan, errors = validate_plan(load_plan("examples/invalid-missing-name.yaml"))
    assert plan is None
    assert [(e.code, e.path) for e in errors] == [("E_REQUIRED_FIELD", "tasks[0].name")]


def test_validate_missing_tasks():
    plan, errors = validate_plan({"schema_version": "0.1.0"})
    assert plan is None
    assert [e.code for e in errors] == ["E_REQUIRED_FIELD"]


def test_validate_bad_project_start():
    plan, errors = validate_plan({"project_start": "soon", "tasks": []})
    assert plan is None
    assert [(e.code, e.path) for e in errors] == [("E_INVALID_DATE", "project_start")]


def test_duplicate_id_is_reassigned():
    plan, errors = validate_plan(load_plan("examples/invalid-duplicate-id.yaml"))
    assert errors == []
    assert plan is not None
    assert [t.id for t in plan.tasks] == ["A", "T2_secondvisi"]
    assert [d.code for d in plan.diagnostics] == ["W_ASSIGNED_ID"]
    assert plan.diagnostics[0].severity == "warning"


def test_legacy_plan_is_normalized():
    plan, errors = validate_plan(load_plan("examples/legacy-plan.json"))
    assert errors == []
    assert plan is not None
    t1, t2, t3, t4 = plan.tasks
    assert t3.id == "T3_poseimplan"
    assert t1.status == "completed"
    assert t2.status == "in-progress"
    assert t3.status == "planned"
    assert t2.duration == Duration(2, "semaines")
    assert t3.dependencies == (DependencyRef("t2", offset=Duration(1, "semaine")),)
    assert t4.dependencies == (DependencyRef("t2", active=False), DependencyRef("t3"))
    assert t1.phase == "1"


def test_legacy_plan_schedule():
    plan, _ = validate_plan(load_plan("examples/legacy-plan.json"))
    assert plan is not None
    result = compute_schedule(plan.tasks, plan.project_start, plan.overrides)
    got = {t.id: (t.start_at, t.end_at) for t in result.tasks}
    assert got["t1"] == (date(2025, 3, 3), date(2025, 3, 4))
    assert got["t2"] == (date(2025, 3, 5), date(2025, 3, 19))
    assert got["T3_poseimplan"] == (date(2025, 3, 26), date(2025, 6, 24))
    assert got["t4"] == (date(2025, 3, 3), date(2025, 3, 4))
    assert [d.code for d in result.diagnostics] == ["W_UNKNOWN_DEPENDENCY"]


def test_custom_id_factory():
    raw = {"tasks": [{"name": "Extraction"}, {"name": "Implant"}]}
    plan, errors = validate_plan(raw, id_factory=lambda i, name: f"task-{i}")
    assert errors == []
    assert plan is not None
    assert [t.id for t in plan.tasks] == ["task-0", "task-1"]


def test_default_task_id():
    assert default_task_id(0, "Pose implant 46!") == "T1_poseimplan"
    assert default_task_id(4, "") == "T5_task"


def test_overrides_parsed():
    plan, errors = validate_plan(load_plan("examples/override-plan.yaml"))
    assert errors == []
    assert plan is not None
    window = plan.overrides["A"]
    assert (window.start_at, window.end_at) == (date(2025, 1, 5), date(2025, 1, 7))


def test_bad_override_reported():
    raw = {"tasks": [{"id": "A", "name": "A"}], "overrides": {"A": {"start_at": "x", "end_at": "2025-01-02"}}}
    plan, errors = validate_plan(raw)
    assert plan is None
    assert [(e.code, e.path) for e in errors] == [("E_INVALID_DATE", "overrides.A")]


def test_bad_dependency_item():
    raw = {"tasks": [{"id": "A", "name": "A", "dependencies": [{"type": "FD"}]}]}
    plan, errors = validate_plan(raw)
    assert plan is None
    assert [(e.code, e.path) for e in errors] == [("E_INVALID_TYPE", "tasks[0].dependencies[0]")]


def test_parse_dependency_shapes():
    assert parse_dependency("A") == DependencyRef("A")
    assert parse_dependency({"predecessor_id": "A"}) == DependencyRef("A")
    assert parse_dependency({"after": "A", "active": False}) == DependencyRef("A", active=False)
    assert parse_dependency({"predecessor": "A", "offset": 3}) == DependencyRef("A", offset=Duration(3, "days"))
    assert parse_dependency("") is None
    assert parse_dependency(42) == DependencyRef("42")
    assert parse_dependency(True) is None


def test_parse_duration_rejects_garbage():
    assert parse_duration({"valeur": 2, "unite": "mois"}) == Duration(2, "mois")
    assert parse_duration({"value": "two", "unit": "days"}) is None
    assert parse_duration({"value": 2}) is None
    assert parse_duration(True) is None


def test_parse_status_and_date():
    assert parse_status({"id": "termine"}) == "completed"
    assert parse_status("In-Progress") == "in-progress"
    assert parse_status("whatever") == "planned"
    assert parse_date("2025-01-02T10:00:00Z") == date(2025, 1, 2)
    assert parse_date("2025-13-01") is None


def test_duration_inferred_from_absolute_dates():
    raw = {
        "tasks": [
            {"id": "A", "name": "Implant", "dateDebut": "2025-01-01", "dateFin": "2025-01-15"},
            {"id": "B", "name": "Check-up", "start_at": "2025-01-01", "end_at": "2025-01-01"},
        ]
    }
    plan, errors = validate_plan(raw)
    assert errors == []
    assert plan is not None
    assert plan.tasks[0].duration == Duration(2, "weeks")
    assert plan.tasks[1].duration is None


def test_integer_ids_in_dependencies():
    raw = {
        "tasks": [
            {"id": 1, "name": "Extraction"},
            {"id": 2, "name": "Implant", "dependencies": [1]},
            {"id": 3, "name": "Crown", "dependances": [{"id_tache_precedente": 2}]},
        ]
    }
    plan, errors = validate_plan(raw)
    assert errors == []
    assert plan is not None
    assert plan.tasks[1].dependencies == (DependencyRef("1"),)
    assert plan.tasks[2].dependencies == (DependencyRef("2"),)
