from treatment_planner.core.errors import PlanLoadError
from treatment_planner.core.io.load_plan import load_plan


def test_load_yaml_success():
    plan = load_plan("examples/basic-plan.yaml")
    assert plan["schema_version"] == "0.1.0"
    assert isinstance(plan["tasks"], list)
    assert plan["__file__"] == "examples/basic-plan.yaml"


def test_load_legacy_json_maps_taches():
    plan = load_plan("examples/legacy-plan.json")
    assert len(plan["tasks"]) == 4
    assert plan["project_start"] == "2025-03-03"


def test_load_missing_file():
    try:
        load_plan("examples/does-not-exist.yaml")
        assert False, "expected PlanLoadError"
    except PlanLoadError as e:
        assert e.code == "E_FILE_NOT_FOUND"


def test_load_unsupported_format(tmp_path):
    p = tmp_path / "plan.txt"
    p.write_text("hello", encoding="utf-8")
    try:
        load_plan(str(p))
        assert False, "expected PlanLoadError"
    except PlanLoadError as e:
        assert e.code == "E_UNSUPPORTED_FORMAT"


def test_load_bad_json(tmp_path):
    p = tmp_path / "plan.json"
    p.write_text("{not json", encoding="utf-8")
    try:
        load_plan(str(p))
        assert False, "expected PlanLoadError"
    except PlanLoadError as e:
        assert e.code == "E_JSON_PARSE"


def test_load_top_level_list(tmp_path):
    p = tmp_path / "plan.yaml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    try:
        load_plan(str(p))
        assert False, "expected PlanLoadError"
    except PlanLoadError as e:
        assert e.code == "E_INVALID_TOP_LEVEL"
