from datetime import date

from treatment_planner.core.model import DateWindow, DependencyRef, Duration, Task
from treatment_planner.core.schedule.resolve import effective_offset_days, resolve_task_dates

START = date(2025, 1, 1)


def _dep(pred: str, days: int | None = None, active: bool = True) -> DependencyRef:
    offset = Duration(days, "days") if days is not None else None
    return DependencyRef(predecessor_id=pred, offset=offset, active=active)


def test_no_dependencies_starts_at_anchor():
    window, diagnostics = resolve_task_dates(Task(id="A", name="A", duration=Duration(3, "days")), {}, START)
    assert window == DateWindow(date(2025, 1, 1), date(2025, 1, 4))
    assert diagnostics == []


def test_offset_is_added_to_predecessor_end():
    task = Task(id="S", name="S", dependencies=(_dep("P", 4),))
    resolved = {"P": DateWindow(date(2025, 1, 1), date(2025, 1, 3))}
    window, _ = resolve_task_dates(task, resolved, START)
    assert window.start_at == date(2025, 1, 7)
    assert window.end_at == date(2025, 1, 8)


def test_zero_and_missing_offset_both_mean_one_day():
    assert effective_offset_days(_dep("P", 0)) == 1
    assert effective_offset_days(_dep("P")) == 1
    assert effective_offset_days(_dep("P", 3)) == 3


def test_latest_predecessor_wins():
    task = Task(id="S", name="S", dependencies=(_dep("P1"), _dep("P2")))
    resolved = {
        "P1": DateWindow(date(2025, 1, 1), date(2025, 1, 2)),
        "P2": DateWindow(date(2025, 1, 1), date(2025, 1, 9)),
    }
    window, _ = resolve_task_dates(task, resolved, START)
    assert window.start_at == date(2025, 1, 10)


def test_never_before_anchor():
    task = Task(id="S", name="S", dependencies=(_dep("P"),))
    resolved = {"P": DateWindow(date(2024, 12, 1), date(2024, 12, 2))}
    window, _ = resolve_task_dates(task, resolved, START)
    assert window.start_at == START


def test_inactive_dependency_ignored():
    task = Task(id="S", name="S", dependencies=(_dep("P", active=False),))
    resolved = {"P": DateWindow(date(2025, 2, 1), date(2025, 2, 2))}
    window, diagnostics = resolve_task_dates(task, resolved, START)
    assert window.start_at == START
    assert diagnostics == []


def test_unresolved_predecessor_is_skipped_with_diagnostic():
    task = Task(id="S", name="S", dependencies=(_dep("P"),))
    window, diagnostics = resolve_task_dates(task, {}, START)
    assert window.start_at == START
    assert [d.code for d in diagnostics] == ["W_UNRESOLVED_PREDECESSOR"]


def test_unknown_ids_are_silent_when_known_ids_given():
    task = Task(id="S", name="S", dependencies=(_dep("GHOST"),))
    _, diagnostics = resolve_task_dates(task, {}, START, known_ids={"S"})
    assert diagnostics == []
