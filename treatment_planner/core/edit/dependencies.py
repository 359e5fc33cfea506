from __future__ import annotations

from collections import deque
from dataclasses import replace
from typing import Callable, Iterable, Optional

from treatment_planner.core.errors import (
    DependencyCycleError,
    PlanError,
    ScheduleDiagnostic,
    SelfReferenceError,
    UnknownTaskError,
)
from treatment_planner.core.model import DependencyRef, Duration, EditResult, Task


def add_dependency(
    tasks: Iterable[Task],
    predecessor_id: str,
    successor_id: str,
    offset: Optional[Duration] = None,
    *,
    allow_parallel: bool = False,
    allow_cycles: bool = False,
) -> EditResult:
    """Make `successor_id` start after `predecessor_id`.

    An existing active edge between the same two tasks makes this a no-op
    unless `allow_parallel` is set; an existing inactive one is switched back
    on (and given `offset`, when passed). An edge that would close a cycle is
    refused unless `allow_cycles` is set; the scheduler then falls back to
    best-effort dates for the tasks involved.
    """

    task_list = tuple(tasks)
    if predecessor_id == successor_id:
        raise SelfReferenceError(
            code="E_SELF_REFERENCE",
            message=f"task {successor_id} cannot depend on itself",
            path=f"{successor_id}.dependencies",
        )
    _require_known(task_list, predecessor_id, successor_id)

    successor = _find(task_list, successor_id)
    assert successor is not None

    existing = [d for d in successor.dependencies if d.predecessor_id == predecessor_id]
    if existing and not allow_parallel and not any(d.active for d in existing):
        # Re-adding a switched-off edge switches it back on.
        result = set_dependency_active(
            task_list, predecessor_id, successor_id, True, allow_cycles=allow_cycles
        )
        if offset is None:
            return result
        return _merge(result, set_dependency_offset(result.tasks, predecessor_id, successor_id, offset))

    if existing and not allow_parallel:
        return EditResult(
            tasks=task_list,
            changed=False,
            diagnostics=[
                ScheduleDiagnostic(
                    code="W_DUPLICATE_DEPENDENCY",
                    message=f"{successor_id} already depends on {predecessor_id}",
                    path=f"{successor_id}.dependencies",
                )
            ],
        )

    diagnostics = _check_cycle(task_list, predecessor_id, successor_id, allow_cycles)
    ref = DependencyRef(predecessor_id=predecessor_id, offset=offset, active=True)
    updated = _update(
        task_list,
        successor_id,
        lambda t: replace(t, dependencies=t.dependencies + (ref,)),
    )
    return EditResult(tasks=updated, changed=True, recompute=(successor_id,), diagnostics=diagnostics)


def remove_dependency(tasks: Iterable[Task], predecessor_id: str, successor_id: str) -> EditResult:
    task_list = tuple(tasks)
    _require_known(task_list, successor_id)

    successor = _find(task_list, successor_id)
    assert successor is not None
    kept = tuple(d for d in successor.dependencies if d.predecessor_id != predecessor_id)
    if len(kept) == len(successor.dependencies):
        return _not_found(task_list, predecessor_id, successor_id)

    updated = _update(task_list, successor_id, lambda t: replace(t, dependencies=kept))
    return EditResult(tasks=updated, changed=True, recompute=(successor_id,))


def set_dependency_active(
    tasks: Iterable[Task],
    predecessor_id: str,
    successor_id: str,
    active: bool,
    *,
    allow_cycles: bool = False,
) -> EditResult:
    """Soft toggle: an inactive edge is kept but ignored by the scheduler.

    Switching an edge back on is checked like adding it: if it would close a
    cycle it is refused unless `allow_cycles` is set.
    """
    task_list = tuple(tasks)
    _require_known(task_list, successor_id)

    diagnostics: list[PlanError] = []
    successor = _find(task_list, successor_id)
    assert successor is not None
    edges = [d for d in successor.dependencies if d.predecessor_id == predecessor_id]
    if active and edges and not any(d.active for d in edges):
        diagnostics = _check_cycle(task_list, predecessor_id, successor_id, allow_cycles)

    result = _edit_edges(
        task_list,
        predecessor_id,
        successor_id,
        lambda d: replace(d, active=active),
    )
    if not diagnostics:
        return result
    return replace(result, diagnostics=[*result.diagnostics, *diagnostics])


def set_dependency_offset(
    tasks: Iterable[Task], predecessor_id: str, successor_id: str, offset: Optional[Duration]
) -> EditResult:
    return _edit_edges(
        tasks,
        predecessor_id,
        successor_id,
        lambda d: replace(d, offset=offset),
    )


def creates_cycle(tasks: Iterable[Task], predecessor_id: str, successor_id: str) -> bool:
    """True if `predecessor_id` already depends, directly or not, on `successor_id`.

    Walks predecessor links (active edges only) starting at `predecessor_id`.
    """
    if predecessor_id == successor_id:
        return True

    by_id = {t.id: t for t in tasks}
    queue: deque[str] = deque([predecessor_id])
    seen: set[str] = set()
    while queue:
        cur = queue.popleft()
        if cur == successor_id:
            return True
        if cur in seen:
            continue
        seen.add(cur)
        task = by_id.get(cur)
        if task is None:
            continue
        for dep in task.active_dependencies():
            if dep.predecessor_id not in seen:
                queue.append(dep.predecessor_id)
    return False


def _edit_edges(
    tasks: Iterable[Task],
    predecessor_id: str,
    successor_id: str,
    change: Callable[[DependencyRef], DependencyRef],
) -> EditResult:
    task_list = tuple(tasks)
    _require_known(task_list, successor_id)

    successor = _find(task_list, successor_id)
    assert successor is not None
    if not any(d.predecessor_id == predecessor_id for d in successor.dependencies):
        return _not_found(task_list, predecessor_id, successor_id)

    new_deps = tuple(
        change(d) if d.predecessor_id == predecessor_id else d for d in successor.dependencies
    )
    if new_deps == successor.dependencies:
        return EditResult(tasks=task_list, changed=False)

    updated = _update(task_list, successor_id, lambda t: replace(t, dependencies=new_deps))
    return EditResult(tasks=updated, changed=True, recompute=(successor_id,))


def _check_cycle(
    task_list: tuple[Task, ...], predecessor_id: str, successor_id: str, allow_cycles: bool
) -> list[PlanError]:
    if not creates_cycle(task_list, predecessor_id, successor_id):
        return []
    if not allow_cycles:
        raise DependencyCycleError(
            code="E_DEPENDENCY_CYCLE",
            message=f"{predecessor_id} already depends (transitively) on {successor_id}",
            path=f"{successor_id}.dependencies",
        )
    return [
        ScheduleDiagnostic(
            code="W_DEPENDENCY_CYCLE",
            message=f"edge {predecessor_id} -> {successor_id} closes a cycle; dates are best-effort",
            path=f"{successor_id}.dependencies",
        )
    ]


def _merge(first: EditResult, second: EditResult) -> EditResult:
    recompute = first.recompute + tuple(r for r in second.recompute if r not in first.recompute)
    return EditResult(
        tasks=second.tasks,
        changed=first.changed or second.changed,
        recompute=recompute,
        diagnostics=[*first.diagnostics, *second.diagnostics],
    )


def _not_found(task_list: tuple[Task, ...], predecessor_id: str, successor_id: str) -> EditResult:
    return EditResult(
        tasks=task_list,
        changed=False,
        diagnostics=[
            ScheduleDiagnostic(
                code="W_DEPENDENCY_NOT_FOUND",
                message=f"{successor_id} does not depend on {predecessor_id}",
                path=f"{successor_id}.dependencies",
            )
        ],
    )


def _require_known(task_list: tuple[Task, ...], *task_ids: str) -> None:
    known = {t.id for t in task_list}
    for tid in task_ids:
        if tid not in known:
            raise UnknownTaskError(
                code="E_UNKNOWN_TASK",
                message=f"unknown task id: {tid}",
                path=tid,
            )


def _find(task_list: tuple[Task, ...], task_id: str) -> Optional[Task]:
    for t in task_list:
        if t.id == task_id:
            return t
    return None


def _update(
    task_list: tuple[Task, ...], task_id: str, change: Callable[[Task], Task]
) -> tuple[Task, ...]:
    return tuple(change(t) if t.id == task_id else t for t in task_list)
