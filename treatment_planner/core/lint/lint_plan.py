from __future__ import annotations

from collections import Counter
from typing import Any, Iterator, Optional

from treatment_planner.core.errors import PlanValidationError
from treatment_planner.core.validate.validate_plan import parse_dependency


# Structural lint rules. The scheduler tolerates all of these, but a plan that
# trips them gets dates the user probably did not intend:
# - L_DUPLICATE_ID: duplicate task IDs
# - L_SELF_DEPENDENCY: task depends on itself
# - L_UNKNOWN_DEPENDENCY: dependency on a task id that does not exist
# - L_CYCLE_DETECTED: cycle through active dependencies


def lint_plan(plan: dict[str, Any]) -> list[PlanValidationError]:
    """Lint a loaded plan.

    Runs in addition to validation and works on partially-invalid input (best
    effort). Only active dependencies take part in cycle detection.
    """

    file = _cast_optional_str(plan.get("__file__"))

    tasks = plan.get("tasks")
    if not isinstance(tasks, list):
        # Let validator handle shape.
        return []

    id_to_index: dict[str, int] = {}
    id_to_deps: dict[str, list[str]] = {}
    ids: list[str] = []
    errors: list[PlanValidationError] = []

    for i, raw in enumerate(tasks):
        if not isinstance(raw, dict):
            continue
        tid = _task_id(raw)
        if tid is None:
            continue
        ids.append(tid)
        if tid in id_to_index:
            continue
        id_to_index[tid] = i

        raw_deps = raw.get("dependencies", raw.get("dependances"))
        deps: list[str] = []
        if isinstance(raw_deps, list):
            for di, raw_dep in enumerate(raw_deps):
                ref = parse_dependency(raw_dep)
                if ref is None:
                    continue
                if ref.predecessor_id == tid:
                    errors.append(
                        PlanValidationError(
                            code="L_SELF_DEPENDENCY",
                            message=f"task {tid} depends on itself",
                            file=file,
                            path=f"tasks[{i}].dependencies[{di}]",
                        )
                    )
                    continue
                if ref.active:
                    deps.append(ref.predecessor_id)
        id_to_deps[tid] = deps

    # Rule: duplicate IDs
    counts = Counter(ids)
    seen: set[str] = set()
    for i, raw in enumerate(tasks):
        if not isinstance(raw, dict):
            continue
        tid = _task_id(raw)
        if tid is None or counts[tid] < 2:
            continue
        if tid not in seen:
            seen.add(tid)
            continue
        errors.append(
            PlanValidationError(
                code="L_DUPLICATE_ID",
                message=f"duplicate task id: {tid} (count={counts[tid]})",
                file=file,
                path=f"tasks[{i}].id",
            )
        )

    # Rule: unknown dependency targets
    for tid, deps in id_to_deps.items():
        for dep in deps:
            if dep not in id_to_deps:
                errors.append(
                    PlanValidationError(
                        code="L_UNKNOWN_DEPENDENCY",
                        message=f"dependency references unknown task id: {dep}",
                        file=file,
                        path=f"tasks[{id_to_index[tid]}].dependencies",
                    )
                )

    # Rule: cycle detection
    for tid, msg in _detect_cycles(id_to_deps):
        errors.append(
            PlanValidationError(
                code="L_CYCLE_DETECTED",
                message=msg,
                file=file,
                path=f"tasks[{id_to_index.get(tid, 0)}].dependencies",
            )
        )

    return _sorted(errors)


def _detect_cycles(id_to_deps: dict[str, list[str]]) -> list[tuple[str, str]]:
    WHITE, GRAY, BLACK = 0, 1, 2
    state: dict[str, int] = {tid: WHITE for tid in id_to_deps.keys()}
    emitted: set[str] = set()
    out: list[tuple[str, str]] = []

    for root in list(state.keys()):
        if state[root] != WHITE:
            continue
        # Iterative DFS; `path` mirrors the recursion stack.
        path: list[str] = [root]
        iters: list[Iterator[str]] = [iter(id_to_deps.get(root, []))]
        state[root] = GRAY
        while iters:
            u = path[-1]
            v = next(iters[-1], None)
            if v is None:
                state[u] = BLACK
                path.pop()
                iters.pop()
                continue
            if v not in state:
                continue
            if state[v] == GRAY:
                # cycle: v ... u -> v
                cycle = path[path.index(v):] + [v]
                key = "->".join(cycle)
                if key not in emitted:
                    emitted.add(key)
                    out.append((u, "dependency cycle detected: " + " -> ".join(cycle)))
            elif state[v] == WHITE:
                state[v] = GRAY
                path.append(v)
                iters.append(iter(id_to_deps.get(v, [])))

    return out


def _sorted(errors: list[PlanValidationError]) -> list[PlanValidationError]:
    return sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))


def _task_id(raw: dict[str, Any]) -> Optional[str]:
    tid = raw.get("id")
    if isinstance(tid, int) and not isinstance(tid, bool):
        return str(tid)
    return tid if isinstance(tid, str) else None


def _cast_optional_str(v: Any) -> Optional[str]:
    return v if isinstance(v, str) else None
