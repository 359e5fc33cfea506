from __future__ import annotations

import logging
from collections import deque
from typing import Iterable

from treatment_planner.core.errors import ScheduleDiagnostic
from treatment_planner.core.model import Task


logger = logging.getLogger(__name__)


def topological_order(tasks: Iterable[Task]) -> tuple[list[Task], list[ScheduleDiagnostic]]:
    """Order tasks so that every active predecessor comes before its successors.

    Kahn's algorithm with a FIFO queue seeded in input order, so ties keep the
    input order. Edges to unknown ids are skipped and reported. When a cycle
    prevents some tasks from being reached, they are appended in input order
    and reported as W_DEPENDENCY_CYCLE; their dates are best-effort only.
    """

    task_list = list(tasks)
    by_id: dict[str, Task] = {}
    for t in task_list:
        by_id.setdefault(t.id, t)

    diagnostics: list[ScheduleDiagnostic] = []
    in_degree: dict[str, int] = {t.id: 0 for t in task_list}
    successors: dict[str, list[str]] = {t.id: [] for t in task_list}

    for t in task_list:
        for i, dep in enumerate(t.dependencies):
            if not dep.active:
                continue
            if dep.predecessor_id not in by_id:
                logger.warning("ignoring dependency %s -> %s: unknown task", dep.predecessor_id, t.id)
                diagnostics.append(
                    ScheduleDiagnostic(
                        code="W_UNKNOWN_DEPENDENCY",
                        message=f"dependency references unknown task id: {dep.predecessor_id}",
                        path=f"{t.id}.dependencies[{i}]",
                    )
                )
                continue
            in_degree[t.id] += 1
            successors[dep.predecessor_id].append(t.id)

    queue: deque[str] = deque(t.id for t in task_list if in_degree[t.id] == 0)
    ordered: list[Task] = []
    placed: set[str] = set()

    while queue:
        tid = queue.popleft()
        if tid in placed:
            continue
        placed.add(tid)
        ordered.append(by_id[tid])
        for nxt in successors[tid]:
            in_degree[nxt] -= 1
            if in_degree[nxt] == 0:
                queue.append(nxt)

    if len(placed) < len(by_id):
        leftover = [t for t in task_list if t.id not in placed]
        logger.warning(
            "dependency cycle: %d task(s) scheduled best-effort: %s",
            len(leftover),
            ", ".join(t.id for t in leftover),
        )
        for t in leftover:
            if t.id in placed:
                continue
            placed.add(t.id)
            ordered.append(t)
            diagnostics.append(
                ScheduleDiagnostic(
                    code="W_DEPENDENCY_CYCLE",
                    message="task is part of (or depends on) a dependency cycle; dates are best-effort",
                    path=t.id,
                )
            )

    return ordered, diagnostics
