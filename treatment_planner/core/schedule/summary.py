from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Optional

from treatment_planner.core.model import ScheduleResult


@dataclass(frozen=True)
class PhaseMilestone:
    phase: str
    date: date
    label: str


@dataclass(frozen=True)
class ScheduleStatistics:
    total_tasks: int
    total_duration_days: int
    start_date: date
    end_date: date
    status_counts: dict[str, int]
    overdue: int


def phase_milestones(result: ScheduleResult) -> list[PhaseMilestone]:
    """One milestone per phase, on the latest end date of its tasks.

    Phases are listed in order of first appearance; tasks without a phase are
    skipped.
    """
    ends: dict[str, date] = {}
    for t in result.tasks:
        phase = t.task.phase
        if phase is None:
            continue
        if phase not in ends or t.end_at > ends[phase]:
            ends[phase] = t.end_at
    return [PhaseMilestone(phase=p, date=d, label=f"End of phase {p}") for p, d in ends.items()]


def summarize_schedule(result: ScheduleResult, today: Optional[date] = None) -> ScheduleStatistics:
    """Plan-level numbers for a status banner.

    A task is overdue when it ends before `today` and is not completed. Without
    `today` nothing is counted as overdue.
    """
    if not result.tasks:
        return ScheduleStatistics(
            total_tasks=0,
            total_duration_days=0,
            start_date=result.project_start,
            end_date=result.project_start,
            status_counts={},
            overdue=0,
        )

    start = min(t.start_at for t in result.tasks)
    end = max(t.end_at for t in result.tasks)
    counts = Counter(t.task.status for t in result.tasks)
    overdue = 0
    if today is not None:
        overdue = sum(1 for t in result.tasks if t.end_at < today and t.task.status != "completed")

    return ScheduleStatistics(
        total_tasks=len(result.tasks),
        total_duration_days=(end - start).days,
        start_date=start,
        end_date=end,
        status_counts={k: int(v) for k, v in sorted(counts.items())},
        overdue=overdue,
    )
