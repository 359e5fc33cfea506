from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Literal, Optional, Union

from treatment_planner.core.errors import PlanError


TaskStatus = Literal["planned", "in-progress", "completed"]
DateSource = Literal["computed", "override"]


@dataclass(frozen=True)
class Duration:
    value: Union[int, float]
    unit: str = "day"


@dataclass(frozen=True)
class DependencyRef:
    """The successor starts after `predecessor_id` ends, plus `offset`."""

    predecessor_id: str
    offset: Optional[Duration] = None
    active: bool = True


@dataclass(frozen=True)
class Task:
    id: str
    name: str
    duration: Optional[Duration] = None
    dependencies: tuple[DependencyRef, ...] = ()
    phase: Optional[str] = None
    status: TaskStatus = "planned"

    def active_dependencies(self) -> list[DependencyRef]:
        return [d for d in self.dependencies if d.active]


@dataclass(frozen=True)
class DateWindow:
    start_at: date
    end_at: date

    @property
    def is_valid(self) -> bool:
        return self.start_at < self.end_at


@dataclass(frozen=True)
class Plan:
    tasks: tuple[Task, ...]
    project_start: Optional[date] = None
    overrides: dict[str, DateWindow] = field(default_factory=dict)
    schema_version: str = "0.1.0"
    file: Optional[str] = None
    diagnostics: list[PlanError] = field(default_factory=list)


@dataclass(frozen=True)
class ScheduledTask:
    task: Task
    start_at: date
    end_at: date
    duration_days: int
    source: DateSource = "computed"
    best_effort: bool = False

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def window(self) -> DateWindow:
        return DateWindow(start_at=self.start_at, end_at=self.end_at)


@dataclass(frozen=True)
class ScheduleResult:
    project_start: date
    tasks: list[ScheduledTask]
    diagnostics: list[PlanError] = field(default_factory=list)

    def windows(self) -> dict[str, DateWindow]:
        return {t.id: t.window for t in self.tasks}

    def as_overrides(self) -> dict[str, DateWindow]:
        """Every resolved window, keyed by task id. Feeding this back reproduces the schedule."""
        return self.windows()

    def get(self, task_id: str) -> Optional[ScheduledTask]:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None


@dataclass(frozen=True)
class EditResult:
    tasks: tuple[Task, ...]
    changed: bool
    recompute: tuple[str, ...] = ()
    diagnostics: list[PlanError] = field(default_factory=list)
