from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional


Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class PlanError(Exception):
    """Base error envelope. Prefer returning/printing these rather than raising raw exceptions."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    @property
    def severity(self) -> Severity:
        return "error"

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<plan>"
        return f"{loc}: {self.code}: {self.message}"


class PlanLoadError(PlanError):
    pass


class PlanValidationError(PlanError):
    pass


class ScheduleDiagnostic(PlanError):
    """Non-fatal finding returned next to a result. Never raised by the core."""

    @property
    def severity(self) -> Severity:
        return "warning"


class EditError(PlanValidationError):
    """A dependency edit was refused. Nothing was changed."""


class SelfReferenceError(EditError):
    pass


class UnknownTaskError(EditError):
    pass


class DependencyCycleError(EditError):
    pass


class InvalidWindowError(EditError):
    pass
