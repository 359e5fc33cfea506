from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Optional

import yaml

from treatment_planner.core.validate.validate_plan import parse_date


CONFIG_ENV_VAR = "PLANNER_CONFIG"


class ScheduleConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ScheduleConfig:
    project_start: Optional[date] = None
    units: dict[str, int] = field(default_factory=dict)
    reject_cycles: bool = True


DEFAULT_CONFIG = ScheduleConfig()


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load scheduling settings from a YAML file.

    Format:
      project_start: 2025-01-01     # anchor when neither --start nor the plan sets one
      units: {quinzaine: 14}        # extra unit aliases, days per unit
      reject_cycles: true           # refuse dependency edits that close a cycle

    Returns only the keys present in the file, validated.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ScheduleConfigError("config file must be a mapping")

    out: dict[str, Any] = {}
    for k, v in raw.items():
        if k == "project_start":
            start = parse_date(v)
            if start is None:
                raise ScheduleConfigError("project_start must be a date (YYYY-MM-DD)")
            out["project_start"] = start
        elif k == "units":
            if not isinstance(v, dict):
                raise ScheduleConfigError("units must be a mapping of unit name -> days")
            units: dict[str, int] = {}
            for name, days in v.items():
                if not isinstance(name, str) or not name.strip():
                    raise ScheduleConfigError("unit names must be non-empty strings")
                if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
                    raise ScheduleConfigError(f"unit '{name}' must map to a positive integer")
                units[name.strip().lower()] = days
            out["units"] = units
        elif k == "reject_cycles":
            if not isinstance(v, bool):
                raise ScheduleConfigError("reject_cycles must be true or false")
            out["reject_cycles"] = v
        else:
            raise ScheduleConfigError(f"unknown config key: {k}")
    return out


def merged_config(overrides: dict[str, Any] | None = None) -> ScheduleConfig:
    """Return DEFAULT_CONFIG with values from `overrides` replacing the defaults.

    Unit aliases are merged key by key.
    """
    if not overrides:
        return DEFAULT_CONFIG
    units = dict(DEFAULT_CONFIG.units)
    units.update(overrides.get("units") or {})
    return ScheduleConfig(
        project_start=overrides.get("project_start", DEFAULT_CONFIG.project_start),
        units=units,
        reject_cycles=overrides.get("reject_cycles", DEFAULT_CONFIG.reject_cycles),
    )


def load_and_merge(config_file: str | None) -> ScheduleConfig:
    if not config_file:
        return merged_config()
    return merged_config(load_config_file(config_file))
