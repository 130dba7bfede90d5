"""Static structure of the 21-day program: stages, work days, reflection days."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    id: int
    work_days: tuple[int, ...]
    reflection_day: int | None = None
    milestone: bool = False

    @property
    def days(self) -> tuple[int, ...]:
        if self.reflection_day is None:
            return self.work_days
        return self.work_days + (self.reflection_day,)

    @property
    def last_work_day(self) -> int:
        return max(self.work_days)

    def contains(self, day: int) -> bool:
        return day in self.work_days or (
            self.reflection_day is not None and day == self.reflection_day
        )


@dataclass(frozen=True)
class JourneyProgram:
    total_days: int
    stages: tuple[Stage, ...]

    @property
    def first_stage(self) -> Stage:
        return self.stages[0]

    @property
    def milestone_stages(self) -> tuple[Stage, ...]:
        return tuple(stage for stage in self.stages if stage.milestone)


DEFAULT_PROGRAM = JourneyProgram(
    total_days=21,
    stages=(
        Stage(1, (1, 2, 3), reflection_day=4),
        Stage(2, (5, 6, 7), reflection_day=8, milestone=True),  # week 1
        Stage(3, (9, 10, 11), reflection_day=12),
        Stage(4, (13, 14, 15), reflection_day=16, milestone=True),  # week 2
        Stage(5, (17, 18, 19), reflection_day=20),
        Stage(6, (21,), reflection_day=None, milestone=True),  # final
    ),
)


def covering_stage(day: int, program: JourneyProgram = DEFAULT_PROGRAM) -> Stage | None:
    """Return the stage whose work or reflection days include ``day``."""
    for stage in program.stages:
        if stage.contains(day):
            return stage
    return None


def stage_for_day(day: int, program: JourneyProgram = DEFAULT_PROGRAM) -> Stage:
    """Stage for a (pre-clamped) day; falls back to the first stage."""
    return covering_stage(day, program) or program.first_stage


def stage_boundaries(stage: Stage) -> tuple[int, int]:
    """First work day and last day (reflection day if any) of a stage."""
    end = stage.reflection_day if stage.reflection_day is not None else max(stage.work_days)
    return min(stage.work_days), end


def is_reflection_day(day: int, program: JourneyProgram = DEFAULT_PROGRAM) -> bool:
    return any(stage.reflection_day == day for stage in program.stages)


def day_in_stage(stage: Stage, day: int) -> int:
    """1-based position of ``day`` among the stage's work days, 0 if absent."""
    try:
        return stage.work_days.index(day) + 1
    except ValueError:
        return 0


def stage_progress(stage: Stage, current_day: int) -> dict[str, int]:
    completed = sum(1 for day in stage.work_days if day < current_day)
    total = len(stage.work_days)
    return {
        "completed": completed,
        "total": total,
        "percentage": round(completed / total * 100) if total else 0,
    }


def _stage_from_config(index: int, raw: dict[str, Any]) -> Stage:
    work_days = tuple(int(day) for day in raw["work_days"])
    if not work_days:
        raise ValueError(f"stage {index} has no work days")
    reflection = raw.get("reflection_day")
    return Stage(
        id=int(raw.get("id", index)),
        work_days=work_days,
        reflection_day=int(reflection) if reflection is not None else None,
        milestone=bool(raw.get("milestone", False)),
    )


def program_from_config(cfg: dict[str, Any] | None) -> JourneyProgram:
    """Build the program from the ``journey`` config section.

    Missing or malformed stage definitions fall back to the default program.
    """
    journey_cfg = (cfg or {}).get("journey", {}) or {}
    raw_stages = journey_cfg.get("stages")
    if not raw_stages:
        return DEFAULT_PROGRAM

    try:
        stages = tuple(
            _stage_from_config(i, raw) for i, raw in enumerate(raw_stages, start=1)
        )
        total_days = int(journey_cfg.get("total_days", DEFAULT_PROGRAM.total_days))
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Invalid journey stage config, using defaults: %s", e)
        return DEFAULT_PROGRAM

    if total_days < 1:
        logger.warning("Invalid journey total_days=%d, using defaults", total_days)
        return DEFAULT_PROGRAM
    return JourneyProgram(total_days=total_days, stages=stages)
