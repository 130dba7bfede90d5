"""Ordered consistency checks that repair a candidate progression state."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from goals.models import ResolvedTask
from tracker.memory import ProgressionState

from .classifier import DEFAULT_SETTINGS, ClassifierSettings, JourneyContext, classify_journey
from .progression import day_status, first_incomplete_day, group_tasks_by_day
from .stages import DEFAULT_PROGRAM, JourneyProgram, covering_stage

logger = logging.getLogger(__name__)

CHECK_NEW_JOURNEY = "new_journey"
CHECK_DAY_ONE = "day_one"
CHECK_SEQUENTIAL = "sequential"
CHECK_BOUNDARY = "boundary"
CHECK_STAGE_ALIGNMENT = "stage_alignment"


@dataclass(frozen=True)
class RepairLog:
    check: str
    before: dict[str, Any]
    after: dict[str, Any]
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "check": self.check,
            "before": self.before,
            "after": self.after,
            "reason": self.reason,
        }


@dataclass
class ValidationResult:
    state: ProgressionState
    repairs: list[RepairLog] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    new_journey: bool = False
    signal: str | None = None

    @property
    def repaired(self) -> bool:
        return bool(self.repairs)


def _snapshot(state: ProgressionState) -> dict[str, int]:
    return {"currentDay": state.current_day, "streak": state.streak, "xp": state.xp}


def validate(
    state: ProgressionState,
    resolved: Iterable[ResolvedTask],
    program: JourneyProgram = DEFAULT_PROGRAM,
    context: JourneyContext | None = None,
    settings: ClassifierSettings = DEFAULT_SETTINGS,
    now: datetime | None = None,
) -> ValidationResult:
    """Run every check in order, each on the output of the previous one.

    Violations are repaired and recorded, never raised. Without a context the
    new-journey check is skipped.
    """
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    repairs: list[RepairLog] = []
    warnings: list[str] = []
    current = state

    def _repair(check: str, after: ProgressionState, reason: str) -> ProgressionState:
        after = replace(after, last_updated=stamp)
        repairs.append(RepairLog(check, _snapshot(current), _snapshot(after), reason))
        logger.info("Repair [%s]: %s", check, reason)
        return after

    if context is not None:
        signal = classify_journey(context, settings)
        if signal:
            fresh = ProgressionState(current_day=1, streak=0, xp=0, last_updated=current.last_updated)
            if current.key() != fresh.key():
                current = _repair(
                    CHECK_NEW_JOURNEY, fresh, f"New journey ({signal}) must start at day 1"
                )
            return ValidationResult(current, repairs, warnings, new_journey=True, signal=signal)

    by_day = group_tasks_by_day(resolved)

    day_one = by_day.get(1)
    if day_one and not day_status(day_one).complete and current.current_day > 1:
        current = _repair(
            CHECK_DAY_ONE,
            replace(current, current_day=1),
            f"Day 1 tasks incomplete but state was on day {current.current_day}",
        )

    blocked = first_incomplete_day(by_day, current.current_day - 1)
    if blocked is not None:
        current = _repair(
            CHECK_SEQUENTIAL,
            replace(current, current_day=blocked),
            f"Day {blocked} incomplete but state was on day {current.current_day}",
        )

    clamped_day = max(1, min(current.current_day, program.total_days))
    if clamped_day != current.current_day:
        current = _repair(
            CHECK_BOUNDARY,
            replace(current, current_day=clamped_day),
            f"Day {current.current_day} out of bounds [1, {program.total_days}]",
        )
    if current.streak < 0 or current.xp < 0:
        current = _repair(
            CHECK_BOUNDARY,
            replace(current, streak=max(0, current.streak), xp=max(0, current.xp)),
            "Negative streak or xp",
        )

    if covering_stage(current.current_day, program) is None:
        message = f"Day {current.current_day} is not covered by any stage"
        warnings.append(message)
        logger.warning("Stage alignment: %s", message)

    return ValidationResult(current, repairs, warnings)
