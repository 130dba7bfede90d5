"""Derive the canonical current day, streak and XP from resolved tasks."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from goals.models import ResolvedTask

from .stages import DEFAULT_PROGRAM, JourneyProgram

logger = logging.getLogger(__name__)

XP_PER_DAY = 10
XP_PER_MILESTONE_STAGE = 100
WEEK_ONE_BONUS = 50
WEEK_TWO_BONUS = 50
COMPLETION_BONUS = 100


@dataclass(frozen=True)
class Progression:
    current_day: int
    streak: int
    xp: int
    completed_days: int = 0


@dataclass(frozen=True)
class DayStatus:
    done: int
    total: int

    @property
    def rate(self) -> float:
        return self.done / self.total if self.total else 0.0

    @property
    def complete(self) -> bool:
        return self.total > 0 and self.done == self.total


@dataclass(frozen=True)
class ProgressCheck:
    can_progress: bool
    reason: str
    completed: int = 0
    total: int = 0


@dataclass(frozen=True)
class JourneySummary:
    total_tasks: int
    completed_tasks: int
    completed_days: int
    completion_percentage: int


def group_tasks_by_day(tasks: Iterable[ResolvedTask]) -> dict[int, list[ResolvedTask]]:
    grouped: dict[int, list[ResolvedTask]] = defaultdict(list)
    for task in tasks:
        grouped[task.journey_day].append(task)
    return dict(grouped)


def day_status(tasks: Iterable[ResolvedTask]) -> DayStatus:
    tasks = list(tasks)
    return DayStatus(done=sum(1 for t in tasks if t.is_done), total=len(tasks))


def first_incomplete_day(
    by_day: dict[int, list[ResolvedTask]], upto: int
) -> int | None:
    """First day in ``1..upto`` holding tasks that aren't all done."""
    # Only days holding tasks can block.
    for day in sorted(by_day):
        if day > upto:
            break
        tasks = by_day[day]
        if day >= 1 and tasks and not day_status(tasks).complete:
            return day
    return None


def milestone_xp(
    completed_days: int,
    reached_day: int,
    by_day: dict[int, list[ResolvedTask]],
    program: JourneyProgram = DEFAULT_PROGRAM,
) -> int:
    """Stage and week bonuses.

    ``reached_day`` is the day the completion scan stopped at (total_days + 1
    when it never met an incomplete day).
    """
    bonus = 0
    for stage in program.milestone_stages:
        has_tasks = any(by_day.get(day) for day in stage.work_days)
        if has_tasks and reached_day > stage.last_work_day:
            bonus += XP_PER_MILESTONE_STAGE

    if completed_days >= 7:
        bonus += WEEK_ONE_BONUS
    if completed_days >= 14:
        bonus += WEEK_TWO_BONUS
    if completed_days >= 21:
        bonus += COMPLETION_BONUS
    return bonus


def compute_progression(
    resolved: Iterable[ResolvedTask],
    program: JourneyProgram = DEFAULT_PROGRAM,
) -> Progression:
    """Scan days in order; the first day with unfinished tasks stops progress.

    Days without tasks neither block nor count toward the streak.
    """
    by_day = group_tasks_by_day(resolved)
    completed_days = 0
    consecutive_days = 0
    last_completed = 0
    stopped_at: int | None = None

    for day in range(1, program.total_days + 1):
        tasks = by_day.get(day)
        if not tasks:
            continue
        status = day_status(tasks)
        logger.debug("Day %d: %d/%d tasks done", day, status.done, status.total)
        if status.complete:
            completed_days += 1
            consecutive_days += 1
            last_completed = day
        else:
            stopped_at = day
            break

    if stopped_at is not None:
        current_day = stopped_at
    elif last_completed:
        current_day = last_completed + 1
    else:
        current_day = 1
    current_day = max(1, min(current_day, program.total_days))

    reached_day = stopped_at if stopped_at is not None else program.total_days + 1
    xp = completed_days * XP_PER_DAY + milestone_xp(completed_days, reached_day, by_day, program)

    progression = Progression(
        current_day=current_day,
        streak=consecutive_days,
        xp=xp,
        completed_days=completed_days,
    )
    logger.debug(
        "Progression: day=%d streak=%d xp=%d",
        progression.current_day,
        progression.streak,
        progression.xp,
    )
    return progression


def can_progress_to_next_day(resolved: Iterable[ResolvedTask], current_day: int) -> ProgressCheck:
    today = group_tasks_by_day(resolved).get(current_day, [])
    if not today:
        return ProgressCheck(can_progress=True, reason="No tasks planned for today")

    status = day_status(today)
    if status.complete:
        reason = "All tasks completed"
    else:
        reason = f"{status.total - status.done} tasks still pending"
    return ProgressCheck(
        can_progress=status.complete,
        reason=reason,
        completed=status.done,
        total=status.total,
    )


def journey_summary(
    resolved: Iterable[ResolvedTask],
    program: JourneyProgram = DEFAULT_PROGRAM,
) -> JourneySummary:
    resolved = list(resolved)
    by_day = group_tasks_by_day(resolved)
    completed_days = sum(
        1
        for day in range(1, program.total_days + 1)
        if by_day.get(day) and day_status(by_day[day]).complete
    )
    return JourneySummary(
        total_tasks=len(resolved),
        completed_tasks=sum(1 for t in resolved if t.is_done),
        completed_days=completed_days,
        completion_percentage=round(completed_days / program.total_days * 100),
    )
