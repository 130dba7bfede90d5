"""Map heterogeneous task records onto absolute journey days."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from goals.models import ResolvedTask, TaskRecord

logger = logging.getLogger(__name__)

_WEEKDAYS = {
    "mon": 1, "monday": 1,
    "tue": 2, "tues": 2, "tuesday": 2,
    "wed": 3, "wednesday": 3,
    "thu": 4, "thur": 4, "thurs": 4, "thursday": 4,
    "fri": 5, "friday": 5,
    "sat": 6, "saturday": 6,
    "sun": 7, "sunday": 7,
}

_DAY_PATTERN = re.compile(r"day\s*(\d+)", re.IGNORECASE)
_WEEK_PATTERN = re.compile(r"week\s*(\d+)", re.IGNORECASE)
_SECONDS_PER_DAY = 86400


def parse_iso(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _days_between(start: datetime, end: datetime) -> int:
    return math.floor((end - start).total_seconds() / _SECONDS_PER_DAY)


def weekday_index(token: str) -> int | None:
    """Mon=1 .. Sun=7, or None for anything that isn't a weekday."""
    return _WEEKDAYS.get(token.strip().lower())


def week_offset(task: TaskRecord, program_start: Any = None) -> int:
    """0-based week a weekday-tagged task belongs to."""
    if task.week_offset_hint is not None:
        return max(0, task.week_offset_hint)

    match = _WEEK_PATTERN.search(task.goal_title or "")
    if match:
        return max(0, int(match.group(1)) - 1)

    start = parse_iso(program_start)
    scheduled = parse_iso(task.scheduled_date)
    if start and scheduled:
        return _days_between(start, scheduled) // 7

    return 0


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 1 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value >= 1 else None
    if isinstance(value, str) and value.strip().isdecimal():
        parsed = int(value.strip())
        return parsed if parsed >= 1 else None
    return None


def resolve_day(task: TaskRecord, program_start: Any = None) -> int:
    """Resolve the journey day (>= 1) a task belongs to. Never raises."""
    raw = task.raw_day

    day = _positive_int(raw)
    if day is not None:
        return day

    if isinstance(raw, str):
        index = weekday_index(raw)
        if index is not None:
            return max(1, week_offset(task, program_start) * 7 + index)

    for text in (task.title, task.description):
        match = _DAY_PATTERN.search(text or "")
        if match and int(match.group(1)) >= 1:
            return int(match.group(1))

    start = parse_iso(program_start)
    scheduled = parse_iso(task.scheduled_date)
    if start and scheduled:
        return max(1, _days_between(start, scheduled) + 1)

    logger.warning(
        "Could not resolve journey day for task %r (day=%r) - defaulting to day 1",
        task.id or task.title,
        raw,
    )
    return 1


def resolve_tasks(tasks: Iterable[TaskRecord], program_start: Any = None) -> list[ResolvedTask]:
    resolved = [ResolvedTask(task=t, journey_day=resolve_day(t, program_start)) for t in tasks]
    logger.debug("Resolved %d tasks onto journey days", len(resolved))
    return resolved
