"""Data models for task records coming from the goal API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

PENDING = "pending"
COMPLETED = "completed"
POSTPONED = "postponed"

# Postponed tasks do not block a day.
DONE_STATES = frozenset({COMPLETED, POSTPONED})
_KNOWN_STATES = frozenset({PENDING, COMPLETED, POSTPONED})


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_status(data: dict[str, Any]) -> str:
    status = _as_text(data.get("status", "")).strip().lower()
    if status in _KNOWN_STATES:
        if status == PENDING and data.get("completed") is True:
            return COMPLETED
        return status
    if data.get("completed") is True:
        return COMPLETED
    return PENDING


def _as_week_hint(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class TaskRecord:
    id: str
    title: str
    status: str = PENDING  # "pending" | "completed" | "postponed"
    raw_day: Any = None  # int, numeric string, weekday token or None
    description: str = ""
    scheduled_date: str = ""
    goal_title: str = ""
    goal_id: str = ""
    week_offset_hint: int | None = None

    @property
    def is_done(self) -> bool:
        return self.status in DONE_STATES

    @classmethod
    def from_api(cls, data: dict, goal: dict | None = None) -> TaskRecord:
        goal = goal or {}
        return cls(
            id=_as_text(data.get("_id", data.get("id", ""))),
            title=_as_text(data.get("name", data.get("title", ""))),
            status=_as_status(data),
            raw_day=data.get("day", data.get("journeyDay")),
            description=_as_text(data.get("description", "")),
            scheduled_date=_as_text(data.get("scheduledDate", data.get("scheduled_date", ""))),
            goal_title=_as_text(data.get("goalTitle", goal.get("title", ""))),
            goal_id=_as_text(data.get("goalId", goal.get("_id", goal.get("id", "")))),
            week_offset_hint=_as_week_hint(data.get("weekOffset", goal.get("weekOffset"))),
        )


@dataclass(frozen=True)
class ResolvedTask:
    """A task pinned to an absolute journey day."""

    task: TaskRecord
    journey_day: int

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def is_done(self) -> bool:
        return self.task.is_done


def tasks_from_goals(payload: Any) -> list[TaskRecord]:
    """Flatten a goal list (each with nested ``tasks``) into task records.

    A bare list of task dicts is accepted as well, as is a ``{"data": [...]}``
    envelope.
    """
    if isinstance(payload, dict):
        payload = payload.get("data", payload.get("goals", []))
    if not isinstance(payload, list):
        return []

    tasks: list[TaskRecord] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        nested = item.get("tasks")
        if isinstance(nested, list):
            for raw in nested:
                if isinstance(raw, dict):
                    tasks.append(TaskRecord.from_api(raw, goal=item))
        else:
            tasks.append(TaskRecord.from_api(item))
    return tasks
