"""Heuristic detection of a brand-new journey that must restart at day 1.

Journey, task and profile data can come from several uncoordinated creation
paths (plan generation, demo seeding, a stale local cache), so no single
signal is trusted on its own. Signals are checked in priority order and the
first one that fires wins. When nothing fires the journey is treated as
existing, which keeps real progress from being discarded.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .resolver import parse_iso

logger = logging.getLogger(__name__)

SENTINEL_IDS = frozenset({"demo-goal-1", "fallback-goal-1"})
SENTINEL_PREFIXES = ("demo-", "fallback-")

RECENT_MINUTES = 60
NEW_USER_MAX_INTERACTIONS = 2

# Signal names, in evaluation order.
NO_DATA = "no_data"
FRESH_FLAG = "fresh_flag"
SENTINEL = "sentinel_ids"
NO_START = "no_start"
RECENT_PLAN = "recent_plan"
RECENT_START = "recent_start"
NEW_USER = "new_user"
NO_SAVED_STATE = "no_saved_state"

SIGNAL_ORDER = (
    NO_DATA,
    FRESH_FLAG,
    SENTINEL,
    NO_START,
    RECENT_PLAN,
    RECENT_START,
    NEW_USER,
    NO_SAVED_STATE,
)


@dataclass
class JourneyContext:
    """Everything the classifier may look at for one journey load."""

    task_ids: list[str] = field(default_factory=list)
    goal_ids: list[str] = field(default_factory=list)
    has_saved_state: bool = False
    fresh: bool = False  # one-shot flag set by plan generation
    journey_start: Any = None  # ISO string or datetime
    plan_generated_at: Any = None
    interaction_count: int | None = None  # None = unknown
    now: datetime | None = None

    @property
    def has_any_data(self) -> bool:
        return bool(self.task_ids or self.goal_ids or self.has_saved_state)


@dataclass(frozen=True)
class ClassifierSettings:
    recent_minutes: float = RECENT_MINUTES
    new_user_max_interactions: int = NEW_USER_MAX_INTERACTIONS
    sentinel_ids: frozenset[str] = SENTINEL_IDS
    sentinel_prefixes: tuple[str, ...] = SENTINEL_PREFIXES

    @classmethod
    def from_config(cls, cfg: dict[str, Any] | None) -> ClassifierSettings:
        raw = ((cfg or {}).get("journey", {}) or {}).get("classifier", {}) or {}
        return cls(
            recent_minutes=float(raw.get("recent_minutes", RECENT_MINUTES)),
            new_user_max_interactions=int(
                raw.get("new_user_max_interactions", NEW_USER_MAX_INTERACTIONS)
            ),
            sentinel_ids=frozenset(raw.get("sentinel_ids", SENTINEL_IDS)),
            sentinel_prefixes=tuple(raw.get("sentinel_prefixes", SENTINEL_PREFIXES)),
        )


DEFAULT_SETTINGS = ClassifierSettings()


def has_sentinel_ids(ids: Iterable[str], settings: ClassifierSettings = DEFAULT_SETTINGS) -> bool:
    for raw in ids:
        value = str(raw)
        if value in settings.sentinel_ids or value.startswith(settings.sentinel_prefixes):
            return True
    return False


def _age_minutes(ts: datetime, now: datetime) -> float:
    return (now - ts).total_seconds() / 60


def classify_journey(
    context: JourneyContext,
    settings: ClassifierSettings = DEFAULT_SETTINGS,
) -> str | None:
    """Return the name of the first signal that marks the journey as new."""
    now = parse_iso(context.now) or datetime.now(timezone.utc)

    if not context.has_any_data:
        return NO_DATA

    if context.fresh:
        return FRESH_FLAG

    if has_sentinel_ids(context.task_ids, settings) or has_sentinel_ids(context.goal_ids, settings):
        return SENTINEL

    start = parse_iso(context.journey_start)
    if start is None:
        if context.journey_start:
            logger.warning("Unparseable journey start %r", context.journey_start)
        return NO_START

    plan_at = parse_iso(context.plan_generated_at)
    if plan_at is not None and _age_minutes(plan_at, now) < settings.recent_minutes:
        return RECENT_PLAN

    if _age_minutes(start, now) < settings.recent_minutes:
        return RECENT_START

    if (
        context.interaction_count is not None
        and context.interaction_count <= settings.new_user_max_interactions
    ):
        return NEW_USER

    if not context.has_saved_state:
        return NO_SAVED_STATE

    return None


def is_new_journey(
    context: JourneyContext,
    settings: ClassifierSettings = DEFAULT_SETTINGS,
) -> bool:
    signal = classify_journey(context, settings)
    if signal:
        logger.info("New journey detected (signal=%s)", signal)
        return True
    logger.debug("Existing journey detected")
    return False
