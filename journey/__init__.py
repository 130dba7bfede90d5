"""Journey progression engine: stage map, day resolution, progress and repairs."""

from .classifier import ClassifierSettings, JourneyContext, classify_journey, is_new_journey
from .progression import (
    Progression,
    can_progress_to_next_day,
    compute_progression,
    group_tasks_by_day,
    journey_summary,
)
from .resolver import parse_iso, resolve_day, resolve_tasks
from .stages import (
    DEFAULT_PROGRAM,
    JourneyProgram,
    Stage,
    program_from_config,
    stage_boundaries,
    stage_for_day,
)
from .validator import RepairLog, ValidationResult, validate

__all__ = [
    "DEFAULT_PROGRAM",
    "ClassifierSettings",
    "JourneyContext",
    "JourneyProgram",
    "Progression",
    "RepairLog",
    "Stage",
    "ValidationResult",
    "can_progress_to_next_day",
    "classify_journey",
    "compute_progression",
    "group_tasks_by_day",
    "is_new_journey",
    "journey_summary",
    "parse_iso",
    "program_from_config",
    "resolve_day",
    "resolve_tasks",
    "stage_boundaries",
    "stage_for_day",
    "validate",
]
