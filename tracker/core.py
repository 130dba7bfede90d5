"""Core orchestrator - one sync pass per page/session load.

Each pass: load -> resolve -> compute -> validate -> commit -> audit.
The recomputed state is authoritative; the JSON write is the commit point.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from goals.client import GoalsClient
from goals.models import ResolvedTask, TaskRecord
from journey import (
    ClassifierSettings,
    JourneyContext,
    JourneyProgram,
    Progression,
    ValidationResult,
    compute_progression,
    program_from_config,
    resolve_tasks,
    validate,
)

from .config import load_config
from .memory import HistoryDB, JourneyMeta, ProgressionState, StateManager, StoreError

logger = logging.getLogger(__name__)


def _new_journey_id() -> str:
    return uuid.uuid4().hex


@dataclass
class JourneyInstance:
    """One journey: its metadata, its state and the tasks behind that state."""

    meta: JourneyMeta
    state: ProgressionState
    tasks: list[ResolvedTask] = field(default_factory=list)

    @property
    def journey_id(self) -> str:
        return self.meta.journey_id


@dataclass
class ReconcileResult:
    instance: JourneyInstance
    progression: Progression
    validation: ValidationResult
    persisted: bool = True
    superseded: bool = False

    @property
    def state(self) -> ProgressionState:
        return self.instance.state


class JourneyService:
    """Keeps one user's journey state consistent with their tasks."""

    def __init__(
        self,
        config: dict | None = None,
        data_dir: str | Path | None = None,
    ):
        self._cfg = config if config is not None else load_config()

        root = Path(__file__).resolve().parent.parent
        storage = self._cfg.get("storage", {}) or {}
        base = Path(data_dir or storage.get("data_dir", "data"))
        if not base.is_absolute():
            base = root / base

        self._store = StateManager(base)
        self._db_path = base / storage.get("history_db", "history.db")
        self._program = program_from_config(self._cfg)
        self._settings = ClassifierSettings.from_config(self._cfg)

        # Last state known to be on disk, and a state still waiting to be written.
        self._committed: ProgressionState | None = None
        self._pending: ProgressionState | None = None
        self._meta: JourneyMeta | None = None
        self._instance: JourneyInstance | None = None

    @property
    def program(self) -> JourneyProgram:
        return self._program

    @property
    def instance(self) -> JourneyInstance | None:
        return self._instance

    @property
    def has_pending_write(self) -> bool:
        return self._pending is not None

    # ── Persistence ─────────────────────────────────────────────

    def _commit(self, state: ProgressionState) -> bool:
        try:
            self._store.save_progress(state)
        except StoreError as e:
            logger.error("Progress write failed, will retry: %s", e)
            self._pending = state
            return False
        self._committed = state
        self._pending = None
        return True

    def flush_pending(self) -> bool:
        """Retry a write that failed earlier. True when nothing is left pending."""
        if self._pending is None:
            return True
        return self._commit(self._pending)

    def _load_progress(self) -> ProgressionState | None:
        try:
            state = self._store.load_progress()
        except StoreError as e:
            if self._committed is None:
                raise
            logger.warning("Progress read failed, using last known good state: %s", e)
            return self._committed
        self._committed = state
        return state

    def _load_meta(self) -> JourneyMeta:
        try:
            meta = self._store.load_journey()
        except StoreError as e:
            if self._meta is None:
                raise
            logger.warning("Journey read failed, using cached metadata: %s", e)
            return self._meta
        self._meta = meta or JourneyMeta()
        return self._meta

    def _save_meta(self, meta: JourneyMeta) -> None:
        self._meta = meta
        try:
            self._store.save_journey(meta)
        except StoreError as e:
            logger.error("Journey metadata write failed: %s", e)

    async def _audit(
        self,
        journey_id: str,
        validation: ValidationResult,
        previous: ProgressionState | None,
        persisted: bool,
        events: list[tuple[str, str, dict]],
    ) -> None:
        try:
            async with HistoryDB(self._db_path) as db:
                for repair in validation.repairs:
                    await db.log_repair(
                        journey_id, repair.check, repair.before, repair.after, repair.reason
                    )
                if persisted and (previous is None or previous.key() != validation.state.key()):
                    await db.log_snapshot(journey_id, validation.state)
                for event_type, description, metadata in events:
                    await db.log_event(journey_id, event_type, description, metadata)
        except (sqlite3.Error, OSError) as e:
            logger.warning("History write failed: %s", e)

    # ── Operations ──────────────────────────────────────────────

    async def start_journey(
        self,
        goal_ids: list[str] | tuple[str, ...] = (),
        now: datetime | None = None,
    ) -> JourneyInstance:
        """Create a fresh journey right after its plan was generated."""
        stamp = (now or datetime.now(timezone.utc)).isoformat()
        meta = JourneyMeta(
            journey_id=_new_journey_id(),
            journey_start=stamp,
            plan_generated_at=stamp,
            goal_ids=list(goal_ids),
            fresh=True,
        )
        state = ProgressionState.fresh(stamp)

        self._store.save_journey(meta)
        self._meta = meta
        persisted = self._commit(state)

        self._instance = JourneyInstance(meta=meta, state=state)
        events = [("journey_started", "New journey created", {"goal_ids": list(goal_ids)})]
        if not persisted:
            events.append(("store_failure", "Initial state not persisted", {}))
        validation = ValidationResult(state=state, new_journey=True)
        await self._audit(meta.journey_id, validation, None, persisted, events)
        logger.info("Started journey %s", meta.journey_id)
        return self._instance

    async def reconcile(
        self,
        tasks: list[TaskRecord],
        now: datetime | None = None,
        interaction_count: int | None = None,
    ) -> ReconcileResult:
        """Recompute and repair the journey state from a task snapshot."""
        now_dt = now or datetime.now(timezone.utc)
        stamp = now_dt.isoformat()
        events: list[tuple[str, str, dict]] = []

        self.flush_pending()
        meta = replace(self._load_meta())
        stored = self._load_progress()
        if interaction_count is not None:
            meta.interaction_count = interaction_count

        resolved = resolve_tasks(tasks, meta.journey_start or None)
        progression = compute_progression(resolved, self._program)

        # Streak and xp never move backwards outside of an explicit reset.
        base = stored or ProgressionState.fresh(stamp)
        candidate = ProgressionState(
            current_day=progression.current_day,
            streak=max(base.streak, progression.streak),
            xp=max(base.xp, progression.xp),
            last_updated=base.last_updated,
        )
        if candidate.key() != base.key():
            candidate = replace(candidate, last_updated=stamp)

        goal_ids = list(dict.fromkeys(meta.goal_ids + [t.goal_id for t in tasks if t.goal_id]))
        context = JourneyContext(
            task_ids=[t.id for t in tasks if t.id],
            goal_ids=goal_ids,
            has_saved_state=stored is not None,
            fresh=meta.fresh,
            journey_start=meta.journey_start or None,
            plan_generated_at=meta.plan_generated_at or None,
            interaction_count=meta.interaction_count,
            now=now_dt,
        )
        validation = validate(
            candidate, resolved, self._program, context, settings=self._settings, now=now_dt
        )

        superseded = False
        if validation.new_journey:
            meta.fresh = False
            if stored is not None and stored.key() != (1, 0, 0):
                superseded = True
                previous_id = meta.journey_id
                meta.journey_id = _new_journey_id()
                meta.journey_start = stamp
                events.append((
                    "journey_reset",
                    f"Journey superseded ({validation.signal})",
                    {"previous_journey_id": previous_id, "previous_state": stored.to_dict()},
                ))
            if not meta.journey_id:
                meta.journey_id = _new_journey_id()
            if not meta.journey_start:
                meta.journey_start = stamp
        if meta != self._meta:
            self._save_meta(meta)

        state = validation.state
        persisted = True
        if stored is None or state != stored:
            persisted = self._commit(state)
        if not persisted:
            events.append(("store_failure", "Progress not persisted, retry pending", state.to_dict()))
            # Never show progress that isn't durably committed.
            state = self._committed or ProgressionState.fresh(stamp)

        self._instance = JourneyInstance(meta=meta, state=state, tasks=resolved)
        await self._audit(meta.journey_id, validation, stored, persisted, events)

        logger.info(
            "Journey %s: day=%d streak=%d xp=%d (%d repairs)",
            meta.journey_id,
            state.current_day,
            state.streak,
            state.xp,
            len(validation.repairs),
        )
        return ReconcileResult(
            instance=self._instance,
            progression=progression,
            validation=validation,
            persisted=persisted,
            superseded=superseded,
        )

    async def sync_from_api(
        self,
        client: GoalsClient,
        now: datetime | None = None,
        interaction_count: int | None = None,
    ) -> ReconcileResult:
        tasks = await client.fetch_tasks()
        return await self.reconcile(tasks, now=now, interaction_count=interaction_count)

    async def recent_history(self, limit: int = 20) -> dict[str, Any]:
        async with HistoryDB(self._db_path) as db:
            return {
                "repairs": await db.get_recent_repairs(limit),
                "events": await db.get_recent_events(limit),
                "snapshots": await db.get_recent_snapshots(limit),
            }
