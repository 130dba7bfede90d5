"""State persistence and history tracking for journeys.

State = current progression + journey metadata (JSON files, loaded each sync)
History = append-only log of repairs, snapshots and events (SQLite database)
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when persisted state cannot be read or written."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_int(value: Any, default: int | None) -> int | None:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


# ── Progression State (JSON) ────────────────────────────────────


@dataclass(frozen=True)
class ProgressionState:
    """Canonical position of a user inside the 21-day program."""

    current_day: int = 1
    streak: int = 0
    xp: int = 0
    last_updated: str = ""  # ISO format

    def key(self) -> tuple[int, int, int]:
        return (self.current_day, self.streak, self.xp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentDay": self.current_day,
            "streak": self.streak,
            "xp": self.xp,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ProgressionState:
        # Older payloads used currentStreak / userXP.
        return cls(
            current_day=_as_int(data.get("currentDay", data.get("current_day")), 1),
            streak=_as_int(data.get("streak", data.get("currentStreak")), 0),
            xp=_as_int(data.get("xp", data.get("userXP")), 0),
            last_updated=str(data.get("lastUpdated", data.get("last_updated", "")) or ""),
        )

    @classmethod
    def fresh(cls, now: str | None = None) -> ProgressionState:
        return cls(current_day=1, streak=0, xp=0, last_updated=now or _now_iso())


@dataclass
class JourneyMeta:
    """What is known about how and when the current journey was created."""

    journey_id: str = ""
    journey_start: str = ""  # ISO format
    plan_generated_at: str = ""
    goal_ids: list[str] = field(default_factory=list)
    fresh: bool = False  # one-shot flag from plan generation
    interaction_count: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> JourneyMeta:
        goal_ids = data.get("goal_ids")
        count = data.get("interaction_count")
        return cls(
            journey_id=str(data.get("journey_id") or ""),
            journey_start=str(data.get("journey_start") or ""),
            plan_generated_at=str(data.get("plan_generated_at") or ""),
            goal_ids=[str(g) for g in goal_ids if g] if isinstance(goal_ids, list) else [],
            fresh=data.get("fresh") is True,
            interaction_count=None if count is None else _as_int(count, None),
        )


class StateManager:
    """Load / save progression state and journey metadata as JSON files."""

    PROGRESS_FILE = "progress.json"
    JOURNEY_FILE = "journey.json"

    def __init__(self, data_dir: str | Path):
        self._dir = Path(data_dir)

    @property
    def progress_path(self) -> Path:
        return self._dir / self.PROGRESS_FILE

    @property
    def journey_path(self) -> Path:
        return self._dir / self.JOURNEY_FILE

    def _read(self, path: Path) -> dict | None:
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreError(f"Cannot read {path}: {e}") from e
        if not isinstance(raw, dict):
            raise StoreError(f"Unexpected content in {path}")
        return raw

    def _write(self, path: Path, payload: dict) -> None:
        # Replace the file in one step so a state is never half-written.
        tmp = path.with_name(path.name + ".tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StoreError(f"Cannot write {path}: {e}") from e

    def load_progress(self) -> ProgressionState | None:
        raw = self._read(self.progress_path)
        if raw is None:
            return None
        state = ProgressionState.from_dict(raw)
        logger.debug("Loaded progress: day=%d streak=%d xp=%d", *state.key())
        return state

    def save_progress(self, state: ProgressionState) -> None:
        self._write(self.progress_path, state.to_dict())
        logger.debug("Saved progress to %s", self.progress_path)

    def load_journey(self) -> JourneyMeta | None:
        raw = self._read(self.journey_path)
        if raw is None:
            return None
        return JourneyMeta.from_dict(raw)

    def save_journey(self, meta: JourneyMeta) -> None:
        self._write(self.journey_path, asdict(meta))
        logger.debug("Saved journey meta to %s", self.journey_path)


# ── History Database (SQLite) ───────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS repairs (
    id TEXT PRIMARY KEY,
    journey_id TEXT,
    check_name TEXT,
    before TEXT,              -- JSON blob
    after TEXT,               -- JSON blob
    reason TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS progress_snapshots (
    id TEXT PRIMARY KEY,
    journey_id TEXT,
    current_day INTEGER,
    streak INTEGER,
    xp INTEGER,
    last_updated TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS journey_events (
    id TEXT PRIMARY KEY,
    journey_id TEXT,
    event_type TEXT,          -- "journey_started" | "journey_reset" | "store_failure" | ...
    description TEXT,
    metadata TEXT,
    created_at TEXT
);
"""


class HistoryDB:
    """Append-only audit trail of every progression change."""

    def __init__(self, db_path: str | Path):
        self._path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        logger.debug("History DB ready at %s", self._path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()

    async def __aenter__(self) -> HistoryDB:
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ── Logging ─────────────────────────────────────────────────

    async def log_repair(
        self,
        journey_id: str,
        check_name: str,
        before: dict,
        after: dict,
        reason: str = "",
    ) -> str:
        row_id = str(uuid.uuid4())
        await self._db.execute(
            "INSERT INTO repairs (id, journey_id, check_name, before, after, reason, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (row_id, journey_id, check_name, json.dumps(before), json.dumps(after), reason, _now_iso()),
        )
        await self._db.commit()
        return row_id

    async def log_snapshot(self, journey_id: str, state: ProgressionState) -> str:
        row_id = str(uuid.uuid4())
        await self._db.execute(
            "INSERT INTO progress_snapshots (id, journey_id, current_day, streak, xp, last_updated, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (row_id, journey_id, state.current_day, state.streak, state.xp, state.last_updated, _now_iso()),
        )
        await self._db.commit()
        return row_id

    async def log_event(
        self,
        journey_id: str,
        event_type: str,
        description: str = "",
        metadata: dict | None = None,
    ) -> str:
        row_id = str(uuid.uuid4())
        await self._db.execute(
            "INSERT INTO journey_events (id, journey_id, event_type, description, metadata, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (row_id, journey_id, event_type, description, json.dumps(metadata or {}), _now_iso()),
        )
        await self._db.commit()
        return row_id

    # ── Queries ─────────────────────────────────────────────────

    async def _recent(self, table: str, limit: int, journey_id: str = "") -> list[dict]:
        query = f"SELECT * FROM {table}"
        params: list[Any] = []
        if journey_id:
            query += " WHERE journey_id = ?"
            params.append(journey_id)
        # rowid breaks ties between rows written within the same timestamp.
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        cursor = await self._db.execute(query, tuple(params))
        cols = [d[0] for d in cursor.description]
        rows = await cursor.fetchall()
        return [dict(zip(cols, row)) for row in rows]

    async def get_recent_repairs(self, limit: int = 20, journey_id: str = "") -> list[dict]:
        rows = await self._recent("repairs", limit, journey_id)
        for row in rows:
            row["before"] = json.loads(row["before"] or "{}")
            row["after"] = json.loads(row["after"] or "{}")
        return rows

    async def get_recent_snapshots(self, limit: int = 20, journey_id: str = "") -> list[dict]:
        return await self._recent("progress_snapshots", limit, journey_id)

    async def get_recent_events(self, limit: int = 20, journey_id: str = "") -> list[dict]:
        rows = await self._recent("journey_events", limit, journey_id)
        for row in rows:
            row["metadata"] = json.loads(row["metadata"] or "{}")
        return rows

    async def get_repair_count(self) -> int:
        cursor = await self._db.execute("SELECT COUNT(*) FROM repairs")
        row = await cursor.fetchone()
        return row[0] if row else 0
