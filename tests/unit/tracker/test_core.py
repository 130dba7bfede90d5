"""Tests for the journey service: recompute, repair, commit, audit."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from goals.models import TaskRecord
from tracker.core import JourneyService
from tracker.memory import HistoryDB, JourneyMeta, ProgressionState, StateManager, StoreError

NOW = datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)
OLD = (NOW - timedelta(days=4)).isoformat()


def _tasks(*specs: tuple[int, str]) -> list[TaskRecord]:
    return [
        TaskRecord(id=f"t{i}", title="task", status=status, raw_day=day, goal_id="g1")
        for i, (day, status) in enumerate(specs)
    ]


def _seed(tmp_path: Path, state: ProgressionState | None = None, **meta) -> None:
    store = StateManager(tmp_path)
    values = dict(journey_id="j1", journey_start=OLD, plan_generated_at=OLD, goal_ids=["g1"])
    values.update(meta)
    store.save_journey(JourneyMeta(**values))
    if state is not None:
        store.save_progress(state)


def _service(tmp_path: Path) -> JourneyService:
    return JourneyService(config={}, data_dir=tmp_path)


def test_existing_journey_advances_from_tasks(tmp_path: Path):
    _seed(tmp_path, ProgressionState(current_day=1, last_updated=OLD))
    service = _service(tmp_path)
    tasks = _tasks((1, "completed"), (2, "completed"), (3, "pending"))

    result = asyncio.run(service.reconcile(tasks, now=NOW, interaction_count=12))

    assert result.state.key() == (3, 2, 20)
    assert result.state.last_updated == NOW.isoformat()
    assert result.persisted
    assert not result.validation.new_journey
    assert StateManager(tmp_path).load_progress() == result.state
    assert [t.journey_day for t in result.instance.tasks] == [1, 2, 3]


def test_reconcile_twice_is_a_noop(tmp_path: Path):
    _seed(tmp_path, ProgressionState(current_day=1, last_updated=OLD))
    service = _service(tmp_path)
    tasks = _tasks((1, "completed"), (2, "pending"))

    first = asyncio.run(service.reconcile(tasks, now=NOW, interaction_count=12))
    second = asyncio.run(service.reconcile(tasks, now=NOW + timedelta(hours=1), interaction_count=12))

    assert second.state == first.state
    assert second.validation.repairs == []

    async def _snapshots():
        async with HistoryDB(tmp_path / "history.db") as db:
            return await db.get_recent_snapshots()

    assert len(asyncio.run(_snapshots())) == 1


def test_drifted_counter_follows_tasks_but_keeps_earned_xp(tmp_path: Path):
    _seed(tmp_path, ProgressionState(current_day=9, streak=8, xp=300, last_updated=OLD))
    service = _service(tmp_path)
    tasks = _tasks((1, "completed"), (2, "pending"))

    result = asyncio.run(service.reconcile(tasks, now=NOW, interaction_count=12))

    # Computed day wins; streak and xp never go backwards outside a reset.
    assert result.state.key() == (2, 8, 300)


def test_no_tasks_and_no_state_is_a_new_journey(tmp_path: Path):
    service = _service(tmp_path)
    result = asyncio.run(service.reconcile([], now=NOW))

    assert result.validation.new_journey
    assert result.validation.signal == "no_data"
    assert result.state.key() == (1, 0, 0)
    meta = StateManager(tmp_path).load_journey()
    assert meta.journey_id
    assert meta.journey_start == NOW.isoformat()


def test_start_journey_then_fresh_flag_is_consumed(tmp_path: Path):
    service = _service(tmp_path)
    start = NOW - timedelta(hours=3)
    instance = asyncio.run(service.start_journey(goal_ids=["g1"], now=start))
    assert instance.state.key() == (1, 0, 0)
    assert StateManager(tmp_path).load_journey().fresh

    tasks = _tasks((1, "completed"))
    first = asyncio.run(service.reconcile(tasks, now=NOW, interaction_count=12))
    assert first.validation.signal == "fresh_flag"
    assert first.state.key() == (1, 0, 0)
    assert not first.superseded
    assert not StateManager(tmp_path).load_journey().fresh

    second = asyncio.run(service.reconcile(tasks, now=NOW, interaction_count=12))
    assert not second.validation.new_journey
    assert second.state.key() == (2, 1, 10)


def test_demo_data_supersedes_existing_journey(tmp_path: Path):
    _seed(tmp_path, ProgressionState(current_day=6, streak=5, xp=50, last_updated=OLD))
    service = _service(tmp_path)
    tasks = [TaskRecord(id="demo-task-1", title="Define Your Dream Vision", raw_day=1)]

    result = asyncio.run(service.reconcile(tasks, now=NOW, interaction_count=12))

    assert result.superseded
    assert result.state.key() == (1, 0, 0)
    assert result.instance.journey_id != "j1"

    async def _history():
        async with HistoryDB(tmp_path / "history.db") as db:
            return await db.get_recent_events(), await db.get_recent_repairs()

    events, repairs = asyncio.run(_history())
    assert events[0]["event_type"] == "journey_reset"
    assert events[0]["metadata"]["previous_journey_id"] == "j1"
    assert repairs[0]["check_name"] == "new_journey"


def test_store_failure_keeps_last_committed_view_and_retries(tmp_path: Path, monkeypatch):
    committed = ProgressionState(current_day=2, streak=1, xp=10, last_updated=OLD)
    _seed(tmp_path, committed)
    service = _service(tmp_path)
    tasks = _tasks((1, "completed"), (2, "completed"), (3, "completed"), (4, "pending"))

    real_save = StateManager.save_progress

    def _broken(self, state):
        raise StoreError("disk full")

    monkeypatch.setattr(StateManager, "save_progress", _broken)
    failed = asyncio.run(service.reconcile(tasks, now=NOW, interaction_count=12))

    assert not failed.persisted
    assert failed.state == committed
    assert service.has_pending_write
    assert StateManager(tmp_path).load_progress() == committed

    monkeypatch.setattr(StateManager, "save_progress", real_save)
    assert service.flush_pending()
    assert not service.has_pending_write
    assert StateManager(tmp_path).load_progress().key() == (4, 3, 30)


def test_sync_from_api_uses_client_tasks(tmp_path: Path):
    _seed(tmp_path, ProgressionState(current_day=1, last_updated=OLD))
    service = _service(tmp_path)

    class _FakeClient:
        async def fetch_tasks(self):
            return _tasks((1, "completed"), (2, "postponed"))

    result = asyncio.run(service.sync_from_api(_FakeClient(), now=NOW, interaction_count=12))
    assert result.state.key() == (3, 2, 20)


def test_corrupt_journey_fields_do_not_stop_reconcile(tmp_path: Path):
    _seed(tmp_path, ProgressionState(current_day=1, last_updated=OLD))
    store = StateManager(tmp_path)
    store.journey_path.write_text(json.dumps(
        {"journey_id": "j1", "journey_start": OLD, "goal_ids": None, "interaction_count": "lots"}
    ))
    service = _service(tmp_path)

    result = asyncio.run(service.reconcile(_tasks((1, "completed"), (2, "pending")), now=NOW))

    assert result.state.key() == (2, 1, 10)
    assert not result.validation.new_journey
    assert result.instance.journey_id == "j1"
