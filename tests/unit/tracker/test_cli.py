"""Tests for the command line entry point."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from main import main


def _config_dir(tmp_path: Path) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.yaml").write_text(
        f"storage:\n  data_dir: {tmp_path / 'data'}\n  history_db: history.db\n"
    )
    return config_dir


def _tasks_file(tmp_path: Path) -> Path:
    path = tmp_path / "goals.json"
    path.write_text(json.dumps([
        {"_id": "g1", "title": "Week 1", "tasks": [
            {"_id": "a", "day": 1, "status": "completed"},
            {"_id": "b", "day": 1, "status": "pending"},
        ]},
    ]))
    return path


def test_validate_command_reports_repairs(tmp_path: Path):
    runner = CliRunner()
    result = runner.invoke(main, [
        "--config-dir", str(_config_dir(tmp_path)),
        "validate", "--tasks", str(_tasks_file(tmp_path)), "--day", "5",
    ])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["state"]["currentDay"] == 1
    assert payload["repairs"][0]["check"] == "day_one"


def test_start_then_status(tmp_path: Path):
    runner = CliRunner()
    config_dir = str(_config_dir(tmp_path))

    started = runner.invoke(main, ["--config-dir", config_dir, "start", "--goal-id", "g1"])
    assert started.exit_code == 0, started.output
    assert "Day 1, Streak 0, XP 0" in started.output

    status = runner.invoke(main, ["--config-dir", config_dir, "status", "--tasks", str(_tasks_file(tmp_path))])
    assert status.exit_code == 0, status.output
    assert "Day 1/21" in status.output
    assert "New journey (fresh_flag)" in status.output

    history = runner.invoke(main, ["--config-dir", config_dir, "history"])
    assert history.exit_code == 0, history.output
    assert "journey_started" in history.output


def test_status_requires_a_source(tmp_path: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["--config-dir", str(_config_dir(tmp_path)), "status"])
    assert result.exit_code != 0
    assert "--tasks" in result.output
