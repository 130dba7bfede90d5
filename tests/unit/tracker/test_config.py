"""Tests for configuration loading."""

from pathlib import Path

import pytest

from tracker.config import load_config


def test_load_config_reads_settings_and_env(tmp_path: Path, monkeypatch):
    # setenv first so the values written by load_dotenv are undone afterwards
    monkeypatch.setenv("GOALS_API_TOKEN", "")
    monkeypatch.delenv("GOALS_API_TOKEN")
    monkeypatch.delenv("GOALS_API_URL", raising=False)
    monkeypatch.setenv("JOURNEY_DATA_DIR", "/tmp/journeys")
    (tmp_path / "settings.yaml").write_text("storage:\n  data_dir: data\n")
    (tmp_path / ".env").write_text("GOALS_API_TOKEN=abc123\n")

    cfg = load_config(tmp_path)

    assert cfg["_secrets"]["goals_api_token"] == "abc123"
    assert cfg["storage"]["data_dir"] == "/tmp/journeys"


def test_empty_settings_file(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("GOALS_API_URL", raising=False)
    monkeypatch.delenv("JOURNEY_DATA_DIR", raising=False)
    (tmp_path / "settings.yaml").write_text("")
    cfg = load_config(tmp_path)
    assert "_secrets" in cfg


def test_missing_settings_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path)


def test_bundled_settings_define_default_program():
    cfg = load_config()
    assert cfg["journey"]["total_days"] == 21
    assert len(cfg["journey"]["stages"]) == 6
