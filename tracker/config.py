"""Settings for the journey tracker.

``config/settings.yaml`` holds three sections:

- ``journey``: program length, the stage table and classifier thresholds
- ``storage``: data directory, history database name and optional log file
- ``api``: base URL and timeout of the goal API

The goal API token only ever comes from the environment (``config/.env`` or
``GOALS_API_TOKEN``) and is exposed under ``cfg["_secrets"]``.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Environment variable -> (section, key) it overrides.
_ENV_OVERRIDES = {
    "GOALS_API_URL": ("api", "base_url"),
    "JOURNEY_DATA_DIR": ("storage", "data_dir"),
}


def load_config(
    config_dir: str | Path | None = None,
) -> dict:
    """Return the tracker settings with env overrides and secrets applied."""
    if config_dir is None:
        config_dir = Path(__file__).resolve().parent.parent / "config"
    config_dir = Path(config_dir)

    # A missing .env is fine, the token may come from the process environment.
    load_dotenv(config_dir / ".env")

    settings_path = config_dir / "settings.yaml"
    if not settings_path.exists():
        raise FileNotFoundError(f"Config not found: {settings_path}")

    with open(settings_path, encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            cfg.setdefault(section, {})[key] = value

    cfg["_secrets"] = {
        "goals_api_token": os.getenv("GOALS_API_TOKEN", ""),
    }
    return cfg
