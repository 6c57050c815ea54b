from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from study_tracker.db_models import TimerPreferences
from study_tracker.preferences import coerce_preferences
from study_tracker.time_utils import DEFAULT_TZ


@dataclass(frozen=True)
class Settings:
    database_path: Path
    tz: str
    api_host: str
    api_port: int
    timer_defaults_path: Path
    log_level: str


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def load_timer_defaults(path: Path) -> TimerPreferences:
    if not path.exists():
        return TimerPreferences()
    raw = yaml.safe_load(path.read_text()) or {}
    if not isinstance(raw, dict):
        return TimerPreferences()
    section = raw.get("timer", raw)
    return coerce_preferences(section if isinstance(section, dict) else {})


def load_settings() -> Settings:
    _load_env_file(Path(".env"))

    port_raw = os.getenv("API_PORT", "8000")
    try:
        api_port = int(port_raw)
    except ValueError:
        api_port = 8000

    return Settings(
        database_path=Path(os.getenv("DATABASE_PATH", "./data/study.db")),
        tz=os.getenv("TZ", DEFAULT_TZ),
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=api_port,
        timer_defaults_path=Path(os.getenv("TIMER_DEFAULTS_CONFIG", "./timer_defaults.yaml")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
