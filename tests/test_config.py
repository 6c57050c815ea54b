from __future__ import annotations

from pathlib import Path

import pytest

from study_tracker.config import load_settings, load_timer_defaults
from study_tracker.db import Database
from study_tracker.db_models import TimerPreferences
from study_tracker.errors import ValidationError
from study_tracker.main import run_provision
from study_tracker.preferences import apply_preference_updates, coerce_preferences

ENV_KEYS = ("DATABASE_PATH", "TZ", "API_HOST", "API_PORT", "TIMER_DEFAULTS_CONFIG", "LOG_LEVEL")


@pytest.fixture()
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for key in ENV_KEYS:
        # setenv first so teardown also removes values the .env loader writes
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_settings_defaults(clean_env: Path) -> None:
    settings = load_settings()
    assert settings.database_path == Path("./data/study.db")
    assert settings.tz == "UTC"
    assert settings.api_host == "127.0.0.1"
    assert settings.api_port == 8000
    assert settings.timer_defaults_path == Path("./timer_defaults.yaml")
    assert settings.log_level == "INFO"


def test_env_file_does_not_override_environment(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (clean_env / ".env").write_text(
        "# local overrides\nAPI_PORT=9100\nTZ='Europe/Oslo'\nDATABASE_PATH=\"/tmp/x.db\"\nnot a pair\n"
    )
    monkeypatch.setenv("DATABASE_PATH", "/srv/study.db")
    settings = load_settings()
    assert settings.api_port == 9100
    assert settings.tz == "Europe/Oslo"
    assert settings.database_path == Path("/srv/study.db")


def test_invalid_port_falls_back(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_PORT", "eighty")
    assert load_settings().api_port == 8000


def test_timer_defaults_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "timer.yaml"
    path.write_text(
        "timer:\n"
        "  work_minutes: 50\n"
        "  short_break_minutes: 10\n"
        "  long_break_minutes: -3\n"
        "  study_goal_hours: 12\n"
        "  dark_mode: yes\n"
    )
    prefs = load_timer_defaults(path)
    assert prefs.work_minutes == 50
    assert prefs.short_break_minutes == 10
    assert prefs.long_break_minutes == 15
    assert prefs.study_goal_hours == 12
    assert prefs.dark_mode is True
    assert prefs.notifications is True


def test_timer_defaults_missing_or_odd_file(tmp_path: Path) -> None:
    assert load_timer_defaults(tmp_path / "missing.yaml") == TimerPreferences()
    odd = tmp_path / "odd.yaml"
    odd.write_text("- just\n- a list\n")
    assert load_timer_defaults(odd) == TimerPreferences()
    flat = tmp_path / "flat.yaml"
    flat.write_text("work_minutes: 40\n")
    assert load_timer_defaults(flat).work_minutes == 40


def test_shipped_defaults_file_matches_builtins() -> None:
    path = Path(__file__).resolve().parents[1] / "timer_defaults.yaml"
    assert load_timer_defaults(path) == TimerPreferences()


class TestPreferences:
    def test_coerce_ignores_bad_values(self) -> None:
        prefs = coerce_preferences({"work_minutes": "abc", "short_break_minutes": 0, "notifications": "off"})
        assert prefs.work_minutes == 25
        assert prefs.short_break_minutes == 5
        assert prefs.notifications is False

    def test_updates_are_strict(self) -> None:
        current = TimerPreferences()
        updated = apply_preference_updates(current, {"work_minutes": "45", "study_goal_hours": 0})
        assert updated.work_minutes == 45
        assert updated.study_goal_hours == 0
        for bad in (
            {"work_minutes": 0},
            {"long_break_minutes": 181},
            {"study_goal_hours": 169},
            {"dark_mode": "maybe"},
            {"work_minutes": True},
            {"volume": 3},
        ):
            with pytest.raises(ValidationError):
                apply_preference_updates(current, bad)


def test_provision_uses_configured_defaults(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (clean_env / "timer.yaml").write_text("timer:\n  work_minutes: 50\n")
    monkeypatch.setenv("DATABASE_PATH", str(clean_env / "data" / "study.db"))
    monkeypatch.setenv("TIMER_DEFAULTS_CONFIG", str(clean_env / "timer.yaml"))

    token = run_provision(["ada@example.com", "Ada", "Lovelace"])
    user = Database(clean_env / "data" / "study.db").get_user_by_token(token)
    assert user is not None
    assert user.full_name == "Ada Lovelace"
    assert user.preferences.work_minutes == 50

    with pytest.raises(SystemExit):
        run_provision(["ada@example.com"])
