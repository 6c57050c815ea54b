from __future__ import annotations

from dataclasses import asdict, replace
from typing import Any, Mapping

from study_tracker.db_constants import PHASE_MINUTES_MAX, STUDY_GOAL_HOURS_MAX
from study_tracker.db_models import TimerPreferences
from study_tracker.errors import ValidationError

_MINUTE_KEYS = ("work_minutes", "short_break_minutes", "long_break_minutes")
_BOOL_KEYS = ("notifications", "dark_mode")


def preferences_to_dict(prefs: TimerPreferences) -> dict[str, Any]:
    return asdict(prefs)


def _parse_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return None


def _parse_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def coerce_preferences(raw: Mapping[str, Any] | None, base: TimerPreferences | None = None) -> TimerPreferences:
    """Lenient merge used for stored JSON and config files: bad values keep the base value."""
    prefs = base or TimerPreferences()
    if not raw:
        return prefs
    changes: dict[str, Any] = {}
    for key in _MINUTE_KEYS:
        value = _parse_int(raw.get(key))
        if value is not None and 0 < value <= PHASE_MINUTES_MAX:
            changes[key] = value
    goal = _parse_int(raw.get("study_goal_hours"))
    if goal is not None and 0 <= goal <= STUDY_GOAL_HOURS_MAX:
        changes["study_goal_hours"] = goal
    for key in _BOOL_KEYS:
        flag = _parse_bool(raw.get(key))
        if flag is not None:
            changes[key] = flag
    return replace(prefs, **changes)


def apply_preference_updates(current: TimerPreferences, updates: Mapping[str, Any]) -> TimerPreferences:
    """Strict variant for user edits: any unknown key or out-of-range value is rejected."""
    changes: dict[str, Any] = {}
    for key, value in updates.items():
        if key in _MINUTE_KEYS:
            minutes = _parse_int(value)
            if minutes is None or not 0 < minutes <= PHASE_MINUTES_MAX:
                raise ValidationError(f"{key} must be between 1 and {PHASE_MINUTES_MAX} minutes")
            changes[key] = minutes
        elif key == "study_goal_hours":
            goal = _parse_int(value)
            if goal is None or not 0 <= goal <= STUDY_GOAL_HOURS_MAX:
                raise ValidationError(f"study_goal_hours must be between 0 and {STUDY_GOAL_HOURS_MAX}")
            changes[key] = goal
        elif key in _BOOL_KEYS:
            flag = _parse_bool(value)
            if flag is None:
                raise ValidationError(f"{key} must be a boolean")
            changes[key] = flag
        else:
            raise ValidationError(f"Unknown preference: {key}")
    return replace(current, **changes)
