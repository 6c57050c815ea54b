from __future__ import annotations

import json
import sqlite3

from study_tracker.db_models import StudySession, Todo, User
from study_tracker.preferences import coerce_preferences
from study_tracker.pomodoro import PHASE_WORK
from study_tracker.time_utils import from_storage


def _row_to_user(row: sqlite3.Row) -> User:
    try:
        raw_prefs = json.loads(row["preferences"] or "{}")
    except json.JSONDecodeError:
        raw_prefs = {}
    return User(
        id=int(row["id"]),
        email=row["email"],
        full_name=row["full_name"],
        preferences=coerce_preferences(raw_prefs if isinstance(raw_prefs, dict) else {}),
        created_at=from_storage(row["created_at"]),
        updated_at=from_storage(row["updated_at"]),
    )


def _row_to_session(row: sqlite3.Row) -> StudySession:
    return StudySession(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        session_name=row["session_name"],
        subject=row["subject"],
        duration=int(row["duration"]),
        start_time=from_storage(row["start_time"]),
        end_time=from_storage(row["end_time"]) if row["end_time"] else None,
        phase=row["phase"] or PHASE_WORK,
        cycle_count=int(row["cycle_count"] or 0),
        phase_started_at=from_storage(row["phase_started_at"]) if row["phase_started_at"] else None,
        created_at=from_storage(row["created_at"]),
        updated_at=from_storage(row["updated_at"]),
    )


def _row_to_todo(row: sqlite3.Row) -> Todo:
    return Todo(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        title=row["title"],
        description=row["description"],
        status=row["status"],
        created_at=from_storage(row["created_at"]),
        completed_at=from_storage(row["completed_at"]) if row["completed_at"] else None,
        updated_at=from_storage(row["updated_at"]),
    )
