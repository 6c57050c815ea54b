from __future__ import annotations

import json
import logging
import re
import secrets
import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Protocol

from study_tracker.db_converters import _row_to_user
from study_tracker.db_models import TimerPreferences, User
from study_tracker.errors import NotFound, ValidationError
from study_tracker.preferences import apply_preference_updates, preferences_to_dict
from study_tracker.time_utils import to_storage

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def _transaction(self, mode: str = ...) -> AbstractContextManager[sqlite3.Connection]: ...
    def _ensure_analytics_row(self, conn: sqlite3.Connection, user_id: int, now: datetime) -> None: ...
    def get_user(self, user_id: int) -> User: ...


def _validate_identity(email: str, full_name: str) -> tuple[str, str]:
    email = (email or "").strip().lower()
    full_name = (full_name or "").strip()
    if not EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address")
    if len(full_name) < 2:
        raise ValidationError("Full name must be at least 2 characters long")
    return email, full_name


class UserMixin:
    def provision_user(
        self: DbProtocol,
        email: str,
        full_name: str,
        now: datetime,
        preferences: TimerPreferences | None = None,
    ) -> tuple[User, str]:
        """Create an owner, its bearer token and its zeroed analytics row in one step."""
        email, full_name = _validate_identity(email, full_name)
        prefs = preferences or TimerPreferences()
        token = secrets.token_urlsafe(32)
        stamp = to_storage(now)
        with self._transaction() as conn:
            taken = conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone()
            if taken:
                raise ValidationError("An account with this email already exists")
            cur = conn.execute(
                """
                INSERT INTO users(email, full_name, api_token, preferences, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (email, full_name, token, json.dumps(preferences_to_dict(prefs)), stamp, stamp),
            )
            user_id = int(cur.lastrowid)
            self._ensure_analytics_row(conn, user_id, now)
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        assert row is not None
        logger.info("provisioned user id=%s", user_id)
        return _row_to_user(row), token

    def get_user(self: DbProtocol, user_id: int) -> User:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFound("User not found")
        return _row_to_user(row)

    def get_user_by_token(self: DbProtocol, token: str) -> User | None:
        if not token:
            return None
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE api_token = ?", (token,)).fetchone()
        return _row_to_user(row) if row else None

    def update_profile(
        self: DbProtocol,
        user_id: int,
        now: datetime,
        full_name: str | None = None,
        preferences: dict[str, Any] | None = None,
    ) -> User:
        current = self.get_user(user_id)
        name = current.full_name
        if full_name is not None:
            name = full_name.strip()
            if len(name) < 2:
                raise ValidationError("Full name must be at least 2 characters long")
        prefs = apply_preference_updates(current.preferences, preferences or {})
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET full_name = ?, preferences = ?, updated_at = ? WHERE id = ?",
                (name, json.dumps(preferences_to_dict(prefs)), to_storage(now), user_id),
            )
        return self.get_user(user_id)
