from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol

from study_tracker.db_models import AnalyticsAggregate
from study_tracker.time_utils import from_storage, to_storage


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def _transaction(self, mode: str = ...) -> AbstractContextManager[sqlite3.Connection]: ...
    def _ensure_analytics_row(self, conn: sqlite3.Connection, user_id: int, now: datetime) -> None: ...
    def _apply_session_closed(
        self, conn: sqlite3.Connection, user_id: int, subject: str, duration_minutes: int, now: datetime
    ) -> None: ...
    def _apply_task_completed(self, conn: sqlite3.Connection, user_id: int, now: datetime) -> None: ...
    def get_analytics(self, user_id: int) -> AnalyticsAggregate: ...


class AnalyticsMixin:
    """Per-owner aggregate maintained as an append-only fold.

    Counters only grow: deleting a session or un-completing a todo never
    reverses an earlier increment.
    """

    def _ensure_analytics_row(self: DbProtocol, conn: sqlite3.Connection, user_id: int, now: datetime) -> None:
        conn.execute(
            "INSERT OR IGNORE INTO analytics(user_id, updated_at) VALUES (?, ?)",
            (user_id, to_storage(now)),
        )

    def _apply_session_closed(
        self: DbProtocol,
        conn: sqlite3.Connection,
        user_id: int,
        subject: str,
        duration_minutes: int,
        now: datetime,
    ) -> None:
        minutes = max(0, int(duration_minutes))
        self._ensure_analytics_row(conn, user_id, now)
        conn.execute(
            """
            UPDATE analytics
            SET total_sessions = total_sessions + 1,
                total_study_time = total_study_time + ?,
                updated_at = ?
            WHERE user_id = ?
            """,
            (minutes, to_storage(now), user_id),
        )
        conn.execute(
            """
            INSERT INTO analytics_subjects(user_id, subject, minutes)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id, subject) DO UPDATE SET minutes = minutes + excluded.minutes
            """,
            (user_id, subject, minutes),
        )

    def _apply_task_completed(self: DbProtocol, conn: sqlite3.Connection, user_id: int, now: datetime) -> None:
        self._ensure_analytics_row(conn, user_id, now)
        conn.execute(
            """
            UPDATE analytics
            SET total_completed_tasks = total_completed_tasks + 1,
                updated_at = ?
            WHERE user_id = ?
            """,
            (to_storage(now), user_id),
        )

    def record_session_closed(
        self: DbProtocol,
        user_id: int,
        subject: str,
        duration_minutes: int,
        now: datetime,
    ) -> AnalyticsAggregate:
        with self._transaction() as conn:
            self._apply_session_closed(conn, user_id, subject, duration_minutes, now)
        return self.get_analytics(user_id)

    def record_task_completed(self: DbProtocol, user_id: int, now: datetime) -> AnalyticsAggregate:
        with self._transaction() as conn:
            self._apply_task_completed(conn, user_id, now)
        return self.get_analytics(user_id)

    def get_analytics(self: DbProtocol, user_id: int) -> AnalyticsAggregate:
        with self._transaction("DEFERRED") as conn:
            row = conn.execute(
                """
                SELECT user_id, total_sessions, total_study_time, total_completed_tasks, updated_at
                FROM analytics WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            subjects = conn.execute(
                "SELECT subject, minutes FROM analytics_subjects WHERE user_id = ? ORDER BY minutes DESC, subject ASC",
                (user_id,),
            ).fetchall()
        if row is None:
            return AnalyticsAggregate(user_id=user_id)
        return AnalyticsAggregate(
            user_id=int(row["user_id"]),
            total_sessions=int(row["total_sessions"]),
            total_study_time=int(row["total_study_time"]),
            total_completed_tasks=int(row["total_completed_tasks"]),
            subjects_breakdown={str(r["subject"]): int(r["minutes"]) for r in subjects},
            updated_at=from_storage(row["updated_at"]),
        )
