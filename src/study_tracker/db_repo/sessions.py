from __future__ import annotations

import logging
import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol

from study_tracker.db_converters import _row_to_session
from study_tracker.db_models import StudySession
from study_tracker.errors import InvalidSessionState, NotFound
from study_tracker.pomodoro import PHASE_WORK, next_phase, normalize_phase
from study_tracker.reconcile import elapsed_whole_minutes
from study_tracker.time_utils import from_storage, to_storage

logger = logging.getLogger(__name__)


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def _transaction(self, mode: str = ...) -> AbstractContextManager[sqlite3.Connection]: ...
    def _apply_session_closed(
        self, conn: sqlite3.Connection, user_id: int, subject: str, duration_minutes: int, now: datetime
    ) -> None: ...


def _fetch_owned(conn: sqlite3.Connection, user_id: int, session_id: int) -> sqlite3.Row:
    row = conn.execute(
        "SELECT * FROM sessions WHERE id = ? AND user_id = ?",
        (session_id, user_id),
    ).fetchone()
    if row is None:
        raise NotFound("Session not found")
    return row


def _fetch_open(conn: sqlite3.Connection, user_id: int, session_id: int) -> sqlite3.Row:
    row = _fetch_owned(conn, user_id, session_id)
    if row["end_time"] is not None:
        raise InvalidSessionState("Session already ended")
    return row


def _readable(raw: str | None) -> bool:
    if not raw:
        return False
    try:
        from_storage(raw)
    except ValueError:
        return False
    return True


def _work_credit(row: sqlite3.Row, now: datetime, work_minutes: int, reported: int | None = None) -> int:
    """Minutes of the row's current work phase, clamped to the work length.

    Breaks and unreadable or future phase starts credit nothing.
    """
    if normalize_phase(row["phase"]) != PHASE_WORK:
        return 0
    anchor = row["phase_started_at"] or row["start_time"]
    try:
        elapsed = elapsed_whole_minutes(anchor, now)
    except InvalidSessionState:
        return 0
    minutes = elapsed if reported is None else reported
    return max(0, min(int(minutes), work_minutes))


class SessionMixin:
    def create_session(
        self: DbProtocol,
        user_id: int,
        session_name: str,
        subject: str,
        start_time: datetime,
    ) -> StudySession:
        stamp = to_storage(start_time)
        with self._transaction() as conn:
            existing = conn.execute(
                "SELECT id FROM sessions WHERE user_id = ? AND end_time IS NULL",
                (user_id,),
            ).fetchone()
            if existing:
                raise InvalidSessionState("Another study session is still running; end it first")
            cur = conn.execute(
                """
                INSERT INTO sessions(
                    user_id, session_name, subject, duration, start_time,
                    phase, cycle_count, phase_started_at, created_at, updated_at
                )
                VALUES (?, ?, ?, 0, ?, ?, 0, ?, ?, ?)
                """,
                (user_id, session_name, subject, stamp, PHASE_WORK, stamp, stamp, stamp),
            )
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (cur.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_session(row)

    def get_session(self: DbProtocol, user_id: int, session_id: int) -> StudySession:
        with self._connect() as conn:
            row = _fetch_owned(conn, user_id, session_id)
        return _row_to_session(row)

    def get_active_session(self: DbProtocol, user_id: int) -> StudySession | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM sessions
                WHERE user_id = ? AND end_time IS NULL
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
        return _row_to_session(row) if row else None

    def get_open_session_id(self: DbProtocol, user_id: int) -> int | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id FROM sessions WHERE user_id = ? AND end_time IS NULL",
                (user_id,),
            ).fetchone()
        return int(row["id"]) if row else None

    def list_sessions(self: DbProtocol, user_id: int) -> list[StudySession]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sessions WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def list_closed_sessions(self: DbProtocol, user_id: int) -> list[StudySession]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM sessions
                WHERE user_id = ? AND end_time IS NOT NULL
                ORDER BY end_time DESC, id DESC
                """,
                (user_id,),
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def advance_session_phase(
        self: DbProtocol,
        user_id: int,
        session_id: int,
        expected_phase: str,
        expected_cycle: int,
        work_minutes: int,
        now: datetime,
    ) -> tuple[StudySession, int]:
        """Finish the current phase if it is still the one the caller saw.

        Returns the advanced session and the work minutes credited.
        """
        stamp = to_storage(now)
        with self._transaction() as conn:
            row = _fetch_open(conn, user_id, session_id)
            phase = normalize_phase(row["phase"])
            cycle = int(row["cycle_count"] or 0)
            if (phase, cycle) != (expected_phase, expected_cycle):
                raise InvalidSessionState("Session phase already changed; reload the session")
            if not (_readable(row["start_time"]) and _readable(row["created_at"])):
                raise InvalidSessionState("Session timestamps are unreadable; end or restart the session")
            added = _work_credit(row, now, work_minutes)
            upcoming, new_cycle = next_phase(phase, cycle)
            conn.execute(
                """
                UPDATE sessions
                SET duration = duration + ?,
                    phase = ?,
                    cycle_count = ?,
                    phase_started_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (added, upcoming, new_cycle, stamp, stamp, session_id),
            )
            updated = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        assert updated is not None
        return _row_to_session(updated), added

    def close_session(
        self: DbProtocol,
        user_id: int,
        session_id: int,
        end_time: datetime,
        work_minutes: int,
        elapsed_minutes: int | None = None,
    ) -> StudySession:
        """Finalize the duration and fold it into the owner's analytics in one transaction.

        A row whose start time cannot be read is closed with no extra minutes
        and its unreadable timestamps replaced by the end time.
        """
        stamp = to_storage(end_time)
        with self._transaction() as conn:
            row = _fetch_open(conn, user_id, session_id)
            start_time = row["start_time"]
            created_at = row["created_at"]
            if _readable(start_time):
                added = _work_credit(row, end_time, work_minutes, elapsed_minutes)
            else:
                logger.warning("closing session id=%s with unreadable start time", session_id)
                added = 0
                start_time = stamp
            if not _readable(created_at):
                created_at = stamp
            final_duration = int(row["duration"]) + added
            conn.execute(
                """
                UPDATE sessions
                SET duration = ?,
                    start_time = ?,
                    created_at = ?,
                    end_time = ?,
                    phase_started_at = NULL,
                    updated_at = ?
                WHERE id = ?
                """,
                (final_duration, start_time, created_at, stamp, stamp, session_id),
            )
            self._apply_session_closed(conn, user_id, row["subject"], final_duration, end_time)
            updated = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        assert updated is not None
        return _row_to_session(updated)
