"""Recover a lost countdown for a session that is still open after a restart.

Only wall-clock deltas against persisted timestamps are used. The basic form
assumes the session has been in its first work phase since it started; the
per-phase form uses the phase and phase start time stored on every
transition. Neither fast-forwards across several missed phase boundaries:
an overrun phase reports zero remaining time and ``expired`` so the caller
completes it on its next evaluation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from study_tracker.db_models import StudySession, TimerPreferences
from study_tracker.errors import InvalidSessionState
from study_tracker.pomodoro import PHASE_WORK, normalize_phase, phase_minutes, progress_ratio
from study_tracker.time_utils import to_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimerState:
    phase: str
    cycle_count: int
    total_seconds: int
    remaining_seconds: int
    expired: bool

    @property
    def progress(self) -> float:
        return progress_ratio(self.total_seconds, self.remaining_seconds)


def _parse_instant(value: datetime | str | None, label: str) -> datetime:
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, str) and value.strip():
        try:
            return to_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            pass
    raise InvalidSessionState(f"Session {label} is unreadable; end or restart the session")


def elapsed_whole_minutes(start: datetime | str, now: datetime) -> int:
    start_dt = _parse_instant(start, "start time")
    now_dt = to_utc(now)
    if start_dt > now_dt:
        raise InvalidSessionState("Session start time is in the future; end or restart the session")
    return int((now_dt - start_dt).total_seconds() // 60)


def remaining_seconds(start_time: datetime | str, now: datetime, work_minutes: int) -> int:
    elapsed = elapsed_whole_minutes(start_time, now)
    return max(0, work_minutes * 60 - elapsed * 60)


def reconcile_session(session: StudySession, now: datetime, prefs: TimerPreferences) -> TimerState:
    if not session.is_open:
        raise InvalidSessionState("Session has already ended")

    if session.phase_started_at is None:
        phase, anchor = PHASE_WORK, session.start_time
    else:
        phase, anchor = normalize_phase(session.phase), session.phase_started_at

    minutes = phase_minutes(phase, prefs)
    try:
        remaining = remaining_seconds(anchor, now, minutes)
    except InvalidSessionState:
        logger.warning("unreconcilable session id=%s user=%s", session.id, session.user_id)
        raise

    return TimerState(
        phase=phase,
        cycle_count=session.cycle_count,
        total_seconds=minutes * 60,
        remaining_seconds=remaining,
        expired=remaining == 0,
    )
