from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from study_tracker.db_models import StudySession, TimerPreferences
from study_tracker.errors import InvalidSessionState
from study_tracker.pomodoro import PHASE_LONG_BREAK, PHASE_SHORT_BREAK, PHASE_WORK
from study_tracker.reconcile import elapsed_whole_minutes, reconcile_session, remaining_seconds


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0, second: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, second, tzinfo=ZoneInfo("Europe/Oslo"))


def _session(
    start: datetime,
    phase: str = PHASE_WORK,
    phase_started_at: datetime | None = None,
    end_time: datetime | None = None,
    cycle_count: int = 0,
) -> StudySession:
    return StudySession(
        id=1,
        user_id=1,
        session_name="Math",
        subject="Math",
        duration=0,
        start_time=start,
        end_time=end_time,
        phase=phase,
        cycle_count=cycle_count,
        phase_started_at=phase_started_at,
        created_at=start,
        updated_at=start,
    )


def test_remaining_counts_whole_minutes_only() -> None:
    start = _dt(2026, 3, 2, 9, 0)
    assert remaining_seconds(start, start, 25) == 1500
    assert remaining_seconds(start, start + timedelta(seconds=59), 25) == 1500
    assert remaining_seconds(start, start + timedelta(minutes=10, seconds=30), 25) == 900
    assert remaining_seconds(start, start + timedelta(minutes=25), 25) == 0


def test_remaining_never_negative_after_overrun() -> None:
    start = _dt(2026, 3, 2, 9, 0)
    assert remaining_seconds(start, start + timedelta(hours=5), 25) == 0


def test_remaining_stays_within_bounds() -> None:
    start = _dt(2026, 3, 2, 9, 0)
    for minutes in (1, 25, 90):
        for offset in (0, 1, 30, 61, 200, 5000):
            value = remaining_seconds(start, start + timedelta(seconds=offset * 7), minutes)
            assert 0 <= value <= minutes * 60


def test_accepts_iso_strings_with_zulu_suffix() -> None:
    now = datetime(2026, 3, 2, 9, 5, tzinfo=ZoneInfo("UTC"))
    assert elapsed_whole_minutes("2026-03-02T09:00:00Z", now) == 5


def test_future_start_is_unreconcilable() -> None:
    now = _dt(2026, 3, 2, 9, 0)
    with pytest.raises(InvalidSessionState):
        remaining_seconds(now + timedelta(minutes=3), now, 25)


def test_corrupted_start_is_unreconcilable() -> None:
    now = _dt(2026, 3, 2, 9, 0)
    with pytest.raises(InvalidSessionState):
        remaining_seconds("not-a-date", now, 25)
    with pytest.raises(InvalidSessionState):
        remaining_seconds("", now, 25)


class TestReconcileSession:
    def test_first_work_phase_uses_session_start(self) -> None:
        start = _dt(2026, 3, 2, 9, 0)
        state = reconcile_session(_session(start), start + timedelta(minutes=10), TimerPreferences())
        assert state.phase == PHASE_WORK
        assert state.total_seconds == 1500
        assert state.remaining_seconds == 900
        assert state.expired is False
        assert state.progress == pytest.approx(0.4)

    def test_break_phase_uses_its_own_start(self) -> None:
        start = _dt(2026, 3, 2, 9, 0)
        session = _session(
            start,
            phase=PHASE_SHORT_BREAK,
            phase_started_at=start + timedelta(minutes=25),
            cycle_count=1,
        )
        state = reconcile_session(session, start + timedelta(minutes=27), TimerPreferences())
        assert state.phase == PHASE_SHORT_BREAK
        assert state.cycle_count == 1
        assert state.total_seconds == 300
        assert state.remaining_seconds == 180

    def test_overrun_phase_is_expired_not_fast_forwarded(self) -> None:
        start = _dt(2026, 3, 2, 9, 0)
        session = _session(start, phase=PHASE_LONG_BREAK, phase_started_at=start, cycle_count=4)
        state = reconcile_session(session, start + timedelta(hours=2), TimerPreferences())
        assert state.phase == PHASE_LONG_BREAK
        assert state.remaining_seconds == 0
        assert state.expired is True

    def test_without_phase_state_falls_back_to_work(self) -> None:
        start = _dt(2026, 3, 2, 9, 0)
        session = _session(start, phase=PHASE_SHORT_BREAK, phase_started_at=None)
        state = reconcile_session(session, start + timedelta(minutes=5), TimerPreferences(work_minutes=30))
        assert state.phase == PHASE_WORK
        assert state.remaining_seconds == 1500

    def test_closed_session_cannot_be_reconciled(self) -> None:
        start = _dt(2026, 3, 2, 9, 0)
        session = _session(start, end_time=start + timedelta(minutes=25))
        with pytest.raises(InvalidSessionState):
            reconcile_session(session, start + timedelta(minutes=30), TimerPreferences())

    def test_clock_skew_is_reported(self) -> None:
        start = _dt(2026, 3, 2, 9, 0)
        with pytest.raises(InvalidSessionState):
            reconcile_session(_session(start), start - timedelta(minutes=1), TimerPreferences())
