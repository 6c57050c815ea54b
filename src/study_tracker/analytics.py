from __future__ import annotations

import logging
import math
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from zoneinfo import ZoneInfo

from study_tracker.db import Database
from study_tracker.db_constants import TODO_COMPLETED
from study_tracker.db_models import AnalyticsAggregate, StudySession, TimerPreferences, Todo
from study_tracker.errors import StudyError, ValidationError
from study_tracker.time_utils import local_date, resolve_tz, trailing_days

logger = logging.getLogger(__name__)

RANGE_DAYS = {"week": 7, "month": 30, "year": 365}
STREAK_WINDOW_DAYS = 30
RECENT_SESSIONS = 3
RECENT_TASKS = 2


@dataclass(frozen=True)
class DailyHours:
    day: date
    label: str
    hours: float
    session_count: int


@dataclass(frozen=True)
class CompletionSplit:
    completed_percent: int
    pending_percent: int


@dataclass(frozen=True)
class StreakDay:
    day: date
    studied: bool


@dataclass(frozen=True)
class StudySummary:
    total_sessions: int = 0
    total_minutes: int = 0
    avg_session_minutes: int = 0
    week_hours: float = 0.0
    week_sessions: int = 0
    goal_hours: int = 0
    goal_progress_percent: int = 0


@dataclass(frozen=True)
class ActivityItem:
    kind: str
    title: str
    detail: str
    at: datetime


@dataclass(frozen=True)
class AnalyticsView:
    range_name: str
    aggregate: AnalyticsAggregate
    daily_hours: list[DailyHours]
    completion: CompletionSplit
    streak_days: list[StreakDay]
    streak: int
    summary: StudySummary
    degraded: bool = False


@dataclass(frozen=True)
class DashboardView:
    summary: StudySummary
    activity: list[ActivityItem] = field(default_factory=list)
    pending_tasks: int = 0
    completed_tasks: int = 0
    degraded: bool = False


def _round1(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def range_days(range_name: str) -> int:
    try:
        return RANGE_DAYS[range_name]
    except KeyError:
        raise ValidationError("range must be one of: week, month, year") from None


def _day_label(day: date, range_name: str) -> str:
    if range_name == "week":
        return day.strftime("%a")
    return f"{day.strftime('%b')} {day.day}"


def _closed(sessions: Sequence[StudySession]) -> list[StudySession]:
    return [s for s in sessions if s.end_time is not None]


def daily_study_hours(
    sessions: Sequence[StudySession],
    range_name: str,
    now: datetime,
    tz: ZoneInfo,
) -> list[DailyHours]:
    days = trailing_days(local_date(now, tz), range_days(range_name))
    minutes: dict[date, int] = {d: 0 for d in days}
    counts: dict[date, int] = {d: 0 for d in days}
    for session in _closed(sessions):
        assert session.end_time is not None
        day = local_date(session.end_time, tz)
        if day in minutes:
            minutes[day] += session.duration
            counts[day] += 1
    return [
        DailyHours(day=d, label=_day_label(d, range_name), hours=_round1(minutes[d] / 60), session_count=counts[d])
        for d in days
    ]


def task_completion_split(todos: Sequence[Todo]) -> CompletionSplit:
    total = len(todos)
    if total == 0:
        return CompletionSplit(completed_percent=0, pending_percent=100)
    completed = sum(1 for t in todos if t.status == TODO_COMPLETED)
    completed_percent = math.floor(completed * 100 / total + 0.5)
    return CompletionSplit(completed_percent=completed_percent, pending_percent=100 - completed_percent)


def streak_calendar(
    sessions: Sequence[StudySession],
    now: datetime,
    tz: ZoneInfo,
    days: int = STREAK_WINDOW_DAYS,
) -> list[StreakDay]:
    studied_days = {local_date(s.end_time, tz) for s in _closed(sessions) if s.end_time is not None}
    return [StreakDay(day=d, studied=d in studied_days) for d in trailing_days(local_date(now, tz), days)]


def current_streak(calendar: Sequence[StreakDay]) -> int:
    streak = 0
    for entry in reversed(calendar):
        if not entry.studied:
            break
        streak += 1
    return streak


def study_summary(
    sessions: Sequence[StudySession],
    now: datetime,
    prefs: TimerPreferences,
    tz: ZoneInfo,
) -> StudySummary:
    """Totals over every closed session plus the trailing local week.

    The week is the same seven local calendar days the weekly chart shows.
    """
    closed = _closed(sessions)
    total_minutes = sum(s.duration for s in closed)
    week_days = set(trailing_days(local_date(now, tz), 7))
    this_week = [s for s in closed if s.end_time is not None and local_date(s.end_time, tz) in week_days]
    week_hours = _round1(sum(s.duration for s in this_week) / 60)
    goal = prefs.study_goal_hours
    progress = min(100, math.floor(week_hours * 100 / goal + 0.5)) if goal > 0 else 0
    return StudySummary(
        total_sessions=len(closed),
        total_minutes=total_minutes,
        avg_session_minutes=math.floor(total_minutes / len(closed) + 0.5) if closed else 0,
        week_hours=week_hours,
        week_sessions=len(this_week),
        goal_hours=goal,
        goal_progress_percent=progress,
    )


def recent_activity(sessions: Sequence[StudySession], todos: Sequence[Todo], limit: int = 5) -> list[ActivityItem]:
    closed = sorted(_closed(sessions), key=lambda s: s.end_time or s.start_time, reverse=True)
    done = sorted(
        (t for t in todos if t.status == TODO_COMPLETED and t.completed_at is not None),
        key=lambda t: t.completed_at or t.created_at,
        reverse=True,
    )
    items = [
        ActivityItem(
            kind="session",
            title=f"Completed {s.session_name}",
            detail=f"{s.subject} · {s.duration} min",
            at=s.end_time or s.start_time,
        )
        for s in closed[:RECENT_SESSIONS]
    ]
    items.extend(
        ActivityItem(kind="task", title=f"Finished {t.title}", detail="Task", at=t.completed_at or t.created_at)
        for t in done[:RECENT_TASKS]
    )
    items.sort(key=lambda item: item.at, reverse=True)
    return items[:limit]


def empty_analytics_view(user_id: int, range_name: str, now: datetime, tz: ZoneInfo) -> AnalyticsView:
    """Zero-filled view with the same shape as a real one, used when data cannot be fetched."""
    daily = daily_study_hours([], range_name, now, tz)
    calendar = streak_calendar([], now, tz)
    return AnalyticsView(
        range_name=range_name,
        aggregate=AnalyticsAggregate(user_id=user_id),
        daily_hours=daily,
        completion=task_completion_split([]),
        streak_days=calendar,
        streak=0,
        summary=StudySummary(),
        degraded=True,
    )


def build_analytics_view(
    db: Database,
    user_id: int,
    now: datetime,
    range_name: str = "week",
    tz_name: str | None = None,
) -> AnalyticsView:
    range_days(range_name)
    tz = resolve_tz(tz_name)
    try:
        aggregate = db.get_analytics(user_id)
        sessions = db.list_closed_sessions(user_id)
        todos = db.list_todos(user_id)
        prefs = db.get_user(user_id).preferences
    except (sqlite3.Error, ValueError, StudyError) as exc:
        logger.warning("analytics degraded to defaults for user=%s: %s", user_id, exc)
        return empty_analytics_view(user_id, range_name, now, tz)

    calendar = streak_calendar(sessions, now, tz)
    return AnalyticsView(
        range_name=range_name,
        aggregate=aggregate,
        daily_hours=daily_study_hours(sessions, range_name, now, tz),
        completion=task_completion_split(todos),
        streak_days=calendar,
        streak=current_streak(calendar),
        summary=study_summary(sessions, now, prefs, tz),
    )


def build_dashboard(db: Database, user_id: int, now: datetime, tz_name: str | None = None) -> DashboardView:
    tz = resolve_tz(tz_name)
    try:
        sessions = db.list_closed_sessions(user_id)
        todos = db.list_todos(user_id)
        prefs = db.get_user(user_id).preferences
    except (sqlite3.Error, ValueError, StudyError) as exc:
        logger.warning("dashboard degraded to defaults for user=%s: %s", user_id, exc)
        return DashboardView(summary=StudySummary(), degraded=True)

    completed = sum(1 for t in todos if t.status == TODO_COMPLETED)
    return DashboardView(
        summary=study_summary(sessions, now, prefs, tz),
        activity=recent_activity(sessions, todos),
        pending_tasks=len(todos) - completed,
        completed_tasks=completed,
    )
