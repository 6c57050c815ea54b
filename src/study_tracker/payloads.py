from __future__ import annotations

from datetime import datetime
from typing import Any

from study_tracker.analytics import ActivityItem, AnalyticsView, DashboardView, StudySummary
from study_tracker.db_models import AnalyticsAggregate, StudySession, Todo, User
from study_tracker.pomodoro import PHASE_LABELS, format_clock
from study_tracker.preferences import preferences_to_dict
from study_tracker.reconcile import TimerState
from study_tracker.service import ActiveSession
from study_tracker.time_utils import to_storage


def _ts(value: datetime | None) -> str | None:
    return to_storage(value) if value is not None else None


def user_payload(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "preferences": preferences_to_dict(user.preferences),
        "created_at": _ts(user.created_at),
    }


def session_payload(session: StudySession) -> dict[str, Any]:
    return {
        "id": session.id,
        "user_id": session.user_id,
        "session_name": session.session_name,
        "subject": session.subject,
        "duration": session.duration,
        "start_time": _ts(session.start_time),
        "end_time": _ts(session.end_time),
        "phase": session.phase,
        "cycle_count": session.cycle_count,
        "phase_started_at": _ts(session.phase_started_at),
        "created_at": _ts(session.created_at),
    }


def timer_payload(timer: TimerState) -> dict[str, Any]:
    return {
        "phase": timer.phase,
        "label": PHASE_LABELS[timer.phase],
        "cycle_count": timer.cycle_count,
        "total_seconds": timer.total_seconds,
        "remaining_seconds": timer.remaining_seconds,
        "clock": format_clock(timer.remaining_seconds),
        "progress": round(timer.progress, 4),
        "expired": timer.expired,
    }


def active_session_payload(active: ActiveSession | None) -> dict[str, Any]:
    if active is None:
        return {"session": None, "timer": None}
    return {
        "session": session_payload(active.session),
        "timer": timer_payload(active.timer) if active.timer else None,
        "timer_error": active.timer_error,
    }


def todo_payload(todo: Todo) -> dict[str, Any]:
    return {
        "id": todo.id,
        "user_id": todo.user_id,
        "title": todo.title,
        "description": todo.description,
        "status": todo.status,
        "created_at": _ts(todo.created_at),
        "completed_at": _ts(todo.completed_at),
    }


def aggregate_payload(aggregate: AnalyticsAggregate) -> dict[str, Any]:
    return {
        "user_id": aggregate.user_id,
        "total_sessions": aggregate.total_sessions,
        "total_study_time": aggregate.total_study_time,
        "total_completed_tasks": aggregate.total_completed_tasks,
        "subjects_breakdown": dict(aggregate.subjects_breakdown),
        "updated_at": _ts(aggregate.updated_at),
    }


def summary_payload(summary: StudySummary) -> dict[str, Any]:
    return {
        "total_sessions": summary.total_sessions,
        "total_minutes": summary.total_minutes,
        "avg_session_minutes": summary.avg_session_minutes,
        "week_hours": summary.week_hours,
        "week_sessions": summary.week_sessions,
        "goal_hours": summary.goal_hours,
        "goal_progress_percent": summary.goal_progress_percent,
    }


def activity_payload(item: ActivityItem) -> dict[str, Any]:
    return {"kind": item.kind, "title": item.title, "detail": item.detail, "at": _ts(item.at)}


def analytics_payload(view: AnalyticsView) -> dict[str, Any]:
    return {
        "range": view.range_name,
        "analytics": aggregate_payload(view.aggregate),
        "study_hours": [
            {"day": d.day.isoformat(), "label": d.label, "hours": d.hours, "session_count": d.session_count}
            for d in view.daily_hours
        ],
        "task_completion": {
            "completed_percent": view.completion.completed_percent,
            "pending_percent": view.completion.pending_percent,
        },
        "streak": {
            "current": view.streak,
            "days": [{"date": d.day.isoformat(), "studied": d.studied} for d in view.streak_days],
        },
        "summary": summary_payload(view.summary),
        "degraded": view.degraded,
    }


def dashboard_payload(view: DashboardView, active: dict[str, Any]) -> dict[str, Any]:
    return {
        "summary": summary_payload(view.summary),
        "recent_activity": [activity_payload(item) for item in view.activity],
        "tasks": {"pending": view.pending_tasks, "completed": view.completed_tasks},
        "active": active,
        "degraded": view.degraded,
    }
