from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class TimerPreferences:
    work_minutes: int = 25
    short_break_minutes: int = 5
    long_break_minutes: int = 15
    study_goal_hours: int = 20
    notifications: bool = True
    dark_mode: bool = False


@dataclass(frozen=True)
class User:
    id: int
    email: str
    full_name: str
    preferences: TimerPreferences
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class StudySession:
    id: int
    user_id: int
    session_name: str
    subject: str
    duration: int
    start_time: datetime
    end_time: datetime | None
    phase: str
    cycle_count: int
    phase_started_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass(frozen=True)
class Todo:
    id: int
    user_id: int
    title: str
    description: str | None
    status: str
    created_at: datetime
    completed_at: datetime | None
    updated_at: datetime


@dataclass(frozen=True)
class AnalyticsAggregate:
    user_id: int
    total_sessions: int = 0
    total_study_time: int = 0
    total_completed_tasks: int = 0
    subjects_breakdown: dict[str, int] = field(default_factory=dict)
    updated_at: datetime | None = None
