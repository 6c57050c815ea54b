from __future__ import annotations

from study_tracker.db_models import AnalyticsAggregate, StudySession, TimerPreferences, Todo, User
from study_tracker.db_repo import AnalyticsMixin, BaseDatabase, SessionMixin, TodoMixin, UserMixin


class Database(UserMixin, SessionMixin, TodoMixin, AnalyticsMixin, BaseDatabase):
    pass


__all__ = [
    "AnalyticsAggregate",
    "Database",
    "StudySession",
    "TimerPreferences",
    "Todo",
    "User",
]
