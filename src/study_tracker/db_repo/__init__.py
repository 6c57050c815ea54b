from .base import BaseDatabase
from .users import UserMixin
from .sessions import SessionMixin
from .todos import TodoMixin
from .analytics import AnalyticsMixin

__all__ = [
    "BaseDatabase",
    "UserMixin",
    "SessionMixin",
    "TodoMixin",
    "AnalyticsMixin",
]
