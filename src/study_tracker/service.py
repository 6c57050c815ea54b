from __future__ import annotations

import functools
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ParamSpec, TypeVar

from study_tracker.db import Database
from study_tracker.db_constants import DEFAULT_SUBJECT
from study_tracker.db_models import StudySession, TimerPreferences, Todo, User
from study_tracker.errors import InvalidSessionState, TransientIOError, Unauthorized, ValidationError
from study_tracker.pomodoro import PHASES
from study_tracker.reconcile import TimerState, reconcile_session

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def storage_boundary(func: Callable[P, R]) -> Callable[P, R]:
    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except sqlite3.IntegrityError as exc:
            logger.warning("conflicting write in %s: %s", func.__name__, exc)
            raise InvalidSessionState("The record changed concurrently; reload and retry") from exc
        except sqlite3.DatabaseError as exc:
            logger.exception("storage failure in %s", func.__name__)
            raise TransientIOError("Storage is temporarily unavailable, please retry") from exc
        except ValueError as exc:
            logger.exception("unreadable stored data in %s", func.__name__)
            raise InvalidSessionState("Stored data is unreadable; end or restart the session") from exc

    return wrapper


@dataclass(frozen=True)
class PhaseOutcome:
    session: StudySession
    finished_phase: str
    next_phase: str
    cycle_count: int
    minutes_added: int


@dataclass(frozen=True)
class ActiveSession:
    session: StudySession
    timer: TimerState | None
    timer_error: str | None = None


def _preferences(db: Database, user_id: int) -> TimerPreferences:
    return db.get_user(user_id).preferences


@storage_boundary
def start_session(db: Database, user_id: int, name: str, subject: str | None, now: datetime) -> StudySession:
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("Session name is required")
    clean_subject = (subject or "").strip() or DEFAULT_SUBJECT
    session = db.create_session(user_id, clean_name, clean_subject, now)
    logger.info("session started id=%s user=%s subject=%s", session.id, user_id, clean_subject)
    return session


@storage_boundary
def complete_phase(
    db: Database,
    user_id: int,
    session_id: int,
    now: datetime,
    phase: str | None = None,
) -> PhaseOutcome:
    """Finish the session's current phase.

    ``phase`` names the phase the caller finished; when it no longer matches
    the stored one the call is rejected so a phase is never credited twice.
    """
    prefs = _preferences(db, user_id)
    current = db.get_session(user_id, session_id)
    if not current.is_open:
        raise InvalidSessionState("Session already ended")

    if phase is not None and phase not in PHASES:
        raise ValidationError(f"Unknown phase: {phase}")
    finished = phase or current.phase
    session, added = db.advance_session_phase(
        user_id,
        session_id,
        finished,
        current.cycle_count,
        prefs.work_minutes,
        now,
    )
    logger.info(
        "phase completed session=%s %s -> %s cycle=%s added=%s",
        session_id,
        finished,
        session.phase,
        session.cycle_count,
        added,
    )
    return PhaseOutcome(
        session=session,
        finished_phase=finished,
        next_phase=session.phase,
        cycle_count=session.cycle_count,
        minutes_added=added,
    )


@storage_boundary
def end_session(
    db: Database,
    user_id: int,
    session_id: int,
    now: datetime,
    elapsed_minutes: int | None = None,
) -> StudySession:
    if elapsed_minutes is not None and elapsed_minutes < 0:
        raise ValidationError("elapsed_minutes cannot be negative")
    prefs = _preferences(db, user_id)
    session = db.close_session(user_id, session_id, now, prefs.work_minutes, elapsed_minutes)
    logger.info("session closed id=%s user=%s duration=%s", session.id, user_id, session.duration)
    return session


@storage_boundary
def active_session(db: Database, user_id: int, now: datetime) -> ActiveSession | None:
    try:
        session = db.get_active_session(user_id)
    except ValueError as exc:
        open_id = db.get_open_session_id(user_id)
        raise InvalidSessionState(
            f"Active session {open_id} has a corrupted timestamp; end or restart it"
        ) from exc
    if session is None:
        return None
    try:
        timer = reconcile_session(session, now, _preferences(db, user_id))
    except InvalidSessionState as exc:
        return ActiveSession(session=session, timer=None, timer_error=exc.message)
    return ActiveSession(session=session, timer=timer)


@storage_boundary
def list_sessions(db: Database, user_id: int) -> list[StudySession]:
    return db.list_sessions(user_id)


@storage_boundary
def create_todo(db: Database, user_id: int, title: str, description: str | None, now: datetime) -> Todo:
    clean_title = (title or "").strip()
    if not clean_title:
        raise ValidationError("Todo title is required")
    clean_description = (description or "").strip() or None
    return db.add_todo(user_id, clean_title, clean_description, now)


@storage_boundary
def toggle_todo(db: Database, user_id: int, todo_id: int, completed: bool, now: datetime) -> Todo:
    todo, newly_completed = db.set_todo_status(user_id, todo_id, completed, now)
    if newly_completed:
        logger.info("todo completed id=%s user=%s", todo_id, user_id)
    return todo


@storage_boundary
def delete_todo(db: Database, user_id: int, todo_id: int) -> None:
    db.delete_todo(user_id, todo_id)


@storage_boundary
def list_todos(db: Database, user_id: int) -> list[Todo]:
    return db.list_todos(user_id)


@storage_boundary
def authenticate(db: Database, token: str | None) -> User:
    user = db.get_user_by_token((token or "").strip())
    if user is None:
        raise Unauthorized()
    return user


@storage_boundary
def get_profile(db: Database, user_id: int) -> User:
    return db.get_user(user_id)


@storage_boundary
def update_profile(
    db: Database,
    user_id: int,
    now: datetime,
    full_name: str | None = None,
    preferences: dict[str, Any] | None = None,
) -> User:
    return db.update_profile(user_id, now, full_name=full_name, preferences=preferences)
