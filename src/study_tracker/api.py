from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Literal

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from study_tracker import service
from study_tracker.analytics import build_analytics_view, build_dashboard
from study_tracker.config import Settings, load_settings
from study_tracker.db import Database
from study_tracker.db_models import User
from study_tracker.errors import (
    InvalidSessionState,
    NotFound,
    StudyError,
    TransientIOError,
    Unauthorized,
    ValidationError,
)
from study_tracker.logging_setup import setup_logging
from study_tracker.payloads import (
    active_session_payload,
    analytics_payload,
    dashboard_payload,
    session_payload,
    todo_payload,
    user_payload,
)
from study_tracker.time_utils import utc_now

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[StudyError], int] = {
    ValidationError: 400,
    Unauthorized: 401,
    NotFound: 404,
    InvalidSessionState: 409,
    TransientIOError: 503,
}


def _status_for(exc: StudyError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class StartSessionRequest(BaseModel):
    session_name: str
    subject: str | None = None


class UpdateSessionRequest(BaseModel):
    action: Literal["complete_phase", "end"]
    elapsed_minutes: int | None = Field(default=None, ge=0)
    phase: Literal["work", "short-break", "long-break"] | None = None


class CreateTodoRequest(BaseModel):
    title: str
    description: str | None = None


class UpdateTodoRequest(BaseModel):
    completed: bool


class UpdateProfileRequest(BaseModel):
    full_name: str | None = None
    preferences: dict[str, Any] = Field(default_factory=dict)


def build_api_app(
    db: Database,
    default_tz: str = "UTC",
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    app = FastAPI(title="Study Tracker API", version="1.0.0")

    @app.exception_handler(StudyError)
    async def study_error_handler(request: Request, exc: StudyError) -> JSONResponse:
        return JSONResponse(status_code=_status_for(exc), content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": str(detail)})

    def current_user(request: Request) -> User:
        return service.authenticate(db, _bearer_token(request))

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    @app.post("/sessions", status_code=201)
    def create_session(payload: StartSessionRequest, user: User = Depends(current_user)) -> dict[str, Any]:
        session = service.start_session(db, user.id, payload.session_name, payload.subject, clock())
        return {"session": session_payload(session)}

    @app.get("/sessions")
    def list_sessions(user: User = Depends(current_user)) -> dict[str, Any]:
        return {"sessions": [session_payload(s) for s in service.list_sessions(db, user.id)]}

    @app.get("/sessions/active")
    def get_active_session(user: User = Depends(current_user)) -> dict[str, Any]:
        return active_session_payload(service.active_session(db, user.id, clock()))

    @app.put("/sessions/{session_id}")
    def update_session(
        session_id: int,
        payload: UpdateSessionRequest,
        user: User = Depends(current_user),
    ) -> dict[str, Any]:
        now = clock()
        if payload.action == "complete_phase":
            outcome = service.complete_phase(db, user.id, session_id, now, phase=payload.phase)
            return {
                "session": session_payload(outcome.session),
                "finished_phase": outcome.finished_phase,
                "next_phase": outcome.next_phase,
                "minutes_added": outcome.minutes_added,
            }
        session = service.end_session(db, user.id, session_id, now, payload.elapsed_minutes)
        return {"session": session_payload(session)}

    @app.get("/todos")
    def list_todos(user: User = Depends(current_user)) -> dict[str, Any]:
        return {"todos": [todo_payload(t) for t in service.list_todos(db, user.id)]}

    @app.post("/todos", status_code=201)
    def create_todo(payload: CreateTodoRequest, user: User = Depends(current_user)) -> dict[str, Any]:
        todo = service.create_todo(db, user.id, payload.title, payload.description, clock())
        return {"todo": todo_payload(todo)}

    @app.put("/todos/{todo_id}")
    def update_todo(
        todo_id: int,
        payload: UpdateTodoRequest,
        user: User = Depends(current_user),
    ) -> dict[str, Any]:
        todo = service.toggle_todo(db, user.id, todo_id, payload.completed, clock())
        return {"todo": todo_payload(todo)}

    @app.delete("/todos/{todo_id}")
    def delete_todo(todo_id: int, user: User = Depends(current_user)) -> dict[str, Any]:
        service.delete_todo(db, user.id, todo_id)
        return {"success": True}

    @app.get("/analytics")
    def get_analytics(
        range_name: str = Query("week", alias="range"),
        tz: str | None = None,
        user: User = Depends(current_user),
    ) -> dict[str, Any]:
        view = build_analytics_view(db, user.id, clock(), range_name=range_name, tz_name=tz or default_tz)
        return analytics_payload(view)

    @app.get("/dashboard")
    def get_dashboard(tz: str | None = None, user: User = Depends(current_user)) -> dict[str, Any]:
        now = clock()
        view = build_dashboard(db, user.id, now, tz_name=tz or default_tz)
        try:
            active = active_session_payload(service.active_session(db, user.id, now))
        except StudyError as exc:
            logger.warning("dashboard without active session for user=%s: %s", user.id, exc.message)
            active = {"session": None, "timer": None}
        return dashboard_payload(view, active)

    @app.get("/user/profile")
    def get_profile(user: User = Depends(current_user)) -> dict[str, Any]:
        return {"user": user_payload(service.get_profile(db, user.id))}

    @app.put("/user/profile")
    def update_profile(payload: UpdateProfileRequest, user: User = Depends(current_user)) -> dict[str, Any]:
        updated = service.update_profile(
            db,
            user.id,
            clock(),
            full_name=payload.full_name,
            preferences=payload.preferences,
        )
        return {"user": user_payload(updated)}

    return app


def run_api(settings: Settings | None = None) -> None:
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    app = build_api_app(db, default_tz=settings.tz)
    logger.info("serving study tracker api on %s:%s", settings.api_host, settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
