from __future__ import annotations

import logging
from typing import Any

import httpx

from study_tracker.analytics import empty_analytics_view, range_days
from study_tracker.errors import (
    InvalidSessionState,
    NotFound,
    StudyError,
    TransientIOError,
    Unauthorized,
    ValidationError,
)
from study_tracker.payloads import analytics_payload
from study_tracker.time_utils import resolve_tz, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return f"HTTP {resp.status_code}"


def _raise_for_status(resp: httpx.Response) -> None:
    status = resp.status_code
    if status < 400:
        return
    message = _error_message(resp)
    if status == 400:
        raise ValidationError(message)
    if status in (401, 403):
        raise Unauthorized(message)
    if status == 404:
        raise NotFound(message)
    if status == 409:
        raise InvalidSessionState(message)
    if status >= 500:
        raise TransientIOError(message)
    raise StudyError(message)


class StudyApiClient:
    """Blocking client for the study tracker REST API."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> StudyApiClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientIOError("The server did not answer in time, please retry") from exc
        except httpx.TransportError as exc:
            raise TransientIOError("Could not reach the server, please retry") from exc
        _raise_for_status(resp)
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransientIOError("The server sent an unreadable response") from exc
        if not isinstance(data, dict):
            raise TransientIOError("The server sent an unexpected response")
        return data

    # Sessions

    def start_session(self, session_name: str, subject: str | None = None) -> dict[str, Any]:
        data = self._request("POST", "/sessions", json={"session_name": session_name, "subject": subject})
        return data["session"]

    def complete_phase(self, session_id: int, phase: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"action": "complete_phase"}
        if phase is not None:
            body["phase"] = phase
        return self._request("PUT", f"/sessions/{session_id}", json=body)

    def end_session(self, session_id: int, elapsed_minutes: int | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"action": "end"}
        if elapsed_minutes is not None:
            body["elapsed_minutes"] = elapsed_minutes
        return self._request("PUT", f"/sessions/{session_id}", json=body)["session"]

    def list_sessions(self) -> list[dict[str, Any]]:
        return self._request("GET", "/sessions")["sessions"]

    def active_session(self) -> dict[str, Any]:
        return self._request("GET", "/sessions/active")

    # Todos

    def list_todos(self) -> list[dict[str, Any]]:
        return self._request("GET", "/todos")["todos"]

    def create_todo(self, title: str, description: str | None = None) -> dict[str, Any]:
        return self._request("POST", "/todos", json={"title": title, "description": description})["todo"]

    def set_todo_completed(self, todo_id: int, completed: bool) -> dict[str, Any]:
        return self._request("PUT", f"/todos/{todo_id}", json={"completed": completed})["todo"]

    def delete_todo(self, todo_id: int) -> bool:
        return bool(self._request("DELETE", f"/todos/{todo_id}").get("success"))

    # Analytics and profile

    def fetch_analytics(self, range_name: str = "week", tz: str | None = None) -> dict[str, Any]:
        range_days(range_name)
        params = {"range": range_name}
        if tz:
            params["tz"] = tz
        try:
            return self._request("GET", "/analytics", params=params)
        except TransientIOError as exc:
            logger.warning("analytics unavailable, showing defaults: %s", exc.message)
            return analytics_payload(empty_analytics_view(0, range_name, utc_now(), resolve_tz(tz)))

    def fetch_dashboard(self) -> dict[str, Any]:
        return self._request("GET", "/dashboard")

    def get_profile(self) -> dict[str, Any]:
        return self._request("GET", "/user/profile")["user"]

    def update_profile(
        self,
        full_name: str | None = None,
        preferences: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"preferences": preferences or {}}
        if full_name is not None:
            body["full_name"] = full_name
        return self._request("PUT", "/user/profile", json=body)["user"]
