from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import httpx
import pytest
from fastapi.testclient import TestClient

from study_tracker.api import build_api_app
from study_tracker.client import StudyApiClient
from study_tracker.db import Database
from study_tracker.errors import (
    InvalidSessionState,
    NotFound,
    TransientIOError,
    Unauthorized,
    ValidationError,
)


def _client(handler) -> StudyApiClient:
    return StudyApiClient("http://study.test/", "secret", transport=httpx.MockTransport(handler))


def test_sends_bearer_token_and_unwraps_entities() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"session": {"id": 7, "session_name": "Math"}})

    client = _client(handler)
    session = client.start_session("Math", "Algebra")
    assert session == {"id": 7, "session_name": "Math"}
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/sessions"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {"session_name": "Math", "subject": "Algebra"}


def test_end_session_sends_elapsed_minutes() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"session": {"id": 3, "duration": 12}})

    client = _client(handler)
    assert client.end_session(3, 12)["duration"] == 12
    client.end_session(3)
    assert bodies == [{"action": "end", "elapsed_minutes": 12}, {"action": "end"}]


def test_complete_phase_names_the_finished_phase() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"session": {"id": 3}, "next_phase": "short-break"})

    client = _client(handler)
    client.complete_phase(3, "work")
    client.complete_phase(3)
    assert bodies == [{"action": "complete_phase", "phase": "work"}, {"action": "complete_phase"}]


@pytest.mark.parametrize(
    ("status", "error"),
    [
        (400, ValidationError),
        (401, Unauthorized),
        (403, Unauthorized),
        (404, NotFound),
        (409, InvalidSessionState),
        (500, TransientIOError),
        (503, TransientIOError),
    ],
)
def test_status_codes_map_to_error_taxonomy(status: int, error: type[Exception]) -> None:
    client = _client(lambda request: httpx.Response(status, json={"error": "boom"}))
    with pytest.raises(error) as exc_info:
        client.list_todos()
    assert exc_info.value.message == "boom"


def test_transport_failures_are_transient() -> None:
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransientIOError):
        _client(refused).list_sessions()
    with pytest.raises(TransientIOError):
        _client(slow).list_sessions()


def test_non_json_error_body_keeps_status_text() -> None:
    client = _client(lambda request: httpx.Response(502, text="Bad Gateway"))
    with pytest.raises(TransientIOError) as exc_info:
        client.get_profile()
    assert exc_info.value.message == "Bad Gateway"


def test_analytics_degrades_to_zero_view_when_server_is_down() -> None:
    client = _client(lambda request: httpx.Response(503, json={"error": "Storage is temporarily unavailable"}))
    body = client.fetch_analytics("week")
    assert body["degraded"] is True
    assert len(body["study_hours"]) == 7
    assert all(day["hours"] == 0 for day in body["study_hours"])
    assert body["task_completion"] == {"completed_percent": 0, "pending_percent": 100}
    assert body["analytics"]["total_study_time"] == 0


def test_analytics_does_not_hide_auth_failures() -> None:
    client = _client(lambda request: httpx.Response(401, json={"error": "Unauthorized"}))
    with pytest.raises(Unauthorized):
        client.fetch_analytics("week")


def test_analytics_rejects_unknown_range_locally() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(ValidationError):
        _client(handler).fetch_analytics("decade")
    assert calls == []


def test_client_against_real_app(tmp_path: Path) -> None:
    db = Database(tmp_path / "study.db")
    _, token = db.provision_user("ada@example.com", "Ada Lovelace", datetime(2026, 3, 1, tzinfo=ZoneInfo("UTC")))
    client = StudyApiClient("http://testserver", token)
    client.close()
    # TestClient is an httpx.Client that dispatches straight into the app.
    client._client = TestClient(build_api_app(db), headers={"Authorization": f"Bearer {token}"})

    with client:
        todo = client.create_todo("Finish reading")
        assert client.set_todo_completed(todo["id"], True)["status"] == "completed"
        assert client.delete_todo(todo["id"]) is True
        assert client.get_profile()["full_name"] == "Ada Lovelace"
        assert client.fetch_analytics("week")["analytics"]["total_completed_tasks"] == 1
