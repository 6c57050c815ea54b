from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from study_tracker.db import Database
from study_tracker.errors import ValidationError


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Europe/Oslo"))


def _setup(tmp_path: Path) -> tuple[Database, int]:
    db = Database(tmp_path / "study.db")
    user, _ = db.provision_user("ada@example.com", "Ada Lovelace", _dt(2026, 3, 1))
    return db, user.id


def test_provisioning_creates_zero_aggregate(tmp_path: Path) -> None:
    db, uid = _setup(tmp_path)
    agg = db.get_analytics(uid)
    assert agg.user_id == uid
    assert agg.total_sessions == 0
    assert agg.total_study_time == 0
    assert agg.total_completed_tasks == 0
    assert agg.subjects_breakdown == {}
    assert agg.updated_at == _dt(2026, 3, 1)


def test_duplicate_email_is_rejected(tmp_path: Path) -> None:
    db, _ = _setup(tmp_path)
    with pytest.raises(ValidationError):
        db.provision_user("ADA@example.com", "Someone Else", _dt(2026, 3, 1))


def test_invalid_identity_is_rejected(tmp_path: Path) -> None:
    db = Database(tmp_path / "study.db")
    with pytest.raises(ValidationError):
        db.provision_user("not-an-email", "Ada Lovelace", _dt(2026, 3, 1))
    with pytest.raises(ValidationError):
        db.provision_user("ada@example.com", " A ", _dt(2026, 3, 1))


def test_session_closed_folds_into_subjects(tmp_path: Path) -> None:
    db, uid = _setup(tmp_path)
    db.record_session_closed(uid, "Math", 25, _dt(2026, 3, 2))
    db.record_session_closed(uid, "Physics", 40, _dt(2026, 3, 2, 11))
    agg = db.record_session_closed(uid, "Math", 15, _dt(2026, 3, 2, 12))
    assert agg.total_sessions == 3
    assert agg.total_study_time == 80
    assert agg.subjects_breakdown == {"Math": 40, "Physics": 40}
    assert agg.updated_at == _dt(2026, 3, 2, 12)


def test_fold_order_of_subjects_does_not_matter(tmp_path: Path) -> None:
    first = Database(tmp_path / "a.db")
    second = Database(tmp_path / "b.db")
    a, _ = first.provision_user("a@example.com", "User A", _dt(2026, 3, 1))
    b, _ = second.provision_user("b@example.com", "User B", _dt(2026, 3, 1))
    events = [("Math", 25), ("History", 10), ("Math", 5)]
    for subject, minutes in events:
        first.record_session_closed(a.id, subject, minutes, _dt(2026, 3, 2))
    for subject, minutes in reversed(events):
        second.record_session_closed(b.id, subject, minutes, _dt(2026, 3, 2))
    left, right = first.get_analytics(a.id), second.get_analytics(b.id)
    assert left.subjects_breakdown == right.subjects_breakdown == {"Math": 30, "History": 10}
    assert left.total_study_time == right.total_study_time == 40
    assert left.total_sessions == right.total_sessions == 3


def test_zero_minute_session_still_counts(tmp_path: Path) -> None:
    db, uid = _setup(tmp_path)
    agg = db.record_session_closed(uid, "Math", 0, _dt(2026, 3, 2))
    assert agg.total_sessions == 1
    assert agg.total_study_time == 0
    assert agg.subjects_breakdown == {"Math": 0}


def test_missing_aggregate_row_is_created_on_first_event(tmp_path: Path) -> None:
    db, uid = _setup(tmp_path)
    with db._connect() as conn:
        conn.execute("DELETE FROM analytics WHERE user_id = ?", (uid,))
    assert db.get_analytics(uid).total_completed_tasks == 0
    agg = db.record_task_completed(uid, _dt(2026, 3, 2))
    assert agg.total_completed_tasks == 1
    assert agg.total_sessions == 0


def test_concurrent_updates_never_lose_increments(tmp_path: Path) -> None:
    db, uid = _setup(tmp_path)
    workers = 8
    per_worker = 10
    errors: list[BaseException] = []

    def _run(index: int) -> None:
        try:
            for _ in range(per_worker):
                db.record_session_closed(uid, f"Subject {index % 2}", 3, _dt(2026, 3, 2))
                db.record_task_completed(uid, _dt(2026, 3, 2))
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=_run, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    agg = db.get_analytics(uid)
    assert agg.total_sessions == workers * per_worker
    assert agg.total_study_time == workers * per_worker * 3
    assert agg.total_completed_tasks == workers * per_worker
    assert sum(agg.subjects_breakdown.values()) == workers * per_worker * 3
