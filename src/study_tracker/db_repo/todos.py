from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol

from study_tracker.db_constants import TODO_COMPLETED, TODO_PENDING
from study_tracker.db_converters import _row_to_todo
from study_tracker.db_models import Todo
from study_tracker.errors import NotFound
from study_tracker.time_utils import to_storage


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def _transaction(self, mode: str = ...) -> AbstractContextManager[sqlite3.Connection]: ...
    def _apply_task_completed(self, conn: sqlite3.Connection, user_id: int, now: datetime) -> None: ...


class TodoMixin:
    def add_todo(
        self: DbProtocol,
        user_id: int,
        title: str,
        description: str | None,
        now: datetime,
    ) -> Todo:
        stamp = to_storage(now)
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO todos(user_id, title, description, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, title, description, TODO_PENDING, stamp, stamp),
            )
            row = conn.execute("SELECT * FROM todos WHERE id = ?", (cur.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_todo(row)

    def list_todos(self: DbProtocol, user_id: int) -> list[Todo]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM todos WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [_row_to_todo(r) for r in rows]

    def set_todo_status(
        self: DbProtocol,
        user_id: int,
        todo_id: int,
        completed: bool,
        now: datetime,
    ) -> tuple[Todo, bool]:
        """Returns the updated todo and whether it just moved from pending to completed."""
        stamp = to_storage(now)
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM todos WHERE id = ? AND user_id = ?",
                (todo_id, user_id),
            ).fetchone()
            if row is None:
                raise NotFound("Todo not found")

            newly_completed = completed and row["status"] != TODO_COMPLETED
            if completed:
                completed_at = row["completed_at"] if row["status"] == TODO_COMPLETED else stamp
                status = TODO_COMPLETED
            else:
                completed_at = None
                status = TODO_PENDING
            conn.execute(
                "UPDATE todos SET status = ?, completed_at = ?, updated_at = ? WHERE id = ?",
                (status, completed_at, stamp, todo_id),
            )
            if newly_completed:
                self._apply_task_completed(conn, user_id, now)
            updated = conn.execute("SELECT * FROM todos WHERE id = ?", (todo_id,)).fetchone()
        assert updated is not None
        return _row_to_todo(updated), newly_completed

    def delete_todo(self: DbProtocol, user_id: int, todo_id: int) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM todos WHERE id = ? AND user_id = ?",
                (todo_id, user_id),
            )
        if cur.rowcount == 0:
            raise NotFound("Todo not found")

