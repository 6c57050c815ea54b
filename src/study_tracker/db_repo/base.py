from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from study_tracker.time_utils import to_storage, utc_now

BUSY_TIMEOUT_SECONDS = 10.0


class BaseDatabase:
    def __init__(self, path: Path, busy_timeout: float = BUSY_TIMEOUT_SECONDS) -> None:
        self.path = path
        self.busy_timeout = busy_timeout
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self, mode: str = "IMMEDIATE") -> Iterator[sqlite3.Connection]:
        """Transaction that takes the database write lock up front by default.

        Read-modify-write cycles on shared rows (analytics counters, session
        close) run here so two writers for the same owner are serialized.
        ``mode="DEFERRED"`` gives multi-statement reads one consistent snapshot.
        """
        conn = self._connect()
        try:
            conn.execute(f"BEGIN {mode}")
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE users (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        email TEXT NOT NULL UNIQUE,
                        full_name TEXT NOT NULL,
                        api_token TEXT NOT NULL UNIQUE,
                        preferences TEXT NOT NULL DEFAULT '{}',
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE sessions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                        session_name TEXT NOT NULL,
                        subject TEXT NOT NULL,
                        duration INTEGER NOT NULL DEFAULT 0 CHECK(duration >= 0),
                        start_time TEXT NOT NULL,
                        end_time TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    CREATE INDEX idx_sessions_user_created ON sessions(user_id, created_at);
                    CREATE INDEX idx_sessions_user_subject ON sessions(user_id, subject);
                    CREATE UNIQUE INDEX idx_sessions_one_open
                        ON sessions(user_id) WHERE end_time IS NULL;

                    CREATE TABLE todos (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                        title TEXT NOT NULL,
                        description TEXT,
                        status TEXT NOT NULL DEFAULT 'pending' CHECK(status IN ('pending', 'completed')),
                        created_at TEXT NOT NULL,
                        completed_at TEXT,
                        updated_at TEXT NOT NULL,
                        CHECK((status = 'completed') = (completed_at IS NOT NULL))
                    );

                    CREATE INDEX idx_todos_user_created ON todos(user_id, created_at);

                    CREATE TABLE analytics (
                        user_id INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
                        total_sessions INTEGER NOT NULL DEFAULT 0 CHECK(total_sessions >= 0),
                        total_study_time INTEGER NOT NULL DEFAULT 0 CHECK(total_study_time >= 0),
                        total_completed_tasks INTEGER NOT NULL DEFAULT 0 CHECK(total_completed_tasks >= 0),
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE analytics_subjects (
                        user_id INTEGER NOT NULL REFERENCES analytics(user_id) ON DELETE CASCADE,
                        subject TEXT NOT NULL,
                        minutes INTEGER NOT NULL DEFAULT 0 CHECK(minutes >= 0),
                        PRIMARY KEY(user_id, subject)
                    );
                """,
                2: """
                    ALTER TABLE sessions ADD COLUMN phase TEXT NOT NULL DEFAULT 'work';
                    ALTER TABLE sessions ADD COLUMN cycle_count INTEGER NOT NULL DEFAULT 0;
                    ALTER TABLE sessions ADD COLUMN phase_started_at TEXT;

                    UPDATE sessions SET phase_started_at = start_time WHERE end_time IS NULL;
                """,
            }

            now = to_storage(utc_now())
            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, now),
                )
