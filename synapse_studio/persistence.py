from __future__ import annotations

import logging
import os
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path

from .difficulty import LevelBounds, clamp_level
from .results import SessionRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
MAX_SESSIONS_STORED = 60
PROGRESS_DB_ENV = "SYNAPSE_PROGRESS_DB"


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    logger.info("migrating progress database from v%d to v%d", ver, SCHEMA_VERSION)
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS exercise_state (
                exercise_id TEXT PRIMARY KEY,
                difficulty REAL NOT NULL,
                updated_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session (
                id INTEGER PRIMARY KEY,
                exercise_id TEXT NOT NULL,
                recorded_at_utc TEXT NOT NULL,
                accuracy REAL NOT NULL,
                average_response_ms REAL NOT NULL,
                level INTEGER NOT NULL,
                total_trials INTEGER NOT NULL,
                total_decisions INTEGER NOT NULL,
                correct_count INTEGER NOT NULL,
                timeout_count INTEGER NOT NULL,
                label TEXT NOT NULL,
                summary TEXT NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_session_exercise ON session(exercise_id, id);")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS app_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


@dataclass(frozen=True, slots=True)
class StoredSession:
    recorded_at_utc: str
    record: SessionRecord


@dataclass(frozen=True, slots=True)
class ExerciseStats:
    total: int
    best: StoredSession | None
    latest: StoredSession | None


class ProgressStore:
    """sqlite-backed progress: per-exercise difficulty plus a capped session log."""

    def __init__(self, path: Path, *, max_sessions: int = MAX_SESSIONS_STORED) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        self._path = Path(path)
        self._max_sessions = int(max_sessions)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        open_db(self._path).close()

    @classmethod
    def default_path(cls) -> Path:
        explicit = os.environ.get(PROGRESS_DB_ENV)
        if explicit:
            return Path(explicit).expanduser()
        return Path.home() / ".synapse_studio_progress.sqlite3"

    @property
    def path(self) -> Path:
        return self._path

    def difficulty(self, exercise_id: str, fallback: float) -> float:
        conn = open_db(self._path)
        try:
            row = conn.execute(
                "SELECT difficulty FROM exercise_state WHERE exercise_id = ?",
                (exercise_id,),
            ).fetchone()
            if row is not None:
                return float(row[0])
            with conn:
                conn.execute(
                    "INSERT INTO exercise_state(exercise_id, difficulty, updated_at_utc) VALUES (?, ?, ?)",
                    (exercise_id, float(fallback), _utc_now_iso()),
                )
            return float(fallback)
        finally:
            conn.close()

    def update_difficulty(self, exercise_id: str, value: float) -> float:
        conn = open_db(self._path)
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO exercise_state(exercise_id, difficulty, updated_at_utc)
                    VALUES (?, ?, ?)
                    ON CONFLICT(exercise_id) DO UPDATE SET
                        difficulty = excluded.difficulty,
                        updated_at_utc = excluded.updated_at_utc
                    """,
                    (exercise_id, float(value), _utc_now_iso()),
                )
            return float(value)
        finally:
            conn.close()

    def record_session(self, exercise_id: str, record: SessionRecord) -> int:
        conn = open_db(self._path)
        try:
            with conn:
                cur = conn.execute(
                    """
                    INSERT INTO session(
                        exercise_id, recorded_at_utc, accuracy, average_response_ms, level,
                        total_trials, total_decisions, correct_count, timeout_count,
                        label, summary
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        exercise_id,
                        _utc_now_iso(),
                        float(record.accuracy),
                        float(record.average_response_ms),
                        int(record.level),
                        int(record.total_trials),
                        int(record.total_decisions),
                        int(record.correct_count),
                        int(record.timeout_count),
                        record.label,
                        record.summary,
                    ),
                )
                session_id = int(cur.lastrowid)
                # Keep only the newest max_sessions rows per exercise.
                conn.execute(
                    """
                    DELETE FROM session
                    WHERE exercise_id = ? AND id NOT IN (
                        SELECT id FROM session WHERE exercise_id = ? ORDER BY id DESC LIMIT ?
                    )
                    """,
                    (exercise_id, exercise_id, self._max_sessions),
                )
            return session_id
        finally:
            conn.close()

    def sessions(self, exercise_id: str) -> list[StoredSession]:
        """Stored sessions for an exercise, oldest first."""

        conn = open_db(self._path)
        try:
            rows = conn.execute(
                """
                SELECT recorded_at_utc, accuracy, average_response_ms, level, total_trials,
                       total_decisions, correct_count, timeout_count, label, summary
                FROM session WHERE exercise_id = ? ORDER BY id ASC
                """,
                (exercise_id,),
            ).fetchall()
        finally:
            conn.close()

        return [
            StoredSession(
                recorded_at_utc=str(r[0]),
                record=SessionRecord(
                    exercise_id=exercise_id,
                    accuracy=float(r[1]),
                    average_response_ms=float(r[2]),
                    level=int(r[3]),
                    total_trials=int(r[4]),
                    total_decisions=int(r[5]),
                    correct_count=int(r[6]),
                    timeout_count=int(r[7]),
                    label=str(r[8]),
                    summary=str(r[9]),
                ),
            )
            for r in rows
        ]

    def stats(self, exercise_id: str) -> ExerciseStats:
        sessions = self.sessions(exercise_id)
        best: StoredSession | None = None
        for s in sessions:
            if best is None or s.record.score > best.record.score:
                best = s
        latest = sessions[-1] if sessions else None
        return ExerciseStats(total=len(sessions), best=best, latest=latest)

    def reset_exercise(self, exercise_id: str) -> None:
        conn = open_db(self._path)
        try:
            with conn:
                conn.execute("DELETE FROM session WHERE exercise_id = ?", (exercise_id,))
                conn.execute("DELETE FROM exercise_state WHERE exercise_id = ?", (exercise_id,))
        finally:
            conn.close()

    def reset_all(self) -> None:
        conn = open_db(self._path)
        try:
            with conn:
                conn.execute("DELETE FROM session")
                conn.execute("DELETE FROM exercise_state")
                conn.execute("DELETE FROM app_state")
        finally:
            conn.close()

    def last_exercise_id(self) -> str | None:
        conn = open_db(self._path)
        try:
            row = conn.execute("SELECT value FROM app_state WHERE key = 'last_exercise_id'").fetchone()
        finally:
            conn.close()
        return None if row is None else str(row[0])

    def set_last_exercise_id(self, exercise_id: str) -> None:
        conn = open_db(self._path)
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO app_state(key, value) VALUES ('last_exercise_id', ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (exercise_id,),
                )
        finally:
            conn.close()

    def bind(self, exercise_id: str, *, initial_level: int, bounds: LevelBounds | None = None) -> "ExerciseProgress":
        return ExerciseProgress(self, exercise_id, initial_level=initial_level, bounds=bounds)


class ExerciseProgress:
    """One exercise's view of the store: the difficulty source and session sink."""

    def __init__(
        self,
        store: ProgressStore,
        exercise_id: str,
        *,
        initial_level: int,
        bounds: LevelBounds | None = None,
    ) -> None:
        self._store = store
        self._exercise_id = exercise_id
        self._initial_level = int(initial_level)
        self._bounds = bounds

    @property
    def exercise_id(self) -> str:
        return self._exercise_id

    def get_difficulty(self) -> float:
        return self._store.difficulty(self._exercise_id, self._initial_level)

    def update_difficulty(self, next_level: int) -> float:
        value: float = next_level
        if self._bounds is not None:
            value = clamp_level(next_level, self._bounds)
        return self._store.update_difficulty(self._exercise_id, value)

    def record_session(self, record: SessionRecord) -> None:
        self._store.record_session(self._exercise_id, record)

    def stats(self) -> ExerciseStats:
        return self._store.stats(self._exercise_id)
