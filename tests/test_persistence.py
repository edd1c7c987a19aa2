from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

import pytest

from synapse_studio.difficulty import LevelBounds
from synapse_studio.persistence import (
    PROGRESS_DB_ENV,
    SCHEMA_VERSION,
    ProgressStore,
)
from synapse_studio.results import SessionRecord
from synapse_studio.round_controller import RoundController
from synapse_studio.task_switch import SIDE, TaskSwitchRuleset, TaskSwitchStimulus, expected_side


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def _record(accuracy: float, *, level: int = 1, exercise_id: str = "stroop-focus") -> SessionRecord:
    return SessionRecord(
        exercise_id=exercise_id,
        accuracy=accuracy,
        average_response_ms=1200.0,
        level=level,
        total_trials=10,
        total_decisions=10,
        correct_count=int(accuracy // 10),
        timeout_count=0,
        label=f"{accuracy:.0f}% accuracy",
        summary=f"{accuracy:.0f}% summary",
    )


def test_schema_version_is_set(tmp_path: Path) -> None:
    path = tmp_path / "progress.sqlite3"
    ProgressStore(path)
    conn = sqlite3.connect(path)
    try:
        assert conn.execute("PRAGMA user_version;").fetchone()[0] == SCHEMA_VERSION
    finally:
        conn.close()


def test_difficulty_falls_back_and_persists(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "p.sqlite3")
    assert store.difficulty("dual-n-back", 1) == 1.0
    # The fallback is only used for the first read.
    assert store.difficulty("dual-n-back", 3) == 1.0

    assert store.update_difficulty("dual-n-back", 2) == 2.0
    reopened = ProgressStore(tmp_path / "p.sqlite3")
    assert reopened.difficulty("dual-n-back", 1) == 2.0


def test_session_log_is_capped_per_exercise(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "p.sqlite3", max_sessions=3)
    for acc in (10.0, 20.0, 30.0, 40.0, 50.0):
        store.record_session("stroop-focus", _record(acc))
    store.record_session("task-switch", _record(99.0, exercise_id="task-switch"))

    kept = [s.record.accuracy for s in store.sessions("stroop-focus")]
    assert kept == [30.0, 40.0, 50.0]
    assert len(store.sessions("task-switch")) == 1


def test_stats_track_best_and_latest(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "p.sqlite3")
    empty = store.stats("stroop-focus")
    assert empty.total == 0 and empty.best is None and empty.latest is None

    for acc in (60.0, 92.0, 75.0):
        store.record_session("stroop-focus", _record(acc))
    stats = store.stats("stroop-focus")
    assert stats.total == 3
    assert stats.best is not None and stats.best.record.accuracy == 92.0
    assert stats.latest is not None and stats.latest.record.accuracy == 75.0
    assert stats.latest.record.label == "75% accuracy"


def test_reset_exercise_and_reset_all(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "p.sqlite3")
    store.update_difficulty("stroop-focus", 3)
    store.update_difficulty("task-switch", 2)
    store.record_session("stroop-focus", _record(80.0))
    store.record_session("task-switch", _record(80.0, exercise_id="task-switch"))
    store.set_last_exercise_id("task-switch")

    store.reset_exercise("stroop-focus")
    assert store.sessions("stroop-focus") == []
    assert store.difficulty("stroop-focus", 1) == 1.0
    assert store.difficulty("task-switch", 1) == 2.0

    store.reset_all()
    assert store.sessions("task-switch") == []
    assert store.difficulty("task-switch", 1) == 1.0
    assert store.last_exercise_id() is None


def test_last_exercise_id_round_trip(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "p.sqlite3")
    assert store.last_exercise_id() is None
    store.set_last_exercise_id("dual-n-back")
    store.set_last_exercise_id("stroop-focus")
    assert store.last_exercise_id() == "stroop-focus"


def test_bound_progress_clamps_writes(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "p.sqlite3")
    progress = store.bind("stroop-focus", initial_level=1, bounds=LevelBounds(1, 4))
    assert progress.exercise_id == "stroop-focus"
    assert progress.get_difficulty() == 1.0
    assert progress.update_difficulty(9) == 4.0
    assert store.difficulty("stroop-focus", 1) == 4.0


def test_default_path_honours_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "custom.sqlite3"
    monkeypatch.setenv(PROGRESS_DB_ENV, str(target))
    assert ProgressStore.default_path() == target


def test_invalid_session_cap_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        ProgressStore(tmp_path / "p.sqlite3", max_sessions=0)


def test_controller_round_persists_through_store(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "p.sqlite3")
    ruleset = TaskSwitchRuleset(seed=11)
    progress = store.bind(ruleset.exercise_id, initial_level=1, bounds=ruleset.bounds)
    clock = FakeClock()
    ctl = RoundController(ruleset=ruleset, clock=clock, difficulty=progress, sink=progress)

    ctl.start()
    while ctl.current_trial is not None:
        stim = ctl.current_trial.stimulus
        assert isinstance(stim, TaskSwitchStimulus)
        clock.advance(1.0)
        ctl.submit_response({SIDE: expected_side(stim)})

    assert ctl.next_level == 2
    assert store.difficulty(ruleset.exercise_id, 1) == 2.0
    stats = progress.stats()
    assert stats.total == 1
    assert stats.latest is not None
    assert stats.latest.record.accuracy == 100.0
    assert stats.latest.record.level == 1
    assert stats.latest.record.total_trials == 12
