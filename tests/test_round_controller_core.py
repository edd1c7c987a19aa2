from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from synapse_studio.clock import TrialClock
from synapse_studio.cognitive_core import Outcome, Phase, Trial
from synapse_studio.difficulty import clamp_level
from synapse_studio.results import SessionRecord
from synapse_studio.round_controller import RoundController
from synapse_studio.stroop_focus import INK, StroopFocusRuleset, StroopLevel, StroopStimulus


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


@dataclass
class FakeProgress:
    stored: float = 1.0
    updates: list[int] = field(default_factory=list)
    records: list[SessionRecord] = field(default_factory=list)

    def get_difficulty(self) -> float:
        return self.stored

    def update_difficulty(self, next_level: int) -> float:
        self.updates.append(next_level)
        self.stored = float(next_level)
        return self.stored

    def record_session(self, record: SessionRecord) -> None:
        self.records.append(record)


SHORT = (
    StroopLevel(colours=4, prompts=3, limit_ms=1000.0),
    StroopLevel(colours=5, prompts=3, limit_ms=1000.0),
)


def _answer_all(ctl: RoundController, clock: FakeClock, *, correct: bool = True) -> None:
    while ctl.phase is Phase.RUNNING:
        trial = ctl.current_trial
        assert trial is not None
        stim = trial.stimulus
        assert isinstance(stim, StroopStimulus)
        clock.advance(0.25)
        ctl.submit_response({INK: stim.ink.name if correct else stim.word.name})


def test_submit_outside_running_is_ignored() -> None:
    clock = FakeClock()
    ctl = RoundController(ruleset=StroopFocusRuleset(seed=1, levels=SHORT), clock=clock)

    assert ctl.submit_response({INK: "Red"}) is False
    assert ctl.phase is Phase.IDLE

    ctl.start()
    _answer_all(ctl, clock)
    assert ctl.phase is Phase.COMPLETE
    assert ctl.submit_response({INK: "Red"}) is False
    record = ctl.last_record
    assert record is not None
    assert record.total_trials == 3


def test_start_while_running_is_ignored() -> None:
    clock = FakeClock()
    ctl = RoundController(ruleset=StroopFocusRuleset(seed=1, levels=SHORT), clock=clock)
    ctl.start(level=1)
    first = ctl.current_trial
    ctl.start(level=2)
    assert ctl.level == 1
    assert ctl.current_trial == first


def test_reset_is_idempotent_and_leaves_clock_disarmed() -> None:
    clock = FakeClock()
    outcomes: list[Outcome] = []
    progress = FakeProgress()
    ctl = RoundController(
        ruleset=StroopFocusRuleset(seed=1, levels=SHORT),
        clock=clock,
        difficulty=progress,
        sink=progress,
        on_outcome=outcomes.append,
    )

    ctl.reset()
    ctl.reset()
    assert ctl.phase is Phase.IDLE

    ctl.start()
    ctl.reset()
    ctl.reset()
    assert ctl.phase is Phase.IDLE
    assert ctl.current_trial is None
    assert ctl.time_remaining_ms() is None
    assert ctl.trials == ()

    clock.advance(10.0)
    ctl.update()
    assert outcomes == []
    assert progress.records == []
    assert progress.updates == []


def test_new_round_after_completion_resets_counters() -> None:
    clock = FakeClock()
    ctl = RoundController(ruleset=StroopFocusRuleset(seed=1, levels=SHORT), clock=clock)

    ctl.start(level=1)
    clock.advance(1.0)
    ctl.update()
    _answer_all(ctl, clock)
    first = ctl.last_record
    assert first is not None and first.timeout_count == 1

    ctl.start(level=1)
    assert ctl.phase is Phase.RUNNING
    assert ctl.last_record is None
    assert ctl.timeout_count == 0
    assert ctl.progress == (1, 3)


def test_stored_difficulty_is_clamped_and_next_level_persisted() -> None:
    clock = FakeClock()
    progress = FakeProgress(stored=9.0)
    completions: list[tuple[SessionRecord, int]] = []
    ruleset = StroopFocusRuleset(seed=3, levels=SHORT)
    ctl = RoundController(
        ruleset=ruleset,
        clock=clock,
        difficulty=progress,
        sink=progress,
        on_complete=lambda record, nxt: completions.append((record, nxt)),
    )
    assert ctl.level == 2

    ctl.start()
    _answer_all(ctl, clock, correct=False)

    assert len(progress.records) == 1
    assert progress.records[0].level == 2
    assert progress.updates == [1]
    assert ctl.level == 1
    assert completions == [(progress.records[0], 1)]


def test_unchanged_level_does_not_touch_store() -> None:
    clock = FakeClock()
    progress = FakeProgress(stored=2.0)
    ctl = RoundController(
        ruleset=StroopFocusRuleset(seed=3, levels=SHORT), clock=clock, difficulty=progress, sink=progress
    )
    ctl.start()
    _answer_all(ctl, clock)

    assert ctl.next_level == 2
    assert progress.updates == []
    assert len(progress.records) == 1


def test_store_may_override_suggested_level() -> None:
    class CappedProgress(FakeProgress):
        def update_difficulty(self, next_level: int) -> float:
            self.updates.append(next_level)
            return 7.0  # out of range; the controller clamps it

    clock = FakeClock()
    progress = CappedProgress(stored=1.0)
    ruleset = StroopFocusRuleset(seed=3, levels=SHORT)
    ctl = RoundController(ruleset=ruleset, clock=clock, difficulty=progress, sink=progress)
    ctl.start()
    _answer_all(ctl, clock)

    assert progress.updates == [2]
    assert ctl.level == clamp_level(7.0, ruleset.bounds) == 2


def test_trial_hook_reports_deadline_and_sequence_never_exceeds_total() -> None:
    clock = FakeClock()
    seen: list[tuple[Trial, float]] = []
    ctl = RoundController(
        ruleset=StroopFocusRuleset(seed=1, levels=SHORT),
        clock=clock,
        on_trial=lambda trial, deadline: seen.append((trial, deadline)),
    )
    ctl.start(level=1)
    for _ in range(10):
        clock.advance(1.0)
        ctl.update()

    assert [t.index for t, _ in seen] == [0, 1, 2]
    assert all(deadline == 1000.0 for _, deadline in seen)
    assert len(ctl.trials) == 3
    assert ctl.timeout_count == 3


def test_submission_at_deadline_beats_pending_timeout() -> None:
    clock = FakeClock()
    ctl = RoundController(ruleset=StroopFocusRuleset(seed=1, levels=SHORT), clock=clock)
    ctl.start(level=1)

    clock.advance(1.0)
    assert ctl.submit_response({INK: "Red"}) is True
    ctl.update()

    assert ctl.timeout_count == 0
    assert ctl.progress == (2, 3)


def test_outcome_hook_may_abandon_the_round() -> None:
    clock = FakeClock()
    progress = FakeProgress()
    holder: list[RoundController] = []

    def on_outcome(outcome: Outcome) -> None:
        holder[0].reset()

    ctl = RoundController(
        ruleset=StroopFocusRuleset(seed=1, levels=SHORT),
        clock=clock,
        sink=progress,
        on_outcome=on_outcome,
    )
    holder.append(ctl)
    ctl.start(level=1)
    clock.advance(0.25)
    ctl.submit_response({INK: "Red"})

    assert ctl.phase is Phase.IDLE
    assert progress.records == []
    clock.advance(5.0)
    ctl.update()
    assert ctl.phase is Phase.IDLE


class RecordingTrialClock(TrialClock):
    """TrialClock that keeps every timeout callback it was armed with."""

    def __init__(self, clock: FakeClock) -> None:
        super().__init__(clock)
        self.callbacks: list[Callable[[], None]] = []

    def arm(self, deadline_ms: float, on_timeout: Callable[[], None]) -> None:
        self.callbacks.append(on_timeout)
        super().arm(deadline_ms, on_timeout)


def test_stale_timeout_from_answered_trial_is_ignored() -> None:
    clock = FakeClock()
    trial_clock = RecordingTrialClock(clock)
    outcomes: list[Outcome] = []
    ctl = RoundController(
        ruleset=StroopFocusRuleset(seed=1, levels=SHORT),
        clock=clock,
        trial_clock=trial_clock,
        on_outcome=outcomes.append,
    )
    ctl.start(level=1)
    clock.advance(0.25)
    ctl.submit_response({INK: "Red"})
    assert ctl.progress == (2, 3)

    trial_clock.callbacks[0]()

    assert len(outcomes) == 1
    assert ctl.timeout_count == 0
    assert ctl.progress == (2, 3)
    assert ctl.awaiting_response


def test_stale_timeout_from_previous_round_is_ignored() -> None:
    clock = FakeClock()
    trial_clock = RecordingTrialClock(clock)
    ctl = RoundController(
        ruleset=StroopFocusRuleset(seed=1, levels=SHORT),
        clock=clock,
        trial_clock=trial_clock,
    )
    ctl.start(level=1)
    ctl.reset()
    ctl.start(level=1)
    assert len(trial_clock.callbacks) == 2

    # Same trial index, earlier round.
    trial_clock.callbacks[0]()

    assert ctl.timeout_count == 0
    assert ctl.progress == (1, 3)
    assert ctl.phase is Phase.RUNNING
