from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Protocol

from .clock import Clock, TrialClock
from .cognitive_core import (
    ExerciseRuleset,
    Outcome,
    Phase,
    Response,
    RoundState,
    SessionResult,
    Trial,
    percent,
)
from .difficulty import clamp_level
from .results import SessionRecord, session_record_from_result

logger = logging.getLogger(__name__)


class DifficultySource(Protocol):
    def get_difficulty(self) -> float: ...
    def update_difficulty(self, next_level: int) -> float: ...


class SessionSink(Protocol):
    def record_session(self, record: SessionRecord) -> None: ...


TrialHook = Callable[[Trial, float], None]
OutcomeHook = Callable[[Outcome], None]
CompleteHook = Callable[[SessionRecord, int], None]


class RoundController:
    """Drives one exercise through rounds of timed trials.

    IDLE -> RUNNING -> EVALUATING -> RUNNING ... -> COMPLETE; start() leaves
    COMPLETE again. The only time source is the injected Clock, and the only
    suspension point is the owned TrialClock, advanced by update().
    """

    def __init__(
        self,
        *,
        ruleset: ExerciseRuleset,
        clock: Clock,
        difficulty: DifficultySource | None = None,
        sink: SessionSink | None = None,
        initial_level: int | None = None,
        on_trial: TrialHook | None = None,
        on_outcome: OutcomeHook | None = None,
        on_complete: CompleteHook | None = None,
        trial_clock: TrialClock | None = None,
    ) -> None:
        self._ruleset = ruleset
        self._trial_clock = trial_clock if trial_clock is not None else TrialClock(clock)
        self._difficulty = difficulty
        self._sink = sink
        self._on_trial = on_trial
        self._on_outcome = on_outcome
        self._on_complete = on_complete

        bounds = ruleset.bounds
        if initial_level is not None:
            self._level = clamp_level(initial_level, bounds)
        elif difficulty is not None:
            self._level = clamp_level(difficulty.get_difficulty(), bounds)
        else:
            self._level = bounds.min_level

        self._phase = Phase.IDLE
        self._state: RoundState | None = None
        self._round_counter = 0
        self._pending_marks: dict[str, bool] = {}
        self._last_record: SessionRecord | None = None
        self._next_level: int | None = None

    @property
    def ruleset(self) -> ExerciseRuleset:
        return self._ruleset

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def level(self) -> int:
        """Level of the active round, or the level the next round will use."""
        return self._level

    @property
    def awaiting_response(self) -> bool:
        return self._phase is Phase.RUNNING and self._state is not None and self._state.awaiting_index is not None

    @property
    def current_trial(self) -> Trial | None:
        if not self.awaiting_response:
            return None
        assert self._state is not None
        return self._state.trials[-1]

    @property
    def trials(self) -> tuple[Trial, ...]:
        return () if self._state is None else tuple(self._state.trials)

    @property
    def progress(self) -> tuple[int, int]:
        """(trials presented, trials in round)."""
        if self._state is None:
            return 0, 0
        return len(self._state.trials), self._state.settings.total_trials

    @property
    def timeout_count(self) -> int:
        return 0 if self._state is None else self._state.timeout_count

    @property
    def pending_marks(self) -> Mapping[str, bool]:
        return dict(self._pending_marks)

    @property
    def last_record(self) -> SessionRecord | None:
        return self._last_record

    @property
    def next_level(self) -> int | None:
        return self._next_level

    def time_remaining_ms(self) -> float | None:
        if not self.awaiting_response:
            return None
        return self._trial_clock.remaining_ms()

    def start(self, level: int | None = None) -> None:
        if self._phase is Phase.RUNNING:
            return
        bounds = self._ruleset.bounds
        if level is not None:
            self._level = clamp_level(level, bounds)
        elif self._difficulty is not None:
            self._level = clamp_level(self._difficulty.get_difficulty(), bounds)

        self._trial_clock.disarm()
        self._round_counter += 1
        self._state = RoundState(
            round_id=self._round_counter,
            level=self._level,
            settings=self._ruleset.round_settings(self._level),
        )
        self._last_record = None
        self._next_level = None
        self._phase = Phase.RUNNING
        logger.info(
            "round %d started: %s level %d (%d trials)",
            self._round_counter,
            self._ruleset.exercise_id,
            self._level,
            self._state.settings.total_trials,
        )
        self._deal_next_trial()

    def mark(self, dimension: str) -> bool:
        """Toggle a boolean dimension of the pending response. Returns True if accepted."""

        if not self.awaiting_response or dimension not in self._ruleset.dimensions:
            return False
        self._pending_marks[dimension] = not self._pending_marks.get(dimension, False)
        return True

    def submit_response(self, choices: Mapping[str, object] | None = None) -> bool:
        if not self.awaiting_response:
            logger.debug("ignored response outside an awaiting trial (phase=%s)", self._phase.value)
            return False
        merged: dict[str, object] = dict(self._ruleset.default_response())
        merged.update(self._pending_marks)
        if choices:
            merged.update(choices)
        elapsed_ms = self._trial_clock.elapsed_ms()
        self._trial_clock.disarm()
        self._resolve(Response(choices=merged, elapsed_ms=elapsed_ms))
        return True

    def update(self) -> None:
        if self._phase is Phase.RUNNING:
            self._trial_clock.poll()

    def reset(self) -> None:
        self._trial_clock.disarm()
        if self._state is not None and self._phase is Phase.RUNNING:
            logger.info("round %d abandoned", self._state.round_id)
        self._state = None
        self._pending_marks = {}
        self._phase = Phase.IDLE

    def _deal_next_trial(self) -> None:
        state = self._state
        assert state is not None
        index = len(state.trials)
        trial = self._ruleset.generate(index=index, level=state.level, history=tuple(state.trials))
        state.trials.append(trial)
        state.awaiting_index = index
        self._pending_marks = {}

        token = (state.round_id, index)
        limit_ms = state.settings.time_limit_ms
        self._trial_clock.arm(limit_ms, lambda: self._on_timeout(token))
        if self._on_trial is not None:
            self._on_trial(trial, limit_ms)

    def _on_timeout(self, token: tuple[int, int]) -> None:
        state = self._state
        if (
            state is None
            or self._phase is not Phase.RUNNING
            or (state.round_id, state.awaiting_index) != token
        ):
            logger.debug("stale timeout %s ignored", token)
            return
        marked = sorted(dim for dim, on in self._pending_marks.items() if on)
        if marked:
            # Marks standing at the deadline are the answer; not a timeout.
            choices: dict[str, object] = dict(self._ruleset.default_response())
            choices.update(self._pending_marks)
            logger.debug("trial %d closed with marks %s", token[1], marked)
            self._resolve(Response(choices=choices, elapsed_ms=state.settings.time_limit_ms))
            return
        state.timeout_count += 1
        logger.debug("trial %d timed out", token[1])
        self._resolve(
            Response(
                choices=dict(self._ruleset.default_response()),
                elapsed_ms=state.settings.time_limit_ms,
                timed_out=True,
            )
        )

    def _resolve(self, response: Response) -> None:
        state = self._state
        assert state is not None
        assert state.awaiting_index is not None

        self._phase = Phase.EVALUATING
        trial = state.trials[state.awaiting_index]
        state.awaiting_index = None
        self._pending_marks = {}

        outcome = self._ruleset.evaluate(
            trial=trial,
            history=tuple(state.trials),
            response=response,
            level=state.level,
        )
        state.decision_count += len(outcome.correct)
        state.correct_count += outcome.correct_count
        if not response.timed_out:
            state.response_ms_total += response.elapsed_ms

        if self._on_outcome is not None:
            self._on_outcome(outcome)
        # A hook may have reset the controller.
        if self._state is not state:
            return

        if len(state.trials) >= state.settings.total_trials:
            self._complete()
            return
        self._phase = Phase.RUNNING
        self._deal_next_trial()

    def _complete(self) -> None:
        state = self._state
        assert state is not None
        self._trial_clock.disarm()

        result = self._summarize(state)
        label, summary = self._ruleset.describe(result)
        record = session_record_from_result(result, label=label, summary=summary)
        self._last_record = record
        self._phase = Phase.COMPLETE
        logger.info(
            "round %d complete: %s accuracy=%.0f avg_ms=%.0f timeouts=%d",
            state.round_id,
            result.exercise_id,
            result.accuracy,
            result.average_response_ms,
            result.timeout_count,
        )

        if self._sink is not None:
            self._sink.record_session(record)

        bounds = self._ruleset.bounds
        proposed = clamp_level(self._ruleset.adapt(result, state.level), bounds)
        if proposed != state.level and self._difficulty is not None:
            proposed = clamp_level(self._difficulty.update_difficulty(proposed), bounds)
        if proposed != state.level:
            logger.info("%s level %d -> %d", result.exercise_id, state.level, proposed)
        self._next_level = proposed
        self._level = proposed

        if self._on_complete is not None:
            self._on_complete(record, proposed)

    def _summarize(self, state: RoundState) -> SessionResult:
        total = len(state.trials)
        total_ms = state.response_ms_total + state.timeout_count * state.settings.time_limit_ms
        average_ms = 0.0 if total == 0 else total_ms / total
        return SessionResult(
            exercise_id=self._ruleset.exercise_id,
            accuracy=percent(state.correct_count, state.decision_count),
            average_response_ms=float(average_ms),
            level=state.level,
            total_trials=total,
            total_decisions=state.decision_count,
            correct_count=state.correct_count,
            timeout_count=state.timeout_count,
        )
