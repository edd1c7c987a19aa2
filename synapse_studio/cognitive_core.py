from __future__ import annotations

import math
import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .difficulty import LevelBounds


class Phase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    EVALUATING = "evaluating"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class Trial:
    index: int
    stimulus: object  # exercise-specific payload, opaque to the controller


@dataclass(frozen=True, slots=True)
class Response:
    choices: Mapping[str, object]
    elapsed_ms: float
    timed_out: bool = False

    def get(self, dimension: str, default: object = None) -> object:
        return self.choices.get(dimension, default)


@dataclass(frozen=True, slots=True)
class Outcome:
    trial_index: int
    correct: Mapping[str, bool]
    expected: Mapping[str, object]
    timed_out: bool
    response_ms: float
    response: Mapping[str, object] = field(default_factory=dict)  # choices as given

    @property
    def correct_count(self) -> int:
        return sum(1 for ok in self.correct.values() if ok)

    @property
    def all_correct(self) -> bool:
        return all(self.correct.values())


@dataclass(frozen=True, slots=True)
class RoundSettings:
    total_trials: int
    time_limit_ms: float


@dataclass(frozen=True, slots=True)
class SessionResult:
    exercise_id: str
    accuracy: float  # whole percent in [0, 100]
    average_response_ms: float
    level: int
    total_trials: int
    total_decisions: int
    correct_count: int
    timeout_count: int


@dataclass(slots=True)
class RoundState:
    """Mutable working set of one active round."""

    round_id: int
    level: int
    settings: RoundSettings
    trials: list[Trial] = field(default_factory=list)
    awaiting_index: int | None = None
    correct_count: int = 0
    decision_count: int = 0
    timeout_count: int = 0
    response_ms_total: float = 0.0


class ExerciseRuleset(Protocol):
    """Capability set the RoundController is generic over."""

    exercise_id: str
    title: str
    dimensions: tuple[str, ...]
    instructions: tuple[str, ...]
    bounds: "LevelBounds"

    def round_settings(self, level: int) -> RoundSettings:
        ...

    def generate(self, *, index: int, level: int, history: Sequence[Trial]) -> Trial:
        ...

    def default_response(self) -> Mapping[str, object]:
        """Choices recorded when the participant gives no answer."""
        ...

    def evaluate(self, *, trial: Trial, history: Sequence[Trial], response: Response, level: int) -> Outcome:
        ...

    def adapt(self, result: SessionResult, level: int) -> int:
        ...

    def describe(self, result: SessionResult) -> tuple[str, str]:
        """Return (label, summary) text for a completed round."""
        ...


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def random(self) -> float:
        return self._rng.random()


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def percent(part: int, whole: int) -> float:
    """Whole-number percentage, 0.0 for an empty denominator."""

    if whole <= 0:
        return 0.0
    return float(round_half_up(part * 100.0 / whole))


def format_seconds(ms: float) -> str:
    return f"{max(0, round_half_up(ms / 100.0)) / 10.0:.1f} sec"
