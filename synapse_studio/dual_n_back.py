from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from .cognitive_core import (
    Outcome,
    Response,
    RoundSettings,
    SeededRng,
    SessionResult,
    Trial,
)
from .difficulty import AdaptationThresholds, LevelBounds, next_level

POSITION = "position"
LETTER = "letter"


@dataclass(frozen=True, slots=True)
class NBackConfig:
    grid_size: int = 3
    total_trials: int = 18
    trial_duration_ms: float = 2600.0
    letters: tuple[str, ...] = ("C", "H", "K", "L", "Q", "R", "S", "T")
    min_level: int = 1
    max_level: int = 4


@dataclass(frozen=True, slots=True)
class NBackStimulus:
    position: int  # row-major cell index
    letter: str


class DualNBackGenerator:
    """Uniform draws over cells x letters; matches happen by chance only."""

    def __init__(self, rng: SeededRng, *, cells: int, letters: Sequence[str]) -> None:
        self._rng = rng
        self._cells = int(cells)
        self._letters = tuple(letters)

    def next_stimulus(self) -> NBackStimulus:
        position = self._rng.randint(0, self._cells - 1)
        letter = self._letters[self._rng.randint(0, len(self._letters) - 1)]
        return NBackStimulus(position=position, letter=letter)


def expected_matches(trial: Trial, history: Sequence[Trial], n: int) -> dict[str, bool]:
    """Which dimensions repeat the trial n steps back (all False before index n)."""

    reference_index = trial.index - n
    if reference_index < 0 or reference_index >= len(history):
        return {POSITION: False, LETTER: False}
    current = trial.stimulus
    reference = history[reference_index].stimulus
    assert isinstance(current, NBackStimulus)
    assert isinstance(reference, NBackStimulus)
    return {
        POSITION: reference.position == current.position,
        LETTER: reference.letter == current.letter,
    }


class DualNBackRuleset:
    exercise_id = "dual-n-back"
    title = "Dual N-Back Focus"
    dimensions = (POSITION, LETTER)
    instructions = (
        "Mark when the square or letter matches the one from N steps earlier.",
        "Accurate rounds nudge the level up to keep challenging your span.",
    )
    thresholds = AdaptationThresholds(upper_accuracy=80.0, lower_accuracy=55.0)

    def __init__(self, *, seed: int, config: NBackConfig | None = None) -> None:
        cfg = config or NBackConfig()
        if cfg.grid_size < 1:
            raise ValueError("grid_size must be >= 1")
        if cfg.total_trials < 1:
            raise ValueError("total_trials must be >= 1")
        if cfg.trial_duration_ms <= 0:
            raise ValueError("trial_duration_ms must be > 0")
        if not cfg.letters:
            raise ValueError("letters must not be empty")
        if cfg.min_level < 1:
            raise ValueError("min_level must be >= 1")

        self._config = cfg
        self.bounds = LevelBounds(cfg.min_level, cfg.max_level)
        self._gen = DualNBackGenerator(
            SeededRng(int(seed)),
            cells=cfg.grid_size * cfg.grid_size,
            letters=cfg.letters,
        )

    @property
    def config(self) -> NBackConfig:
        return self._config

    def round_settings(self, level: int) -> RoundSettings:
        return RoundSettings(
            total_trials=self._config.total_trials,
            time_limit_ms=self._config.trial_duration_ms,
        )

    def generate(self, *, index: int, level: int, history: Sequence[Trial]) -> Trial:
        return Trial(index=index, stimulus=self._gen.next_stimulus())

    def default_response(self) -> Mapping[str, object]:
        return {POSITION: False, LETTER: False}

    def evaluate(self, *, trial: Trial, history: Sequence[Trial], response: Response, level: int) -> Outcome:
        expected = expected_matches(trial, history, level)
        correct = {dim: expected[dim] == bool(response.get(dim, False)) for dim in self.dimensions}
        return Outcome(
            trial_index=trial.index,
            correct=correct,
            expected=expected,
            timed_out=response.timed_out,
            response_ms=response.elapsed_ms,
            response=dict(response.choices),
        )

    def adapt(self, result: SessionResult, level: int) -> int:
        return next_level(result, level, self.bounds, self.thresholds)

    def describe(self, result: SessionResult) -> tuple[str, str]:
        accuracy = int(result.accuracy)
        label = f"{accuracy}% accuracy"
        summary = f"Tracked {result.total_trials} dual cues at {accuracy}% accuracy (level {result.level})"
        return label, summary


def build_dual_n_back(*, seed: int, config: NBackConfig | None = None) -> DualNBackRuleset:
    return DualNBackRuleset(seed=seed, config=config)
