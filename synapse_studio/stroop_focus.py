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
    format_seconds,
)
from .difficulty import AdaptationThresholds, LevelBounds, next_level

INK = "ink"


@dataclass(frozen=True, slots=True)
class StroopColour:
    name: str
    rgb: tuple[int, int, int]


COLOUR_POOL: tuple[StroopColour, ...] = (
    StroopColour("Red", (217, 65, 65)),
    StroopColour("Blue", (44, 123, 229)),
    StroopColour("Green", (40, 167, 69)),
    StroopColour("Yellow", (246, 195, 67)),
    StroopColour("Purple", (155, 81, 224)),
    StroopColour("Orange", (242, 153, 74)),
)


@dataclass(frozen=True, slots=True)
class StroopLevel:
    colours: int
    prompts: int
    limit_ms: float


STROOP_LEVELS: tuple[StroopLevel, ...] = (
    StroopLevel(colours=4, prompts=10, limit_ms=4500.0),
    StroopLevel(colours=5, prompts=12, limit_ms=3800.0),
    StroopLevel(colours=6, prompts=14, limit_ms=3200.0),
    StroopLevel(colours=6, prompts=16, limit_ms=2600.0),
)


@dataclass(frozen=True, slots=True)
class StroopStimulus:
    word: StroopColour
    ink: StroopColour
    palette: tuple[StroopColour, ...]  # answer options for this trial


class StroopGenerator:
    """Word and ink drawn independently; a collision moves ink to the next palette entry."""

    def __init__(self, rng: SeededRng) -> None:
        self._rng = rng

    def next_stimulus(self, palette: Sequence[StroopColour]) -> StroopStimulus:
        colours = tuple(palette)
        word_idx = self._rng.randint(0, len(colours) - 1)
        ink_idx = self._rng.randint(0, len(colours) - 1)
        if ink_idx == word_idx:
            ink_idx = (ink_idx + 1) % len(colours)
        return StroopStimulus(word=colours[word_idx], ink=colours[ink_idx], palette=colours)


class StroopFocusRuleset:
    exercise_id = "stroop-focus"
    title = "Stroop Focus Lab"
    dimensions = (INK,)
    instructions = (
        "Pick the ink colour, not the word you read.",
        "As accuracy stays high the palette grows and the rhythm speeds up.",
    )
    thresholds = AdaptationThresholds(upper_accuracy=85.0, lower_accuracy=70.0, speed_factor=0.65)

    def __init__(
        self,
        *,
        seed: int,
        levels: Sequence[StroopLevel] = STROOP_LEVELS,
        colour_pool: Sequence[StroopColour] = COLOUR_POOL,
    ) -> None:
        if not levels:
            raise ValueError("levels must not be empty")
        for lvl in levels:
            if lvl.colours < 2:
                raise ValueError("each level needs at least two colours")
            if lvl.colours > len(colour_pool):
                raise ValueError("level asks for more colours than the pool holds")
            if lvl.prompts < 1:
                raise ValueError("prompts must be >= 1")
            if lvl.limit_ms <= 0:
                raise ValueError("limit_ms must be > 0")

        self._levels = tuple(levels)
        self._pool = tuple(colour_pool)
        self.bounds = LevelBounds(1, len(self._levels))
        self._gen = StroopGenerator(SeededRng(int(seed)))

    def level_settings(self, level: int) -> StroopLevel:
        return self._levels[min(len(self._levels) - 1, max(0, int(level) - 1))]

    def palette(self, level: int) -> tuple[StroopColour, ...]:
        return self._pool[: self.level_settings(level).colours]

    def round_settings(self, level: int) -> RoundSettings:
        lvl = self.level_settings(level)
        return RoundSettings(total_trials=lvl.prompts, time_limit_ms=lvl.limit_ms)

    def generate(self, *, index: int, level: int, history: Sequence[Trial]) -> Trial:
        return Trial(index=index, stimulus=self._gen.next_stimulus(self.palette(level)))

    def default_response(self) -> Mapping[str, object]:
        return {INK: None}

    def evaluate(self, *, trial: Trial, history: Sequence[Trial], response: Response, level: int) -> Outcome:
        stim = trial.stimulus
        assert isinstance(stim, StroopStimulus)
        chosen = response.get(INK)
        if isinstance(chosen, StroopColour):
            chosen = chosen.name
        return Outcome(
            trial_index=trial.index,
            correct={INK: chosen == stim.ink.name},
            expected={INK: stim.ink.name},
            timed_out=response.timed_out,
            response_ms=response.elapsed_ms,
            response=dict(response.choices),
        )

    def adapt(self, result: SessionResult, level: int) -> int:
        limit = self.level_settings(level).limit_ms
        return next_level(result, level, self.bounds, self.thresholds, time_limit_ms=limit)

    def describe(self, result: SessionResult) -> tuple[str, str]:
        accuracy = int(result.accuracy)
        average = format_seconds(result.average_response_ms)
        label = f"{accuracy}% accuracy • {average}"
        summary = (
            f"Identified {result.total_trials} colour cues with {accuracy}% accuracy "
            f"({average} average response, level {result.level})"
        )
        return label, summary


def build_stroop_focus(*, seed: int, levels: Sequence[StroopLevel] = STROOP_LEVELS) -> StroopFocusRuleset:
    return StroopFocusRuleset(seed=seed, levels=levels)
