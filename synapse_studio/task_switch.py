from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum

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

SIDE = "side"
LEFT = "left"
RIGHT = "right"

LETTERS = ("A", "E", "I", "O", "U", "B", "C", "D", "F", "G", "H", "L", "M", "N", "R", "S", "T")
VOWELS = frozenset("AEIOU")
NUMBERS = (1, 2, 3, 4, 5, 6, 7, 8, 9)


class SwitchRule(StrEnum):
    LETTER = "letter"
    NUMBER = "number"


@dataclass(frozen=True, slots=True)
class RuleInfo:
    label: str
    prompt: str
    left: str
    right: str


RULES: dict[SwitchRule, RuleInfo] = {
    SwitchRule.LETTER: RuleInfo("Letter rule", "Is the letter a vowel?", "Vowel", "Consonant"),
    SwitchRule.NUMBER: RuleInfo("Number rule", "Is the number odd?", "Odd", "Even"),
}


@dataclass(frozen=True, slots=True)
class TaskSwitchLevel:
    prompts: int
    limit_ms: float
    switch_probability: float


TASK_SWITCH_LEVELS: tuple[TaskSwitchLevel, ...] = (
    TaskSwitchLevel(prompts=12, limit_ms=4200.0, switch_probability=0.45),
    TaskSwitchLevel(prompts=16, limit_ms=3500.0, switch_probability=0.55),
    TaskSwitchLevel(prompts=20, limit_ms=3000.0, switch_probability=0.65),
    TaskSwitchLevel(prompts=24, limit_ms=2600.0, switch_probability=0.75),
)


@dataclass(frozen=True, slots=True)
class TaskSwitchStimulus:
    rule: SwitchRule
    letter: str
    number: int

    @property
    def text(self) -> str:
        return f"{self.letter}{self.number}"


def expected_side(stim: TaskSwitchStimulus) -> str:
    if stim.rule is SwitchRule.LETTER:
        return LEFT if stim.letter in VOWELS else RIGHT
    return LEFT if stim.number % 2 == 1 else RIGHT


class TaskSwitchGenerator:
    """The rule carries over from the previous trial unless the switch roll fires."""

    def __init__(self, rng: SeededRng) -> None:
        self._rng = rng
        self._rules = tuple(SwitchRule)

    def next_stimulus(self, *, previous: SwitchRule | None, switch_probability: float) -> TaskSwitchStimulus:
        rule = previous
        if rule is None or self._rng.random() < switch_probability:
            rule = self._rules[self._rng.randint(0, len(self._rules) - 1)]
        letter = LETTERS[self._rng.randint(0, len(LETTERS) - 1)]
        number = NUMBERS[self._rng.randint(0, len(NUMBERS) - 1)]
        return TaskSwitchStimulus(rule=rule, letter=letter, number=number)


class TaskSwitchRuleset:
    exercise_id = "task-switch"
    title = "Task Switch Circuit"
    dimensions = (SIDE,)
    instructions = (
        "Rules shift throughout the circuit. Watch the banner before you answer.",
        "High accuracy and quick reactions unlock longer, faster circuits.",
    )
    thresholds = AdaptationThresholds(upper_accuracy=85.0, lower_accuracy=70.0, speed_factor=0.70)

    def __init__(self, *, seed: int, levels: Sequence[TaskSwitchLevel] = TASK_SWITCH_LEVELS) -> None:
        if not levels:
            raise ValueError("levels must not be empty")
        for lvl in levels:
            if lvl.prompts < 1:
                raise ValueError("prompts must be >= 1")
            if lvl.limit_ms <= 0:
                raise ValueError("limit_ms must be > 0")
            if not (0.0 <= lvl.switch_probability <= 1.0):
                raise ValueError("switch_probability must be in [0.0, 1.0]")

        self._levels = tuple(levels)
        self.bounds = LevelBounds(1, len(self._levels))
        self._gen = TaskSwitchGenerator(SeededRng(int(seed)))

    def level_settings(self, level: int) -> TaskSwitchLevel:
        return self._levels[min(len(self._levels) - 1, max(0, int(level) - 1))]

    def round_settings(self, level: int) -> RoundSettings:
        lvl = self.level_settings(level)
        return RoundSettings(total_trials=lvl.prompts, time_limit_ms=lvl.limit_ms)

    def generate(self, *, index: int, level: int, history: Sequence[Trial]) -> Trial:
        previous: SwitchRule | None = None
        if index > 0 and history:
            prev = history[-1].stimulus
            assert isinstance(prev, TaskSwitchStimulus)
            previous = prev.rule
        stim = self._gen.next_stimulus(
            previous=previous,
            switch_probability=self.level_settings(level).switch_probability,
        )
        return Trial(index=index, stimulus=stim)

    def default_response(self) -> Mapping[str, object]:
        return {SIDE: None}

    def evaluate(self, *, trial: Trial, history: Sequence[Trial], response: Response, level: int) -> Outcome:
        stim = trial.stimulus
        assert isinstance(stim, TaskSwitchStimulus)
        expected = expected_side(stim)
        return Outcome(
            trial_index=trial.index,
            correct={SIDE: response.get(SIDE) == expected},
            expected={SIDE: expected},
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
            f"Navigated {result.total_trials} task switches with {accuracy}% accuracy "
            f"({average} average response, level {result.level})"
        )
        return label, summary


def build_task_switch(*, seed: int, levels: Sequence[TaskSwitchLevel] = TASK_SWITCH_LEVELS) -> TaskSwitchRuleset:
    return TaskSwitchRuleset(seed=seed, levels=levels)
