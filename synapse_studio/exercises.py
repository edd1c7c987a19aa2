from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from .cognitive_core import ExerciseRuleset
from .dual_n_back import build_dual_n_back
from .stroop_focus import build_stroop_focus
from .task_switch import build_task_switch


@dataclass(frozen=True, slots=True)
class ExerciseInfo:
    exercise_id: str
    name: str
    tagline: str
    initial_level: int
    factory: Callable[[int], ExerciseRuleset]


EXERCISES: tuple[ExerciseInfo, ...] = (
    ExerciseInfo(
        exercise_id="dual-n-back",
        name="Dual N-Back Focus",
        tagline="Track locations and letters simultaneously to strengthen working memory.",
        initial_level=1,
        factory=lambda seed: build_dual_n_back(seed=seed),
    ),
    ExerciseInfo(
        exercise_id="stroop-focus",
        name="Stroop Focus Lab",
        tagline="Select the ink colour while ignoring the word to sharpen cognitive control.",
        initial_level=1,
        factory=lambda seed: build_stroop_focus(seed=seed),
    ),
    ExerciseInfo(
        exercise_id="task-switch",
        name="Task Switch Circuit",
        tagline="Shift between vowel and parity checks to build cognitive flexibility.",
        initial_level=1,
        factory=lambda seed: build_task_switch(seed=seed),
    ),
)

EXERCISES_BY_ID: dict[str, ExerciseInfo] = {info.exercise_id: info for info in EXERCISES}


def exercise_info(exercise_id: str) -> ExerciseInfo:
    return EXERCISES_BY_ID[exercise_id]


def build_ruleset(exercise_id: str, *, seed: int) -> ExerciseRuleset:
    return EXERCISES_BY_ID[exercise_id].factory(int(seed))
