"""Pygame front end for Synapse Studio.

Menu of exercises (Dual N-Back, Stroop Focus, Task Switch) and a single
exercise screen that drives a RoundController through its presentation hooks.
Timing/scoring/RNG/state lives in synapse_studio/* (core modules); this module
only maps keys to responses and draws what the hooks report.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import pygame

from .clock import RealClock
from .cognitive_core import Outcome, Phase, Trial, format_seconds
from .dual_n_back import LETTER, POSITION, DualNBackRuleset, NBackStimulus
from .exercises import EXERCISES, ExerciseInfo
from .persistence import ExerciseProgress, ProgressStore
from .results import SessionRecord
from .round_controller import RoundController
from .stroop_focus import INK, StroopColour, StroopFocusRuleset, StroopStimulus
from .task_switch import LEFT, RIGHT, RULES, SIDE, TaskSwitchStimulus

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60
TRANSCRIPT_ROWS = 6

BG = (3, 9, 78)
PANEL_BG = (8, 18, 104)
HEADER_BG = (18, 30, 118)
BORDER = (226, 236, 255)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (186, 200, 224)
GOOD = (120, 220, 140)
BAD = (240, 120, 110)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def update(self) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def update(self) -> None:
        if self._screens:
            self._screens[-1].update()

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


def _draw_frame(surface: pygame.Surface, title: str, title_font: pygame.font.Font, tag_font: pygame.font.Font, tag: str) -> pygame.Rect:
    """Draw the shared panel + header; returns the content rect below the header."""

    w, h = surface.get_size()
    surface.fill(BG)

    margin = max(10, min(26, w // 34))
    frame = pygame.Rect(margin, margin, max(260, w - margin * 2), max(220, h - margin * 2))
    pygame.draw.rect(surface, PANEL_BG, frame)
    pygame.draw.rect(surface, BORDER, frame, 2)

    header_h = max(34, min(52, h // 8))
    header = pygame.Rect(frame.x + 2, frame.y + 2, frame.w - 4, header_h)
    pygame.draw.rect(surface, HEADER_BG, header)
    pygame.draw.line(surface, BORDER, (header.x, header.bottom), (header.right, header.bottom), 1)

    tag_surf = tag_font.render(tag, True, TEXT_MUTED)
    surface.blit(tag_surf, (header.x + 12, header.y + (header.h - tag_surf.get_height()) // 2))
    title_surf = title_font.render(title, True, TEXT_MAIN)
    surface.blit(title_surf, title_surf.get_rect(center=(frame.centerx, header.centery)))

    return pygame.Rect(frame.x + 12, header.bottom + 10, frame.w - 24, frame.bottom - header.bottom - 20)


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        if key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._activate()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._back()

    def update(self) -> None:
        return

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def _activate(self) -> None:
        if not self._items:
            return
        self._items[self._selected].action()

    def _back(self) -> None:
        if self._is_root:
            self._app.quit()
        else:
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        content = _draw_frame(surface, self._title, self._title_font, self._hint_font, "MENU")

        item_count = max(1, len(self._items))
        row_h = max(30, min(44, (content.h - 40) // item_count))
        y = content.y + 12
        for idx, item in enumerate(self._items):
            row = pygame.Rect(content.x + 12, y, content.w - 24, row_h - 6)
            selected = idx == self._selected
            if selected:
                pygame.draw.rect(surface, (244, 248, 255), row)
            else:
                pygame.draw.rect(surface, (9, 20, 106), row)
                pygame.draw.rect(surface, (62, 84, 152), row, 1)
            color = (14, 26, 74) if selected else TEXT_MAIN
            text = self._item_font.render(item.label, True, color)
            surface.blit(text, (row.x + 10, row.y + (row.h - text.get_height()) // 2))
            y += row_h

        foot = self._hint_font.render("Enter/Space: Select  |  Esc/Backspace: Back", True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(content.centerx, content.bottom)))


class ExerciseScreen:
    """Runs rounds of one exercise and renders trials, feedback and stats."""

    def __init__(
        self,
        app: App,
        *,
        info: ExerciseInfo,
        progress: ExerciseProgress,
        controller_factory: Callable[[ExerciseProgress, "ExerciseScreen"], RoundController],
    ) -> None:
        self._app = app
        self._info = info
        self._progress = progress
        self._trials: dict[int, Trial] = {}
        self._transcript: list[tuple[str, bool]] = []
        self._status = "Press Enter to start a round."
        self._flash: tuple[bool, int] | None = None  # (correct, frames left)
        self._stats = progress.stats()

        self._title_font = pygame.font.Font(None, 42)
        self._big_font = pygame.font.Font(None, 96)
        self._mid_font = pygame.font.Font(None, 36)
        self._small_font = pygame.font.Font(None, 24)

        self._controller = controller_factory(progress, self)

    @property
    def controller(self) -> RoundController:
        return self._controller

    # Presentation hooks.

    def on_trial(self, trial: Trial, deadline_ms: float) -> None:
        self._trials[trial.index] = trial
        stim = trial.stimulus
        if isinstance(stim, TaskSwitchStimulus):
            self._status = RULES[stim.rule].prompt

    def on_outcome(self, outcome: Outcome) -> None:
        trial = self._trials.get(outcome.trial_index)
        self._transcript.append((describe_outcome(trial, outcome), outcome.all_correct))
        del self._transcript[:-TRANSCRIPT_ROWS]
        self._flash = (outcome.all_correct, 12)

    def on_complete(self, record: SessionRecord, next_level: int) -> None:
        note = ""
        if next_level > record.level:
            note = f" Advancing to level {next_level}."
        elif next_level < record.level:
            note = f" Stepping back to level {next_level}."
        self._status = f"Round complete: {record.label}.{note} Press Enter to go again."
        self._stats = self._progress.stats()

    # Screen protocol.

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        if key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._controller.reset()
            self._app.pop()
            return

        phase = self._controller.phase
        if phase is not Phase.RUNNING:
            if key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
                self._start_round()
            return

        trial = self._controller.current_trial
        if trial is None:
            return
        stim = trial.stimulus
        if isinstance(stim, NBackStimulus):
            if key == pygame.K_a:
                self._controller.mark(POSITION)
            elif key == pygame.K_l:
                self._controller.mark(LETTER)
            elif key in (pygame.K_SPACE, pygame.K_RETURN):
                self._controller.submit_response()
        elif isinstance(stim, StroopStimulus):
            idx = key - pygame.K_1
            if 0 <= idx < len(stim.palette):
                self._controller.submit_response({INK: stim.palette[idx].name})
        elif isinstance(stim, TaskSwitchStimulus):
            if key in (pygame.K_LEFT, pygame.K_f):
                self._controller.submit_response({SIDE: LEFT})
            elif key in (pygame.K_RIGHT, pygame.K_j):
                self._controller.submit_response({SIDE: RIGHT})

    def update(self) -> None:
        self._controller.update()
        if self._flash is not None:
            ok, frames = self._flash
            self._flash = None if frames <= 1 else (ok, frames - 1)

    def render(self, surface: pygame.Surface) -> None:
        content = _draw_frame(surface, self._info.name, self._title_font, self._small_font, "EXERCISE")
        ctl = self._controller

        done, total = ctl.progress
        header = f"Level {ctl.level}"
        if isinstance(ctl.ruleset, DualNBackRuleset):
            header = f"Level {ctl.level}-back"
        if total:
            header = f"{header}   Trial {done} / {total}"
        surface.blit(self._mid_font.render(header, True, TEXT_MAIN), (content.x, content.y))

        remaining = ctl.time_remaining_ms()
        if remaining is not None and total:
            limit = ctl.ruleset.round_settings(ctl.level).time_limit_ms
            bar = pygame.Rect(content.x, content.y + 34, content.w, 6)
            pygame.draw.rect(surface, (62, 84, 152), bar)
            filled = bar.copy()
            filled.w = int(bar.w * max(0.0, min(1.0, remaining / limit)))
            pygame.draw.rect(surface, TEXT_MUTED, filled)

        stage = pygame.Rect(content.x, content.y + 50, content.w * 2 // 3, content.h - 110)
        if self._flash is not None:
            pygame.draw.rect(surface, GOOD if self._flash[0] else BAD, stage, 3)
        trial = ctl.current_trial
        if trial is not None:
            self._render_stimulus(surface, stage, trial)
        elif ctl.phase is Phase.IDLE:
            y = stage.y + 10
            for line in (self._info.tagline, *ctl.ruleset.instructions):
                surface.blit(self._small_font.render(line, True, TEXT_MAIN), (stage.x + 10, y))
                y += 28

        side = pygame.Rect(stage.right + 12, stage.y, content.right - stage.right - 12, stage.h)
        y = side.y
        for text, ok in self._transcript:
            surface.blit(self._small_font.render(text, True, GOOD if ok else BAD), (side.x, y))
            y += 22
        stats = self._stats
        best = "-" if stats.best is None else stats.best.record.label
        latest = "-" if stats.latest is None else stats.latest.record.label
        for line in (f"Best: {best}", f"Last: {latest}", f"Sessions: {stats.total}"):
            y += 22
            surface.blit(self._small_font.render(line, True, TEXT_MUTED), (side.x, y))

        status = self._small_font.render(self._status, True, TEXT_MAIN)
        surface.blit(status, (content.x, content.bottom - 50))
        hint = self._small_font.render(self._key_hint(), True, TEXT_MUTED)
        surface.blit(hint, (content.x, content.bottom - 24))

    def _start_round(self) -> None:
        self._trials = {}
        self._transcript = []
        self._controller.start()
        if isinstance(self._controller.ruleset, DualNBackRuleset):
            n = self._controller.level
            self._status = f"Mark matches from {n} step{'' if n == 1 else 's'} back."
        elif isinstance(self._controller.ruleset, StroopFocusRuleset):
            self._status = "Pick the ink colour as quickly and accurately as you can."

    def _render_stimulus(self, surface: pygame.Surface, stage: pygame.Rect, trial: Trial) -> None:
        stim = trial.stimulus
        if isinstance(stim, NBackStimulus):
            ruleset = self._controller.ruleset
            assert isinstance(ruleset, DualNBackRuleset)
            grid = ruleset.config.grid_size
            cell = min(stage.w, stage.h - 40) // grid
            origin_x = stage.centerx - cell * grid // 2
            for i in range(grid * grid):
                r = pygame.Rect(origin_x + (i % grid) * cell, stage.y + (i // grid) * cell, cell - 4, cell - 4)
                pygame.draw.rect(surface, (244, 248, 255) if i == stim.position else (9, 20, 106), r)
                pygame.draw.rect(surface, (62, 84, 152), r, 1)
            marks = self._controller.pending_marks
            label = (
                f"Letter: {stim.letter}   "
                f"[A] position {'ON' if marks.get(POSITION) else 'off'}   "
                f"[L] letter {'ON' if marks.get(LETTER) else 'off'}"
            )
            surface.blit(self._small_font.render(label, True, TEXT_MAIN), (stage.x, stage.bottom - 24))
        elif isinstance(stim, StroopStimulus):
            word = self._big_font.render(stim.word.name.upper(), True, stim.ink.rgb)
            surface.blit(word, word.get_rect(center=stage.center))
            options = "  ".join(f"{i + 1}:{c.name}" for i, c in enumerate(stim.palette))
            surface.blit(self._small_font.render(options, True, TEXT_MAIN), (stage.x, stage.bottom - 24))
        elif isinstance(stim, TaskSwitchStimulus):
            info = RULES[stim.rule]
            surface.blit(self._mid_font.render(info.label, True, TEXT_MUTED), (stage.x, stage.y))
            text = self._big_font.render(stim.text, True, TEXT_MAIN)
            surface.blit(text, text.get_rect(center=stage.center))
            choices = f"<- {info.left}      {info.right} ->"
            surface.blit(self._small_font.render(choices, True, TEXT_MAIN), (stage.x, stage.bottom - 24))

    def _key_hint(self) -> str:
        if self._controller.phase is not Phase.RUNNING:
            return "Enter: start round  |  Esc: back"
        stim = None if self._controller.current_trial is None else self._controller.current_trial.stimulus
        if isinstance(stim, NBackStimulus):
            return "A: position match  |  L: letter match  |  Space: lock in  |  Esc: abandon"
        if isinstance(stim, StroopStimulus):
            return "1-6: ink colour  |  Esc: abandon"
        return "Left/F and Right/J: answer  |  Esc: abandon"


def describe_outcome(trial: Trial | None, outcome: Outcome) -> str:
    """One transcript line for an evaluated trial."""

    prefix = f"#{outcome.trial_index + 1}"
    stim = None if trial is None else trial.stimulus
    if isinstance(stim, NBackStimulus):
        pos = "match" if outcome.expected[POSITION] else "new"
        let = "match" if outcome.expected[LETTER] else "new"
        return f"{prefix} cell {stim.position + 1} {stim.letter}: pos {pos}, letter {let}"
    if outcome.timed_out:
        return f"{prefix} no response"
    took = format_seconds(outcome.response_ms)
    if isinstance(stim, StroopStimulus):
        given = outcome.response.get(INK)
        if isinstance(given, StroopColour):
            given = given.name
        return f"{prefix} {stim.word.name} in {stim.ink.name}: answered {given} • {took}"
    if isinstance(stim, TaskSwitchStimulus):
        given = str(outcome.response.get(SIDE)).capitalize()
        return f"{prefix} {stim.text} ({RULES[stim.rule].label}): answered {given} • {took}"
    return prefix


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    store_path: Path | None = None,
) -> int:
    pygame.init()

    pygame.display.set_caption("Synapse Studio")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    store = ProgressStore(store_path or ProgressStore.default_path())
    real_clock = RealClock()
    logger.info("progress database at %s", store.path)

    def open_exercise(info: ExerciseInfo) -> None:
        store.set_last_exercise_id(info.exercise_id)
        seed = _new_seed()
        ruleset = info.factory(seed)

        def factory(progress: ExerciseProgress, screen: ExerciseScreen) -> RoundController:
            return RoundController(
                ruleset=ruleset,
                clock=real_clock,
                difficulty=progress,
                sink=progress,
                on_trial=screen.on_trial,
                on_outcome=screen.on_outcome,
                on_complete=screen.on_complete,
            )

        progress = store.bind(info.exercise_id, initial_level=info.initial_level, bounds=ruleset.bounds)
        app.push(ExerciseScreen(app, info=info, progress=progress, controller_factory=factory))

    # Most recently used exercise first.
    last_id = store.last_exercise_id()
    ordered = sorted(EXERCISES, key=lambda info: info.exercise_id != last_id)
    items = [MenuItem(info.name, lambda info=info: open_exercise(info)) for info in ordered]
    items.append(MenuItem("Quit", app.quit))
    app.push(MenuScreen(app, "Synapse Studio", items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.update()
            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
