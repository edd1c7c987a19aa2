from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class ClockArmedError(RuntimeError):
    """Raised when arming a TrialClock that already has a live deadline."""


class TrialClock:
    """Single outstanding per-trial deadline.

    Nothing here blocks: the owner calls poll() from its frame loop and the
    timeout callback runs on that same thread, at most once per arm().
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._deadline_s: float | None = None
        self._armed_at_s: float | None = None
        self._on_timeout: Callable[[], None] | None = None

    @property
    def armed(self) -> bool:
        return self._deadline_s is not None

    def arm(self, deadline_ms: float, on_timeout: Callable[[], None]) -> None:
        if self._deadline_s is not None:
            raise ClockArmedError("trial clock is already armed; disarm() first")
        if deadline_ms <= 0:
            raise ValueError("deadline_ms must be > 0")
        now = self._clock.now()
        self._armed_at_s = now
        self._deadline_s = now + float(deadline_ms) / 1000.0
        self._on_timeout = on_timeout

    def disarm(self) -> None:
        self._deadline_s = None
        self._armed_at_s = None
        self._on_timeout = None

    def elapsed_ms(self) -> float:
        """Milliseconds since the last arm(), 0.0 when disarmed."""

        if self._armed_at_s is None:
            return 0.0
        return max(0.0, (self._clock.now() - self._armed_at_s) * 1000.0)

    def remaining_ms(self) -> float | None:
        if self._deadline_s is None:
            return None
        return max(0.0, (self._deadline_s - self._clock.now()) * 1000.0)

    def poll(self) -> bool:
        """Fire the timeout callback if the deadline has passed. Returns True if it fired."""

        if self._deadline_s is None:
            return False
        if self._clock.now() < self._deadline_s:
            return False
        callback = self._on_timeout
        # Disarm before the callback so it may re-arm for the next trial.
        self.disarm()
        if callback is not None:
            callback()
        return True
