from __future__ import annotations

from dataclasses import dataclass

from .cognitive_core import SessionResult


@dataclass(frozen=True, slots=True)
class LevelBounds:
    min_level: int
    max_level: int

    def __post_init__(self) -> None:
        if self.min_level > self.max_level:
            raise ValueError("min_level must be <= max_level")


@dataclass(frozen=True, slots=True)
class AdaptationThresholds:
    """Hysteresis band for one exercise.

    speed_factor, when set, gates promotion on
    average_response_ms <= speed_factor * time_limit_ms.
    """

    upper_accuracy: float
    lower_accuracy: float
    speed_factor: float | None = None

    def __post_init__(self) -> None:
        if self.lower_accuracy > self.upper_accuracy:
            raise ValueError("lower_accuracy must be <= upper_accuracy")
        if self.speed_factor is not None and self.speed_factor <= 0.0:
            raise ValueError("speed_factor must be > 0")


def clamp_level(raw: float, bounds: LevelBounds) -> int:
    """Round and clamp a stored difficulty into bounds; never rejects."""

    try:
        value = int(round(float(raw)))
    except (TypeError, ValueError, OverflowError):
        return bounds.min_level
    return max(bounds.min_level, min(bounds.max_level, value))


def next_level(
    result: SessionResult,
    current_level: int,
    bounds: LevelBounds,
    thresholds: AdaptationThresholds,
    *,
    time_limit_ms: float | None = None,
) -> int:
    level = clamp_level(current_level, bounds)

    fast_enough = True
    if thresholds.speed_factor is not None:
        if time_limit_ms is None:
            raise ValueError("time_limit_ms is required for speed-gated thresholds")
        fast_enough = result.average_response_ms <= time_limit_ms * thresholds.speed_factor

    if result.accuracy >= thresholds.upper_accuracy and fast_enough and level < bounds.max_level:
        return level + 1
    if result.accuracy < thresholds.lower_accuracy and level > bounds.min_level:
        return level - 1
    return level
