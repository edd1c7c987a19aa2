from __future__ import annotations

from dataclasses import dataclass

from .cognitive_core import SessionResult


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """Persistable summary of a completed round.

    This is what the outbound sink receives: the SessionResult numbers plus
    the display label and one-line summary for history lists.
    """

    exercise_id: str
    accuracy: float
    average_response_ms: float
    level: int
    total_trials: int
    total_decisions: int
    correct_count: int
    timeout_count: int
    label: str
    summary: str

    @property
    def score(self) -> float:
        return self.accuracy


def session_record_from_result(result: SessionResult, *, label: str, summary: str) -> SessionRecord:
    """Build a SessionRecord from a finished round's SessionResult."""

    return SessionRecord(
        exercise_id=str(result.exercise_id),
        accuracy=float(result.accuracy),
        average_response_ms=float(result.average_response_ms),
        level=int(result.level),
        total_trials=int(result.total_trials),
        total_decisions=int(result.total_decisions),
        correct_count=int(result.correct_count),
        timeout_count=int(result.timeout_count),
        label=str(label),
        summary=str(summary or label),
    )
