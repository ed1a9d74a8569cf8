"""
Rolling learner performance state.

Tracks the most recent answers in a bounded window together with derived
metrics (accuracy, streaks, pacing, hint usage) and struggling indicators.
The state is updated after every graded attempt and can be rebuilt from any
sequence of answers.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from focusloop.core.enums import Difficulty
from focusloop.core.errors import ValidationError

DEFAULT_WINDOW_SIZE = 10
MIN_WINDOW_SIZE = 5
MAX_WINDOW_SIZE = 20

# Struggling detection looks at the last few answers only
STRUGGLE_LOOKBACK = 3
STRUGGLE_MIN_ANSWERS = 2
STRUGGLE_HINTS_THRESHOLD = 2.0
STRUGGLE_TIME_THRESHOLD = 60.0


@dataclass(frozen=True)
class StudentAnswer:
    """A single answered question as seen by the adaptive layer."""

    question_id: str
    correct: bool
    hints_used: int = 0
    time_spent_seconds: float = 0.0

    def __post_init__(self):
        if self.hints_used < 0:
            raise ValidationError("hints_used must be non-negative", hints_used=self.hints_used)
        if self.time_spent_seconds < 0:
            raise ValidationError(
                "time_spent_seconds must be non-negative",
                time_spent_seconds=self.time_spent_seconds,
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "correct": self.correct,
            "hints_used": self.hints_used,
            "time_spent_seconds": self.time_spent_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StudentAnswer:
        return cls(
            question_id=data["question_id"],
            correct=bool(data["correct"]),
            hints_used=int(data.get("hints_used", 0)),
            time_spent_seconds=float(data.get("time_spent_seconds", 0.0)),
        )


def is_struggling(recent_answers: Sequence[StudentAnswer]) -> bool:
    """
    Detect struggle from the last three answers.

    Struggling means average hints used above 2, or average time spent above
    60 seconds. Fewer than two answers is never struggling.
    """
    recent = list(recent_answers)[-STRUGGLE_LOOKBACK:]
    if len(recent) < STRUGGLE_MIN_ANSWERS:
        return False
    avg_hints = sum(a.hints_used for a in recent) / len(recent)
    avg_time = sum(a.time_spent_seconds for a in recent) / len(recent)
    return avg_hints > STRUGGLE_HINTS_THRESHOLD or avg_time > STRUGGLE_TIME_THRESHOLD


@dataclass
class StudentPerformanceState:
    student_id: str
    topic: str = ""
    mastery_level: float = 0.0
    window_size: int = DEFAULT_WINDOW_SIZE
    recent_answers: deque[StudentAnswer] = field(default_factory=deque)
    current_streak: int = 0
    longest_streak: int = 0
    struggling_indicators: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not MIN_WINDOW_SIZE <= self.window_size <= MAX_WINDOW_SIZE:
            raise ValidationError(
                f"window_size must be between {MIN_WINDOW_SIZE} and {MAX_WINDOW_SIZE}",
                window_size=self.window_size,
            )
        self.recent_answers = deque(self.recent_answers, maxlen=self.window_size)
        self._refresh_indicators()

    # ------------------------------------------------------------------
    # Derived metrics
    # ------------------------------------------------------------------

    @property
    def accuracy_rate(self) -> float:
        if not self.recent_answers:
            return 0.0
        return sum(1 for a in self.recent_answers if a.correct) / len(self.recent_answers)

    @property
    def average_time_per_question(self) -> float:
        if not self.recent_answers:
            return 0.0
        return sum(a.time_spent_seconds for a in self.recent_answers) / len(self.recent_answers)

    @property
    def hints_usage_rate(self) -> float:
        """Fraction of recent answers that needed at least one hint."""
        if not self.recent_answers:
            return 0.0
        return sum(1 for a in self.recent_answers if a.hints_used > 0) / len(self.recent_answers)

    @property
    def current_difficulty(self) -> Difficulty:
        return Difficulty.from_mastery(self.mastery_level)

    @property
    def is_struggling(self) -> bool:
        return is_struggling(self.recent_answers)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def record(self, answer: StudentAnswer, mastery_level: float | None = None) -> None:
        """Push one answer into the window and refresh derived state."""
        self.recent_answers.append(answer)
        if answer.correct:
            self.current_streak += 1
            self.longest_streak = max(self.longest_streak, self.current_streak)
        else:
            self.current_streak = 0
        if mastery_level is not None:
            self.mastery_level = mastery_level
        self._refresh_indicators()

    def _refresh_indicators(self) -> None:
        recent = list(self.recent_answers)[-STRUGGLE_LOOKBACK:]
        indicators = []
        if len(recent) == STRUGGLE_LOOKBACK and not any(a.correct for a in recent):
            indicators.append("consecutive_wrong")
        if len(recent) >= STRUGGLE_MIN_ANSWERS:
            if sum(a.hints_used for a in recent) / len(recent) > STRUGGLE_HINTS_THRESHOLD:
                indicators.append("heavy_hint_use")
            if sum(a.time_spent_seconds for a in recent) / len(recent) > STRUGGLE_TIME_THRESHOLD:
                indicators.append("slow_responses")
        self.struggling_indicators = indicators

    @classmethod
    def rebuild(
        cls,
        student_id: str,
        answers: Iterable[StudentAnswer],
        topic: str = "",
        mastery_level: float = 0.0,
        window_size: int = DEFAULT_WINDOW_SIZE,
    ) -> StudentPerformanceState:
        """Replay a sequence of answers into a fresh state."""
        state = cls(
            student_id=student_id,
            topic=topic,
            mastery_level=mastery_level,
            window_size=window_size,
        )
        for answer in answers:
            state.record(answer)
        return state

    def to_dict(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "topic": self.topic,
            "mastery_level": self.mastery_level,
            "accuracy_rate": self.accuracy_rate,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "average_time_per_question": self.average_time_per_question,
            "hints_usage_rate": self.hints_usage_rate,
            "current_difficulty": self.current_difficulty.value,
            "struggling_indicators": list(self.struggling_indicators),
            "recent_answers": [a.to_dict() for a in self.recent_answers],
        }
