"""
Grading-to-Mastery Mapper.

Translates a graded attempt (correctness, reasoning quality, answer style,
confidence) into a mastery delta and an updated decay rate, and decides when
an attempt is notable enough to raise a behavioral note.

Delta table:
- skip, or reasoning 1 (pure guess): 0
- correct: +3 with solid reasoning (>= 4), else +2
- partial: 0 if trying (reasoning >= 3), else -1
- incorrect: -3 confident misconception (high confidence, reasoning <= 2),
  -1 if reasoning >= 3, else -2
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from focusloop.core.enums import (
    AnswerStyle,
    ConfidenceLevel,
    Correctness,
    NotePriority,
    NoteType,
)
from focusloop.core.errors import ValidationError
from focusloop.learning.skill_ledger import DECAY_MAX, DECAY_MIN

# Attention anomaly: answer time deviating more than this fraction from average
TIME_DEVIATION_RATIO = 0.5


@dataclass
class GradedAttempt:
    """Evaluation of a single answer."""

    correctness: Correctness
    reasoning_quality: int
    answer_style: AnswerStyle
    confidence_level: ConfidenceLevel
    misunderstanding_label: str | None = None
    feedback: str = ""

    def __post_init__(self):
        try:
            self.correctness = Correctness(self.correctness)
            self.answer_style = AnswerStyle(self.answer_style)
            self.confidence_level = ConfidenceLevel(self.confidence_level)
        except ValueError as e:
            raise ValidationError(f"Invalid graded attempt: {e}") from e

        if isinstance(self.reasoning_quality, bool) or not isinstance(
            self.reasoning_quality, int
        ):
            raise ValidationError(
                "reasoning_quality must be an integer",
                reasoning_quality=self.reasoning_quality,
            )
        if not 1 <= self.reasoning_quality <= 5:
            raise ValidationError(
                "reasoning_quality must be between 1 and 5",
                reasoning_quality=self.reasoning_quality,
            )
        if self.misunderstanding_label is not None:
            self.misunderstanding_label = self.misunderstanding_label.strip() or None

    def to_dict(self) -> dict[str, Any]:
        return {
            "correctness": self.correctness.value,
            "reasoning_quality": self.reasoning_quality,
            "answer_style": self.answer_style.value,
            "confidence_level": self.confidence_level.value,
            "misunderstanding_label": self.misunderstanding_label,
            "feedback": self.feedback,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GradedAttempt:
        try:
            return cls(
                correctness=data["correctness"],
                reasoning_quality=data["reasoning_quality"],
                answer_style=data["answer_style"],
                confidence_level=data["confidence_level"],
                misunderstanding_label=data.get("misunderstanding_label"),
                feedback=data.get("feedback") or data.get("ai_feedback") or "",
            )
        except KeyError as e:
            raise ValidationError(f"Graded attempt missing field {e}") from e


@dataclass(frozen=True)
class MasteryUpdate:
    mastery_delta: int
    new_decay_rate: float


def calculate_mastery_delta(attempt: GradedAttempt) -> int:
    """Exact delta table for one graded attempt."""
    if attempt.answer_style == AnswerStyle.SKIP or attempt.reasoning_quality == 1:
        return 0

    reasoning = attempt.reasoning_quality
    if attempt.correctness == Correctness.CORRECT:
        return 3 if reasoning >= 4 else 2
    if attempt.correctness == Correctness.PARTIAL:
        return 0 if reasoning >= 3 else -1

    if attempt.confidence_level == ConfidenceLevel.HIGH and reasoning <= 2:
        return -3
    if reasoning >= 3:
        return -1
    return -2


def update_decay_rate(current_decay: float, attempt: GradedAttempt) -> float:
    """
    Adjust decay rate for consistency.

    Correct answers with solid reasoning stabilize memory (slower decay);
    confused wrong answers speed it up slightly.
    """
    if attempt.correctness == Correctness.CORRECT and attempt.reasoning_quality >= 4:
        return max(DECAY_MIN, current_decay - 0.02)
    if attempt.correctness == Correctness.INCORRECT and attempt.reasoning_quality <= 2:
        return min(DECAY_MAX, current_decay + 0.01)
    return current_decay


def map_to_delta(attempt: GradedAttempt, current_decay_rate: float) -> MasteryUpdate:
    return MasteryUpdate(
        mastery_delta=calculate_mastery_delta(attempt),
        new_decay_rate=update_decay_rate(current_decay_rate, attempt),
    )


# =============================================================================
# Behavioral notes
# =============================================================================


@dataclass
class BehavioralNote:
    """An observation about learner behavior worth surfacing to a tutor."""

    student_id: str
    skill_id: str
    comment: str
    note_type: NoteType = NoteType.INSIGHT
    priority: NotePriority = NotePriority.MEDIUM
    session_id: str | None = None
    created_at: datetime | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def actionable(self) -> bool:
        return self.priority == NotePriority.HIGH

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "skill_id": self.skill_id,
            "session_id": self.session_id,
            "note_type": self.note_type.value,
            "priority": self.priority.value,
            "comment": self.comment,
            "actionable": self.actionable,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BehavioralNote:
        created = data.get("created_at")
        return cls(
            id=data["id"],
            student_id=data["student_id"],
            skill_id=data["skill_id"],
            session_id=data.get("session_id"),
            note_type=NoteType(data.get("note_type", NoteType.INSIGHT.value)),
            priority=NotePriority(data.get("priority", NotePriority.MEDIUM.value)),
            comment=data["comment"],
            created_at=datetime.fromisoformat(created) if created else None,
        )


def _timing_anomaly(time_seconds: float, average_time_seconds: float | None) -> bool:
    if not average_time_seconds:
        return False
    return abs(time_seconds - average_time_seconds) > average_time_seconds * TIME_DEVIATION_RATIO


def should_raise_note(
    attempt: GradedAttempt,
    time_seconds: float,
    average_time_seconds: float | None,
) -> bool:
    """
    Decide whether an attempt warrants a behavioral note.

    True on any of:
    - a misconception label
    - answer time deviating more than 50% from the learner's average
    - an incorrect answer given with high confidence
    """
    if attempt.misunderstanding_label:
        return True
    if _timing_anomaly(time_seconds, average_time_seconds):
        return True
    return (
        attempt.correctness == Correctness.INCORRECT
        and attempt.confidence_level == ConfidenceLevel.HIGH
    )


def build_note(
    student_id: str,
    skill_id: str,
    attempt: GradedAttempt,
    time_seconds: float,
    average_time_seconds: float | None,
    session_id: str | None = None,
    created_at: datetime | None = None,
) -> BehavioralNote | None:
    """Compose the note for a notable attempt, or None if nothing stands out."""
    if attempt.misunderstanding_label:
        return BehavioralNote(
            student_id=student_id,
            skill_id=skill_id,
            session_id=session_id,
            created_at=created_at,
            note_type=NoteType.INTERVENTION,
            priority=NotePriority.HIGH,
            comment=(
                f"Pattern detected: {attempt.misunderstanding_label}. "
                "Reteach this concept with a different approach."
            ),
        )

    if _timing_anomaly(time_seconds, average_time_seconds):
        pace = "longer" if time_seconds > average_time_seconds else "shorter"
        return BehavioralNote(
            student_id=student_id,
            skill_id=skill_id,
            session_id=session_id,
            created_at=created_at,
            note_type=NoteType.PATTERN,
            priority=NotePriority.MEDIUM,
            comment=(
                f"This question took {time_seconds:g} seconds, much {pace} than the usual "
                f"{average_time_seconds:.0f}. Check which step is confusing or being skipped."
            ),
        )

    if (
        attempt.correctness == Correctness.INCORRECT
        and attempt.confidence_level == ConfidenceLevel.HIGH
    ):
        return BehavioralNote(
            student_id=student_id,
            skill_id=skill_id,
            session_id=session_id,
            created_at=created_at,
            note_type=NoteType.INTERVENTION,
            priority=NotePriority.HIGH,
            comment=(
                "High confidence but wrong answer. This suggests a misconception, "
                "not just a mistake. Needs targeted correction."
            ),
        )

    return None
