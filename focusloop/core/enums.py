"""
Shared vocabularies for the focusloop engine.

All enums are str-valued so they serialize directly into JSON payloads,
SQL text columns and API responses.
"""

from __future__ import annotations

from enum import Enum


class Difficulty(str, Enum):
    """
    Difficulty band for practice content.

    Bands are totally ordered: EASY < MEDIUM < HARD.
    """

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def ordered(cls) -> list[Difficulty]:
        return [cls.EASY, cls.MEDIUM, cls.HARD]

    @property
    def rank(self) -> int:
        return Difficulty.ordered().index(self)

    def harder(self) -> Difficulty:
        """One band up, clamped at HARD."""
        bands = Difficulty.ordered()
        return bands[min(self.rank + 1, len(bands) - 1)]

    def easier(self) -> Difficulty:
        """One band down, clamped at EASY."""
        bands = Difficulty.ordered()
        return bands[max(self.rank - 1, 0)]

    @classmethod
    def from_mastery(cls, mastery: float) -> Difficulty:
        """Band a 0-100 mastery score: <30 easy, >70 hard, else medium."""
        if mastery < 30:
            return cls.EASY
        if mastery > 70:
            return cls.HARD
        return cls.MEDIUM


class ConfidenceLevel(str, Enum):
    """Learner confidence, either self-reported or derived from mastery bands."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_mastery(cls, mastery: float) -> ConfidenceLevel:
        if mastery < 30:
            return cls.LOW
        if mastery < 70:
            return cls.MEDIUM
        return cls.HIGH


class Correctness(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    PARTIAL = "partial"


class AnswerStyle(str, Enum):
    """How the learner approached an answer."""

    GUESS = "guess"
    SKIP = "skip"
    WORKED = "worked"
    RUSHED = "rushed"

    @property
    def needs_explanation(self) -> bool:
        """Guessing or rushing learners get explanation-forcing formats."""
        return self in (AnswerStyle.GUESS, AnswerStyle.RUSHED)


class SessionStatus(str, Enum):
    """Focus session lifecycle state."""

    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.CANCELLED)


class ArtifactType(str, Enum):
    """Practice modality of a generated artifact."""

    FLASHCARDS = "flashcards"
    QUIZ = "quiz"
    MICRO_GAME = "micro_game"

    @classmethod
    def rotation(cls) -> list[ArtifactType]:
        return [cls.FLASHCARDS, cls.QUIZ, cls.MICRO_GAME]

    def next_in_rotation(self) -> ArtifactType:
        order = ArtifactType.rotation()
        return order[(order.index(self) + 1) % len(order)]


class SubtopicStatus(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    OK = "ok"
    WEAK = "weak"
    MASTERED = "mastered"

    @classmethod
    def from_mastery(cls, mastery_level: float) -> SubtopicStatus:
        """Derive status from a 0-1 subtopic mastery level."""
        if mastery_level >= 0.85:
            return cls.MASTERED
        if mastery_level >= 0.7:
            return cls.OK
        if mastery_level >= 0.4:
            return cls.LEARNING
        return cls.WEAK


class NoteType(str, Enum):
    PATTERN = "pattern"
    INSIGHT = "insight"
    INTERVENTION = "intervention"


class NotePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ScaffoldingIntensity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TeachingStrategy(str, Enum):
    REINFORCE = "reinforce"
    ADVANCE = "advance"
    REMEDIATE = "remediate"
    DIVERSIFY = "diversify"


class TriggerMetric(str, Enum):
    """Metric that caused a difficulty adjustment."""

    ACCURACY = "accuracy"
    FRUSTRATION = "frustration"
