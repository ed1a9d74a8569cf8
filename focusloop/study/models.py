"""
Focus session domain model.

A FocusSession owns a ConceptMap and an ordered list of SessionLoops. Each
loop carries one generated artifact, the raw item results, and - once
sealed - its computed LoopPerformance and optional DifficultyAdjustment.

Every entity serializes to a plain dict (to_dict) and back (from_dict);
timestamps are ISO-8601 strings and enums their string values.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from focusloop.content.artifacts import Artifact, artifact_from_dict
from focusloop.core.enums import (
    ArtifactType,
    Difficulty,
    SessionStatus,
    SubtopicStatus,
    TeachingStrategy,
    TriggerMetric,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# =============================================================================
# Concept map
# =============================================================================


@dataclass
class Subtopic:
    name: str
    description: str = ""
    prerequisites: list[str] = field(default_factory=list)
    status: SubtopicStatus = SubtopicStatus.NEW
    mastery_level: float = 0.0
    interactions: int = 0
    last_practiced: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "prerequisites": list(self.prerequisites),
            "status": self.status.value,
            "mastery_level": self.mastery_level,
            "interactions": self.interactions,
            "last_practiced": _iso(self.last_practiced),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Subtopic:
        return cls(
            name=data["name"],
            description=data.get("description") or "",
            prerequisites=list(data.get("prerequisites") or []),
            status=SubtopicStatus(data.get("status", SubtopicStatus.NEW.value)),
            mastery_level=float(data.get("mastery_level", 0.0)),
            interactions=int(data.get("interactions", 0)),
            last_practiced=_dt(data.get("last_practiced")),
        )


@dataclass
class ConceptMap:
    topic: str
    subtopics: list[Subtopic] = field(default_factory=list)
    misconceptions: list[str] = field(default_factory=list)
    examples: list[str] = field(default_factory=list)
    learning_goals: list[str] = field(default_factory=list)

    def get(self, name: str) -> Subtopic | None:
        for subtopic in self.subtopics:
            if subtopic.name == name:
                return subtopic
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "subtopics": [s.to_dict() for s in self.subtopics],
            "misconceptions": list(self.misconceptions),
            "examples": list(self.examples),
            "learning_goals": list(self.learning_goals),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConceptMap:
        return cls(
            topic=data["topic"],
            subtopics=[Subtopic.from_dict(s) for s in data.get("subtopics", [])],
            misconceptions=list(data.get("misconceptions", [])),
            examples=list(data.get("examples", [])),
            learning_goals=list(data.get("learning_goals", [])),
        )


# =============================================================================
# Loops
# =============================================================================


@dataclass
class SessionArtifact:
    type: ArtifactType
    difficulty: Difficulty
    content: Artifact
    generated_at: datetime
    target_subtopics: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "difficulty": self.difficulty.value,
            "content": self.content.to_dict(),
            "generated_at": _iso(self.generated_at),
            "target_subtopics": list(self.target_subtopics),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionArtifact:
        return cls(
            id=data["id"],
            type=ArtifactType(data["type"]),
            difficulty=Difficulty(data["difficulty"]),
            content=artifact_from_dict(data["content"]),
            generated_at=_dt(data["generated_at"]),
            target_subtopics=list(data.get("target_subtopics", [])),
        )


@dataclass
class ItemResult:
    """Outcome of one artifact item (card recalled, quiz answer, game round)."""

    item_id: str
    correct: bool
    hints_used: int = 0
    time_spent_seconds: float = 0.0
    subtopic: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "correct": self.correct,
            "hints_used": self.hints_used,
            "time_spent_seconds": self.time_spent_seconds,
            "subtopic": self.subtopic,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemResult:
        return cls(
            item_id=data["item_id"],
            correct=bool(data["correct"]),
            hints_used=int(data.get("hints_used", 0)),
            time_spent_seconds=float(data.get("time_spent_seconds", 0.0)),
            subtopic=data.get("subtopic"),
        )


@dataclass
class LoopPerformance:
    loop_number: int
    accuracy: float
    speed: float
    time_spent: float
    items_completed: int
    items_total: int
    hints_used: int
    attention_score: float
    engagement_level: float
    frustration_level: float
    concepts_practiced: list[str] = field(default_factory=list)
    concepts_improved: list[str] = field(default_factory=list)
    weak_areas: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "loop_number": self.loop_number,
            "accuracy": self.accuracy,
            "speed": self.speed,
            "time_spent": self.time_spent,
            "items_completed": self.items_completed,
            "items_total": self.items_total,
            "hints_used": self.hints_used,
            "attention_score": self.attention_score,
            "engagement_level": self.engagement_level,
            "frustration_level": self.frustration_level,
            "concepts_practiced": list(self.concepts_practiced),
            "concepts_improved": list(self.concepts_improved),
            "weak_areas": list(self.weak_areas),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoopPerformance:
        return cls(**data)


@dataclass
class DifficultyAdjustment:
    from_difficulty: Difficulty
    to_difficulty: Difficulty
    reason: str
    trigger_metric: TriggerMetric
    trigger_value: float
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_difficulty": self.from_difficulty.value,
            "to_difficulty": self.to_difficulty.value,
            "reason": self.reason,
            "trigger_metric": self.trigger_metric.value,
            "trigger_value": self.trigger_value,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DifficultyAdjustment:
        return cls(
            from_difficulty=Difficulty(data["from_difficulty"]),
            to_difficulty=Difficulty(data["to_difficulty"]),
            reason=data["reason"],
            trigger_metric=TriggerMetric(data["trigger_metric"]),
            trigger_value=float(data["trigger_value"]),
            timestamp=_dt(data["timestamp"]),
        )


@dataclass
class SessionLoop:
    loop_number: int
    start_time: datetime
    artifact: SessionArtifact
    results: list[ItemResult] | None = None
    end_time: datetime | None = None
    performance: LoopPerformance | None = None
    difficulty_adjustment: DifficultyAdjustment | None = None

    @property
    def has_results(self) -> bool:
        return self.results is not None

    @property
    def is_sealed(self) -> bool:
        return self.performance is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "loop_number": self.loop_number,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "artifact": self.artifact.to_dict(),
            "results": [r.to_dict() for r in self.results] if self.results is not None else None,
            "performance": self.performance.to_dict() if self.performance else None,
            "difficulty_adjustment": (
                self.difficulty_adjustment.to_dict() if self.difficulty_adjustment else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionLoop:
        results = data.get("results")
        performance = data.get("performance")
        adjustment = data.get("difficulty_adjustment")
        return cls(
            loop_number=int(data["loop_number"]),
            start_time=_dt(data["start_time"]),
            end_time=_dt(data.get("end_time")),
            artifact=SessionArtifact.from_dict(data["artifact"]),
            results=[ItemResult.from_dict(r) for r in results] if results is not None else None,
            performance=LoopPerformance.from_dict(performance) if performance else None,
            difficulty_adjustment=(
                DifficultyAdjustment.from_dict(adjustment) if adjustment else None
            ),
        )


# =============================================================================
# Session-level aggregates
# =============================================================================


@dataclass
class SessionPerformance:
    session_id: str
    student_id: str
    topic: str
    total_time: float
    loops_completed: int
    average_accuracy: float
    improvement_rate: float
    flashcards_completed: int
    quizzes_completed: int
    games_completed: int
    concepts_covered: list[str]
    concepts_mastered: list[str]
    concepts_needing_review: list[str]
    mastery_map: dict[str, float]
    start_difficulty: Difficulty
    end_difficulty: Difficulty
    difficulty_changes: int
    average_engagement: float
    peak_engagement: float
    frustrated_moments: int
    teaching_strategy: TeachingStrategy

    def modality_counts(self) -> dict[ArtifactType, int]:
        return {
            ArtifactType.FLASHCARDS: self.flashcards_completed,
            ArtifactType.QUIZ: self.quizzes_completed,
            ArtifactType.MICRO_GAME: self.games_completed,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "student_id": self.student_id,
            "topic": self.topic,
            "total_time": self.total_time,
            "loops_completed": self.loops_completed,
            "average_accuracy": self.average_accuracy,
            "improvement_rate": self.improvement_rate,
            "flashcards_completed": self.flashcards_completed,
            "quizzes_completed": self.quizzes_completed,
            "games_completed": self.games_completed,
            "concepts_covered": list(self.concepts_covered),
            "concepts_mastered": list(self.concepts_mastered),
            "concepts_needing_review": list(self.concepts_needing_review),
            "mastery_map": dict(self.mastery_map),
            "start_difficulty": self.start_difficulty.value,
            "end_difficulty": self.end_difficulty.value,
            "difficulty_changes": self.difficulty_changes,
            "average_engagement": self.average_engagement,
            "peak_engagement": self.peak_engagement,
            "frustrated_moments": self.frustrated_moments,
            "teaching_strategy": self.teaching_strategy.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionPerformance:
        return cls(
            **{
                **data,
                "start_difficulty": Difficulty(data["start_difficulty"]),
                "end_difficulty": Difficulty(data["end_difficulty"]),
                "teaching_strategy": TeachingStrategy(data["teaching_strategy"]),
            }
        )


@dataclass
class ReviewPlan:
    next_focus_minutes: float
    next_goals: list[str]
    recommended_modality: ArtifactType
    question_format: str
    target_difficulty: Difficulty
    target_subtopics: list[str]
    review_subtopics: list[str]
    new_subtopics: list[str]
    reasoning: str
    estimated_mastery_gain: float
    spaced_repetition_due: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_focus_minutes": self.next_focus_minutes,
            "next_goals": list(self.next_goals),
            "recommended_modality": self.recommended_modality.value,
            "question_format": self.question_format,
            "target_difficulty": self.target_difficulty.value,
            "target_subtopics": list(self.target_subtopics),
            "review_subtopics": list(self.review_subtopics),
            "new_subtopics": list(self.new_subtopics),
            "reasoning": self.reasoning,
            "estimated_mastery_gain": self.estimated_mastery_gain,
            "spaced_repetition_due": list(self.spaced_repetition_due),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewPlan:
        return cls(
            **{
                **data,
                "recommended_modality": ArtifactType(data["recommended_modality"]),
                "target_difficulty": Difficulty(data["target_difficulty"]),
            }
        )


# =============================================================================
# Session
# =============================================================================


@dataclass
class FocusSession:
    student_id: str
    topic: str
    start_time: datetime
    concept_map: ConceptMap
    target_duration_seconds: int = 1200
    status: SessionStatus = SessionStatus.PLANNING
    initial_difficulty: Difficulty = Difficulty.EASY
    current_difficulty: Difficulty = Difficulty.EASY
    target_accuracy: float = 0.7
    loops: list[SessionLoop] = field(default_factory=list)
    end_time: datetime | None = None
    performance: SessionPerformance | None = None
    review_plan: ReviewPlan | None = None
    cancel_reason: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def last_loop(self) -> SessionLoop | None:
        return self.loops[-1] if self.loops else None

    def get_loop(self, loop_number: int) -> SessionLoop | None:
        for loop in self.loops:
            if loop.loop_number == loop_number:
                return loop
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "topic": self.topic,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "target_duration_seconds": self.target_duration_seconds,
            "status": self.status.value,
            "initial_difficulty": self.initial_difficulty.value,
            "current_difficulty": self.current_difficulty.value,
            "target_accuracy": self.target_accuracy,
            "concept_map": self.concept_map.to_dict(),
            "loops": [loop.to_dict() for loop in self.loops],
            "performance": self.performance.to_dict() if self.performance else None,
            "review_plan": self.review_plan.to_dict() if self.review_plan else None,
            "cancel_reason": self.cancel_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FocusSession:
        performance = data.get("performance")
        review_plan = data.get("review_plan")
        return cls(
            id=data["id"],
            student_id=data["student_id"],
            topic=data["topic"],
            start_time=_dt(data["start_time"]),
            end_time=_dt(data.get("end_time")),
            target_duration_seconds=int(data.get("target_duration_seconds", 1200)),
            status=SessionStatus(data["status"]),
            initial_difficulty=Difficulty(data["initial_difficulty"]),
            current_difficulty=Difficulty(data["current_difficulty"]),
            target_accuracy=float(data.get("target_accuracy", 0.7)),
            concept_map=ConceptMap.from_dict(data["concept_map"]),
            loops=[SessionLoop.from_dict(loop) for loop in data.get("loops", [])],
            performance=SessionPerformance.from_dict(performance) if performance else None,
            review_plan=ReviewPlan.from_dict(review_plan) if review_plan else None,
            cancel_reason=data.get("cancel_reason"),
        )

    def copy(self) -> FocusSession:
        return FocusSession.from_dict(self.to_dict())
