"""
Practice artifacts.

An artifact is one of three concrete shapes, discriminated by `kind`:

- FlashcardSet: front/back recall cards
- Quiz: multiple-choice or short-answer items with explanations
- MicroGame: short timed rounds of prompts

artifact_from_dict() dispatches on the tag and rejects unknown kinds.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Union

from focusloop.core.enums import ArtifactType, Difficulty
from focusloop.core.errors import ValidationError


@dataclass
class Flashcard:
    id: str
    front: str
    back: str
    subtopic: str
    difficulty: Difficulty = Difficulty.EASY
    ease_factor: float = 2.5
    interval_days: int = 1


@dataclass
class FlashcardSet:
    kind: ClassVar[ArtifactType] = ArtifactType.FLASHCARDS

    cards: list[Flashcard] = field(default_factory=list)
    estimated_time_seconds: int = 300

    @property
    def item_ids(self) -> list[str]:
        return [card.id for card in self.cards]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FlashcardSet:
        cards = [
            Flashcard(**{**card, "difficulty": Difficulty(card.get("difficulty", "easy"))})
            for card in data.get("cards", [])
        ]
        return cls(cards=cards, estimated_time_seconds=data.get("estimated_time_seconds", 300))


@dataclass
class QuizItem:
    id: str
    question: str
    answer: str
    subtopic: str
    item_type: str = "mcq"
    choices: list[str] = field(default_factory=list)
    explanation: str = ""
    hints: list[str] = field(default_factory=list)
    difficulty: Difficulty = Difficulty.EASY
    points: int = 1


@dataclass
class Quiz:
    kind: ClassVar[ArtifactType] = ArtifactType.QUIZ

    title: str
    items: list[QuizItem] = field(default_factory=list)
    description: str = ""
    passing_score: float = 0.7
    question_format: str = "mixed_format"

    @property
    def item_ids(self) -> list[str]:
        return [item.id for item in self.items]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Quiz:
        items = [
            QuizItem(**{**item, "difficulty": Difficulty(item.get("difficulty", "easy"))})
            for item in data.get("items", [])
        ]
        return cls(
            title=data.get("title", ""),
            items=items,
            description=data.get("description", ""),
            passing_score=data.get("passing_score", 0.7),
            question_format=data.get("question_format", "mixed_format"),
        )


@dataclass
class GameRound:
    id: str
    prompt: str
    correct_response: str
    subtopic: str
    distractors: list[str] = field(default_factory=list)
    hint: str | None = None


@dataclass
class MicroGame:
    kind: ClassVar[ArtifactType] = ArtifactType.MICRO_GAME

    game_type: str
    rounds: list[GameRound] = field(default_factory=list)
    time_per_round_seconds: int = 60
    target_concepts: list[str] = field(default_factory=list)

    @property
    def item_ids(self) -> list[str]:
        return [r.id for r in self.rounds]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MicroGame:
        return cls(
            game_type=data.get("game_type", "pattern-recognition"),
            rounds=[GameRound(**r) for r in data.get("rounds", [])],
            time_per_round_seconds=data.get("time_per_round_seconds", 60),
            target_concepts=list(data.get("target_concepts", [])),
        )


Artifact = Union[FlashcardSet, Quiz, MicroGame]

_ARTIFACT_TYPES: dict[ArtifactType, type] = {
    ArtifactType.FLASHCARDS: FlashcardSet,
    ArtifactType.QUIZ: Quiz,
    ArtifactType.MICRO_GAME: MicroGame,
}


def artifact_from_dict(data: dict[str, Any]) -> Artifact:
    """Rebuild an artifact from its serialized form, dispatching on `kind`."""
    try:
        kind = ArtifactType(data["kind"])
    except (KeyError, ValueError) as e:
        raise ValidationError(f"Unknown artifact kind: {data.get('kind')!r}") from e
    try:
        return _ARTIFACT_TYPES[kind].from_dict(data)
    except (TypeError, KeyError) as e:
        raise ValidationError(f"Malformed {kind.value} artifact: {e}") from e
