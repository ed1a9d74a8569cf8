"""
Content Module - Practice artifacts and their generators.

Components:
- artifacts: FlashcardSet | Quiz | MicroGame tagged union
- generator: Template, HTTP (LLM) and fallback content generators
  (import from focusloop.content.generator)
"""

from focusloop.content.artifacts import (
    Artifact,
    Flashcard,
    FlashcardSet,
    GameRound,
    MicroGame,
    Quiz,
    QuizItem,
    artifact_from_dict,
)

__all__ = [
    "Artifact",
    "Flashcard",
    "FlashcardSet",
    "GameRound",
    "MicroGame",
    "Quiz",
    "QuizItem",
    "artifact_from_dict",
]
