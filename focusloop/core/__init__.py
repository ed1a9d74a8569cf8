"""
Core Module - Shared vocabularies, errors and infrastructure.

Components:
- enums: Difficulty bands, grading vocabularies, session/artifact states
- errors: Error taxonomy (validation, not found, state conflict, collaborator)
- clock: Injectable time source
- locks: Per-key locking for single-writer-per-entity updates
- logging: Loguru sink setup
"""

from focusloop.core.clock import Clock, FixedClock, SystemClock, days_since
from focusloop.core.enums import (
    AnswerStyle,
    ArtifactType,
    ConfidenceLevel,
    Correctness,
    Difficulty,
    NotePriority,
    NoteType,
    ScaffoldingIntensity,
    SessionStatus,
    SubtopicStatus,
    TeachingStrategy,
    TriggerMetric,
)
from focusloop.core.errors import (
    CollaboratorUnavailable,
    FocusloopError,
    InternalError,
    InvalidLoopSequence,
    LoopAlreadySealed,
    NoSkillsAvailable,
    NotFound,
    SessionAlreadyActive,
    StateConflict,
    ValidationError,
)
from focusloop.core.locks import KeyedLocks

__all__ = [
    # Time
    "Clock",
    "FixedClock",
    "SystemClock",
    "days_since",
    # Enums
    "AnswerStyle",
    "ArtifactType",
    "ConfidenceLevel",
    "Correctness",
    "Difficulty",
    "NotePriority",
    "NoteType",
    "ScaffoldingIntensity",
    "SessionStatus",
    "SubtopicStatus",
    "TeachingStrategy",
    "TriggerMetric",
    # Errors
    "CollaboratorUnavailable",
    "FocusloopError",
    "InternalError",
    "InvalidLoopSequence",
    "LoopAlreadySealed",
    "NoSkillsAvailable",
    "NotFound",
    "SessionAlreadyActive",
    "StateConflict",
    "ValidationError",
    # Concurrency
    "KeyedLocks",
]
