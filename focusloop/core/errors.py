"""
Error taxonomy for the focusloop engine.

Callers branch on the category (ValidationError, NotFound, StateConflict,
CollaboratorUnavailable, InternalError); the concrete subclasses name the
specific rule that was broken.
"""

from __future__ import annotations


class FocusloopError(Exception):
    """Base class for all engine errors."""

    code = "internal"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.context}


class ValidationError(FocusloopError):
    """Missing or malformed input. Raised before any state is touched."""

    code = "validation_error"


class NoSkillsAvailable(ValidationError):
    """Urgency ranking was asked to choose from an empty skill list."""

    code = "no_skills_available"


class NotFound(FocusloopError):
    """Unknown student, skill or session id."""

    code = "not_found"


class StateConflict(FocusloopError):
    """Illegal state-machine transition."""

    code = "state_conflict"


class SessionAlreadyActive(StateConflict):
    code = "session_already_active"


class LoopAlreadySealed(StateConflict):
    code = "loop_already_sealed"


class InvalidLoopSequence(StateConflict):
    code = "invalid_loop_sequence"


class CollaboratorUnavailable(FocusloopError):
    """Content generator or store unreachable, timed out, or returned garbage."""

    code = "collaborator_unavailable"


class InternalError(FocusloopError):
    code = "internal"
