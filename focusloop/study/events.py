"""
Domain events.

The engine performs no I/O for side effects such as notifications or
analytics. It records events on an EventOutbox and the caller drains them.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any

SESSION_STARTED = "SessionStarted"
LOOP_COMPLETED = "LoopCompleted"
DIFFICULTY_ADJUSTED = "DifficultyAdjusted"
CONCEPT_MASTERED = "ConceptMastered"
SESSION_COMPLETED = "SessionCompleted"
SESSION_CANCELLED = "SessionCancelled"
NOTE_RAISED = "NoteRaised"


@dataclass(frozen=True)
class DomainEvent:
    name: str
    payload: dict[str, Any]
    occurred_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "payload": dict(self.payload),
            "occurred_at": self.occurred_at.isoformat(),
        }


class EventOutbox:
    """Thread-safe FIFO of pending domain events."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[DomainEvent] = []

    def emit(self, name: str, occurred_at: datetime, **payload) -> DomainEvent:
        event = DomainEvent(name=name, payload=payload, occurred_at=occurred_at)
        with self._lock:
            self._events.append(event)
        return event

    def drain(self) -> list[DomainEvent]:
        """Return and clear all pending events, oldest first."""
        with self._lock:
            events, self._events = self._events, []
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
