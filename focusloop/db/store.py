"""
Persistence interface for learner state.

Implementations raise CollaboratorUnavailable when the backing store cannot
be reached; callers treat that as a deferred write, not a failed operation.
"""

from __future__ import annotations

import threading
from typing import Protocol

from focusloop.core.enums import SessionStatus
from focusloop.learning.grading import BehavioralNote
from focusloop.learning.skill_ledger import Skill
from focusloop.study.models import FocusSession


class Store(Protocol):
    def load_skills(self, student_id: str) -> list[Skill]: ...

    def save_skill(self, skill: Skill) -> None: ...

    def load_session(self, session_id: str) -> FocusSession | None: ...

    def save_session(self, session: FocusSession) -> None: ...

    def load_open_sessions(self) -> list[FocusSession]: ...

    def add_note(self, note: BehavioralNote) -> None: ...

    def load_notes(self, student_id: str) -> list[BehavioralNote]: ...


class InMemoryStore:
    """
    Process-local store.

    Entities are kept as serialized snapshots so callers can never mutate
    stored state through a returned object.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._skills: dict[str, dict] = {}
        self._sessions: dict[str, dict] = {}
        self._notes: list[dict] = []

    def load_skills(self, student_id: str) -> list[Skill]:
        with self._lock:
            rows = [s for s in self._skills.values() if s["student_id"] == student_id]
        return [Skill.from_dict(row) for row in rows]

    def save_skill(self, skill: Skill) -> None:
        with self._lock:
            self._skills[skill.id] = skill.to_dict()

    def load_session(self, session_id: str) -> FocusSession | None:
        with self._lock:
            data = self._sessions.get(session_id)
        return FocusSession.from_dict(data) if data else None

    def save_session(self, session: FocusSession) -> None:
        with self._lock:
            self._sessions[session.id] = session.to_dict()

    def load_open_sessions(self) -> list[FocusSession]:
        open_states = {SessionStatus.PLANNING.value, SessionStatus.ACTIVE.value}
        with self._lock:
            rows = [s for s in self._sessions.values() if s["status"] in open_states]
        return [FocusSession.from_dict(row) for row in rows]

    def add_note(self, note: BehavioralNote) -> None:
        with self._lock:
            self._notes.append(note.to_dict())

    def load_notes(self, student_id: str) -> list[BehavioralNote]:
        with self._lock:
            rows = [n for n in self._notes if n["student_id"] == student_id]
        return [BehavioralNote.from_dict(row) for row in rows]
