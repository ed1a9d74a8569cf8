"""
SQLAlchemy-backed Store.

Skills and notes map to columns; focus sessions are stored as their full
JSON graph. Every database error is surfaced as CollaboratorUnavailable.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from focusloop.core.clock import ensure_aware
from focusloop.core.enums import AnswerStyle, NotePriority, NoteType, SessionStatus
from focusloop.core.errors import CollaboratorUnavailable
from focusloop.db.database import init_db, make_session_factory, session_scope
from focusloop.db.models import BehavioralNoteRecord, FocusSessionRecord, SkillRecord
from focusloop.learning.grading import BehavioralNote
from focusloop.learning.skill_ledger import Skill
from focusloop.study.models import FocusSession


class SqlStore:
    def __init__(self, engine: Engine, create_tables: bool = True):
        self.engine = engine
        self._factory = make_session_factory(engine)
        if create_tables:
            init_db(engine)

    @contextmanager
    def _scope(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._factory) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Store {operation} failed: {e}")
            raise CollaboratorUnavailable(f"Store {operation} failed", cause=str(e)) from e

    # =========================================================================
    # Skills
    # =========================================================================

    def load_skills(self, student_id: str) -> list[Skill]:
        with self._scope("load_skills") as session:
            rows = session.scalars(
                select(SkillRecord).where(SkillRecord.student_id == student_id)
            ).all()
            return [_skill_from_record(row) for row in rows]

    def save_skill(self, skill: Skill) -> None:
        with self._scope("save_skill") as session:
            record = session.get(SkillRecord, skill.id) or SkillRecord(id=skill.id)
            record.student_id = skill.student_id
            record.domain = skill.domain
            record.category = skill.category
            record.display_name = skill.display_name
            record.mastery = skill.mastery
            record.decay_rate = skill.decay_rate
            record.last_seen = skill.last_seen
            record.total_attempts = skill.total_attempts
            record.correct_attempts = skill.correct_attempts
            record.typical_answer_style = (
                skill.typical_answer_style.value if skill.typical_answer_style else None
            )
            record.average_time_seconds = skill.average_time_seconds
            record.timed_attempts = skill.timed_attempts
            session.add(record)

    # =========================================================================
    # Sessions
    # =========================================================================

    def load_session(self, session_id: str) -> FocusSession | None:
        with self._scope("load_session") as session:
            record = session.get(FocusSessionRecord, session_id)
            return FocusSession.from_dict(record.data) if record else None

    def save_session(self, focus_session: FocusSession) -> None:
        with self._scope("save_session") as session:
            record = session.get(FocusSessionRecord, focus_session.id) or FocusSessionRecord(
                id=focus_session.id
            )
            record.student_id = focus_session.student_id
            record.topic = focus_session.topic
            record.status = focus_session.status.value
            record.data = focus_session.to_dict()
            session.add(record)

    def load_open_sessions(self) -> list[FocusSession]:
        open_states = [SessionStatus.PLANNING.value, SessionStatus.ACTIVE.value]
        with self._scope("load_open_sessions") as session:
            rows = session.scalars(
                select(FocusSessionRecord).where(FocusSessionRecord.status.in_(open_states))
            ).all()
            return [FocusSession.from_dict(row.data) for row in rows]

    # =========================================================================
    # Notes
    # =========================================================================

    def add_note(self, note: BehavioralNote) -> None:
        with self._scope("add_note") as session:
            session.add(
                BehavioralNoteRecord(
                    id=note.id,
                    student_id=note.student_id,
                    skill_id=note.skill_id,
                    session_id=note.session_id,
                    note_type=note.note_type.value,
                    priority=note.priority.value,
                    comment=note.comment,
                    actionable=note.actionable,
                    created_at=note.created_at,
                )
            )

    def load_notes(self, student_id: str) -> list[BehavioralNote]:
        with self._scope("load_notes") as session:
            rows = session.scalars(
                select(BehavioralNoteRecord)
                .where(BehavioralNoteRecord.student_id == student_id)
                .order_by(BehavioralNoteRecord.created_at)
            ).all()
            return [
                BehavioralNote(
                    id=row.id,
                    student_id=row.student_id,
                    skill_id=row.skill_id,
                    session_id=row.session_id,
                    note_type=NoteType(row.note_type),
                    priority=NotePriority(row.priority),
                    comment=row.comment,
                    created_at=ensure_aware(row.created_at) if row.created_at else None,
                )
                for row in rows
            ]


def _skill_from_record(row: SkillRecord) -> Skill:
    return Skill(
        id=row.id,
        student_id=row.student_id,
        domain=row.domain,
        category=row.category,
        display_name=row.display_name,
        mastery=row.mastery,
        decay_rate=row.decay_rate,
        last_seen=ensure_aware(row.last_seen) if row.last_seen else None,
        total_attempts=row.total_attempts,
        correct_attempts=row.correct_attempts,
        typical_answer_style=(
            AnswerStyle(row.typical_answer_style) if row.typical_answer_style else None
        ),
        average_time_seconds=row.average_time_seconds,
        timed_attempts=row.timed_attempts,
    )
