"""
Learner state models.

- skills: one row per (student, domain) mastery record
- focus_sessions: full session graph stored as JSON, with status and student
  columns for lookups
- behavioral_notes: tutor-facing observations raised during grading
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SkillRecord(Base):
    """Persisted Skill. Mastery is 0-100, decay rate 0.05-0.50."""

    __tablename__ = "skills"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    domain: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str] = mapped_column(String(64), default="general")
    display_name: Mapped[str] = mapped_column(Text, default="")

    mastery: Mapped[float] = mapped_column(Float, default=0.0)
    decay_rate: Mapped[float] = mapped_column(Float, default=0.15)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    correct_attempts: Mapped[int] = mapped_column(Integer, default=0)
    typical_answer_style: Mapped[str | None] = mapped_column(String(16))
    average_time_seconds: Mapped[float | None] = mapped_column(Float)
    timed_attempts: Mapped[int] = mapped_column(Integer, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    __table_args__ = (UniqueConstraint("student_id", "domain", name="uq_student_domain"),)

    def __repr__(self) -> str:
        return f"<SkillRecord student={self.student_id} domain={self.domain} mastery={self.mastery}>"


class FocusSessionRecord(Base):
    __tablename__ = "focus_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(128), nullable=False)
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_focus_sessions_student_status", "student_id", "status"),)

    def __repr__(self) -> str:
        return f"<FocusSessionRecord id={self.id} student={self.student_id} status={self.status}>"


class BehavioralNoteRecord(Base):
    __tablename__ = "behavioral_notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    skill_id: Mapped[str] = mapped_column(String(36), nullable=False)
    session_id: Mapped[str | None] = mapped_column(String(36))
    note_type: Mapped[str] = mapped_column(String(16), nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    actionable: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
