# SQLAlchemy models
from .base import Base
from .learning import BehavioralNoteRecord, FocusSessionRecord, SkillRecord

__all__ = [
    "Base",
    "BehavioralNoteRecord",
    "FocusSessionRecord",
    "SkillRecord",
]
