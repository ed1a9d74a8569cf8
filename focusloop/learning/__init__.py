"""
Learning Module - Long-term mastery tracking.

Components:
- SkillLedger: Per-(student, domain) mastery records with clamped updates
- grading: Graded attempt -> mastery delta / decay rate, behavioral notes
- StudentPerformanceState: Rolling window of recent answers
"""

from focusloop.learning.grading import (
    BehavioralNote,
    GradedAttempt,
    MasteryUpdate,
    build_note,
    map_to_delta,
    should_raise_note,
)
from focusloop.learning.performance_state import (
    StudentAnswer,
    StudentPerformanceState,
    is_struggling,
)
from focusloop.learning.skill_ledger import (
    DEFAULT_CURRICULUM,
    AppliedAttempt,
    Skill,
    SkillLedger,
    seed_decay_rate,
)

__all__ = [
    "AppliedAttempt",
    "BehavioralNote",
    "DEFAULT_CURRICULUM",
    "GradedAttempt",
    "MasteryUpdate",
    "Skill",
    "SkillLedger",
    "StudentAnswer",
    "StudentPerformanceState",
    "build_note",
    "is_struggling",
    "map_to_delta",
    "seed_decay_rate",
    "should_raise_note",
]
