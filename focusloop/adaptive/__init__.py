"""
Adaptive Module - What to practice next and how much support to give.

Components:
- urgency_ranker: Decay-weighted skill prioritization
- scaffolding: Hint levels, worked examples, scaffolding intensity
- DifficultyAdapter: Loop affect metrics and band adjustment
"""

from focusloop.adaptive.difficulty_adapter import (
    AdjustmentDecision,
    DifficultyAdapter,
    ModalitySuggestion,
)
from focusloop.adaptive.scaffolding import (
    next_hint,
    scaffolding_intensity,
    worked_example_eligible,
)
from focusloop.adaptive.urgency_ranker import (
    RankedSkill,
    rank,
    select_next,
    select_question_format,
    urgency_score,
)

__all__ = [
    "AdjustmentDecision",
    "DifficultyAdapter",
    "ModalitySuggestion",
    "RankedSkill",
    "next_hint",
    "rank",
    "scaffolding_intensity",
    "select_next",
    "select_question_format",
    "urgency_score",
    "worked_example_eligible",
]
