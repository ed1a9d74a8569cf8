"""
Urgency Ranker - decides which skill to practice next.

Urgency grows with the mastery gap, the skill's decay rate, and time since
the skill was last seen:

    urgency = (100 - mastery) * decay_rate * (1 + days_since_seen / 7)

The most urgent skill wins. Ties break on lowest mastery, then on domain name,
so the choice is deterministic for a given clock reading.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from focusloop.core.clock import days_since
from focusloop.core.enums import AnswerStyle, Difficulty
from focusloop.core.errors import NoSkillsAvailable
from focusloop.learning.skill_ledger import Skill

DECAY_WINDOW_DAYS = 7.0


@dataclass(frozen=True)
class RankedSkill:
    skill: Skill
    urgency: float
    days_since_seen: float

    @property
    def difficulty(self) -> Difficulty:
        return Difficulty.from_mastery(self.skill.mastery)


def urgency_score(skill: Skill, now: datetime) -> float:
    days = days_since(skill.last_seen, now)
    return (100.0 - skill.mastery) * skill.decay_rate * (1.0 + days / DECAY_WINDOW_DAYS)


def rank(skills: Sequence[Skill], now: datetime) -> list[RankedSkill]:
    """Score every skill and order them most urgent first."""
    ranked = [
        RankedSkill(skill=s, urgency=urgency_score(s, now), days_since_seen=days_since(s.last_seen, now))
        for s in skills
    ]
    ranked.sort(key=lambda r: (-r.urgency, r.skill.mastery, r.skill.domain))
    return ranked


def select_next(skills: Sequence[Skill], now: datetime) -> Skill:
    """
    Pick the single most urgent skill.

    Raises:
        NoSkillsAvailable: If there is nothing to choose from
    """
    if not skills:
        raise NoSkillsAvailable("No skills available to rank")
    return rank(skills, now)[0].skill


def difficulty_for(skill: Skill) -> Difficulty:
    return Difficulty.from_mastery(skill.mastery)


def select_question_format(
    typical_answer_style: AnswerStyle | str | None,
    learning_style: str | None = None,
) -> str:
    """
    Choose a question format for the learner.

    Learners who guess or rush get formats that require an explanation;
    otherwise the format follows the learning style.
    """
    if typical_answer_style is not None and AnswerStyle(typical_answer_style).needs_explanation:
        return "explanation_required"

    formats = {
        "visual": "visual_word_problems",
        "kinesthetic": "hands_on_scenarios",
        "logical": "number_patterns",
    }
    return formats.get((learning_style or "").lower(), "mixed_format")
