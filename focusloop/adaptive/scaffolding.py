"""
Scaffolding Selector - progressive support within a question.

Hints are disclosed progressively:
- Attempt 1 with low confidence: level 1 (nudge)
- Attempt 2: level 2 (guidance)
- Attempt 3+: level 3 (reveal)

A learner who is struggling across recent questions gets one level more
help than the base mapping.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from focusloop.core.enums import ConfidenceLevel, ScaffoldingIntensity
from focusloop.learning.performance_state import StudentAnswer, is_struggling

MAX_HINT_LEVEL = 3


@dataclass(frozen=True)
class Hint:
    level: int
    kind: str
    text: str


@dataclass(frozen=True)
class WorkedExampleStep:
    step: int
    action: str
    explanation: str


def _base_hint_level(attempt_number: int, confidence: ConfidenceLevel | None) -> int | None:
    if attempt_number >= 3:
        return 3
    if attempt_number == 2:
        return 2
    if attempt_number == 1 and confidence == ConfidenceLevel.LOW:
        return 1
    return None


def next_hint(
    attempt_number: int,
    confidence: ConfidenceLevel | str | None,
    recent_answers: Sequence[StudentAnswer] = (),
    available_hints: int = MAX_HINT_LEVEL,
) -> int | None:
    """
    Select the hint level to show.

    Args:
        attempt_number: 1-based attempt on the current question
        confidence: Learner's confidence on this question, if known
        recent_answers: Recent answers across questions
        available_hints: Number of hints the question carries

    Returns:
        Hint level 1-3, or None when no hint is warranted or available
    """
    if available_hints <= 0 or attempt_number < 1:
        return None

    level = _base_hint_level(
        attempt_number, ConfidenceLevel(confidence) if confidence else None
    )
    if is_struggling(recent_answers):
        level = (level or 0) + 1

    if level is None:
        return None
    return min(level, available_hints, MAX_HINT_LEVEL)


def worked_example_eligible(
    attempt_number: int, recent_answers: Sequence[StudentAnswer] = ()
) -> bool:
    if attempt_number >= 3:
        return True
    return attempt_number >= 2 and is_struggling(recent_answers)


def scaffolding_intensity(
    mastery: float, recent_answers: Sequence[StudentAnswer] = ()
) -> ScaffoldingIntensity:
    """High below 30 mastery or while struggling, medium below 70, else low."""
    if mastery < 30 or is_struggling(recent_answers):
        return ScaffoldingIntensity.HIGH
    if mastery < 70:
        return ScaffoldingIntensity.MEDIUM
    return ScaffoldingIntensity.LOW


def default_hints(topic: str) -> list[Hint]:
    """Template three-level hint ladder for a topic."""
    return [
        Hint(1, "nudge", f"Think about what the question is asking about {topic}. What information do you have?"),
        Hint(2, "guidance", "Try breaking the problem into smaller steps. What would you do first?"),
        Hint(3, "reveal", f"Here is the key idea for {topic}: apply it one step at a time and check each step."),
    ]


def hint_for(topic: str, level: int | None) -> Hint | None:
    if level is None:
        return None
    ladder = default_hints(topic)
    return ladder[min(max(level, 1), len(ladder)) - 1]


def default_worked_example() -> list[WorkedExampleStep]:
    return [
        WorkedExampleStep(1, "Identify what we know", "Look at the information the problem gives."),
        WorkedExampleStep(2, "Apply the concept", "Use the idea we practiced to take the next step."),
        WorkedExampleStep(3, "Check our answer", "Verify the solution makes sense."),
    ]
