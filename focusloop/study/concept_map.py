"""
Concept map maintenance.

Selects which subtopics a loop should target and folds loop accuracy back
into each subtopic's rolling mastery:

    mastery = 0.7 * mastery + 0.3 * accuracy

Status is re-derived from the new mastery after every update.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from focusloop.core.enums import SubtopicStatus
from focusloop.study.models import ConceptMap, Subtopic

PREREQUISITE_MASTERY = 0.6
MASTERY_RETENTION = 0.7
ACCURACY_WEIGHT = 0.3


def fallback_concept_map(topic: str) -> ConceptMap:
    """Introduction -> Core Concepts -> Practice chain used when no generator is available."""
    return ConceptMap(
        topic=topic,
        subtopics=[
            Subtopic("Introduction", f"Basic concepts of {topic}"),
            Subtopic("Core Concepts", f"Main ideas in {topic}", prerequisites=["Introduction"]),
            Subtopic("Practice", f"Applying {topic} knowledge", prerequisites=["Core Concepts"]),
        ],
        examples=[f"Let's explore {topic} together!"],
        learning_goals=[f"Understand the basics of {topic}", f"Build confidence with {topic}"],
    )


def prerequisites_met(concept_map: ConceptMap, subtopic: Subtopic) -> bool:
    for name in subtopic.prerequisites:
        prereq = concept_map.get(name)
        if prereq is None or prereq.mastery_level < PREREQUISITE_MASTERY:
            return False
    return True


def select_target_subtopics(concept_map: ConceptMap, count: int = 3) -> list[str]:
    """
    Choose up to `count` subtopics, weakest mastery first.

    Subtopics whose prerequisites are met come before those that are blocked;
    mastered subtopics are only used to fill remaining slots. Ties keep the
    concept map's order.
    """
    if count <= 0:
        return []

    indexed = list(enumerate(concept_map.subtopics))

    def sort_key(entry: tuple[int, Subtopic]):
        index, subtopic = entry
        return (
            subtopic.status == SubtopicStatus.MASTERED,
            not prerequisites_met(concept_map, subtopic),
            subtopic.mastery_level,
            index,
        )

    return [subtopic.name for _, subtopic in sorted(indexed, key=sort_key)[:count]]


def apply_accuracy(
    concept_map: ConceptMap,
    accuracy_by_subtopic: Mapping[str, float],
    practiced_at: datetime,
) -> dict[str, tuple[float, float]]:
    """
    Update subtopic mastery in place.

    Returns:
        {subtopic name: (old mastery, new mastery)} for every updated subtopic
    """
    changes: dict[str, tuple[float, float]] = {}
    for name, accuracy in accuracy_by_subtopic.items():
        subtopic = concept_map.get(name)
        if subtopic is None:
            continue
        old = subtopic.mastery_level
        subtopic.mastery_level = min(1.0, max(0.0, old * MASTERY_RETENTION + accuracy * ACCURACY_WEIGHT))
        subtopic.status = SubtopicStatus.from_mastery(subtopic.mastery_level)
        subtopic.interactions += 1
        subtopic.last_practiced = practiced_at
        changes[name] = (old, subtopic.mastery_level)
    return changes


def identify_gaps(concept_map: ConceptMap) -> list[str]:
    """Human-readable list of weak subtopics, unmet prerequisites and misconceptions."""
    gaps = []
    for subtopic in concept_map.subtopics:
        if subtopic.status == SubtopicStatus.WEAK or (
            subtopic.interactions > 0 and subtopic.mastery_level < 0.5
        ):
            gaps.append(f"Low mastery in {subtopic.name} ({round(subtopic.mastery_level * 100)}%)")
        for name in subtopic.prerequisites:
            prereq = concept_map.get(name)
            if prereq is None or prereq.mastery_level < PREREQUISITE_MASTERY:
                gaps.append(f"Prerequisite needed: {name} for {subtopic.name}")
    gaps.extend(f"Misconception to address: {m}" for m in concept_map.misconceptions)
    return gaps
