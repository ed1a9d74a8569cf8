"""
Review Planner - next-session guidance after a completed focus session.

Decides:
- which touched subtopics need review (mastery below the review threshold)
- which untouched subtopics are ready to introduce (prerequisites met, capped)
- which modality to use next (rotate away from the most-used one, unless the
  learner's answer style calls for explanation-forcing formats)
- which subtopics are due for spaced repetition
"""

from __future__ import annotations

from datetime import datetime, timedelta

from focusloop.adaptive.urgency_ranker import select_question_format
from focusloop.core.clock import ensure_aware
from focusloop.core.enums import AnswerStyle, ArtifactType
from focusloop.study.concept_map import prerequisites_met
from focusloop.study.models import FocusSession, ReviewPlan, SessionPerformance, Subtopic

EXPLANATION_MODALITY = ArtifactType.QUIZ
GAIN_SCALE = 0.2


def review_interval(mastery_level: float) -> timedelta:
    """Spaced-repetition interval for a subtopic at a given mastery."""
    if mastery_level < 0.4:
        return timedelta(days=1)
    if mastery_level < 0.7:
        return timedelta(days=3)
    if mastery_level < 0.85:
        return timedelta(days=7)
    return timedelta(days=14)


def next_review_at(subtopic: Subtopic) -> datetime | None:
    if subtopic.last_practiced is None:
        return None
    return ensure_aware(subtopic.last_practiced) + review_interval(subtopic.mastery_level)


class ReviewPlanner:
    def __init__(
        self,
        review_threshold: float = 0.6,
        max_new_subtopics: int = 2,
    ):
        self.review_threshold = review_threshold
        self.max_new_subtopics = max_new_subtopics

    def plan(
        self,
        session: FocusSession,
        performance: SessionPerformance,
        typical_answer_style: AnswerStyle | str | None = None,
        now: datetime | None = None,
    ) -> ReviewPlan:
        """
        Build the review plan for a completed session.

        Args:
            session: The session being completed (with its updated concept map)
            performance: Aggregated session performance
            typical_answer_style: Learner's typical answer style, if known
            now: Reference time for spaced-repetition due dates

        Returns:
            ReviewPlan
        """
        concept_map = session.concept_map
        touched = set(performance.concepts_covered)

        review = [
            s.name
            for s in concept_map.subtopics
            if s.name in touched and s.mastery_level < self.review_threshold
        ]
        new = [
            s.name
            for s in concept_map.subtopics
            if s.name not in touched
            and s.interactions == 0
            and prerequisites_met(concept_map, s)
        ][: self.max_new_subtopics]

        style = AnswerStyle(typical_answer_style) if typical_answer_style else None
        if style is not None and style.needs_explanation:
            modality = EXPLANATION_MODALITY
            modality_reason = "explanation-required questions to slow down guessing"
        else:
            modality = self._rotate_modality(performance)
            modality_reason = f"{modality.value} for variety"
        question_format = select_question_format(style)

        reference = ensure_aware(now or session.end_time or session.start_time)
        due_cutoff = reference + timedelta(days=1)
        due = [
            s.name
            for s in concept_map.subtopics
            if s.name in touched
            and (when := next_review_at(s)) is not None
            and when <= due_cutoff
        ]

        reasoning = self._reasoning(review, new, performance, modality_reason)
        gain = self._estimated_gain(performance, session.target_duration_seconds)

        return ReviewPlan(
            next_focus_minutes=session.target_duration_seconds / 60,
            next_goals=[f"Master {name}" for name in review[:2]]
            + [f"Understand {name}" for name in new],
            recommended_modality=modality,
            question_format=question_format,
            target_difficulty=session.current_difficulty,
            target_subtopics=(review + new)[:3],
            review_subtopics=review,
            new_subtopics=new,
            reasoning=reasoning,
            estimated_mastery_gain=gain,
            spaced_repetition_due=due,
        )

    @staticmethod
    def _rotate_modality(performance: SessionPerformance) -> ArtifactType:
        counts = performance.modality_counts()
        if not any(counts.values()):
            return ArtifactType.FLASHCARDS
        # max() keeps the first of equal counts, i.e. rotation order
        most_used = max(ArtifactType.rotation(), key=lambda m: counts[m])
        return most_used.next_in_rotation()

    @staticmethod
    def _estimated_gain(performance: SessionPerformance, target_duration_seconds: int) -> float:
        if target_duration_seconds <= 0:
            return 0.0
        ratio = performance.total_time / target_duration_seconds
        return max(0.0, min(1.0, performance.average_accuracy * ratio * GAIN_SCALE))

    @staticmethod
    def _reasoning(
        review: list[str],
        new: list[str],
        performance: SessionPerformance,
        modality_reason: str,
    ) -> str:
        if review:
            text = f"Focus on reviewing {' and '.join(review[:2])} to strengthen understanding."
        elif new and len(performance.concepts_mastered) >= 2:
            text = f"Great progress! Ready to explore new concepts: {' and '.join(new)}."
        elif new:
            text = f"Continue building confidence, then move on to {' and '.join(new)}."
        else:
            text = "Keep practicing to lock in what was covered."
        return f"{text} Using {modality_reason}."
