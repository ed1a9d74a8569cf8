"""
Difficulty Adapter - keeps the learner in the productive zone.

Computes loop-level affect metrics (engagement, frustration, attention) and
applies the band adjustment rule:

1. frustration >= frustration threshold: decrease one band
2. accuracy >= up threshold: increase one band
3. accuracy <= down threshold: decrease one band

Bands clamp at EASY and HARD; an adjustment is only reported when the band
actually changes.
"""

from __future__ import annotations

import statistics
from collections.abc import Sequence
from dataclasses import dataclass

from focusloop.core.enums import ArtifactType, Difficulty, TeachingStrategy, TriggerMetric


@dataclass(frozen=True)
class AdjustmentDecision:
    new_difficulty: Difficulty
    reason: str
    trigger_metric: TriggerMetric
    trigger_value: float


@dataclass(frozen=True)
class ModalitySuggestion:
    modality: ArtifactType
    reason: str


@dataclass(frozen=True)
class DifficultyParameters:
    """Generation constraints for a difficulty band."""

    target_accuracy: float
    hints_available: int
    time_per_item_seconds: int
    complexity_level: int


DIFFICULTY_PARAMETERS = {
    Difficulty.EASY: DifficultyParameters(0.8, 3, 30, 2),
    Difficulty.MEDIUM: DifficultyParameters(0.7, 2, 20, 3),
    Difficulty.HARD: DifficultyParameters(0.65, 1, 15, 4),
}


class DifficultyAdapter:
    """Difficulty and modality decisions driven by loop performance."""

    def __init__(
        self,
        up_threshold: float = 0.8,
        down_threshold: float = 0.5,
        frustration_threshold: float = 0.6,
        switch_frustration_threshold: float = 0.7,
    ):
        self.up_threshold = up_threshold
        self.down_threshold = down_threshold
        self.frustration_threshold = frustration_threshold
        self.switch_frustration_threshold = switch_frustration_threshold

    # =========================================================================
    # Affect metrics
    # =========================================================================

    @staticmethod
    def engagement_level(accuracy: float, item_times: Sequence[float]) -> float:
        """
        Estimate engagement from accuracy and pacing consistency.

        Base 0.8 / 0.6 / 0.4 by accuracy band (>= 0.7, >= 0.5, below), minus
        0.2 times the coefficient of variation of per-item times, floored at 0.1.
        """
        if accuracy >= 0.7:
            base = 0.8
        elif accuracy >= 0.5:
            base = 0.6
        else:
            base = 0.4

        variation = 0.0
        times = [t for t in item_times if t is not None]
        if len(times) >= 2:
            mean = statistics.fmean(times)
            if mean > 0:
                variation = statistics.pstdev(times) / mean

        return max(0.1, base - 0.2 * variation)

    @staticmethod
    def frustration_level(
        accuracy: float,
        max_consecutive_failures: int,
        hints_used: int,
        average_time_per_item: float,
        engagement: float,
    ) -> float:
        frustration = 0.0

        if accuracy < 0.5:
            frustration += 0.3
        elif accuracy < 0.7:
            frustration += 0.1

        if max_consecutive_failures:
            frustration += min(0.4, max_consecutive_failures * 0.1)

        if hints_used > 2:
            frustration += 0.2

        # More than 30s per item suggests struggle
        if average_time_per_item > 30:
            frustration += 0.15

        if engagement < 0.4:
            frustration += 0.15

        return min(1.0, frustration)

    @staticmethod
    def attention_score(frustration: float) -> float:
        return max(0.0, 1.0 - frustration * 0.5)

    # =========================================================================
    # Band adjustment
    # =========================================================================

    def decide(
        self, accuracy: float, frustration: float, current: Difficulty
    ) -> AdjustmentDecision | None:
        """
        Apply the adjustment rule.

        Returns:
            The decision when the band changes, None otherwise
        """
        if frustration >= self.frustration_threshold:
            target = current.easier()
            if target == current:
                return None
            return AdjustmentDecision(
                new_difficulty=target,
                reason="High frustration detected - simplifying content to build confidence",
                trigger_metric=TriggerMetric.FRUSTRATION,
                trigger_value=frustration,
            )

        if accuracy >= self.up_threshold:
            target = current.harder()
            if target == current:
                return None
            return AdjustmentDecision(
                new_difficulty=target,
                reason="Excellent performance - introducing more challenging content",
                trigger_metric=TriggerMetric.ACCURACY,
                trigger_value=accuracy,
            )

        if accuracy <= self.down_threshold:
            target = current.easier()
            if target == current:
                return None
            return AdjustmentDecision(
                new_difficulty=target,
                reason="Struggling with current level - providing more foundational support",
                trigger_metric=TriggerMetric.ACCURACY,
                trigger_value=accuracy,
            )

        return None

    # =========================================================================
    # Strategy & modality
    # =========================================================================

    def teaching_strategy(self, accuracy: float, frustration: float) -> TeachingStrategy:
        if frustration >= self.frustration_threshold:
            return TeachingStrategy.DIVERSIFY
        if accuracy < 0.5:
            return TeachingStrategy.REMEDIATE
        if accuracy >= 0.85 and frustration < 0.3:
            return TeachingStrategy.ADVANCE
        return TeachingStrategy.REINFORCE

    def suggest_modality_switch(
        self,
        current: ArtifactType,
        accuracy: float,
        frustration: float,
        engagement: float,
    ) -> ModalitySuggestion | None:
        """Suggest a different modality for the next loop, if performance calls for one."""
        if frustration >= self.switch_frustration_threshold and current != ArtifactType.FLASHCARDS:
            return ModalitySuggestion(
                ArtifactType.FLASHCARDS,
                "Switching to flashcards for a gentler, self-paced approach",
            )

        if engagement < 0.4:
            return ModalitySuggestion(
                current.next_in_rotation(),
                "Trying a different activity type to boost engagement",
            )

        if accuracy >= 0.85 and frustration < 0.3 and current == ArtifactType.FLASHCARDS:
            return ModalitySuggestion(
                ArtifactType.QUIZ,
                "Ready for more active recall with quizzes",
            )

        return None

    @staticmethod
    def parameters_for(difficulty: Difficulty) -> DifficultyParameters:
        return DIFFICULTY_PARAMETERS[difficulty]
