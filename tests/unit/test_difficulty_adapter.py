"""
Unit tests for loop affect metrics and band adjustment.
"""

import pytest

from focusloop.adaptive.difficulty_adapter import DifficultyAdapter
from focusloop.core.enums import ArtifactType, Difficulty, TeachingStrategy, TriggerMetric


@pytest.fixture
def adapter():
    return DifficultyAdapter(up_threshold=0.8, down_threshold=0.5, frustration_threshold=0.6)


class TestDecide:
    """The band adjustment rule."""

    def test_high_accuracy_low_frustration_goes_up(self, adapter):
        decision = adapter.decide(0.85, 0.1, Difficulty.EASY)
        assert decision.new_difficulty == Difficulty.MEDIUM
        assert decision.trigger_metric == TriggerMetric.ACCURACY
        assert decision.trigger_value == 0.85

    def test_frustration_wins_over_accuracy(self, adapter):
        decision = adapter.decide(0.9, 0.7, Difficulty.HARD)
        assert decision.new_difficulty == Difficulty.MEDIUM
        assert decision.trigger_metric == TriggerMetric.FRUSTRATION
        assert decision.trigger_value == 0.7

    def test_low_accuracy_goes_down(self, adapter):
        decision = adapter.decide(0.4, 0.3, Difficulty.MEDIUM)
        assert decision.new_difficulty == Difficulty.EASY
        assert decision.trigger_metric == TriggerMetric.ACCURACY

    def test_middle_band_holds(self, adapter):
        assert adapter.decide(0.65, 0.2, Difficulty.MEDIUM) is None

    def test_clamped_at_hard(self, adapter):
        assert adapter.decide(1.0, 0.0, Difficulty.HARD) is None

    def test_clamped_at_easy(self, adapter):
        assert adapter.decide(0.2, 0.3, Difficulty.EASY) is None

    def test_frustrated_at_easy_stays_easy(self, adapter):
        assert adapter.decide(0.95, 0.8, Difficulty.EASY) is None

    def test_thresholds_inclusive(self, adapter):
        assert adapter.decide(0.8, 0.0, Difficulty.EASY).new_difficulty == Difficulty.MEDIUM
        assert adapter.decide(0.5, 0.0, Difficulty.MEDIUM).new_difficulty == Difficulty.EASY
        assert adapter.decide(0.7, 0.6, Difficulty.MEDIUM).trigger_metric == TriggerMetric.FRUSTRATION


class TestAffectMetrics:
    @pytest.mark.parametrize("accuracy,expected", [(0.9, 0.8), (0.6, 0.6), (0.3, 0.4)])
    def test_engagement_base_with_steady_pacing(self, accuracy, expected):
        assert DifficultyAdapter.engagement_level(accuracy, [20, 20, 20]) == pytest.approx(expected)

    def test_engagement_penalizes_erratic_pacing(self):
        steady = DifficultyAdapter.engagement_level(0.9, [20, 20, 20, 20])
        erratic = DifficultyAdapter.engagement_level(0.9, [5, 60, 5, 60])
        assert erratic < steady

    def test_engagement_floor(self):
        assert DifficultyAdapter.engagement_level(0.0, [0, 0, 0, 100]) == pytest.approx(0.1)

    def test_frustration_components(self):
        # 0.3 low accuracy + 0.3 three failures in a row + 0.2 hints + 0.15 slow + 0.15 disengaged
        assert DifficultyAdapter.frustration_level(0.2, 3, 5, 45, 0.3) == pytest.approx(1.0)

    def test_frustration_calm_loop(self):
        assert DifficultyAdapter.frustration_level(0.9, 0, 0, 10, 0.8) == 0.0

    def test_frustration_partial(self):
        # 0.1 accuracy band + 0.1 one failure
        assert DifficultyAdapter.frustration_level(0.6, 1, 1, 20, 0.6) == pytest.approx(0.2)

    def test_consecutive_failures_capped(self):
        assert DifficultyAdapter.frustration_level(0.9, 10, 0, 10, 0.8) == pytest.approx(0.4)

    @pytest.mark.parametrize("frustration,expected", [(0.0, 1.0), (0.4, 0.8), (1.0, 0.5)])
    def test_attention(self, frustration, expected):
        assert DifficultyAdapter.attention_score(frustration) == pytest.approx(expected)


class TestStrategyAndModality:
    @pytest.mark.parametrize("accuracy,frustration,expected", [
        (0.9, 0.7, TeachingStrategy.DIVERSIFY),
        (0.4, 0.3, TeachingStrategy.REMEDIATE),
        (0.9, 0.1, TeachingStrategy.ADVANCE),
        (0.7, 0.2, TeachingStrategy.REINFORCE),
    ])
    def test_teaching_strategy(self, accuracy, frustration, expected):
        assert DifficultyAdapter().teaching_strategy(accuracy, frustration) == expected

    def test_frustrated_learner_moves_to_flashcards(self):
        suggestion = DifficultyAdapter().suggest_modality_switch(ArtifactType.QUIZ, 0.3, 0.8, 0.5)
        assert suggestion.modality == ArtifactType.FLASHCARDS

    def test_disengaged_learner_rotates(self):
        suggestion = DifficultyAdapter().suggest_modality_switch(ArtifactType.QUIZ, 0.6, 0.2, 0.3)
        assert suggestion.modality == ArtifactType.MICRO_GAME

    def test_strong_flashcard_loop_moves_to_quiz(self):
        suggestion = DifficultyAdapter().suggest_modality_switch(ArtifactType.FLASHCARDS, 0.9, 0.1, 0.8)
        assert suggestion.modality == ArtifactType.QUIZ

    def test_no_switch(self):
        assert DifficultyAdapter().suggest_modality_switch(ArtifactType.QUIZ, 0.7, 0.2, 0.7) is None

    def test_strategy_uses_configured_frustration(self):
        calm = DifficultyAdapter(frustration_threshold=0.8)
        assert DifficultyAdapter().teaching_strategy(0.7, 0.7) == TeachingStrategy.DIVERSIFY
        assert calm.teaching_strategy(0.7, 0.7) == TeachingStrategy.REINFORCE
        assert calm.teaching_strategy(0.7, 0.85) == TeachingStrategy.DIVERSIFY

    def test_switch_uses_configured_frustration(self):
        lenient = DifficultyAdapter(switch_frustration_threshold=0.9)
        assert lenient.suggest_modality_switch(ArtifactType.QUIZ, 0.3, 0.8, 0.5) is None

        strict = DifficultyAdapter(switch_frustration_threshold=0.5)
        suggestion = strict.suggest_modality_switch(ArtifactType.QUIZ, 0.3, 0.55, 0.5)
        assert suggestion.modality == ArtifactType.FLASHCARDS

    def test_parameters_for(self):
        params = DifficultyAdapter.parameters_for(Difficulty.HARD)
        assert params.hints_available == 1
        assert params.complexity_level == 4
