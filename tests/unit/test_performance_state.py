"""
Unit tests for the rolling performance window.
"""

import pytest

from focusloop.core.enums import Difficulty
from focusloop.core.errors import ValidationError
from focusloop.learning.performance_state import (
    StudentAnswer,
    StudentPerformanceState,
    is_struggling,
)


def answer(i, correct=True, hints=0, seconds=20.0):
    return StudentAnswer(question_id=f"q{i}", correct=correct, hints_used=hints, time_spent_seconds=seconds)


class TestStudentAnswer:
    def test_rejects_negative_hints(self):
        with pytest.raises(ValidationError):
            StudentAnswer(question_id="q", correct=True, hints_used=-1)

    def test_rejects_negative_time(self):
        with pytest.raises(ValidationError):
            StudentAnswer(question_id="q", correct=True, time_spent_seconds=-0.5)


class TestWindow:
    """The window keeps only the most recent answers."""

    @pytest.mark.parametrize("size", [4, 21])
    def test_window_size_bounds(self, size):
        with pytest.raises(ValidationError):
            StudentPerformanceState(student_id="s", window_size=size)

    def test_oldest_answers_fall_out(self):
        state = StudentPerformanceState(student_id="s", window_size=5)
        for i in range(5):
            state.record(answer(i, correct=False))
        for i in range(5, 10):
            state.record(answer(i, correct=True))
        assert len(state.recent_answers) == 5
        assert state.accuracy_rate == 1.0

    def test_metrics(self):
        state = StudentPerformanceState.rebuild(
            "s",
            [answer(0, True, 0, 10), answer(1, False, 2, 30), answer(2, True, 1, 20), answer(3, True, 0, 20)],
            mastery_level=45,
        )
        assert state.accuracy_rate == pytest.approx(0.75)
        assert state.average_time_per_question == pytest.approx(20.0)
        assert state.hints_usage_rate == pytest.approx(0.5)
        assert state.current_difficulty == Difficulty.MEDIUM

    def test_empty_state_metrics(self):
        state = StudentPerformanceState(student_id="s")
        assert state.accuracy_rate == 0.0
        assert state.average_time_per_question == 0.0
        assert not state.is_struggling


class TestStreaks:
    def test_streak_resets_on_wrong_answer(self):
        state = StudentPerformanceState(student_id="s")
        for i, correct in enumerate([True, True, True, False, True]):
            state.record(answer(i, correct))
        assert state.current_streak == 1
        assert state.longest_streak == 3

    def test_record_updates_mastery(self):
        state = StudentPerformanceState(student_id="s")
        state.record(answer(0), mastery_level=80)
        assert state.current_difficulty == Difficulty.HARD


class TestStruggling:
    def test_heavy_hint_use(self):
        recent = [answer(0, hints=3), answer(1, hints=3), answer(2, hints=1)]
        assert is_struggling(recent)

    def test_slow_responses(self):
        recent = [answer(0, seconds=90), answer(1, seconds=45)]
        assert is_struggling(recent)

    def test_only_last_three_count(self):
        recent = [answer(0, hints=10), answer(1), answer(2), answer(3)]
        assert not is_struggling(recent)

    def test_single_answer_never_struggling(self):
        assert not is_struggling([answer(0, hints=5, seconds=300)])

    def test_indicators(self):
        state = StudentPerformanceState.rebuild(
            "s",
            [answer(i, correct=False, hints=3, seconds=70) for i in range(3)],
        )
        assert state.struggling_indicators == ["consecutive_wrong", "heavy_hint_use", "slow_responses"]
        assert state.is_struggling

    def test_to_dict(self):
        state = StudentPerformanceState.rebuild("s", [answer(0)], topic="fractions")
        data = state.to_dict()
        assert data["topic"] == "fractions"
        assert data["current_difficulty"] == "easy"
        assert data["recent_answers"][0]["question_id"] == "q0"
