"""
Unit tests for the grading-to-mastery mapper and behavioral notes.
"""

import pytest

from focusloop.core.enums import AnswerStyle, ConfidenceLevel, Correctness, NotePriority, NoteType
from focusloop.core.errors import ValidationError
from focusloop.learning.grading import (
    GradedAttempt,
    build_note,
    calculate_mastery_delta,
    map_to_delta,
    should_raise_note,
    update_decay_rate,
)


def graded(correctness="correct", reasoning=4, style="worked", confidence="medium", label=None):
    return GradedAttempt(
        correctness=correctness,
        reasoning_quality=reasoning,
        answer_style=style,
        confidence_level=confidence,
        misunderstanding_label=label,
    )


class TestGradedAttempt:
    """Validation of evaluator output."""

    def test_coerces_strings_to_enums(self):
        attempt = graded()
        assert attempt.correctness is Correctness.CORRECT
        assert attempt.answer_style is AnswerStyle.WORKED
        assert attempt.confidence_level is ConfidenceLevel.MEDIUM

    @pytest.mark.parametrize("reasoning", [0, 6, 2.5, True])
    def test_reasoning_quality_range(self, reasoning):
        with pytest.raises(ValidationError):
            graded(reasoning=reasoning)

    def test_unknown_correctness(self):
        with pytest.raises(ValidationError):
            graded(correctness="mostly")

    def test_blank_label_is_none(self):
        assert graded(label="   ").misunderstanding_label is None

    def test_from_dict_missing_field(self):
        with pytest.raises(ValidationError):
            GradedAttempt.from_dict({"correctness": "correct"})

    def test_from_dict_accepts_ai_feedback(self):
        attempt = GradedAttempt.from_dict({
            "correctness": "partial",
            "reasoning_quality": 3,
            "answer_style": "worked",
            "confidence_level": "low",
            "ai_feedback": "Close!",
        })
        assert attempt.feedback == "Close!"


class TestMasteryDelta:
    """The delta table."""

    @pytest.mark.parametrize("correctness,reasoning,style,confidence,expected", [
        ("correct", 5, "worked", "high", 3),
        ("correct", 4, "worked", "medium", 3),
        ("correct", 3, "worked", "medium", 2),
        ("correct", 2, "rushed", "low", 2),
        ("partial", 3, "worked", "medium", 0),
        ("partial", 2, "worked", "medium", -1),
        ("incorrect", 2, "worked", "high", -3),
        ("incorrect", 1, "worked", "high", 0),
        ("incorrect", 3, "worked", "high", -1),
        ("incorrect", 4, "worked", "low", -1),
        ("incorrect", 2, "worked", "medium", -2),
        ("correct", 5, "skip", "high", 0),
        ("incorrect", 2, "skip", "high", 0),
        ("correct", 1, "guess", "low", 0),
    ])
    def test_delta_table(self, correctness, reasoning, style, confidence, expected):
        attempt = graded(correctness, reasoning, style, confidence)
        assert calculate_mastery_delta(attempt) == expected


class TestDecayRate:
    """Decay adjusts with the consistency of the answer."""

    def test_solid_correct_slows_decay(self):
        assert update_decay_rate(0.15, graded("correct", 4)) == pytest.approx(0.13)

    def test_confused_incorrect_speeds_decay(self):
        assert update_decay_rate(0.15, graded("incorrect", 2)) == pytest.approx(0.16)

    def test_other_attempts_leave_decay(self):
        assert update_decay_rate(0.15, graded("partial", 3)) == 0.15
        assert update_decay_rate(0.15, graded("correct", 3)) == 0.15

    def test_clamped(self):
        assert update_decay_rate(0.06, graded("correct", 5)) == 0.05
        assert update_decay_rate(0.50, graded("incorrect", 1)) == 0.50

    def test_map_to_delta(self):
        update = map_to_delta(graded("correct", 5), 0.2)
        assert update.mastery_delta == 3
        assert update.new_decay_rate == pytest.approx(0.18)


class TestNotes:
    """When attempts warrant a behavioral note."""

    def test_misconception_label(self):
        attempt = graded("incorrect", 2, label="adds denominators")
        assert should_raise_note(attempt, 30, 30)
        note = build_note("student-1", "skill-1", attempt, 30, 30, session_id="m-1")
        assert note.note_type == NoteType.INTERVENTION
        assert note.priority == NotePriority.HIGH
        assert note.actionable
        assert "adds denominators" in note.comment
        assert note.session_id == "m-1"

    @pytest.mark.parametrize("time_seconds", [90, 10])
    def test_timing_anomaly(self, time_seconds):
        attempt = graded("correct", 4)
        assert should_raise_note(attempt, time_seconds, 40)
        note = build_note("student-1", "skill-1", attempt, time_seconds, 40)
        assert note.note_type == NoteType.PATTERN
        assert note.priority == NotePriority.MEDIUM

    def test_time_within_half_of_average(self):
        assert not should_raise_note(graded("correct", 4), 55, 40)
        assert not should_raise_note(graded("correct", 4), 25, 40)

    def test_no_average_means_no_timing_note(self):
        assert not should_raise_note(graded("correct", 4), 500, None)

    def test_confident_wrong_answer(self):
        attempt = graded("incorrect", 3, confidence="high")
        assert should_raise_note(attempt, 30, None)
        note = build_note("student-1", "skill-1", attempt, 30, None)
        assert note.note_type == NoteType.INTERVENTION
        assert "misconception" in note.comment

    def test_unremarkable_attempt(self):
        attempt = graded("partial", 3)
        assert not should_raise_note(attempt, 30, 30)
        assert build_note("student-1", "skill-1", attempt, 30, 30) is None
