"""
Unit tests for the MissionService facade.

The generator is the template generator with scripted evaluations, so every
grade is deterministic.
"""

import json

import httpx
import pytest

from focusloop.content.generator import HttpContentGenerator, TemplateContentGenerator
from focusloop.core.enums import (
    AnswerStyle,
    ArtifactType,
    Difficulty,
    NoteType,
    ScaffoldingIntensity,
    SessionStatus,
)
from focusloop.core.errors import NotFound, ValidationError
from focusloop.engine import MissionService
from focusloop.learning.grading import GradedAttempt
from focusloop.study import events as ev


class ScriptedGenerator(TemplateContentGenerator):
    """Template generator that returns queued evaluations in order."""

    def __init__(self):
        self.evaluations = []

    def queue(self, correctness, reasoning, style="worked", confidence="medium", label=None):
        self.evaluations.append(
            GradedAttempt(
                correctness=correctness,
                reasoning_quality=reasoning,
                answer_style=style,
                confidence_level=confidence,
                misunderstanding_label=label,
            )
        )

    def evaluate_attempt(self, question, student_answer, time_seconds, skill_context=None):
        return self.evaluations.pop(0)


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def service(store, generator, clock, settings, outbox):
    return MissionService(store, generator=generator, clock=clock, settings=settings, outbox=outbox)


class TestNextMission:
    def test_new_learner_gets_seeded_curriculum(self, service, store):
        mission = service.next_mission("student-1")

        assert len(store.load_skills("student-1")) == 5
        # Never-seen skills rank by decay rate alone
        assert mission.target_skill.domain == "word_problems_multi_step"
        assert mission.urgency == pytest.approx(25.0)
        assert mission.difficulty == Difficulty.EASY
        assert mission.question_format == "mixed_format"
        assert mission.goal == "We are learning multi-step word problems. Let's patch this skill."
        assert len(mission.questions) == 2
        assert mission.estimated_duration_minutes == 4

    def test_existing_skills_are_ranked(self, service, store, make_skill):
        store.save_skill(make_skill("fractions_comparison", mastery=20, decay_rate=0.2, days_ago=10))
        store.save_skill(make_skill("multiplication_facts", mastery=80, decay_rate=0.1, days_ago=1))

        mission = service.next_mission("student-1", learning_style="visual")

        assert mission.target_skill.domain == "fractions_comparison"
        assert mission.question_format == "visual_word_problems"
        assert len(store.load_skills("student-1")) == 2

    def test_hard_skill_goal(self, service, store, make_skill):
        store.save_skill(make_skill("decimals_place_value", mastery=90, display_name="Decimal Place Value"))
        mission = service.next_mission("student-1")
        assert mission.difficulty == Difficulty.HARD
        assert mission.goal.startswith("We are mastering decimal place value.")

    def test_requires_student(self, service):
        with pytest.raises(ValidationError):
            service.next_mission("")

    def test_to_dict(self, service):
        data = service.next_mission("student-1").to_dict()
        assert data["difficulty"] == "easy"
        assert data["target_skill"]["domain"] == "word_problems_multi_step"
        assert data["estimated_duration_minutes"] == 4


class TestGradeAttempt:
    def test_correct_answer_raises_mastery(self, service, generator, clock):
        mission = service.next_mission("student-1")
        generator.queue("correct", 4)

        result = service.grade_attempt(
            mission.session_id, mission.target_skill.id, "Explain 1/2 + 1/4", "3/4 because...", 30
        )

        assert result.mastery_delta == 3
        assert result.new_mastery == 3.0
        assert result.new_decay_rate == pytest.approx(0.23)
        assert not result.note_raised

        skill = service.ledger.get_skill("student-1", mission.target_skill.id)
        assert skill.last_seen == clock.now()
        assert skill.total_attempts == 1
        assert skill.correct_attempts == 1

        state = service.performance_state("student-1", skill.domain)
        assert state.accuracy_rate == 1.0
        assert state.mastery_level == 3.0

    def test_mastery_floor(self, service, generator):
        mission = service.next_mission("student-1")
        generator.queue("incorrect", 2, confidence="high")
        result = service.grade_attempt(mission.session_id, mission.target_skill.id, "Q?", "A", 30)
        assert result.mastery_delta == -3
        assert result.new_mastery == 0.0

    def test_validation(self, service):
        mission = service.next_mission("student-1")
        with pytest.raises(ValidationError):
            service.grade_attempt(mission.session_id, mission.target_skill.id, "  ", "A", 10)
        with pytest.raises(ValidationError):
            service.grade_attempt(mission.session_id, mission.target_skill.id, "Q?", "A", -1)

    def test_unknown_mission_or_skill(self, service):
        mission = service.next_mission("student-1")
        with pytest.raises(NotFound):
            service.grade_attempt("missing", mission.target_skill.id, "Q?", "A", 10)
        with pytest.raises(NotFound):
            service.grade_attempt(mission.session_id, "missing", "Q?", "A", 10)

    def test_misconception_raises_note(self, service, generator, store):
        mission = service.next_mission("student-1")
        service.drain_events()
        generator.queue("incorrect", 2, label="adds denominators")

        result = service.grade_attempt(mission.session_id, mission.target_skill.id, "Q?", "2/5", 20)

        assert result.note_raised
        assert result.note.note_type == NoteType.INTERVENTION
        assert [n.id for n in store.load_notes("student-1")] == [result.note.id]
        events = service.drain_events()
        assert [e.name for e in events] == [ev.NOTE_RAISED]
        assert events[0].payload["note_id"] == result.note.id

    def test_timing_note_uses_previous_average(self, service, generator):
        mission = service.next_mission("student-1")
        skill_id = mission.target_skill.id
        generator.queue("correct", 4)
        generator.queue("correct", 4)

        first = service.grade_attempt(mission.session_id, skill_id, "Q1", "A", 30)
        second = service.grade_attempt(mission.session_id, skill_id, "Q2", "A", 90)

        assert not first.note_raised
        assert second.note.note_type == NoteType.PATTERN

    def test_note_store_failure_does_not_fail_grade(self, flaky_store, generator, clock, settings):
        service = MissionService(flaky_store, generator=generator, clock=clock, settings=settings)
        mission = service.next_mission("student-1")
        flaky_store.fail_notes = True
        generator.queue("incorrect", 2, label="adds denominators")

        result = service.grade_attempt(mission.session_id, mission.target_skill.id, "Q?", "2/5", 20)

        assert result.note_raised
        assert result.new_mastery == 0.0
        assert flaky_store.load_notes("student-1") == []

    def test_guessing_changes_question_format(self, service, generator):
        mission = service.next_mission("student-1")
        generator.queue("incorrect", 1, style="guess", confidence="low")
        service.grade_attempt(mission.session_id, mission.target_skill.id, "Q?", "7", 3)

        follow_up = service.next_mission("student-1", learning_style="visual")
        assert follow_up.target_skill.id == mission.target_skill.id
        assert follow_up.target_skill.typical_answer_style == AnswerStyle.GUESS
        assert follow_up.question_format == "explanation_required"

    def test_generator_receives_skill_display_name(self, store, clock, settings):
        bodies = []

        def handler(request):
            body = json.loads(request.content)
            prompt = body["messages"][-1]["content"]
            if "STUDENT ANSWER" not in prompt:
                return httpx.Response(503)
            bodies.append(prompt)
            return httpx.Response(200, json={"choices": [{"message": {"content": json.dumps({
                "correctness": "correct",
                "reasoning_quality": 4,
                "answer_style": "worked",
                "confidence_level": "medium",
            })}}]})

        generator = HttpContentGenerator(
            base_url="http://generator.test/v1",
            client=httpx.Client(transport=httpx.MockTransport(handler)),
            retry_attempts=1,
            sleep=lambda _: None,
        )
        service = MissionService(store, generator=generator, clock=clock, settings=settings)
        mission = service.next_mission("student-1")

        result = service.grade_attempt(mission.session_id, mission.target_skill.id, "Q?", "A", 30)

        assert result.mastery_delta == 3
        assert "SKILL: Multi-Step Word Problems" in bodies[0]


class TestMissionExpiry:
    def test_mission_open_within_ttl(self, service, generator, clock, settings):
        mission = service.next_mission("student-1")
        clock.advance(settings.mission_ttl_seconds)
        generator.queue("correct", 4)

        result = service.grade_attempt(mission.session_id, mission.target_skill.id, "Q?", "A", 30)
        assert result.new_mastery == 3.0

    def test_expired_mission_is_not_found(self, service, generator, clock, settings):
        mission = service.next_mission("student-1")
        clock.advance(settings.mission_ttl_seconds + 1)

        with pytest.raises(NotFound):
            service.grade_attempt(mission.session_id, mission.target_skill.id, "Q?", "A", 30)
        with pytest.raises(NotFound):
            service.request_hint(mission.session_id, 1)
        assert service.open_mission_count == 0

    def test_new_missions_prune_expired_records(self, service, clock, settings):
        service.next_mission("student-1")
        service.next_mission("student-2")
        assert service.open_mission_count == 2

        clock.advance(settings.mission_ttl_seconds + 1)
        service.next_mission("student-3")

        assert service.open_mission_count == 1


class TestRequestHint:
    def test_low_confidence_first_attempt_gets_nudge(self, service):
        mission = service.next_mission("student-1")

        result = service.request_hint(mission.session_id, 1, confidence="low")

        assert result.hint_level == 1
        assert result.hint.kind == "nudge"
        assert "Multi-Step Word Problems" in result.hint.text
        assert result.worked_example == []
        assert result.scaffolding_intensity == ScaffoldingIntensity.HIGH
        assert not result.struggling

    def test_confident_first_attempt_gets_nothing(self, service):
        mission = service.next_mission("student-1")
        result = service.request_hint(mission.session_id, 1, confidence="medium")
        assert result.hint is None
        assert result.to_dict()["hint_level"] is None

    def test_third_attempt_reveals_with_worked_example(self, service):
        mission = service.next_mission("student-1")

        result = service.request_hint(mission.session_id, 3)

        assert result.hint_level == 3
        assert [step.step for step in result.worked_example] == [1, 2, 3]
        assert result.to_dict()["worked_example"][0]["action"] == "Identify what we know"

    def test_available_hints_cap_the_level(self, service):
        mission = service.next_mission("student-1")
        assert service.request_hint(mission.session_id, 3, available_hints=1).hint_level == 1
        assert service.request_hint(mission.session_id, 3, available_hints=0).hint is None

    def test_struggling_learner_gets_more_help(self, service, generator):
        mission = service.next_mission("student-1")
        for _ in range(2):
            generator.queue("incorrect", 3)
            service.grade_attempt(mission.session_id, mission.target_skill.id, "Q?", "A", 20, hints_used=3)

        first = service.request_hint(mission.session_id, 1, confidence="medium")
        second = service.request_hint(mission.session_id, 2)

        assert first.struggling
        assert first.hint_level == 1
        assert second.hint_level == 3
        assert len(second.worked_example) == 3

    def test_validation(self, service):
        mission = service.next_mission("student-1")
        with pytest.raises(ValidationError):
            service.request_hint(mission.session_id, 0)
        with pytest.raises(ValidationError):
            service.request_hint(mission.session_id, 1, confidence="very")
        with pytest.raises(NotFound):
            service.request_hint("missing", 1)


class TestFocusSessions:
    def run_session(self, service, clock, topic="fractions_comparison"):
        session = service.start_focus_session("student-1", topic)
        for n in range(1, 4):
            loop = service.start_loop(session.id, n)
            service.record_loop_results(
                session.id,
                n,
                [{"item_id": item_id, "correct": True, "time_spent_seconds": 15}
                 for item_id in loop.artifact.content.item_ids],
            )
            clock.advance(400)
            service.complete_loop(session.id, n)
        return service.complete_session(session.id)

    def test_initial_difficulty_from_topic_skill(self, service, store, make_skill):
        store.save_skill(make_skill("fractions_comparison", mastery=50))
        session = service.start_focus_session("student-1", "fractions_comparison")
        assert session.initial_difficulty == Difficulty.MEDIUM

    def test_unknown_topic_starts_easy(self, service):
        session = service.start_focus_session("student-1", "volcanoes")
        assert session.initial_difficulty == Difficulty.EASY

    def test_answer_style_shapes_review_plan(self, service, store, make_skill, clock):
        store.save_skill(make_skill("fractions_comparison", mastery=50, typical_answer_style=AnswerStyle.GUESS))

        completed = self.run_session(service, clock)

        assert completed.status == SessionStatus.COMPLETED
        assert completed.review_plan.recommended_modality == ArtifactType.QUIZ
        assert completed.review_plan.question_format == "explanation_required"

    def test_events_are_shared(self, service, clock):
        self.run_session(service, clock, topic="volcanoes")
        names = [e.name for e in service.drain_events()]
        assert names[0] == ev.SESSION_STARTED
        assert names[-1] == ev.SESSION_COMPLETED
        assert names.count(ev.LOOP_COMPLETED) == 3

    def test_cancel_and_sweep(self, service, clock):
        session = service.start_focus_session("student-1", "volcanoes", target_duration_seconds=600)
        other = service.start_focus_session("student-2", "volcanoes", target_duration_seconds=600)
        service.cancel_session(other.id, "done for today")

        clock.advance(600 + 601)
        assert service.sweep() == [session.id]
        assert service.get_session(session.id).status == SessionStatus.CANCELLED
        assert service.get_session(other.id).cancel_reason == "done for today"

    def test_background_lifecycle(self, service):
        service.start_background()
        assert service.sweeper.status.is_running
        service.shutdown()
        assert not service.sweeper.status.is_running
