"""
Mission Service - the engine's public surface.

Wires the skill ledger, urgency ranker, grading mapper, content generator and
focus-session orchestrator together behind request-style operations:

- next_mission(student_id): what should this learner practice now?
- grade_attempt(...): evaluate an answer and fold it into long-term mastery
- request_hint(...): choose the support to show on the current attempt

plus passthroughs for the focus-session state machine. Side effects the
engine does not perform itself (notifications, analytics) are returned as
domain events through drain_events().

Mission tracking records expire after settings.mission_ttl_seconds.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from focusloop.adaptive.scaffolding import (
    MAX_HINT_LEVEL,
    Hint,
    WorkedExampleStep,
    default_worked_example,
    hint_for,
    next_hint,
    scaffolding_intensity,
    worked_example_eligible,
)
from focusloop.adaptive.urgency_ranker import (
    difficulty_for,
    select_next,
    select_question_format,
    urgency_score,
)
from focusloop.config import Settings, get_settings
from focusloop.content.generator import (
    ContentGenerator,
    FallbackContentGenerator,
    MissionQuestion,
    build_generator,
)
from focusloop.core.clock import Clock, SystemClock
from focusloop.core.enums import (
    ArtifactType,
    ConfidenceLevel,
    Correctness,
    Difficulty,
    ScaffoldingIntensity,
)
from focusloop.core.errors import CollaboratorUnavailable, NotFound, ValidationError
from focusloop.core.locks import KeyedLocks
from focusloop.db.outbox import PersistenceOutbox
from focusloop.db.store import Store
from focusloop.learning.grading import (
    BehavioralNote,
    GradedAttempt,
    build_note,
    should_raise_note,
)
from focusloop.learning.performance_state import StudentAnswer, StudentPerformanceState
from focusloop.learning.skill_ledger import Skill, SkillLedger
from focusloop.study import events as ev
from focusloop.study.events import DomainEvent, EventOutbox
from focusloop.study.models import FocusSession, ItemResult, LoopPerformance, SessionLoop
from focusloop.study.session_orchestrator import FocusSessionRequest, SessionOrchestrator
from focusloop.study.sweeper import SessionSweeper

MINUTES_PER_QUESTION = 2

GOAL_ACTIONS = {
    Difficulty.EASY: "learning",
    Difficulty.MEDIUM: "practicing",
    Difficulty.HARD: "mastering",
}


@dataclass
class Mission:
    session_id: str
    target_skill: Skill
    difficulty: Difficulty
    question_format: str
    goal: str
    questions: list[MissionQuestion] = field(default_factory=list)
    urgency: float = 0.0

    @property
    def estimated_duration_minutes(self) -> int:
        return len(self.questions) * MINUTES_PER_QUESTION

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "target_skill": self.target_skill.to_dict(),
            "difficulty": self.difficulty.value,
            "question_format": self.question_format,
            "goal": self.goal,
            "questions": [q.to_dict() for q in self.questions],
            "urgency": self.urgency,
            "estimated_duration_minutes": self.estimated_duration_minutes,
        }


@dataclass
class MissionRecord:
    """Tracking record for an issued mission; grade_attempt resolves the learner through it."""

    id: str
    student_id: str
    skill_id: str
    difficulty: Difficulty
    question_format: str
    mastery_before: float
    started_at: datetime
    attempts: int = 0


@dataclass
class GradeResult:
    evaluation: GradedAttempt
    mastery_delta: float
    new_mastery: float
    new_decay_rate: float
    note: BehavioralNote | None = None

    @property
    def note_raised(self) -> bool:
        return self.note is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "evaluation": self.evaluation.to_dict(),
            "mastery_delta": self.mastery_delta,
            "new_mastery": self.new_mastery,
            "new_decay_rate": self.new_decay_rate,
            "note_raised": self.note_raised,
            "note": self.note.to_dict() if self.note else None,
        }


@dataclass
class HintResult:
    hint: Hint | None
    worked_example: list[WorkedExampleStep]
    scaffolding_intensity: ScaffoldingIntensity
    struggling: bool = False

    @property
    def hint_level(self) -> int | None:
        return self.hint.level if self.hint else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hint_level": self.hint_level,
            "hint": asdict(self.hint) if self.hint else None,
            "worked_example": [asdict(step) for step in self.worked_example],
            "scaffolding_intensity": self.scaffolding_intensity.value,
            "struggling": self.struggling,
        }


class MissionService:
    """
    Facade over the engine's components.

    Usage:
        service = MissionService.from_settings()
        mission = service.next_mission("student-1")
        result = service.grade_attempt(mission.session_id, mission.target_skill.id,
                                       question, answer, time_seconds=42)
    """

    def __init__(
        self,
        store: Store,
        generator: ContentGenerator | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
        outbox: PersistenceOutbox | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.clock = clock or SystemClock()
        self.outbox = outbox
        self.events = EventOutbox()
        if isinstance(generator, FallbackContentGenerator):
            self.generator = generator
        else:
            self.generator = FallbackContentGenerator(generator)

        self.ledger = SkillLedger(store, clock=self.clock, outbox=outbox)
        self.orchestrator = SessionOrchestrator(
            store,
            generator=self.generator,
            clock=self.clock,
            events=self.events,
            outbox=outbox,
            settings=self.settings,
        )
        self.sweeper = SessionSweeper(
            self.orchestrator,
            interval_seconds=self.settings.sweep_interval_seconds,
            grace_seconds=self.settings.sweep_grace_seconds,
        )

        self._missions: dict[str, MissionRecord] = {}
        self._missions_lock = threading.Lock()
        self._performance: dict[tuple[str, str], StudentPerformanceState] = {}
        self._student_locks = KeyedLocks()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> MissionService:
        """Build a service backed by the configured database and generator."""
        from focusloop.db.database import create_db_engine
        from focusloop.db.sql_store import SqlStore

        settings = settings or get_settings()
        store = SqlStore(create_db_engine(settings.database_url))
        outbox = PersistenceOutbox(
            base_delay=settings.outbox_base_delay_seconds,
            max_delay=settings.outbox_max_delay_seconds,
            max_attempts=settings.outbox_max_attempts,
        )
        return cls(
            store,
            generator=build_generator(settings),
            clock=clock,
            settings=settings,
            outbox=outbox,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_background(self) -> None:
        """Recover open sessions and start the outbox worker and the sweeper."""
        self.orchestrator.recover()
        if self.outbox is not None:
            self.outbox.start()
        self.sweeper.start()

    def shutdown(self) -> None:
        self.sweeper.stop()
        if self.outbox is not None:
            self.outbox.stop()

    def drain_events(self) -> list[DomainEvent]:
        return self.events.drain()

    # =========================================================================
    # Missions
    # =========================================================================

    def next_mission(self, student_id: str, learning_style: str | None = None) -> Mission:
        """
        Pick the most urgent skill and open a tracking record for it.

        Seeds the default curriculum for a learner with no skills.
        """
        if not student_id:
            raise ValidationError("student_id is required")

        skills = self.ledger.list_skills(student_id)
        if not skills:
            logger.info(f"No skills for {student_id}, seeding default curriculum")
            skills = self.ledger.seed_curriculum(student_id)

        now = self.clock.now()
        target = select_next(skills, now)
        urgency = urgency_score(target, now)
        difficulty = difficulty_for(target)
        question_format = select_question_format(target.typical_answer_style, learning_style)

        name = target.display_name or target.domain.replace("_", " ")
        questions = self.generator.generate_questions(name, difficulty, question_format)

        record = MissionRecord(
            id=str(uuid.uuid4()),
            student_id=student_id,
            skill_id=target.id,
            difficulty=difficulty,
            question_format=question_format,
            mastery_before=target.mastery,
            started_at=now,
        )
        with self._missions_lock:
            self._prune_missions(now)
            self._missions[record.id] = record

        logger.info(
            "Selected {} for {} (mastery {:.0f}, urgency {:.2f}, {})",
            target.domain,
            student_id,
            target.mastery,
            urgency,
            difficulty.value,
        )
        return Mission(
            session_id=record.id,
            target_skill=target,
            difficulty=difficulty,
            question_format=question_format,
            goal=f"We are {GOAL_ACTIONS[difficulty]} {name.lower()}. Let's patch this skill.",
            questions=questions,
            urgency=urgency,
        )

    def grade_attempt(
        self,
        session_id: str,
        skill_id: str,
        question_text: str,
        student_answer: str,
        time_seconds: float,
        hints_used: int = 0,
    ) -> GradeResult:
        """
        Evaluate an answer and apply it to the learner's skill.

        The evaluator falls back to heuristics when the generator is down;
        behavioral notes are best-effort and never fail the grade.

        Raises:
            ValidationError: Missing question or negative time
            NotFound: Unknown or expired mission session, or unknown skill
        """
        if not question_text or not question_text.strip():
            raise ValidationError("question_text is required")
        if time_seconds is None or time_seconds < 0:
            raise ValidationError("time_seconds must be non-negative", time_seconds=time_seconds)

        record = self._mission(session_id)
        student_id = record.student_id
        skill = self.ledger.get_skill(student_id, skill_id)

        evaluation = self.generator.evaluate_attempt(
            question_text,
            student_answer or "",
            time_seconds,
            {
                "display_name": skill.display_name or skill.domain,
                "mastery": skill.mastery,
                "typical_answer_style": (
                    skill.typical_answer_style.value if skill.typical_answer_style else None
                ),
            },
        )

        applied = self.ledger.apply_attempt(
            student_id, skill_id, evaluation, time_seconds=time_seconds
        )
        updated = applied.skill
        previous_average = applied.previous_average_time

        with self._student_locks.hold(student_id):
            record.attempts += 1
            state = self.performance_state(student_id, updated.domain)
            state.record(
                StudentAnswer(
                    question_id=f"{session_id}:{record.attempts}",
                    correct=evaluation.correctness == Correctness.CORRECT,
                    hints_used=hints_used,
                    time_spent_seconds=time_seconds,
                ),
                mastery_level=updated.mastery,
            )

        note = None
        if should_raise_note(evaluation, time_seconds, previous_average):
            note = build_note(
                student_id,
                skill_id,
                evaluation,
                time_seconds,
                previous_average,
                session_id=session_id,
                created_at=self.clock.now(),
            )
        if note is not None:
            self._save_note(note)

        return GradeResult(
            evaluation=evaluation,
            mastery_delta=applied.mastery_delta,
            new_mastery=updated.mastery,
            new_decay_rate=updated.decay_rate,
            note=note,
        )

    def request_hint(
        self,
        session_id: str,
        attempt_number: int,
        confidence: ConfidenceLevel | str | None = None,
        available_hints: int = MAX_HINT_LEVEL,
    ) -> HintResult:
        """
        Choose the support to show for the current attempt on a mission question.

        Hint level, worked-example eligibility and scaffolding intensity all
        read the learner's recent answers on the mission's skill.

        Raises:
            ValidationError: attempt_number below 1 or unknown confidence
            NotFound: Unknown or expired mission session
        """
        if attempt_number is None or attempt_number < 1:
            raise ValidationError("attempt_number must be at least 1", attempt_number=attempt_number)
        try:
            level_of_confidence = ConfidenceLevel(confidence) if confidence else None
        except ValueError as e:
            raise ValidationError(f"Unknown confidence level: {confidence!r}") from e

        record = self._mission(session_id)
        skill = self.ledger.get_skill(record.student_id, record.skill_id)
        with self._student_locks.hold(record.student_id):
            state = self.performance_state(record.student_id, skill.domain)
            recent = list(state.recent_answers)
            struggling = state.is_struggling

        level = next_hint(attempt_number, level_of_confidence, recent, available_hints)
        eligible = worked_example_eligible(attempt_number, recent)
        result = HintResult(
            hint=hint_for(skill.display_name or skill.domain, level),
            worked_example=default_worked_example() if eligible else [],
            scaffolding_intensity=scaffolding_intensity(skill.mastery, recent),
            struggling=struggling,
        )
        logger.debug(
            f"Hint for mission {session_id} attempt {attempt_number}: "
            f"level {result.hint_level}, intensity {result.scaffolding_intensity.value}"
        )
        return result

    def performance_state(self, student_id: str, domain: str) -> StudentPerformanceState:
        key = (student_id, domain)
        state = self._performance.get(key)
        if state is None:
            state = StudentPerformanceState(
                student_id=student_id,
                topic=domain,
                window_size=self.settings.performance_window_size,
            )
            self._performance[key] = state
        return state

    @property
    def open_mission_count(self) -> int:
        with self._missions_lock:
            return len(self._missions)

    def _mission(self, session_id: str) -> MissionRecord:
        with self._missions_lock:
            self._prune_missions(self.clock.now())
            record = self._missions.get(session_id)
        if record is None:
            raise NotFound(f"Mission session not found: {session_id}", session_id=session_id)
        return record

    def _prune_missions(self, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.settings.mission_ttl_seconds)
        expired = [key for key, record in self._missions.items() if record.started_at < cutoff]
        for key in expired:
            del self._missions[key]
        if expired:
            logger.debug(f"Expired {len(expired)} mission record(s)")

    def list_skills(self, student_id: str) -> list[Skill]:
        return self.ledger.list_skills(student_id)

    def list_notes(self, student_id: str) -> list[BehavioralNote]:
        return self.store.load_notes(student_id)

    def _save_note(self, note: BehavioralNote) -> None:
        try:
            self.store.add_note(note)
        except CollaboratorUnavailable as e:
            logger.warning(f"Behavioral note for skill {note.skill_id} not saved: {e.message}")

        self.events.emit(
            ev.NOTE_RAISED,
            note.created_at or self.clock.now(),
            note_id=note.id,
            student_id=note.student_id,
            skill_id=note.skill_id,
            note_type=note.note_type.value,
            priority=note.priority.value,
        )
        logger.info(f"Raised {note.priority.value} {note.note_type.value} note for {note.student_id}")

    # =========================================================================
    # Focus sessions
    # =========================================================================

    def start_focus_session(
        self,
        student_id: str,
        topic: str,
        target_duration_seconds: int | None = None,
        initial_difficulty: Difficulty | str | None = None,
        context: str = "",
        learning_goals: list[str] | None = None,
    ) -> FocusSession:
        """Open a focus session; difficulty defaults to the learner's band for the topic."""
        if initial_difficulty is None and student_id and topic:
            skill = self.ledger.find_by_domain(student_id, topic)
            if skill is not None:
                initial_difficulty = skill.difficulty

        return self.orchestrator.start(
            FocusSessionRequest(
                student_id=student_id,
                topic=topic,
                target_duration_seconds=target_duration_seconds,
                initial_difficulty=initial_difficulty,
                context=context,
                learning_goals=learning_goals,
            )
        )

    def start_loop(
        self,
        session_id: str,
        loop_number: int,
        preferred_modality: ArtifactType | str | None = None,
    ) -> SessionLoop:
        return self.orchestrator.start_loop(session_id, loop_number, preferred_modality)

    def record_loop_results(
        self,
        session_id: str,
        loop_number: int,
        results: Sequence[ItemResult | dict[str, Any]],
    ) -> SessionLoop:
        return self.orchestrator.record_results(session_id, loop_number, results)

    def complete_loop(self, session_id: str, loop_number: int) -> LoopPerformance:
        return self.orchestrator.complete_loop(session_id, loop_number)

    def complete_session(self, session_id: str) -> FocusSession:
        session = self.orchestrator.get_session(session_id)
        skill = self.ledger.find_by_domain(session.student_id, session.topic)
        style = skill.typical_answer_style if skill is not None else None
        return self.orchestrator.complete(session_id, typical_answer_style=style)

    def cancel_session(self, session_id: str, reason: str = "cancelled") -> FocusSession:
        return self.orchestrator.cancel(session_id, reason)

    def get_session(self, session_id: str) -> FocusSession:
        return self.orchestrator.get_session(session_id)

    def sweep(self, now: datetime | None = None) -> list[str]:
        return self.sweeper.sweep_once(now)
