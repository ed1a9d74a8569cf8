"""
Focus Session Orchestrator.

Runs a bounded practice session as a state machine:

    planning -> active -> completed
                    \\--> cancelled   (also reachable from planning)

Session Flow:
1. start(): build the concept map for the topic, open the session
2. For each loop (3-4 per session):
   - start_loop(): pick target subtopics and a modality, generate an artifact
   - record_results(): attach item results (once)
   - complete_loop(): score the loop, update subtopic mastery, adjust difficulty
3. complete(): aggregate performance and produce the review plan

Every operation on a session runs under that session's lock; start() also
takes a per-student lock so that a student never has two open sessions.
Store failures never undo in-memory state: the write is handed to the
persistence outbox and retried in the background. Completed and cancelled
sessions leave memory once the store holds their final state.
"""

from __future__ import annotations

import statistics
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from loguru import logger

from focusloop.adaptive.difficulty_adapter import DifficultyAdapter
from focusloop.config import Settings, get_settings
from focusloop.content.generator import ContentGenerator, FallbackContentGenerator
from focusloop.core.clock import Clock, SystemClock, ensure_aware
from focusloop.core.enums import AnswerStyle, ArtifactType, Difficulty, SessionStatus
from focusloop.core.errors import (
    CollaboratorUnavailable,
    InvalidLoopSequence,
    LoopAlreadySealed,
    NotFound,
    SessionAlreadyActive,
    StateConflict,
    ValidationError,
)
from focusloop.core.locks import KeyedLocks
from focusloop.db.outbox import PersistenceOutbox
from focusloop.db.store import Store
from focusloop.study import events as ev
from focusloop.study.concept_map import apply_accuracy, fallback_concept_map, select_target_subtopics
from focusloop.study.events import EventOutbox
from focusloop.study.models import (
    DifficultyAdjustment,
    FocusSession,
    ItemResult,
    LoopPerformance,
    SessionArtifact,
    SessionLoop,
    SessionPerformance,
)
from focusloop.study.review_planner import ReviewPlanner

WEAK_AREA_ACCURACY = 0.5


@dataclass
class FocusSessionRequest:
    """Parameters for opening a focus session."""

    student_id: str
    topic: str
    target_duration_seconds: int | None = None
    initial_difficulty: Difficulty | str | None = None
    context: str = ""
    learning_goals: list[str] | None = None


class SessionOrchestrator:
    """
    Owns every open focus session and drives its state machine.

    Sessions are kept in memory (authoritative) and mirrored to the store
    after each transition.
    """

    def __init__(
        self,
        store: Store,
        generator: ContentGenerator | None = None,
        clock: Clock | None = None,
        events: EventOutbox | None = None,
        outbox: PersistenceOutbox | None = None,
        settings: Settings | None = None,
        planner: ReviewPlanner | None = None,
        adapter: DifficultyAdapter | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        if isinstance(generator, FallbackContentGenerator):
            self.generator = generator
        else:
            self.generator = FallbackContentGenerator(generator)
        self.clock = clock or SystemClock()
        self.events = events if events is not None else EventOutbox()
        self.outbox = outbox
        self.planner = planner or ReviewPlanner(
            review_threshold=self.settings.review_threshold,
            max_new_subtopics=self.settings.max_new_subtopics,
        )
        self.adapter = adapter or DifficultyAdapter(
            up_threshold=self.settings.difficulty_up_threshold,
            down_threshold=self.settings.difficulty_down_threshold,
            frustration_threshold=self.settings.frustration_threshold,
            switch_frustration_threshold=self.settings.modality_switch_frustration_threshold,
        )

        self.min_loops = self.settings.session_min_loops
        self.max_loops = self.settings.session_max_loops
        self.mastery_threshold = self.settings.concept_mastery_threshold

        self._sessions: dict[str, FocusSession] = {}
        self._active_by_student: dict[str, str] = {}
        self._student_locks = KeyedLocks()
        self._session_locks = KeyedLocks()

    # =========================================================================
    # Lookup
    # =========================================================================

    @contextmanager
    def session_lock(self, session_id: str) -> Iterator[None]:
        with self._session_locks.hold(session_id):
            yield

    def get_session(self, session_id: str) -> FocusSession:
        with self.session_lock(session_id):
            return self._require(session_id).copy()

    def active_session_for(self, student_id: str) -> FocusSession | None:
        with self._student_locks.hold(student_id):
            session_id = self._active_by_student.get(student_id)
        if session_id is None:
            return None
        with self.session_lock(session_id):
            session = self._sessions.get(session_id)
            if session is None or session.status.is_terminal:
                return None
            return session.copy()

    def open_session_ids(self) -> list[str]:
        return [
            session_id
            for session_id, session in list(self._sessions.items())
            if not session.status.is_terminal
        ]

    @property
    def resident_session_count(self) -> int:
        """Sessions held in memory; finished ones are served from the store."""
        return len(self._sessions)

    def recover(self) -> int:
        """
        Reload planning/active sessions from the store (e.g. after a restart).

        Returns:
            Number of sessions recovered
        """
        try:
            open_sessions = self.store.load_open_sessions()
        except CollaboratorUnavailable as e:
            logger.warning(f"Could not recover open sessions: {e.message}")
            return 0

        recovered = 0
        for session in open_sessions:
            with self._student_locks.hold(session.student_id):
                if session.id in self._sessions:
                    continue
                self._sessions[session.id] = session
                self._active_by_student[session.student_id] = session.id
                recovered += 1

        if recovered:
            logger.info(f"Recovered {recovered} open focus sessions")
        return recovered

    # =========================================================================
    # Transitions
    # =========================================================================

    def start(self, request: FocusSessionRequest) -> FocusSession:
        """
        Open a focus session for a student.

        Raises:
            ValidationError: Missing student/topic or non-positive duration
            SessionAlreadyActive: The student already has an open session
        """
        if not request.student_id:
            raise ValidationError("student_id is required")
        if not request.topic or not request.topic.strip():
            raise ValidationError("topic is required")

        duration = request.target_duration_seconds or self.settings.session_default_duration_seconds
        if duration <= 0:
            raise ValidationError("target_duration_seconds must be positive", value=duration)

        try:
            difficulty = Difficulty(request.initial_difficulty or Difficulty.EASY)
        except ValueError as e:
            raise ValidationError(
                f"Unknown difficulty: {request.initial_difficulty!r}"
            ) from e

        with self._student_locks.hold(request.student_id):
            existing_id = self._active_by_student.get(request.student_id)
            existing = self._sessions.get(existing_id) if existing_id else None
            if existing is not None and not existing.status.is_terminal:
                raise SessionAlreadyActive(
                    f"Student {request.student_id} already has an open session",
                    session_id=existing.id,
                )

            concept_map = self.generator.extract_concepts(
                request.topic, request.context, request.learning_goals
            )
            if not concept_map.subtopics:
                logger.warning(f"Empty concept map for {request.topic!r}, using fallback")
                concept_map = fallback_concept_map(request.topic)

            now = self.clock.now()
            session = FocusSession(
                student_id=request.student_id,
                topic=request.topic.strip(),
                start_time=now,
                concept_map=concept_map,
                target_duration_seconds=duration,
                status=SessionStatus.PLANNING,
                initial_difficulty=difficulty,
                current_difficulty=difficulty,
            )

            self._sessions[session.id] = session
            self._active_by_student[session.student_id] = session.id

            with self.session_lock(session.id):
                self._persist(session)
                session.status = SessionStatus.ACTIVE
                self._persist(session)

        self.events.emit(
            ev.SESSION_STARTED,
            now,
            session_id=session.id,
            student_id=session.student_id,
            topic=session.topic,
            difficulty=difficulty.value,
        )
        logger.info(
            "Started focus session {} for {} on {!r} ({} subtopics)",
            session.id,
            session.student_id,
            session.topic,
            len(concept_map.subtopics),
        )
        return session.copy()

    def start_loop(
        self,
        session_id: str,
        loop_number: int,
        preferred_modality: ArtifactType | str | None = None,
    ) -> SessionLoop:
        """
        Open the next loop and generate its artifact.

        Raises:
            InvalidLoopSequence: loop_number is not previous + 1, the previous
                loop is unsealed, or the session already has its maximum loops
        """
        try:
            modality_override = ArtifactType(preferred_modality) if preferred_modality else None
        except ValueError as e:
            raise ValidationError(f"Unknown modality: {preferred_modality!r}") from e

        with self.session_lock(session_id):
            session = self._require(session_id)
            self._require_active(session)

            expected = len(session.loops) + 1
            if loop_number != expected:
                raise InvalidLoopSequence(
                    f"Expected loop {expected}, got {loop_number}",
                    session_id=session_id,
                    expected=expected,
                    requested=loop_number,
                )
            if loop_number > self.max_loops:
                raise InvalidLoopSequence(
                    f"Session already has {self.max_loops} loops",
                    session_id=session_id,
                )
            previous = session.last_loop
            if previous is not None and not previous.is_sealed:
                raise InvalidLoopSequence(
                    f"Loop {previous.loop_number} has not been completed",
                    session_id=session_id,
                )

            targets = select_target_subtopics(
                session.concept_map, self.settings.subtopics_per_loop
            )
            modality = modality_override or self._choose_modality(previous)
            params = self.adapter.parameters_for(session.current_difficulty)

            content = self.generator.generate_artifact(
                session.topic,
                session.current_difficulty,
                modality,
                targets,
                {
                    "loop_number": loop_number,
                    "hints_available": params.hints_available,
                    "time_per_item_seconds": params.time_per_item_seconds,
                    "previous_accuracy": previous.performance.accuracy if previous else None,
                },
            )

            now = self.clock.now()
            loop = SessionLoop(
                loop_number=loop_number,
                start_time=now,
                artifact=SessionArtifact(
                    type=content.kind,
                    difficulty=session.current_difficulty,
                    content=content,
                    generated_at=now,
                    target_subtopics=targets,
                ),
            )
            session.loops.append(loop)
            self._persist(session)

            logger.info(
                f"Session {session_id} loop {loop_number}: {content.kind.value} "
                f"at {session.current_difficulty.value} targeting {targets}"
            )
            return SessionLoop.from_dict(loop.to_dict())

    def record_results(
        self,
        session_id: str,
        loop_number: int,
        results: Sequence[ItemResult | dict[str, Any]],
    ) -> SessionLoop:
        """
        Attach item results to an open loop. A loop accepts results once.

        Raises:
            ValidationError: Empty or malformed results
            LoopAlreadySealed: Results were already recorded for this loop
        """
        items = _parse_results(results)

        with self.session_lock(session_id):
            session = self._require(session_id)
            self._require_active(session)
            loop = self._require_loop(session, loop_number)
            if loop.has_results or loop.is_sealed:
                raise LoopAlreadySealed(
                    f"Loop {loop_number} already has results",
                    session_id=session_id,
                    loop_number=loop_number,
                )

            loop.results = items
            self._persist(session)
            logger.debug(f"Recorded {len(items)} results for session {session_id} loop {loop_number}")
            return SessionLoop.from_dict(loop.to_dict())

    def complete_loop(self, session_id: str, loop_number: int) -> LoopPerformance:
        """
        Score a loop and seal it.

        Updates subtopic mastery, applies the difficulty adjustment rule and
        emits DifficultyAdjusted / ConceptMastered / LoopCompleted.
        """
        with self.session_lock(session_id):
            session = self._require(session_id)
            self._require_active(session)
            loop = self._require_loop(session, loop_number)
            if loop.is_sealed:
                raise LoopAlreadySealed(
                    f"Loop {loop_number} is already complete",
                    session_id=session_id,
                    loop_number=loop_number,
                )
            if not loop.has_results:
                raise StateConflict(
                    f"Loop {loop_number} has no recorded results",
                    session_id=session_id,
                    loop_number=loop_number,
                )

            now = self.clock.now()
            loop.end_time = now
            results = loop.results or []
            total = len(results)
            correct = sum(1 for r in results if r.correct)
            accuracy = correct / total if total else 0.0
            hints_used = sum(r.hints_used for r in results)
            time_spent = max(0.0, (now - ensure_aware(loop.start_time)).total_seconds())

            item_times = [r.time_spent_seconds for r in results]
            if any(t > 0 for t in item_times):
                avg_time_per_item = statistics.fmean(item_times)
            else:
                avg_time_per_item = time_spent / total if total else 0.0

            engagement = self.adapter.engagement_level(accuracy, item_times)
            frustration = self.adapter.frustration_level(
                accuracy=accuracy,
                max_consecutive_failures=_max_consecutive_failures(results),
                hints_used=hints_used,
                average_time_per_item=avg_time_per_item,
                engagement=engagement,
            )

            by_subtopic = self._accuracy_by_subtopic(session, loop, accuracy)
            changes = apply_accuracy(session.concept_map, by_subtopic, now)

            performance = LoopPerformance(
                loop_number=loop_number,
                accuracy=accuracy,
                speed=(total / time_spent) * 60 if time_spent > 0 else 0.0,
                time_spent=time_spent,
                items_completed=total,
                items_total=max(total, len(loop.artifact.content.item_ids)),
                hints_used=hints_used,
                attention_score=self.adapter.attention_score(frustration),
                engagement_level=engagement,
                frustration_level=frustration,
                concepts_practiced=list(by_subtopic),
                concepts_improved=[name for name, (old, new) in changes.items() if new > old],
                weak_areas=[name for name, acc in by_subtopic.items() if acc < WEAK_AREA_ACCURACY],
            )

            decision = self.adapter.decide(accuracy, frustration, session.current_difficulty)
            if decision is not None:
                loop.difficulty_adjustment = DifficultyAdjustment(
                    from_difficulty=session.current_difficulty,
                    to_difficulty=decision.new_difficulty,
                    reason=decision.reason,
                    trigger_metric=decision.trigger_metric,
                    trigger_value=decision.trigger_value,
                    timestamp=now,
                )
                session.current_difficulty = decision.new_difficulty

            loop.performance = performance
            self._persist(session)

        if loop.difficulty_adjustment is not None:
            adjustment = loop.difficulty_adjustment
            self.events.emit(
                ev.DIFFICULTY_ADJUSTED,
                now,
                session_id=session_id,
                loop_number=loop_number,
                from_difficulty=adjustment.from_difficulty.value,
                to_difficulty=adjustment.to_difficulty.value,
                reason=adjustment.reason,
                trigger_metric=adjustment.trigger_metric.value,
                trigger_value=adjustment.trigger_value,
            )
            logger.info(
                f"Session {session_id}: difficulty {adjustment.from_difficulty.value} -> "
                f"{adjustment.to_difficulty.value} ({adjustment.reason})"
            )

        for name, (old, new) in changes.items():
            if old < self.mastery_threshold <= new:
                self.events.emit(
                    ev.CONCEPT_MASTERED,
                    now,
                    session_id=session_id,
                    student_id=session.student_id,
                    concept=name,
                    mastery_level=new,
                )

        self.events.emit(
            ev.LOOP_COMPLETED,
            now,
            session_id=session_id,
            loop_number=loop_number,
            accuracy=accuracy,
            frustration_level=frustration,
            engagement_level=engagement,
        )
        return LoopPerformance.from_dict(performance.to_dict())

    def complete(
        self,
        session_id: str,
        typical_answer_style: AnswerStyle | str | None = None,
    ) -> FocusSession:
        """
        Finish a session: aggregate performance and plan the next one.

        Raises:
            StateConflict: Fewer than the minimum loops, or the last loop is open
        """
        with self.session_lock(session_id):
            session = self._require(session_id)
            self._require_active(session)

            loop_count = len(session.loops)
            if not self.min_loops <= loop_count <= self.max_loops:
                raise StateConflict(
                    f"Session needs {self.min_loops}-{self.max_loops} loops, has {loop_count}",
                    session_id=session_id,
                )
            if not session.loops[-1].is_sealed:
                raise StateConflict(
                    f"Loop {loop_count} has not been completed",
                    session_id=session_id,
                )

            now = self.clock.now()
            session.end_time = now
            performance = self._aggregate(session)
            session.performance = performance
            session.status = SessionStatus.COMPLETED
            session.review_plan = self.planner.plan(
                session, performance, typical_answer_style=typical_answer_style, now=now
            )
            self._release(session)
            if self._persist(session):
                self._sessions.pop(session.id, None)

        self.events.emit(
            ev.SESSION_COMPLETED,
            now,
            session_id=session_id,
            student_id=session.student_id,
            loops_completed=performance.loops_completed,
            average_accuracy=performance.average_accuracy,
            concepts_mastered=list(performance.concepts_mastered),
        )
        logger.info(
            f"Completed session {session_id}: {performance.loops_completed} loops, "
            f"accuracy {performance.average_accuracy:.0%}"
        )
        return session.copy()

    def cancel(self, session_id: str, reason: str = "cancelled") -> FocusSession:
        """Cancel a planning or active session."""
        with self.session_lock(session_id):
            session = self._require(session_id)
            if session.status.is_terminal:
                raise StateConflict(
                    f"Session {session_id} is already {session.status.value}",
                    session_id=session_id,
                )

            now = self.clock.now()
            session.status = SessionStatus.CANCELLED
            session.end_time = now
            session.cancel_reason = reason
            self._release(session)
            if self._persist(session):
                self._sessions.pop(session.id, None)

        self.events.emit(
            ev.SESSION_CANCELLED,
            now,
            session_id=session_id,
            student_id=session.student_id,
            reason=reason,
        )
        logger.info(f"Cancelled session {session_id}: {reason}")
        return session.copy()

    # =========================================================================
    # Timing
    # =========================================================================

    def elapsed_seconds(self, session_id: str, now=None) -> float:
        with self.session_lock(session_id):
            session = self._require(session_id)
            end = session.end_time if session.status.is_terminal else None
            reference = ensure_aware(end or now or self.clock.now())
            return max(0.0, (reference - ensure_aware(session.start_time)).total_seconds())

    def expected_loop_seconds(self, session: FocusSession) -> float:
        """Wall-clock budget for one loop of a session."""
        return session.target_duration_seconds / self.max_loops

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require(self, session_id: str) -> FocusSession:
        """In-memory session, else the stored (finished) one."""
        session = self._sessions.get(session_id)
        if session is None:
            session = self.store.load_session(session_id)
        if session is None:
            raise NotFound(f"Session not found: {session_id}", session_id=session_id)
        return session

    @staticmethod
    def _require_active(session: FocusSession) -> None:
        if session.status != SessionStatus.ACTIVE:
            raise StateConflict(
                f"Session {session.id} is {session.status.value}, not active",
                session_id=session.id,
                status=session.status.value,
            )

    @staticmethod
    def _require_loop(session: FocusSession, loop_number: int) -> SessionLoop:
        loop = session.get_loop(loop_number)
        if loop is None:
            raise NotFound(
                f"Loop {loop_number} not found in session {session.id}",
                session_id=session.id,
                loop_number=loop_number,
            )
        return loop

    def _release(self, session: FocusSession) -> None:
        with self._student_locks.hold(session.student_id):
            if self._active_by_student.get(session.student_id) == session.id:
                del self._active_by_student[session.student_id]

    def _persist(self, session: FocusSession) -> bool:
        """
        Save a snapshot of the session. Callers hold the session's lock.

        Returns:
            True if the store accepted the write directly, False if it was deferred
        """
        label = f"save_session:{session.id}"
        snapshot = session.copy()
        try:
            self.store.save_session(snapshot)
        except CollaboratorUnavailable as e:
            logger.warning(f"Deferring save of session {session.id}: {e.message}")
            if self.outbox is None:
                logger.error(f"No persistence outbox; session {session.id} not saved")
                return False
            self.outbox.enqueue(
                label,
                lambda: self._write_deferred(snapshot),
                guard=lambda: self.session_lock(snapshot.id),
            )
            return False

        if self.outbox is not None:
            self.outbox.discard(label)
        return True

    def _write_deferred(self, snapshot: FocusSession) -> None:
        self.store.save_session(snapshot)
        if snapshot.status.is_terminal:
            self._sessions.pop(snapshot.id, None)

    def _choose_modality(self, previous: SessionLoop | None) -> ArtifactType:
        if previous is None:
            return ArtifactType.FLASHCARDS

        perf = previous.performance
        suggestion = self.adapter.suggest_modality_switch(
            previous.artifact.type,
            accuracy=perf.accuracy,
            frustration=perf.frustration_level,
            engagement=perf.engagement_level,
        )
        if suggestion is not None:
            logger.debug(suggestion.reason)
            return suggestion.modality
        return previous.artifact.type.next_in_rotation()

    @staticmethod
    def _accuracy_by_subtopic(
        session: FocusSession, loop: SessionLoop, loop_accuracy: float
    ) -> dict[str, float]:
        tallies: dict[str, list[int]] = {}
        for result in loop.results or []:
            if result.subtopic and session.concept_map.get(result.subtopic) is not None:
                counts = tallies.setdefault(result.subtopic, [0, 0])
                counts[0] += int(result.correct)
                counts[1] += 1

        by_subtopic = {name: correct / total for name, (correct, total) in tallies.items()}
        for name in loop.artifact.target_subtopics:
            by_subtopic.setdefault(name, loop_accuracy)
        return by_subtopic

    def _aggregate(self, session: FocusSession) -> SessionPerformance:
        loops = session.loops
        performances = [loop.performance for loop in loops]

        covered: list[str] = []
        for loop in loops:
            for name in [*loop.artifact.target_subtopics, *loop.performance.concepts_practiced]:
                if name not in covered:
                    covered.append(name)

        mastery_map = {}
        for name in covered:
            subtopic = session.concept_map.get(name)
            if subtopic is not None:
                mastery_map[name] = subtopic.mastery_level

        mastered = [name for name, m in mastery_map.items() if m >= self.mastery_threshold]
        needing_review = [name for name in mastery_map if name not in mastered]

        modality_counts = {modality: 0 for modality in ArtifactType.rotation()}
        for loop in loops:
            modality_counts[loop.artifact.type] += 1

        engagements = [p.engagement_level for p in performances]
        last = performances[-1]

        return SessionPerformance(
            session_id=session.id,
            student_id=session.student_id,
            topic=session.topic,
            total_time=(
                ensure_aware(session.end_time) - ensure_aware(session.start_time)
            ).total_seconds(),
            loops_completed=len(loops),
            average_accuracy=statistics.fmean(p.accuracy for p in performances),
            improvement_rate=last.accuracy - performances[0].accuracy,
            flashcards_completed=modality_counts[ArtifactType.FLASHCARDS],
            quizzes_completed=modality_counts[ArtifactType.QUIZ],
            games_completed=modality_counts[ArtifactType.MICRO_GAME],
            concepts_covered=covered,
            concepts_mastered=mastered,
            concepts_needing_review=needing_review,
            mastery_map=mastery_map,
            start_difficulty=session.initial_difficulty,
            end_difficulty=session.current_difficulty,
            difficulty_changes=sum(1 for loop in loops if loop.difficulty_adjustment),
            average_engagement=statistics.fmean(engagements),
            peak_engagement=max(engagements),
            frustrated_moments=sum(
                1 for p in performances if p.frustration_level >= self.adapter.frustration_threshold
            ),
            teaching_strategy=self.adapter.teaching_strategy(last.accuracy, last.frustration_level),
        )


def _parse_results(results: Sequence[ItemResult | dict[str, Any]]) -> list[ItemResult]:
    if not results:
        raise ValidationError("results must not be empty")

    items = []
    for raw in results:
        try:
            item = raw if isinstance(raw, ItemResult) else ItemResult.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed item result: {raw!r}") from e
        if item.hints_used < 0 or item.time_spent_seconds < 0:
            raise ValidationError(
                "hints_used and time_spent_seconds must be non-negative", item_id=item.item_id
            )
        items.append(item)
    return items


def _max_consecutive_failures(results: Sequence[ItemResult]) -> int:
    streak = longest = 0
    for result in results:
        if result.correct:
            streak = 0
        else:
            streak += 1
            longest = max(longest, streak)
    return longest
