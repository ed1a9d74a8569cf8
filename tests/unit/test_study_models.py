"""
Unit tests for focus session serialization and domain events.
"""

import json

import pytest

from focusloop.core.enums import SessionStatus
from focusloop.study.events import EventOutbox
from focusloop.study.models import FocusSession, ItemResult
from focusloop.study.session_orchestrator import FocusSessionRequest, SessionOrchestrator


@pytest.fixture
def completed_session(store, clock, settings):
    orchestrator = SessionOrchestrator(store, clock=clock, settings=settings)
    session = orchestrator.start(FocusSessionRequest(student_id="student-1", topic="fractions"))
    for n in range(1, 4):
        loop = orchestrator.start_loop(session.id, n)
        orchestrator.record_results(
            session.id,
            n,
            [{"item_id": item_id, "correct": i % 2 == 0, "time_spent_seconds": 12.5}
             for i, item_id in enumerate(loop.artifact.content.item_ids)],
        )
        clock.advance(300)
        orchestrator.complete_loop(session.id, n)
    return orchestrator.complete(session.id)


class TestFocusSessionSerialization:
    def test_completed_session_roundtrip(self, completed_session):
        data = json.loads(json.dumps(completed_session.to_dict()))
        restored = FocusSession.from_dict(data)

        assert restored == completed_session
        assert restored.status == SessionStatus.COMPLETED
        assert len(restored.loops) == 3
        assert all(loop.is_sealed for loop in restored.loops)
        assert restored.review_plan is not None
        assert restored.performance.loops_completed == 3

    def test_copy_is_independent(self, completed_session):
        duplicate = completed_session.copy()
        duplicate.concept_map.subtopics[0].mastery_level = 0.99
        assert completed_session.concept_map.subtopics[0].mastery_level != 0.99

    def test_open_loop_roundtrip(self, store, clock, settings):
        orchestrator = SessionOrchestrator(store, clock=clock, settings=settings)
        session = orchestrator.start(FocusSessionRequest(student_id="student-1", topic="decimals"))
        orchestrator.start_loop(session.id, 1)

        restored = FocusSession.from_dict(orchestrator.get_session(session.id).to_dict())
        loop = restored.loops[0]
        assert loop.results is None
        assert not loop.is_sealed
        assert loop.end_time is None

    def test_item_result_defaults(self):
        result = ItemResult.from_dict({"item_id": "card-1", "correct": 1})
        assert result.correct is True
        assert result.hints_used == 0
        assert result.subtopic is None


class TestEventOutbox:
    def test_drain_returns_in_order_and_clears(self, clock):
        outbox = EventOutbox()
        outbox.emit("A", clock.now(), n=1)
        outbox.emit("B", clock.now(), n=2)

        assert len(outbox) == 2
        drained = outbox.drain()
        assert [e.name for e in drained] == ["A", "B"]
        assert drained[1].to_dict()["payload"] == {"n": 2}
        assert outbox.drain() == []
