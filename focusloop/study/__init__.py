"""
Study Module - Bounded focus sessions.

Components:
- models: FocusSession, loops, concept map and aggregate records
- events: Domain events and the outbox callers drain
- concept_map: Subtopic targeting and rolling subtopic mastery
- ReviewPlanner: Next-session guidance

The orchestrator and sweeper live in focusloop.study.session_orchestrator
and focusloop.study.sweeper.
"""

from focusloop.study.concept_map import (
    apply_accuracy,
    fallback_concept_map,
    identify_gaps,
    select_target_subtopics,
)
from focusloop.study.events import DomainEvent, EventOutbox
from focusloop.study.models import (
    ConceptMap,
    DifficultyAdjustment,
    FocusSession,
    ItemResult,
    LoopPerformance,
    ReviewPlan,
    SessionArtifact,
    SessionLoop,
    SessionPerformance,
    Subtopic,
)
from focusloop.study.review_planner import ReviewPlanner, review_interval

__all__ = [
    "ConceptMap",
    "DifficultyAdjustment",
    "DomainEvent",
    "EventOutbox",
    "FocusSession",
    "ItemResult",
    "LoopPerformance",
    "ReviewPlan",
    "ReviewPlanner",
    "SessionArtifact",
    "SessionLoop",
    "SessionPerformance",
    "Subtopic",
    "apply_accuracy",
    "fallback_concept_map",
    "identify_gaps",
    "review_interval",
    "select_target_subtopics",
]
