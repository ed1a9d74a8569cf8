"""
Focus Sessions API Router.

One endpoint per state-machine transition:
- POST /                                 start a session
- POST /{session_id}/loops/{n}           start loop n
- POST /{session_id}/loops/{n}/results   record item results
- POST /{session_id}/loops/{n}/complete  score and seal loop n
- POST /{session_id}/complete            finish the session (review plan)
- POST /{session_id}/cancel              cancel the session
- GET  /{session_id}                     current session state
- GET  /events                           drain pending domain events
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from focusloop.api.dependencies import get_service
from focusloop.core.enums import ArtifactType, Difficulty
from focusloop.engine import MissionService

router = APIRouter()


# ========================================
# Request Models
# ========================================


class FocusSessionCreateRequest(BaseModel):
    """Request model for starting a focus session."""

    student_id: str = Field(..., min_length=1, description="Learner identifier")
    topic: str = Field(..., min_length=1, description="Topic to focus on")
    target_duration_seconds: int | None = Field(None, gt=0, description="Session length")
    initial_difficulty: Difficulty | None = Field(None, description="easy, medium or hard")
    context: str = Field("", description="Extra context for concept extraction")
    learning_goals: list[str] | None = Field(None, description="Explicit learning goals")


class LoopStartRequest(BaseModel):
    preferred_modality: ArtifactType | None = Field(
        None, description="flashcards, quiz or micro_game"
    )


class ItemResultModel(BaseModel):
    """One artifact item outcome."""

    item_id: str
    correct: bool
    hints_used: int = Field(0, ge=0)
    time_spent_seconds: float = Field(0.0, ge=0)
    subtopic: str | None = None


class LoopResultsRequest(BaseModel):
    results: list[ItemResultModel] = Field(..., min_length=1)


class CancelRequest(BaseModel):
    reason: str = Field("cancelled", description="Why the session was cancelled")


# ========================================
# Endpoints
# ========================================


@router.post("", summary="Start focus session")
def start_session(
    request: FocusSessionCreateRequest,
    service: MissionService = Depends(get_service),
) -> dict[str, Any]:
    session = service.start_focus_session(
        student_id=request.student_id,
        topic=request.topic,
        target_duration_seconds=request.target_duration_seconds,
        initial_difficulty=request.initial_difficulty,
        context=request.context,
        learning_goals=request.learning_goals,
    )
    return session.to_dict()


@router.get("/events", summary="Drain domain events")
def drain_events(service: MissionService = Depends(get_service)) -> list[dict[str, Any]]:
    return [event.to_dict() for event in service.drain_events()]


@router.get("/{session_id}", summary="Get focus session")
def get_session(
    session_id: str,
    service: MissionService = Depends(get_service),
) -> dict[str, Any]:
    return service.get_session(session_id).to_dict()


@router.post("/{session_id}/loops/{loop_number}", summary="Start loop")
def start_loop(
    session_id: str,
    loop_number: int,
    request: LoopStartRequest | None = None,
    service: MissionService = Depends(get_service),
) -> dict[str, Any]:
    modality = request.preferred_modality if request else None
    return service.start_loop(session_id, loop_number, modality).to_dict()


@router.post("/{session_id}/loops/{loop_number}/results", summary="Record loop results")
def record_results(
    session_id: str,
    loop_number: int,
    request: LoopResultsRequest,
    service: MissionService = Depends(get_service),
) -> dict[str, Any]:
    loop = service.record_loop_results(
        session_id, loop_number, [item.model_dump() for item in request.results]
    )
    return loop.to_dict()


@router.post("/{session_id}/loops/{loop_number}/complete", summary="Complete loop")
def complete_loop(
    session_id: str,
    loop_number: int,
    service: MissionService = Depends(get_service),
) -> dict[str, Any]:
    return service.complete_loop(session_id, loop_number).to_dict()


@router.post("/{session_id}/complete", summary="Complete focus session")
def complete_session(
    session_id: str,
    service: MissionService = Depends(get_service),
) -> dict[str, Any]:
    """Aggregate performance and return the session with its review plan."""
    return service.complete_session(session_id).to_dict()


@router.post("/{session_id}/cancel", summary="Cancel focus session")
def cancel_session(
    session_id: str,
    request: CancelRequest | None = None,
    service: MissionService = Depends(get_service),
) -> dict[str, Any]:
    reason = request.reason if request else "cancelled"
    return service.cancel_session(session_id, reason).to_dict()
