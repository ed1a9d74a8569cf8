"""
Missions API Router.

Endpoints:
- GET  /next: pick the most urgent skill and issue a mission
- POST /grade: grade one answer and update mastery
- POST /hint: hint, worked example and scaffolding for the current attempt
- GET  /skills/{student_id}: the learner's skill ledger
- GET  /notes/{student_id}: behavioral notes raised for the learner
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from loguru import logger
from pydantic import BaseModel, Field

from focusloop.api.dependencies import get_service
from focusloop.core.enums import ConfidenceLevel
from focusloop.engine import MissionService

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class GradeRequest(BaseModel):
    """Request model for grading an answer."""

    session_id: str = Field(..., description="Mission session id from /next")
    skill_id: str = Field(..., description="Skill being practiced")
    question_text: str = Field(..., min_length=1, description="Question shown to the learner")
    student_answer: str = Field("", description="Learner's answer")
    time_seconds: float = Field(..., ge=0, description="Time taken to answer")
    hints_used: int = Field(0, ge=0, description="Hints revealed before answering")


class GradeResponse(BaseModel):
    """Response model for a graded answer."""

    evaluation: dict[str, Any]
    mastery_delta: float
    new_mastery: float
    new_decay_rate: float
    note_raised: bool
    note: dict[str, Any] | None = None


class HintRequest(BaseModel):
    """Request model for in-question support."""

    session_id: str = Field(..., description="Mission session id from /next")
    attempt_number: int = Field(..., ge=1, description="1-based attempt on the current question")
    confidence: ConfidenceLevel | None = Field(None, description="Learner's confidence, if reported")
    available_hints: int = Field(3, ge=0, description="Hints the question carries")


class HintResponse(BaseModel):
    """Response model for in-question support."""

    hint_level: int | None
    hint: dict[str, Any] | None = None
    worked_example: list[dict[str, Any]] = []
    scaffolding_intensity: str
    struggling: bool


# ========================================
# Endpoints
# ========================================


@router.get("/next", summary="Get next mission")
def next_mission(
    student_id: str = Query(..., min_length=1, description="Learner identifier"),
    learning_style: str | None = Query(None, description="visual, kinesthetic or logical"),
    service: MissionService = Depends(get_service),
) -> dict[str, Any]:
    """
    Select the learner's most urgent skill.

    Urgency = (100 - mastery) * decay_rate * (1 + days_since_seen / 7).
    Learners without skills get the default curriculum.
    """
    mission = service.next_mission(student_id, learning_style=learning_style)
    return mission.to_dict()


@router.post("/grade", response_model=GradeResponse, summary="Grade an answer")
def grade_attempt(
    request: GradeRequest,
    service: MissionService = Depends(get_service),
) -> GradeResponse:
    result = service.grade_attempt(
        session_id=request.session_id,
        skill_id=request.skill_id,
        question_text=request.question_text,
        student_answer=request.student_answer,
        time_seconds=request.time_seconds,
        hints_used=request.hints_used,
    )
    logger.debug(f"Graded answer for skill {request.skill_id}: delta {result.mastery_delta:+g}")
    return GradeResponse(**result.to_dict())


@router.post("/hint", response_model=HintResponse, summary="Request a hint")
def request_hint(
    request: HintRequest,
    service: MissionService = Depends(get_service),
) -> HintResponse:
    """
    Choose the hint level for this attempt.

    Attempt 1 gets a nudge only at low confidence, attempt 2 guidance and
    attempt 3+ the reveal plus a worked example. Struggling learners get
    one level more.
    """
    result = service.request_hint(
        request.session_id,
        request.attempt_number,
        confidence=request.confidence,
        available_hints=request.available_hints,
    )
    return HintResponse(**result.to_dict())


@router.get("/skills/{student_id}", summary="List skills")
def list_skills(
    student_id: str,
    service: MissionService = Depends(get_service),
) -> list[dict[str, Any]]:
    return [skill.to_dict() for skill in service.list_skills(student_id)]


@router.get("/notes/{student_id}", summary="List behavioral notes")
def list_notes(
    student_id: str,
    service: MissionService = Depends(get_service),
) -> list[dict[str, Any]]:
    return [note.to_dict() for note in service.list_notes(student_id)]
