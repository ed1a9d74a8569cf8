"""
Content generation collaborators.

- ContentGenerator: the interface the engine depends on
- TemplateContentGenerator: deterministic templates, no network
- HttpContentGenerator: LLM endpoint over HTTP (OpenAI-compatible chat API)
- FallbackContentGenerator: primary generator with template fallback

Generator failures never fail a session or a grade: the fallback wrapper
catches CollaboratorUnavailable (and malformed payloads) and answers from
templates instead.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from loguru import logger

from focusloop.content.artifacts import (
    Artifact,
    Flashcard,
    FlashcardSet,
    GameRound,
    MicroGame,
    Quiz,
    QuizItem,
    artifact_from_dict,
)
from focusloop.core.enums import AnswerStyle, ArtifactType, ConfidenceLevel, Correctness, Difficulty
from focusloop.core.errors import CollaboratorUnavailable, ValidationError
from focusloop.learning.grading import GradedAttempt
from focusloop.study.concept_map import fallback_concept_map
from focusloop.study.models import ConceptMap, Subtopic

MICRO_GAME_ROUNDS = 3
QUIZ_MAX_ITEMS = 5
QUESTIONS_PER_DIFFICULTY = {Difficulty.EASY: 5, Difficulty.MEDIUM: 6, Difficulty.HARD: 7}


@dataclass
class MissionQuestion:
    id: str
    text: str
    type: str = "explanation"
    expected_reasoning: str = ""
    hints: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type,
            "expected_reasoning": self.expected_reasoning,
            "hints": list(self.hints),
        }


class ContentGenerator(Protocol):
    """Anything that can produce concept maps, artifacts, questions and evaluations."""

    def extract_concepts(
        self, topic: str, context: str = "", learning_goals: Sequence[str] | None = None
    ) -> ConceptMap: ...

    def generate_artifact(
        self,
        topic: str,
        difficulty: Difficulty,
        modality: ArtifactType,
        target_subtopics: Sequence[str],
        student_context: dict[str, Any] | None = None,
    ) -> Artifact: ...

    def generate_questions(
        self, skill_name: str, difficulty: Difficulty, question_format: str
    ) -> list[MissionQuestion]: ...

    def evaluate_attempt(
        self,
        question: str,
        student_answer: str,
        time_seconds: float,
        skill_context: dict[str, Any] | None = None,
    ) -> GradedAttempt: ...


# =============================================================================
# Template generator
# =============================================================================


class TemplateContentGenerator:
    """Deterministic content built from templates."""

    def extract_concepts(
        self, topic: str, context: str = "", learning_goals: Sequence[str] | None = None
    ) -> ConceptMap:
        concept_map = fallback_concept_map(topic)
        if learning_goals:
            concept_map.learning_goals = list(learning_goals)
        return concept_map

    def generate_artifact(
        self,
        topic: str,
        difficulty: Difficulty,
        modality: ArtifactType,
        target_subtopics: Sequence[str],
        student_context: dict[str, Any] | None = None,
    ) -> Artifact:
        subtopics = list(target_subtopics) or [topic]
        question_format = (student_context or {}).get("question_format", "mixed_format")

        if modality == ArtifactType.FLASHCARDS:
            return FlashcardSet(
                cards=[
                    Flashcard(
                        id=f"card-{i + 1}",
                        front=f"What is {name}?",
                        back=f"{name} is an important idea in {topic}.",
                        subtopic=name,
                        difficulty=difficulty,
                    )
                    for i, name in enumerate(subtopics)
                ]
            )

        if modality == ArtifactType.QUIZ:
            return Quiz(
                title=f"{topic} Quiz",
                description="Let's check what you know.",
                question_format=question_format,
                items=[
                    QuizItem(
                        id=f"quiz-{i + 1}",
                        question=f"What can you tell me about {name}?",
                        answer="A",
                        choices=["A", "B", "C", "D"],
                        subtopic=name,
                        explanation=f"Think back to what we practiced about {name}.",
                        hints=["Think about what we learned", "Take your time"],
                        difficulty=difficulty,
                        item_type="short_answer" if question_format == "explanation_required" else "mcq",
                    )
                    for i, name in enumerate(subtopics[:QUIZ_MAX_ITEMS])
                ],
            )

        if modality == ArtifactType.MICRO_GAME:
            return MicroGame(
                game_type="pattern-recognition",
                target_concepts=subtopics,
                rounds=[
                    GameRound(
                        id=f"round-{i + 1}",
                        prompt=f"Round {i + 1}: {topic}",
                        correct_response="Answer",
                        distractors=["Wrong 1", "Wrong 2", "Wrong 3"],
                        hint="Think carefully!",
                        subtopic=subtopics[i % len(subtopics)],
                    )
                    for i in range(MICRO_GAME_ROUNDS)
                ],
            )

        raise ValidationError(f"Unsupported modality: {modality!r}")

    def generate_questions(
        self, skill_name: str, difficulty: Difficulty, question_format: str
    ) -> list[MissionQuestion]:
        return [
            MissionQuestion(
                id="q1",
                text=f"Let's work on {skill_name}. Explain what you already know about this topic.",
                expected_reasoning="Student demonstrates prior knowledge",
                hints=["Think about what you remember", "Any examples you can give?"],
            ),
            MissionQuestion(
                id="q2",
                text="Here's a practice problem. Show your work and explain your thinking.",
                expected_reasoning="Student shows problem-solving process",
            ),
        ]

    def evaluate_attempt(
        self,
        question: str,
        student_answer: str,
        time_seconds: float,
        skill_context: dict[str, Any] | None = None,
    ) -> GradedAttempt:
        """Heuristic evaluation: partial credit, style from answer length and speed."""
        answer = (student_answer or "").strip().lower()
        if answer in ("skip", "idk") or len(answer) < 3:
            style = AnswerStyle.SKIP
        elif time_seconds < 5:
            style = AnswerStyle.RUSHED
        else:
            style = AnswerStyle.WORKED

        return GradedAttempt(
            correctness=Correctness.PARTIAL,
            reasoning_quality=3,
            answer_style=style,
            confidence_level=ConfidenceLevel.MEDIUM,
            feedback="Keep working on this. Show your thinking step by step.",
        )


# =============================================================================
# HTTP (LLM) generator
# =============================================================================


class HttpContentGenerator:
    """
    Content generator backed by an OpenAI-compatible chat completions endpoint.

    Every call requests a JSON object response. Transport errors, timeouts and
    5xx responses are retried with exponential backoff; anything still failing
    surfaces as CollaboratorUnavailable.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 15.0,
        retry_attempts: int = 2,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the HTTP generator.

        Args:
            base_url: Base URL of the chat completions API
            api_key: Bearer token, if the endpoint requires one
            model: Model name forwarded in each request
            timeout_seconds: Per-request timeout
            retry_attempts: Attempts per call before giving up
            client: Preconfigured httpx client (tests inject a MockTransport)
            sleep: Backoff sleep function
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.retry_attempts = max(1, retry_attempts)
        self._sleep = sleep
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )
        if api_key:
            self.client.headers["Authorization"] = f"Bearer {api_key}"

    def close(self) -> None:
        self.client.close()

    def _complete_json(self, system_prompt: str, user_prompt: str, temperature: float = 0.7) -> dict:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": temperature,
        }
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = self.client.post(f"{self.base_url}/chat/completions", json=payload)
                response.raise_for_status()
                content = response.json()["choices"][0]["message"]["content"]
                parsed = json.loads(content)
                if not isinstance(parsed, dict):
                    raise ValueError("Expected a JSON object")
                return parsed

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500:
                    logger.error(f"Generator client error: {e.response.status_code}")
                    break
                logger.warning(
                    f"Generator server error {e.response.status_code} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}"
                )

            except (httpx.TimeoutException, httpx.RequestError) as e:
                last_error = e
                logger.warning(
                    f"Generator request failed on attempt {attempt + 1}/{self.retry_attempts}: {e}"
                )

            except (KeyError, IndexError, TypeError, ValueError) as e:
                # Malformed payloads are not retried
                last_error = e
                logger.warning(f"Generator returned a malformed payload: {e}")
                break

            if attempt < self.retry_attempts - 1:
                self._sleep(2 ** attempt)

        raise CollaboratorUnavailable(
            f"Content generator failed after {self.retry_attempts} attempts",
            cause=str(last_error),
        )

    def extract_concepts(
        self, topic: str, context: str = "", learning_goals: Sequence[str] | None = None
    ) -> ConceptMap:
        goals = ", ".join(learning_goals or []) or "not specified"
        data = self._complete_json(
            CONCEPT_SYSTEM_PROMPT,
            f"TOPIC: {topic}\nCONTEXT: {context or 'none'}\nLEARNING GOALS: {goals}",
        )
        try:
            subtopics = [
                Subtopic(
                    name=s["name"],
                    description=s.get("description") or "",
                    prerequisites=list(s.get("prerequisites") or []),
                )
                for s in data.get("subtopics", [])
            ]
        except (KeyError, TypeError) as e:
            raise CollaboratorUnavailable(f"Malformed concept map: {e}") from e
        if not subtopics:
            raise CollaboratorUnavailable("Concept map had no subtopics")
        return ConceptMap(
            topic=data.get("topic") or topic,
            subtopics=subtopics,
            misconceptions=list(data.get("misconceptions") or []),
            examples=list(data.get("examples") or []),
            learning_goals=list(data.get("learning_goals") or learning_goals or []),
        )

    def generate_artifact(
        self,
        topic: str,
        difficulty: Difficulty,
        modality: ArtifactType,
        target_subtopics: Sequence[str],
        student_context: dict[str, Any] | None = None,
    ) -> Artifact:
        data = self._complete_json(
            ARTIFACT_SYSTEM_PROMPT,
            json.dumps(
                {
                    "kind": modality.value,
                    "topic": topic,
                    "difficulty": difficulty.value,
                    "target_subtopics": list(target_subtopics),
                    "student_context": student_context or {},
                }
            ),
        )
        data.setdefault("kind", modality.value)
        try:
            artifact = artifact_from_dict(data)
        except ValidationError as e:
            raise CollaboratorUnavailable(f"Malformed artifact: {e.message}") from e
        if artifact.kind != modality or not artifact.item_ids:
            raise CollaboratorUnavailable("Artifact did not match the requested modality")
        return artifact

    def generate_questions(
        self, skill_name: str, difficulty: Difficulty, question_format: str
    ) -> list[MissionQuestion]:
        count = QUESTIONS_PER_DIFFICULTY[difficulty]
        data = self._complete_json(
            MISSION_SYSTEM_PROMPT,
            f"TARGET SKILL: {skill_name}\nDIFFICULTY: {difficulty.value}\n"
            f"FORMAT: {question_format}\nGenerate {count} questions.",
        )
        try:
            return [
                MissionQuestion(
                    id=f"q{i + 1}",
                    text=q["text"],
                    type=q.get("type", "explanation"),
                    expected_reasoning=q.get("expected_reasoning", ""),
                    hints=list(q.get("hints") or []),
                )
                for i, q in enumerate(data["questions"])
            ]
        except (KeyError, TypeError) as e:
            raise CollaboratorUnavailable(f"Malformed questions: {e}") from e

    def evaluate_attempt(
        self,
        question: str,
        student_answer: str,
        time_seconds: float,
        skill_context: dict[str, Any] | None = None,
    ) -> GradedAttempt:
        skill_name = (skill_context or {}).get("display_name", "")
        data = self._complete_json(
            EVALUATION_SYSTEM_PROMPT,
            f"QUESTION: {question}\nSTUDENT ANSWER: {student_answer}\n"
            f"TIME TAKEN: {time_seconds} seconds\nSKILL: {skill_name}",
            temperature=0.3,
        )
        try:
            return GradedAttempt.from_dict(data)
        except ValidationError as e:
            raise CollaboratorUnavailable(f"Malformed evaluation: {e.message}") from e


# =============================================================================
# Fallback wrapper
# =============================================================================


class FallbackContentGenerator:
    """Delegates to `primary`, answering from `fallback` when it is unavailable."""

    def __init__(self, primary: ContentGenerator | None, fallback: ContentGenerator | None = None):
        self.primary = primary
        self.fallback = fallback or TemplateContentGenerator()

    def _call(self, operation: str, *args, **kwargs):
        if self.primary is not None:
            try:
                return getattr(self.primary, operation)(*args, **kwargs)
            except CollaboratorUnavailable as e:
                logger.warning(f"{operation} unavailable, using templates: {e.message}")
        return getattr(self.fallback, operation)(*args, **kwargs)

    def extract_concepts(self, topic, context="", learning_goals=None) -> ConceptMap:
        return self._call("extract_concepts", topic, context, learning_goals)

    def generate_artifact(
        self, topic, difficulty, modality, target_subtopics, student_context=None
    ) -> Artifact:
        return self._call(
            "generate_artifact", topic, difficulty, modality, target_subtopics, student_context
        )

    def generate_questions(self, skill_name, difficulty, question_format) -> list[MissionQuestion]:
        return self._call("generate_questions", skill_name, difficulty, question_format)

    def evaluate_attempt(
        self, question, student_answer, time_seconds, skill_context=None
    ) -> GradedAttempt:
        return self._call("evaluate_attempt", question, student_answer, time_seconds, skill_context)


def build_generator(settings) -> FallbackContentGenerator:
    """Wire the generator stack from settings (templates only when no URL is set)."""
    primary = None
    if settings.has_generator_configured():
        primary = HttpContentGenerator(
            base_url=settings.generator_url,
            api_key=settings.generator_api_key,
            model=settings.generator_model,
            timeout_seconds=settings.generator_timeout_seconds,
            retry_attempts=settings.generator_retry_attempts,
        )
    return FallbackContentGenerator(primary)


# =============================================================================
# Prompts
# =============================================================================

CONCEPT_SYSTEM_PROMPT = """You are an expert curriculum designer for children aged 8-12.
Break the topic into 3-6 subtopics ordered from foundational to advanced.
Return ONLY a JSON object:
{"topic": str, "subtopics": [{"name": str, "description": str, "prerequisites": [str]}],
 "misconceptions": [str], "examples": [str], "learning_goals": [str]}"""

ARTIFACT_SYSTEM_PROMPT = """You create short practice artifacts for children aged 8-12.
The request is a JSON object naming the artifact kind (flashcards, quiz or micro_game).
Return ONLY a JSON object matching the kind:
- flashcards: {"kind": "flashcards", "cards": [{"id", "front", "back", "subtopic", "difficulty"}]}
- quiz: {"kind": "quiz", "title", "items": [{"id", "question", "answer", "subtopic", "choices", "explanation", "hints", "difficulty"}]}
- micro_game: {"kind": "micro_game", "game_type", "rounds": [{"id", "prompt", "correct_response", "subtopic", "distractors", "hint"}]}"""

MISSION_SYSTEM_PROMPT = """You are a patient math tutor. Questions must require EXPLANATION,
not just answers, use real-world contexts and build from simple to complex.
Return ONLY a JSON object:
{"questions": [{"text": str, "type": "explanation", "expected_reasoning": str, "hints": [str]}]}"""

EVALUATION_SYSTEM_PROMPT = """You evaluate a student's math answer. Be honest but kind.
Return ONLY a JSON object:
{"correctness": "correct" | "incorrect" | "partial",
 "reasoning_quality": 1-5,
 "answer_style": "guess" | "skip" | "worked" | "rushed",
 "misunderstanding_label": "specific misconception or null",
 "confidence_level": "low" | "medium" | "high",
 "feedback": "2-3 sentences of specific feedback about the work"}"""
