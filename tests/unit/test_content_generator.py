"""
Unit tests for artifacts and content generators.

The HTTP generator is exercised against httpx.MockTransport; no network.
"""

import json

import httpx
import pytest

from focusloop.config import Settings
from focusloop.content.artifacts import FlashcardSet, MicroGame, Quiz, artifact_from_dict
from focusloop.content.generator import (
    FallbackContentGenerator,
    HttpContentGenerator,
    TemplateContentGenerator,
    build_generator,
)
from focusloop.core.enums import AnswerStyle, ArtifactType, Correctness, Difficulty
from focusloop.core.errors import CollaboratorUnavailable, ValidationError


def completion(payload):
    """Wrap a JSON payload the way a chat completions endpoint does."""
    return httpx.Response(200, json={"choices": [{"message": {"content": json.dumps(payload)}}]})


def http_generator(handler, retry_attempts=2, sleeps=None):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpContentGenerator(
        base_url="http://generator.test/v1/",
        api_key="secret",
        retry_attempts=retry_attempts,
        client=client,
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )


class Unavailable:
    """Generator that is always down."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise CollaboratorUnavailable("generator offline")

        return fail


class TestArtifacts:
    def test_kind_dispatch(self):
        template = TemplateContentGenerator()
        for modality, cls in [
            (ArtifactType.FLASHCARDS, FlashcardSet),
            (ArtifactType.QUIZ, Quiz),
            (ArtifactType.MICRO_GAME, MicroGame),
        ]:
            artifact = template.generate_artifact("fractions", Difficulty.EASY, modality, ["Halves"])
            restored = artifact_from_dict(artifact.to_dict())
            assert isinstance(restored, cls)
            assert restored.kind == modality
            assert restored.item_ids == artifact.item_ids

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            artifact_from_dict({"kind": "crossword"})

    def test_malformed_payload(self):
        with pytest.raises(ValidationError):
            artifact_from_dict({"kind": "flashcards", "cards": [{"front": "missing id"}]})


class TestTemplateGenerator:
    def test_flashcards_one_per_subtopic(self):
        artifact = TemplateContentGenerator().generate_artifact(
            "fractions", Difficulty.MEDIUM, ArtifactType.FLASHCARDS, ["Halves", "Thirds"]
        )
        assert artifact.item_ids == ["card-1", "card-2"]
        assert [c.subtopic for c in artifact.cards] == ["Halves", "Thirds"]
        assert all(c.difficulty == Difficulty.MEDIUM for c in artifact.cards)

    def test_quiz_uses_short_answers_for_explanations(self):
        artifact = TemplateContentGenerator().generate_artifact(
            "fractions",
            Difficulty.EASY,
            ArtifactType.QUIZ,
            ["Halves"],
            {"question_format": "explanation_required"},
        )
        assert artifact.items[0].item_type == "short_answer"

    def test_micro_game_has_three_rounds(self):
        artifact = TemplateContentGenerator().generate_artifact(
            "fractions", Difficulty.EASY, ArtifactType.MICRO_GAME, []
        )
        assert artifact.item_ids == ["round-1", "round-2", "round-3"]
        assert artifact.target_concepts == ["fractions"]

    def test_concepts_keep_learning_goals(self):
        concept_map = TemplateContentGenerator().extract_concepts("fractions", learning_goals=["Compare"])
        assert concept_map.learning_goals == ["Compare"]
        assert len(concept_map.subtopics) == 3

    @pytest.mark.parametrize("answer,seconds,style", [
        ("idk", 30, AnswerStyle.SKIP),
        ("", 30, AnswerStyle.SKIP),
        ("three quarters", 2, AnswerStyle.RUSHED),
        ("three quarters because 3 of 4", 40, AnswerStyle.WORKED),
    ])
    def test_heuristic_evaluation(self, answer, seconds, style):
        attempt = TemplateContentGenerator().evaluate_attempt("Q?", answer, seconds)
        assert attempt.answer_style == style
        assert attempt.correctness == Correctness.PARTIAL


class TestHttpGenerator:
    def test_extract_concepts(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return completion({
                "topic": "fractions",
                "subtopics": [
                    {"name": "Halves", "description": "Two equal parts"},
                    {"name": "Quarters", "prerequisites": ["Halves"]},
                ],
                "misconceptions": ["Bigger denominator means bigger fraction"],
            })

        concept_map = http_generator(handler).extract_concepts("fractions")

        assert seen["url"] == "http://generator.test/v1/chat/completions"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["response_format"] == {"type": "json_object"}
        assert [s.name for s in concept_map.subtopics] == ["Halves", "Quarters"]
        assert concept_map.subtopics[1].prerequisites == ["Halves"]
        assert concept_map.misconceptions == ["Bigger denominator means bigger fraction"]

    def test_injected_client_keeps_its_own_headers(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            seen["trace"] = request.headers.get("x-trace-id")
            return completion({"subtopics": [{"name": "Halves"}]})

        client = httpx.Client(transport=httpx.MockTransport(handler), headers={"X-Trace-Id": "t-1"})
        HttpContentGenerator(base_url="http://generator.test/v1", api_key="secret", client=client).extract_concepts(
            "fractions"
        )

        assert seen == {"auth": "Bearer secret", "trace": "t-1"}

    def test_no_key_sends_no_authorization(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return completion({"subtopics": [{"name": "Halves"}]})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        HttpContentGenerator(base_url="http://generator.test/v1", client=client).extract_concepts("fractions")

        assert seen["auth"] is None

    def test_server_errors_are_retried(self):
        calls = []
        sleeps = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(CollaboratorUnavailable):
            http_generator(handler, retry_attempts=3, sleeps=sleeps).extract_concepts("fractions")
        assert len(calls) == 3
        assert sleeps == [1, 2]

    def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401)

        with pytest.raises(CollaboratorUnavailable):
            http_generator(handler, retry_attempts=3).extract_concepts("fractions")
        assert len(calls) == 1

    def test_transport_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return completion({"subtopics": [{"name": "Halves"}]})

        concept_map = http_generator(handler).extract_concepts("fractions")
        assert len(calls) == 2
        assert concept_map.topic == "fractions"

    def test_malformed_json(self):
        def handler(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": "not json"}}]})

        with pytest.raises(CollaboratorUnavailable):
            http_generator(handler).extract_concepts("fractions")

    def test_empty_concept_map_is_unavailable(self):
        with pytest.raises(CollaboratorUnavailable):
            http_generator(lambda request: completion({"subtopics": []})).extract_concepts("fractions")

    def test_artifact_must_match_modality(self):
        def handler(request):
            return completion({"kind": "quiz", "title": "T", "items": []})

        with pytest.raises(CollaboratorUnavailable):
            http_generator(handler).generate_artifact(
                "fractions", Difficulty.EASY, ArtifactType.FLASHCARDS, ["Halves"]
            )

    def test_artifact(self):
        def handler(request):
            body = json.loads(json.loads(request.content)["messages"][1]["content"])
            assert body["kind"] == "flashcards"
            return completion({
                "cards": [{"id": "c1", "front": "1/2?", "back": "One half", "subtopic": "Halves"}],
            })

        artifact = http_generator(handler).generate_artifact(
            "fractions", Difficulty.EASY, ArtifactType.FLASHCARDS, ["Halves"]
        )
        assert isinstance(artifact, FlashcardSet)
        assert artifact.item_ids == ["c1"]

    def test_evaluate_attempt(self):
        def handler(request):
            return completion({
                "correctness": "incorrect",
                "reasoning_quality": 2,
                "answer_style": "guess",
                "confidence_level": "high",
                "misunderstanding_label": "adds denominators",
                "feedback": "Look at the denominators again.",
            })

        attempt = http_generator(handler).evaluate_attempt("1/2 + 1/3?", "2/5", 12)
        assert attempt.correctness == Correctness.INCORRECT
        assert attempt.misunderstanding_label == "adds denominators"

    def test_invalid_evaluation_is_unavailable(self):
        def handler(request):
            return completion({
                "correctness": "correct",
                "reasoning_quality": 9,
                "answer_style": "worked",
                "confidence_level": "high",
            })

        with pytest.raises(CollaboratorUnavailable):
            http_generator(handler).evaluate_attempt("Q?", "A", 12)

    def test_generate_questions(self):
        def handler(request):
            return completion({"questions": [{"text": "Why is 1/2 > 1/3?"}, {"text": "Explain 2/4."}]})

        questions = http_generator(handler).generate_questions("Comparing Fractions", Difficulty.EASY, "mixed_format")
        assert [q.id for q in questions] == ["q1", "q2"]
        assert questions[0].type == "explanation"


class TestFallback:
    def test_falls_back_to_templates(self):
        generator = FallbackContentGenerator(Unavailable())
        artifact = generator.generate_artifact("fractions", Difficulty.EASY, ArtifactType.QUIZ, ["Halves"])
        assert artifact.item_ids == ["quiz-1"]
        assert len(generator.generate_questions("Fractions", Difficulty.EASY, "mixed_format")) == 2
        assert generator.evaluate_attempt("Q?", "idk", 10).answer_style == AnswerStyle.SKIP

    def test_primary_used_when_available(self):
        primary = http_generator(lambda request: completion({"subtopics": [{"name": "Halves"}]}))
        concept_map = FallbackContentGenerator(primary).extract_concepts("fractions")
        assert [s.name for s in concept_map.subtopics] == ["Halves"]

    def test_non_availability_errors_propagate(self):
        with pytest.raises(ValidationError):
            FallbackContentGenerator(None).generate_artifact("fractions", Difficulty.EASY, "podcast", [])

    def test_build_generator_without_url(self):
        generator = build_generator(Settings(_env_file=None, generator_url=None))
        assert generator.primary is None

    def test_build_generator_with_url(self):
        generator = build_generator(Settings(_env_file=None, generator_url="http://generator.test/v1"))
        assert isinstance(generator.primary, HttpContentGenerator)
        assert generator.primary.base_url == "http://generator.test/v1"
        generator.primary.close()
