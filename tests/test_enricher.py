"""Tests for enricher.py"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from technews.core.enricher import (
    MAX_BODY_CHARS,
    MISSING_BODY_NOTE,
    EnrichmentFailure,
    SemanticEnricher,
    build_text_context,
    normalize_semantic_fields,
)
from technews.core.llm_providers import ChatResponse, LLMError
from technews.providers.content_types import RawArticle

FULL_RESPONSE = {
    "summary": "A new chip was announced.",
    "tags": ["#Chips", "#AI"],
    "relevance_score": 0.7,
    "media_suggestions": {
        "image_keywords": "silicon wafer",
        "video_keywords": "chip launch keynote",
        "media_justification": "Shows the product.",
    },
    "context": {
        "wikipedia_snippet": "Chips are small.",
        "social_sentiment": "60% positive",
        "search_trend": "chips +20%",
        "geo": {"country": "Kenya", "lat": -1.29, "lng": 36.82, "map_url": "https://www.google.com/maps?q=-1.29,36.82"},
    },
}


def _response(content: str) -> ChatResponse:
    return ChatResponse(
        content=content,
        model="gemini-2.5-flash",
        tokens_input=120,
        tokens_output=80,
        finish_reason="STOP",
        latency_ms=5,
    )


@pytest.fixture
def article():
    return RawArticle(
        title="A",
        description="B",
        body="C",
        source_url="https://x/1",
        publisher="Reporter",
    )


@pytest.fixture
def mock_llm():
    """Create a mock LLM provider."""
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=_response(json.dumps(FULL_RESPONSE)))
    llm.estimate_cost.return_value = 0.0001
    return llm


class TestBuildTextContext:
    """Tests for the prompt context."""

    def test_includes_title_description_body(self, article):
        text = build_text_context(article)
        assert "Title: A" in text
        assert "Description: B" in text
        assert "Body: C" in text

    def test_missing_description_omitted(self):
        text = build_text_context(RawArticle(title="A", source_url="u", body="C"))
        assert "Description" not in text

    def test_missing_body_uses_placeholder(self):
        text = build_text_context(RawArticle(title="A", source_url="u"))
        assert f"Body: {MISSING_BODY_NOTE}" in text
        assert "None" not in text

    def test_body_is_bounded(self):
        text = build_text_context(RawArticle(title="A", source_url="u", body="x" * (MAX_BODY_CHARS * 3)))
        assert len(text) < MAX_BODY_CHARS + 200


class TestNormalizeSemanticFields:
    """Tests for defaulting and coercion of parsed fields."""

    def test_empty_object_uses_defaults(self):
        result = normalize_semantic_fields({})
        assert result.summary == ""
        assert result.tags == []
        assert result.relevance_score == 0.0
        assert result.context == {}
        assert result.image_keywords is None
        assert result.video_keywords is None
        assert result.media_justification == ""

    def test_full_object(self):
        result = normalize_semantic_fields(FULL_RESPONSE)
        assert result.summary == "A new chip was announced."
        assert result.tags == ["#Chips", "#AI"]
        assert result.relevance_score == 0.7
        assert result.image_keywords == "silicon wafer"
        assert result.video_keywords == "chip launch keynote"
        assert result.context["geo"]["country"] == "Kenya"

    def test_score_is_clamped(self):
        assert normalize_semantic_fields({"relevance_score": 3}).relevance_score == 1.0
        assert normalize_semantic_fields({"relevance_score": -1}).relevance_score == 0.0

    def test_score_string_and_garbage(self):
        assert normalize_semantic_fields({"relevance_score": "0.5"}).relevance_score == 0.5
        assert normalize_semantic_fields({"relevance_score": "high"}).relevance_score == 0.0
        assert normalize_semantic_fields({"relevance_score": None}).relevance_score == 0.0

    def test_mistyped_fields_fall_back(self):
        result = normalize_semantic_fields({
            "summary": 42,
            "tags": "#notalist",
            "media_suggestions": "nope",
            "context": ["nope"],
        })
        assert result.summary == ""
        assert result.tags == []
        assert result.image_keywords is None
        assert result.context == {}

    def test_non_string_tags_dropped(self):
        assert normalize_semantic_fields({"tags": ["#a", 1, None, "#b"]}).tags == ["#a", "#b"]

    def test_blank_keywords_are_absent(self):
        result = normalize_semantic_fields({"media_suggestions": {"image_keywords": "  "}})
        assert result.image_keywords is None


@pytest.mark.asyncio
class TestSemanticEnricher:
    """Tests for SemanticEnricher.enrich."""

    async def test_success(self, article, mock_llm):
        outcome = await SemanticEnricher(mock_llm).enrich(article)

        assert outcome.success is True
        assert outcome.result.summary == "A new chip was announced."
        assert outcome.tokens_input == 120
        assert outcome.cost_usd == 0.0001

    async def test_prompt_contains_article_and_shape(self, article, mock_llm):
        await SemanticEnricher(mock_llm).enrich(article)

        prompt = mock_llm.complete.call_args.args[0]
        assert "Title: A" in prompt
        assert '"media_suggestions"' in prompt
        assert "Output valid JSON only." in prompt

    async def test_no_json_fails(self, article, mock_llm):
        mock_llm.complete.return_value = _response("not json at all")
        outcome = await SemanticEnricher(mock_llm).enrich(article)

        assert outcome.success is False
        assert outcome.result is None
        assert outcome.failure == EnrichmentFailure.NO_STRUCTURED_OUTPUT

    async def test_malformed_json_fails(self, article, mock_llm):
        mock_llm.complete.return_value = _response('{"summary": "x" "tags": }')
        outcome = await SemanticEnricher(mock_llm).enrich(article)

        assert outcome.success is False
        assert outcome.failure == EnrichmentFailure.MALFORMED_OUTPUT

    async def test_repairable_response(self, article, mock_llm):
        mock_llm.complete.return_value = _response(
            '''Here you go: {"summary": "x", "tags": ['a','b',], "relevance_score": 0.8,}'''
        )
        outcome = await SemanticEnricher(mock_llm).enrich(article)

        assert outcome.success is True
        assert outcome.result.summary == "x"
        assert outcome.result.tags == ["a", "b"]
        assert outcome.result.relevance_score == 0.8

    async def test_llm_error_is_transport_failure(self, article, mock_llm):
        mock_llm.complete.side_effect = LLMError("boom", provider="Gemini", retriable=True)
        outcome = await SemanticEnricher(mock_llm).enrich(article)

        assert outcome.success is False
        assert outcome.failure == EnrichmentFailure.TRANSPORT_ERROR

    async def test_timeout(self, article, mock_llm):
        async def slow_complete(*args, **kwargs):
            await asyncio.sleep(1)

        mock_llm.complete = slow_complete
        outcome = await SemanticEnricher(mock_llm, timeout_seconds=0.01).enrich(article)

        assert outcome.success is False
        assert outcome.failure == EnrichmentFailure.TIMEOUT
