"""Semantic enrichment of a single article via an LLM.

Builds a bounded text context from the article, sends the enrichment
prompt, recovers a JSON object from the reply and normalizes it. Every
failure (transport, timeout, unrecoverable output) becomes an
EnrichmentOutcome with success=False; nothing is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from technews.core.llm_providers import LLMError, LLMProvider
from technews.core.prompts import get_prompt
from technews.core.response_repair import ParseFailure, parse_llm_json
from technews.providers.content_types import RawArticle

logger = logging.getLogger(__name__)

PROMPT_KEY = "article_enrichment"
MISSING_BODY_NOTE = "No body content available."

# Context bounds (characters)
MAX_DESCRIPTION_CHARS = 1000
MAX_BODY_CHARS = 4000

DEFAULT_LLM_TIMEOUT = 60.0


class EnrichmentFailure(str, Enum):
    """Why enrichment produced no result."""

    TRANSPORT_ERROR = "transport_error"
    TIMEOUT = "timeout"
    NO_STRUCTURED_OUTPUT = "no_structured_output"
    MALFORMED_OUTPUT = "malformed_output"


@dataclass
class SemanticResult:
    """Normalized semantic fields of an enrichment."""

    summary: str = ""
    tags: list[str] = field(default_factory=list)
    relevance_score: float = 0.0
    image_keywords: str | None = None
    video_keywords: str | None = None
    media_justification: str = ""
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class EnrichmentOutcome:
    """Result of SemanticEnricher.enrich."""

    success: bool
    result: SemanticResult | None = None
    failure: EnrichmentFailure | None = None
    message: str | None = None
    tokens_input: int = 0
    tokens_output: int = 0
    cost_usd: float = 0.0


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def build_text_context(article: RawArticle) -> str:
    """Title, optional description and body (or a placeholder note), bounded in size."""
    lines = [f"Title: {article.title}"]
    if article.description:
        lines.append(f"Description: {_truncate(article.description, MAX_DESCRIPTION_CHARS)}")
    body = article.body or MISSING_BODY_NOTE
    lines.append(f"Body: {_truncate(body, MAX_BODY_CHARS)}")
    return "\n".join(lines)


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_keyword(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_score(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(score):
        return 0.0
    return min(max(score, 0.0), 1.0)


def normalize_semantic_fields(data: dict[str, Any]) -> SemanticResult:
    """Map a parsed LLM object onto SemanticResult, defaulting anything absent or mistyped."""
    tags = data.get("tags")
    media = data.get("media_suggestions")
    if not isinstance(media, dict):
        media = {}
    context = data.get("context")

    return SemanticResult(
        summary=_as_str(data.get("summary")),
        tags=[t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
        relevance_score=_as_score(data.get("relevance_score")),
        image_keywords=_as_keyword(media.get("image_keywords")),
        video_keywords=_as_keyword(media.get("video_keywords")),
        media_justification=_as_str(media.get("media_justification")),
        context=context if isinstance(context, dict) else {},
    )


class SemanticEnricher:
    """Sends an article to the LLM and returns normalized semantic fields."""

    def __init__(self, llm: LLMProvider, timeout_seconds: float = DEFAULT_LLM_TIMEOUT) -> None:
        self._llm = llm
        self._timeout = timeout_seconds
        prompt = get_prompt(PROMPT_KEY)
        assert prompt is not None, f"Prompt '{PROMPT_KEY}' not registered"
        self._prompt = prompt

    @property
    def llm(self) -> LLMProvider:
        return self._llm

    def build_prompt(self, article: RawArticle) -> str:
        return self._prompt.render(text_context=build_text_context(article))

    async def enrich(self, article: RawArticle) -> EnrichmentOutcome:
        prompt = self.build_prompt(article)

        try:
            response = await asyncio.wait_for(
                self._llm.complete(
                    prompt,
                    temperature=self._prompt.temperature,
                    max_tokens=self._prompt.max_tokens,
                ),
                self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"AI enrichment timed out after {self._timeout}s: {article.source_url}")
            return EnrichmentOutcome(
                success=False,
                failure=EnrichmentFailure.TIMEOUT,
                message=f"LLM call exceeded {self._timeout}s",
            )
        except LLMError as e:
            logger.error(f"AI enrichment failed ({e.provider}, retriable={e.retriable}): {e}")
            return EnrichmentOutcome(
                success=False,
                failure=EnrichmentFailure.TRANSPORT_ERROR,
                message=str(e),
            )

        cost = self._llm.estimate_cost(response.tokens_input, response.tokens_output)
        parsed = parse_llm_json(response.content.strip())

        if not parsed.success:
            failure = (
                EnrichmentFailure.NO_STRUCTURED_OUTPUT
                if parsed.error == ParseFailure.NO_STRUCTURED_OUTPUT
                else EnrichmentFailure.MALFORMED_OUTPUT
            )
            logger.error(
                f"AI enrichment failed: {failure.value} "
                f"({len(response.content)} chars from {response.model})"
            )
            return EnrichmentOutcome(
                success=False,
                failure=failure,
                message="LLM response contained no usable JSON",
                tokens_input=response.tokens_input,
                tokens_output=response.tokens_output,
                cost_usd=cost,
            )

        if parsed.repaired:
            logger.info("LLM response needed JSON repair")

        return EnrichmentOutcome(
            success=True,
            result=normalize_semantic_fields(parsed.data or {}),
            tokens_input=response.tokens_input,
            tokens_output=response.tokens_output,
            cost_usd=cost,
        )
