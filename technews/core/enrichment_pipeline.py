"""Enrichment Pipeline - turns a raw article into a cached EnrichedRecord.

Pipeline Phases:
1. IDENTIFY: Derive the content id from the source URL
2. CACHE_LOOKUP: Return the cached record on a hit
3. ENRICH: Ask the LLM for summary, tags, score, media keywords and context
4. RESOLVE_MEDIA: Look up image and video concurrently
5. ASSEMBLE: Merge article fields, semantic fields and media URLs
6. CACHE_STORE: Write the record back with a fixed TTL (best effort)

Only a missing source URL raises. A failed ENRICH ends the run with
ProcessStatus.FAILED and no cache write; every other failure degrades to
null fields.

Usage:
    orchestrator = EnrichmentOrchestrator(cache, enricher, media)
    result = await orchestrator.process(article)
    payload = result.to_payload()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from technews.core.cache import DEFAULT_TTL_SECONDS, EnrichmentCache, create_cache
from technews.core.content_id import identify
from technews.core.enricher import EnrichmentFailure, SemanticEnricher, SemanticResult
from technews.core.llm_providers import get_chat_provider
from technews.core.media_resolver import MediaLookup, MediaResolver
from technews.providers.content_types import EnrichedRecord, MediaLinks, RawArticle

if TYPE_CHECKING:
    from technews.core.settings import Settings

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "An error has occurred. Check server"


class EnrichmentPhase(str, Enum):
    """Phases of a single process() call."""

    IDENTIFY = "identify"
    CACHE_LOOKUP = "cache_lookup"
    ENRICH = "enrich"
    RESOLVE_MEDIA = "resolve_media"
    ASSEMBLE = "assemble"
    CACHE_STORE = "cache_store"
    DONE = "done"


class ProcessStatus(str, Enum):
    DONE = "done"
    FAILED = "failed"


@dataclass
class ProcessResult:
    """Outcome of EnrichmentOrchestrator.process."""

    status: ProcessStatus
    content_id: str
    phase: EnrichmentPhase
    record: EnrichedRecord | None = None
    cached: bool = False
    failure: EnrichmentFailure | None = None
    image: MediaLookup | None = None
    video: MediaLookup | None = None
    stored: bool = False

    @property
    def ok(self) -> bool:
        return self.status == ProcessStatus.DONE and self.record is not None

    def to_payload(self) -> dict[str, Any] | str:
        """The record as a dict, or the generic failure message."""
        if self.ok:
            return self.record.to_dict()  # type: ignore[union-attr]
        return FAILURE_MESSAGE


def assemble_record(
    content_id: str,
    article: RawArticle,
    semantic: SemanticResult,
    image_url: str | None,
    video_url: str | None,
    ingested_at: datetime,
) -> EnrichedRecord:
    """Merge article passthrough fields, semantic fields and media URLs."""
    return EnrichedRecord(
        id=content_id,
        title=article.title,
        description=article.description or "",
        body=article.body or "",
        source_url=article.source_url,
        publisher=article.publisher,
        published_at=article.published_at,
        ingested_at=ingested_at,
        summary=semantic.summary,
        tags=list(semantic.tags),
        relevance_score=semantic.relevance_score,
        media=MediaLinks(
            featured_image_url=image_url,
            related_video_url=video_url,
            media_justification=semantic.media_justification,
        ),
        context=dict(semantic.context),
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EnrichmentOrchestrator:
    """Cache-aside enrichment of raw articles.

    Holds no per-request state, so one instance serves concurrent requests.
    Concurrent misses for the same article each call the LLM; the last
    cache write wins.
    """

    def __init__(
        self,
        cache: EnrichmentCache,
        enricher: SemanticEnricher,
        media: MediaResolver,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self.enricher = enricher
        self.media = media
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    async def process(self, article: RawArticle) -> ProcessResult:
        """Return the enriched record for article, from cache when possible.

        Raises:
            MissingRequiredFieldError: If article.source_url is empty.
        """
        # Phase 1: IDENTIFY
        content_id = identify(article.source_url)

        # Phase 2: CACHE_LOOKUP
        lookup = await self.cache.get(content_id)
        if lookup.hit:
            logger.info(f"Cache hit for {content_id}")
            return ProcessResult(
                status=ProcessStatus.DONE,
                content_id=content_id,
                phase=EnrichmentPhase.DONE,
                record=lookup.record,
                cached=True,
            )
        logger.debug(f"Cache {lookup.status.value} for {content_id}")

        # Phase 3: ENRICH
        outcome = await self.enricher.enrich(article)
        if not outcome.success or outcome.result is None:
            logger.error(f"Enrichment failed for {content_id}: {outcome.failure}")
            return ProcessResult(
                status=ProcessStatus.FAILED,
                content_id=content_id,
                phase=EnrichmentPhase.ENRICH,
                failure=outcome.failure,
            )
        semantic = outcome.result

        # Phase 4: RESOLVE_MEDIA
        image, video = await self.media.resolve(semantic.image_keywords, semantic.video_keywords)
        logger.debug(f"Media for {content_id}: image={image.status.value}, video={video.status.value}")

        # Phase 5: ASSEMBLE
        record = assemble_record(
            content_id,
            article,
            semantic,
            image_url=image.url if image.found else None,
            video_url=video.url if video.found else None,
            ingested_at=self._clock(),
        )

        # Phase 6: CACHE_STORE
        stored = await self.cache.put(content_id, record, self.ttl_seconds)

        logger.info(
            f"Enriched {content_id}: {len(record.tags)} tags, "
            f"score {record.relevance_score:.2f}, cost ${outcome.cost_usd:.5f}"
        )

        return ProcessResult(
            status=ProcessStatus.DONE,
            content_id=content_id,
            phase=EnrichmentPhase.DONE,
            record=record,
            image=image,
            video=video,
            stored=stored,
        )

    async def close(self) -> None:
        await self.media.close()
        await self.cache.close()


def build_orchestrator(settings: Settings) -> EnrichmentOrchestrator:
    """Wire an orchestrator from settings. The cache still needs connect()."""
    api_key = settings.openai_api_key if settings.llm_provider == "openai" else settings.gemini_api_key
    llm = get_chat_provider(
        provider_name=settings.llm_provider,
        model=settings.llm_model or None,
        api_key=api_key,
        timeout=settings.llm_timeout_seconds,
    )
    return EnrichmentOrchestrator(
        cache=create_cache(settings),
        enricher=SemanticEnricher(llm, timeout_seconds=settings.llm_timeout_seconds),
        media=MediaResolver(
            unsplash_access_key=settings.unsplash_access_key,
            youtube_api_key=settings.youtube_api_key,
            timeout=settings.media_timeout_seconds,
        ),
        ttl_seconds=settings.cache_ttl_seconds,
    )
