from __future__ import annotations

import logging
from typing import Any

from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse

from technews.core.content_id import MissingRequiredFieldError
from technews.core.enrichment_pipeline import (
    FAILURE_MESSAGE,
    EnrichmentOrchestrator,
    build_orchestrator,
)
from technews.core.settings import Settings
from technews.providers.content_types import RawArticle
from technews.providers.newsapi import NewsApiAuthError, NewsApiClient, NewsApiError, pick_enrichable

logger = logging.getLogger(__name__)

REQUIRED_ARTICLE_FIELDS = ("source_url", "title")

app = FastAPI(title="technews-enrichment")

_settings: Settings | None = None
_orchestrator: EnrichmentOrchestrator | None = None
_news_client: NewsApiClient | None = None


@app.on_event("startup")
async def _startup() -> None:
    global _settings, _orchestrator, _news_client
    _settings = Settings.from_env()
    logging.basicConfig(
        level=_settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    _orchestrator = build_orchestrator(_settings)
    await _orchestrator.cache.connect()
    logger.info(f"Enrichment cache backend: {_orchestrator.cache.backend_name}")

    if _settings.news_api_key:
        _news_client = NewsApiClient(_settings.news_api_key)
    else:
        logger.warning("NEWS_API_KEY not set; /api/v1/news is disabled")


@app.on_event("shutdown")
async def _shutdown() -> None:
    global _orchestrator, _news_client
    if _orchestrator is not None:
        await _orchestrator.close()
        _orchestrator = None
    if _news_client is not None:
        await _news_client.close()
        _news_client = None


def get_settings() -> Settings:
    return _settings or Settings.from_env()


def get_orchestrator() -> EnrichmentOrchestrator:
    assert _orchestrator is not None, "Orchestrator not initialized"
    return _orchestrator


def get_news_client() -> NewsApiClient:
    if _news_client is None:
        raise NewsApiAuthError("NEWS_API_KEY not set")
    return _news_client


@app.get("/", response_class=PlainTextResponse)
def home():
    return "technews enrichment service"


@app.get("/api/v1/news")
async def api_latest_news():
    """Enrich the first complete top headline for the configured category.

    Always answers 200: the enriched record, or a generic failure message.
    """
    settings = get_settings()
    try:
        articles = await get_news_client().fetch_top_headlines(
            category=settings.news_category,
            page_size=settings.news_page_size,
        )
    except NewsApiError as e:
        logger.error(f"News source failed: {e}")
        return FAILURE_MESSAGE

    article = pick_enrichable(articles)
    if article is None:
        logger.warning("No headline with both description and content")
        return FAILURE_MESSAGE

    result = await get_orchestrator().process(article)
    return result.to_payload()


@app.get("/api/v1/news/{content_id}")
async def api_cached_news(content_id: str):
    """Return a cached enriched record by content id."""
    lookup = await get_orchestrator().cache.get(content_id)
    if not lookup.hit:
        return JSONResponse({"error": "Not found", "content_id": content_id}, status_code=404)
    return lookup.record.to_dict()  # type: ignore[union-attr]


@app.post("/api/v1/enrich")
async def api_enrich(payload: dict[str, Any] = Body(...)):
    """Enrich a caller-supplied raw article.

    A missing source_url or title is a 422; any other failure is the generic message.
    """
    try:
        for field_name in REQUIRED_ARTICLE_FIELDS:
            value = payload.get(field_name)
            if not isinstance(value, str) or not value.strip():
                raise MissingRequiredFieldError(field_name)
        result = await get_orchestrator().process(RawArticle.from_dict(payload))
    except MissingRequiredFieldError as e:
        return JSONResponse({"error": str(e), "field": e.field_name}, status_code=422)
    return result.to_payload()


@app.get("/api/health")
async def api_health(check_llm: bool = False):
    """Cache readiness, plus an LLM round-trip when check_llm is set."""
    orchestrator = get_orchestrator()
    result: dict[str, Any] = {
        "cache": {
            "backend": orchestrator.cache.backend_name,
            "ready": orchestrator.cache.is_ready,
        },
        "news_source": {"configured": _news_client is not None},
    }

    if check_llm:
        health = await orchestrator.enricher.llm.health_check()
        result["llm"] = {
            "provider": health.provider,
            "model": health.model,
            "healthy": health.healthy,
            "message": health.message,
            "latency_ms": health.latency_ms,
        }

    return result
