"""NewsAPI client for top headlines."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from technews.providers.content_types import RawArticle, parse_timestamp

logger = logging.getLogger(__name__)

NEWSAPI_BASE_URL = "https://newsapi.org"


class NewsApiError(Exception):
    """Base exception for NewsAPI errors."""


class NewsApiAuthError(NewsApiError):
    """API key missing or rejected."""


class NewsApiRateLimitError(NewsApiError):
    """Rate limit exceeded after all retries."""


class NewsApiClient:
    """Async client for the NewsAPI v2 top-headlines endpoint."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise NewsApiAuthError("NewsAPI key is required")
        self._client = httpx.AsyncClient(
            base_url=NEWSAPI_BASE_URL,
            headers={"X-Api-Key": api_key},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "NewsApiClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def _get_with_retry(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
    ) -> httpx.Response:
        """GET with exponential backoff on 429.

        Raises:
            NewsApiAuthError: On 401.
            NewsApiRateLimitError: If rate limited after all retries.
            NewsApiError: On other HTTP or transport errors.
        """
        delay = base_delay

        for attempt in range(max_retries + 1):
            try:
                resp = await self._client.get(url, params=params)
            except httpx.HTTPError as e:
                raise NewsApiError(f"NewsAPI request failed: {type(e).__name__}: {e}") from e

            if resp.status_code == 401:
                raise NewsApiAuthError("Invalid NewsAPI key")

            if resp.status_code == 429:
                if attempt == max_retries:
                    raise NewsApiRateLimitError(f"Rate limit exceeded after {max_retries} retries")
                logger.warning(
                    f"NewsAPI rate limited (429). Waiting {delay:.1f}s "
                    f"(attempt {attempt + 1}/{max_retries + 1})"
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, max_delay)
                continue

            if resp.status_code != 200:
                raise NewsApiError(f"NewsAPI returned HTTP {resp.status_code}")
            return resp

        raise NewsApiRateLimitError("Rate limit handling failed")

    async def fetch_top_headlines(self, category: str = "technology", page_size: int = 5) -> list[RawArticle]:
        """Fetch the current top headlines for a category.

        Raises:
            NewsApiError: If the request fails or the API reports an error status.
        """
        resp = await self._get_with_retry(
            "/v2/top-headlines",
            params={"category": category, "pageSize": page_size},
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise NewsApiError("NewsAPI returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise NewsApiError("NewsAPI returned an unexpected body")
        if data.get("status") != "ok":
            raise NewsApiError(f"NewsAPI error: {data.get('code')}: {data.get('message')}")

        docs = data.get("articles") or []
        if not isinstance(docs, list):
            raise NewsApiError("NewsAPI returned an unexpected body")
        articles = [self._parse_article(doc) for doc in docs if isinstance(doc, dict)]
        logger.info(f"Fetched {len(articles)} '{category}' headlines")
        return articles

    def _parse_article(self, doc: dict[str, Any]) -> RawArticle:
        """Convert a NewsAPI article to RawArticle."""
        return RawArticle(
            title=_text(doc, "title") or "",
            source_url=_text(doc, "url") or "",
            description=_text(doc, "description"),
            body=_text(doc, "content"),
            publisher=_text(doc, "author"),
            published_at=parse_timestamp(doc.get("publishedAt")),
        )


def _text(doc: dict[str, Any], key: str) -> str | None:
    value = doc.get(key)
    return value if isinstance(value, str) else None


def pick_enrichable(articles: list[RawArticle]) -> RawArticle | None:
    """First article that has both a description and body content."""
    for article in articles:
        if article.description and article.body and article.source_url:
            return article
    return None
