"""Tests for newsapi.py"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from technews.providers.content_types import RawArticle
from technews.providers.newsapi import (
    NewsApiAuthError,
    NewsApiClient,
    NewsApiError,
    NewsApiRateLimitError,
    pick_enrichable,
)

HEADLINES = {
    "status": "ok",
    "totalResults": 2,
    "articles": [
        {
            "title": "No description",
            "description": None,
            "content": "Body",
            "url": "https://news.test/1",
            "author": "X",
            "publishedAt": "2025-05-01T08:30:00Z",
        },
        {
            "title": "Complete",
            "description": "Desc",
            "content": "Body [+200 chars]",
            "url": "https://news.test/2",
            "author": "Y",
            "publishedAt": "2025-05-01T09:00:00Z",
        },
    ],
}


def _client(handler) -> NewsApiClient:
    return NewsApiClient("key", transport=httpx.MockTransport(handler))


class TestPickEnrichable:
    def test_first_with_description_and_body(self):
        articles = [
            RawArticle(title="a", source_url="u1", description="d"),
            RawArticle(title="b", source_url="u2", body="c"),
            RawArticle(title="c", source_url="u3", description="d", body="c"),
            RawArticle(title="d", source_url="u4", description="d", body="c"),
        ]
        assert pick_enrichable(articles).title == "c"

    def test_none_eligible(self):
        assert pick_enrichable([RawArticle(title="a", source_url="u")]) is None
        assert pick_enrichable([]) is None


@pytest.mark.asyncio
class TestNewsApiClient:
    async def test_fetch_top_headlines(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=HEADLINES)

        async with _client(handler) as client:
            articles = await client.fetch_top_headlines(category="technology", page_size=5)

        assert len(articles) == 2
        second = articles[1]
        assert second.title == "Complete"
        assert second.body == "Body [+200 chars]"
        assert second.source_url == "https://news.test/2"
        assert second.publisher == "Y"
        assert second.published_at == datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)

        request = seen[0]
        assert request.url.path == "/v2/top-headlines"
        assert request.url.params["category"] == "technology"
        assert request.url.params["pageSize"] == "5"
        assert request.headers["X-Api-Key"] == "key"

    async def test_error_status_in_body(self):
        body = {"status": "error", "code": "apiKeyInvalid", "message": "bad"}
        async with _client(lambda r: httpx.Response(200, json=body)) as client:
            with pytest.raises(NewsApiError, match="apiKeyInvalid"):
                await client.fetch_top_headlines()

    @pytest.mark.parametrize("body", [[{"status": "ok"}], "ok", {"status": "ok", "articles": {"url": "x"}}])
    async def test_unexpected_body(self, body):
        async with _client(lambda r: httpx.Response(200, json=body)) as client:
            with pytest.raises(NewsApiError, match="unexpected body"):
                await client.fetch_top_headlines()

    async def test_mistyped_article_fields_are_dropped(self):
        body = {"status": "ok", "articles": [{"title": 5, "url": ["https://x/1"], "content": "C"}]}
        async with _client(lambda r: httpx.Response(200, json=body)) as client:
            articles = await client.fetch_top_headlines()

        assert articles[0].title == ""
        assert articles[0].source_url == ""
        assert articles[0].body == "C"

    async def test_unauthorized(self):
        async with _client(lambda r: httpx.Response(401, json={})) as client:
            with pytest.raises(NewsApiAuthError):
                await client.fetch_top_headlines()

    async def test_rate_limited(self):
        async with _client(lambda r: httpx.Response(429, json={})) as client:
            with patch("technews.providers.newsapi.asyncio.sleep", AsyncMock()):
                with pytest.raises(NewsApiRateLimitError):
                    await client.fetch_top_headlines()

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(NewsApiError):
                await client.fetch_top_headlines()


def test_client_requires_key():
    with pytest.raises(NewsApiAuthError):
        NewsApiClient("")
