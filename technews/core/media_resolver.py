"""Media lookup for enriched articles.

Two independent keyword searches: Unsplash for a featured image and
YouTube for a related video. Each returns a MediaLookup and never raises;
a missing keyword or API key short-circuits without a network call.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"
YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

MEDIA_TIMEOUT = 10.0


class MediaStatus(str, Enum):
    """Outcome of a media lookup."""

    FOUND = "found"
    NOT_FOUND = "not_found"  # Provider answered with zero results
    NO_KEYWORD = "no_keyword"  # Nothing to search for
    DISABLED = "disabled"  # Provider not configured
    ERROR = "error"  # Transport error, timeout, non-success status or malformed body


@dataclass
class MediaLookup:
    """Result of a single media lookup."""

    status: MediaStatus
    url: str | None = None
    message: str | None = None

    @property
    def found(self) -> bool:
        return self.status == MediaStatus.FOUND


def _unexpected_body(provider: str) -> MediaLookup:
    logger.warning(f"{provider} search returned an unexpected body")
    return MediaLookup(status=MediaStatus.ERROR, message="unexpected body")


class MediaResolver:
    """Resolves image and video URLs for keyword suggestions."""

    def __init__(
        self,
        unsplash_access_key: str = "",
        youtube_api_key: str = "",
        timeout: float = MEDIA_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._unsplash_key = unsplash_access_key
        self._youtube_key = youtube_api_key
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                limits=httpx.Limits(max_connections=20),
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _search(self, provider: str, url: str, params: dict[str, Any]) -> dict[str, Any] | MediaLookup:
        """GET a search endpoint. Returns the decoded body, or an ERROR lookup."""
        try:
            client = await self._get_client()
            response = await client.get(url, params=params)
        except httpx.TimeoutException:
            logger.warning(f"{provider} search timed out after {self._timeout}s")
            return MediaLookup(status=MediaStatus.ERROR, message="timeout")
        except httpx.HTTPError as e:
            logger.warning(f"{provider} search failed: {type(e).__name__}: {e}")
            return MediaLookup(status=MediaStatus.ERROR, message=str(e))

        if response.status_code != 200:
            logger.warning(f"{provider} search returned HTTP {response.status_code}")
            return MediaLookup(status=MediaStatus.ERROR, message=f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"{provider} search returned a non-JSON body")
            return MediaLookup(status=MediaStatus.ERROR, message="invalid JSON")

        if not isinstance(data, dict):
            return _unexpected_body(provider)
        return data

    async def resolve_image(self, keyword: str | None) -> MediaLookup:
        """Raw URL of the top Unsplash photo for keyword."""
        if not keyword or not keyword.strip():
            return MediaLookup(status=MediaStatus.NO_KEYWORD)
        if not self._unsplash_key:
            return MediaLookup(status=MediaStatus.DISABLED, message="UNSPLASH_ACCESS_KEY not set")

        data = await self._search(
            "Unsplash",
            UNSPLASH_SEARCH_URL,
            {"client_id": self._unsplash_key, "query": keyword, "per_page": 1},
        )
        if isinstance(data, MediaLookup):
            return data

        results = data.get("results") or []
        if not isinstance(results, list):
            return _unexpected_body("Unsplash")
        if not results:
            return MediaLookup(status=MediaStatus.NOT_FOUND)

        first = results[0]
        urls = first.get("urls") if isinstance(first, dict) else None
        if not isinstance(urls, dict):
            return _unexpected_body("Unsplash")
        url = urls.get("raw")
        if url is not None and not isinstance(url, str):
            return _unexpected_body("Unsplash")
        if not url:
            logger.warning("Unsplash result had no raw image URL")
            return MediaLookup(status=MediaStatus.NOT_FOUND, message="result without raw URL")
        return MediaLookup(status=MediaStatus.FOUND, url=url)

    async def resolve_video(self, keyword: str | None) -> MediaLookup:
        """Watch URL of the top YouTube video for keyword."""
        if not keyword or not keyword.strip():
            return MediaLookup(status=MediaStatus.NO_KEYWORD)
        if not self._youtube_key:
            return MediaLookup(status=MediaStatus.DISABLED, message="YOUTUBE_API_KEY not set")

        data = await self._search(
            "YouTube",
            YOUTUBE_SEARCH_URL,
            {"part": "snippet", "type": "video", "key": self._youtube_key, "q": keyword, "maxResults": 1},
        )
        if isinstance(data, MediaLookup):
            return data

        items = data.get("items") or []
        if not isinstance(items, list):
            return _unexpected_body("YouTube")
        if not items:
            return MediaLookup(status=MediaStatus.NOT_FOUND)

        first = items[0]
        ident = first.get("id") if isinstance(first, dict) else None
        if not isinstance(ident, dict):
            return _unexpected_body("YouTube")
        video_id = ident.get("videoId")
        if video_id is not None and not isinstance(video_id, str):
            return _unexpected_body("YouTube")
        if not video_id:
            logger.warning("YouTube result had no videoId")
            return MediaLookup(status=MediaStatus.NOT_FOUND, message="result without videoId")
        return MediaLookup(status=MediaStatus.FOUND, url=YOUTUBE_WATCH_URL.format(video_id=video_id))

    async def resolve(
        self,
        image_keyword: str | None,
        video_keyword: str | None,
    ) -> tuple[MediaLookup, MediaLookup]:
        """Run both lookups concurrently. Returns (image, video)."""
        image, video = await asyncio.gather(
            self.resolve_image(image_keyword),
            self.resolve_video(video_keyword),
        )
        return image, video
