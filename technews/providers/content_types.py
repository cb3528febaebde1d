"""Provider-agnostic content types for raw and enriched articles."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z'. Returns None if unparsable."""
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class RawArticle:
    """A news article as delivered by a news source, before enrichment."""

    title: str
    source_url: str
    description: str | None = None
    body: str | None = None
    publisher: str | None = None
    published_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawArticle":
        return cls(
            title=data.get("title") or "",
            source_url=data.get("source_url") or "",
            description=data.get("description"),
            body=data.get("body"),
            publisher=data.get("publisher"),
            published_at=parse_timestamp(data.get("published_at")),
        )


@dataclass(frozen=True)
class MediaLinks:
    """Media attached to an enriched article."""

    featured_image_url: str | None = None
    related_video_url: str | None = None
    media_justification: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "featured_image_url": self.featured_image_url,
            "related_video_url": self.related_video_url,
            "media_justification": self.media_justification,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "MediaLinks":
        data = data or {}
        return cls(
            featured_image_url=data.get("featured_image_url"),
            related_video_url=data.get("related_video_url"),
            media_justification=data.get("media_justification") or "",
        )


@dataclass(frozen=True)
class EnrichedRecord:
    """An article plus its LLM-derived summary, tags, score, media and context.

    Created once per content id and cached; never updated in place.
    """

    id: str
    title: str
    source_url: str
    ingested_at: datetime
    description: str = ""
    body: str = ""
    publisher: str | None = None
    published_at: datetime | None = None
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    relevance_score: float = 0.0
    media: MediaLinks = field(default_factory=MediaLinks)
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "body": self.body,
            "source_url": self.source_url,
            "publisher": self.publisher,
            "published_at": _format_timestamp(self.published_at),
            "ingested_at": _format_timestamp(self.ingested_at),
            "summary": self.summary,
            "tags": list(self.tags),
            "relevance_score": self.relevance_score,
            "media": self.media.to_dict(),
            "context": dict(self.context),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnrichedRecord":
        """Rebuild a record from its serialized form.

        Raises:
            KeyError: If 'id' or 'source_url' is missing.
        """
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            source_url=data["source_url"],
            ingested_at=parse_timestamp(data.get("ingested_at")) or datetime.fromtimestamp(0),
            description=data.get("description") or "",
            body=data.get("body") or "",
            publisher=data.get("publisher"),
            published_at=parse_timestamp(data.get("published_at")),
            summary=data.get("summary") or "",
            tags=list(data.get("tags") or []),
            relevance_score=float(data.get("relevance_score") or 0.0),
            media=MediaLinks.from_dict(data.get("media")),
            context=dict(data.get("context") or {}),
        )
