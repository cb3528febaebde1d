"""Stable short identifiers for articles, derived from their source URL."""

from __future__ import annotations

import hashlib

# Hex characters kept from the SHA-256 digest. Collisions are not detected.
CONTENT_ID_LENGTH = 12


class MissingRequiredFieldError(ValueError):
    """An article is missing a required field (source_url or title)."""

    def __init__(self, field_name: str):
        super().__init__(f"Article is missing required field '{field_name}'")
        self.field_name = field_name


def identify(source_url: str | None) -> str:
    """Return the content id for a source URL.

    The same URL always yields the same id, across calls and process restarts.
    The URL is hashed as given; no normalization is applied.

    Raises:
        MissingRequiredFieldError: If source_url is empty or None.
    """
    if not source_url:
        raise MissingRequiredFieldError("source_url")
    return hashlib.sha256(source_url.encode("utf-8")).hexdigest()[:CONTENT_ID_LENGTH]
