"""Tests for content_id.py"""

import hashlib

import pytest

from technews.core.content_id import CONTENT_ID_LENGTH, MissingRequiredFieldError, identify


class TestIdentify:
    """Tests for identify()."""

    def test_deterministic(self):
        url = "https://example.com/news/1"
        assert identify(url) == identify(url)

    def test_known_value(self):
        """The id is the truncated SHA-256 hex digest, so it survives restarts."""
        url = "https://x/1"
        expected = hashlib.sha256(url.encode("utf-8")).hexdigest()[:12]
        assert identify(url) == expected

    def test_fixed_length_lowercase_hex(self):
        content_id = identify("https://example.com/a?b=c")
        assert len(content_id) == CONTENT_ID_LENGTH == 12
        assert content_id == content_id.lower()
        int(content_id, 16)  # parses as hex

    def test_different_urls_differ(self):
        assert identify("https://example.com/1") != identify("https://example.com/2")

    def test_url_is_not_normalized(self):
        assert identify("https://example.com/1") != identify("https://example.com/1/")

    @pytest.mark.parametrize("value", ["", None])
    def test_missing_url_raises(self, value):
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            identify(value)
        assert exc_info.value.field_name == "source_url"

    def test_missing_field_error_is_value_error(self):
        assert issubclass(MissingRequiredFieldError, ValueError)
