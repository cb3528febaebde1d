"""Recovery of a JSON object from free-form LLM output.

The model is asked for JSON only but may wrap it in prose or emit
near-JSON. Recovery is a fixed sequence:

1. Take the span from the first '{' to the last '}' in the text.
2. Parse it strictly.
3. On failure, repair once and parse again:
   - every single quote becomes a double quote
   - a comma followed only by whitespace before '}' or ']' is removed

Quote normalization also rewrites apostrophes inside string values, so a
repaired parse can still fail; that is reported as MALFORMED_OUTPUT.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")
_TRAILING_COMMA_OBJECT = re.compile(r",\s*}")
_TRAILING_COMMA_ARRAY = re.compile(r",\s*]")


class ParseFailure(str, Enum):
    """Why no JSON object could be recovered."""

    NO_STRUCTURED_OUTPUT = "no_structured_output"
    MALFORMED_OUTPUT = "malformed_output"


@dataclass
class ParseResult:
    """Result of recovering a JSON object from text."""

    success: bool
    data: dict[str, Any] | None = None
    error: ParseFailure | None = None
    repaired: bool = False


def extract_json_span(text: str) -> str | None:
    """Return the first-'{'-to-last-'}' span of text, or None."""
    match = _OBJECT_SPAN.search(text or "")
    return match.group(0) if match else None


def repair_json_text(text: str) -> str:
    """Apply the quote and trailing-comma rewrites."""
    repaired = text.replace("'", '"')
    repaired = _TRAILING_COMMA_OBJECT.sub("}", repaired)
    repaired = _TRAILING_COMMA_ARRAY.sub("]", repaired)
    return repaired


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def parse_llm_json(text: str) -> ParseResult:
    """Recover a JSON object from an LLM response."""
    span = extract_json_span(text)
    if span is None:
        return ParseResult(success=False, error=ParseFailure.NO_STRUCTURED_OUTPUT)

    data = _loads_object(span)
    if data is not None:
        return ParseResult(success=True, data=data)

    data = _loads_object(repair_json_text(span))
    if data is not None:
        return ParseResult(success=True, data=data, repaired=True)

    return ParseResult(success=False, error=ParseFailure.MALFORMED_OUTPUT)
