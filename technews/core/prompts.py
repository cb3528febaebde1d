"""Prompt Registry for LLM calls.

Central place for the prompt templates the enrichment pipeline sends.
Templates use str.format placeholders, so literal braces are doubled.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PromptTemplate:
    """A prompt template with metadata."""

    key: str
    name: str
    description: str
    template: str
    variables: list[str]
    temperature: float
    max_tokens: int

    def render(self, **values: str) -> str:
        """Fill the template.

        Raises:
            KeyError: If a declared variable is missing.
        """
        missing = [v for v in self.variables if v not in values]
        if missing:
            raise KeyError(f"Missing prompt variables for '{self.key}': {missing}")
        return self.template.format(**values)


DEFAULT_PROMPTS: dict[str, dict] = {
    "article_enrichment": {
        "name": "Article enrichment",
        "description": "Summarizes a news article and suggests tags, media and context. "
        "Called once per article that is not already cached.",
        "template": """You are an AI enrichment service for a news platform.
Given the short text of a news article, infer its meaning and produce structured enrichment data in valid JSON.

ARTICLE INPUT:
{text_context}

REQUIRED OUTPUT (JSON only):
{{
    "summary": "1-2 factual sentences summarizing the story.",
    "tags": ["#RelevantTag1", "#RelevantTag2", "#RelevantTag3"],
    "relevance_score": number (0.0-1.0, estimate relevance to African audience),
    "media_suggestions": {{
        "image_keywords": "describe what image to search for on Unsplash",
        "video_keywords": "describe what video to search for on YouTube",
        "media_justification": "Explain why these visuals fit the story."
    }},
    "context": {{
        "wikipedia_snippet": "2-sentence factual note about the main topic.",
        "social_sentiment": "Example: '74% positive mentions on X in last 24h.'",
        "search_trend": "Example: 'topic +150% this week.'",
        "geo": {{
            "country": "Country name if identifiable",
            "lat": number or null,
            "lng": number or null,
            "map_url": "https://www.google.com/maps?q=lat,lng"
        }}
    }}
}}

Rules:
- Output valid JSON only.
- No markdown, no prose.
- If unsure, make a best guess.""",
        "variables": ["text_context"],
        "temperature": 0.4,
        "max_tokens": 1200,
    },
}


def get_prompt(key: str) -> PromptTemplate | None:
    """Get a prompt template by key, or None if the key doesn't exist."""
    data = DEFAULT_PROMPTS.get(key)
    if data is None:
        return None
    return PromptTemplate(
        key=key,
        name=data["name"],
        description=data["description"],
        template=data["template"],
        variables=list(data["variables"]),
        temperature=data["temperature"],
        max_tokens=data["max_tokens"],
    )


def render_prompt(key: str, **values: str) -> str:
    """Render a registered prompt.

    Raises:
        KeyError: If the key is unknown or a variable is missing.
    """
    prompt = get_prompt(key)
    if prompt is None:
        raise KeyError(f"Unknown prompt: {key}")
    return prompt.render(**values)
