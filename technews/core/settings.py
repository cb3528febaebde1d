from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    app_env: str
    log_level: str
    llm_provider: str
    llm_model: str
    llm_timeout_seconds: float
    gemini_api_key: str
    openai_api_key: str
    unsplash_access_key: str
    youtube_api_key: str
    media_timeout_seconds: float
    news_api_key: str
    news_category: str
    news_page_size: int
    cache_backend: str
    redis_url: str
    cache_db_path: str
    cache_ttl_seconds: int
    cache_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        def _s(name: str, default: str = "") -> str:
            return os.getenv(name, default).strip()

        def _i(name: str, default: str) -> int:
            try:
                return int(_s(name, default))
            except ValueError:
                return int(default)

        def _f(name: str, default: str) -> float:
            try:
                return float(_s(name, default))
            except ValueError:
                return float(default)

        redis_url = _s("REDIS_DATABASE") or _s("REDIS_URL")

        return Settings(
            app_env=_s("APP_ENV", "dev"),
            log_level=_s("LOG_LEVEL", "INFO").upper(),
            llm_provider=_s("LLM_PROVIDER", "gemini").lower(),
            llm_model=_s("LLM_MODEL"),
            llm_timeout_seconds=_f("LLM_TIMEOUT_SECONDS", "60"),
            gemini_api_key=_s("GEMINI_API_KEY"),
            openai_api_key=_s("OPENAI_API_KEY"),
            unsplash_access_key=_s("UNSPLASH_ACCESS_KEY"),
            youtube_api_key=_s("YOUTUBE_API_KEY"),
            media_timeout_seconds=_f("MEDIA_TIMEOUT_SECONDS", "10"),
            news_api_key=_s("NEWS_API_KEY"),
            news_category=_s("NEWS_CATEGORY", "technology"),
            news_page_size=_i("NEWS_PAGE_SIZE", "5"),
            cache_backend=_s("CACHE_BACKEND", "redis" if redis_url else "memory").lower(),
            redis_url=redis_url,
            cache_db_path=_s("CACHE_DB_PATH", "/app/_local/data/enrichment_cache.db"),
            cache_ttl_seconds=_i("CACHE_TTL_SECONDS", "1800"),
            cache_timeout_seconds=_f("CACHE_TIMEOUT_SECONDS", "2"),
        )
