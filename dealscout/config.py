"""Environment-derived settings for Deal Scout."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env(name) or default)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env(name) or default)
    except ValueError:
        return default


class Settings(BaseModel):
    llm_provider: str = Field(default_factory=lambda: _env("LLM_PROVIDER", "anthropic"))
    llm_model: str = Field(default_factory=lambda: _env("LLM_MODEL"))
    anthropic_api_key: str = Field(default_factory=lambda: _env("ANTHROPIC_API_KEY"))
    openai_api_key: str = Field(default_factory=lambda: _env("OPENAI_API_KEY"))
    openai_base_url: str = Field(default_factory=lambda: _env("OPENAI_BASE_URL"))
    llm_max_retries: int = 3

    perplexity_api_key: str = Field(default_factory=lambda: _env("PERPLEXITY_API_KEY"))
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar-pro"
    firecrawl_api_key: str = Field(default_factory=lambda: _env("FIRECRAWL_API_KEY"))
    firecrawl_base_url: str = "https://api.firecrawl.dev/v1"
    max_scrape_urls: int = 5
    request_timeout_seconds: float = 30.0
    user_agent: str = "DealScoutBot/1.0 (+https://dealscout.local)"

    pipeline_variant: str = Field(default_factory=lambda: _env("SCOUT_PIPELINE_VARIANT", "full"))
    max_concurrency: int = Field(default_factory=lambda: _env_int("SCOUT_MAX_CONCURRENCY", 16))
    run_timeout_seconds: float = Field(default_factory=lambda: _env_float("SCOUT_RUN_TIMEOUT", 300.0))
    environment: str = Field(default_factory=lambda: _env("SCOUT_ENV", "development"))
    data_source: str = Field(
        default_factory=lambda: _env("SCOUT_DATA_SOURCE", "Real-time (Perplexity + Firecrawl)")
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
