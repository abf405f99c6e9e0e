from __future__ import annotations

import pytest

from dealscout.config import get_settings
from dealscout.tests.fakes import FakeGenerator, stage_replies


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Fresh settings per test, with no provider keys from the real environment."""
    for name in (
        "LLM_PROVIDER", "LLM_MODEL", "ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENAI_BASE_URL",
        "PERPLEXITY_API_KEY", "FIRECRAWL_API_KEY", "SCOUT_PIPELINE_VARIANT",
        "SCOUT_MAX_CONCURRENCY", "SCOUT_RUN_TIMEOUT", "SCOUT_ENV", "SCOUT_DATA_SOURCE",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    from dealscout import services
    services.get_client.cache_clear()


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator(stage_replies())
