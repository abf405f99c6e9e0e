"""Text generator used by every stage: system prompt + user message in, text out.

One client is constructed per process and shared by every concurrent stage
call.  It keeps no per-call state, so concurrent ``generate`` calls are safe.
"""
from __future__ import annotations

import logging
from typing import Any

from dealscout.config import Settings, get_settings
from dealscout.errors import LLMCallError, LLMUnavailableError

log = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o-mini",
    "openai_compatible": "gpt-4o-mini",
}


class LLMClient:
    """Unified async LLM client supporting Anthropic and OpenAI."""

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        settings: Settings | None = None,
    ):
        s = settings or get_settings()
        self.provider = provider or s.llm_provider
        if self.provider not in DEFAULT_MODELS:
            raise ValueError(f"Unknown LLM provider: {self.provider!r}")
        self.model = model or s.llm_model or DEFAULT_MODELS[self.provider]
        self._max_retries = s.llm_max_retries
        self._client: Any = None
        self._missing_key = ""
        self._init_client(api_key, base_url, s)

    def _init_client(self, api_key: str | None, base_url: str | None, s: Settings) -> None:
        if self.provider == "anthropic":
            import anthropic
            key = api_key or s.anthropic_api_key
            if not key:
                self._missing_key = (
                    "ANTHROPIC_API_KEY is required to call Claude. "
                    "Update your environment configuration."
                )
                return
            self._client = anthropic.AsyncAnthropic(api_key=key, max_retries=self._max_retries)
        else:
            import openai
            key = api_key or s.openai_api_key
            if not key and self.provider == "openai":
                self._missing_key = "OPENAI_API_KEY is required for the openai provider."
                return
            kwargs: dict[str, Any] = {"max_retries": self._max_retries, "api_key": key or "unused"}
            url = base_url or s.openai_base_url
            if url:
                kwargs["base_url"] = url
            self._client = openai.AsyncOpenAI(**kwargs)
        log.info("Initialized %s client (model=%s)", self.provider, self.model)

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def generate(self, system: str, user: str, max_tokens: int = 4000) -> str:
        """Send system+user message to the LLM, return the response text.

        Raises ``LLMUnavailableError`` when the provider could not be reached
        or rejected our credentials, ``LLMCallError`` for any other failure.
        """
        if self._client is None:
            raise LLMUnavailableError(self._missing_key or "LLM client is not configured")
        try:
            if self.provider == "anthropic":
                text = await self._generate_anthropic(system, user, max_tokens)
            else:
                text = await self._generate_openai(system, user, max_tokens)
        except LLMCallError:
            raise
        except Exception as exc:
            raise _classify_error(exc) from exc

        if not text.strip():
            raise LLMCallError("LLM returned an empty response", retryable=True)
        return text

    async def _generate_anthropic(self, system: str, user: str, max_tokens: int) -> str:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        content = response.content[0] if response.content else None
        if content is None or getattr(content, "type", "") != "text":
            log.warning("Unexpected content payload from %s: %r", self.model, content)
            return ""
        return content.text

    async def _generate_openai(self, system: str, user: str, max_tokens: int) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )
        return response.choices[0].message.content or ""


def _classify_error(exc: Exception) -> LLMCallError:
    """Map provider SDK exceptions onto the generator error taxonomy."""
    import anthropic
    import openai

    # APITimeoutError subclasses APIConnectionError in both SDKs.
    if isinstance(exc, (anthropic.AuthenticationError, openai.AuthenticationError)):
        return LLMUnavailableError(f"LLM provider rejected credentials: {exc}", retryable=False)
    if isinstance(exc, (
        anthropic.APIConnectionError, openai.APIConnectionError,
        anthropic.PermissionDeniedError, openai.PermissionDeniedError,
    )):
        return LLMUnavailableError(f"LLM provider unreachable: {exc}", retryable=True)
    if isinstance(exc, (anthropic.RateLimitError, openai.RateLimitError)):
        return LLMCallError(f"LLM rate limited: {exc}", retryable=True)
    return LLMCallError(f"LLM API call failed: {exc}", retryable=True)
