"""LLM provider clients and factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .anthropic import DEFAULT_BASE_URL as ANTHROPIC_DEFAULT_BASE_URL
from .anthropic import AnthropicClient
from .base import (
    ChatResponse,
    HTTPChatLLMClient,
    LLMClient,
    LLMConnectionError,
    LLMError,
    LLMRateLimitError,
    LLMResponseError,
    LLMRetryExhaustedError,
    LLMTimeoutError,
    RetryConfig,
)
from .openai import DEFAULT_BASE_URL as OPENAI_DEFAULT_BASE_URL
from .openai import OpenAIClient

if TYPE_CHECKING:
    from api_test_agent.core.utils.config import Settings

OPENROUTER_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEEPSEEK_DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
OLLAMA_DEFAULT_BASE_URL = "http://localhost:11434/v1"

_OPENAI_COMPATIBLE = {
    "openai": ("OpenAI", OPENAI_DEFAULT_BASE_URL),
    "openrouter": ("OpenRouter", OPENROUTER_DEFAULT_BASE_URL),
    "deepseek": ("DeepSeek", DEEPSEEK_DEFAULT_BASE_URL),
    "ollama": ("Ollama", OLLAMA_DEFAULT_BASE_URL),
}
LOCAL_PROVIDERS = frozenset({"ollama"})


def create_client(settings: Settings) -> HTTPChatLLMClient:
    """Build the configured provider client."""
    provider = (settings.provider or "").lower()
    if provider not in LOCAL_PROVIDERS and not settings.api_key:
        raise LLMError(
            f"No API key configured for provider '{provider}'. "
            "Set APITEST_API_KEY or add api_key to your config file."
        )

    retry_config = RetryConfig(
        max_retries=settings.retry_max_attempts if settings.enable_retry else 1,
        initial_delay=settings.retry_initial_delay,
        max_delay=settings.retry_max_delay,
    )
    if provider in {"anthropic", "claude"}:
        return AnthropicClient(
            settings.api_key or "",
            settings.model,
            base_url=settings.base_url or ANTHROPIC_DEFAULT_BASE_URL,
            timeout=settings.llm_timeout,
            retry_config=retry_config,
            extra_headers=settings.request_headers,
        )
    if provider in _OPENAI_COMPATIBLE:
        name, default_url = _OPENAI_COMPATIBLE[provider]
        return OpenAIClient(
            settings.api_key or "",
            settings.model,
            base_url=settings.base_url or default_url,
            timeout=settings.llm_timeout,
            retry_config=retry_config,
            extra_headers=settings.request_headers,
            provider_name=name,
        )
    raise LLMError(f"Unsupported provider: {settings.provider}")


__all__ = [
    "ANTHROPIC_DEFAULT_BASE_URL",
    "DEEPSEEK_DEFAULT_BASE_URL",
    "OLLAMA_DEFAULT_BASE_URL",
    "OPENAI_DEFAULT_BASE_URL",
    "OPENROUTER_DEFAULT_BASE_URL",
    "AnthropicClient",
    "ChatResponse",
    "LLMClient",
    "LLMConnectionError",
    "LLMError",
    "LLMRateLimitError",
    "LLMResponseError",
    "LLMRetryExhaustedError",
    "LLMTimeoutError",
    "OpenAIClient",
    "RetryConfig",
    "create_client",
]
