"""External service provider integrations."""

from __future__ import annotations

from .llm import ChatResponse, LLMClient, LLMError, create_client

__all__ = ["ChatResponse", "LLMClient", "LLMError", "create_client"]
