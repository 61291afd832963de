"""Anthropic Messages API client implementation."""

from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING, Any

from api_test_agent.core.utils.logger import get_logger
from api_test_agent.session.models import ROLE_ASSISTANT, ROLE_TOOL, ToolCall

from .base import ChatResponse, HTTPChatLLMClient, LLMResponseError, RetryConfig, TextCallback

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from api_test_agent.session.models import Turn

LOGGER = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MAX_TOKENS = 4_096
ANTHROPIC_VERSION = "2023-06-01"


def convert_history(history: Iterable[Turn]) -> list[dict[str, Any]]:
    """Translate turns into Messages API content blocks.

    Consecutive tool turns are folded into a single user message, since the
    API expects every ``tool_result`` of a batch in the message that follows
    the ``tool_use`` blocks.
    """
    messages: list[dict[str, Any]] = []
    for turn in history:
        if turn.role == ROLE_TOOL:
            assert turn.tool_response is not None
            block = {
                "type": "tool_result",
                "tool_use_id": turn.tool_response.id,
                "content": json.dumps(turn.tool_response.response, ensure_ascii=False),
            }
            previous = messages[-1] if messages else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(item.get("type") == "tool_result" for item in previous["content"])
            ):
                previous["content"].append(block)
            else:
                messages.append({"role": "user", "content": [block]})
        elif turn.role == ROLE_ASSISTANT:
            blocks: list[dict[str, Any]] = []
            if turn.content:
                blocks.append({"type": "text", "text": turn.content})
            for call in turn.tool_calls:
                blocks.append(
                    {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
                )
            messages.append({"role": "assistant", "content": blocks or turn.content or ""})
        else:
            messages.append({"role": "user", "content": turn.content})
    return messages


class AnthropicClient(HTTPChatLLMClient):
    """Messages API client for Anthropic with tool-call support."""

    _COMPLETIONS_PATH = "/v1/messages"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float | None = None,
        retry_config: RetryConfig | None = None,
        extra_headers: Mapping[str, str] | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        super().__init__(
            "Anthropic",
            api_key,
            model,
            base_url=base_url,
            timeout=timeout,
            retry_config=retry_config,
            extra_headers=extra_headers,
        )
        self.max_tokens = max_tokens

    def _build_headers(self, extra_headers: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        headers.update(self.extra_headers)
        if extra_headers:
            headers.update(extra_headers)
        return headers

    def _request_url(self) -> str:
        # Avoid double /v1 prefix if base_url already contains it
        if self.base_url.endswith("/v1"):
            return f"{self.base_url}/messages"
        return super()._request_url()

    def _convert_tools(self, tools: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return [
            {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "input_schema": tool.get("parameters") or {"type": "object", "properties": {}},
            }
            for tool in tools
        ]

    def chat(
        self,
        system_prompt: str,
        tools: Sequence[Mapping[str, Any]],
        history: Sequence[Turn],
        *,
        stream: bool = False,
        on_text: TextCallback | None = None,
        on_reasoning: TextCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ChatResponse:
        # Streaming is delivered as whole blocks once the reply is complete.
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": convert_history(history),
            "max_tokens": self.max_tokens,
        }
        if system_prompt:
            payload["system"] = system_prompt
        if tools:
            payload["tools"] = self._convert_tools(tools)

        data = self._post(payload, cancel=cancel)
        response = self._parse_response(data)
        if stream or on_text or on_reasoning:
            if on_reasoning and response.reasoning:
                on_reasoning(response.reasoning)
            if on_text and response.message:
                on_text(response.message)
        return response

    def _parse_response(self, data: Mapping[str, Any]) -> ChatResponse:
        content_blocks = data.get("content")
        if not isinstance(content_blocks, list):
            raise LLMResponseError(f"Unexpected {self._provider_name} response structure: {data}")

        text_parts: list[str] = []
        reasoning_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in content_blocks:
            kind = block.get("type")
            if kind == "text":
                text_parts.append(block.get("text") or "")
            elif kind == "thinking":
                reasoning_parts.append(block.get("thinking") or "")
            elif kind == "tool_use":
                arguments = block.get("input")
                tool_calls.append(
                    ToolCall(
                        id=str(block.get("id") or f"toolu_{len(tool_calls)}"),
                        name=str(block.get("name") or ""),
                        arguments=arguments if isinstance(arguments, dict) else {},
                    )
                )

        usage = data.get("usage") or {}
        return ChatResponse(
            message="\n".join(part for part in text_parts if part).strip(),
            reasoning="\n".join(part for part in reasoning_parts if part).strip(),
            tool_calls=tool_calls,
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
        )


__all__ = ["ANTHROPIC_VERSION", "AnthropicClient", "DEFAULT_BASE_URL", "convert_history"]
