"""OpenAI-compatible chat-completions client with streaming tool calls."""

from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING, Any

from api_test_agent.core.utils.logger import get_logger
from api_test_agent.session.models import ROLE_ASSISTANT, ROLE_TOOL, ToolCall

from .base import (
    ChatResponse,
    HTTPChatLLMClient,
    LLMResponseError,
    RetryConfig,
    TextCallback,
    parse_arguments,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from api_test_agent.session.models import Turn

LOGGER = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


def convert_history(system_prompt: str, history: Iterable[Turn]) -> list[dict[str, Any]]:
    """Translate turns into chat-completions messages."""
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    for turn in history:
        if turn.role == ROLE_TOOL:
            assert turn.tool_response is not None
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": turn.tool_response.id,
                    "content": json.dumps(turn.tool_response.response, ensure_ascii=False),
                }
            )
        elif turn.role == ROLE_ASSISTANT:
            message: dict[str, Any] = {"role": "assistant", "content": turn.content or None}
            if turn.tool_calls:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments, ensure_ascii=False),
                        },
                    }
                    for call in turn.tool_calls
                ]
            messages.append(message)
        else:
            messages.append({"role": "user", "content": turn.content})
    return messages


def convert_tools(tools: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("parameters") or {"type": "object", "properties": {}},
            },
        }
        for tool in tools
    ]


class _ToolCallAccumulator:
    """Reassemble tool calls whose fields arrive split across stream deltas."""

    def __init__(self) -> None:
        self._slots: dict[int, dict[str, str]] = {}

    def feed(self, deltas: Iterable[Mapping[str, Any]]) -> None:
        for delta in deltas:
            index = int(delta.get("index", len(self._slots)))
            slot = self._slots.setdefault(index, {"id": "", "name": "", "arguments": ""})
            if delta.get("id"):
                slot["id"] = delta["id"]
            function = delta.get("function") or {}
            if function.get("name"):
                slot["name"] += function["name"]
            arguments = function.get("arguments")
            if isinstance(arguments, str):
                slot["arguments"] += arguments
            elif isinstance(arguments, dict):
                slot["arguments"] = json.dumps(arguments)

    def calls(self) -> list[ToolCall]:
        return [
            ToolCall(
                id=slot["id"] or f"call_{index}",
                name=slot["name"],
                arguments=parse_arguments(slot["arguments"]),
            )
            for index, slot in sorted(self._slots.items())
        ]


class OpenAIClient(HTTPChatLLMClient):
    """Chat-completions client for OpenAI and compatible endpoints."""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float | None = None,
        retry_config: RetryConfig | None = None,
        extra_headers: Mapping[str, str] | None = None,
        provider_name: str = "OpenAI",
    ) -> None:
        super().__init__(
            provider_name,
            api_key,
            model,
            base_url=base_url,
            timeout=timeout,
            retry_config=retry_config,
            extra_headers=extra_headers,
        )

    def _prepare_payload(
        self,
        system_prompt: str,
        tools: Sequence[Mapping[str, Any]],
        history: Sequence[Turn],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": convert_history(system_prompt, history),
        }
        if tools:
            payload["tools"] = convert_tools(tools)
            payload["tool_choice"] = "auto"
        return payload

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
        payload = self._prepare_payload(system_prompt, tools, history)
        if stream:
            return self._chat_streaming(payload, on_text, on_reasoning, cancel)

        data = self._post(payload, cancel=cancel)
        message = self._extract_choice_message(data)
        usage = data.get("usage") or {}
        response = ChatResponse(
            message=str(message.get("content") or ""),
            reasoning=str(message.get("reasoning_content") or message.get("reasoning") or ""),
            tool_calls=self._parse_tool_calls(message.get("tool_calls") or []),
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )
        if on_reasoning and response.reasoning:
            on_reasoning(response.reasoning)
        if on_text and response.message:
            on_text(response.message)
        return response

    def _chat_streaming(
        self,
        payload: dict[str, Any],
        on_text: TextCallback | None,
        on_reasoning: TextCallback | None,
        cancel: threading.Event | None,
    ) -> ChatResponse:
        payload = {**payload, "stream": True, "stream_options": {"include_usage": True}}
        text_parts: list[str] = []
        reasoning_parts: list[str] = []
        accumulator = _ToolCallAccumulator()
        response = ChatResponse()

        for chunk in self._stream_events(payload, cancel=cancel):
            usage = chunk.get("usage")
            if usage:
                response.input_tokens = int(usage.get("prompt_tokens") or 0)
                response.output_tokens = int(usage.get("completion_tokens") or 0)
            for choice in chunk.get("choices") or ():
                delta = choice.get("delta") or {}
                reasoning = delta.get("reasoning_content") or delta.get("reasoning")
                if reasoning:
                    reasoning_parts.append(str(reasoning))
                    if on_reasoning:
                        on_reasoning(str(reasoning))
                content = delta.get("content")
                if content:
                    text_parts.append(str(content))
                    if on_text:
                        on_text(str(content))
                if delta.get("tool_calls"):
                    accumulator.feed(delta["tool_calls"])

        response.message = "".join(text_parts)
        response.reasoning = "".join(reasoning_parts)
        response.tool_calls = accumulator.calls()
        return response

    def _extract_choice_message(self, data: Mapping[str, Any]) -> dict[str, Any]:
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError(
                f"Unexpected {self._provider_name} response structure: {data}"
            ) from exc
        if not isinstance(message, dict):
            raise LLMResponseError(f"Unexpected {self._provider_name} message: {message!r}")
        return message

    def _parse_tool_calls(self, raw_calls: Iterable[Mapping[str, Any]]) -> list[ToolCall]:
        calls: list[ToolCall] = []
        for index, raw in enumerate(raw_calls):
            function = raw.get("function") or {}
            calls.append(
                ToolCall(
                    id=str(raw.get("id") or f"call_{index}"),
                    name=str(function.get("name") or ""),
                    arguments=parse_arguments(function.get("arguments")),
                )
            )
        return calls


__all__ = ["DEFAULT_BASE_URL", "OpenAIClient", "convert_history", "convert_tools"]
