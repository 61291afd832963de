"""Tests for the OpenAI-compatible and Anthropic clients."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import requests

from api_test_agent.core.utils.config import Settings
from api_test_agent.providers.llm import (
    AnthropicClient,
    LLMError,
    LLMResponseError,
    LLMRetryExhaustedError,
    OpenAIClient,
    RetryConfig,
    create_client,
)
from api_test_agent.providers.llm import anthropic as anthropic_module
from api_test_agent.providers.llm import base as base_module
from api_test_agent.providers.llm import openai as openai_module
from api_test_agent.session.models import ToolCall, ToolResponse, Turn

NO_DELAY = RetryConfig(max_retries=3, initial_delay=0.0, jitter_ratio=0.0)


def _response(status: int = 200, payload=None, lines=()) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.text = json.dumps(payload) if payload is not None else ""
    response.json.return_value = payload
    response.iter_lines.return_value = iter(lines)
    return response


@pytest.fixture
def post(monkeypatch):
    mock = MagicMock()
    monkeypatch.setattr(base_module.requests, "post", mock)
    return mock


HISTORY = [
    Turn.user("test users"),
    Turn.assistant(
        "checking",
        tool_calls=[
            ToolCall("a", "ExecuteTest", {"method": "GET", "endpoint": "/users"}),
            ToolCall("b", "ExecuteTest", {"method": "GET", "endpoint": "/users/1"}),
        ],
    ),
    Turn.tool(ToolResponse("a", "ExecuteTest", {"passed": True})),
    Turn.tool(ToolResponse("b", "ExecuteTest", {"passed": False})),
]


def test_openai_convert_history() -> None:
    messages = openai_module.convert_history("sys", HISTORY)

    assert messages[0] == {"role": "system", "content": "sys"}
    assert messages[2]["tool_calls"][1]["function"] == {
        "name": "ExecuteTest",
        "arguments": json.dumps({"method": "GET", "endpoint": "/users/1"}),
    }
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool", "tool"]
    assert messages[3]["tool_call_id"] == "a"
    assert json.loads(messages[4]["content"]) == {"passed": False}


def test_anthropic_convert_history_folds_tool_results() -> None:
    messages = anthropic_module.convert_history(HISTORY)

    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[1]["content"][0] == {"type": "text", "text": "checking"}
    assert messages[1]["content"][1]["type"] == "tool_use"
    assert [block["tool_use_id"] for block in messages[2]["content"]] == ["a", "b"]


def test_openai_non_streaming_chat(post) -> None:
    post.return_value = _response(
        payload={
            "choices": [
                {
                    "message": {
                        "content": "Running",
                        "tool_calls": [
                            {
                                "id": "call_1",
                                "function": {
                                    "name": "ExecuteTest",
                                    "arguments": '{"method": "GET", "endpoint": "/users"}',
                                },
                            }
                        ],
                    }
                }
            ],
            "usage": {"prompt_tokens": 12, "completion_tokens": 3},
        }
    )
    client = OpenAIClient("key", "gpt-test", base_url="http://llm.test/v1", retry_config=NO_DELAY)

    response = client.chat("sys", [{"name": "ExecuteTest", "parameters": {}}], [Turn.user("hi")])

    assert response.message == "Running"
    assert response.tool_calls == [
        ToolCall("call_1", "ExecuteTest", {"method": "GET", "endpoint": "/users"})
    ]
    assert (response.input_tokens, response.output_tokens) == (12, 3)
    assert post.call_args.args[0] == "http://llm.test/v1/chat/completions"
    payload = post.call_args.kwargs["json"]
    assert payload["tool_choice"] == "auto"
    assert payload["tools"][0]["function"]["name"] == "ExecuteTest"
    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer key"
    assert post.call_args.kwargs["timeout"] is None


def test_openai_streaming_reassembles_tool_calls(post) -> None:
    chunks = [
        {"choices": [{"delta": {"reasoning_content": "hmm"}}]},
        {"choices": [{"delta": {"content": "Hel"}}]},
        {"choices": [{"delta": {"content": "lo"}}]},
        {
            "choices": [
                {
                    "delta": {
                        "tool_calls": [
                            {"index": 0, "id": "c1", "function": {"name": "Execute", "arguments": ""}}
                        ]
                    }
                }
            ]
        },
        {
            "choices": [
                {
                    "delta": {
                        "tool_calls": [
                            {"index": 0, "function": {"name": "Test", "arguments": '{"method":'}}
                        ]
                    }
                }
            ]
        },
        {
            "choices": [
                {"delta": {"tool_calls": [{"index": 0, "function": {"arguments": ' "GET"}'}}]}}
            ]
        },
        {"choices": [], "usage": {"prompt_tokens": 4, "completion_tokens": 2}},
    ]
    lines = [f"data: {json.dumps(chunk)}" for chunk in chunks] + [": keepalive", "data: [DONE]"]
    post.return_value = _response(lines=lines)
    texts: list[str] = []
    reasoning: list[str] = []
    client = OpenAIClient("key", "gpt-test", retry_config=NO_DELAY)

    response = client.chat(
        "sys",
        [],
        [Turn.user("hi")],
        stream=True,
        on_text=texts.append,
        on_reasoning=reasoning.append,
    )

    assert texts == ["Hel", "lo"]
    assert reasoning == ["hmm"]
    assert response.message == "Hello"
    assert response.tool_calls == [ToolCall("c1", "ExecuteTest", {"method": "GET"})]
    assert response.input_tokens == 4
    assert post.call_args.kwargs["json"]["stream"] is True
    assert post.call_args.kwargs["stream"] is True


def test_retry_on_server_error_then_success(post) -> None:
    post.side_effect = [
        _response(503, payload={"error": "busy"}),
        _response(payload={"choices": [{"message": {"content": "ok"}}]}),
    ]
    client = OpenAIClient("key", "m", retry_config=NO_DELAY)

    assert client.chat("", [], [Turn.user("hi")]).message == "ok"
    assert post.call_count == 2


def test_client_error_is_not_retried(post) -> None:
    post.return_value = _response(401, payload={"error": "bad key"})
    client = OpenAIClient("key", "m", retry_config=NO_DELAY)

    with pytest.raises(LLMResponseError, match="HTTP 401"):
        client.chat("", [], [Turn.user("hi")])
    assert post.call_count == 1


def test_connection_errors_exhaust_retries(post) -> None:
    post.side_effect = requests.ConnectionError("refused")
    client = OpenAIClient("key", "m", retry_config=NO_DELAY)

    with pytest.raises(LLMRetryExhaustedError, match="after 3 attempt"):
        client.chat("", [], [Turn.user("hi")])
    assert post.call_count == 3


def test_anthropic_parses_blocks(post) -> None:
    post.return_value = _response(
        payload={
            "content": [
                {"type": "thinking", "thinking": "consider"},
                {"type": "text", "text": "Let me check"},
                {"type": "tool_use", "id": "toolu_1", "name": "ExecuteTest", "input": {"a": 1}},
            ],
            "usage": {"input_tokens": 7, "output_tokens": 2},
        }
    )
    texts: list[str] = []
    client = AnthropicClient("key", "claude-test", retry_config=NO_DELAY)

    response = client.chat(
        "sys", [{"name": "ExecuteTest", "parameters": {}}], [Turn.user("hi")], on_text=texts.append
    )

    assert response.reasoning == "consider"
    assert response.message == "Let me check"
    assert response.tool_calls == [ToolCall("toolu_1", "ExecuteTest", {"a": 1})]
    assert texts == ["Let me check"]
    assert post.call_args.args[0] == "https://api.anthropic.com/v1/messages"
    headers = post.call_args.kwargs["headers"]
    assert headers["x-api-key"] == "key"
    payload = post.call_args.kwargs["json"]
    assert payload["system"] == "sys"
    assert payload["tools"][0]["input_schema"] == {"type": "object", "properties": {}}


def test_create_client_requires_api_key() -> None:
    with pytest.raises(LLMError, match="No API key"):
        create_client(Settings(provider="openai"))


def test_create_client_selects_provider() -> None:
    anthropic = create_client(Settings(provider="anthropic", api_key="k", llm_timeout=9.0))
    openrouter = create_client(Settings(provider="openrouter", api_key="k"))
    local = create_client(Settings(provider="ollama"))

    assert isinstance(anthropic, AnthropicClient)
    assert anthropic.timeout == 9.0
    assert isinstance(openrouter, OpenAIClient)
    assert openrouter.base_url == "https://openrouter.ai/api/v1"
    assert local.base_url == "http://localhost:11434/v1"


def test_create_client_rejects_unknown_provider() -> None:
    with pytest.raises(LLMError, match="Unsupported provider"):
        create_client(Settings(provider="mystery", api_key="k"))


def test_disabled_retry_makes_single_attempt() -> None:
    client = create_client(Settings(api_key="k", enable_retry=False))

    assert client.retry_config.max_retries == 1
