"""Tests for test plan generation."""

from __future__ import annotations

import json

import pytest

from api_test_agent.core.errors import ExecutionError
from api_test_agent.providers.llm.base import LLMConnectionError
from api_test_agent.session.transcript import Transcript
from api_test_agent.testing import ScriptedLLMClient, reply
from api_test_agent.tools import ToolContext
from api_test_agent.tools.arguments import TestPlanArgs
from api_test_agent.tools.planning import (
    extract_json_from_markdown,
    generate_test_plan,
    parse_test_plan,
)

PLAN = {
    "tests": [
        {"method": "GET", "endpoint": "/users", "requires_auth": True, "description": "List"},
        {"method": "post", "endpoint": "/users", "body": {"name": "a"}, "expected_status": 201},
        {"endpoint": "/broken"},
    ]
}


def test_extract_json_from_fenced_block() -> None:
    assert extract_json_from_markdown('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert extract_json_from_markdown('  {"a": 1} ') == '{"a": 1}'


def test_parse_test_plan_accepts_object_or_list() -> None:
    from_object = parse_test_plan(json.dumps(PLAN))
    from_list = parse_test_plan(json.dumps(PLAN["tests"]))

    assert [case.method for case in from_object] == ["GET", "POST"]
    assert from_object == from_list
    assert from_object[1].expected_status == 201


def test_parse_test_plan_caps_case_count() -> None:
    items = [{"method": "GET", "endpoint": f"/r/{index}"} for index in range(15)]

    assert len(parse_test_plan(json.dumps(items), max_cases=10)) == 10


def test_parse_test_plan_rejects_invalid_json() -> None:
    with pytest.raises(ValueError):
        parse_test_plan("not json")


def test_generate_test_plan_stores_last_plan(settings) -> None:
    client = ScriptedLLMClient([reply("```json\n" + json.dumps(PLAN) + "\n```")])
    transcript = Transcript()
    context = ToolContext(settings=settings, llm_client=client, emit=transcript.add)

    response = generate_test_plan(TestPlanArgs(what="users API", focus="all aspects"), context)

    assert response["status"] == "tests_generated"
    assert response["test_count"] == 2
    assert context.state.last_plan == response["test_cases"]
    assert client.calls[0].stream is False
    assert client.calls[0].tools == []
    assert "Focus: all aspects" in client.calls[0].history[0].content
    assert "✓ Generated 2 test case(s)" in transcript.texts("success")
    assert "  GET /users • Auth" in transcript.texts("subtle")


def test_generate_test_plan_empty_result_warns(settings) -> None:
    transcript = Transcript()
    context = ToolContext(
        settings=settings,
        llm_client=ScriptedLLMClient([reply('{"tests": []}')]),
        emit=transcript.add,
    )

    response = generate_test_plan(TestPlanArgs(what="nothing"), context)

    assert response["test_count"] == 0
    assert transcript.texts("warning")


def test_generate_test_plan_wraps_provider_errors(settings) -> None:
    context = ToolContext(
        settings=settings, llm_client=ScriptedLLMClient([LLMConnectionError("down")])
    )

    with pytest.raises(ExecutionError, match="failed to generate test plan: down"):
        generate_test_plan(TestPlanArgs(what="users"), context)


def test_generate_test_plan_unparseable_reply(settings) -> None:
    context = ToolContext(settings=settings, llm_client=ScriptedLLMClient([reply("Sure!")]))

    with pytest.raises(ExecutionError, match="failed to parse test plan"):
        generate_test_plan(TestPlanArgs(what="users"), context)
