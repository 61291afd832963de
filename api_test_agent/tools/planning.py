"""Test plan generation tool."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any, Mapping

from api_test_agent.core.errors import ExecutionError
from api_test_agent.core.utils.logger import get_logger
from api_test_agent.providers.llm.base import LLMError
from api_test_agent.session.models import Turn
from api_test_agent.tools.arguments import decode_test_cases

if TYPE_CHECKING:
    from api_test_agent.tools.arguments import TestCase, TestPlanArgs
    from api_test_agent.tools.registry import ToolContext

LOGGER = get_logger(__name__)

MAX_PLAN_CASES = 10

PLAN_SYSTEM_PROMPT = """# Purpose
Generate API test cases from user request.

# Constraints
- Maximum {max_cases} test cases per request
- Each test must include: method, endpoint, headers (optional), body (optional), requires_auth
- Add expected_status when the test expects a status other than 200
- Always use provided endpoint details for accurate testing

# Available Context
HTTP methods: GET, POST, PUT, DELETE, PATCH
Authentication: Bearer token (JWT), Basic auth, API Key header
Test focus options: "happy path", "authentication", "error handling", "all aspects"

# Output Format
Return a JSON object with tests array. Each test:
{{
  "method": "GET",
  "endpoint": "/users",
  "body": null,
  "requires_auth": true,
  "expected_status": 200,
  "description": "List users"
}}

Return pure JSON only - no markdown, no comments."""

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json_from_markdown(response: str) -> str:
    """Strip a Markdown code fence around a JSON document, if present."""
    match = _FENCE_RE.search(response or "")
    if match:
        return match.group(1).strip()
    return (response or "").strip()


def build_plan_prompt(what: str, focus: str) -> str:
    return f"Generate test cases for: {what}\nFocus: {focus}"


def parse_test_plan(raw: str, *, max_cases: int = MAX_PLAN_CASES) -> list[TestCase]:
    """Decode the planner reply into test cases.

    Accepts either ``{"tests": [...]}`` or a bare list.
    """
    data = json.loads(extract_json_from_markdown(raw))
    if isinstance(data, dict):
        items = data.get("tests") or []
    elif isinstance(data, list):
        items = data
    else:
        raise ValueError(f"expected an object with a tests array, got {type(data).__name__}")
    if not isinstance(items, list):
        raise ValueError("'tests' must be an array")
    return decode_test_cases(items)[:max_cases]


def generate_test_plan(args: TestPlanArgs, context: ToolContext) -> Mapping[str, Any]:
    """
    Ask the LLM for a structured list of test cases.

    Returns:
        {"status": "tests_generated", "test_count": N, "test_cases": [...]}
    """
    if context.llm_client is None:
        raise ExecutionError("no LLM client available for test planning")

    max_cases = getattr(context.settings, "max_plan_cases", MAX_PLAN_CASES)
    context.emit("subtle", f"Planning tests: {args.what} ({args.focus})")
    try:
        response = context.llm_client.chat(
            PLAN_SYSTEM_PROMPT.format(max_cases=max_cases),
            [],
            [Turn.user(build_plan_prompt(args.what, args.focus))],
            stream=False,
            cancel=context.cancel,
        )
    except LLMError as exc:
        raise ExecutionError(f"failed to generate test plan: {exc}") from exc

    try:
        cases = parse_test_plan(response.message, max_cases=max_cases)
    except ValueError as exc:
        LOGGER.error("Failed to parse test plan: %s; raw response: %s", exc, response.message)
        raise ExecutionError(f"failed to parse test plan: {exc}") from exc

    test_cases = [case.to_dict() for case in cases]
    context.state.last_plan = test_cases
    if not test_cases:
        context.emit("warning", "⚠️  No tests generated")
    else:
        context.emit("success", f"✓ Generated {len(test_cases)} test case(s)")
        for case in cases:
            auth = " • Auth" if case.requires_auth else ""
            context.emit("subtle", f"  {case.method} {case.endpoint}{auth}")

    return {"status": "tests_generated", "test_count": len(test_cases), "test_cases": test_cases}


__all__ = [
    "PLAN_SYSTEM_PROMPT",
    "build_plan_prompt",
    "extract_json_from_markdown",
    "generate_test_plan",
    "parse_test_plan",
]
