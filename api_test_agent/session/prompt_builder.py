"""Helpers for constructing the agent's system prompt."""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING

from api_test_agent.core.storage.endpoints import summarize_endpoints
from api_test_agent.tool_names import (
    EXECUTE_TEST,
    EXECUTE_TEST_GROUP,
    EXPORT_TESTS,
    GENERATE_REPORT,
    GENERATE_TEST_PLAN,
    GET_ENDPOINTS_DETAILS,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from api_test_agent.core.storage.endpoints import Endpoint

MAX_LISTED_ENDPOINTS = 200

_BASE_PROMPT = f"""# Role
You are an API testing assistant. You help the user explore and test an HTTP API
by calling tools. Be concise; prefer acting through tools over describing what
you would do.

# Workflow
1. Use {GET_ENDPOINTS_DETAILS} to read the details of endpoints you intend to test.
2. For broader requests, call {GENERATE_TEST_PLAN} and then {EXECUTE_TEST_GROUP}
   with the generated test cases. The user chooses which tests actually run.
3. For a single quick check, call {EXECUTE_TEST}.
4. Summarise results in plain language: what passed, what failed and why.
5. When asked, call {GENERATE_REPORT} with a Markdown report or {EXPORT_TESTS}
   to write Postman, pytest or curl files.

# Rules
- Call at most one tool per reply.
- Never invent endpoints; use only the ones listed below or given by the user.
- Set requires_auth only for endpoints that need credentials.
- If the user denies a tool call, do not retry it unchanged; ask what they want instead."""


def build_system_prompt(
    base_url: str | None,
    endpoints: Sequence[Endpoint] = (),
    *,
    auth_description: str | None = None,
    now: datetime | None = None,
) -> str:
    """Compose the system prompt for one session."""
    sections = [_BASE_PROMPT]

    context_lines = [f"Current date: {(now or datetime.now()):%Y-%m-%d}"]
    if base_url:
        context_lines.append(f"API base URL: {base_url}")
    if auth_description:
        context_lines.append(f"Authentication: {auth_description}")
    sections.append("# Context\n" + "\n".join(context_lines))

    if endpoints:
        listed = [
            json.dumps(item, ensure_ascii=False)
            for item in summarize_endpoints(endpoints[:MAX_LISTED_ENDPOINTS])
        ]
        header = f"# Available endpoints ({len(endpoints)})"
        if len(endpoints) > MAX_LISTED_ENDPOINTS:
            header += f", first {MAX_LISTED_ENDPOINTS} shown"
        sections.append(header + "\n" + "\n".join(listed))
    else:
        sections.append(
            "# Available endpoints\nNo endpoint catalogue is loaded; ask the user which "
            "endpoints to test."
        )

    return "\n\n".join(sections)


__all__ = ["build_system_prompt"]
