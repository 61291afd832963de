"""Tests for session data structures."""

from __future__ import annotations

import pytest

from api_test_agent.session.models import (
    DEFAULT_TITLE,
    Session,
    SessionState,
    ToolCall,
    ToolResponse,
    Turn,
    derive_title,
)
from api_test_agent.session.history import History


def test_turn_rejects_unknown_role() -> None:
    with pytest.raises(ValueError, match="Unknown turn role"):
        Turn(role="system", content="hi")


def test_tool_turn_requires_response() -> None:
    with pytest.raises(ValueError):
        Turn(role="tool", content="Tool: x")


def test_only_assistant_turns_carry_tool_calls() -> None:
    with pytest.raises(ValueError):
        Turn(role="user", content="hi", tool_calls=(ToolCall("1", "ExecuteTest"),))


def test_visible_content_prefers_display_content() -> None:
    turn = Turn.user("expanded file contents", display_content="@spec.yaml")

    assert turn.visible_content == "@spec.yaml"
    assert Turn.user("plain").visible_content == "plain"


def test_tool_turn_content_names_the_tool() -> None:
    turn = Turn.tool(ToolResponse("c1", "ExecuteTest", {"passed": True}))

    assert turn.content == "Tool: ExecuteTest"


def test_metadata_round_trip() -> None:
    """Turns stored as role/content/metadata come back unchanged."""
    call = ToolCall("c1", "ExecuteTest", {"method": "GET", "endpoint": "/users"})
    original = Turn.assistant(
        "Running it",
        reasoning="need data",
        tool_calls=[call],
        input_tokens=10,
        output_tokens=4,
    )

    restored = Turn.from_record(original.role, original.content, original.metadata())

    assert restored == original


def test_metadata_omits_empty_fields() -> None:
    assert Turn.user("hi").metadata() == {}


def test_tool_response_from_dict_wraps_non_mapping() -> None:
    response = ToolResponse.from_dict({"id": "x", "name": "T", "response": "done"})

    assert response.response == {"result": "done"}


def test_tool_call_from_dict_tolerates_bad_arguments() -> None:
    call = ToolCall.from_dict({"id": 5, "name": "ExecuteTest", "arguments": "oops"})

    assert call.id == "5"
    assert call.arguments == {}


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("  test   the users\nendpoint ", "test the users endpoint"),
        ("   ", DEFAULT_TITLE),
        ("x" * 150, "x" * 97 + "..."),
    ],
)
def test_derive_title(text: str, expected: str) -> None:
    assert derive_title(text) == expected


def test_session_is_durable_only_with_project_and_id() -> None:
    session = Session(history=History())
    assert session.state is SessionState.IDLE
    assert session.durable is False

    session.ephemeral = False
    session.project_id = "shop"
    assert session.durable is False

    session.conversation_id = "abc"
    assert session.durable is True
