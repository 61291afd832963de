"""Tests for rebuilding sessions from the conversation log."""

from __future__ import annotations

import pytest

from api_test_agent import tool_names
from api_test_agent.core.errors import PersistenceError, ProtocolViolationError
from api_test_agent.core.storage.conversation_log import ConversationLog
from api_test_agent.session.controller import INTERRUPTED_RESPONSE
from api_test_agent.session.models import SessionState, ToolCall, ToolResponse, Turn
from api_test_agent.session.replay import replay, tool_summary
from api_test_agent.session.transcript import Transcript
from api_test_agent.testing import reply, tool_call
from api_test_agent.tools import registry

GROUP_TESTS = [{"method": "GET", "endpoint": "/users"}, {"method": "GET", "endpoint": "/users/1"}]


@pytest.fixture
def log(settings):
    conversation_log = ConversationLog.for_project(settings.data_dir, "shop")
    yield conversation_log
    conversation_log.close()


def test_tool_summary_includes_count() -> None:
    turn = Turn.tool(ToolResponse("g", tool_names.EXECUTE_TEST_GROUP, {"count": 3, "results": []}))

    assert tool_summary(turn, registry) == ["➔ Executing tests", "    Completed 3 tests"]
    assert tool_summary(Turn.user("hi")) == []


def test_replay_renders_each_role() -> None:
    call = ToolCall("t1", tool_names.EXECUTE_TEST)
    turns = [
        Turn.user("expanded", display_content="shown"),
        Turn.assistant("Running", reasoning="thinking", tool_calls=[call]),
        Turn.tool(ToolResponse("t1", tool_names.EXECUTE_TEST, {"passed": True})),
        Turn.assistant("Done"),
    ]
    transcript = Transcript()

    history = replay(turns, transcript, registry)

    assert len(history) == 4
    assert [(line.kind, line.text) for line in transcript.lines()] == [
        ("user", "shown"),
        ("reasoning", "thinking"),
        ("assistant", "Running"),
        ("tool", "➔ Executing test"),
        ("assistant", "Done"),
    ]


def test_replay_rejects_broken_ordering() -> None:
    turns = [Turn.tool(ToolResponse("x", tool_names.EXECUTE_TEST))]

    with pytest.raises(ProtocolViolationError):
        replay(turns)


def test_conversation_is_persisted_and_resumed(make_controller, log, executor) -> None:
    first = make_controller(
        [
            reply("", tool_call(tool_names.EXECUTE_TEST_GROUP, tests=GROUP_TESTS)),
            reply("Both passed"),
        ],
        log=log,
        project_id="shop",
    )
    first.send("test the users endpoints")
    first.confirm_plan()
    first.run_until_blocked()

    conversations = log.list_conversations("shop")
    assert [item.title for item in conversations] == ["test the users endpoints"]
    assert log.get_messages(conversations[0].id) == list(first.history)

    second = make_controller([reply("Sure")], log=log, project_id="shop")
    second.resume(conversations[0].id)

    assert second.history == first.history
    assert "    Completed 2 tests" in second.transcript.texts("subtle")
    assert len(second.tool_state.last_group_results) == 2
    assert second.info()["durable"] is True

    second.send("anything else?")
    assert len(log.get_messages(conversations[0].id)) == len(first.history) + 2


def test_resume_answers_interrupted_calls(make_controller, log) -> None:
    log.create_conversation("shop", "c1", "Interrupted")
    log.save_message("c1", Turn.user("run"))
    log.save_message(
        "c1", Turn.assistant("", tool_calls=[ToolCall("t1", tool_names.EXECUTE_TEST)])
    )
    controller = make_controller(log=log, project_id="shop")

    controller.resume("c1")

    assert controller.history.unanswered() == ()
    assert controller.history.last.tool_response.response == INTERRUPTED_RESPONSE
    assert log.get_messages("c1")[-1].tool_response.response == INTERRUPTED_RESPONSE
    assert controller.state is SessionState.IDLE


def test_resume_restores_last_plan(make_controller, log) -> None:
    log.create_conversation("shop", "c1")
    log.save_message("c1", Turn.user("plan"))
    log.save_message(
        "c1", Turn.assistant("", tool_calls=[ToolCall("p", tool_names.GENERATE_TEST_PLAN)])
    )
    log.save_message(
        "c1",
        Turn.tool(
            ToolResponse(
                "p", tool_names.GENERATE_TEST_PLAN, {"test_cases": GROUP_TESTS, "test_count": 2}
            )
        ),
    )
    controller = make_controller(log=log, project_id="shop")

    controller.resume("c1")

    assert [case.endpoint for case in controller.last_plan()] == ["/users", "/users/1"]


def test_resume_rejects_other_projects(make_controller, log) -> None:
    log.create_conversation("other", "c1")
    controller = make_controller(log=log, project_id="shop")

    with pytest.raises(PersistenceError, match="not found"):
        controller.resume("c1")
    with pytest.raises(PersistenceError, match="not found"):
        controller.resume("missing")


def test_resume_requires_project(make_controller) -> None:
    with pytest.raises(PersistenceError, match="within a project"):
        make_controller().resume("c1")
