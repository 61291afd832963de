"""Tests for the apitest command line interface."""

from __future__ import annotations

import importlib

import pytest
from click.testing import CliRunner

from api_test_agent import tool_names
from api_test_agent.cli.main import _resolve_log_level, cli, collect_test_results
from api_test_agent.core.storage.conversation_log import ConversationLog
from api_test_agent.session.history import History
from api_test_agent.session.models import ToolCall, ToolResponse, Turn
from api_test_agent.testing import FakeExecutor, ScriptedLLMClient, reply, tool_call

cli_main = importlib.import_module("api_test_agent.cli.main")


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    path = tmp_path / "data"
    monkeypatch.setenv("APITEST_DATA_DIR", str(path))
    return path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def fakes(monkeypatch, data_dir):
    """Replace the LLM client and HTTP executor the CLI would build."""
    client = ScriptedLLMClient()
    executor = FakeExecutor(routes={"GET /users": (200, "[]"), "GET /missing": 404})
    monkeypatch.setattr(cli_main, "create_client", lambda settings: client)
    monkeypatch.setattr(cli_main, "HTTPTestExecutor", lambda base_url, **kwargs: executor)
    return client, executor


@pytest.mark.parametrize(
    ("verbose", "quiet", "expected"),
    [(0, False, "WARNING"), (1, False, "INFO"), (2, False, "DEBUG"), (3, True, "ERROR")],
)
def test_resolve_log_level(verbose: int, quiet: bool, expected: str) -> None:
    assert _resolve_log_level(verbose, quiet) == expected


def test_help_lists_commands(runner) -> None:
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    for command in ("chat", "test", "conversations"):
        assert command in result.output


def test_invalid_config_is_reported(runner, tmp_path) -> None:
    config = tmp_path / "bad.toml"
    config.write_text("provider = [unterminated")

    result = runner.invoke(cli, ["--config", str(config), "conversations", "--project", "p"])

    assert result.exit_code != 0
    assert "Invalid configuration" in result.output


def test_test_command_summarises_and_fails_on_failures(runner, fakes) -> None:
    client, executor = fakes
    client.add(
        reply(
            "",
            tool_call(
                tool_names.EXECUTE_TEST_GROUP,
                tests=[
                    {"method": "GET", "endpoint": "/users"},
                    {"method": "GET", "endpoint": "/missing"},
                ],
            ),
        ),
        reply("One endpoint is missing"),
    )

    result = runner.invoke(
        cli, ["test", "--url", "http://api.test", "--prompt", "test users", "--auth", "none"]
    )

    assert result.exit_code == 1
    assert "Summary: 2 executed, 1 passed, 1 failed" in result.output
    assert "One endpoint is missing" in result.output
    assert len(executor.requests) == 2


def test_test_command_succeeds_when_all_pass(runner, fakes) -> None:
    client, _ = fakes
    client.add(
        reply("", tool_call(tool_names.EXECUTE_TEST, method="GET", endpoint="/users")),
        reply("All good"),
    )

    result = runner.invoke(cli, ["test", "--url", "http://api.test", "--prompt", "check"])

    assert result.exit_code == 0
    assert "Summary: 1 executed, 1 passed, 0 failed" in result.output


def test_test_command_requires_api_key(runner, data_dir) -> None:
    result = runner.invoke(cli, ["test", "--url", "http://api.test", "--prompt", "check"])

    assert result.exit_code == 1
    assert "No API key configured" in result.output


def test_incomplete_auth_options_are_rejected(runner, fakes) -> None:
    result = runner.invoke(
        cli, ["test", "--url", "http://api.test", "--prompt", "x", "--auth", "bearer"]
    )

    assert result.exit_code == 2
    assert "bearer auth requires a token" in result.output


def test_chat_resume_requires_project(runner, fakes) -> None:
    result = runner.invoke(cli, ["chat", "--resume", "abc"])

    assert result.exit_code == 2
    assert "--resume requires --project" in result.output


def test_chat_loop_round_trip(runner, fakes, data_dir) -> None:
    client, _ = fakes
    client.add(reply("Hello from the agent"))

    result = runner.invoke(
        cli,
        ["chat", "--url", "http://api.test", "--project", "shop"],
        input="hello\n/info\n/exit\n",
    )

    assert result.exit_code == 0
    assert "Hello from the agent" in result.output
    assert "conversation_id:" in result.output
    assert "Goodbye!" in result.output
    log = ConversationLog.for_project(data_dir, "shop")
    try:
        assert [item.title for item in log.list_conversations("shop")] == ["hello"]
    finally:
        log.close()


def test_conversations_list_and_delete(runner, data_dir) -> None:
    log = ConversationLog.for_project(data_dir, "shop")
    log.create_conversation("shop", "abc123", "Users smoke test")
    log.close()

    listed = runner.invoke(cli, ["conversations", "--project", "shop"])
    deleted = runner.invoke(cli, ["conversations", "--project", "shop", "--delete", "abc123"])
    empty = runner.invoke(cli, ["conversations", "--project", "shop"])
    missing = runner.invoke(cli, ["conversations", "--project", "shop", "--delete", "abc123"])

    assert "abc123" in listed.output
    assert "Users smoke test" in listed.output
    assert "Deleted abc123" in deleted.output
    assert "No conversations yet." in empty.output
    assert missing.exit_code == 1
    assert "not found" in missing.output


def test_collect_test_results_reads_both_test_tools() -> None:
    single = ToolCall("s", tool_names.EXECUTE_TEST)
    group = ToolCall("g", tool_names.EXECUTE_TEST_GROUP)
    report = ToolCall("r", tool_names.GENERATE_REPORT)
    history = History(
        [
            Turn.assistant("", tool_calls=[single, group, report]),
            Turn.tool(ToolResponse("s", tool_names.EXECUTE_TEST, {"passed": True})),
            Turn.tool(
                ToolResponse(
                    "g",
                    tool_names.EXECUTE_TEST_GROUP,
                    {"count": 2, "results": [{"passed": False}, {"passed": True}]},
                )
            ),
            Turn.tool(ToolResponse("r", tool_names.GENERATE_REPORT, {"status": "success"})),
        ]
    )

    assert collect_test_results(history) == [{"passed": True}, {"passed": False}, {"passed": True}]
