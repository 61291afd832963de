"""Tests for tool registration, validation and dispatch."""

from __future__ import annotations

import pytest

from api_test_agent import tool_names
from api_test_agent.core.errors import ExecutionError, ValidationError
from api_test_agent.session.models import ToolCall
from api_test_agent.testing import FakeExecutor
from api_test_agent.tools import ToolContext, ToolDispatcher, ToolSpec, registry
from api_test_agent.tools.arguments import ExecuteTestArgs, TestGroupArgs
from api_test_agent.tools.registry import ToolRegistry, schema_path


def test_builtin_tools_are_registered() -> None:
    assert list(registry.available()) == sorted(
        [
            tool_names.EXECUTE_TEST,
            tool_names.EXECUTE_TEST_GROUP,
            tool_names.EXPORT_TESTS,
            tool_names.GENERATE_REPORT,
            tool_names.GENERATE_TEST_PLAN,
            tool_names.GET_ENDPOINTS_DETAILS,
        ]
    )


def test_definitions_expose_schemas_without_meta_keys() -> None:
    definitions = {item["name"]: item for item in registry.definitions()}

    execute = definitions[tool_names.EXECUTE_TEST]
    assert execute["parameters"]["required"] == ["method", "endpoint"]
    assert "$schema" not in execute["parameters"]
    assert execute["description"]


def test_display_name_falls_back_to_tool_name() -> None:
    assert registry.display_name(tool_names.EXECUTE_TEST) == "Executing test"
    assert registry.display_name("Unknown") == "Unknown"


def test_validate_decodes_typed_arguments() -> None:
    args = registry.validate(
        tool_names.EXECUTE_TEST,
        {"method": "post", "endpoint": "/users", "body": {"name": "a"}, "expected_status": 201},
    )

    assert isinstance(args, ExecuteTestArgs)
    assert args.test.method == "POST"
    assert args.test.expected_status == 201
    assert args.test.requires_auth is False


def test_validate_reports_schema_violation_location() -> None:
    with pytest.raises(ValidationError, match="at 'expected_status'"):
        registry.validate(
            tool_names.EXECUTE_TEST,
            {"method": "GET", "endpoint": "/users", "expected_status": "ok"},
        )


def test_validate_reports_missing_required_field() -> None:
    with pytest.raises(ValidationError, match="'endpoint' is a required property"):
        registry.validate(tool_names.EXECUTE_TEST, {"method": "GET"})


def test_group_decoder_keeps_every_case() -> None:
    args = registry.validate(
        tool_names.EXECUTE_TEST_GROUP,
        {"tests": [{"method": "GET", "endpoint": "/a"}, {"method": "delete", "endpoint": "/b"}]},
    )

    assert isinstance(args, TestGroupArgs)
    assert [(case.method, case.endpoint) for case in args.tests] == [
        ("GET", "/a"),
        ("DELETE", "/b"),
    ]
    assert args.label == "Running 2 test(s)"


def test_group_with_malformed_case_is_rejected() -> None:
    with pytest.raises(ValidationError, match="at 'tests.1': 'method' is a required property"):
        registry.validate(
            tool_names.EXECUTE_TEST_GROUP,
            {"tests": [{"method": "GET", "endpoint": "/a"}, {"endpoint": "/b"}]},
        )


def test_group_decoder_rejects_blank_fields() -> None:
    with pytest.raises(ValidationError, match=r"tests\[1\]: method and endpoint are required"):
        TestGroupArgs.from_payload(
            {"tests": [{"method": "GET", "endpoint": "/a"}, {"method": " ", "endpoint": "/b"}]}
        )


def test_empty_group_is_rejected() -> None:
    with pytest.raises(ValidationError, match="no valid tests"):
        registry.validate(tool_names.EXECUTE_TEST_GROUP, {"tests": []})


def test_dispatch_mixed_group_never_runs_partially(settings) -> None:
    executor = FakeExecutor(routes={"GET /users": (200, "[]")})
    call = ToolCall(
        "g",
        tool_names.EXECUTE_TEST_GROUP,
        {
            "tests": [
                {"method": "GET", "endpoint": "/users"},
                {"endpoint": "/users/1"},
                {"method": "GET", "endpoint": "/missing"},
            ]
        },
    )

    response = ToolDispatcher(registry).dispatch(
        call, ToolContext(settings=settings, executor=executor)
    )

    assert response["error_type"] == "ValidationError"
    assert "tests.1" in response["error"]
    assert executor.requests == []


def test_registry_get_unknown_tool_raises_key_error() -> None:
    with pytest.raises(KeyError):
        ToolRegistry().get("Missing")


def test_schema_path_points_at_packaged_file() -> None:
    assert schema_path(tool_names.GENERATE_REPORT).is_file()


# Dispatcher ---------------------------------------------------------------


@pytest.fixture
def dispatcher() -> ToolDispatcher:
    target = ToolRegistry()
    target.register(
        ToolSpec(
            name="Echo",
            handler=lambda args, context: {"echo": args},
            request_schema_path=None,
        )
    )
    target.register(
        ToolSpec(
            name="Boom",
            handler=lambda args, context: 1 / 0,
            request_schema_path=None,
        )
    )

    def failing(args, context):
        raise ExecutionError("backend unavailable")

    target.register(ToolSpec(name="Fails", handler=failing, request_schema_path=None))
    return ToolDispatcher(target)


def test_dispatch_runs_handler(dispatcher: ToolDispatcher, settings) -> None:
    response = dispatcher.dispatch(ToolCall("1", "Echo", {"x": 1}), ToolContext(settings=settings))

    assert response == {"echo": {"x": 1}}


def test_dispatch_unknown_tool_returns_error_payload(
    dispatcher: ToolDispatcher, settings
) -> None:
    response = dispatcher.dispatch(ToolCall("1", "Nope"), ToolContext(settings=settings))

    assert response == {
        "error": "unknown tool: Nope",
        "error_type": "ExecutionError",
        "tool": "Nope",
    }


def test_dispatch_validation_error_payload(settings) -> None:
    response = ToolDispatcher(registry).dispatch(
        ToolCall("1", tool_names.GENERATE_TEST_PLAN, {}), ToolContext(settings=settings)
    )

    assert response["error_type"] == "ValidationError"
    assert "what" in response["error"]


def test_dispatch_agent_error_from_handler(dispatcher: ToolDispatcher, settings) -> None:
    response = dispatcher.dispatch(ToolCall("1", "Fails"), ToolContext(settings=settings))

    assert response["error"] == "backend unavailable"
    assert response["error_type"] == "ExecutionError"


def test_dispatch_unexpected_exception_is_contained(
    dispatcher: ToolDispatcher, settings
) -> None:
    response = dispatcher.dispatch(ToolCall("1", "Boom"), ToolContext(settings=settings))

    assert response["error_type"] == "ExecutionError"
    assert "division by zero" in response["error"]
