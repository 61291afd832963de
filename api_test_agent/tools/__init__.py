"""Tool implementations exposed to the model."""

from __future__ import annotations

from api_test_agent import tool_names

from .arguments import (
    EndpointLookupArgs,
    ExecuteTestArgs,
    ExportArgs,
    ReportArgs,
    TestGroupArgs,
    TestPlanArgs,
)
from .dispatcher import ToolDispatcher
from .endpoints import get_endpoints_details
from .planning import generate_test_plan
from .registry import ToolContext, ToolRegistry, ToolSpec, ToolState, schema_path
from .reporting import export_tests, generate_report
from .testing import execute_test, execute_test_group


def register_builtin_tools(target: ToolRegistry) -> ToolRegistry:
    """Register every built-in tool on ``target`` and return it."""
    target.register(
        ToolSpec(
            name=tool_names.GET_ENDPOINTS_DETAILS,
            handler=get_endpoints_details,
            request_schema_path=schema_path(tool_names.GET_ENDPOINTS_DETAILS),
            decoder=EndpointLookupArgs.from_payload,
            description=(
                "Get full details (parameters, request body, responses, auth) for specific "
                "endpoints of the API before testing them"
            ),
            display_name="Loading endpoint details",
        )
    )
    target.register(
        ToolSpec(
            name=tool_names.GENERATE_TEST_PLAN,
            handler=generate_test_plan,
            request_schema_path=schema_path(tool_names.GENERATE_TEST_PLAN),
            decoder=TestPlanArgs.from_payload,
            description=(
                "Generate a structured test plan (at most 10 cases) for the given endpoints "
                "and focus. Does not execute anything"
            ),
            display_name="Generating test plan",
            requires_confirmation=False,
            auto_approved_reason="only asks the model for a plan",
        )
    )
    target.register(
        ToolSpec(
            name=tool_names.EXECUTE_TEST,
            handler=execute_test,
            request_schema_path=schema_path(tool_names.EXECUTE_TEST),
            decoder=ExecuteTestArgs.from_payload,
            description="Execute a single HTTP request against the API and report the result",
            display_name="Executing test",
        )
    )
    target.register(
        ToolSpec(
            name=tool_names.EXECUTE_TEST_GROUP,
            handler=execute_test_group,
            request_schema_path=schema_path(tool_names.EXECUTE_TEST_GROUP),
            decoder=TestGroupArgs.from_payload,
            description=(
                "Execute a group of test cases sequentially; the user picks which tests "
                "to run before execution"
            ),
            display_name="Executing tests",
            requires_confirmation=False,
            auto_approved_reason="the user selects the tests in the plan view",
        )
    )
    target.register(
        ToolSpec(
            name=tool_names.EXPORT_TESTS,
            handler=export_tests,
            request_schema_path=schema_path(tool_names.EXPORT_TESTS),
            decoder=ExportArgs.from_payload,
            description=(
                "Export the latest tests to files: postman (Postman Collection), "
                "pytest (pytest module) or sh (curl script)"
            ),
            display_name="Exporting tests",
        )
    )
    target.register(
        ToolSpec(
            name=tool_names.GENERATE_REPORT,
            handler=generate_report,
            request_schema_path=schema_path(tool_names.GENERATE_REPORT),
            decoder=ReportArgs.from_payload,
            description="Write a test report (Markdown) summarising the results to a file",
            display_name="Generating report",
            requires_confirmation=False,
            auto_approved_reason="writes a local report file",
        )
    )
    return target


# Global registry instance -------------------------------------------------

registry = register_builtin_tools(ToolRegistry())


__all__ = [
    "ToolContext",
    "ToolDispatcher",
    "ToolRegistry",
    "ToolSpec",
    "ToolState",
    "register_builtin_tools",
    "registry",
]
