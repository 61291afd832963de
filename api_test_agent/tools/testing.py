"""HTTP test execution tools."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from api_test_agent.core.errors import ExecutionError
from api_test_agent.core.utils.logger import get_logger
from api_test_agent.execution.group_runner import TestGroupRunner, run_single

if TYPE_CHECKING:
    from api_test_agent.tools.arguments import ExecuteTestArgs, TestCase, TestGroupArgs
    from api_test_agent.tools.registry import ToolContext

LOGGER = get_logger(__name__)

RESPONSE_PREVIEW_CHARS = 200


def _preview(body: str, limit: int) -> str:
    text = " ".join((body or "").split())
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def _require_executor(context: ToolContext) -> Any:
    if context.executor is None:
        raise ExecutionError("no API base URL configured; start the session with --url")
    return context.executor


def _emit_result(context: ToolContext, case: TestCase, record: Mapping[str, Any]) -> None:
    passed = bool(record.get("passed"))
    auth = " • Auth" if case.requires_auth else ""
    context.emit(
        "success" if passed else "error",
        f"  {'✓' if passed else '✗'} {case.method} {case.endpoint}{auth}",
    )
    if "error" in record:
        context.emit("subtle", f"    Error: {record['error']}")
        return
    context.emit(
        "subtle",
        f"    Status: {record['status_code']} (expected {record['expected_status']})"
        f" | Duration: {record['duration_ms']}ms",
    )


def execute_test(args: ExecuteTestArgs, context: ToolContext) -> Mapping[str, Any]:
    """
    Run one HTTP request against the API under test.

    Returns:
        {"method", "endpoint", "status_code", "expected_status", "response_body",
         "duration_ms", "passed"} or, when the request fails,
        {"method", "endpoint", "error", "expected_status", "passed": False}
    """
    executor = _require_executor(context)
    case = args.test
    record = run_single(executor, case)
    _emit_result(context, case, record)
    if "response_body" in record and record["response_body"]:
        limit = getattr(context.settings, "response_preview_chars", RESPONSE_PREVIEW_CHARS)
        context.emit("subtle", f"    Response: {_preview(record['response_body'], limit)}")
    record.pop("requires_auth", None)
    return record


def execute_test_group(args: TestGroupArgs, context: ToolContext) -> Mapping[str, Any]:
    """
    Run a batch of tests sequentially.

    Returns:
        {"count": N, "results": [...]} with one result per executed test
    """
    executor = _require_executor(context)
    runner = TestGroupRunner(executor)
    context.emit("subtle", args.label or f"Running {len(args.tests)} test(s)")
    outcome = runner.run(
        args.tests,
        cancel=context.cancel,
        on_result=lambda _index, _total, case, record: _emit_result(context, case, record),
    )
    context.state.last_group_results = list(outcome.results)

    if outcome.failed:
        context.emit("error", f"✗ {outcome.failed}/{outcome.count} tests failed")
    else:
        context.emit("success", f"✓ All {outcome.count} tests passed")

    response = outcome.to_response()
    if outcome.cancelled:
        response["status"] = "cancelled"
    return response


__all__ = ["execute_test", "execute_test_group"]
