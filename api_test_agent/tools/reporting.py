"""Report and export tools."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from api_test_agent.core.errors import ExecutionError
from api_test_agent.core.utils.logger import get_logger
from api_test_agent.exporters import (
    FORMAT_LABELS,
    ExportRequest,
    ExportTest,
    export,
    resolve_export_path,
)
from api_test_agent.reporting import ReportGenerator

if TYPE_CHECKING:
    from api_test_agent.tools.arguments import ExportArgs, ReportArgs
    from api_test_agent.tools.registry import ToolContext

LOGGER = get_logger(__name__)

NO_TESTS_MESSAGE = "no tests available to export. Generate test plan first using GenerateTestPlan"


def generate_report(args: ReportArgs, context: ToolContext) -> Mapping[str, Any]:
    """
    Write the report the model composed to a Markdown file.

    Returns:
        {"status": "success", "file_path": str}
    """
    path = ReportGenerator(context.output_dir).generate(args.report_content, args.file_name)
    context.emit("success", "✓ Report generated")
    context.emit("subtle", f"   {path}")
    return {"status": "success", "file_path": str(path)}


def export_tests(args: ExportArgs, context: ToolContext) -> Mapping[str, Any]:
    """
    Export the latest test results, or the latest plan when nothing ran yet.

    Returns:
        {"success": True, "exports": [{"format", "filepath"}], "test_count": N}
    """
    source = context.state.last_group_results or context.state.last_plan
    if not source:
        raise ExecutionError(NO_TESTS_MESSAGE)
    tests = [ExportTest.from_mapping(item) for item in source]

    executor = context.executor
    base_url = getattr(executor, "base_url", "") or ""
    auth = getattr(executor, "auth", None)
    auth_type = auth.auth_type if auth is not None and auth.auth_type != "none" else ""
    auth_data = auth.data() if auth is not None else {}

    results = []
    for target in args.exports:
        path = resolve_export_path(target.filepath, context.output_dir)
        export(
            target.format,
            ExportRequest(
                base_url=base_url,
                tests=tests,
                file_path=path,
                auth_type=auth_type,
                auth_data=auth_data,
            ),
        )
        results.append({"format": target.format, "filepath": str(path)})

    context.emit("success", "✓ Tests exported")
    context.emit("subtle", f"   Tests: {len(tests)}")
    for item in results:
        label = FORMAT_LABELS.get(item["format"], item["format"])
        context.emit("subtle", f"   • {label}: {item['filepath']}")
    return {"success": True, "exports": results, "test_count": len(tests)}


__all__ = ["NO_TESTS_MESSAGE", "export_tests", "generate_report"]
