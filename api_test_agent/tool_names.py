"""Canonical tool identifiers exposed to the model."""

from __future__ import annotations

EXECUTE_TEST = "ExecuteTest"
EXECUTE_TEST_GROUP = "ExecuteTestGroup"
GENERATE_TEST_PLAN = "GenerateTestPlan"
GENERATE_REPORT = "GenerateReport"
EXPORT_TESTS = "ExportTests"
GET_ENDPOINTS_DETAILS = "get_endpoints_details"

ALL_TOOLS = (
    GET_ENDPOINTS_DETAILS,
    GENERATE_TEST_PLAN,
    EXECUTE_TEST,
    EXECUTE_TEST_GROUP,
    EXPORT_TESTS,
    GENERATE_REPORT,
)

__all__ = [
    "ALL_TOOLS",
    "EXECUTE_TEST",
    "EXECUTE_TEST_GROUP",
    "EXPORT_TESTS",
    "GENERATE_REPORT",
    "GENERATE_TEST_PLAN",
    "GET_ENDPOINTS_DETAILS",
]
