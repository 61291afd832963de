"""HTTP execution of test cases against the API under test."""

from .auth import AUTH_TYPES, AuthProvider, build_auth
from .group_runner import TestGroupResult, TestGroupRunner, run_single
from .http_executor import HTTPTestExecutor, TestExecutionResult, TestExecutor

__all__ = [
    "AUTH_TYPES",
    "AuthProvider",
    "HTTPTestExecutor",
    "TestExecutionResult",
    "TestExecutor",
    "TestGroupResult",
    "TestGroupRunner",
    "build_auth",
    "run_single",
]
