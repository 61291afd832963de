"""Sequential execution of a batch of test cases."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from api_test_agent.core.errors import TestExecutionError
from api_test_agent.core.utils.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from api_test_agent.tools.arguments import TestCase

    from .http_executor import TestExecutor

LOGGER = get_logger(__name__)

ResultCallback = Callable[[int, int, "TestCase", dict[str, Any]], None]


def run_single(executor: TestExecutor, case: TestCase) -> dict[str, Any]:
    """Execute one case and return its result record."""
    record: dict[str, Any] = {
        "method": case.method,
        "endpoint": case.endpoint,
        "expected_status": case.expected_status,
        "requires_auth": case.requires_auth,
    }
    try:
        result = executor.execute_test(
            case.method,
            case.endpoint,
            case.headers,
            case.body,
            requires_auth=case.requires_auth,
        )
    except TestExecutionError as exc:
        record.update({"error": str(exc), "passed": False})
        return record

    record.update(
        {
            "status_code": result.status_code,
            "response_body": result.response_body,
            "duration_ms": result.duration_ms,
            "passed": result.status_code == case.expected_status,
        }
    )
    return record


@dataclass
class TestGroupResult:
    """Accumulated outcome of a group run."""

    __test__ = False

    results: list[dict[str, Any]] = field(default_factory=list)
    passed: int = 0
    failed: int = 0
    cancelled: bool = False

    @property
    def count(self) -> int:
        return len(self.results)

    def to_response(self) -> dict[str, Any]:
        return {"count": self.count, "results": list(self.results)}


class TestGroupRunner:
    """Run test cases strictly one after another.

    The cancellation signal is checked before each case; once it is set no
    further case is started and the partial result is returned with
    ``cancelled`` set.
    """

    __test__ = False

    def __init__(self, executor: TestExecutor) -> None:
        self._executor = executor

    def run(
        self,
        tests: Sequence[TestCase],
        *,
        cancel: threading.Event | None = None,
        on_result: ResultCallback | None = None,
    ) -> TestGroupResult:
        outcome = TestGroupResult()
        total = len(tests)
        for index, case in enumerate(tests, start=1):
            if cancel is not None and cancel.is_set():
                LOGGER.info("Test group cancelled after %d/%d tests", index - 1, total)
                outcome.cancelled = True
                break
            record = run_single(self._executor, case)
            outcome.results.append(record)
            if record["passed"]:
                outcome.passed += 1
            else:
                outcome.failed += 1
            if on_result is not None:
                on_result(index, total, case, record)
        LOGGER.debug(
            "Test group finished: %d passed, %d failed, cancelled=%s",
            outcome.passed,
            outcome.failed,
            outcome.cancelled,
        )
        return outcome


__all__ = ["TestGroupResult", "TestGroupRunner", "run_single"]
