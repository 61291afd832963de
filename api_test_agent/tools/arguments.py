"""Typed argument records decoded from raw tool-call payloads.

Each record exposes ``from_payload`` which raises
:class:`~api_test_agent.core.errors.ValidationError` with a message meant for
the model when required fields are missing or malformed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from api_test_agent.core.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

DEFAULT_EXPECTED_STATUS = 200
DEFAULT_FOCUS = "happy path"
EXPORT_FORMATS = ("postman", "pytest", "sh")


def _string_headers(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    headers: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, str):
            headers[str(key)] = value
        elif isinstance(value, (int, float, bool)):
            headers[str(key)] = str(value)
    return headers


def _expected_status(raw: Any) -> int:
    if isinstance(raw, bool) or raw is None:
        return DEFAULT_EXPECTED_STATUS
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return DEFAULT_EXPECTED_STATUS


def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else ""


@dataclass
class TestCase:
    """One HTTP request to run, with the status it is expected to return."""

    __test__ = False

    method: str
    endpoint: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    requires_auth: bool = False
    expected_status: int = DEFAULT_EXPECTED_STATUS
    description: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TestCase | None:
        """Build a case, or return ``None`` when method or endpoint is missing."""
        if not isinstance(data, dict):
            return None
        method = _text(data, "method").upper()
        endpoint = _text(data, "endpoint") or _text(data, "path")
        if not method or not endpoint:
            return None
        return cls(
            method=method,
            endpoint=endpoint,
            headers=_string_headers(data.get("headers")),
            body=data.get("body"),
            requires_auth=data.get("requires_auth") is True,
            expected_status=_expected_status(data.get("expected_status")),
            description=_text(data, "description"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "method": self.method,
            "endpoint": self.endpoint,
            "requires_auth": self.requires_auth,
            "expected_status": self.expected_status,
        }
        if self.headers:
            data["headers"] = dict(self.headers)
        if self.body is not None:
            data["body"] = self.body
        if self.description:
            data["description"] = self.description
        return data


def decode_test_cases(items: Iterable[Any]) -> list[TestCase]:
    """Keep every well-formed case and drop the rest."""
    cases = []
    for item in items:
        case = TestCase.from_mapping(item)
        if case is not None:
            cases.append(case)
    return cases


@dataclass
class ExecuteTestArgs:
    test: TestCase

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ExecuteTestArgs:
        case = TestCase.from_mapping(payload)
        if case is None:
            raise ValidationError("missing required parameters: method and endpoint")
        return cls(test=case)


@dataclass
class TestGroupArgs:
    __test__ = False

    tests: list[TestCase]
    label: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TestGroupArgs:
        raw = payload.get("tests")
        if not isinstance(raw, list):
            raise ValidationError("missing required parameter: tests")
        tests = []
        for index, item in enumerate(raw):
            case = TestCase.from_mapping(item)
            if case is None:
                raise ValidationError(f"tests[{index}]: method and endpoint are required")
            tests.append(case)
        if not tests:
            raise ValidationError("no valid tests to execute")
        label = _text(payload, "label") or f"Running {len(tests)} test(s)"
        return cls(tests=tests, label=label)


@dataclass
class TestPlanArgs:
    __test__ = False

    what: str
    focus: str = DEFAULT_FOCUS

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TestPlanArgs:
        what = _text(payload, "what")
        if not what:
            raise ValidationError("missing required parameter: what")
        return cls(what=what, focus=_text(payload, "focus") or DEFAULT_FOCUS)


@dataclass
class ReportArgs:
    report_content: str
    file_name: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ReportArgs:
        content = payload.get("report_content")
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("missing required parameter: report_content")
        return cls(report_content=content, file_name=_text(payload, "file_name") or None)


@dataclass
class ExportTarget:
    format: str
    filepath: str


@dataclass
class ExportArgs:
    exports: list[ExportTarget]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ExportArgs:
        if "exports" not in payload:
            raise ValidationError("missing 'exports' parameter")
        raw = payload["exports"]
        if not isinstance(raw, list):
            raise ValidationError("'exports' must be an array")
        if not raw:
            raise ValidationError("'exports' array cannot be empty")
        targets = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            fmt = _text(item, "format").lower()
            filepath = _text(item, "filepath")
            if not fmt or not filepath:
                continue
            if fmt not in EXPORT_FORMATS:
                raise ValidationError(
                    f"unsupported export format: {fmt} (expected one of {', '.join(EXPORT_FORMATS)})"
                )
            targets.append(ExportTarget(format=fmt, filepath=filepath))
        if not targets:
            raise ValidationError("'exports' entries need both 'format' and 'filepath'")
        return cls(exports=targets)


@dataclass
class EndpointRef:
    method: str
    path: str


@dataclass
class EndpointLookupArgs:
    endpoints: list[EndpointRef]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> EndpointLookupArgs:
        raw = payload.get("endpoints")
        if not isinstance(raw, list) or not raw:
            raise ValidationError("missing required parameter: endpoints")
        refs = [
            EndpointRef(method=_text(item, "method").upper(), path=_text(item, "path"))
            for item in raw
            if isinstance(item, dict) and _text(item, "path")
        ]
        if not refs:
            raise ValidationError("no valid endpoints requested")
        return cls(endpoints=refs)


__all__ = [
    "DEFAULT_EXPECTED_STATUS",
    "DEFAULT_FOCUS",
    "EXPORT_FORMATS",
    "EndpointLookupArgs",
    "EndpointRef",
    "ExecuteTestArgs",
    "ExportArgs",
    "ExportTarget",
    "ReportArgs",
    "TestCase",
    "TestGroupArgs",
    "TestPlanArgs",
    "decode_test_cases",
]
