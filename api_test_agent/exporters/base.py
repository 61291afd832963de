"""Shared types and dispatch for test exporters."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from api_test_agent.core.errors import ExecutionError


@dataclass
class ExportTest:
    """One test as seen by exporters: the request plus its last outcome, if any."""

    method: str
    endpoint: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    status_code: int = 0
    response_body: str = ""
    duration_ms: int = 0
    requires_auth: bool = False
    error: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ExportTest:
        headers = data.get("headers") or {}
        return cls(
            method=str(data.get("method") or "GET").upper(),
            endpoint=str(data.get("endpoint") or ""),
            headers={str(k): str(v) for k, v in headers.items()} if isinstance(headers, dict) else {},
            body=data.get("body"),
            status_code=int(data.get("status_code") or 0),
            response_body=str(data.get("response_body") or ""),
            duration_ms=int(data.get("duration_ms") or 0),
            requires_auth=data.get("requires_auth") is True,
            error=str(data.get("error") or ""),
        )

    @property
    def body_text(self) -> str | None:
        if self.body is None:
            return None
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body)


@dataclass
class ExportRequest:
    base_url: str
    tests: list[ExportTest]
    file_path: Path
    auth_type: str = ""
    auth_data: dict[str, str] = field(default_factory=dict)


class Exporter(ABC):
    """Writes a set of tests to a file in one format."""

    file_extension = ""
    label = ""

    @abstractmethod
    def render(self, request: ExportRequest) -> str:
        """Return the file contents."""

    def export(self, request: ExportRequest) -> Path:
        request.file_path.write_text(self.render(request), encoding="utf-8")
        return request.file_path


def resolve_export_path(path: str, base_dir: Path | None = None) -> Path:
    """Expand ``~`` and anchor relative paths at ``base_dir`` (default: cwd)."""
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = (base_dir or Path.cwd()) / candidate
    return candidate.resolve()


def export(format_name: str, request: ExportRequest) -> Path:
    """Write ``request`` with the exporter registered for ``format_name``."""
    from . import EXPORTERS

    exporter = EXPORTERS.get(format_name)
    if exporter is None:
        raise ExecutionError(f"unsupported export format: {format_name}")
    try:
        request.file_path.parent.mkdir(parents=True, exist_ok=True)
        return exporter.export(request)
    except OSError as exc:
        raise ExecutionError(f"export to {format_name} failed: {exc}") from exc


__all__ = ["ExportRequest", "ExportTest", "Exporter", "export", "resolve_export_path"]
