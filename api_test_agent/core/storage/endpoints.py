"""
Endpoint Repository

Loads the endpoint catalogue stored for a project.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from api_test_agent.core.utils.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

LOGGER = get_logger(__name__)

ENDPOINTS_FILENAME = "endpoints.json"


@dataclass
class Endpoint:
    """One operation of the API under test."""

    method: str
    path: str
    description: str = ""
    requires_auth: bool = False
    auth_type: str = "none"
    parameters: Optional[list[dict[str, Any]]] = None
    request_body: Optional[dict[str, Any]] = None
    responses: Optional[dict[str, Any]] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Endpoint":
        known = {
            "method",
            "path",
            "description",
            "requires_auth",
            "auth_type",
            "parameters",
            "request_body",
            "responses",
        }
        return cls(
            method=str(data.get("method", "")).upper(),
            path=str(data.get("path", "")),
            description=str(data.get("description") or ""),
            requires_auth=bool(data.get("requires_auth", False)),
            auth_type=str(data.get("auth_type") or "none"),
            parameters=data.get("parameters"),
            request_body=data.get("request_body"),
            responses=data.get("responses"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "method": self.method,
            "path": self.path,
            "description": self.description,
            "requires_auth": self.requires_auth,
            "auth_type": self.auth_type,
        }
        if self.parameters:
            data["parameters"] = self.parameters
        if self.request_body:
            data["request_body"] = self.request_body
        if self.responses:
            data["responses"] = self.responses
        return data

    def matches(self, method: str, path: str) -> bool:
        if self.path.rstrip("/") != path.rstrip("/"):
            return False
        return not method or self.method == method.upper()


class EndpointRepository:
    """Reads and writes ``endpoints.json`` under each project directory."""

    def __init__(self, projects_dir: Path):
        """
        Initialize repository.

        Args:
            projects_dir: Directory holding one sub-directory per project
        """
        self.projects_dir = projects_dir

    def _path(self, project_id: str) -> Path:
        return self.projects_dir / project_id / ENDPOINTS_FILENAME

    def load_endpoints(self, project_id: str) -> list[Endpoint]:
        """
        Load all endpoints of a project.

        Returns:
            List of endpoints; empty when the project has no catalogue
        """
        file_path = self._path(project_id)
        if not file_path.exists():
            return []
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("endpoints", [])
        endpoints = []
        for item in data:
            if isinstance(item, dict) and item.get("path"):
                endpoints.append(Endpoint.from_dict(item))
        LOGGER.debug("Loaded %d endpoints for project %s", len(endpoints), project_id)
        return endpoints

    def save_endpoints(self, project_id: str, endpoints: Iterable[Endpoint]) -> Path:
        """Persist the endpoint catalogue for a project."""
        file_path = self._path(project_id)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump([endpoint.to_dict() for endpoint in endpoints], f, indent=2)
        return file_path


def summarize_endpoints(endpoints: Iterable[Endpoint]) -> list[dict[str, Any]]:
    """Compact listing used in the system prompt."""
    return [
        {
            "method": endpoint.method,
            "path": endpoint.path,
            "description": endpoint.description,
            "requires_auth": endpoint.requires_auth,
            "auth_type": endpoint.auth_type,
        }
        for endpoint in endpoints
    ]


__all__ = ["ENDPOINTS_FILENAME", "Endpoint", "EndpointRepository", "summarize_endpoints"]
