"""Tool registry and validation helpers."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from jsonschema import Draft7Validator

from api_test_agent.core.errors import ValidationError
from api_test_agent.core.utils.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

LOGGER = get_logger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"

EmitCallback = Callable[[str, str], None]


@dataclass
class ToolState:
    """Results shared between tools across one session."""

    last_plan: list[dict[str, Any]] = field(default_factory=list)
    last_group_results: list[dict[str, Any]] = field(default_factory=list)


def _discard(kind: str, text: str) -> None:
    return None


@dataclass
class ToolContext:
    """Runtime context passed to tool handlers."""

    settings: Any
    executor: Any = None
    llm_client: Any = None
    endpoints: Any = None
    project_id: str | None = None
    output_dir: Path = field(default_factory=Path.cwd)
    state: ToolState = field(default_factory=ToolState)
    cancel: threading.Event = field(default_factory=threading.Event)
    emit: EmitCallback = _discard
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolSpec:
    """Metadata for a registered tool.

    ``decoder`` turns the validated payload into the typed argument record the
    handler receives. ``requires_confirmation`` marks tools whose calls must
    be approved by the user before they run.
    """

    name: str
    handler: Callable[[Any, ToolContext], Mapping[str, Any]]
    request_schema_path: Path | None
    decoder: Callable[[Mapping[str, Any]], Any] | None = None
    description: str = ""
    display_name: str | None = None
    requires_confirmation: bool = True
    auto_approved_reason: str = ""


class ToolRegistry:
    """Registry that manages tool specifications and validation."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            LOGGER.debug("Overwriting existing tool registration for %s", spec.name)
        self._tools[spec.name] = spec

    def get(self, name: str) -> ToolSpec:
        if name not in self._tools:
            raise KeyError(f"Tool '{name}' is not registered")
        return self._tools[name]

    def has(self, name: str) -> bool:
        return name in self._tools

    def available(self) -> Iterable[str]:
        return sorted(self._tools.keys())

    def display_name(self, name: str) -> str:
        spec = self._tools.get(name)
        if spec is None:
            return name
        return spec.display_name or name

    def validate(self, name: str, payload: Mapping[str, Any]) -> Any:
        """Check ``payload`` against the tool schema and decode it.

        Raises :class:`ValidationError` describing the first problem found.
        """
        spec = self.get(name)
        if spec.request_schema_path is not None:
            validator = _load_validator(spec.request_schema_path)
            errors = sorted(validator.iter_errors(payload), key=lambda exc: list(exc.path))
            if errors:
                first = errors[0]
                location = ".".join(str(part) for part in first.path)
                where = f" at '{location}'" if location else ""
                raise ValidationError(f"Invalid input for {name}{where}: {first.message}")
        if spec.decoder is None:
            return dict(payload)
        return spec.decoder(payload)

    def definitions(self) -> list[dict[str, Any]]:
        """Tool definitions in the ``{name, description, parameters}`` shape."""
        definitions = []
        for name in self.available():
            spec = self._tools[name]
            parameters: dict[str, Any] = {"type": "object", "properties": {}}
            if spec.request_schema_path is not None:
                parameters = load_schema(spec.request_schema_path)
            definitions.append(
                {"name": name, "description": spec.description, "parameters": parameters}
            )
        return definitions


@lru_cache(maxsize=64)
def _load_schema_text(schema_path: Path) -> str:
    with schema_path.open("r", encoding="utf-8") as handle:
        return handle.read()


def load_schema(schema_path: Path) -> dict[str, Any]:
    data = json.loads(_load_schema_text(schema_path))
    data.pop("$schema", None)
    return data


@lru_cache(maxsize=64)
def _load_validator(schema_path: Path) -> Draft7Validator:
    return Draft7Validator(json.loads(_load_schema_text(schema_path)))


def schema_path(name: str) -> Path:
    return SCHEMA_DIR / f"{name}.request.json"


__all__ = [
    "SCHEMA_DIR",
    "ToolContext",
    "ToolRegistry",
    "ToolSpec",
    "ToolState",
    "schema_path",
]
