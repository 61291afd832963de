"""Error taxonomy shared by the session engine and its tools."""

from __future__ import annotations

from typing import Any


class AgentError(Exception):
    """Base class for recoverable errors raised by the engine."""

    error_type = "AgentError"

    def to_response(self, tool_name: str | None = None) -> dict[str, Any]:
        """Render the error as a tool response payload for the model."""
        payload: dict[str, Any] = {"error": str(self), "error_type": self.error_type}
        if tool_name:
            payload["tool"] = tool_name
        return payload


class ValidationError(AgentError):
    """Tool arguments were missing, mistyped, or failed schema validation."""

    error_type = "ValidationError"


class ExecutionError(AgentError):
    """A tool handler or one of its collaborators failed."""

    error_type = "ExecutionError"


class StreamError(AgentError):
    """The LLM stream failed before producing a complete turn."""

    error_type = "StreamError"


class CancellationError(AgentError):
    """The user cancelled the in-flight operation."""

    error_type = "CancellationError"


class PersistenceError(AgentError):
    """The conversation log could not be read or written."""

    error_type = "PersistenceError"


class TestExecutionError(ExecutionError):
    """An HTTP test request could not be completed."""

    __test__ = False


class ProtocolViolationError(RuntimeError):
    """History would break the tool-call/tool-response alternation."""


class InvalidTransitionError(RuntimeError):
    """A controller operation was invoked in a state that does not allow it."""


__all__ = [
    "AgentError",
    "CancellationError",
    "ExecutionError",
    "InvalidTransitionError",
    "PersistenceError",
    "ProtocolViolationError",
    "StreamError",
    "TestExecutionError",
    "ValidationError",
]
