"""Validate tool calls and route them to their handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from api_test_agent.core.errors import AgentError, ExecutionError
from api_test_agent.core.utils.logger import get_logger

if TYPE_CHECKING:
    from api_test_agent.session.models import ToolCall

    from .registry import ToolContext, ToolRegistry

LOGGER = get_logger(__name__)


class ToolDispatcher:
    """Turn a :class:`ToolCall` into a response payload.

    Every failure (unknown tool, invalid arguments, handler error) is
    returned as a structured error payload for the model instead of being
    raised, so the conversation can continue.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    def decode(self, call: ToolCall) -> Any:
        """Validate and decode the arguments of ``call``.

        Raises ``ExecutionError`` for unknown tools and ``ValidationError``
        for bad arguments.
        """
        if not self.registry.has(call.name):
            raise ExecutionError(f"unknown tool: {call.name}")
        return self.registry.validate(call.name, call.arguments)

    def dispatch(self, call: ToolCall, context: ToolContext) -> dict[str, Any]:
        try:
            arguments = self.decode(call)
        except AgentError as exc:
            LOGGER.info("Rejected %s call %s: %s", call.name, call.id, exc)
            return exc.to_response(call.name)
        return self.run(call, arguments, context)

    def run(self, call: ToolCall, arguments: Any, context: ToolContext) -> dict[str, Any]:
        """Invoke the handler with already decoded arguments."""
        spec = self.registry.get(call.name)
        LOGGER.debug("Invoking tool %s (%s)", call.name, call.id)
        try:
            result = spec.handler(arguments, context)
        except AgentError as exc:
            LOGGER.info("Tool %s failed: %s", call.name, exc)
            return exc.to_response(call.name)
        except Exception as exc:  # handler boundary
            LOGGER.exception("Tool %s raised unexpectedly", call.name)
            return ExecutionError(str(exc) or exc.__class__.__name__).to_response(call.name)
        return dict(result)


__all__ = ["ToolDispatcher"]
