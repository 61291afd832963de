"""Rebuild a session from its persisted conversation log."""

from __future__ import annotations

from typing import TYPE_CHECKING

from api_test_agent.core.utils.logger import get_logger

from .history import History
from .models import ROLE_ASSISTANT, ROLE_TOOL, ROLE_USER

if TYPE_CHECKING:
    from collections.abc import Iterable

    from api_test_agent.tools.registry import ToolRegistry

    from .models import Turn
    from .transcript import Transcript

LOGGER = get_logger(__name__)


def tool_summary(turn: Turn, registry: ToolRegistry | None = None) -> list[str]:
    """Display lines for a replayed tool turn."""
    response = turn.tool_response
    if response is None:
        return []
    title = registry.display_name(response.name) if registry is not None else response.name
    lines = [f"➔ {title}"]
    count = response.response.get("count")
    if isinstance(count, (int, float)) and not isinstance(count, bool):
        lines.append(f"    Completed {int(count)} tests")
    return lines


def replay(
    turns: Iterable[Turn],
    transcript: Transcript | None = None,
    registry: ToolRegistry | None = None,
) -> History:
    """Append ``turns`` to a fresh History, re-rendering them when asked.

    Raises ``ProtocolViolationError`` when the stored rows do not form a valid
    tool-call sequence.
    """
    history = History()
    for turn in turns:
        history.append(turn)
        if transcript is None:
            continue
        if turn.role == ROLE_USER:
            if turn.visible_content:
                transcript.add("user", turn.visible_content)
        elif turn.role == ROLE_ASSISTANT:
            if turn.reasoning:
                transcript.add("reasoning", turn.reasoning)
            if turn.content:
                transcript.add("assistant", turn.content)
        elif turn.role == ROLE_TOOL:
            lines = tool_summary(turn, registry)
            transcript.add("tool", lines[0])
            for line in lines[1:]:
                transcript.add("subtle", line)
    LOGGER.debug("Replayed %d turns", len(history))
    return history


__all__ = ["replay", "tool_summary"]
