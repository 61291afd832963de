"""Append-only conversation history that enforces tool-call ordering."""

from __future__ import annotations

from typing import TYPE_CHECKING

from api_test_agent.core.errors import ProtocolViolationError

from .models import ROLE_ASSISTANT, ROLE_TOOL, ToolCall, Turn

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class History:
    """Ordered list of turns.

    After an assistant turn that carries tool calls, the following turns must
    be tool turns answering those calls, one per call and in the order the
    calls were made. Anything else raises :class:`ProtocolViolationError`.
    """

    def __init__(self, turns: Iterable[Turn] = ()) -> None:
        self._turns: list[Turn] = []
        self._outstanding: list[ToolCall] = []
        for turn in turns:
            self.append(turn)

    def append(self, turn: Turn) -> None:
        if self._outstanding:
            expected = self._outstanding[0]
            if turn.role != ROLE_TOOL:
                raise ProtocolViolationError(
                    f"Expected a tool response for call {expected.id} ({expected.name}), "
                    f"got a {turn.role} turn"
                )
            if turn.tool_response.id != expected.id:
                raise ProtocolViolationError(
                    f"Tool response id {turn.tool_response.id!r} does not answer "
                    f"pending call {expected.id!r}"
                )
            self._outstanding.pop(0)
        elif turn.role == ROLE_TOOL:
            raise ProtocolViolationError("Tool response appended without a pending tool call")

        if turn.role == ROLE_ASSISTANT and turn.tool_calls:
            self._outstanding = list(turn.tool_calls)
        self._turns.append(turn)

    def unanswered(self) -> tuple[ToolCall, ...]:
        """Tool calls from the latest assistant turn that still lack a response."""
        return tuple(self._outstanding)

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, History):
            return NotImplemented
        return self._turns == other._turns

    def __repr__(self) -> str:
        return f"History(turns={len(self._turns)}, unanswered={len(self._outstanding)})"


__all__ = ["History"]
