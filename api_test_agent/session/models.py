"""Core data structures for conversational sessions."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from api_test_agent.tools.arguments import TestCase

    from .history import History

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"
ROLES = frozenset({ROLE_USER, ROLE_ASSISTANT, ROLE_TOOL})

DEFAULT_TITLE = "Untitled Conversation"
TITLE_MAX_CHARS = 100


class SessionState(str, Enum):
    """Lifecycle states of the session controller."""

    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    STREAMING = "streaming"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXECUTING_TOOL = "executing_tool"
    SHOWING_PLAN = "showing_plan"
    RUNNING_TEST_GROUP = "running_test_group"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ToolCall:
        arguments = data.get("arguments") or {}
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            arguments=dict(arguments) if isinstance(arguments, dict) else {},
        )


@dataclass(frozen=True)
class ToolResponse:
    """The outcome of one tool call, echoed back to the model."""

    id: str
    name: str
    response: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "response": dict(self.response)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ToolResponse:
        response = data.get("response") or {}
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            response=dict(response) if isinstance(response, dict) else {"result": response},
        )


@dataclass(frozen=True)
class Turn:
    """One entry of the conversation history.

    ``display_content`` holds the text shown to the user when it differs from
    what the model receives (for example a file attachment expanded inline).
    """

    role: str
    content: str = ""
    reasoning: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_response: ToolResponse | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    display_content: str | None = None

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown turn role: {self.role!r}")
        if self.role == ROLE_TOOL and self.tool_response is None:
            raise ValueError("Tool turns require a tool_response")
        if self.tool_calls and self.role != ROLE_ASSISTANT:
            raise ValueError("Only assistant turns may carry tool calls")

    @classmethod
    def user(cls, content: str, *, display_content: str | None = None) -> Turn:
        return cls(role=ROLE_USER, content=content, display_content=display_content)

    @classmethod
    def assistant(
        cls,
        content: str,
        *,
        reasoning: str = "",
        tool_calls: tuple[ToolCall, ...] | list[ToolCall] = (),
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> Turn:
        return cls(
            role=ROLE_ASSISTANT,
            content=content,
            reasoning=reasoning,
            tool_calls=tuple(tool_calls),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    @classmethod
    def tool(cls, response: ToolResponse) -> Turn:
        return cls(role=ROLE_TOOL, content=f"Tool: {response.name}", tool_response=response)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @property
    def visible_content(self) -> str:
        return self.display_content if self.display_content is not None else self.content

    def metadata(self) -> dict[str, Any]:
        """Return the fields persisted alongside ``role`` and ``content``."""
        data: dict[str, Any] = {}
        if self.reasoning:
            data["reasoning"] = self.reasoning
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.tool_response is not None:
            data["tool_response"] = self.tool_response.to_dict()
        if self.input_tokens:
            data["input_tokens"] = self.input_tokens
        if self.output_tokens:
            data["output_tokens"] = self.output_tokens
        if self.display_content is not None:
            data["display_content"] = self.display_content
        return data

    @classmethod
    def from_record(cls, role: str, content: str, metadata: Mapping[str, Any] | None) -> Turn:
        meta = dict(metadata or {})
        response = meta.get("tool_response")
        return cls(
            role=role,
            content=content or "",
            reasoning=meta.get("reasoning") or "",
            tool_calls=tuple(ToolCall.from_dict(item) for item in meta.get("tool_calls") or ()),
            tool_response=ToolResponse.from_dict(response) if response else None,
            input_tokens=int(meta.get("input_tokens") or 0),
            output_tokens=int(meta.get("output_tokens") or 0),
            display_content=meta.get("display_content"),
        )


@dataclass
class Conversation:
    """Persisted conversation header."""

    id: str
    project_id: str
    title: str = DEFAULT_TITLE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def derive_title(text: str) -> str:
    """Build a conversation title from the first user message."""
    title = " ".join(text.split())
    if not title:
        return DEFAULT_TITLE
    if len(title) > TITLE_MAX_CHARS:
        return title[: TITLE_MAX_CHARS - 3] + "..."
    return title


@dataclass
class StreamBuffer:
    """Accumulates one assistant turn while it streams."""

    text: str = ""
    reasoning: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    input_tokens: int = 0
    output_tokens: int = 0

    def reset(self) -> None:
        self.text = ""
        self.reasoning = ""
        self.tool_calls = ()
        self.input_tokens = 0
        self.output_tokens = 0


@dataclass
class Session:
    """Mutable state of one interactive conversation.

    Owned by :class:`~api_test_agent.session.controller.SessionController`;
    background workers only ever receive snapshots of it.
    """

    history: History
    conversation_id: str | None = None
    project_id: str | None = None
    ephemeral: bool = True
    state: SessionState = SessionState.IDLE
    cancel_event: threading.Event = field(default_factory=threading.Event)
    pending: deque[ToolCall] = field(default_factory=deque)
    buffer: StreamBuffer = field(default_factory=StreamBuffer)
    skip_remaining: bool = False
    plan_tests: list[TestCase] = field(default_factory=list)
    plan_label: str = ""
    plan_call: ToolCall | None = None
    model_rounds: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    lock: RLock = field(default_factory=RLock)

    @property
    def durable(self) -> bool:
        return not self.ephemeral and bool(self.conversation_id) and bool(self.project_id)


__all__ = [
    "DEFAULT_TITLE",
    "ROLE_ASSISTANT",
    "ROLE_TOOL",
    "ROLE_USER",
    "Conversation",
    "Session",
    "SessionState",
    "StreamBuffer",
    "ToolCall",
    "ToolResponse",
    "Turn",
    "derive_title",
]
