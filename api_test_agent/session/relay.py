"""Background relay turning a blocking LLM call into an ordered event stream."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from api_test_agent.core.errors import CancellationError
from api_test_agent.core.utils.logger import get_logger

from .models import ToolCall

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from api_test_agent.providers.llm.base import LLMClient

    from .models import Turn

LOGGER = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 100
DEFAULT_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class TextEvent:
    text: str


@dataclass(frozen=True)
class ReasoningEvent:
    text: str


@dataclass(frozen=True)
class ToolCallsEvent:
    calls: tuple[ToolCall, ...]


@dataclass(frozen=True)
class UsageEvent:
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class DoneEvent:
    message: str
    reasoning: str = ""


@dataclass(frozen=True)
class ErrorEvent:
    message: str


@dataclass(frozen=True)
class CancelledEvent:
    pass


RelayEvent = Union[
    TextEvent, ReasoningEvent, ToolCallsEvent, UsageEvent, DoneEvent, ErrorEvent, CancelledEvent
]
TERMINAL_EVENTS = (DoneEvent, ErrorEvent, CancelledEvent)


class StreamingRelay:
    """Run one ``client.chat`` call on a worker thread and relay its output.

    Events are delivered through a bounded queue in emission order. A stream
    ends with exactly one of ``DoneEvent``, ``ErrorEvent`` or ``CancelledEvent``.
    Once the cancellation signal is set the consumer receives a single
    ``CancelledEvent`` and nothing else; the worker stops forwarding and is
    left to finish on its own.
    """

    def __init__(
        self,
        client: LLMClient,
        *,
        system_prompt: str,
        tools: Sequence[Mapping[str, Any]],
        history: Sequence[Turn],
        cancel: threading.Event,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._client = client
        self._system_prompt = system_prompt
        self._tools = [dict(tool) for tool in tools]
        self._history = tuple(history)
        self._cancel = cancel
        self._queue: queue.Queue[RelayEvent] = queue.Queue(maxsize=max(1, queue_size))
        self._poll_interval = poll_interval
        self._thread: threading.Thread | None = None
        self._finished = False

    @property
    def started(self) -> bool:
        return self._thread is not None

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self) -> StreamingRelay:
        if self._thread is not None:
            raise RuntimeError("Relay already started")
        self._thread = threading.Thread(target=self._run, name="stream-relay", daemon=True)
        self._thread.start()
        return self

    def events(self) -> Iterator[RelayEvent]:
        """Yield events until a terminal event has been delivered."""
        if self._thread is None:
            self.start()
        while not self._finished:
            if self._cancel.is_set():
                self._finished = True
                yield CancelledEvent()
                return
            try:
                event = self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            if self._cancel.is_set():
                self._finished = True
                yield CancelledEvent()
                return
            if isinstance(event, TERMINAL_EVENTS):
                self._finished = True
            yield event

    # Worker -------------------------------------------------------------

    def _run(self) -> None:
        try:
            response = self._client.chat(
                self._system_prompt,
                self._tools,
                self._history,
                stream=True,
                on_text=lambda text: self._emit(TextEvent(text)),
                on_reasoning=lambda text: self._emit(ReasoningEvent(text)),
                cancel=self._cancel,
            )
        except CancellationError:
            LOGGER.debug("LLM call stopped after cancellation")
            return
        except Exception as exc:  # worker boundary: every failure becomes an event
            if self._cancel.is_set():
                LOGGER.debug("Ignoring stream failure after cancellation: %s", exc)
                return
            LOGGER.warning("Stream failed: %s", exc)
            self._emit(ErrorEvent(str(exc) or exc.__class__.__name__))
            return

        if response.tool_calls:
            calls = tuple(
                call if isinstance(call, ToolCall) else ToolCall.from_dict(call)
                for call in response.tool_calls
            )
            self._emit(ToolCallsEvent(calls))
        if response.input_tokens or response.output_tokens:
            self._emit(UsageEvent(response.input_tokens, response.output_tokens))
        self._emit(DoneEvent(response.message or "", response.reasoning or ""))

    def _emit(self, event: RelayEvent) -> None:
        while not self._cancel.is_set():
            try:
                self._queue.put(event, timeout=self._poll_interval)
                return
            except queue.Full:
                continue


__all__ = [
    "CancelledEvent",
    "DoneEvent",
    "ErrorEvent",
    "ReasoningEvent",
    "RelayEvent",
    "StreamingRelay",
    "TextEvent",
    "ToolCallsEvent",
    "UsageEvent",
]
