"""User-visible transcript of a session."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable

KINDS = frozenset(
    {"user", "assistant", "reasoning", "subtle", "success", "error", "warning", "tool"}
)


@dataclass(frozen=True)
class TranscriptLine:
    kind: str
    text: str


class Transcript:
    """Append-only list of display lines.

    Tool handlers write to it from the worker thread while the controller
    writes from the main thread, so appends are serialised. Listeners are
    called with each new line, outside the lock.
    """

    def __init__(self) -> None:
        self._lines: list[TranscriptLine] = []
        self._lock = threading.Lock()
        self._listeners: list[Callable[[TranscriptLine], None]] = []

    def add_listener(self, listener: Callable[[TranscriptLine], None]) -> None:
        self._listeners.append(listener)

    def add(self, kind: str, text: str) -> TranscriptLine:
        if kind not in KINDS:
            raise ValueError(f"Unknown transcript line kind: {kind!r}")
        line = TranscriptLine(kind, text)
        with self._lock:
            self._lines.append(line)
        for listener in list(self._listeners):
            listener(line)
        return line

    def lines(self) -> list[TranscriptLine]:
        with self._lock:
            return list(self._lines)

    def texts(self, kind: str | None = None) -> list[str]:
        return [line.text for line in self.lines() if kind is None or line.kind == kind]

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)


__all__ = ["KINDS", "Transcript", "TranscriptLine"]
