"""Terminal rendering of transcript lines and streamed text."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from api_test_agent.session.transcript import TranscriptLine

STYLES: dict[str, dict[str, object]] = {
    "user": {"fg": "bright_white", "bold": True},
    "assistant": {},
    "reasoning": {"fg": "bright_black", "italic": True},
    "subtle": {"fg": "bright_black"},
    "success": {"fg": "green"},
    "error": {"fg": "red"},
    "warning": {"fg": "yellow"},
    "tool": {"fg": "cyan"},
}


class TerminalRenderer:
    """Print transcript lines, avoiding a second copy of streamed text.

    Text and reasoning arrive first as stream fragments; when the controller
    later commits the full line to the transcript only the line break is
    written.
    """

    def __init__(self, *, color: bool | None = None) -> None:
        self.color = color
        self._streamed: dict[str, bool] = {"assistant": False, "reasoning": False}
        self._open_kind: str | None = None

    def on_stream(self, kind: str, text: str) -> None:
        if self._open_kind is not None and self._open_kind != kind:
            click.echo("", color=self.color)
        if self._open_kind != kind:
            self._streamed[kind] = True
            self._open_kind = kind
        click.echo(click.style(text, **STYLES.get(kind, {})), nl=False, color=self.color)

    def on_line(self, line: TranscriptLine) -> None:
        if line.kind in self._streamed and self._streamed[line.kind]:
            self._streamed[line.kind] = False
            if self._open_kind == line.kind:
                click.echo("", color=self.color)
                self._open_kind = None
            return
        self._close_stream()
        text = f"> {line.text}" if line.kind == "user" else line.text
        click.echo(click.style(text, **STYLES.get(line.kind, {})), color=self.color)

    def _close_stream(self) -> None:
        if self._open_kind is not None:
            click.echo("", color=self.color)
            self._open_kind = None
        for kind in self._streamed:
            self._streamed[kind] = False


def format_test_line(index: int, method: str, endpoint: str, description: str = "") -> str:
    suffix = f"  {description}" if description else ""
    return f"  [{index}] {method} {endpoint}{suffix}"


__all__ = ["STYLES", "TerminalRenderer", "format_test_line"]
