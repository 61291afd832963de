"""Interactive prompts driving a :class:`SessionController` from the terminal."""

from __future__ import annotations

import json
import signal
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable

import click

from api_test_agent.core.approval import Decision
from api_test_agent.core.errors import AgentError
from api_test_agent.core.utils.logger import get_logger
from api_test_agent.execution.auth import build_auth
from api_test_agent.session.models import SessionState

from .render import format_test_line

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from api_test_agent.session.controller import SessionController
    from api_test_agent.tools.arguments import TestCase

LOGGER = get_logger(__name__)

HELP_TEXT = """Commands:
  /help                          Show this help
  /clear                         Start a new conversation
  /info                          Show session information
  /run                           Run the latest generated test plan
  /auth bearer <token>           Use a bearer token
  /auth apikey <header> <value>  Send an API key header
  /auth basic <user> <password>  Use HTTP basic auth
  /auth show                     Show the current authentication
  /auth clear                    Remove authentication
  /exit                          Quit
Press Ctrl-C while the agent is working to cancel the current operation."""

DECISION_KEYS = {
    "a": Decision.APPROVE,
    "d": Decision.DENY,
    "s": Decision.SKIP_REMAINING,
}

PromptFunc = Callable[..., str]


def parse_deselection(raw: str, count: int) -> list[int] | None:
    """Turn "1,3" (1-based tests to skip) into the 0-based indices to run.

    Returns ``None`` when every test should run.
    """
    text = raw.strip()
    if not text:
        return None
    skipped: set[int] = set()
    for part in text.replace(" ", ",").split(","):
        if not part:
            continue
        if "-" in part:
            start, _, end = part.partition("-")
            if not start.isdigit() or not end.isdigit():
                raise ValueError(f"Invalid range: {part}")
            skipped.update(range(int(start), int(end) + 1))
        elif part.isdigit():
            skipped.add(int(part))
        else:
            raise ValueError(f"Invalid test number: {part}")
    return [index for index in range(count) if index + 1 not in skipped]


@contextmanager
def cancel_on_interrupt(controller: SessionController) -> Iterator[None]:
    """Route Ctrl-C to ``controller.cancel`` while work is running."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum: int, frame: object) -> None:
        controller.cancel()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


class InteractiveDriver:
    """Answer the controller's questions through terminal prompts."""

    def __init__(
        self,
        controller: SessionController,
        *,
        prompt: PromptFunc = click.prompt,
    ) -> None:
        self.controller = controller
        self.prompt = prompt

    def drive(self) -> SessionState:
        """Run until the controller is idle again."""
        controller = self.controller
        while True:
            with cancel_on_interrupt(controller):
                state = controller.run_until_blocked()
            if state is SessionState.IDLE:
                return state
            try:
                if state is SessionState.AWAITING_CONFIRMATION:
                    self.ask_confirmation()
                elif state is SessionState.SHOWING_PLAN:
                    self.ask_plan_selection()
            except (click.Abort, KeyboardInterrupt, EOFError):
                controller.cancel()

    def ask_confirmation(self) -> None:
        call = self.controller.pending_call
        if call is None:
            return
        title = self.controller.registry.display_name(call.name)
        click.echo(click.style(f"➔ {title} ({call.name})", fg="cyan"))
        if call.arguments:
            click.echo(json.dumps(call.arguments, indent=2, ensure_ascii=False))
        choice = self.prompt(
            "[a]pprove / [d]eny / [s]kip remaining",
            type=click.Choice(sorted(DECISION_KEYS), case_sensitive=False),
            default="a",
            show_choices=False,
        )
        self.controller.decide(DECISION_KEYS[choice.lower()])

    def ask_plan_selection(self) -> None:
        tests = self.controller.plan_tests
        click.echo(click.style(f"Test plan ({len(tests)} tests):", bold=True))
        for index, case in enumerate(tests, start=1):
            click.echo(format_test_line(index, case.method, case.endpoint, case.description))
        while True:
            raw = self.prompt(
                "Tests to skip (e.g. 2,4-5), Enter to run all",
                default="",
                show_default=False,
            )
            try:
                selection = parse_deselection(raw, len(tests))
            except ValueError as exc:
                click.echo(click.style(str(exc), fg="red"))
                continue
            self.controller.confirm_plan(selection)
            return

    def run_plan(self, tests: Sequence[TestCase]) -> None:
        self.controller.run_plan(tests)
        self.drive()


class ChatLoop:
    """Read-eval loop of ``apitest chat``."""

    def __init__(
        self,
        controller: SessionController,
        *,
        prompt: PromptFunc = click.prompt,
    ) -> None:
        self.controller = controller
        self.prompt = prompt
        self.driver = InteractiveDriver(controller, prompt=prompt)

    def run(self) -> None:
        click.echo("Type a request, /help for commands, /exit to quit.")
        while True:
            try:
                text = self.prompt("apitest>", prompt_suffix=" ", show_default=False).strip()
            except (click.Abort, KeyboardInterrupt, EOFError):
                click.echo("\nGoodbye!")
                return
            if not text:
                continue
            if text.startswith("/"):
                if not self.handle_command(text):
                    click.echo("Goodbye!")
                    return
                continue
            try:
                self.controller.submit(text)
                self.driver.drive()
            except AgentError as exc:
                click.echo(click.style(f"Error: {exc}", fg="red"))

    def handle_command(self, text: str) -> bool:
        """Execute a slash command; returns ``False`` to leave the loop."""
        parts = text[1:].split()
        command = parts[0].lower() if parts else ""
        args = parts[1:]
        controller = self.controller

        if command in {"exit", "quit", "q"}:
            return False
        if command == "help":
            click.echo(HELP_TEXT)
        elif command == "clear":
            controller.clear()
        elif command == "info":
            for key, value in controller.info().items():
                click.echo(f"  {key}: {value}")
        elif command == "run":
            tests = controller.last_plan()
            if not tests:
                click.echo("No test plan yet. Ask the agent to generate one first.")
            else:
                self.driver.run_plan(tests)
        elif command == "auth":
            self.handle_auth(args)
        else:
            click.echo(f"Unknown command: /{command}. Type /help for the list of commands.")
        return True

    def handle_auth(self, args: Sequence[str]) -> None:
        executor = self.controller.executor
        if executor is None:
            click.echo("No API base URL configured; start the session with --url.")
            return
        action = args[0].lower() if args else "show"
        if action == "show":
            click.echo(f"Authentication: {executor.auth.describe()}")
            return
        try:
            if action == "clear":
                auth = build_auth("none")
            elif action == "bearer" and len(args) == 2:
                auth = build_auth("bearer", {"token": args[1]})
            elif action == "apikey" and len(args) == 3:
                auth = build_auth("apikey", {"key_name": args[1], "key_value": args[2]})
            elif action == "basic" and len(args) == 3:
                auth = build_auth("basic", {"username": args[1], "password": args[2]})
            else:
                click.echo("Usage: /auth bearer|apikey|basic|show|clear [values...]")
                return
        except AgentError as exc:
            click.echo(click.style(f"Error: {exc}", fg="red"))
            return
        self.controller.update_auth(auth)
        LOGGER.info("Authentication changed to %s", auth.auth_type)
        click.echo(click.style(f"✓ Authentication: {auth.describe()}", fg="green"))


__all__ = [
    "ChatLoop",
    "HELP_TEXT",
    "InteractiveDriver",
    "cancel_on_interrupt",
    "parse_deselection",
]
