"""Command line entry point for the API test agent."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from api_test_agent.core.approval import ApprovalPolicy
from api_test_agent.core.errors import AgentError, PersistenceError
from api_test_agent.core.storage.conversation_log import ConversationLog
from api_test_agent.core.storage.endpoints import EndpointRepository
from api_test_agent.core.utils.config import load_settings
from api_test_agent.core.utils.logger import configure_logging, get_logger
from api_test_agent.execution.auth import AUTH_TYPES, build_auth
from api_test_agent.execution.http_executor import HTTPTestExecutor
from api_test_agent.providers.llm import LLMError, create_client
from api_test_agent.session.controller import SessionController
from api_test_agent.session.transcript import Transcript
from api_test_agent.tool_names import EXECUTE_TEST, EXECUTE_TEST_GROUP
from api_test_agent.tools import registry

from .interactive import ChatLoop, InteractiveDriver
from .render import TerminalRenderer

if TYPE_CHECKING:
    from api_test_agent.core.utils.config import Settings
    from api_test_agent.session.history import History

LOGGER = get_logger(__name__)


@dataclass
class CLIState:
    """Holds shared objects for CLI commands."""

    settings: Settings
    verbosity: int = 0


def _resolve_log_level(verbose: int, quiet: bool) -> str:
    """Resolve log level based on verbosity flags."""
    if quiet:
        return "ERROR"
    if verbose >= 2:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return "WARNING"


def _initialise_state(config_path: Path | None, *, verbose: int, quiet: bool) -> CLIState:
    """Load settings and configure logging."""
    try:
        settings = load_settings(config_path)
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc

    if verbose or quiet:
        settings.log_level = _resolve_log_level(verbose, quiet)
    configure_logging(
        settings.log_level,
        structured=settings.structured_logging,
        log_file=settings.log_file,
    )
    LOGGER.debug("Settings loaded (provider=%s, model=%s)", settings.provider, settings.model)
    return CLIState(settings=settings, verbosity=verbose)


def _auth_from_options(settings: Settings, options: dict[str, Any]) -> Any:
    auth_type = options.get("auth") or settings.auth_type
    data = dict(settings.auth_data)
    for key in ("token", "key_name", "key_value", "username", "password"):
        if options.get(key):
            data[key] = options[key]
    try:
        return build_auth(auth_type, data)
    except AgentError as exc:
        raise click.BadParameter(str(exc), param_hint="--auth") from exc


def build_controller(
    settings: Settings,
    *,
    url: str | None,
    project: str | None,
    auto: bool,
    auth_options: dict[str, Any],
    renderer: TerminalRenderer | None = None,
) -> SessionController:
    """Assemble the controller and its collaborators from settings and options."""
    try:
        client = create_client(settings)
    except LLMError as exc:
        raise click.ClickException(str(exc)) from exc

    base_url = url or settings.api_base_url
    executor = None
    if base_url:
        executor = HTTPTestExecutor(
            base_url,
            auth=_auth_from_options(settings, auth_options),
            timeout=settings.request_timeout,
        )

    log = None
    endpoints = None
    if project:
        settings.ensure_data_dir()
        endpoints = EndpointRepository(settings.data_dir / "projects")
        try:
            log = ConversationLog.for_project(settings.data_dir, project)
        except PersistenceError as exc:
            click.echo(click.style(f"Warning: {exc}; conversation will not be saved", fg="yellow"))

    transcript = Transcript()
    if renderer is not None:
        transcript.add_listener(renderer.on_line)
    return SessionController(
        settings,
        client,
        registry,
        transcript=transcript,
        executor=executor,
        endpoints=endpoints,
        log=log,
        project_id=project,
        policy=ApprovalPolicy(
            auto_execute=auto or settings.auto_execute,
            audit_file=settings.audit_file if settings.audit_approvals else None,
        ),
        on_stream=renderer.on_stream if renderer is not None else None,
    )


def collect_test_results(history: History) -> list[dict[str, Any]]:
    """Every test record produced by the test tools in ``history``."""
    records: list[dict[str, Any]] = []
    for turn in history:
        response = turn.tool_response
        if response is None:
            continue
        if response.name == EXECUTE_TEST and "passed" in response.response:
            records.append(response.response)
        elif response.name == EXECUTE_TEST_GROUP:
            results = response.response.get("results")
            if isinstance(results, list):
                records.extend(item for item in results if isinstance(item, dict))
    return records


def _auth_options(func):
    func = click.option("--pass", "password", help="Password for basic auth.")(func)
    func = click.option("--user", "username", help="Username for basic auth.")(func)
    func = click.option("--value", "key_value", help="API key value.")(func)
    func = click.option("--key", "key_name", help="API key header name.")(func)
    func = click.option("--token", help="Bearer token.")(func)
    func = click.option(
        "--auth",
        type=click.Choice(AUTH_TYPES, case_sensitive=False),
        help="Authentication for the API under test.",
    )(func)
    return func


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    help="Path to configuration file.",
)
@click.option("-v", "--verbose", count=True, help="Verbosity: -v (info), -vv (debug)")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: int, quiet: bool) -> None:
    """Conversational HTTP API testing agent.

    Examples:
      apitest chat --url https://api.example.com --project shop
      apitest test --url https://api.example.com --prompt "test the /users endpoints"
      apitest conversations --project shop
    """
    ctx.ensure_object(dict)
    ctx.obj["cli_state"] = _initialise_state(config_path, verbose=verbose, quiet=quiet)


def _state(ctx: click.Context) -> CLIState:
    return ctx.obj["cli_state"]


@cli.command()
@click.option("--url", help="Base URL of the API under test.")
@click.option("--project", help="Project name; conversations are saved per project.")
@click.option("--resume", "resume_id", help="Conversation id to continue.")
@click.option("--auto", is_flag=True, help="Run tools without asking for confirmation.")
@_auth_options
@click.pass_context
def chat(
    ctx: click.Context,
    url: str | None,
    project: str | None,
    resume_id: str | None,
    auto: bool,
    **auth_options: Any,
) -> None:
    """Start an interactive testing session."""
    settings = _state(ctx).settings
    if resume_id and not project:
        raise click.UsageError("--resume requires --project")

    renderer = TerminalRenderer()
    controller = build_controller(
        settings,
        url=url,
        project=project,
        auto=auto,
        auth_options=auth_options,
        renderer=renderer,
    )
    try:
        click.echo(click.style("API Test Agent", bold=True))
        if controller.executor is not None:
            click.echo(f"Testing {controller.executor.base_url}")
        if resume_id:
            try:
                conversation = controller.resume(resume_id)
            except PersistenceError as exc:
                raise click.ClickException(str(exc)) from exc
            click.echo(click.style(f"Resumed: {conversation.title}", fg="bright_black"))
        ChatLoop(controller).run()
    finally:
        controller.close()


@cli.command(name="test")
@click.option("--url", required=True, help="Base URL of the API under test.")
@click.option("--prompt", "prompt_text", required=True, help="What to test.")
@click.option("--project", help="Project name; the run is saved as a conversation.")
@click.option(
    "--auto/--no-auto",
    default=True,
    show_default=True,
    help="Run tools without asking for confirmation.",
)
@_auth_options
@click.pass_context
def test_command(
    ctx: click.Context,
    url: str,
    prompt_text: str,
    project: str | None,
    auto: bool,
    **auth_options: Any,
) -> None:
    """Run one request headlessly; exits with status 1 when a test fails."""
    settings = _state(ctx).settings
    renderer = TerminalRenderer()
    controller = build_controller(
        settings,
        url=url,
        project=project,
        auto=auto,
        auth_options=auth_options,
        renderer=renderer,
    )
    try:
        controller.submit(prompt_text)
        InteractiveDriver(controller).drive()
    except AgentError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        controller.close()

    records = collect_test_results(controller.history)
    failed = sum(1 for record in records if not record.get("passed"))
    click.echo("=" * 45)
    click.echo(
        f"Summary: {len(records)} executed, {len(records) - failed} passed, {failed} failed"
    )
    if failed:
        ctx.exit(1)


@cli.command()
@click.option("--project", required=True, help="Project name.")
@click.option("--delete", "delete_id", help="Delete the conversation with this id.")
@click.pass_context
def conversations(ctx: click.Context, project: str, delete_id: str | None) -> None:
    """List the saved conversations of a project."""
    settings = _state(ctx).settings
    try:
        log = ConversationLog.for_project(settings.data_dir, project)
    except PersistenceError as exc:
        raise click.ClickException(str(exc)) from exc
    try:
        if delete_id:
            if not log.delete_conversation(delete_id):
                raise click.ClickException(f"Conversation {delete_id} not found")
            click.echo(f"Deleted {delete_id}")
            return
        items = log.list_conversations(project)
    except PersistenceError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        log.close()

    if not items:
        click.echo("No conversations yet.")
        return
    for item in items:
        click.echo(f"{item.id}  {item.updated_at:%Y-%m-%d %H:%M}  {item.title}")


def main() -> None:
    """Invoke the CLI entry point."""
    cli(prog_name="apitest")


__all__ = ["CLIState", "build_controller", "cli", "collect_test_results", "main"]
