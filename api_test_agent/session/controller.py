"""State machine driving one interactive conversation."""

from __future__ import annotations

import threading
import uuid
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from api_test_agent.core.approval import (
    ApprovalPolicy,
    ConfirmationGate,
    Decision,
    skipped_response,
)
from api_test_agent.core.errors import AgentError, InvalidTransitionError, PersistenceError
from api_test_agent.core.utils.logger import get_logger, set_correlation_id
from api_test_agent.tool_names import EXECUTE_TEST_GROUP, GENERATE_TEST_PLAN
from api_test_agent.tools import ToolContext, ToolDispatcher, ToolState
from api_test_agent.tools.arguments import TestGroupArgs, decode_test_cases

from .history import History
from .models import (
    Session,
    SessionState,
    ToolCall,
    ToolResponse,
    Turn,
    derive_title,
)
from .prompt_builder import build_system_prompt
from .relay import (
    CancelledEvent,
    DoneEvent,
    ErrorEvent,
    ReasoningEvent,
    StreamingRelay,
    TextEvent,
    ToolCallsEvent,
    UsageEvent,
)
from .replay import replay
from .transcript import Transcript

if TYPE_CHECKING:
    from collections.abc import Sequence

    from api_test_agent.core.storage.conversation_log import ConversationLog
    from api_test_agent.core.storage.endpoints import Endpoint, EndpointRepository
    from api_test_agent.core.utils.config import Settings
    from api_test_agent.providers.llm.base import LLMClient
    from api_test_agent.session.models import Conversation
    from api_test_agent.tools.arguments import TestCase
    from api_test_agent.tools.registry import ToolRegistry

LOGGER = get_logger(__name__)

CANCELLED_RESPONSE = {"status": "cancelled", "message": "Tool execution cancelled by user"}
INTERRUPTED_RESPONSE = {"status": "cancelled", "message": "Tool execution interrupted"}
NO_TESTS_SELECTED_RESPONSE = {"count": 0, "results": [], "status": "no_tests_selected"}
PLAN_SUMMARY_MESSAGE = (
    "Tests completed. {count} tests executed. "
    "Would you like me to analyze the results or run more tests?"
)

_BLOCKED_STATES = frozenset(
    {SessionState.IDLE, SessionState.AWAITING_CONFIRMATION, SessionState.SHOWING_PLAN}
)

StreamCallback = Callable[[str, str], None]


class SessionController:
    """Own a :class:`Session` and move it through its states.

    The controller is driven from a single thread: ``submit``, ``decide``,
    ``confirm_plan`` and ``run_plan`` change state, ``run_until_blocked``
    performs the work of the active states until the session is idle or
    waits for the user. The model call runs on a relay thread and tool
    handlers on a single worker thread; both only receive snapshots.
    ``cancel`` may be called from a signal handler while work is running.
    """

    def __init__(
        self,
        settings: Settings,
        client: LLMClient,
        registry: ToolRegistry,
        *,
        transcript: Transcript | None = None,
        executor: Any = None,
        endpoints: EndpointRepository | None = None,
        log: ConversationLog | None = None,
        project_id: str | None = None,
        policy: ApprovalPolicy | None = None,
        output_dir: Path | None = None,
        on_stream: StreamCallback | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.registry = registry
        self.dispatcher = ToolDispatcher(registry)
        if policy is None:
            policy = ApprovalPolicy(
                auto_execute=settings.auto_execute,
                audit_file=settings.audit_file if settings.audit_approvals else None,
            )
        self.gate = ConfirmationGate(registry, policy)
        self.transcript = transcript or Transcript()
        self.executor = executor
        self.endpoints = endpoints
        self.log = log
        self.project_id = project_id
        self.output_dir = output_dir or Path.cwd()
        self.on_stream = on_stream
        self.tool_state = ToolState()
        self.session = self._new_session()
        self.system_prompt = ""
        self.refresh_system_prompt()

        self._relay: StreamingRelay | None = None
        self._inflight: Future[dict[str, Any]] | None = None
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tool-worker")

    # Public API ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def history(self) -> History:
        return self.session.history

    @property
    def pending_call(self) -> ToolCall | None:
        return self.session.pending[0] if self.session.pending else None

    @property
    def plan_tests(self) -> list[TestCase]:
        return list(self.session.plan_tests)

    def submit(self, text: str, *, display_content: str | None = None) -> None:
        """Send a user message and start a model turn."""
        self._require(SessionState.IDLE, "submit a message")
        if not text.strip():
            raise ValueError("Cannot submit an empty message")
        self._ensure_conversation(text)
        turn = Turn.user(text, display_content=display_content)
        self._commit(turn)
        self.transcript.add("user", turn.visible_content)
        self.session.model_rounds = 0
        self._start_model_turn()

    def run_until_blocked(self) -> SessionState:
        """Advance the session until it is idle or waits for the user."""
        while True:
            state = self.session.state
            if state in _BLOCKED_STATES:
                return state
            if state in (SessionState.AWAITING_MODEL, SessionState.STREAMING):
                self._consume_stream()
            elif state is SessionState.EXECUTING_TOOL:
                self._execute_pending()
            elif state is SessionState.RUNNING_TEST_GROUP:
                self._run_test_group()
            elif state is SessionState.CANCELLED:
                self._finish_cancel()

    def send(self, text: str) -> SessionState:
        self.submit(text)
        return self.run_until_blocked()

    def decide(self, decision: Decision) -> None:
        """Resolve the tool call that awaits confirmation."""
        self._require(SessionState.AWAITING_CONFIRMATION, "decide on a tool call")
        call = self.session.pending[0]
        self.gate.record(call, decision)
        if decision is Decision.APPROVE:
            if call.name == EXECUTE_TEST_GROUP:
                self._prepare_group(call)
            else:
                self._set_state(SessionState.EXECUTING_TOOL)
            return
        if decision is Decision.SKIP_REMAINING:
            self.session.skip_remaining = True
        self.transcript.add("warning", f"Skipped {self.registry.display_name(call.name)}")
        self._respond(call, skipped_response(call))

    def confirm_plan(self, selection: Sequence[int] | None = None) -> None:
        """Run the shown plan, or only the tests at ``selection`` indices."""
        self._require(SessionState.SHOWING_PLAN, "confirm a test plan")
        tests = self.session.plan_tests
        if selection is None:
            selected = list(tests)
        else:
            selected = [tests[index] for index in sorted(set(selection)) if 0 <= index < len(tests)]
        if selected:
            self.session.plan_tests = selected
            self._set_state(SessionState.RUNNING_TEST_GROUP)
            return

        call = self.session.plan_call
        self._clear_plan()
        self.transcript.add("subtle", "No tests selected")
        if call is None:
            self._set_state(SessionState.IDLE)
        else:
            self._respond(call, dict(NO_TESTS_SELECTED_RESPONSE))

    def run_plan(self, tests: Sequence[TestCase], *, review: bool = True) -> None:
        """Run tests chosen by the user rather than requested by the model."""
        self._require(SessionState.IDLE, "run a test plan")
        if not tests:
            raise ValueError("No tests to run")
        self.session.plan_tests = list(tests)
        self.session.plan_label = ""
        self.session.plan_call = None
        if review and not self.gate.policy.auto_execute:
            self._set_state(SessionState.SHOWING_PLAN)
        else:
            self._set_state(SessionState.RUNNING_TEST_GROUP)

    def last_plan(self) -> list[TestCase]:
        """The test cases of the latest generated plan."""
        return decode_test_cases(self.tool_state.last_plan)

    def cancel(self) -> bool:
        """Request cancellation of the current operation.

        While work is running this only closes the signal; the work loop
        finishes the cancellation. When the session waits for the user the
        cancellation completes immediately. Returns ``False`` when idle.
        """
        state = self.session.state
        if state is SessionState.IDLE:
            return False
        self.session.cancel_event.set()
        if state in (SessionState.AWAITING_CONFIRMATION, SessionState.SHOWING_PLAN):
            self._set_state(SessionState.CANCELLED)
            self._finish_cancel()
        return True

    def clear(self) -> None:
        """Start a new in-memory conversation; the log is left untouched."""
        self._require(SessionState.IDLE, "clear the conversation")
        self.session = self._new_session()
        self.tool_state = ToolState()
        set_correlation_id(None)
        self.transcript.add("subtle", "Started a new conversation")

    def resume(self, conversation_id: str) -> Conversation:
        """Load a persisted conversation and continue it."""
        self._require(SessionState.IDLE, "resume a conversation")
        if self.log is None or not self.project_id:
            raise PersistenceError("Conversations can only be resumed within a project")
        conversation = self.log.load_conversation(conversation_id)
        if conversation is None or conversation.project_id != self.project_id:
            raise PersistenceError(f"Conversation {conversation_id} not found")

        turns = self.log.get_messages(conversation_id)
        history = replay(turns, self.transcript, self.registry)
        self.session = self._new_session()
        self.session.history = history
        self.session.conversation_id = conversation_id
        self.session.ephemeral = False
        self.tool_state = _restore_tool_state(turns)
        set_correlation_id(conversation_id)

        for call in history.unanswered():
            LOGGER.warning("Answering interrupted tool call %s (%s)", call.name, call.id)
            self._commit(Turn.tool(ToolResponse(call.id, call.name, dict(INTERRUPTED_RESPONSE))))
        LOGGER.info("Resumed conversation %s with %d turns", conversation_id, len(history))
        return conversation

    def update_auth(self, auth: Any) -> None:
        if self.executor is None:
            raise AgentError("No API base URL configured")
        self.executor.update_auth(auth)
        self.refresh_system_prompt()

    def refresh_system_prompt(self) -> None:
        catalogue: list[Endpoint] = []
        if self.endpoints is not None and self.project_id:
            try:
                catalogue = self.endpoints.load_endpoints(self.project_id)
            except (OSError, ValueError) as exc:
                LOGGER.warning("Could not load endpoints for %s: %s", self.project_id, exc)
        auth = getattr(self.executor, "auth", None)
        self.system_prompt = build_system_prompt(
            getattr(self.executor, "base_url", None) or self.settings.api_base_url,
            catalogue,
            auth_description=auth.describe() if auth is not None else None,
        )

    def tool_context(self, muted: threading.Event | None = None) -> ToolContext:
        """Context for one tool run; its transcript output stops once ``muted`` is set."""
        emit = self.transcript.add
        if muted is not None:
            emit = self._muted_emit(muted)
        return ToolContext(
            settings=self.settings,
            executor=self.executor,
            llm_client=self.client,
            endpoints=self.endpoints,
            project_id=self.project_id,
            output_dir=self.output_dir,
            state=self.tool_state,
            cancel=self.session.cancel_event,
            emit=emit,
        )

    def _muted_emit(self, muted: threading.Event) -> Callable[[str, str], None]:
        def emit(kind: str, text: str) -> None:
            if not muted.is_set():
                self.transcript.add(kind, text)

        return emit

    def info(self) -> dict[str, Any]:
        session = self.session
        return {
            "state": session.state.value,
            "conversation_id": session.conversation_id,
            "project_id": self.project_id,
            "durable": session.durable,
            "turns": len(session.history),
            "input_tokens": session.total_input_tokens,
            "output_tokens": session.total_output_tokens,
            "auto_execute": self.gate.policy.auto_execute,
        }

    def close(self) -> None:
        self._pool.shutdown(wait=False)

    # Model turns --------------------------------------------------------

    def _start_model_turn(self) -> None:
        session = self.session
        limit = self.settings.max_tool_rounds
        if limit and session.model_rounds >= limit:
            LOGGER.warning("Tool round limit of %d reached", limit)
            self.transcript.add(
                "warning", f"Stopped after {limit} model round trips; send a message to continue"
            )
            self._set_state(SessionState.IDLE)
            return
        session.model_rounds += 1
        session.buffer.reset()
        self._relay = StreamingRelay(
            self.client,
            system_prompt=self.system_prompt,
            tools=self.registry.definitions(),
            history=session.history.snapshot(),
            cancel=session.cancel_event,
            queue_size=self.settings.stream_queue_size,
            poll_interval=self.settings.poll_interval,
        ).start()
        self._set_state(SessionState.AWAITING_MODEL)

    def _consume_stream(self) -> None:
        relay = self._relay
        if relay is None:
            raise InvalidTransitionError("No active model stream")
        buffer = self.session.buffer
        for event in relay.events():
            if isinstance(event, (TextEvent, ReasoningEvent)):
                if self.session.state is SessionState.AWAITING_MODEL:
                    self._set_state(SessionState.STREAMING)
                if isinstance(event, TextEvent):
                    buffer.text += event.text
                    self._stream("assistant", event.text)
                else:
                    buffer.reasoning += event.text
                    self._stream("reasoning", event.text)
            elif isinstance(event, ToolCallsEvent):
                buffer.tool_calls = event.calls
            elif isinstance(event, UsageEvent):
                buffer.input_tokens = event.input_tokens
                buffer.output_tokens = event.output_tokens
            elif isinstance(event, ErrorEvent):
                self.transcript.add("error", f"Error - {event.message}")
                buffer.reset()
                self._relay = None
                self._set_state(SessionState.IDLE)
                return
            elif isinstance(event, DoneEvent):
                self._commit_assistant(event)
                return
            elif isinstance(event, CancelledEvent):
                self._set_state(SessionState.CANCELLED)
                return

    def _commit_assistant(self, event: DoneEvent) -> None:
        session = self.session
        buffer = session.buffer
        reasoning = buffer.reasoning or event.reasoning
        turn = Turn.assistant(
            buffer.text or event.message,
            reasoning=reasoning,
            tool_calls=buffer.tool_calls,
            input_tokens=buffer.input_tokens,
            output_tokens=buffer.output_tokens,
        )
        self._commit(turn)
        session.total_input_tokens += turn.input_tokens
        session.total_output_tokens += turn.output_tokens
        if reasoning:
            self.transcript.add("reasoning", reasoning)
        if turn.content:
            self.transcript.add("assistant", turn.content)
        buffer.reset()
        self._relay = None

        session.skip_remaining = False
        session.pending = deque(turn.tool_calls)
        if not session.pending:
            self._set_state(SessionState.IDLE)
            return
        LOGGER.debug("Model requested %d tool call(s)", len(session.pending))
        self._process_next_call()

    def _stream(self, kind: str, text: str) -> None:
        if self.on_stream is not None:
            self.on_stream(kind, text)

    # Tool calls ---------------------------------------------------------

    def _process_next_call(self) -> None:
        session = self.session
        call = session.pending[0]
        if self.gate.requires_confirmation(call):
            if session.skip_remaining:
                self.gate.record(call, Decision.SKIP_REMAINING, automatic=True)
                self._respond(call, skipped_response(call, reason="skipped"))
                return
            self._set_state(SessionState.AWAITING_CONFIRMATION)
            return
        if self.gate.policy.auto_execute and self.registry.has(call.name):
            self.gate.record(call, Decision.APPROVE, automatic=True)
        if call.name == EXECUTE_TEST_GROUP:
            self._prepare_group(call)
        else:
            self._set_state(SessionState.EXECUTING_TOOL)

    def _prepare_group(self, call: ToolCall) -> None:
        try:
            args = self.dispatcher.decode(call)
        except AgentError as exc:
            LOGGER.info("Rejected %s call %s: %s", call.name, call.id, exc)
            self._respond(call, exc.to_response(call.name))
            return
        session = self.session
        session.plan_tests = list(args.tests)
        session.plan_label = args.label
        session.plan_call = call
        if self.gate.policy.auto_execute:
            self._set_state(SessionState.RUNNING_TEST_GROUP)
        else:
            self._set_state(SessionState.SHOWING_PLAN)

    def _execute_pending(self) -> None:
        call = self.session.pending[0]
        self.transcript.add("tool", f"➔ {self.registry.display_name(call.name)}")
        muted = threading.Event()
        context = self.tool_context(muted)
        response = self._run_in_worker(lambda: self.dispatcher.dispatch(call, context), muted)
        if response is not None:
            self._respond(call, response)

    def _run_test_group(self) -> None:
        session = self.session
        call = session.plan_call
        args = TestGroupArgs(tests=list(session.plan_tests), label=session.plan_label)
        run_call = call or ToolCall(id="", name=EXECUTE_TEST_GROUP)
        self.transcript.add("tool", f"➔ {self.registry.display_name(EXECUTE_TEST_GROUP)}")
        muted = threading.Event()
        context = self.tool_context(muted)
        response = self._run_in_worker(lambda: self.dispatcher.run(run_call, args, context), muted)
        if response is None:
            return
        self._clear_plan()
        if call is not None:
            self._respond(call, response)
            return
        self._set_state(SessionState.IDLE)
        self.submit(PLAN_SUMMARY_MESSAGE.format(count=response.get("count", 0)))

    def _run_in_worker(
        self, work: Callable[[], dict[str, Any]], muted: threading.Event
    ) -> dict[str, Any] | None:
        """Run ``work`` on the tool worker, returning ``None`` when cancelled.

        After a cancellation the worker gets ``cancel_grace`` seconds to stop
        (the group runner checks the signal between tests). A worker still
        running after that is abandoned with its transcript output muted.
        """
        cancel = self.session.cancel_event
        future = self._pool.submit(work)
        self._inflight = future
        while True:
            try:
                result = future.result(timeout=self.settings.poll_interval)
            except FutureTimeoutError:
                if cancel.is_set():
                    done, _ = wait_futures([future], timeout=self.settings.cancel_grace)
                    if not done:
                        muted.set()
                        LOGGER.warning("Tool worker still running after cancellation; abandoned")
                    self._set_state(SessionState.CANCELLED)
                    return None
                continue
            if cancel.is_set():
                self._set_state(SessionState.CANCELLED)
                return None
            self._inflight = None
            return result

    def _respond(self, call: ToolCall, response: dict[str, Any]) -> None:
        """Commit the response to ``call`` and move on to the next step."""
        session = self.session
        self._commit(Turn.tool(ToolResponse(call.id, call.name, response)))
        if session.pending and session.pending[0].id == call.id:
            session.pending.popleft()
        if session.pending and self.settings.extra_tool_calls == "ignore":
            while session.pending:
                extra = session.pending.popleft()
                LOGGER.info("Ignoring extra tool call %s (%s)", extra.name, extra.id)
                response = skipped_response(extra, reason="ignored")
                self._commit(Turn.tool(ToolResponse(extra.id, extra.name, response)))
        if session.pending:
            self._process_next_call()
            return
        self._start_model_turn()

    # Cancellation -------------------------------------------------------

    def _finish_cancel(self) -> None:
        session = self.session
        buffer = session.buffer
        if self._relay is not None and (buffer.text.strip() or buffer.reasoning.strip()):
            content = f"{buffer.text} (cancelled)" if buffer.text.strip() else "(cancelled)"
            self._commit(Turn.assistant(content, reasoning=buffer.reasoning))

        partial = self._partial_results()
        for index, call in enumerate(list(session.pending)):
            response = dict(CANCELLED_RESPONSE)
            if index == 0 and partial:
                response["partial_results"] = partial
            self._commit(Turn.tool(ToolResponse(call.id, call.name, response)))

        session.pending.clear()
        session.skip_remaining = False
        self._clear_plan()
        buffer.reset()
        self._relay = None
        self._inflight = None
        session.cancel_event = threading.Event()
        self.transcript.add("warning", "Operation cancelled")
        self._set_state(SessionState.IDLE)

    def _partial_results(self) -> list[dict[str, Any]]:
        """Results of requests that ran before the cancelled tool stopped."""
        future = self._inflight
        if future is None or not future.done() or future.exception() is not None:
            return []
        result = future.result()
        results = result.get("results")
        if isinstance(results, list):
            return list(results)
        if "method" in result and "endpoint" in result:
            return [dict(result)]
        return []

    # Internal -----------------------------------------------------------

    def _new_session(self) -> Session:
        return Session(
            history=History(),
            project_id=self.project_id,
            ephemeral=self.log is None or not self.project_id,
        )

    def _require(self, state: SessionState, action: str) -> None:
        if self.session.state is not state:
            raise InvalidTransitionError(
                f"Cannot {action} while {self.session.state.value} (expected {state.value})"
            )

    def _set_state(self, state: SessionState) -> None:
        with self.session.lock:
            previous = self.session.state
            self.session.state = state
        if previous is not state:
            LOGGER.debug("Session state %s -> %s", previous.value, state.value)

    def _clear_plan(self) -> None:
        self.session.plan_tests = []
        self.session.plan_label = ""
        self.session.plan_call = None

    def _ensure_conversation(self, first_message: str) -> None:
        session = self.session
        if session.ephemeral or session.conversation_id or self.log is None:
            return
        conversation_id = uuid.uuid4().hex
        try:
            self.log.create_conversation(
                self.project_id or "", conversation_id, derive_title(first_message)
            )
        except PersistenceError as exc:
            self._degrade(exc)
            return
        session.conversation_id = conversation_id
        set_correlation_id(conversation_id)
        LOGGER.info("Started conversation %s", conversation_id)

    def _commit(self, turn: Turn) -> None:
        with self.session.lock:
            self.session.history.append(turn)
        self._persist(turn)

    def _persist(self, turn: Turn) -> None:
        session = self.session
        if not session.durable or self.log is None:
            return
        try:
            self.log.save_message(session.conversation_id or "", turn)
        except PersistenceError as exc:
            self._degrade(exc)

    def _degrade(self, exc: PersistenceError) -> None:
        LOGGER.warning("Conversation persistence disabled: %s", exc)
        self.session.ephemeral = True
        self.transcript.add("warning", f"Conversation will not be saved: {exc}")


def _restore_tool_state(turns: Sequence[Turn]) -> ToolState:
    """Recover the latest plan and group results from replayed turns."""
    state = ToolState()
    for turn in turns:
        response = turn.tool_response
        if response is None:
            continue
        payload = response.response
        if response.name == GENERATE_TEST_PLAN and isinstance(payload.get("test_cases"), list):
            state.last_plan = list(payload["test_cases"])
        elif response.name == EXECUTE_TEST_GROUP and isinstance(payload.get("results"), list):
            state.last_group_results = list(payload["results"])
    return state


__all__ = [
    "CANCELLED_RESPONSE",
    "NO_TESTS_SELECTED_RESPONSE",
    "PLAN_SUMMARY_MESSAGE",
    "SessionController",
]
