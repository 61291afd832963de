"""Shared HTTP plumbing and data types for chat-completion providers."""

from __future__ import annotations

import json
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Protocol

import requests

from api_test_agent.core.errors import CancellationError
from api_test_agent.core.utils.logger import get_logger
from api_test_agent.session.models import ToolCall

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from api_test_agent.session.models import Turn

LOGGER = get_logger(__name__)

TextCallback = Callable[[str], None]


class LLMError(Exception):
    """Base class for provider failures."""


class LLMConnectionError(LLMError):
    """The provider could not be reached."""


class LLMTimeoutError(LLMError):
    """The provider did not answer in time."""


class LLMRateLimitError(LLMError):
    """The provider rejected the request because of rate limiting."""


class LLMResponseError(LLMError):
    """The provider answered with an error status or a malformed body."""


class LLMRetryExhaustedError(LLMError):
    """Every retry attempt failed."""


@dataclass
class RetryConfig:
    """Exponential backoff parameters for provider requests."""

    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.1
    retryable_status_codes: frozenset[int] = frozenset({429, 500, 502, 503, 504})


@dataclass
class ChatResponse:
    """One complete assistant reply."""

    message: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


class LLMClient(Protocol):
    """Interface the session engine requires from a chat provider.

    ``tools`` are plain ``{name, description, parameters}`` mappings and
    ``history`` is the ordered list of turns. When ``stream`` is true the
    client reports text and reasoning fragments through the callbacks as they
    arrive; the returned :class:`ChatResponse` always carries the full reply.
    Implementations should stop early and raise ``CancellationError`` once
    ``cancel`` is set.
    """

    def chat(
        self,
        system_prompt: str,
        tools: Sequence[Mapping[str, Any]],
        history: Sequence[Turn],
        *,
        stream: bool = False,
        on_text: TextCallback | None = None,
        on_reasoning: TextCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ChatResponse: ...


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Decode tool-call arguments that may arrive as a JSON string."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.debug("Discarding non-JSON tool arguments: %s", raw[:200])
            return {}
        return value if isinstance(value, dict) else {}
    return {}


class HTTPChatLLMClient(ABC):
    """Base class for providers reached over HTTPS with JSON bodies."""

    _COMPLETIONS_PATH = "/chat/completions"

    def __init__(
        self,
        provider_name: str,
        api_key: str,
        model: str,
        *,
        base_url: str,
        timeout: float | None = None,
        retry_config: RetryConfig | None = None,
        extra_headers: Mapping[str, str] | None = None,
    ) -> None:
        self._provider_name = provider_name
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self.extra_headers = dict(extra_headers or {})

    # Configuration ------------------------------------------------------

    def configure_retry(self, retry_config: RetryConfig) -> None:
        self.retry_config = retry_config

    def configure_timeout(self, timeout: float | None) -> None:
        self.timeout = timeout

    # Provider hooks -----------------------------------------------------

    @abstractmethod
    def chat(
        self,
        system_prompt: str,
        tools: Sequence[Mapping[str, Any]],
        history: Sequence[Turn],
        *,
        stream: bool = False,
        on_text: TextCallback | None = None,
        on_reasoning: TextCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ChatResponse:
        """Send one request and return the assistant reply."""

    def _build_headers(self, extra_headers: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self.extra_headers)
        if extra_headers:
            headers.update(extra_headers)
        return headers

    def _request_url(self) -> str:
        return f"{self.base_url}{self._COMPLETIONS_PATH}"

    # Transport ----------------------------------------------------------

    def _post(
        self,
        payload: dict[str, Any],
        *,
        cancel: threading.Event | None = None,
    ) -> dict[str, Any]:
        response = self._send(payload, stream=False, cancel=cancel)
        try:
            return self._decode_json(response)
        finally:
            response.close()

    def _stream_events(
        self,
        payload: dict[str, Any],
        *,
        cancel: threading.Event | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Yield decoded ``data:`` payloads of a server-sent event stream."""
        response = self._send(payload, stream=True, cancel=cancel)
        try:
            for line in response.iter_lines(decode_unicode=True):
                if cancel is not None and cancel.is_set():
                    raise CancellationError("Stream cancelled")
                if not line or not line.startswith("data:"):
                    continue
                data = line[5:].strip()
                if data == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:
                    LOGGER.debug("%s sent undecodable stream chunk: %s", self._provider_name, data)
                    continue
                if isinstance(chunk, dict):
                    yield chunk
        finally:
            response.close()

    def _send(
        self,
        payload: dict[str, Any],
        *,
        stream: bool,
        cancel: threading.Event | None,
    ) -> requests.Response:
        attempts = max(1, self.retry_config.max_retries)
        last_error: LLMError | None = None
        for attempt in range(1, attempts + 1):
            if cancel is not None and cancel.is_set():
                raise CancellationError("Request cancelled")
            try:
                response = requests.post(
                    self._request_url(),
                    headers=self._build_headers(),
                    json=payload,
                    timeout=self.timeout,
                    stream=stream,
                )
            except requests.RequestException as exc:
                last_error = self._wrap_transport_error(exc)
            else:
                if response.status_code < 400:
                    return response
                error = self._error_from_status(response.status_code, response.text)
                response.close()
                if response.status_code not in self.retry_config.retryable_status_codes:
                    raise error
                last_error = error

            if attempt < attempts:
                delay = self._calculate_delay(attempt)
                LOGGER.warning(
                    "%s request failed (%s); retrying in %.2fs (attempt %d/%d)",
                    self._provider_name,
                    last_error,
                    delay,
                    attempt,
                    attempts,
                )
                if cancel is not None:
                    if cancel.wait(delay):
                        raise CancellationError("Request cancelled")
                else:
                    time.sleep(delay)

        raise LLMRetryExhaustedError(
            f"{self._provider_name} request failed after {attempts} attempt(s): "
            f"{last_error or 'unknown reason'}"
        )

    def _wrap_transport_error(self, exc: Exception) -> LLMError:
        if isinstance(exc, requests.Timeout):
            return LLMTimeoutError(f"{self._provider_name} request timed out: {exc}")
        return LLMConnectionError(f"{self._provider_name} connection failed: {exc}")

    def _error_from_status(self, status_code: int, body: str) -> LLMError:
        snippet = (body or "").strip()[:500]
        message = f"{self._provider_name} returned HTTP {status_code}: {snippet}"
        if status_code == 429:
            return LLMRateLimitError(message)
        if status_code in {408, 504}:
            return LLMTimeoutError(message)
        if status_code >= 500:
            return LLMConnectionError(message)
        return LLMResponseError(message)

    def _calculate_delay(self, attempt: int) -> float:
        config = self.retry_config
        delay = min(
            config.max_delay,
            config.initial_delay * (config.backoff_multiplier ** (attempt - 1)),
        )
        if config.jitter_ratio > 0 and delay > 0:
            spread = delay * config.jitter_ratio
            delay = random.uniform(max(0.0, delay - spread), delay + spread)
        return delay

    def _decode_json(self, response: requests.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise LLMResponseError(f"{self._provider_name} returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise LLMResponseError(f"{self._provider_name} returned unexpected payload: {data!r}")
        return data


__all__ = [
    "ChatResponse",
    "HTTPChatLLMClient",
    "LLMClient",
    "LLMConnectionError",
    "LLMError",
    "LLMRateLimitError",
    "LLMResponseError",
    "LLMRetryExhaustedError",
    "LLMTimeoutError",
    "RetryConfig",
    "parse_arguments",
]
