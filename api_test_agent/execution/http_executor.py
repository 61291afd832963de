"""HTTP executor that performs individual API test requests."""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import requests

from api_test_agent.core.errors import TestExecutionError
from api_test_agent.core.utils.logger import get_logger

from .auth import AuthProvider, NoAuth

if TYPE_CHECKING:
    from collections.abc import Mapping

LOGGER = get_logger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


@dataclass
class TestExecutionResult:
    """Outcome of one HTTP request."""

    __test__ = False

    status_code: int
    response_body: str
    duration: float
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def duration_ms(self) -> int:
        return int(round(self.duration * 1000))


class TestExecutor(Protocol):
    """Interface the tools need from an HTTP executor."""

    def execute_test(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        *,
        requires_auth: bool = True,
    ) -> TestExecutionResult: ...


class HTTPTestExecutor:
    """Send test requests against a base URL with pluggable authentication."""

    __test__ = False

    def __init__(
        self,
        base_url: str,
        *,
        auth: AuthProvider | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._auth = auth or NoAuth()
        self._session = session or requests.Session()
        self._lock = threading.Lock()

    @property
    def auth(self) -> AuthProvider:
        with self._lock:
            return self._auth

    def update_auth(self, auth: AuthProvider) -> None:
        with self._lock:
            self._auth = auth

    def build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path:
            return self.base_url
        return f"{self.base_url}/{path.lstrip('/')}"

    def execute_test(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        *,
        requires_auth: bool = True,
    ) -> TestExecutionResult:
        request_headers = dict(DEFAULT_HEADERS)
        request_headers.update({str(k): str(v) for k, v in (headers or {}).items()})
        if requires_auth:
            self.auth.apply(request_headers)

        kwargs: dict[str, Any] = {"headers": request_headers, "timeout": self.timeout}
        if body is not None:
            if isinstance(body, (dict, list)):
                kwargs["data"] = json.dumps(body)
            else:
                kwargs["data"] = str(body)

        url = self.build_url(path)
        LOGGER.debug("Executing %s %s (auth=%s)", method.upper(), url, requires_auth)
        started = time.perf_counter()
        try:
            response = self._session.request(method.upper(), url, **kwargs)
        except requests.RequestException as exc:
            raise TestExecutionError(f"request failed: {exc}") from exc
        duration = time.perf_counter() - started

        return TestExecutionResult(
            status_code=response.status_code,
            response_body=response.text,
            duration=duration,
            headers=dict(response.headers),
        )


__all__ = ["DEFAULT_HEADERS", "HTTPTestExecutor", "TestExecutionResult", "TestExecutor"]
