"""Authentication providers applied to outgoing test requests."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import TYPE_CHECKING

from api_test_agent.core.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping

AUTH_TYPES = ("none", "bearer", "apikey", "basic")


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}...{secret[-4:]}"


class AuthProvider:
    """Base provider; applies no credentials."""

    auth_type = "none"

    def apply(self, headers: dict[str, str]) -> None:
        return None

    def data(self) -> dict[str, str]:
        """Credentials in the flat form exporters expect."""
        return {}

    def describe(self) -> str:
        return "No authentication"


class NoAuth(AuthProvider):
    pass


@dataclass
class BearerAuth(AuthProvider):
    token: str
    auth_type = "bearer"

    def apply(self, headers: dict[str, str]) -> None:
        headers["Authorization"] = f"Bearer {self.token}"

    def data(self) -> dict[str, str]:
        return {"token": self.token}

    def describe(self) -> str:
        return f"Bearer token {_mask(self.token)}"


@dataclass
class APIKeyAuth(AuthProvider):
    key_name: str
    key_value: str
    auth_type = "apikey"

    def apply(self, headers: dict[str, str]) -> None:
        headers[self.key_name] = self.key_value

    def data(self) -> dict[str, str]:
        return {"key_name": self.key_name, "key_value": self.key_value}

    def describe(self) -> str:
        return f"API key header {self.key_name}: {_mask(self.key_value)}"


@dataclass
class BasicAuth(AuthProvider):
    username: str
    password: str
    auth_type = "basic"

    def apply(self, headers: dict[str, str]) -> None:
        raw = f"{self.username}:{self.password}".encode()
        headers["Authorization"] = "Basic " + base64.b64encode(raw).decode("ascii")

    def data(self) -> dict[str, str]:
        return {"username": self.username, "password": self.password}

    def describe(self) -> str:
        return f"Basic auth as {self.username}"


def build_auth(auth_type: str | None, data: Mapping[str, str] | None = None) -> AuthProvider:
    """Create a provider from a type name and its credential fields."""
    kind = (auth_type or "none").lower()
    values = dict(data or {})
    if kind in {"", "none"}:
        return NoAuth()
    if kind == "bearer":
        if not values.get("token"):
            raise ValidationError("bearer auth requires a token")
        return BearerAuth(values["token"])
    if kind == "apikey":
        if not values.get("key_name") or not values.get("key_value"):
            raise ValidationError("apikey auth requires key_name and key_value")
        return APIKeyAuth(values["key_name"], values["key_value"])
    if kind == "basic":
        if not values.get("username") or "password" not in values:
            raise ValidationError("basic auth requires username and password")
        return BasicAuth(values["username"], values["password"])
    expected = ", ".join(AUTH_TYPES)
    raise ValidationError(f"unsupported auth type: {auth_type} (expected one of {expected})")


__all__ = [
    "AUTH_TYPES",
    "APIKeyAuth",
    "AuthProvider",
    "BasicAuth",
    "BearerAuth",
    "NoAuth",
    "build_auth",
]
