"""Test doubles for the API test agent."""

from .mocks import FakeExecutor, ScriptedLLMClient, reply, tool_call

__all__ = ["FakeExecutor", "ScriptedLLMClient", "reply", "tool_call"]
