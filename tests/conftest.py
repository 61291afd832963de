"""Shared pytest fixtures for the API test agent."""

from __future__ import annotations

import logging
import os

import pytest

from api_test_agent.core.utils import config as config_module
from api_test_agent.core.utils.config import Settings
from api_test_agent.core.utils.logger import ROOT_LOGGER_NAME, set_correlation_id
from api_test_agent.session.controller import SessionController
from api_test_agent.testing import FakeExecutor, ScriptedLLMClient
from api_test_agent.tools import register_builtin_tools
from api_test_agent.tools.registry import ToolRegistry


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep user configuration and API keys out of every test."""
    for key in list(os.environ):
        if key.startswith("APITEST_") or key in {"OPENAI_API_KEY", "ANTHROPIC_API_KEY"}:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATHS", ())
    monkeypatch.chdir(tmp_path)
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    set_correlation_id(None)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        api_key="test-key",
        data_dir=tmp_path / "data",
        poll_interval=0.01,
        retry_initial_delay=0.0,
    )


@pytest.fixture
def tool_registry():
    return register_builtin_tools(ToolRegistry())


@pytest.fixture
def executor():
    return FakeExecutor(
        routes={
            "GET /users": (200, '[{"id": 1}]'),
            "GET /users/1": (200, '{"id": 1}'),
            "POST /users": (201, '{"id": 2}'),
            "GET /missing": 404,
        }
    )


@pytest.fixture
def make_controller(settings, tool_registry, executor, tmp_path):
    """Build a controller around a scripted client; extra kwargs go to the controller."""
    created = []

    def factory(script=(), **kwargs):
        client = kwargs.pop("client", None) or ScriptedLLMClient(script)
        kwargs.setdefault("executor", executor)
        kwargs.setdefault("output_dir", tmp_path / "out")
        controller = SessionController(
            kwargs.pop("settings", settings), client, tool_registry, **kwargs
        )
        created.append(controller)
        return controller

    yield factory
    for controller in created:
        controller.close()
