"""Tests for the endpoint catalogue and the lookup tool."""

from __future__ import annotations

import json

import pytest

from api_test_agent.core.errors import ExecutionError
from api_test_agent.core.storage.endpoints import (
    ENDPOINTS_FILENAME,
    Endpoint,
    EndpointRepository,
    summarize_endpoints,
)
from api_test_agent.tools import ToolContext
from api_test_agent.tools.arguments import EndpointLookupArgs, EndpointRef
from api_test_agent.tools.endpoints import get_endpoints_details


@pytest.fixture
def repository(tmp_path) -> EndpointRepository:
    repo = EndpointRepository(tmp_path / "projects")
    repo.save_endpoints(
        "shop",
        [
            Endpoint(method="GET", path="/users", description="List users"),
            Endpoint(
                method="POST",
                path="/users",
                requires_auth=True,
                auth_type="bearer",
                request_body={"type": "object"},
            ),
        ],
    )
    return repo


def test_round_trip_through_file(repository, tmp_path) -> None:
    endpoints = repository.load_endpoints("shop")

    assert [(item.method, item.path) for item in endpoints] == [("GET", "/users"), ("POST", "/users")]
    assert endpoints[1].request_body == {"type": "object"}
    assert (tmp_path / "projects" / "shop" / ENDPOINTS_FILENAME).is_file()


def test_missing_catalogue_is_empty(repository) -> None:
    assert repository.load_endpoints("unknown") == []


def test_wrapped_catalogue_and_extra_fields(tmp_path) -> None:
    path = tmp_path / "projects" / "p" / ENDPOINTS_FILENAME
    path.parent.mkdir(parents=True)
    path.write_text(
        json.dumps({"endpoints": [{"method": "get", "path": "/a", "tags": ["x"]}, {"method": "GET"}]})
    )

    endpoints = EndpointRepository(tmp_path / "projects").load_endpoints("p")

    assert len(endpoints) == 1
    assert endpoints[0].method == "GET"
    assert endpoints[0].extra == {"tags": ["x"]}


def test_matches_ignores_trailing_slash_and_optional_method() -> None:
    endpoint = Endpoint(method="GET", path="/users/")

    assert endpoint.matches("get", "/users")
    assert endpoint.matches("", "/users")
    assert not endpoint.matches("POST", "/users")


def test_summarize_endpoints_is_compact() -> None:
    summary = summarize_endpoints([Endpoint(method="GET", path="/a", parameters=[{"name": "q"}])])

    assert summary == [
        {
            "method": "GET",
            "path": "/a",
            "description": "",
            "requires_auth": False,
            "auth_type": "none",
        }
    ]


def test_lookup_tool_returns_known_endpoints(settings, repository) -> None:
    context = ToolContext(settings=settings, endpoints=repository, project_id="shop")
    args = EndpointLookupArgs(
        [EndpointRef("POST", "/users"), EndpointRef("GET", "/nowhere")]
    )

    response = get_endpoints_details(args, context)

    assert response == {
        "endpoints": [
            {
                "method": "POST",
                "path": "/users",
                "description": "",
                "requires_auth": True,
                "auth_type": "bearer",
                "request_body": {"type": "object"},
            }
        ]
    }


def test_lookup_tool_without_project(settings) -> None:
    response = get_endpoints_details(
        EndpointLookupArgs([EndpointRef("GET", "/users")]), ToolContext(settings=settings)
    )

    assert response == {"endpoints": []}


def test_lookup_tool_reports_corrupt_catalogue(settings, tmp_path) -> None:
    path = tmp_path / "projects" / "bad" / ENDPOINTS_FILENAME
    path.parent.mkdir(parents=True)
    path.write_text("{not json")
    context = ToolContext(
        settings=settings, endpoints=EndpointRepository(tmp_path / "projects"), project_id="bad"
    )

    with pytest.raises(ExecutionError, match="failed to load endpoints"):
        get_endpoints_details(EndpointLookupArgs([EndpointRef("GET", "/a")]), context)
