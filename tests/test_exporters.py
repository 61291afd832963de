"""Tests for Postman, pytest and curl exporters."""

from __future__ import annotations

import ast
import json
import os

import pytest

from api_test_agent.core.errors import ExecutionError
from api_test_agent.exporters import (
    CurlExporter,
    ExportRequest,
    ExportTest,
    PostmanExporter,
    PytestExporter,
    export,
    resolve_export_path,
)
from api_test_agent.exporters.pytest_module import function_name


@pytest.fixture
def tests() -> list[ExportTest]:
    return [
        ExportTest.from_mapping(
            {
                "method": "get",
                "endpoint": "/users/{id}",
                "status_code": 200,
                "response_body": '{"id": 1}',
                "requires_auth": True,
            }
        ),
        ExportTest.from_mapping(
            {
                "method": "POST",
                "endpoint": "/users",
                "headers": {"X-Trace": "1"},
                "body": {"name": "ann"},
                "error": "request failed: timeout",
            }
        ),
    ]


def _request(tmp_path, tests, auth_type="bearer", auth_data=None, name="out") -> ExportRequest:
    return ExportRequest(
        base_url="http://api.test",
        tests=tests,
        file_path=tmp_path / name,
        auth_type=auth_type,
        auth_data=auth_data if auth_data is not None else {"token": "tok"},
    )


def test_export_test_from_mapping_defaults() -> None:
    test = ExportTest.from_mapping({"endpoint": "/x", "body": [1, 2]})

    assert test.method == "GET"
    assert test.status_code == 0
    assert test.body_text == "[1, 2]"


def test_postman_collection_structure(tmp_path, tests) -> None:
    collection = json.loads(PostmanExporter().render(_request(tmp_path, tests)))

    assert collection["info"]["schema"].endswith("v2.1.0/collection.json")
    assert collection["variable"][0] == {
        "key": "baseUrl",
        "value": "http://api.test",
        "type": "string",
    }
    first, second = collection["item"]
    assert first["name"] == "GET /users/{id}"
    assert first["request"]["url"]["path"] == ["users", "{id}"]
    assert {"key": "Authorization", "value": "Bearer tok"} in first["request"]["header"]
    assert first["response"][0]["code"] == 200
    assert "response" not in second
    assert json.loads(second["request"]["body"]["raw"]) == {"name": "ann"}
    assert {"key": "Authorization", "value": "Bearer tok"} not in second["request"]["header"]


def test_postman_basic_auth_block(tmp_path, tests) -> None:
    request = _request(tmp_path, tests, "basic", {"username": "u", "password": "p"})

    item = PostmanExporter().build_collection(request)["item"][0]

    assert item["request"]["auth"]["type"] == "basic"


def test_pytest_module_is_valid_python(tmp_path, tests) -> None:
    source = PytestExporter().render(
        _request(tmp_path, tests, "apikey", {"key_name": "X-Key", "key_value": "v"})
    )

    tree = ast.parse(source)
    names = [node.name for node in tree.body if isinstance(node, ast.FunctionDef)]
    assert names == ["test_get_users_id", "test_post_users"]
    assert "API_KEY_NAME = 'X-Key'" in source
    assert "headers[API_KEY_NAME] = API_KEY_VALUE" in source
    assert "assert response.status_code == 200" in source
    assert "assert response.status_code < 500" in source
    assert "# Last run failed with error: request failed: timeout" in source


def test_function_names_are_unique() -> None:
    used: set[str] = set()
    test = ExportTest(method="GET", endpoint="/users")

    assert function_name(test, 1, used) == "test_get_users"
    assert function_name(test, 2, used) == "test_get_users_2"
    assert function_name(ExportTest(method="GET", endpoint="/"), 3, used) == "test_get_3"


def test_curl_script_is_executable(tmp_path, tests) -> None:
    request = _request(tmp_path, tests, name="tests.sh")

    path = CurlExporter().export(request)

    content = path.read_text()
    assert content.startswith("#!/bin/bash\n")
    assert 'BASE_URL="http://api.test"' in content
    assert "-H 'Authorization: Bearer tok'" in content
    assert "-d '{\"name\": \"ann\"}'" in content
    assert '"${BASE_URL}/users"' in content
    assert os.access(path, os.X_OK)


def test_curl_quotes_single_quotes() -> None:
    command = CurlExporter().build_command(
        ExportTest(method="POST", endpoint="/q", body="it's"),
        ExportRequest(base_url="", tests=[], file_path=None),
    )

    assert "-d 'it'\\''s'" in command


def test_export_dispatches_by_format_and_creates_parents(tmp_path, tests) -> None:
    request = _request(tmp_path, tests)
    request.file_path = tmp_path / "nested" / "collection.json"

    path = export("postman", request)

    assert path.is_file()


def test_export_unknown_format(tmp_path, tests) -> None:
    with pytest.raises(ExecutionError, match="unsupported export format"):
        export("har", _request(tmp_path, tests))


def test_resolve_export_path(tmp_path) -> None:
    assert resolve_export_path("out/a.json", tmp_path) == (tmp_path / "out" / "a.json").resolve()
    assert resolve_export_path(str(tmp_path / "b.sh")) == (tmp_path / "b.sh").resolve()
