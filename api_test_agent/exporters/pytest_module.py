"""Exporter producing a runnable pytest module that uses requests."""

from __future__ import annotations

import re

from .base import Exporter, ExportRequest, ExportTest

_IDENT_RE = re.compile(r"[^0-9a-zA-Z_]+")


def function_name(test: ExportTest, index: int, used: set[str]) -> str:
    method = test.method.lower()
    slug = _IDENT_RE.sub("_", test.endpoint.replace("{", "").replace("}", "")).strip("_").lower()
    name = f"test_{method}_{slug}" if slug else f"test_{method}_{index}"
    candidate = name
    suffix = 2
    while candidate in used:
        candidate = f"{name}_{suffix}"
        suffix += 1
    used.add(candidate)
    return candidate


class PytestExporter(Exporter):
    file_extension = ".py"
    label = "pytest tests"

    def render(self, request: ExportRequest) -> str:
        lines = ["import requests", "", "", f"BASE_URL = {request.base_url!r}", ""]
        data = request.auth_data
        if request.auth_type == "bearer" and data.get("token"):
            lines.append(f"AUTH_TOKEN = {data['token']!r}")
        elif request.auth_type == "apikey" and data.get("key_name"):
            lines.append(f"API_KEY_NAME = {data['key_name']!r}")
            lines.append(f"API_KEY_VALUE = {data.get('key_value', '')!r}")
        elif request.auth_type == "basic" and data.get("username"):
            lines.append(f"AUTH_USER = {data['username']!r}")
            lines.append(f"AUTH_PASS = {data.get('password', '')!r}")
        lines.append("")

        used: set[str] = set()
        for index, test in enumerate(request.tests, start=1):
            lines.append("")
            lines.extend(self._render_test(test, index, request, used))
        return "\n".join(lines).rstrip() + "\n"

    def _render_test(
        self, test: ExportTest, index: int, request: ExportRequest, used: set[str]
    ) -> list[str]:
        headers = {"Content-Type": "application/json", **test.headers}
        body = [
            f"def {function_name(test, index, used)}():",
            f'    """{test.method} {test.endpoint}"""',
            f"    url = BASE_URL + {test.endpoint!r}",
            f"    headers = {headers!r}",
        ]
        auth_expr = "None"
        if test.requires_auth:
            if request.auth_type == "bearer" and request.auth_data.get("token"):
                body.append('    headers["Authorization"] = f"Bearer {AUTH_TOKEN}"')
            elif request.auth_type == "apikey" and request.auth_data.get("key_name"):
                body.append("    headers[API_KEY_NAME] = API_KEY_VALUE")
            elif request.auth_type == "basic" and request.auth_data.get("username"):
                auth_expr = "(AUTH_USER, AUTH_PASS)"

        payload = test.body_text
        call = f"requests.request({test.method!r}, url, headers=headers, auth={auth_expr}"
        if payload is not None:
            body.append(f"    data = {payload!r}")
            call += ", data=data"
        body.append(f"    response = {call})")
        body.append("")
        if test.status_code > 0:
            body.append(f"    assert response.status_code == {test.status_code}")
        else:
            body.append("    assert response.status_code < 500")
        if test.error:
            body.append(f"    # Last run failed with error: {test.error}")
        body.append("")
        return body
