"""Shell script of curl commands."""

from __future__ import annotations

import os
import stat
from pathlib import Path

from .base import Exporter, ExportRequest, ExportTest


def _quote(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"


class CurlExporter(Exporter):
    file_extension = ".sh"
    label = "curl script"

    def render(self, request: ExportRequest) -> str:
        lines = [
            "#!/bin/bash",
            "",
            f"# Generated curl commands for {request.base_url}",
            f'BASE_URL="{request.base_url}"',
            "",
        ]
        for index, test in enumerate(request.tests, start=1):
            if index > 1:
                lines.append("")
            lines.append(f"# Test {index}: {test.method} {test.endpoint}")
            lines.append(self.build_command(test, request))
        return "\n".join(lines) + "\n"

    def build_command(self, test: ExportTest, request: ExportRequest) -> str:
        parts = ["curl", f"-X {test.method}", "-H 'Content-Type: application/json'"]
        for key, value in test.headers.items():
            parts.append(f"-H {_quote(f'{key}: {value}')}")

        if test.requires_auth:
            data = request.auth_data
            if request.auth_type == "bearer" and data.get("token"):
                parts.append(f"-H {_quote('Authorization: Bearer ' + data['token'])}")
            elif request.auth_type == "apikey" and data.get("key_name") and data.get("key_value"):
                parts.append(f"-H {_quote(data['key_name'] + ': ' + data['key_value'])}")
            elif request.auth_type == "basic" and data.get("username"):
                parts.append(f"-u {_quote(data['username'] + ':' + data.get('password', ''))}")

        body = test.body_text
        if body is not None:
            parts.append(f"-d {_quote(body)}")

        parts.append(f'"${{BASE_URL}}{test.endpoint}"')
        return " \\\n  ".join(parts)

    def export(self, request: ExportRequest) -> Path:
        path = super().export(request)
        mode = os.stat(path).st_mode
        os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path
