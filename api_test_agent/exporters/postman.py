"""Postman collection (v2.1) exporter."""

from __future__ import annotations

import json
from typing import Any

from .base import Exporter, ExportRequest, ExportTest

POSTMAN_SCHEMA = "https://schema.getpostman.com/json/collection/v2.1.0/collection.json"
COLLECTION_NAME = "API Test Agent Generated Tests"


class PostmanExporter(Exporter):
    file_extension = ".json"
    label = "Postman Collection"

    def render(self, request: ExportRequest) -> str:
        return json.dumps(self.build_collection(request), indent=2, ensure_ascii=False)

    def build_collection(self, request: ExportRequest) -> dict[str, Any]:
        items = []
        for test in request.tests:
            item: dict[str, Any] = {
                "name": f"{test.method} {test.endpoint}",
                "request": self._build_request(test, request),
            }
            if not test.error and test.status_code > 0:
                item["response"] = [self._build_response(test)]
            items.append(item)

        return {
            "info": {
                "name": COLLECTION_NAME,
                "description": f"Generated from {request.base_url}",
                "schema": POSTMAN_SCHEMA,
            },
            "item": items,
            "variable": [{"key": "baseUrl", "value": request.base_url, "type": "string"}],
        }

    def _build_request(self, test: ExportTest, request: ExportRequest) -> dict[str, Any]:
        data: dict[str, Any] = {
            "method": test.method,
            "header": self._build_headers(test, request),
            "url": {
                "raw": "{{baseUrl}}" + test.endpoint,
                "host": ["{{baseUrl}}"],
                "path": [part for part in test.endpoint.lstrip("/").split("/") if part],
            },
        }
        body = test.body_text
        if body is not None:
            data["body"] = {"mode": "raw", "raw": body, "options": {"raw": {"language": "json"}}}
        if test.requires_auth and request.auth_type == "basic":
            data["auth"] = {
                "type": "basic",
                "basic": [
                    {"key": "username", "value": request.auth_data.get("username", "")},
                    {"key": "password", "value": request.auth_data.get("password", "")},
                ],
            }
        return data

    def _build_headers(self, test: ExportTest, request: ExportRequest) -> list[dict[str, str]]:
        headers = [{"key": "Content-Type", "value": "application/json"}]
        headers.extend({"key": key, "value": value} for key, value in test.headers.items())
        if test.requires_auth:
            data = request.auth_data
            if request.auth_type == "bearer" and data.get("token"):
                headers.append({"key": "Authorization", "value": "Bearer " + data["token"]})
            elif request.auth_type == "apikey" and data.get("key_name") and data.get("key_value"):
                headers.append({"key": data["key_name"], "value": data["key_value"]})
        return headers

    def _build_response(self, test: ExportTest) -> dict[str, Any]:
        return {
            "name": f"{test.status_code} Response",
            "status": str(test.status_code),
            "code": test.status_code,
            "header": [{"key": "Content-Type", "value": "application/json"}],
            "body": test.response_body,
        }
