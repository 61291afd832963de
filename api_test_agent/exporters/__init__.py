"""Exporters writing tests to Postman, pytest and curl formats."""

from __future__ import annotations

from .base import Exporter, ExportRequest, ExportTest, export, resolve_export_path
from .curl import CurlExporter
from .postman import PostmanExporter
from .pytest_module import PytestExporter

EXPORTERS: dict[str, Exporter] = {
    "postman": PostmanExporter(),
    "pytest": PytestExporter(),
    "sh": CurlExporter(),
}

FORMAT_LABELS = {name: exporter.label for name, exporter in EXPORTERS.items()}

__all__ = [
    "EXPORTERS",
    "FORMAT_LABELS",
    "CurlExporter",
    "ExportRequest",
    "ExportTest",
    "Exporter",
    "PostmanExporter",
    "PytestExporter",
    "export",
    "resolve_export_path",
]
