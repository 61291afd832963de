"""Markdown report writer."""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

from api_test_agent.core.errors import ExecutionError
from api_test_agent.core.utils.logger import get_logger

LOGGER = get_logger(__name__)

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(name: str) -> str:
    stem = _UNSAFE_RE.sub("-", Path(name).name).strip("-.")
    return stem or "report"


class ReportGenerator:
    """Write report content to ``<output_dir>/<name>.md``."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir

    def generate(self, content: str, name: str | None = None) -> Path:
        if name:
            stem = safe_file_name(name)
        else:
            stem = f"api-test-report-{datetime.now():%Y%m%d-%H%M%S}"
        if stem.lower().endswith((".md", ".pdf")):
            stem = stem.rsplit(".", 1)[0]

        path = self.output_dir / f"{stem}.md"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(content.rstrip() + "\n", encoding="utf-8")
        except OSError as exc:
            raise ExecutionError(f"failed to write report: {exc}") from exc
        LOGGER.info("Report written to %s", path)
        return path.resolve()


__all__ = ["ReportGenerator", "safe_file_name"]
