"""Approval policy settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass
class ApprovalPolicy:
    """How tool calls that have side effects get approved.

    ``auto_execute`` approves every call without prompting (headless runs).
    ``audit_file`` records each decision as a JSON line when set.
    """

    auto_execute: bool = False
    audit_file: Path | None = None
