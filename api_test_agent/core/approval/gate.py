"""Confirmation gate deciding which tool calls need user approval."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from api_test_agent.core.utils.logger import get_logger

from .policy import ApprovalPolicy

if TYPE_CHECKING:
    from api_test_agent.session.models import ToolCall
    from api_test_agent.tools.registry import ToolRegistry

LOGGER = get_logger(__name__)

DENIED_MESSAGE = "Tool execution cancelled"


class Decision(str, Enum):
    APPROVE = "approve"
    DENY = "deny"
    SKIP_REMAINING = "skip_remaining"


def skipped_response(call: ToolCall, *, reason: str = "denied") -> dict[str, Any]:
    """Tool response recorded for a call the user did not allow to run."""
    return {"status": "skipped", "reason": reason, "message": f"{DENIED_MESSAGE}: {call.name}"}


class ConfirmationGate:
    """Decide whether a call runs directly or must wait for the user.

    A call needs confirmation when its registered tool declares
    ``requires_confirmation`` and the policy is not in auto-execute mode.
    Unknown tools never need confirmation since they cannot run.
    """

    def __init__(self, registry: ToolRegistry, policy: ApprovalPolicy | None = None) -> None:
        self._registry = registry
        self.policy = policy or ApprovalPolicy()

    def requires_confirmation(self, call: ToolCall) -> bool:
        if self.policy.auto_execute:
            return False
        if not self._registry.has(call.name):
            return False
        spec = self._registry.get(call.name)
        if not spec.requires_confirmation:
            LOGGER.debug("%s runs without confirmation: %s", call.name, spec.auto_approved_reason)
        return spec.requires_confirmation

    def record(self, call: ToolCall, decision: Decision, *, automatic: bool = False) -> None:
        """Log a decision and append it to the audit file when configured."""
        LOGGER.info(
            "Tool %s (%s) %s%s",
            call.name,
            call.id,
            decision.value,
            " (automatic)" if automatic else "",
        )
        audit_file = self.policy.audit_file
        if audit_file is None:
            return
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "tool": call.name,
            "tool_call_id": call.id,
            "decision": decision.value,
            "automatic": automatic,
            "arguments": call.arguments,
        }
        try:
            audit_file.parent.mkdir(parents=True, exist_ok=True)
            with audit_file.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError as exc:
            LOGGER.warning("Could not write approval audit entry: %s", exc)


__all__ = ["DENIED_MESSAGE", "ConfirmationGate", "Decision", "skipped_response"]
