"""Approval policy and confirmation gate."""

from .gate import ConfirmationGate, Decision, skipped_response
from .policy import ApprovalPolicy

__all__ = ["ApprovalPolicy", "ConfirmationGate", "Decision", "skipped_response"]
