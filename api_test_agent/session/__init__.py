"""Conversation state, history and transcript."""

from .history import History
from .models import (
    Conversation,
    Session,
    SessionState,
    ToolCall,
    ToolResponse,
    Turn,
    derive_title,
)
from .transcript import Transcript, TranscriptLine

__all__ = [
    "Conversation",
    "History",
    "Session",
    "SessionState",
    "ToolCall",
    "ToolResponse",
    "Transcript",
    "TranscriptLine",
    "Turn",
    "derive_title",
]
