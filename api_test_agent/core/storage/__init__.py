"""Persistence for conversations and endpoint catalogues."""

from .conversation_log import ConversationLog
from .endpoints import Endpoint, EndpointRepository

__all__ = ["ConversationLog", "Endpoint", "EndpointRepository"]
