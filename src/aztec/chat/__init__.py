"""Chat sessions, context budgeting and the turn orchestrator."""

from .context_builder import ContextBuilder, ContextPolicy, ContextWindow, ConversationContext
from .errors import (
    ChatError,
    ConfigurationError,
    EmptyResponseError,
    PersistenceError,
    SessionNotFoundError,
    SummarizationError,
    TransportError,
)
from .message_model import ChatMessage, ChatSession
from .orchestrator import ChatOrchestrator
from .session_store import InMemoryRegistryBackend, JsonRegistryBackend, SessionStore
from .summarizer import Summarizer

__all__ = [
    "ChatError",
    "ChatMessage",
    "ChatOrchestrator",
    "ChatSession",
    "ConfigurationError",
    "ContextBuilder",
    "ContextPolicy",
    "ContextWindow",
    "ConversationContext",
    "EmptyResponseError",
    "InMemoryRegistryBackend",
    "JsonRegistryBackend",
    "PersistenceError",
    "SessionNotFoundError",
    "SessionStore",
    "Summarizer",
    "SummarizationError",
    "TransportError",
]
