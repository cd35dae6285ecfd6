"""Standardized error types for chat turns and session persistence.

Only failures that stop a turn from producing an answer reach callers
(:class:`ConfigurationError`, :class:`TransportError`,
:class:`EmptyResponseError`, :class:`SessionNotFoundError`). Summarization and
persistence failures are absorbed where they happen and only logged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes attached to chat failures."""

    MISSING_API_KEY = "missing_api_key"
    SESSION_NOT_FOUND = "session_not_found"
    TRANSPORT_FAILED = "transport_failed"
    EMPTY_RESPONSE = "empty_response"
    SUMMARIZATION_FAILED = "summarization_failed"
    PERSISTENCE_FAILED = "persistence_failed"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ChatError(Exception):
    """Base exception class for all chat errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    # Whether the failure surfaces to callers or is absorbed internally
    surfaced: ClassVar[bool] = True

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for UI notices and logs."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Turn Failures
# -----------------------------------------------------------------------------

@dataclass
class ConfigurationError(ChatError):
    """Raised before any call when no API credential is configured."""

    error_code: str = field(default=ErrorCode.MISSING_API_KEY)
    message: str = field(default="API key not configured. Please add it in settings.")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionNotFoundError(ChatError):
    """Raised when a turn targets a session the store does not know."""

    error_code: str = field(default=ErrorCode.SESSION_NOT_FOUND)
    message: str = field(default="The requested chat session does not exist")
    details: dict[str, Any] = field(default_factory=dict)

    document_ref: str | None = field(default=None)
    session_id: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.document_ref is not None:
            result["document_ref"] = self.document_ref
        if self.session_id is not None:
            result["session_id"] = self.session_id
        return result


@dataclass
class TransportError(ChatError):
    """Raised on a non-success status or network failure."""

    error_code: str = field(default=ErrorCode.TRANSPORT_FAILED)
    message: str = field(default="The completion request failed")
    details: dict[str, Any] = field(default_factory=dict)

    status_code: int | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


@dataclass
class EmptyResponseError(ChatError):
    """Raised when the API succeeded but returned no usable content."""

    error_code: str = field(default=ErrorCode.EMPTY_RESPONSE)
    message: str = field(default="No response from AI.")
    details: dict[str, Any] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Absorbed Failures
# -----------------------------------------------------------------------------

@dataclass
class SummarizationError(ChatError):
    """Compaction could not produce a summary; the turn proceeds without one."""

    error_code: str = field(default=ErrorCode.SUMMARIZATION_FAILED)
    message: str = field(default="Failed to summarize conversation")
    details: dict[str, Any] = field(default_factory=dict)

    surfaced: ClassVar[bool] = False


@dataclass
class PersistenceError(ChatError):
    """Reading or writing the session registry failed."""

    error_code: str = field(default=ErrorCode.PERSISTENCE_FAILED)
    message: str = field(default="Failed to persist chat sessions")
    details: dict[str, Any] = field(default_factory=dict)

    surfaced: ClassVar[bool] = False


__all__ = [
    "ErrorCode",
    "ChatError",
    "ConfigurationError",
    "SessionNotFoundError",
    "TransportError",
    "EmptyResponseError",
    "SummarizationError",
    "PersistenceError",
]
