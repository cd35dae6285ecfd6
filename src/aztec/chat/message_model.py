"""Chat message and session data models."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Mapping, get_args

from ..ai.tokens import estimate_tokens

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


ChatRole = Literal["user", "assistant", "system"]
CHAT_ROLES: frozenset[str] = frozenset(get_args(ChatRole))


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """One entry in a session transcript. Never mutated after append."""

    role: ChatRole
    content: str
    created_at: datetime = field(default_factory=_utcnow)
    token_count: int = 0

    @classmethod
    def create(cls, role: ChatRole, content: str, *, created_at: datetime | None = None) -> "ChatMessage":
        """Build a message with its token count computed from ``content``."""

        if role not in CHAT_ROLES:
            raise ValueError(f"Unsupported chat role: {role!r}")
        return cls(
            role=role,
            content=content,
            created_at=created_at or _utcnow(),
            token_count=estimate_tokens(content),
        )

    def as_wire(self) -> Dict[str, str]:
        """Return the ``{role, content}`` mapping sent to the completion API."""

        return {"role": self.role, "content": self.content}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        return {
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "token_count": self.token_count,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ChatMessage":
        role = payload.get("role")
        content = payload.get("content")
        if role not in CHAT_ROLES or not isinstance(content, str):
            raise ValueError("Message payload requires a valid role and string content")
        token_count = payload.get("token_count")
        if not isinstance(token_count, int) or token_count < 0:
            token_count = estimate_tokens(content)
        return cls(
            role=role,
            content=content,
            created_at=_parse_timestamp(payload.get("created_at")),
            token_count=token_count,
        )


@dataclass(slots=True)
class ChatSession:
    """A named conversation thread owned by a single document."""

    id: str
    name: str
    document_ref: str
    seed_context: str = ""
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def token_count(self) -> int:
        """Total estimated tokens across the transcript."""

        return sum(message.token_count for message in self.messages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "document_ref": self.document_ref,
            "seed_context": self.seed_context,
            "messages": [message.to_dict() for message in self.messages],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, document_ref: str | None = None) -> "ChatSession":
        session_id = payload.get("id")
        if not isinstance(session_id, str) or not session_id:
            raise ValueError("Session payload requires a non-empty string id")
        owner = document_ref or payload.get("document_ref")
        if not isinstance(owner, str):
            raise ValueError(f"Session {session_id} has no document reference")
        raw_messages = payload.get("messages") or []
        if not isinstance(raw_messages, list):
            raise ValueError(f"Session {session_id} messages must be a list")
        created_at = _parse_timestamp(payload.get("created_at"))
        return cls(
            id=session_id,
            name=str(payload.get("name") or session_id),
            document_ref=owner,
            seed_context=str(payload.get("seed_context") or ""),
            messages=_load_messages(session_id, raw_messages),
            created_at=created_at,
            updated_at=_parse_timestamp(payload.get("updated_at"), default=created_at),
        )


def _load_messages(session_id: str, raw_messages: list[Any]) -> list[ChatMessage]:
    messages: list[ChatMessage] = []
    for index, item in enumerate(raw_messages):
        if not isinstance(item, Mapping):
            LOGGER.debug("Skipping non-mapping message %s in session %s", index, session_id)
            continue
        try:
            messages.append(ChatMessage.from_dict(item))
        except ValueError as exc:
            LOGGER.debug("Skipping malformed message %s in session %s: %s", index, session_id, exc)
    return messages


def _parse_timestamp(value: Any, *, default: datetime | None = None) -> datetime:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            LOGGER.debug("Ignoring out-of-range timestamp %r", value)
    return default or _utcnow()


__all__ = ["ChatRole", "CHAT_ROLES", "ChatMessage", "ChatSession"]
