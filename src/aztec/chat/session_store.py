"""Persistent registry of chat sessions keyed by document.

The store is the single owner of the registry. Every mutation is a plain
synchronous call that rewrites the whole registry through a
:class:`RegistryBackend`, so callers running on one event loop cannot
interleave writes. It is not safe to share one registry file between
processes.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

from ..utils.file_io import ensure_dir, read_text, write_text
from .errors import PersistenceError
from .message_model import ChatMessage, ChatRole, ChatSession

__all__ = [
    "RegistryBackend",
    "JsonRegistryBackend",
    "InMemoryRegistryBackend",
    "SessionStore",
    "SESSIONS_FILENAME",
    "default_sessions_path",
    "generate_session_id",
]

LOGGER = logging.getLogger(__name__)
SESSIONS_FILENAME = "aztec-chat-sessions.json"
_REGISTRY_VERSION = 1
_PLUGIN_DIR = Path("plugins") / "aztec"


def default_sessions_path(config_dir: Path | str) -> Path:
    """Return the registry location under the per-plugin configuration directory."""

    return Path(config_dir).expanduser() / _PLUGIN_DIR / SESSIONS_FILENAME


def generate_session_id(now: datetime | None = None) -> str:
    instant = now or datetime.now(timezone.utc)
    return f"session-{int(instant.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"


class RegistryBackend(Protocol):
    """Durable storage for the serialized registry document."""

    def read(self) -> Mapping[str, Any] | None:  # pragma: no cover - protocol stub
        """Return the stored payload, or ``None`` when nothing was saved yet."""
        ...

    def write(self, payload: Mapping[str, Any]) -> None:  # pragma: no cover - protocol stub
        """Replace the stored payload."""
        ...


class JsonRegistryBackend:
    """Registry backend writing one JSON document with atomic replaces."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> Mapping[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(read_text(self._path, encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(
                message=f"Unable to read chat sessions from {self._path}",
                details={"path": str(self._path), "cause": str(exc)},
            ) from exc
        except json.JSONDecodeError as exc:
            raise PersistenceError(
                message=f"Chat sessions file {self._path} is not valid JSON",
                details={"path": str(self._path), "cause": str(exc)},
            ) from exc
        if not isinstance(data, Mapping):
            raise PersistenceError(
                message=f"Chat sessions file {self._path} does not contain an object",
                details={"path": str(self._path)},
            )
        return data

    def write(self, payload: Mapping[str, Any]) -> None:
        body = json.dumps(payload, indent=2, ensure_ascii=False)
        try:
            ensure_dir(self._path.parent)
            write_text(self._path, body, atomic=True)
        except OSError as exc:
            raise PersistenceError(
                message=f"Unable to write chat sessions to {self._path}",
                details={"path": str(self._path), "cause": str(exc)},
            ) from exc


class InMemoryRegistryBackend:
    """Backend keeping the serialized payload in memory (tests, scratch use)."""

    def __init__(self, payload: Mapping[str, Any] | None = None) -> None:
        self.payload: dict[str, Any] | None = json.loads(json.dumps(payload)) if payload is not None else None
        self.writes = 0

    def read(self) -> Mapping[str, Any] | None:
        return self.payload

    def write(self, payload: Mapping[str, Any]) -> None:
        self.payload = json.loads(json.dumps(payload))
        self.writes += 1


class SessionStore:
    """Registry of chat sessions, loaded lazily and rewritten on each mutation."""

    def __init__(
        self,
        backend: RegistryBackend,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessions: dict[str, list[ChatSession]] = {}
        self._loaded = False
        self._last_error: PersistenceError | None = None

    @classmethod
    def from_config_dir(cls, config_dir: Path | str, **kwargs: Any) -> "SessionStore":
        return cls(JsonRegistryBackend(default_sessions_path(config_dir)), **kwargs)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def last_error(self) -> PersistenceError | None:
        """Most recent persistence failure, cleared by the next successful write."""

        return self._last_error

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Read the persisted registry once; later calls are no-ops."""

        if self._loaded:
            return
        self._loaded = True
        try:
            payload = self._backend.read()
        except PersistenceError as exc:
            LOGGER.warning("Failed to load chat sessions: %s", exc)
            self._last_error = exc
            self._sessions = {}
            return
        try:
            self._sessions = _decode_registry(payload)
        except (ValueError, TypeError, OverflowError) as exc:
            error = PersistenceError(
                message="Chat sessions file could not be decoded",
                details={"cause": str(exc)},
            )
            LOGGER.warning("Failed to load chat sessions: %s", error)
            self._last_error = error
            self._sessions = {}
            return
        LOGGER.debug(
            "SessionStore.load: %d document(s), %d session(s)",
            len(self._sessions),
            sum(len(items) for items in self._sessions.values()),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def sessions_for(self, document_ref: str) -> list[ChatSession]:
        self.load()
        return list(self._sessions.get(document_ref, ()))

    def get(self, document_ref: str, session_id: str) -> ChatSession | None:
        self.load()
        for session in self._sessions.get(document_ref, ()):
            if session.id == session_id:
                return session
        return None

    def most_recent(self, document_ref: str) -> ChatSession | None:
        """Return the most recently updated session; first inserted wins ties."""

        sessions = self.sessions_for(document_ref)
        if not sessions:
            return None
        # max() keeps the first maximal element, which is insertion order.
        return max(sessions, key=lambda session: session.updated_at)

    def document_refs(self) -> list[str]:
        self.load()
        return list(self._sessions)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, document_ref: str, seed_context: str, name: str | None = None) -> ChatSession:
        self.load()
        now = self._clock()
        session_id = generate_session_id(now)
        while self._find_by_id(session_id) is not None:  # pragma: no cover - astronomically rare
            session_id = generate_session_id(now)
        session = ChatSession(
            id=session_id,
            name=name or f"Chat {now.astimezone():%Y-%m-%d %H:%M:%S}",
            document_ref=document_ref,
            seed_context=seed_context or "",
            created_at=now,
            updated_at=now,
        )
        self._sessions.setdefault(document_ref, []).append(session)
        LOGGER.debug("SessionStore.create: %s for %s", session.id, document_ref)
        self._persist()
        return session

    def append(self, document_ref: str, session_id: str, role: ChatRole, content: str) -> ChatMessage | None:
        session = self.get(document_ref, session_id)
        if session is None:
            LOGGER.debug("SessionStore.append: unknown session %s for %s", session_id, document_ref)
            return None
        now = self._clock()
        message = ChatMessage.create(role, content, created_at=now)
        session.messages.append(message)
        session.updated_at = now
        self._persist()
        return message

    def rename(self, document_ref: str, session_id: str, new_name: str) -> bool:
        session = self.get(document_ref, session_id)
        if session is None:
            return False
        session.name = new_name
        session.updated_at = self._clock()
        self._persist()
        return True

    def delete(self, document_ref: str, session_id: str) -> bool:
        self.load()
        sessions = self._sessions.get(document_ref)
        if not sessions:
            return False
        for index, session in enumerate(sessions):
            if session.id == session_id:
                break
        else:
            return False
        del sessions[index]
        if not sessions:
            del self._sessions[document_ref]
        LOGGER.debug("SessionStore.delete: %s for %s", session_id, document_ref)
        self._persist()
        return True

    def get_or_create(self, document_ref: str, seed_context: str) -> ChatSession:
        existing = self.most_recent(document_ref)
        if existing is not None:
            return existing
        return self.create(document_ref, seed_context)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_payload(self) -> dict[str, Any]:
        return {
            "version": _REGISTRY_VERSION,
            "sessions": {
                document_ref: [session.to_dict() for session in sessions]
                for document_ref, sessions in self._sessions.items()
            },
        }

    def _persist(self) -> bool:
        try:
            self._backend.write(self.to_payload())
        except PersistenceError as exc:
            # In-memory state stays authoritative for the rest of the process.
            LOGGER.warning("Failed to save chat sessions: %s", exc)
            self._last_error = exc
            return False
        self._last_error = None
        return True

    def _find_by_id(self, session_id: str) -> ChatSession | None:
        for sessions in self._sessions.values():
            for session in sessions:
                if session.id == session_id:
                    return session
        return None


def _decode_registry(payload: Mapping[str, Any] | None) -> dict[str, list[ChatSession]]:
    if not payload:
        return {}
    raw_sessions = payload.get("sessions")
    if not isinstance(raw_sessions, Mapping):
        LOGGER.warning("Chat sessions payload has no 'sessions' mapping; starting empty")
        return {}
    registry: dict[str, list[ChatSession]] = {}
    seen_ids: set[str] = set()
    for document_ref, entries in raw_sessions.items():
        if not isinstance(document_ref, str) or not isinstance(entries, list):
            LOGGER.debug("Skipping malformed registry entry for %r", document_ref)
            continue
        sessions: list[ChatSession] = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            try:
                session = ChatSession.from_dict(entry, document_ref=document_ref)
            except (ValueError, TypeError, OverflowError) as exc:
                LOGGER.debug("Skipping malformed session under %s: %s", document_ref, exc)
                continue
            if session.id in seen_ids:
                LOGGER.warning("Dropping duplicate session id %s under %s", session.id, document_ref)
                continue
            seen_ids.add(session.id)
            sessions.append(session)
        if sessions:
            registry[document_ref] = sessions
    return registry
