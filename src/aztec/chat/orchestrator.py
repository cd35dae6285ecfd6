"""Chat façade tying the session store, context builder and completion port together."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from ..ai.client import AIClient, ClientSettings, CompletionPort, CompletionRequest
from ..services.settings import Settings
from .context_builder import ContextBuilder, ContextPolicy, ContextWindow, ConversationContext
from .errors import ConfigurationError, EmptyResponseError, SessionNotFoundError, TransportError
from .message_model import ChatSession
from .session_store import SessionStore
from .summarizer import Summarizer

LOGGER = logging.getLogger(__name__)


class TurnState(Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


class ChatOrchestrator:
    """Entry point used by the UI layer for every chat operation.

    One orchestrator drives one active conversation at a time. Its
    :class:`ConversationContext` follows whichever session the last call
    targeted: talking to a different session starts a fresh context, so a
    running summary can never leak between conversations.
    """

    def __init__(
        self,
        store: SessionStore,
        completion: CompletionPort,
        settings: Settings,
        *,
        summarizer: Summarizer | None = None,
        builder: ContextBuilder | None = None,
    ) -> None:
        self._store = store
        self._completion = completion
        self._settings = settings
        if builder is None:
            summarizer = summarizer or Summarizer(
                completion,
                model=settings.summarization_model,
                temperature=settings.summary_temperature,
                max_tokens=settings.summary_max_tokens,
            )
            builder = ContextBuilder(
                summarizer,
                policy=ContextPolicy(
                    token_threshold=settings.context_token_threshold,
                    tail_messages=settings.context_tail_messages,
                ),
            )
        self._builder = builder
        self._context = ConversationContext()
        self._state = TurnState.IDLE
        self.last_window: ContextWindow | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: SessionStore | None = None,
        client_factory: Callable[[ClientSettings], CompletionPort] = AIClient,
    ) -> "ChatOrchestrator":
        """Wire an orchestrator against the configured API and session file."""

        client = client_factory(
            ClientSettings(
                base_url=settings.base_url,
                api_key=settings.api_key,
                organization=settings.organization,
                request_timeout=settings.request_timeout,
                max_retries=settings.max_retries,
                default_headers=settings.default_headers,
                debug_logging=settings.debug_logging,
            )
        )
        return cls(store or SessionStore.from_config_dir(settings.config_dir), client, settings)

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def running_summary(self) -> str | None:
        return self._context.running_summary

    @property
    def active_session_id(self) -> str | None:
        return self._context.session_id

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------

    def get_or_create_session(self, document_ref: str, seed_context: str) -> ChatSession:
        session = self._store.get_or_create(document_ref, seed_context)
        self._activate(session.id)
        return session

    def list_sessions(self, document_ref: str) -> list[ChatSession]:
        return self._store.sessions_for(document_ref)

    def create_session(self, document_ref: str, seed_context: str, name: str | None = None) -> ChatSession:
        session = self._store.create(document_ref, seed_context, name)
        self._activate(session.id)
        return session

    def rename_session(self, document_ref: str, session_id: str, name: str) -> bool:
        return self._store.rename(document_ref, session_id, name)

    def delete_session(self, document_ref: str, session_id: str) -> bool:
        """Delete a session unless it is the document's only one."""

        sessions = self._store.sessions_for(document_ref)
        if not any(session.id == session_id for session in sessions):
            return False
        if len(sessions) == 1:
            LOGGER.info("Refusing to delete %s: last session for %s", session_id, document_ref)
            return False
        deleted = self._store.delete(document_ref, session_id)
        if deleted and self._context.bound_to(session_id):
            self.reset_running_summary()
        return deleted

    def select_fallback_session(self, document_ref: str, seed_context: str) -> ChatSession:
        """Pick the most recently updated remaining session, creating one if none remain."""

        self.reset_running_summary()
        return self.get_or_create_session(document_ref, seed_context)

    def reset_running_summary(self) -> None:
        """Drop the running summary; call whenever the active session changes."""

        self._context = ConversationContext()

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def send_message(self, document_ref: str, session_id: str, text: str) -> str:
        """Send ``text`` as the next user turn and return the assistant reply.

        Raises:
            ConfigurationError: No API key is configured; nothing is stored.
            SessionNotFoundError: ``session_id`` is unknown for ``document_ref``.
            TransportError: The completion call failed; only the user message is stored.
            EmptyResponseError: The call succeeded without content; only the user message is stored.
        """

        if not self._settings.has_api_key:
            raise ConfigurationError()

        session = self._store.get(document_ref, session_id)
        if session is None:
            raise SessionNotFoundError(document_ref=document_ref, session_id=session_id)
        self._activate(session_id)
        history = list(session.messages)
        self._store.append(document_ref, session_id, "user", text)

        self._state = TurnState.AWAITING_RESPONSE
        try:
            window = await self._builder.build(
                history,
                text,
                seed_context=session.seed_context,
                context=self._context,
            )
            self.last_window = window
            request = CompletionRequest(
                model=self._settings.effective_chat_model,
                messages=window.messages,
                temperature=self._settings.temperature,
                max_tokens=self._settings.max_tokens,
            )
            try:
                result = await self._completion.complete(request)
            except Exception as exc:
                LOGGER.warning("Completion call to %s raised: %s", request.model, exc)
                raise TransportError(
                    message=f"Error calling completion API: {exc}",
                    details={"model": request.model},
                ) from exc
        finally:
            self._state = TurnState.IDLE

        if result.status == "failed":
            raise TransportError(
                message=f"Error calling completion API: {result.error}",
                status_code=result.status_code,
                details={"model": request.model},
            )
        if not result.ok or not result.content:
            raise EmptyResponseError(details={"model": request.model})

        self._store.append(document_ref, session_id, "assistant", result.content)
        LOGGER.debug(
            "Turn completed for %s/%s (%d prompt tokens est., compacted=%s)",
            document_ref,
            session_id,
            window.token_total,
            window.compacted,
        )
        return result.content

    def _activate(self, session_id: str) -> None:
        if not self._context.bound_to(session_id):
            self._context = ConversationContext.for_session(session_id)


__all__ = ["ChatOrchestrator", "TurnState"]
