"""Token-budgeted assembly of the message list sent for each chat turn.

The newest turns are always sent verbatim. Once the estimated prompt grows
past the threshold, everything older than the tail is folded into a running
summary produced by :class:`~aztec.chat.summarizer.Summarizer`. The summary
lives in a :class:`ConversationContext` that belongs to exactly one session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..ai.tokens import estimate_tokens
from .errors import SummarizationError
from .message_model import ChatMessage
from .summarizer import Summarizer

LOGGER = logging.getLogger(__name__)

TOKEN_THRESHOLD = 10_000
TAIL_MESSAGES = 4
SYSTEM_PREAMBLE = "You are a helpful AI assistant. The user is working on a document."

WireMessage = Dict[str, str]


@dataclass(slots=True, frozen=True)
class ContextPolicy:
    """Compaction trigger: summarize once the prompt exceeds ``token_threshold``."""

    token_threshold: int = TOKEN_THRESHOLD
    tail_messages: int = TAIL_MESSAGES

    def __post_init__(self) -> None:
        if self.token_threshold < 1:
            raise ValueError("token_threshold must be positive")
        if self.tail_messages < 0:
            raise ValueError("tail_messages must be >= 0")


@dataclass(slots=True)
class ConversationContext:
    """Per-session scratch state for prompt building. Never persisted."""

    session_id: str | None = None
    running_summary: str | None = None
    compactions: int = 0

    def bound_to(self, session_id: str) -> bool:
        return self.session_id == session_id

    @classmethod
    def for_session(cls, session_id: str | None) -> "ConversationContext":
        return cls(session_id=session_id)


@dataclass(slots=True)
class ContextWindow:
    """Ordered request messages plus bookkeeping about how they were built."""

    messages: List[WireMessage] = field(default_factory=list)
    token_total: int = 0
    compacted: bool = False
    summarized_count: int = 0
    summary: str | None = None

    @property
    def system_prompt(self) -> str:
        return self.messages[0]["content"] if self.messages else ""


def compose_system_prompt(seed_context: str | None, summary: str | None) -> str:
    """Join the fixed preamble, the document context and the running summary."""

    content = SYSTEM_PREAMBLE
    if seed_context:
        content += f"\n\nHere is the relevant context from the user's document:\n\n{seed_context}"
    if summary:
        content += f"\n\nSummary of previous conversation:\n{summary}"
    return content


class ContextBuilder:
    """Builds the request message list for a new user turn."""

    def __init__(self, summarizer: Summarizer | None, *, policy: ContextPolicy | None = None) -> None:
        self._summarizer = summarizer
        self.policy = policy or ContextPolicy()

    async def build(
        self,
        history: Sequence[ChatMessage],
        new_message: str,
        *,
        seed_context: str = "",
        context: ConversationContext | None = None,
    ) -> ContextWindow:
        """Return the messages for ``new_message`` given the prior ``history``.

        ``history`` must not contain the pending user message. ``context``
        carries the running summary between turns of the same session and is
        updated in place when compaction produces a new summary.
        """

        context = context or ConversationContext()
        system_content = compose_system_prompt(seed_context, context.running_summary)
        conversation: List[WireMessage] = [message.as_wire() for message in history]

        total = estimate_tokens(system_content)
        for message in history:
            total += message.token_count
        total += estimate_tokens(new_message)

        tail = self.policy.tail_messages
        window = ContextWindow()
        if total > self.policy.token_threshold and len(conversation) > tail:
            older = conversation[:-tail] if tail else list(conversation)
            recent = conversation[-tail:] if tail else []
            await self._compact(older, context)
            system_content = compose_system_prompt(seed_context, context.running_summary)
            window.compacted = True
            window.summarized_count = len(older)
            conversation = recent
            LOGGER.debug(
                "Context over budget (%d > %d); kept last %d of %d message(s)",
                total,
                self.policy.token_threshold,
                len(recent),
                len(history),
            )

        window.messages = [{"role": "system", "content": system_content}]
        window.messages.extend(conversation)
        window.messages.append({"role": "user", "content": new_message})
        window.token_total = sum(estimate_tokens(message["content"]) for message in window.messages)
        window.summary = context.running_summary
        return window

    async def _compact(self, older: Sequence[WireMessage], context: ConversationContext) -> None:
        if self._summarizer is None:
            LOGGER.debug("No summarizer configured; keeping previous summary")
            return
        try:
            summary = await self._summarizer.summarize(older)
        except SummarizationError as exc:
            LOGGER.warning("Failed to summarize conversation: %s", exc)
            return
        context.running_summary = summary
        context.compactions += 1


__all__ = [
    "TOKEN_THRESHOLD",
    "TAIL_MESSAGES",
    "SYSTEM_PREAMBLE",
    "ContextPolicy",
    "ConversationContext",
    "ContextWindow",
    "ContextBuilder",
    "compose_system_prompt",
]
