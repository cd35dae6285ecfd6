"""Compress older conversation turns into a running summary."""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from ..ai.client import CompletionPort, CompletionRequest
from .errors import SummarizationError

LOGGER = logging.getLogger(__name__)

SUMMARIZATION_MODEL = "anthropic/claude-3-haiku-20240307"
SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 500

_SUMMARY_PROMPT = (
    "Please provide a concise summary of the following conversation, capturing the key points, "
    "decisions made, and important context that should be remembered for the continuation of "
    "this discussion:\n\n{transcript}\n\nProvide only the summary, no additional commentary."
)


def render_transcript(messages: Sequence[Mapping[str, str]]) -> str:
    """Render wire messages as ``ROLE: content`` blocks separated by blank lines."""

    return "\n\n".join(
        f"{str(message.get('role', '')).upper()}: {message.get('content', '')}" for message in messages
    )


class Summarizer:
    """Wraps one completion call against a cheaper summarization model."""

    def __init__(
        self,
        completion: CompletionPort,
        *,
        model: str = SUMMARIZATION_MODEL,
        temperature: float = SUMMARY_TEMPERATURE,
        max_tokens: int = SUMMARY_MAX_TOKENS,
    ) -> None:
        self._completion = completion
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_request(self, messages: Sequence[Mapping[str, str]]) -> CompletionRequest:
        prompt = _SUMMARY_PROMPT.format(transcript=render_transcript(messages))
        return CompletionRequest(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    async def summarize(self, messages: Sequence[Mapping[str, str]]) -> str:
        """Return summary prose for ``messages`` or raise :class:`SummarizationError`."""

        if not messages:
            raise SummarizationError(message="Nothing to summarize")
        request = self.build_request(messages)
        try:
            result = await self._completion.complete(request)
        except Exception as exc:
            raise SummarizationError(
                message=f"Summarization call raised: {exc}",
                details={"model": self.model},
            ) from exc
        if result.status == "failed":
            raise SummarizationError(
                message=f"Summarization call failed: {result.error}",
                details={"model": self.model, "status_code": result.status_code},
            )
        if not result.ok or not result.content:
            raise SummarizationError(
                message="Summarization returned no content",
                details={"model": self.model},
            )
        LOGGER.debug("Summarized %d message(s) via %s", len(messages), self.model)
        return result.content.strip()


__all__ = [
    "SUMMARIZATION_MODEL",
    "SUMMARY_TEMPERATURE",
    "SUMMARY_MAX_TOKENS",
    "Summarizer",
    "render_transcript",
]
