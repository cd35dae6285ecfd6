"""One-shot writing actions (fix, rewrite, summarize, ...) over selected text."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from ..chat.errors import ConfigurationError, EmptyResponseError, TransportError
from ..services.settings import Settings
from .client import CompletionPort, CompletionRequest

LOGGER = logging.getLogger(__name__)

VARIATIONS_SYSTEM_PROMPT = (
    "You are a helpful writing assistant. Provide exactly 3 variations of the response, "
    "separated by '---' (three dashes)."
)
VARIATION_SEPARATOR = "---"


@dataclass(slots=True, frozen=True)
class WritingAction:
    label: str
    action_type: str


SELECTION_ACTIONS: tuple[WritingAction, ...] = (
    WritingAction("Fill In", "fill-in"),
    WritingAction("Fix", "fix"),
    WritingAction("Rewrite", "rewrite"),
    WritingAction("Expound", "expound"),
    WritingAction("Extend", "extend"),
    WritingAction("Summarize", "summarize"),
)

GENERAL_ACTIONS: tuple[WritingAction, ...] = (
    WritingAction("Summarize", "summarize"),
    WritingAction("Extract Action Items", "action_items"),
    WritingAction("Generate Title", "generate_title"),
    WritingAction("Identify Key Themes", "key_themes"),
)

_INSTRUCTIONS: dict[str, str] = {
    "fill-in": (
        "Within the provided text, there are instances of -- where information is missing. "
        "Please fill in these gaps based on the surrounding context and return the full text. "
        "Do not change any other part of the text except to fill in the missing information "
        "and return the completed text."
    ),
    "fix": (
        "The provided text may contain grammatical or punctuation errors. "
        "Please correct these errors while preserving the original meaning and style as much as possible. "
        "Return the corrected text, do not change anything else."
    ),
    "rewrite": (
        "Rewrite the provided text to improve its clarity, flow, and overall quality while preserving "
        "the original meaning. Focus on enhancing readability and coherence without altering the core "
        "message. Return the rewritten text, do not change anything else."
    ),
    "expound": (
        "Expound upon the provided text by adding more detail, examples, or explanations to enhance "
        "understanding. Expand on the ideas presented while maintaining the original intent and meaning. "
        "Return the expanded text, do not change anything else."
    ),
    "extend": (
        "Extend the provided text by adding new content that logically follows from the existing text. "
        "Build upon the ideas presented to create a longer piece of writing while maintaining coherence "
        "and relevance. Return the extended text, do not change anything else."
    ),
    "summarize": (
        "Summarize the provided text by condensing it into a shorter version that captures the main "
        "points and essential information. Focus on conveying the core message while omitting "
        "unnecessary details. Return the summarized text, do not change anything else."
    ),
}

# Actions that prompt the user for free-text instructions before running.
_INSTRUCTED_ACTIONS = frozenset({"rewrite", "extend", "expound", "summarize"})


def available_actions(context_text: str, query: str = "") -> list[WritingAction]:
    """Selection actions when there is context text, general ones otherwise."""

    actions = SELECTION_ACTIONS if context_text else GENERAL_ACTIONS
    needle = query.lower()
    return [action for action in actions if needle in action.label.lower()]


def action_needs_instructions(action_type: str) -> bool:
    return action_type in _INSTRUCTED_ACTIONS


def action_instructions(action_type: str) -> str:
    instructions = _INSTRUCTIONS.get(action_type)
    if instructions is not None:
        return instructions
    return (
        f"Perform the following action on the provided text: {action_type}. "
        "Return the modified text, do not change anything else."
    )


def create_prompt(action_type: str, context: str, custom_instructions: str | None = None) -> str:
    """Assemble the instruction block, the context and optional extra instructions."""

    blocks = [action_instructions(action_type), f"Context:\n{context}"]
    if custom_instructions:
        blocks.append(f"Additional Instructions: {custom_instructions}")
    return "\n\n".join(blocks)


def split_variations(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(VARIATION_SEPARATOR) if part.strip()]


class WritingAssistant:
    """Runs writing actions as single completions returning alternative texts."""

    def __init__(self, completion: CompletionPort, settings: Settings) -> None:
        self._completion = completion
        self._settings = settings

    def build_request(self, prompt: str) -> CompletionRequest:
        return CompletionRequest(
            model=self._settings.model,
            messages=[
                {"role": "system", "content": VARIATIONS_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self._settings.temperature,
            max_tokens=self._settings.max_tokens,
        )

    async def generate_variations(
        self,
        action_type: str,
        context: str,
        instructions: str | None = None,
        previous: Sequence[str] = (),
    ) -> list[str]:
        """Return new candidate texts followed by ``previous`` options from earlier rounds."""

        if not self._settings.has_api_key:
            raise ConfigurationError()
        request = self.build_request(create_prompt(action_type, context, instructions))
        LOGGER.debug("Running writing action %s via %s", action_type, request.model)
        result = await self._completion.complete(request)
        if result.status == "failed":
            raise TransportError(
                message=f"Error calling completion API: {result.error}",
                status_code=result.status_code,
                details={"action": action_type},
            )
        choices = split_variations(result.content or "") if result.ok else []
        if not choices:
            raise EmptyResponseError(details={"action": action_type})
        return [*choices, *previous]


__all__ = [
    "WritingAction",
    "WritingAssistant",
    "SELECTION_ACTIONS",
    "GENERAL_ACTIONS",
    "VARIATIONS_SYSTEM_PROMPT",
    "available_actions",
    "action_needs_instructions",
    "action_instructions",
    "create_prompt",
    "split_variations",
]
