"""Shared test stubs for the chat core.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from aztec.ai.client import CompletionRequest, CompletionResult


class FakeCompletion:
    """Completion port replaying queued results, or answering through ``responder``."""

    def __init__(
        self,
        results: list[CompletionResult | Exception] | None = None,
        *,
        responder: Callable[[CompletionRequest], CompletionResult] | None = None,
    ) -> None:
        self._results = list(results or [])
        self._responder = responder
        self.calls: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        self.calls.append(request)
        if self._responder is not None:
            return self._responder(request)
        if not self._results:
            raise AssertionError(f"Unexpected completion call for {request.model}")
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class StepClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + timedelta(seconds=1)
        return value


def long_text(tokens: int, char: str = "x") -> str:
    """Return text whose estimate is exactly ``tokens``."""

    return char * (tokens * 4)
