"""Async completion client built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Protocol, Sequence

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

LOGGER = logging.getLogger(__name__)

CompletionStatus = Literal["ok", "empty", "failed"]


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the completion client."""

    base_url: str
    api_key: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


@dataclass(slots=True, frozen=True)
class CompletionRequest:
    """One chat-completion call: model, ordered messages and sampling knobs."""

    model: str
    messages: Sequence[Mapping[str, str]]
    temperature: float = 0.7
    max_tokens: int = 2_000

    def as_payload(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [dict(message) for message in self.messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }


@dataclass(slots=True, frozen=True)
class CompletionResult:
    """Completion response decoded once at the transport boundary."""

    status: CompletionStatus
    content: str | None = None
    error: str | None = None
    status_code: int | None = None
    model: str | None = None
    usage: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(cls, content: str, **kwargs: Any) -> "CompletionResult":
        return cls(status="ok", content=content, **kwargs)

    @classmethod
    def empty(cls, **kwargs: Any) -> "CompletionResult":
        return cls(status="empty", **kwargs)

    @classmethod
    def failure(cls, error: str, *, status_code: int | None = None, **kwargs: Any) -> "CompletionResult":
        return cls(status="failed", error=error, status_code=status_code, **kwargs)

    @classmethod
    def from_response(cls, response: Any) -> "CompletionResult":
        """Decode ``choices[0].message.content`` from an SDK object or plain mapping."""

        choices = _field(response, "choices") or []
        model = _field(response, "model")
        usage = _usage_payload(_field(response, "usage"))
        if not choices:
            return cls.empty(model=model, usage=usage)
        message = _field(choices[0], "message")
        content = _field(message, "content") if message is not None else None
        if not isinstance(content, str) or not content.strip():
            return cls.empty(model=model, usage=usage)
        return cls.success(content, model=model, usage=usage)


class CompletionPort(Protocol):
    """Single chat-completion call consumed by the chat core."""

    async def complete(self, request: CompletionRequest) -> CompletionResult:  # pragma: no cover - protocol stub
        ...


class AIClient:
    """Async client issuing non-streamed chat completions."""

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run one completion; transport problems come back as ``failed`` results."""

        payload = request.as_payload()
        LOGGER.debug(
            "Starting chat completion via %s with %s message(s)",
            request.model,
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        try:
            response = await self._create_with_retries(payload)
        except APIStatusError as exc:
            LOGGER.warning("Completion API error %s from %s", exc.status_code, request.model)
            return CompletionResult.failure(
                f"API error: {exc.status_code}",
                status_code=exc.status_code,
                model=request.model,
            )
        except (APIConnectionError, APIError, httpx.HTTPError) as exc:
            LOGGER.warning("Completion request to %s failed: %s", request.model, exc)
            return CompletionResult.failure(str(exc) or exc.__class__.__name__, model=request.model)

        result = CompletionResult.from_response(response)
        if not result.ok:
            LOGGER.debug("Completion from %s returned no content", request.model)
        return result

    async def _create_with_retries(self, payload: Mapping[str, Any]) -> Any:
        async for attempt in self._retrying():
            with attempt:
                return await self._client.chat.completions.create(**payload)
        raise RuntimeError("Retry loop exited without a result")  # pragma: no cover - reraise=True

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
            max_retries=0,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIConnectionError,
                    RateLimitError,
                    httpx.TimeoutException,
                )
            ),
        )

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def _field(source: Any, name: str) -> Any:
    if source is None:
        return None
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def _usage_payload(usage: Any) -> Dict[str, int]:
    if usage is None:
        return {}
    payload: Dict[str, int] = {}
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = _field(usage, key)
        if isinstance(value, int):
            payload[key] = value
    return payload


__all__: List[str] = [
    "AIClient",
    "ClientSettings",
    "CompletionPort",
    "CompletionRequest",
    "CompletionResult",
    "CompletionStatus",
]
