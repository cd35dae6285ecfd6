"""Tests for the chat orchestrator turn flow and session management."""

from __future__ import annotations

from dataclasses import replace

import pytest

from aztec.ai.client import ClientSettings, CompletionRequest, CompletionResult
from aztec.chat.context_builder import SYSTEM_PREAMBLE, compose_system_prompt
from aztec.chat.errors import (
    ConfigurationError,
    EmptyResponseError,
    SessionNotFoundError,
    TransportError,
)
from aztec.chat.orchestrator import ChatOrchestrator, TurnState
from aztec.chat.session_store import SessionStore
from aztec.services.settings import Settings
from tests.helpers import FakeCompletion, long_text


def _orchestrator(store: SessionStore, settings: Settings, completion: FakeCompletion) -> ChatOrchestrator:
    return ChatOrchestrator(store, completion, settings)


def _chat_or_summary(request: CompletionRequest) -> CompletionResult:
    if request.model == "cheap/model":
        return CompletionResult.success(f"summary #{len(request.messages[0]['content'])}")
    return CompletionResult.success("reply")


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_turn_persists_both_messages(store: SessionStore, settings: Settings) -> None:
    completion = FakeCompletion([CompletionResult.success("Hi there")])
    orchestrator = _orchestrator(store, settings, completion)
    session = orchestrator.get_or_create_session("notes.md", "Doc")

    reply = await orchestrator.send_message("notes.md", session.id, "Hello")

    assert reply == "Hi there"
    stored = store.get("notes.md", session.id)
    assert stored is not None
    assert [(m.role, m.content) for m in stored.messages] == [("user", "Hello"), ("assistant", "Hi there")]
    (request,) = completion.calls
    assert request.model == "general/model"
    assert request.temperature == settings.temperature
    assert request.max_tokens == settings.max_tokens
    assert list(request.messages) == [
        {"role": "system", "content": compose_system_prompt("Doc", None)},
        {"role": "user", "content": "Hello"},
    ]
    assert orchestrator.state is TurnState.IDLE


@pytest.mark.asyncio
async def test_second_turn_sends_prior_exchange_once(store: SessionStore, settings: Settings) -> None:
    completion = FakeCompletion([CompletionResult.success("Hi there"), CompletionResult.success("Sure")])
    orchestrator = _orchestrator(store, settings, completion)
    session = orchestrator.get_or_create_session("notes.md", "Doc")

    await orchestrator.send_message("notes.md", session.id, "Hello")
    await orchestrator.send_message("notes.md", session.id, "Shorter please")

    sent = [message["content"] for message in completion.calls[1].messages]
    assert sent[1:] == ["Hello", "Hi there", "Shorter please"]
    assert len(store.get("notes.md", session.id).messages) == 4


@pytest.mark.asyncio
async def test_transport_failure_keeps_only_user_message(store: SessionStore, settings: Settings) -> None:
    completion = FakeCompletion([CompletionResult.failure("API error: 500", status_code=500)])
    orchestrator = _orchestrator(store, settings, completion)
    session = orchestrator.get_or_create_session("notes.md", "Doc")

    with pytest.raises(TransportError) as excinfo:
        await orchestrator.send_message("notes.md", session.id, "Hello")

    assert excinfo.value.status_code == 500
    assert "API error: 500" in excinfo.value.message
    assert [m.role for m in store.get("notes.md", session.id).messages] == ["user"]
    assert orchestrator.state is TurnState.IDLE


@pytest.mark.asyncio
async def test_completion_exception_becomes_transport_error(store: SessionStore, settings: Settings) -> None:
    orchestrator = _orchestrator(store, settings, FakeCompletion([ConnectionError("reset by peer")]))
    session = orchestrator.get_or_create_session("notes.md", "Doc")

    with pytest.raises(TransportError) as excinfo:
        await orchestrator.send_message("notes.md", session.id, "Hello")

    assert "reset by peer" in excinfo.value.message
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert excinfo.value.details == {"model": "general/model"}
    assert [m.role for m in session.messages] == ["user"]
    assert orchestrator.state is TurnState.IDLE


@pytest.mark.asyncio
async def test_unknown_session_keeps_active_context(store: SessionStore, settings: Settings) -> None:
    orchestrator = _orchestrator(store, settings, FakeCompletion())
    session = orchestrator.get_or_create_session("notes.md", "Doc")

    with pytest.raises(SessionNotFoundError):
        await orchestrator.send_message("other.md", session.id, "Hello")

    assert orchestrator.active_session_id == session.id
    assert session.messages == []


@pytest.mark.asyncio
async def test_empty_response_raises(store: SessionStore, settings: Settings) -> None:
    orchestrator = _orchestrator(store, settings, FakeCompletion([CompletionResult.empty()]))
    session = orchestrator.get_or_create_session("notes.md", "Doc")

    with pytest.raises(EmptyResponseError) as excinfo:
        await orchestrator.send_message("notes.md", session.id, "Hello")

    assert excinfo.value.message == "No response from AI."
    assert [m.role for m in session.messages] == ["user"]


@pytest.mark.asyncio
async def test_missing_api_key_stores_nothing(store: SessionStore, settings: Settings) -> None:
    completion = FakeCompletion()
    orchestrator = _orchestrator(store, replace(settings, api_key="  "), completion)
    session = orchestrator.get_or_create_session("notes.md", "Doc")

    with pytest.raises(ConfigurationError) as excinfo:
        await orchestrator.send_message("notes.md", session.id, "Hello")

    assert excinfo.value.message == "API key not configured. Please add it in settings."
    assert session.messages == []
    assert completion.calls == []


@pytest.mark.asyncio
async def test_unknown_session_raises(store: SessionStore, settings: Settings) -> None:
    completion = FakeCompletion()
    orchestrator = _orchestrator(store, settings, completion)

    with pytest.raises(SessionNotFoundError) as excinfo:
        await orchestrator.send_message("notes.md", "session-missing", "Hello")

    assert excinfo.value.to_dict()["session_id"] == "session-missing"
    assert store.document_refs() == []
    assert completion.calls == []


@pytest.mark.asyncio
async def test_chat_model_overrides_general_model(store: SessionStore, settings: Settings) -> None:
    completion = FakeCompletion([CompletionResult.success("ok")])
    orchestrator = _orchestrator(store, replace(settings, chat_model="chat/model"), completion)
    session = orchestrator.get_or_create_session("notes.md", "")

    await orchestrator.send_message("notes.md", session.id, "Hello")

    assert completion.calls[0].model == "chat/model"
    assert completion.calls[0].messages[0]["content"] == SYSTEM_PREAMBLE


# ---------------------------------------------------------------------------
# Running summary
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_running_summary_is_bound_to_one_session(store: SessionStore, settings: Settings) -> None:
    tight = replace(settings, context_token_threshold=60, context_tail_messages=2)
    completion = FakeCompletion(responder=_chat_or_summary)
    orchestrator = _orchestrator(store, tight, completion)
    first = orchestrator.create_session("notes.md", "")
    second = orchestrator.create_session("notes.md", "")

    for _ in range(3):
        await orchestrator.send_message("notes.md", first.id, long_text(20))
    assert orchestrator.running_summary is not None
    assert orchestrator.active_session_id == first.id

    await orchestrator.send_message("notes.md", second.id, "Hello")

    assert orchestrator.active_session_id == second.id
    assert orchestrator.running_summary is None
    assert "Summary of previous conversation" not in completion.calls[-1].messages[0]["content"]


@pytest.mark.asyncio
async def test_summary_failure_still_sends_tail(store: SessionStore, settings: Settings) -> None:
    tight = replace(settings, context_token_threshold=60, context_tail_messages=2)

    def responder(request: CompletionRequest) -> CompletionResult:
        if request.model == "cheap/model":
            return CompletionResult.failure("API error: 503", status_code=503)
        return CompletionResult.success("reply")

    completion = FakeCompletion(responder=responder)
    orchestrator = _orchestrator(store, tight, completion)
    session = orchestrator.create_session("notes.md", "")

    for _ in range(3):
        reply = await orchestrator.send_message("notes.md", session.id, long_text(20))

    assert reply == "reply"
    assert orchestrator.running_summary is None
    assert orchestrator.last_window is not None
    assert orchestrator.last_window.compacted is True
    assert len(completion.calls[-1].messages) == 4


def test_reset_running_summary_clears_context(store: SessionStore, settings: Settings) -> None:
    orchestrator = _orchestrator(store, settings, FakeCompletion())
    orchestrator.create_session("notes.md", "")

    orchestrator.reset_running_summary()

    assert orchestrator.running_summary is None
    assert orchestrator.active_session_id is None


# ---------------------------------------------------------------------------
# Session management
# ---------------------------------------------------------------------------


def test_get_or_create_reuses_most_recent(store: SessionStore, settings: Settings) -> None:
    orchestrator = _orchestrator(store, settings, FakeCompletion())
    created = orchestrator.get_or_create_session("notes.md", "Doc")

    again = orchestrator.get_or_create_session("notes.md", "Other")

    assert again is created
    assert orchestrator.list_sessions("notes.md") == [created]


def test_delete_refuses_the_only_session(store: SessionStore, settings: Settings) -> None:
    orchestrator = _orchestrator(store, settings, FakeCompletion())
    only = orchestrator.create_session("notes.md", "")

    assert orchestrator.delete_session("notes.md", only.id) is False
    assert orchestrator.list_sessions("notes.md") == [only]


def test_delete_active_session_and_fall_back(store: SessionStore, settings: Settings) -> None:
    orchestrator = _orchestrator(store, settings, FakeCompletion())
    older = orchestrator.create_session("notes.md", "")
    newer = orchestrator.create_session("notes.md", "")

    assert orchestrator.delete_session("notes.md", newer.id) is True
    assert orchestrator.active_session_id is None

    fallback = orchestrator.select_fallback_session("notes.md", "")
    assert fallback is older
    assert orchestrator.active_session_id == older.id


def test_delete_unknown_session_returns_false(store: SessionStore, settings: Settings) -> None:
    orchestrator = _orchestrator(store, settings, FakeCompletion())
    orchestrator.create_session("notes.md", "")

    assert orchestrator.delete_session("notes.md", "session-missing") is False


def test_rename_session(store: SessionStore, settings: Settings) -> None:
    orchestrator = _orchestrator(store, settings, FakeCompletion())
    session = orchestrator.create_session("notes.md", "")

    assert orchestrator.rename_session("notes.md", session.id, "Plot notes") is True
    assert store.get("notes.md", session.id).name == "Plot notes"


def test_from_settings_wires_client_and_store(tmp_path, settings: Settings) -> None:
    captured: list[ClientSettings] = []

    def factory(client_settings: ClientSettings) -> FakeCompletion:
        captured.append(client_settings)
        return FakeCompletion()

    configured = replace(settings, config_dir=str(tmp_path), max_retries=3)
    orchestrator = ChatOrchestrator.from_settings(configured, client_factory=factory)
    orchestrator.create_session("notes.md", "")

    (client_settings,) = captured
    assert client_settings.api_key == "test-key"
    assert client_settings.base_url == configured.base_url
    assert client_settings.max_retries == 3
    assert client_settings.default_headers["X-Title"] == "Aztec AI Chat"
    assert (tmp_path / "plugins" / "aztec" / "aztec-chat-sessions.json").exists()
