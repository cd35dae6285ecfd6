"""Tests for chat message and session data models."""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

import pytest

from aztec.chat.message_model import ChatMessage, ChatSession


def test_create_computes_token_count() -> None:
    message = ChatMessage.create("user", "x" * 9)

    assert message.token_count == 3
    assert message.as_wire() == {"role": "user", "content": "x" * 9}


def test_messages_are_immutable() -> None:
    message = ChatMessage.create("assistant", "hi")

    with pytest.raises(dataclasses.FrozenInstanceError):
        message.content = "changed"  # type: ignore[misc]


def test_create_rejects_unknown_role() -> None:
    with pytest.raises(ValueError):
        ChatMessage.create("tool", "nope")  # type: ignore[arg-type]


def test_session_round_trips_through_dict() -> None:
    stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    session = ChatSession(
        id="session-1",
        name="Draft review",
        document_ref="notes.md",
        seed_context="seed",
        messages=[ChatMessage.create("user", "Hello", created_at=stamp)],
        created_at=stamp,
        updated_at=stamp,
    )

    restored = ChatSession.from_dict(session.to_dict())

    assert restored == session


def test_session_from_dict_accepts_epoch_millis_and_skips_bad_messages() -> None:
    payload = {
        "id": "session-legacy",
        "name": "Legacy",
        "articlePath": "ignored",
        "seed_context": "ctx",
        "messages": [
            {"role": "user", "content": "kept", "created_at": 1_700_000_000_000},
            {"role": "robot", "content": "dropped"},
            "not-a-mapping",
            {"role": "assistant"},
        ],
        "created_at": 1_700_000_000_000,
        "updated_at": 1_700_000_500_000,
    }

    session = ChatSession.from_dict(payload, document_ref="notes.md")

    assert session.document_ref == "notes.md"
    assert [m.content for m in session.messages] == ["kept"]
    assert session.messages[0].token_count == 1
    assert session.updated_at > session.created_at
    assert session.created_at.tzinfo is not None


def test_session_from_dict_requires_id() -> None:
    with pytest.raises(ValueError):
        ChatSession.from_dict({"name": "no id"}, document_ref="notes.md")


def test_session_token_count_sums_messages() -> None:
    session = ChatSession(id="s", name="n", document_ref="d")
    session.messages.append(ChatMessage.create("user", "x" * 8))
    session.messages.append(ChatMessage.create("assistant", "x" * 5))

    assert session.token_count == 4
