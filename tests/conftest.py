"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from aztec.chat.session_store import InMemoryRegistryBackend, SessionStore
from aztec.services.settings import Settings
from tests.helpers import StepClock


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def backend() -> InMemoryRegistryBackend:
    return InMemoryRegistryBackend()


@pytest.fixture
def store(backend: InMemoryRegistryBackend, clock: StepClock) -> SessionStore:
    return SessionStore(backend, clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="test-key", model="general/model", chat_model="", summarization_model="cheap/model")
