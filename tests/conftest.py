"""Shared fixtures and fakes for the apin-chat tests."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from apin_chat.availability import AVAILABLE, Availability
from apin_chat.persistence import BlobStore, SessionPersistence
from apin_chat.store import SessionStore


class FakeGateway:
    """Scriptable ModelGateway that records every request."""

    def __init__(
        self,
        response: str = "Hello!",
        title: str = "Friendly Greeting",
        availability: Availability = AVAILABLE,
    ):
        self.response = response
        self.title = title
        self.current_availability = availability
        self.response_error: BaseException | None = None
        self.title_error: BaseException | None = None
        self.response_calls: list[tuple[list, object]] = []
        self.title_calls: list[str] = []
        self.availability_calls = 0
        # When set, generate_response waits for this event before answering.
        self.release: asyncio.Event | None = None

    def availability(self) -> Availability:
        self.availability_calls += 1
        return self.current_availability

    async def generate_response(self, turns, profile) -> str:
        self.response_calls.append((list(turns), profile))
        if self.release is not None:
            await self.release.wait()
        if self.response_error is not None:
            raise self.response_error
        return self.response

    async def generate_title(self, seed_text: str) -> str:
        self.title_calls.append(seed_text)
        if self.title_error is not None:
            raise self.title_error
        return self.title


class MemoryPersistence:
    """PersistenceGateway double that keeps snapshots of every save."""

    def __init__(self, sessions=None):
        self.saved: list[list[dict]] = []
        self.cleared = 0
        self._initial = list(sessions or [])

    def save(self, sessions) -> None:
        self.saved.append([session.to_dict() for session in sessions])

    def load(self):
        return list(self._initial)

    def clear(self) -> None:
        self.cleared += 1


def make_mock_model(available: bool = True, reason=None) -> MagicMock:
    model = MagicMock()
    model.is_available.return_value = (available, reason)
    return model


def make_fm_module(model: MagicMock, respond_result="Hello from the model") -> MagicMock:
    """A stand-in for the ``apple_fm_sdk`` module with a scripted session."""
    fm = MagicMock()
    fm.SystemLanguageModel.return_value = model
    session = MagicMock()
    if isinstance(respond_result, BaseException):
        session.respond = AsyncMock(side_effect=respond_result)
    else:
        session.respond = AsyncMock(return_value=respond_result)
    fm.LanguageModelSession.return_value = session
    return fm


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture
def store(gateway, persistence) -> SessionStore:
    return SessionStore(gateway, persistence)


@pytest.fixture
def blob_store():
    blobs = BlobStore.in_memory()
    yield blobs
    blobs.close()


@pytest.fixture
def session_persistence(blob_store) -> SessionPersistence:
    return SessionPersistence(blob_store)
