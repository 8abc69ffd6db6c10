import logging
import sqlite3

import pytest

from apin_chat.exceptions import PersistenceError
from apin_chat.models import Session, Turn
from apin_chat.persistence import (
    DEFAULT_STORAGE_KEY,
    BlobStore,
    PersistenceGateway,
    SessionPersistence,
)


def _sample_sessions() -> list[Session]:
    first = Session(title="Tea", turns=[Turn.user("Hi"), Turn.assistant("Hello!")])
    second = Session(turns=[Turn.user("Pending?"), Turn.placeholder()])
    return [first, second, Session()]


class TestBlobStore:
    def test_put_get_delete(self, blob_store):
        assert blob_store.get("k") is None

        blob_store.put("k", b"one")
        blob_store.put("k", b"two")

        assert blob_store.get("k") == b"two"
        blob_store.delete("k")
        assert blob_store.get("k") is None

    def test_file_backed_store_survives_reopen(self, tmp_path):
        path = tmp_path / "nested" / "chat.sqlite3"
        blobs = BlobStore(path)
        blobs.put("k", b"value")
        blobs.close()

        reopened = BlobStore(path)
        try:
            assert reopened.get("k") == b"value"
        finally:
            reopened.close()

    def test_errors_become_persistence_errors(self, blob_store):
        blob_store.close()

        with pytest.raises(PersistenceError) as excinfo:
            blob_store.get("k")

        assert isinstance(excinfo.value.__cause__, sqlite3.Error)


class TestSessionPersistence:
    def test_satisfies_protocol(self, session_persistence):
        assert isinstance(session_persistence, PersistenceGateway)

    def test_round_trip(self, session_persistence):
        sessions = _sample_sessions()

        session_persistence.save(sessions)

        assert session_persistence.load() == sessions

    def test_round_trip_keeps_empty_title(self, session_persistence):
        untitled = Session(title="", turns=[Turn.user("Hi")])

        session_persistence.save([untitled])

        loaded = session_persistence.load()
        assert loaded == [untitled]
        assert loaded[0].title == ""

    def test_round_trip_preserves_order(self, session_persistence):
        sessions = _sample_sessions()
        session_persistence.save(list(reversed(sessions)))

        assert [s.id for s in session_persistence.load()] == [s.id for s in reversed(sessions)]

    def test_empty_store_loads_nothing(self, session_persistence, caplog):
        with caplog.at_level(logging.INFO, logger="apin_chat.persistence"):
            assert session_persistence.load() == []

        assert any("No saved chats found" in r.getMessage() for r in caplog.records)

    def test_corrupt_blob_loads_nothing(self, blob_store, caplog):
        blob_store.put(DEFAULT_STORAGE_KEY, b"{not json")
        persistence = SessionPersistence(blob_store)

        with caplog.at_level(logging.ERROR, logger="apin_chat.persistence"):
            assert persistence.load() == []

        assert any("Failed to load chats" in r.getMessage() for r in caplog.records)

    def test_wrong_shape_loads_nothing(self, blob_store):
        blob_store.put(DEFAULT_STORAGE_KEY, b'{"chats": []}')

        assert SessionPersistence(blob_store).load() == []

    def test_missing_fields_load_nothing(self, blob_store):
        blob_store.put(DEFAULT_STORAGE_KEY, b'[{"title": "no id"}]')

        assert SessionPersistence(blob_store).load() == []

    def test_clear(self, session_persistence):
        session_persistence.save(_sample_sessions())

        session_persistence.clear()

        assert session_persistence.load() == []

    def test_custom_key_isolated(self, blob_store):
        default = SessionPersistence(blob_store)
        other = SessionPersistence(blob_store, key="other_chats")
        default.save(_sample_sessions())

        assert other.load() == []

    def test_save_failure_is_logged_not_raised(self, blob_store, caplog):
        persistence = SessionPersistence(blob_store)
        blob_store.close()

        with caplog.at_level(logging.ERROR, logger="apin_chat.persistence"):
            persistence.save(_sample_sessions())
            persistence.clear()
            assert persistence.load() == []

        messages = [r.getMessage() for r in caplog.records]
        assert any("Failed to save chats" in m for m in messages)
        assert any("Failed to clear chats" in m for m in messages)
        assert any("Failed to load chats" in m for m in messages)
