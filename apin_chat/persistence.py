"""
Persistence Gateway: durable storage for the session list.

``BlobStore`` is a tiny sqlite-backed key-value table. ``SessionPersistence``
keeps the whole session list as one JSON blob under a single key. Saving is
best-effort: failures are logged and never raised to the Session Store.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from .exceptions import PersistenceError
from .models import Session

logger = logging.getLogger("apin_chat.persistence")

DEFAULT_STORAGE_KEY = "stored_chats"


@runtime_checkable
class PersistenceGateway(Protocol):
    def save(self, sessions: Sequence[Session]) -> None: ...

    def load(self) -> list[Session]: ...

    def clear(self) -> None: ...


class BlobStore:
    """Fast sqlite key-value storage for opaque blobs."""

    def __init__(self, path: Path | str):
        self.path = path
        if isinstance(path, Path):
            path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = sqlite3.connect(path)
            self._tune_pragmas()
            self._init_schema()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not open blob store at {path}: {exc}") from exc

    @classmethod
    def in_memory(cls) -> BlobStore:
        return cls(":memory:")

    def _tune_pragmas(self) -> None:
        """Tune sqlite for local low-latency usage."""
        self.conn.execute("PRAGMA journal_mode = WAL")
        self.conn.execute("PRAGMA synchronous = NORMAL")
        self.conn.execute("PRAGMA temp_store = MEMORY")

    def _init_schema(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self.conn.commit()

    def get(self, key: str) -> bytes | None:
        try:
            row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not read '{key}': {exc}") from exc
        return None if row is None else bytes(row[0])

    def put(self, key: str, value: bytes) -> None:
        now = datetime.now(UTC).replace(microsecond=0).isoformat()
        try:
            self.conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at
                """,
                (key, value, now),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not write '{key}': {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self.conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not delete '{key}': {exc}") from exc

    def close(self) -> None:
        """Close sqlite connection."""
        self.conn.close()


class SessionPersistence:
    """Save and restore the ordered session list as a single JSON blob."""

    def __init__(self, blob_store: BlobStore, key: str = DEFAULT_STORAGE_KEY):
        self.blob_store = blob_store
        self.key = key

    def save(self, sessions: Sequence[Session]) -> None:
        try:
            payload = json.dumps(
                [session.to_dict() for session in sessions], ensure_ascii=False
            ).encode("utf-8")
            self.blob_store.put(self.key, payload)
        except (PersistenceError, TypeError, ValueError) as exc:
            logger.error("[ApinChat Persistence] Failed to save chats: %s", exc)
            return
        logger.info("[ApinChat Persistence] Saved %d chats", len(sessions))

    def load(self) -> list[Session]:
        try:
            raw = self.blob_store.get(self.key)
        except PersistenceError as exc:
            logger.error("[ApinChat Persistence] Failed to load chats: %s", exc)
            return []
        if raw is None:
            logger.info("[ApinChat Persistence] No saved chats found")
            return []

        try:
            parsed = json.loads(raw.decode("utf-8"))
            if not isinstance(parsed, list):
                raise ValueError(f"expected a list, got {type(parsed).__name__}")
            sessions = [Session.from_dict(item) for item in parsed]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.error("[ApinChat Persistence] Failed to load chats: %s", exc)
            return []
        logger.info("[ApinChat Persistence] Loaded %d chats", len(sessions))
        return sessions

    def clear(self) -> None:
        try:
            self.blob_store.delete(self.key)
        except PersistenceError as exc:
            logger.error("[ApinChat Persistence] Failed to clear chats: %s", exc)
            return
        logger.info("[ApinChat Persistence] Cleared all chats")
