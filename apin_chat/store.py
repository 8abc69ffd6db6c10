"""
Session Store: owns the chat sessions and drives the send/respond protocol.

All state lives on one event loop. ``send_message`` appends the user turn and
a pending placeholder, persists, and schedules the generation as a background
task; the placeholder is later replaced in place, addressed by session id and
turn id so a response always lands on the session that asked for it. The first
exchange of a session schedules a second, independent title request.

Only one generation is in flight per store at a time.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from collections.abc import Callable
from typing import Any

from .availability import Availability, UnavailableReason
from .exceptions import ModelUnavailableError, StoreBusyError
from .gateway import (
    FALLBACK_FAILURE_MESSAGE,
    ModelGateway,
    describe_generation_failure,
    format_title,
)
from .models import DEFAULT_TITLE, GenerationProfile, Session, Turn
from .persistence import PersistenceGateway

logger = logging.getLogger("apin_chat.store")

NOT_CHECKED = Availability.unavailable(UnavailableReason.OTHER, "availability not checked yet")


class StoreEvent(enum.Enum):
    SESSIONS_CHANGED = "sessions_changed"
    ACTIVE_CHANGED = "active_changed"
    BUSY_CHANGED = "busy_changed"
    AVAILABILITY_CHANGED = "availability_changed"
    MODEL_UNAVAILABLE = "model_unavailable"


Listener = Callable[[StoreEvent], Any]


class SessionStore:
    """In-memory owner of chat sessions, backed by a model and a persistence gateway."""

    def __init__(
        self,
        gateway: ModelGateway,
        persistence: PersistenceGateway,
        profile: GenerationProfile = GenerationProfile.BALANCED,
    ):
        self._gateway = gateway
        self._persistence = persistence
        self._sessions: list[Session] = []
        self._active_session_id: str | None = None
        self._selected_profile = profile
        self._busy = False
        self._availability = NOT_CHECKED
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()

    # ── Read access ──────────────────────────────────────────────────────────

    @property
    def sessions(self) -> tuple[Session, ...]:
        return tuple(self._sessions)

    @property
    def active_session_id(self) -> str | None:
        return self._active_session_id

    @property
    def active_session(self) -> Session | None:
        if self._active_session_id is None:
            return None
        return self.get_session(self._active_session_id)

    @property
    def selected_profile(self) -> GenerationProfile:
        return self._selected_profile

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def availability(self) -> Availability:
        return self._availability

    def get_session(self, session_id: str) -> Session | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    # ── Change notification ──────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for store events. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: StoreEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.iscoroutine(result):
                    self._spawn_listener(result, event)
            except Exception:
                logger.warning(
                    "[ApinChat Store] Listener failed for %s.", event.value, exc_info=True
                )

    # ── Session management ───────────────────────────────────────────────────

    def _save(self) -> None:
        self._persistence.save(self._sessions)

    def _set_active(self, session_id: str | None) -> None:
        if session_id == self._active_session_id:
            return
        self._active_session_id = session_id
        self._notify(StoreEvent.ACTIVE_CHANGED)

    def _set_busy(self, busy: bool) -> None:
        if busy == self._busy:
            return
        self._busy = busy
        self._notify(StoreEvent.BUSY_CHANGED)

    def restore(self) -> None:
        """Load saved sessions and activate the first one.

        Placeholders saved by a reply that never finished are resolved with
        the generic apology so each session starts with no pending turn.
        """
        self._sessions = self._persistence.load()
        interrupted = 0
        for session in self._sessions:
            stale = session.pending_turn()
            while stale is not None:
                session.replace_turn(stale.id, Turn.assistant(FALLBACK_FAILURE_MESSAGE))
                interrupted += 1
                stale = session.pending_turn()
        self._notify(StoreEvent.SESSIONS_CHANGED)
        self._set_active(self._sessions[0].id if self._sessions else None)
        if interrupted:
            logger.warning("[ApinChat Store] Resolved %d interrupted replies", interrupted)
            self._save()

    def create_session(self) -> Session:
        session = Session(title=DEFAULT_TITLE)
        self._sessions.append(session)
        self._notify(StoreEvent.SESSIONS_CHANGED)
        self._set_active(session.id)
        self._save()
        logger.info("[ApinChat Store] Created chat %s", session.id)
        return session

    def delete_session(self, session_id: str) -> None:
        session = self.get_session(session_id)
        if session is None:
            return
        self._sessions.remove(session)
        self._notify(StoreEvent.SESSIONS_CHANGED)
        if self._active_session_id == session_id:
            self._set_active(self._sessions[0].id if self._sessions else None)
        self._save()
        logger.info("[ApinChat Store] Deleted chat %s", session_id)

    def select_session(self, session_id: str) -> None:
        if self.get_session(session_id) is not None:
            self._set_active(session_id)

    def update_session(self, session: Session) -> None:
        """Replace the stored session with the same id, then persist."""
        for index, existing in enumerate(self._sessions):
            if existing.id == session.id:
                self._sessions[index] = session
                self._notify(StoreEvent.SESSIONS_CHANGED)
                break
        self._save()

    def clear_all(self) -> Session:
        """Delete every session and start over with a single fresh one."""
        self._sessions.clear()
        self._active_session_id = None
        self._persistence.clear()
        return self.create_session()

    def set_profile(self, profile: GenerationProfile) -> None:
        self._selected_profile = profile

    def check_availability(self) -> Availability:
        """Refresh the cached backend availability."""
        availability = self._gateway.availability()
        if availability != self._availability:
            self._availability = availability
            self._notify(StoreEvent.AVAILABILITY_CHANGED)
        return availability

    # ── Send / respond ───────────────────────────────────────────────────────

    def send_message(self, text: str) -> asyncio.Task | None:
        """Append ``text`` to the active session and start generating a reply.

        Returns the background task handling the reply, or ``None`` when the
        call is a no-op (blank text or no active session). A send that gets
        past the preconditions must be made from a running event loop.

        Raises:
            ModelUnavailableError: The model is not available.
            StoreBusyError: A reply is already being generated.
        """
        content = text.strip()
        if not content:
            return None
        session = self.active_session
        if session is None:
            return None
        availability = self.check_availability()
        if not availability.is_available:
            self._notify(StoreEvent.MODEL_UNAVAILABLE)
            raise ModelUnavailableError(availability, context="Cannot send message")
        if self._busy:
            raise StoreBusyError()
        asyncio.get_running_loop()  # raises outside an event loop, before any mutation

        session.turns.append(Turn.user(content))
        placeholder = Turn.placeholder()
        session.turns.append(placeholder)
        self._notify(StoreEvent.SESSIONS_CHANGED)
        self._save()
        self._set_busy(True)

        history = [turn for turn in session.turns if not turn.pending]
        return self._spawn(
            self._generate_response(session.id, placeholder.id, history, content),
            name=f"apin-chat-response-{session.id}",
        )

    async def _generate_response(
        self,
        session_id: str,
        placeholder_id: str,
        history: list[Turn],
        seed_text: str,
    ) -> None:
        profile = self._selected_profile
        try:
            response = await self._gateway.generate_response(history, profile)
        except Exception as exc:
            logger.error("[ApinChat Store] Error generating response: %s", exc)
            self._resolve_placeholder(
                session_id, placeholder_id, Turn.assistant(describe_generation_failure(exc))
            )
            return

        session = self._resolve_placeholder(session_id, placeholder_id, Turn.assistant(response))
        if session is not None and len(session.turns) == 2:
            self._spawn(
                self._generate_title(session_id, seed_text),
                name=f"apin-chat-title-{session_id}",
            )

    def _resolve_placeholder(
        self, session_id: str, placeholder_id: str, replacement: Turn
    ) -> Session | None:
        """Swap the pending turn for ``replacement``, clear busy, persist."""
        session = self.get_session(session_id)
        try:
            if session is None:
                logger.warning(
                    "[ApinChat Store] Chat %s was deleted before its reply arrived.", session_id
                )
                return None
            if not session.replace_turn(placeholder_id, replacement):
                logger.warning(
                    "[ApinChat Store] Pending turn %s vanished from chat %s.",
                    placeholder_id,
                    session_id,
                )
                return None
            session.touch()
            self._notify(StoreEvent.SESSIONS_CHANGED)
            return session
        finally:
            self._set_busy(False)
            self._save()

    async def _generate_title(self, session_id: str, seed_text: str) -> None:
        try:
            raw_title = await self._gateway.generate_title(seed_text)
        except Exception as exc:
            logger.error("[ApinChat Store] Error generating title: %s", exc)
            return

        session = self.get_session(session_id)
        if session is None:
            return
        session.title = format_title(raw_title)
        self._notify(StoreEvent.SESSIONS_CHANGED)
        self._save()
        logger.info("[ApinChat Store] Titled chat %s: %s", session_id, session.title)

    # ── Background tasks ─────────────────────────────────────────────────────

    def _spawn(self, coro: Any, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until every pending reply and title request has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn_listener(self, coro: Any, event: StoreEvent) -> None:
        try:
            self._spawn(coro, name=f"apin-chat-listener-{event.value}")
        except RuntimeError:
            coro.close()
            logger.warning(
                "[ApinChat Store] Async listener for %s needs a running event loop.", event.value
            )
