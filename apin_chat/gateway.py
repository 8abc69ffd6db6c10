"""
Model Gateway: the boundary between the Session Store and the language model.

``ModelGateway`` is the contract the store consumes. ``FoundationModelGateway``
implements it on top of ``apple_fm_sdk`` (Apple Foundation Models); the SDK is
imported lazily so the rest of the package stays importable on machines
without it.
"""

from __future__ import annotations

import importlib
import logging
import time
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from .availability import AVAILABLE, Availability, reason_from_sdk
from .exceptions import GenerationError, GenerationErrorKind
from .models import DEFAULT_TITLE, GenerationProfile, Speaker, Turn

logger = logging.getLogger("apin_chat.gateway")

TITLE_MAX_CHARS = 30
TITLE_TRUNCATED_CHARS = 27
TITLE_ELLIPSIS = "..."
TITLE_INSTRUCTIONS = (
    "Create a very short title (3-5 words) for a conversation that starts with this "
    "message. Return only the title without quotes or additional text."
)
FALLBACK_FAILURE_MESSAGE = "Sorry, I wasn't able to respond. Please try again."

_QUOTE_CHARS = "\"'“”‘’`"

_FAILURE_MESSAGES = {
    GenerationErrorKind.UNAVAILABLE: (
        "Sorry, the on-device model became unavailable before I could respond. "
        "Please try again in a moment."
    ),
    GenerationErrorKind.BUSY: (
        "Sorry, the model is busy with another request. Please try again in a moment."
    ),
    GenerationErrorKind.CONTEXT_OVERFLOW: (
        "Sorry, this conversation has grown too long for me to respond. "
        "Please start a new chat."
    ),
    GenerationErrorKind.REJECTED: "Sorry, I can't help with that request.",
}


@runtime_checkable
class ModelGateway(Protocol):
    """What the Session Store needs from a language-model backend."""

    def availability(self) -> Availability: ...

    async def generate_response(
        self, turns: Sequence[Turn], profile: GenerationProfile
    ) -> str: ...

    async def generate_title(self, seed_text: str) -> str: ...


def format_title(raw: str | None) -> str:
    """Clean up a generated title.

    Surrounding whitespace and quotes are stripped and embedded double quotes
    removed. Titles longer than 30 characters keep their first 27 characters
    followed by ``"..."``; an empty result falls back to ``"New Chat"``.
    """
    title = (raw or "").strip().replace('"', "").strip(_QUOTE_CHARS + " \t\r\n")
    if len(title) > TITLE_MAX_CHARS:
        return title[:TITLE_TRUNCATED_CHARS] + TITLE_ELLIPSIS
    return title or DEFAULT_TITLE


def describe_generation_failure(exc: BaseException) -> str:
    """Apologetic, non-technical replacement text for a failed response."""
    if isinstance(exc, GenerationError):
        return _FAILURE_MESSAGES.get(exc.kind, FALLBACK_FAILURE_MESSAGE)
    return FALLBACK_FAILURE_MESSAGE


def render_transcript(turns: Sequence[Turn]) -> str:
    """Render prior turns as a plain transcript for string-based prompts."""
    lines = []
    for turn in turns:
        role = "User" if turn.speaker is Speaker.USER else "Assistant"
        lines.append(f"{role}: {turn.content}")
    return "\n\n".join(lines)


def build_prompt(turns: Sequence[Turn]) -> str:
    """Build the prompt envelope for the next assistant turn."""
    if not turns:
        raise ValueError("Cannot build a prompt from an empty conversation.")
    latest = turns[-1]
    history = turns[:-1]
    return "\n\n".join(
        [
            "You are responding to the next turn of a local-first chat app.",
            "Conversation Context:",
            render_transcript(history) or "(no prior context)",
            "Latest User Message:",
            latest.content,
            "Reply to the latest user message only.",
        ]
    )


class FoundationModelGateway:
    """``ModelGateway`` backed by Apple Foundation Models via ``apple_fm_sdk``.

    Args:
        fm_module: The SDK module. Defaults to importing ``apple_fm_sdk``.
        model: A ``SystemLanguageModel``. Defaults to the system model.
    """

    def __init__(self, fm_module: Any = None, model: Any = None) -> None:
        self._fm = fm_module if fm_module is not None else importlib.import_module("apple_fm_sdk")
        self._model = model if model is not None else self._fm.SystemLanguageModel()

    def availability(self) -> Availability:
        try:
            is_available, reason = self._model.is_available()
        except Exception as exc:
            logger.warning("[ApinChat Gateway] Availability probe failed: %s", exc)
            return reason_from_sdk(f"availability probe failed: {exc}")
        if is_available:
            return AVAILABLE
        return reason_from_sdk(reason)

    def _session(self, instructions: str) -> Any:
        return self._fm.LanguageModelSession(model=self._model, instructions=instructions)

    def _options(self, profile: GenerationProfile) -> Any:
        return self._fm.GenerationOptions(temperature=profile.temperature)

    async def _respond(self, instructions: str, prompt: str, profile: GenerationProfile) -> str:
        availability = self.availability()
        if not availability.is_available:
            raise GenerationError(str(availability), GenerationErrorKind.UNAVAILABLE)
        session = self._session(instructions)
        start_time = time.perf_counter()
        try:
            result = await session.respond(prompt, options=self._options(profile))
        except GenerationError:
            raise
        except Exception as exc:
            error = GenerationError.from_exception(exc)
            logger.error(
                "[ApinChat Gateway] Generation failed (%s): %s", error.kind.value, error
            )
            raise error from exc
        elapsed = time.perf_counter() - start_time
        logger.debug(
            "[ApinChat Gateway] Generation completed in %.3fs. Prompt length: %d chars.",
            elapsed,
            len(prompt),
        )
        return str(result)

    async def generate_response(self, turns: Sequence[Turn], profile: GenerationProfile) -> str:
        logger.info(
            "[ApinChat Gateway] Generating response using %s profile with %d turns",
            profile.label,
            len(turns),
        )
        return await self._respond(profile.instructions, build_prompt(turns), profile)

    async def generate_title(self, seed_text: str) -> str:
        logger.info("[ApinChat Gateway] Generating title for chat")
        return await self._respond(TITLE_INSTRUCTIONS, seed_text, GenerationProfile.PRECISE)
