"""
Error taxonomy for apin-chat.

Generation failures are recovered inside the Session Store and never reach
callers of ``send_message``; the unavailable and busy errors are the two
conditions a caller is expected to handle.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .availability import Availability


class ApinChatError(Exception):
    """Base class for all apin-chat errors."""


class ModelUnavailableError(ApinChatError):
    """The on-device model cannot serve requests right now."""

    def __init__(self, availability: Availability, context: str = "") -> None:
        from .availability import describe_availability

        self.availability = availability
        self.context = context
        message = describe_availability(availability)
        if context:
            message = f"{context}: {message}"
        super().__init__(message)


class StoreBusyError(ApinChatError):
    """A response is already being generated."""

    def __init__(self, message: str = "A response is already being generated.") -> None:
        super().__init__(message)


class GenerationErrorKind(enum.Enum):
    UNAVAILABLE = "unavailable"
    BUSY = "busy"
    CONTEXT_OVERFLOW = "context_overflow"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


# Matched against SDK exception type names and messages; the SDK is not
# imported here so classification works for any backend.
_KIND_MARKERS: tuple[tuple[GenerationErrorKind, tuple[str, ...]], ...] = (
    (GenerationErrorKind.CONTEXT_OVERFLOW, ("ExceededContextWindowSize", "context window")),
    (GenerationErrorKind.BUSY, ("ConcurrentRequests", "RateLimited", "rate limit")),
    (GenerationErrorKind.UNAVAILABLE, ("AssetsUnavailable", "not available", "unavailable")),
    (
        GenerationErrorKind.REJECTED,
        ("GuardrailViolation", "Refusal", "UnsupportedLanguage", "guardrail"),
    ),
)


class GenerationError(ApinChatError):
    """A response or title request failed in the backend."""

    def __init__(self, message: str, kind: GenerationErrorKind = GenerationErrorKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind

    @classmethod
    def from_exception(cls, exc: BaseException) -> GenerationError:
        """Classify an arbitrary backend exception."""
        if isinstance(exc, GenerationError):
            return exc
        haystack = f"{type(exc).__name__}: {exc}"
        lowered = haystack.lower()
        for kind, markers in _KIND_MARKERS:
            if any(marker.lower() in lowered for marker in markers):
                return cls(haystack, kind)
        return cls(haystack, GenerationErrorKind.UNKNOWN)


class PersistenceError(ApinChatError):
    """Reading or writing the blob store failed."""
