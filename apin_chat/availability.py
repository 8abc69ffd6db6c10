"""
Backend availability and its user-facing translation.

``Availability`` is a small tagged value: either ready, or unavailable with an
``UnavailableReason`` (plus free-text detail for ``OTHER``). The translation
functions are pure and total; unknown reasons land in the generic
"unavailable" bucket.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any


class UnavailableReason(enum.Enum):
    DEVICE_INELIGIBLE = "device_ineligible"
    FEATURE_DISABLED = "feature_disabled"
    MODEL_DOWNLOADING = "model_downloading"
    OTHER = "other"


class StatusCategory(enum.Enum):
    READY = "ready"
    DOWNLOADING = "downloading"
    DISABLED = "disabled"
    ERROR = "error"


@dataclass(frozen=True)
class Availability:
    reason: UnavailableReason | None = None
    detail: str = ""

    @classmethod
    def available(cls) -> Availability:
        return cls()

    @classmethod
    def unavailable(cls, reason: UnavailableReason, detail: str = "") -> Availability:
        return cls(reason=reason, detail=detail)

    @property
    def is_available(self) -> bool:
        return self.reason is None

    def __str__(self) -> str:
        if self.is_available:
            return "available"
        if self.detail:
            return f"unavailable ({self.reason.value}: {self.detail})"
        return f"unavailable ({self.reason.value})"


AVAILABLE = Availability.available()

READY_MESSAGE = "The on-device model is ready."
GENERIC_UNAVAILABLE_MESSAGE = "The on-device model is currently unavailable."

_REASON_MESSAGES = {
    UnavailableReason.DEVICE_INELIGIBLE: (
        "This device does not support Apple Intelligence, so the on-device model "
        "cannot be used."
    ),
    UnavailableReason.FEATURE_DISABLED: (
        "Apple Intelligence is turned off. Enable it in System Settings to start chatting."
    ),
    UnavailableReason.MODEL_DOWNLOADING: (
        "The on-device model is still downloading. Try again once the download finishes."
    ),
}

_REASON_CATEGORIES = {
    UnavailableReason.DEVICE_INELIGIBLE: StatusCategory.DISABLED,
    UnavailableReason.FEATURE_DISABLED: StatusCategory.DISABLED,
    UnavailableReason.MODEL_DOWNLOADING: StatusCategory.DOWNLOADING,
}


def describe_availability(availability: Availability) -> str:
    """Human-readable sentence for a status line or error dialog."""
    if availability.is_available:
        return READY_MESSAGE
    message = _REASON_MESSAGES.get(availability.reason)
    if message is not None:
        return message
    if availability.reason is UnavailableReason.OTHER and availability.detail:
        return f"{GENERIC_UNAVAILABLE_MESSAGE} Reason: {availability.detail}."
    return GENERIC_UNAVAILABLE_MESSAGE


def status_category(availability: Availability) -> StatusCategory:
    """Coarse category for status indicators."""
    if availability.is_available:
        return StatusCategory.READY
    return _REASON_CATEGORIES.get(availability.reason, StatusCategory.ERROR)


# SDK reason names (and their common spellings) mapped onto our reasons.
_SDK_REASON_NAMES = {
    "DEVICE_NOT_ELIGIBLE": UnavailableReason.DEVICE_INELIGIBLE,
    "DEVICENOTELIGIBLE": UnavailableReason.DEVICE_INELIGIBLE,
    "APPLE_INTELLIGENCE_NOT_ENABLED": UnavailableReason.FEATURE_DISABLED,
    "APPLEINTELLIGENCENOTENABLED": UnavailableReason.FEATURE_DISABLED,
    "MODEL_NOT_READY": UnavailableReason.MODEL_DOWNLOADING,
    "MODELNOTREADY": UnavailableReason.MODEL_DOWNLOADING,
}


def reason_from_sdk(raw: Any) -> Availability:
    """Translate the SDK's unavailable reason (enum member or text) to ``Availability``."""
    if raw is None:
        return Availability.unavailable(UnavailableReason.OTHER, "no reason reported")
    name = getattr(raw, "name", None) or str(raw)
    # "SystemLanguageModelUnavailableReason.MODEL_NOT_READY" -> "MODEL_NOT_READY"
    key = name.rsplit(".", 1)[-1].strip().upper()
    reason = _SDK_REASON_NAMES.get(key)
    if reason is None:
        return Availability.unavailable(UnavailableReason.OTHER, str(raw))
    return Availability.unavailable(reason)
