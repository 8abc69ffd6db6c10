"""Chat sessions, turns and generation profiles."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

DEFAULT_TITLE = "New Chat"
EMPTY_PREVIEW = "No messages"


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(UTC)


def new_id() -> str:
    return uuid.uuid4().hex


def _parse_timestamp(value: Any) -> datetime:
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class Speaker(enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class GenerationProfile(enum.Enum):
    """Named presets controlling system instructions and sampling temperature."""

    BALANCED = (
        "Balanced",
        "Balanced for everyday conversations",
        "You are Apin, a helpful AI assistant. Respond conversationally and be concise. "
        "Keep your responses friendly and natural while being helpful and informative.",
        0.7,
    )
    CREATIVE = (
        "Creative",
        "More creative and expressive responses",
        "You are Apin, a creative AI assistant. Feel free to be imaginative, expressive, "
        "and think outside the box. Use creative language and explore interesting "
        "perspectives while remaining helpful.",
        1.2,
    )
    PRECISE = (
        "Precise",
        "Focused on accuracy and facts",
        "You are Apin, a precise AI assistant. Focus on accuracy, facts, and clear "
        "information. Provide well-structured responses with specific details. Respond as "
        "briefly as possible while maintaining completeness.",
        0.3,
    )

    def __init__(self, label: str, description: str, instructions: str, temperature: float):
        self.label = label
        self.description = description
        self.instructions = instructions
        self.temperature = temperature

    @classmethod
    def from_label(cls, value: str, fallback: GenerationProfile | None = None) -> GenerationProfile:
        """Resolve a profile by case-insensitive label or member name."""
        needle = value.strip().lower()
        for profile in cls:
            if needle in {profile.label.lower(), profile.name.lower()}:
                return profile
        if fallback is None:
            raise ValueError(f"Unknown generation profile: {value!r}")
        return fallback


@dataclass
class Turn:
    """One message in a session."""

    content: str
    speaker: Speaker
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    pending: bool = False

    @classmethod
    def user(cls, content: str) -> Turn:
        return cls(content=content, speaker=Speaker.USER)

    @classmethod
    def assistant(cls, content: str) -> Turn:
        return cls(content=content, speaker=Speaker.ASSISTANT)

    @classmethod
    def placeholder(cls) -> Turn:
        """Pending assistant turn awaiting a backend result."""
        return cls(content="", speaker=Speaker.ASSISTANT, pending=True)

    @property
    def is_user(self) -> bool:
        return self.speaker is Speaker.USER

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "speaker": self.speaker.value,
            "created_at": self.created_at.isoformat(),
            "pending": self.pending,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Turn:
        return cls(
            id=str(data["id"]),
            content=str(data.get("content", "")),
            speaker=Speaker(data["speaker"]),
            created_at=_parse_timestamp(data["created_at"]),
            pending=bool(data.get("pending", False)),
        )


@dataclass
class Session:
    """One saved conversation.

    ``turns`` is append-only apart from the in-place replacement of the
    pending placeholder, which is always addressed by its turn id.
    """

    title: str = DEFAULT_TITLE
    turns: list[Turn] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.updated_at is None or self.updated_at < self.created_at:
            self.updated_at = self.created_at

    @property
    def last_message(self) -> str:
        return self.turns[-1].content if self.turns else EMPTY_PREVIEW

    @property
    def is_empty(self) -> bool:
        return not self.turns

    def touch(self) -> None:
        """Mark the session as updated now."""
        now = utc_now()
        self.updated_at = max(now, self.created_at)

    def index_of(self, turn_id: str) -> int | None:
        for index, turn in enumerate(self.turns):
            if turn.id == turn_id:
                return index
        return None

    def pending_turn(self) -> Turn | None:
        for turn in reversed(self.turns):
            if turn.pending:
                return turn
        return None

    def replace_turn(self, turn_id: str, replacement: Turn) -> bool:
        """Swap the turn with ``turn_id`` for ``replacement`` at the same position."""
        index = self.index_of(turn_id)
        if index is None:
            return False
        self.turns[index] = replacement
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "turns": [turn.to_dict() for turn in self.turns],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        created_at = _parse_timestamp(data["created_at"])
        raw_updated = data.get("updated_at")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", DEFAULT_TITLE)),
            turns=[Turn.from_dict(item) for item in data.get("turns", [])],
            created_at=created_at,
            updated_at=_parse_timestamp(raw_updated) if raw_updated else created_at,
        )
