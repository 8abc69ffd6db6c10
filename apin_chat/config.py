"""Configuration using pydantic settings management.

Values are loaded from ``APIN_CHAT_*`` environment variables (or an .env file).
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .log import parse_log_level
from .models import GenerationProfile
from .persistence import DEFAULT_STORAGE_KEY


class Settings(BaseSettings):
    """apin-chat configuration loaded from env or defaults."""

    model_config = SettingsConfigDict(env_prefix="APIN_CHAT_", env_file=".env", extra="ignore")

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".apin_chat")
    db_filename: str = "chat_history.sqlite3"
    storage_key: str = DEFAULT_STORAGE_KEY
    default_profile: str = GenerationProfile.BALANCED.label
    log_level: str = "WARNING"

    @field_validator("default_profile")
    @classmethod
    def _known_profile(cls, value: str) -> str:
        return GenerationProfile.from_label(value).label

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        if parse_log_level(value) is None:
            raise ValueError(f"Unknown log level: {value!r}")
        return value.strip().upper()

    @property
    def db_path(self) -> Path:
        return self.data_dir.expanduser() / self.db_filename

    @property
    def profile(self) -> GenerationProfile:
        return GenerationProfile.from_label(self.default_profile)
