"""
apin-chat: a local-first, multi-session chat client for Apple Foundation Models.

The ``SessionStore`` keeps chat sessions in memory, persists them through a
``PersistenceGateway`` and coordinates replies and auto-generated titles from a
``ModelGateway``. Views read the store and subscribe to its change events.
"""

from .availability import (
    Availability,
    StatusCategory,
    UnavailableReason,
    describe_availability,
    status_category,
)
from .exceptions import (
    ApinChatError,
    GenerationError,
    GenerationErrorKind,
    ModelUnavailableError,
    PersistenceError,
    StoreBusyError,
)
from .gateway import FoundationModelGateway, ModelGateway, format_title
from .models import GenerationProfile, Session, Speaker, Turn
from .persistence import BlobStore, PersistenceGateway, SessionPersistence
from .store import SessionStore, StoreEvent

__all__ = [
    "ApinChatError",
    "Availability",
    "BlobStore",
    "FoundationModelGateway",
    "GenerationError",
    "GenerationErrorKind",
    "GenerationProfile",
    "ModelGateway",
    "ModelUnavailableError",
    "PersistenceError",
    "PersistenceGateway",
    "Session",
    "SessionPersistence",
    "SessionStore",
    "Speaker",
    "StatusCategory",
    "StoreBusyError",
    "StoreEvent",
    "Turn",
    "UnavailableReason",
    "describe_availability",
    "format_title",
    "status_category",
]
