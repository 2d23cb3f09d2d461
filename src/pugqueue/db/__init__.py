"""Database layer."""

from pugqueue.db.models import Base, LobbyDraft, Preference
from pugqueue.db.repositories import DraftRepository, PreferenceRepository
from pugqueue.db.session import create_engine, create_session_factory

__all__ = [
    "Base",
    "DraftRepository",
    "LobbyDraft",
    "Preference",
    "PreferenceRepository",
    "create_engine",
    "create_session_factory",
]
