"""Database repositories."""

from pugqueue.db.repositories.drafts import DraftRepository
from pugqueue.db.repositories.preferences import PreferenceRepository

__all__ = ["DraftRepository", "PreferenceRepository"]
