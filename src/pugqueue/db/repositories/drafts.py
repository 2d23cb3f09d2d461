"""Draft repository for database operations."""

import logging
from datetime import UTC

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pugqueue.db.models import LobbyDraft
from pugqueue.lobby.models import DraftPhase, DraftState

logger = logging.getLogger(__name__)


class DraftRepository:
    """Repository for local draft bookkeeping."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            session: The database session to use
        """
        self.session = session

    async def save(self, draft: DraftState) -> LobbyDraft:
        """Save or update the draft of a lobby.

        Args:
            draft: The draft state to save

        Returns:
            The created or updated LobbyDraft record
        """
        record = await self.session.get(LobbyDraft, draft.lobby_id)
        if record is None:
            record = LobbyDraft(lobby_id=draft.lobby_id)
            self.session.add(record)

        record.phase = draft.phase.value
        record.position = draft.position
        record.picks = list(draft.picks)
        record.pick_expires = draft.pick_expires
        record.version = draft.version
        record.announced = draft.announced

        await self.session.flush()
        logger.debug(f"Saved draft of lobby {draft.lobby_id} (version {draft.version})")
        return record

    async def get(self, lobby_id: str) -> DraftState | None:
        """Get the draft of a lobby, or None if none is stored."""
        record = await self.session.get(LobbyDraft, lobby_id)
        if record is None:
            return None
        return self._model_to_draft(record)

    async def list_open(self) -> list[DraftState]:
        """Get every draft that has not completed."""
        result = await self.session.execute(
            select(LobbyDraft).where(LobbyDraft.phase != DraftPhase.COMPLETE.value)
        )
        return [self._model_to_draft(r) for r in result.scalars().all()]

    async def delete(self, lobby_id: str) -> bool:
        """Delete the draft of a lobby.

        Returns:
            True if a draft was deleted
        """
        result = await self.session.execute(
            delete(LobbyDraft).where(LobbyDraft.lobby_id == lobby_id)
        )
        return result.rowcount > 0

    def _model_to_draft(self, record: LobbyDraft) -> DraftState:
        pick_expires = record.pick_expires
        # SQLite drops the timezone
        if pick_expires is not None and pick_expires.tzinfo is None:
            pick_expires = pick_expires.replace(tzinfo=UTC)
        return DraftState(
            lobby_id=record.lobby_id,
            phase=DraftPhase(record.phase),
            position=record.position,
            picks=list(record.picks or []),
            pick_expires=pick_expires,
            version=record.version,
            announced=record.announced,
        )
