"""Integration tests for QueueManager with draft persistence.

These tests verify the end-to-end flow:
- Create captain lobby -> draft persisted to DB
- Draft starts and picks are made -> draft updated in DB
- Restart -> drafts restored and pick deadlines re-armed
- Close lobby -> draft removed from DB

Run with: uv run pytest tests/integration/test_queue_manager_persistence.py -v
"""

import asyncio
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pugqueue.access.resolver import AccessResolver
from pugqueue.db.models import LobbyDraft
from pugqueue.db.repositories.drafts import DraftRepository
from pugqueue.formats import FormatCatalogue
from pugqueue.lobby.client import LobbyServiceClient
from pugqueue.lobby.manager import LobbyEvent, QueueManager
from pugqueue.lobby.models import Distribution, DraftPhase, Lobby


@pytest.fixture
async def manager(
    lobby_client: LobbyServiceClient,
    resolver: AccessResolver,
    session_factory: async_sessionmaker[AsyncSession],
    clock,
    events: list[LobbyEvent],
) -> AsyncGenerator[QueueManager, None]:
    """Create a QueueManager with database persistence."""

    async def record(event: LobbyEvent) -> None:
        events.append(event)

    manager = QueueManager(
        client=lobby_client,
        resolver=resolver,
        catalogue=FormatCatalogue.builtin(),
        session_factory=session_factory,
        notifier=record,
        clock=clock,
    )
    yield manager
    await manager.shutdown()


async def start_draft(manager: QueueManager) -> Lobby:
    lobby = await manager.create_lobby("cap-a", "Ultiduo", Distribution.CAPTAIN_DRAFT, "eu")
    for player_id, roles in (
        ("cap-a", ["soldier"]),
        ("cap-b", ["medic"]),
        ("p1", ["soldier", "medic"]),
        ("p2", ["soldier"]),
    ):
        await manager.join(lobby.id, player_id, player_id.upper(), roles)
    await manager.add_role(lobby.id, "cap-a", "cap-a", "captain-a")
    await manager.add_role(lobby.id, "cap-b", "cap-b", "captain-b")
    return lobby


async def stored_draft(session_factory, lobby_id: str):
    async with session_factory() as session:
        return await DraftRepository(session).get(lobby_id)


class TestQueueManagerPersistence:
    """Integration tests for QueueManager with persistence."""

    @pytest.mark.asyncio
    async def test_create_persists_draft(self, manager: QueueManager, session_factory) -> None:
        """Test that creating a captain lobby saves its draft."""
        lobby = await manager.create_lobby("c1", "Ultiduo", Distribution.CAPTAIN_DRAFT, "eu")

        stored = await stored_draft(session_factory, lobby.id)
        assert stored is not None
        assert stored.phase is DraftPhase.COLLECTING

    @pytest.mark.asyncio
    async def test_draft_progress_persisted(self, manager: QueueManager, session_factory) -> None:
        lobby = await start_draft(manager)
        assert await stored_draft(session_factory, lobby.id) == manager.get_draft(lobby.id)

        await manager.pick(lobby.id, "cap-a", "p1", "medic")
        stored = await stored_draft(session_factory, lobby.id)
        assert stored.position == 1
        assert stored == manager.get_draft(lobby.id)

        await manager.pick(lobby.id, "cap-b", "p2", "soldier")
        stored = await stored_draft(session_factory, lobby.id)
        assert stored.phase is DraftPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_restore(
        self,
        manager: QueueManager,
        lobby_client: LobbyServiceClient,
        resolver: AccessResolver,
        session_factory,
        clock,
    ) -> None:
        """Test that a restarted manager picks up where the old one left off."""
        lobby = await start_draft(manager)
        await manager.pick(lobby.id, "cap-a", "p1", "medic")
        await manager.shutdown()

        restored_events: list[LobbyEvent] = []

        async def record(event: LobbyEvent) -> None:
            restored_events.append(event)

        clock.advance(120)
        restarted = QueueManager(
            client=lobby_client,
            resolver=resolver,
            catalogue=FormatCatalogue.builtin(),
            session_factory=session_factory,
            notifier=record,
            clock=clock,
        )
        try:
            assert await restarted.restore() == 1
            assert restarted.get_draft(lobby.id) == manager.get_draft(lobby.id)

            # The deadline passed while the manager was down
            await asyncio.sleep(0.05)
            assert [e.kind for e in restored_events] == ["pick_expired"]
            assert restored_events[0].data == {"captain": "cap-b", "position": 1}

            result = await restarted.pick(lobby.id, "cap-b", "p2", "soldier")
            assert isinstance(result, Lobby)
            assert restarted.get_draft(lobby.id).phase is DraftPhase.COMPLETE
        finally:
            await restarted.shutdown()

    @pytest.mark.asyncio
    async def test_close_deletes_draft(self, manager: QueueManager, session_factory) -> None:
        lobby = await manager.create_lobby("c1", "Ultiduo", Distribution.CAPTAIN_DRAFT, "eu")
        await manager.close_lobby(lobby.id, "c1")

        assert await stored_draft(session_factory, lobby.id) is None

    @pytest.mark.asyncio
    async def test_persistence_failure_is_not_fatal(
        self, manager: QueueManager, session_factory
    ) -> None:
        """In-memory draft state stays usable when the database is not."""
        engine = session_factory.kw["bind"]
        async with engine.begin() as conn:
            await conn.run_sync(LobbyDraft.__table__.drop)

        lobby = await start_draft(manager)
        assert manager.get_draft(lobby.id).phase is DraftPhase.DRAFTING
