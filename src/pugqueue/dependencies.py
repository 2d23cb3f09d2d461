"""Service wiring.

Services are built once per application and stored on ``app.state``; route
handlers get them through FastAPI dependencies rather than module globals.
"""

import logging
from dataclasses import dataclass

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from pugqueue.access.manager import AccessManager
from pugqueue.access.members import DiscordMemberDirectory, StaticMemberDirectory
from pugqueue.access.resolver import AccessResolver, MemberDirectory
from pugqueue.access.store import PreferenceStore
from pugqueue.formats import FormatCatalogue, load_catalogue
from pugqueue.lobby.client import LobbyServiceClient
from pugqueue.lobby.manager import Notifier, QueueManager
from pugqueue.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the API needs, built from settings."""

    queue: QueueManager
    access: AccessManager
    resolver: AccessResolver
    catalogue: FormatCatalogue
    client: LobbyServiceClient
    members: MemberDirectory
    engine: AsyncEngine | None = None


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    engine: AsyncEngine | None = None,
    lobby_transport: httpx.AsyncBaseTransport | None = None,
    members: MemberDirectory | None = None,
    notifier: Notifier | None = None,
) -> Services:
    """Build the services.

    Args:
        settings: Application settings
        session_factory: Database session factory. Without one the access
            store and drafts are kept in memory.
        engine: Engine behind the session factory, disposed on shutdown
        lobby_transport: Transport override for the lobby service client
        members: Member roster override
        notifier: Callback receiving lobby events
    """
    if members is None:
        if settings.discord_enabled:
            members = DiscordMemberDirectory(
                api_url=settings.discord_api_url,
                bot_token=settings.discord_bot_token,
                guild_id=settings.discord_guild_id,
                timeout=settings.membership_timeout,
            )
        else:
            logger.warning("Discord is not configured, access list groups will never match")
            members = StaticMemberDirectory()

    store = PreferenceStore(session_factory)
    resolver = AccessResolver(store, members)
    catalogue = load_catalogue(settings.formats_file)
    client = LobbyServiceClient(
        base_url=settings.lobby_service_url,
        secret=settings.lobby_service_secret,
        timeout=settings.lobby_service_timeout,
        transport=lobby_transport,
    )
    queue = QueueManager(
        client=client,
        resolver=resolver,
        catalogue=catalogue,
        session_factory=session_factory if settings.persist_drafts else None,
        default_pick_timeout=settings.default_pick_timeout,
        notifier=notifier,
    )
    return Services(
        queue=queue,
        access=AccessManager(store, resolver),
        resolver=resolver,
        catalogue=catalogue,
        client=client,
        members=members,
        engine=engine,
    )


async def close_services(services: Services) -> None:
    """Stop timers and close outbound connections."""
    await services.queue.shutdown()
    await services.client.aclose()
    if isinstance(services.members, DiscordMemberDirectory):
        await services.members.close()
    if services.engine is not None:
        await services.engine.dispose()


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_queue_manager(request: Request) -> QueueManager:
    return get_services(request).queue


def get_access_manager(request: Request) -> AccessManager:
    return get_services(request).access
