"""Pytest configuration and fixtures."""

import json
import os
import re
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from typing import Any

# Disable rate limiting for all tests
os.environ["RATE_LIMITING_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

# Clear the settings cache to pick up the new environment variables
from pugqueue.settings import get_settings

get_settings.cache_clear()

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from pugqueue.access.manager import AccessManager  # noqa: E402
from pugqueue.access.members import StaticMemberDirectory  # noqa: E402
from pugqueue.access.resolver import AccessResolver  # noqa: E402
from pugqueue.access.store import PreferenceStore  # noqa: E402
from pugqueue.db.models import Base  # noqa: E402
from pugqueue.formats import FormatCatalogue  # noqa: E402
from pugqueue.lobby.client import LobbyServiceClient  # noqa: E402
from pugqueue.lobby.manager import LobbyEvent, QueueManager  # noqa: E402

LOBBY_PATH = re.compile(r"^/lobbies/(?P<id>[^/]+)$")
MATCH_PATH = re.compile(r"^/lobbies/match/(?P<match>[^/]+)$")
JOIN_PATH = re.compile(r"^/lobbies/(?P<id>[^/]+)/join$")
PLAYER_PATH = re.compile(r"^/lobbies/(?P<id>[^/]+)/players/discord/(?P<player>[^/]+)$")
ROLE_PATH = re.compile(
    r"^/lobbies/(?P<id>[^/]+)/players/discord/(?P<player>[^/]+)/roles/(?P<role>[^/]+)$"
)
SUB_PATH = re.compile(r"^/lobbies/(?P<id>[^/]+)/sub/(?P<player>[^/]+)/discord$")


class FakeLobbyService:
    """In-memory stand-in for the remote lobby service.

    Stores lobby documents and applies queue mutations without any business
    rules. Failures can be injected per method and path.
    """

    def __init__(self) -> None:
        self.lobbies: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, str]] = []
        self._failures: list[dict[str, Any]] = []
        self._next_id = 1

    def fail(
        self,
        method: str,
        path_contains: str,
        status: int = 500,
        times: int = 1,
        transport: bool = False,
    ) -> None:
        """Make the next matching request(s) fail."""
        self._failures.append(
            {
                "method": method,
                "path": path_contains,
                "status": status,
                "times": times,
                "transport": transport,
            }
        )

    def mutations(self) -> list[tuple[str, str]]:
        return [(m, p) for m, p in self.requests if m != "GET"]

    def add_lobby(self, **fields: Any) -> dict[str, Any]:
        """Insert a lobby document directly."""
        lobby_id = fields.pop("_id", None) or f"lobby-{self._next_id}"
        self._next_id += 1
        document = {
            "_id": lobby_id,
            "status": "WAITING_FOR_REQUIRED_PLAYERS",
            "distribution": "RANDOM",
            "requirements": [],
            "queuedPlayers": [],
            "maxPlayers": 12,
            "createdBy": "creator",
            "region": "eu",
            "match": None,
            "data": {"afkCheck": True},
        }
        document.update(fields)
        self.lobbies[lobby_id] = document
        return document

    def player(self, lobby_id: str, player_id: str) -> dict[str, Any] | None:
        for player in self.lobbies[lobby_id]["queuedPlayers"]:
            if player["discord"] == player_id:
                return player
        return None

    def _error(self, status: int, message: str) -> httpx.Response:
        return httpx.Response(status, json={"error": "Error", "message": message})

    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        self.requests.append((method, path))

        for failure in self._failures:
            if failure["times"] > 0 and failure["method"] == method and failure["path"] in path:
                failure["times"] -= 1
                if failure["transport"]:
                    raise httpx.ConnectError("connection refused", request=request)
                return self._error(failure["status"], "Injected failure")

        body = json.loads(request.content) if request.content else None

        if path == "/lobbies":
            if method == "GET":
                active = [
                    lobby
                    for lobby in self.lobbies.values()
                    if lobby["status"] not in ("CLOSED", "FINISHED", "EXPIRED")
                ]
                return httpx.Response(200, json={"lobbies": active})
            document = self.add_lobby(**body)
            return httpx.Response(201, json=document)

        if match := MATCH_PATH.match(path):
            for lobby in self.lobbies.values():
                if lobby["match"] == match["match"]:
                    return httpx.Response(200, json=lobby)
            return self._error(404, "Lobby not found")

        for pattern in (ROLE_PATH, PLAYER_PATH, SUB_PATH, JOIN_PATH, LOBBY_PATH):
            match = pattern.match(path)
            if match:
                break
        else:
            return self._error(404, "Not found")

        lobby = self.lobbies.get(match["id"])
        if lobby is None:
            return self._error(404, "Lobby not found")

        if pattern is LOBBY_PATH:
            if method == "DELETE":
                lobby["status"] = "CLOSED"
            return httpx.Response(200, json=lobby)

        if pattern is JOIN_PATH:
            if self.player(lobby["_id"], body["discord"]) is not None:
                return self._error(409, "Player already queued")
            lobby["queuedPlayers"].append(body)
            return httpx.Response(200, json=lobby)

        player = self.player(lobby["_id"], match["player"])
        if player is None:
            return self._error(404, "Player not found")

        if pattern is PLAYER_PATH:
            lobby["queuedPlayers"].remove(player)
        elif pattern is ROLE_PATH:
            role = match["role"]
            if method == "POST" and role not in player["roles"]:
                player["roles"].append(role)
            elif method == "DELETE" and role in player["roles"]:
                player["roles"].remove(role)
        elif pattern is SUB_PATH:
            index = lobby["queuedPlayers"].index(player)
            lobby["queuedPlayers"][index] = body

        return httpx.Response(200, json=lobby)


class FrozenClock:
    """Controllable clock."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def fake_service() -> FakeLobbyService:
    return FakeLobbyService()


@pytest.fixture
async def lobby_client(
    fake_service: FakeLobbyService,
) -> AsyncGenerator[LobbyServiceClient, None]:
    """Lobby service client talking to the fake service."""
    client = LobbyServiceClient(
        base_url="http://lobbies.test",
        secret="test-secret",
        transport=httpx.MockTransport(fake_service.handle),
    )
    yield client
    await client.aclose()


@pytest.fixture
def members() -> StaticMemberDirectory:
    return StaticMemberDirectory()


@pytest.fixture
def store() -> PreferenceStore:
    return PreferenceStore()


@pytest.fixture
def resolver(store: PreferenceStore, members: StaticMemberDirectory) -> AccessResolver:
    return AccessResolver(store, members)


@pytest.fixture
def access_manager(store: PreferenceStore, resolver: AccessResolver) -> AccessManager:
    return AccessManager(store, resolver)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def events() -> list[LobbyEvent]:
    return []


@pytest.fixture
async def queue_manager(
    lobby_client: LobbyServiceClient,
    resolver: AccessResolver,
    clock: FrozenClock,
    events: list[LobbyEvent],
) -> AsyncGenerator[QueueManager, None]:
    """Queue manager wired to the fake lobby service."""

    async def record(event: LobbyEvent) -> None:
        events.append(event)

    manager = QueueManager(
        client=lobby_client,
        resolver=resolver,
        catalogue=FormatCatalogue.builtin(),
        default_pick_timeout=60,
        notifier=record,
        clock=clock,
    )
    yield manager
    await manager.shutdown()


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory backed by an in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield factory

    await engine.dispose()


@pytest.fixture
async def client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create an async test client."""
    from pugqueue.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
