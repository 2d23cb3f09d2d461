"""Client for the remote lobby/match service.

The remote service is the source of truth for queue state. This client only
translates between ``Lobby`` snapshots and the service's JSON documents; it
applies no business rules.
"""

import logging
from typing import Any

import httpx

from pugqueue.errors import RemoteServiceError
from pugqueue.lobby.models import Distribution, Lobby, QueuedPlayer, Requirement

logger = logging.getLogger(__name__)


class LobbyServiceClient:
    """HTTP client for the lobby/match service.

    Mutating calls are sent once. Read-only calls are retried once when the
    transport fails, since repeating them has no effect on the service.
    """

    def __init__(
        self,
        base_url: str,
        secret: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Root URL of the lobby service
            secret: Bearer token sent with every request
            timeout: Per-request timeout in seconds
            transport: Optional transport override (tests use MockTransport)
        """
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {secret}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        retry: bool = False,
    ) -> Any:
        attempts = 2 if retry else 1
        for attempt in range(1, attempts + 1):
            try:
                response = await self._http.request(method, path, json=json)
                break
            except httpx.TransportError as e:
                if attempt < attempts:
                    logger.warning(f"{method} {path} failed ({e!r}), retrying")
                    continue
                if isinstance(e, httpx.TimeoutException):
                    raise RemoteServiceError(f"Lobby service timed out on {method} {path}") from e
                raise RemoteServiceError(
                    f"Could not reach the lobby service on {method} {path}: {e}"
                ) from e

        if response.status_code >= 400:
            error = None
            message = response.text
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                error = body.get("error")
                message = body.get("message") or message
            raise RemoteServiceError(
                f"Lobby service returned {response.status_code} on {method} {path}: {message}",
                status_code=response.status_code,
                error=error,
            )

        if not response.content:
            return None
        return response.json()

    async def _lobby(self, method: str, path: str, **kwargs: Any) -> Lobby:
        document = await self._request(method, path, **kwargs)
        if not isinstance(document, dict):
            raise RemoteServiceError(f"Lobby service sent no lobby for {method} {path}")
        return Lobby.from_document(document)

    async def create(
        self,
        creator_id: str,
        distribution: Distribution,
        requirements: list[Requirement],
        max_players: int,
        region: str,
        data: dict[str, Any] | None = None,
    ) -> Lobby:
        """Create a lobby with an empty queue."""
        body = {
            "distribution": distribution.value,
            "requirements": [r.to_dict() for r in requirements],
            "queuedPlayers": [],
            "maxPlayers": max_players,
            "createdBy": creator_id,
            "region": region,
            "data": data or {},
        }
        lobby = await self._lobby("POST", "/lobbies", json=body)
        logger.info(f"Created lobby {lobby.id} for {creator_id} ({distribution.value})")
        return lobby

    async def get_active(self) -> list[Lobby]:
        """List every active lobby."""
        body = await self._request("GET", "/lobbies", retry=True)
        documents = (body or {}).get("lobbies", [])
        return [Lobby.from_document(d) for d in documents]

    async def get_by_id(self, lobby_id: str) -> Lobby | None:
        """Get a lobby, or None if the service doesn't know it."""
        try:
            return await self._lobby("GET", f"/lobbies/{lobby_id}", retry=True)
        except RemoteServiceError as e:
            if e.status_code == 404:
                return None
            raise

    async def get_by_match_id(self, match_id: str) -> Lobby | None:
        """Get the lobby a match was created from."""
        try:
            return await self._lobby("GET", f"/lobbies/match/{match_id}", retry=True)
        except RemoteServiceError as e:
            if e.status_code == 404:
                return None
            raise

    async def join(self, lobby_id: str, player: QueuedPlayer) -> Lobby:
        """Queue a player with all of their roles in one request."""
        return await self._lobby("POST", f"/lobbies/{lobby_id}/join", json=player.to_document())

    async def leave(self, lobby_id: str, player_id: str) -> Lobby:
        return await self._lobby("DELETE", f"/lobbies/{lobby_id}/players/discord/{player_id}")

    async def add_role(self, lobby_id: str, player_id: str, role: str) -> Lobby:
        return await self._lobby(
            "POST", f"/lobbies/{lobby_id}/players/discord/{player_id}/roles/{role}"
        )

    async def remove_role(self, lobby_id: str, player_id: str, role: str) -> Lobby:
        return await self._lobby(
            "DELETE", f"/lobbies/{lobby_id}/players/discord/{player_id}/roles/{role}"
        )

    async def pick(self, lobby_id: str, player_id: str, roles: list[str]) -> Lobby:
        """Add the tags of a pick to a player, in order.

        The service has no batch endpoint, so a pick is one role addition per
        tag. If a later addition fails the earlier ones stay applied and the
        error is raised with ``applied`` recording how far it got.
        """
        lobby = None
        applied: list[str] = []
        for role in roles:
            try:
                lobby = await self.add_role(lobby_id, player_id, role)
            except RemoteServiceError as e:
                e.applied = list(applied)
                raise
            applied.append(role)
        if lobby is None:
            lobby = await self._lobby("GET", f"/lobbies/{lobby_id}", retry=True)
        return lobby

    async def substitute(self, lobby_id: str, replaced_id: str, player: QueuedPlayer) -> Lobby:
        """Replace a queued player with a new one."""
        return await self._lobby(
            "POST",
            f"/lobbies/{lobby_id}/sub/{replaced_id}/discord",
            json=player.to_document(),
        )

    async def close(self, lobby_id: str) -> Lobby:
        lobby = await self._lobby("DELETE", f"/lobbies/{lobby_id}")
        logger.info(f"Closed lobby {lobby_id}")
        return lobby
