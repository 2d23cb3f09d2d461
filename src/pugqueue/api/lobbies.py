"""Lobby API endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from pugqueue.api.errors import http_error
from pugqueue.api.rate_limit import (
    create_lobby_rate_limit,
    pick_rate_limit,
    queue_action_rate_limit,
)
from pugqueue.dependencies import Services, get_queue_manager, get_services
from pugqueue.errors import LobbyError
from pugqueue.lobby.manager import QueueManager
from pugqueue.lobby.models import Distribution
from pugqueue.roles import Team

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lobbies", tags=["lobbies"])


class CreateLobbyRequest(BaseModel):
    """Request body for creating a lobby."""

    creator_id: str = Field(alias="creatorId")
    format: str
    distribution: Distribution
    region: str
    access_config: str | None = Field(default=None, alias="accessConfig")
    afk_check: bool = Field(default=True, alias="afkCheck")
    pick_timeout: int | None = Field(default=None, alias="pickTimeout")

    model_config = {"populate_by_name": True}


class JoinLobbyRequest(BaseModel):
    """Request body for joining a lobby."""

    player_id: str = Field(alias="playerId")
    name: str
    roles: list[str]
    steam_id: str | None = Field(default=None, alias="steamId")

    model_config = {"populate_by_name": True}


class PlayerRequest(BaseModel):
    """Request body for actions a player takes on themselves."""

    player_id: str = Field(alias="playerId")

    model_config = {"populate_by_name": True}


class ActorRequest(BaseModel):
    """Request body for actions taken on another player."""

    actor_id: str = Field(alias="actorId")
    player_id: str = Field(alias="playerId")

    model_config = {"populate_by_name": True}


class SubstituteRequest(BaseModel):
    """Request body for taking a flagged player's place."""

    player_id: str = Field(alias="playerId")
    name: str
    steam_id: str | None = Field(default=None, alias="steamId")

    model_config = {"populate_by_name": True}


class PickRequest(BaseModel):
    """Request body for a captain pick."""

    captain_id: str = Field(alias="captainId")
    player_id: str = Field(alias="playerId")
    role: str

    model_config = {"populate_by_name": True}


class LobbyListResponse(BaseModel):
    """Response for listing lobbies."""

    lobbies: list[dict[str, Any]]


def _lobby_response(manager: QueueManager, lobby: Any) -> dict[str, Any]:
    if isinstance(lobby, LobbyError):
        raise http_error(lobby)
    data = lobby.to_dict()
    draft = manager.get_draft(lobby.id)
    data["draft"] = draft.to_dict() if draft else None
    data["slots"] = manager.strategies[lobby.distribution].slots(lobby)
    return data


@router.get("", response_model=LobbyListResponse)
async def list_lobbies(
    manager: QueueManager = Depends(get_queue_manager),
) -> LobbyListResponse:
    """List active lobbies."""
    result = await manager.get_active_lobbies()
    if isinstance(result, LobbyError):
        raise http_error(result)
    return LobbyListResponse(lobbies=[lobby.to_dict() for lobby in result])


@router.get("/formats")
async def list_formats(
    distribution: Distribution | None = Query(default=None),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """List formats lobbies can be created with."""
    return {
        "formats": [
            {
                "name": f.name,
                "maxPlayers": f.max_players,
                "distributions": [d.value for d in f.distributions],
                "maps": list(f.maps),
            }
            for f in services.catalogue.available(distribution)
        ]
    }


@router.post("", dependencies=[Depends(create_lobby_rate_limit)])
async def create_lobby(
    request: CreateLobbyRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Create a new lobby."""
    result = await manager.create_lobby(
        creator_id=request.creator_id,
        format_name=request.format,
        distribution=request.distribution,
        region=request.region,
        access_config=request.access_config,
        afk_check=request.afk_check,
        pick_timeout=request.pick_timeout,
    )
    response = _lobby_response(manager, result)
    logger.info(f"Lobby {result.id} created via API")
    return response


@router.get("/{lobby_id}")
async def get_lobby(
    lobby_id: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Get a lobby by ID."""
    return _lobby_response(manager, await manager.get_lobby(lobby_id))


@router.delete("/{lobby_id}")
async def close_lobby(
    lobby_id: str,
    actor_id: str = Query(alias="actorId"),
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Close a lobby. Only the creator can close it."""
    result = await manager.close_lobby(lobby_id, actor_id)
    if isinstance(result, LobbyError):
        raise http_error(result)
    return {"success": True, "lobby": result.to_dict()}


@router.post("/{lobby_id}/join", dependencies=[Depends(queue_action_rate_limit)])
async def join_lobby(
    lobby_id: str,
    request: JoinLobbyRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Join a lobby with the declared roles."""
    result = await manager.join(
        lobby_id,
        player_id=request.player_id,
        name=request.name,
        roles=request.roles,
        steam_id=request.steam_id,
    )
    return _lobby_response(manager, result)


@router.post("/{lobby_id}/leave", dependencies=[Depends(queue_action_rate_limit)])
async def leave_lobby(
    lobby_id: str,
    request: PlayerRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Leave a lobby."""
    return _lobby_response(manager, await manager.leave(lobby_id, request.player_id))


@router.post("/{lobby_id}/kick", dependencies=[Depends(queue_action_rate_limit)])
async def kick_player(
    lobby_id: str,
    request: ActorRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Kick a player. Only the creator can kick."""
    result = await manager.kick(lobby_id, request.actor_id, request.player_id)
    return _lobby_response(manager, result)


@router.post("/{lobby_id}/active", dependencies=[Depends(queue_action_rate_limit)])
async def confirm_active(
    lobby_id: str,
    request: PlayerRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Confirm presence for the AFK check."""
    return _lobby_response(manager, await manager.confirm_active(lobby_id, request.player_id))


@router.put(
    "/{lobby_id}/players/{player_id}/roles/{role}",
    dependencies=[Depends(queue_action_rate_limit)],
)
async def add_role(
    lobby_id: str,
    player_id: str,
    role: str,
    actor_id: str = Query(alias="actorId"),
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Add a role to a queued player."""
    result = await manager.add_role(lobby_id, actor_id, player_id, role)
    return _lobby_response(manager, result)


@router.delete(
    "/{lobby_id}/players/{player_id}/roles/{role}",
    dependencies=[Depends(queue_action_rate_limit)],
)
async def remove_role(
    lobby_id: str,
    player_id: str,
    role: str,
    actor_id: str = Query(alias="actorId"),
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Remove a role from a queued player."""
    result = await manager.remove_role(lobby_id, actor_id, player_id, role)
    return _lobby_response(manager, result)


@router.post("/{lobby_id}/ringer", dependencies=[Depends(queue_action_rate_limit)])
async def request_ringer(
    lobby_id: str,
    request: ActorRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Flag a player as needing a substitute. Only the creator can do this."""
    result = await manager.request_substitute(lobby_id, request.actor_id, request.player_id)
    return _lobby_response(manager, result)


@router.post("/{lobby_id}/substitute", dependencies=[Depends(queue_action_rate_limit)])
async def substitute(
    lobby_id: str,
    request: SubstituteRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Take the place of the player needing a substitute."""
    result = await manager.substitute(
        lobby_id, request.player_id, request.name, steam_id=request.steam_id
    )
    return _lobby_response(manager, result)


@router.get("/{lobby_id}/draft")
async def get_draft(
    lobby_id: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Get the captain draft of a lobby."""
    draft = manager.get_draft(lobby_id)
    if draft is None:
        raise HTTPException(status_code=404, detail="Draft not found")
    return draft.to_dict()


@router.post("/{lobby_id}/pick", dependencies=[Depends(pick_rate_limit)])
async def pick_player(
    lobby_id: str,
    request: PickRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Pick a player for the captain's team."""
    result = await manager.pick(lobby_id, request.captain_id, request.player_id, request.role)
    return _lobby_response(manager, result)


@router.post("/{lobby_id}/draft/assign", dependencies=[Depends(pick_rate_limit)])
async def complete_assignment(
    lobby_id: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """Retry giving the captains their remaining roles."""
    return _lobby_response(manager, await manager.complete_assignment(lobby_id))


@router.get("/{lobby_id}/pickable")
async def get_pickable_players(
    lobby_id: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """List players a captain can still pick."""
    result = await manager.pickable_players(lobby_id)
    if isinstance(result, LobbyError):
        raise http_error(result)
    return {"players": [p.to_dict() for p in result]}


@router.get("/{lobby_id}/available-roles")
async def get_available_roles(
    lobby_id: str,
    player_id: str | None = Query(default=None, alias="playerId"),
    team: Team | None = Query(default=None),
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, Any]:
    """List roles that can still be taken."""
    result = await manager.available_roles(lobby_id, player_id=player_id, team=team)
    if isinstance(result, LobbyError):
        raise http_error(result)
    return {"roles": result}
