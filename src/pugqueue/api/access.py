"""Access config and access list API endpoints.

Every route is scoped to an owner: a player ID for personal configs and
lists, or "guild" for the shared ones.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from pugqueue.access.manager import AccessManager
from pugqueue.access.models import ListKind
from pugqueue.api.errors import http_error
from pugqueue.api.rate_limit import access_edit_rate_limit
from pugqueue.dependencies import Services, get_access_manager, get_services
from pugqueue.errors import LobbyError

router = APIRouter(prefix="/access", tags=["access"])


class NameRequest(BaseModel):
    """Request body for creating a config or list."""

    name: str


class ImportRequest(BaseModel):
    """Request body for importing an exported config or list."""

    contents: str


class SetAccessListRequest(BaseModel):
    """Request body for setting the list that gates an action."""

    kind: ListKind
    list_name: str | None = Field(default=None, alias="listName")

    model_config = {"populate_by_name": True}


def _unwrap(result: Any) -> Any:
    if isinstance(result, LobbyError):
        raise http_error(result)
    return result


@router.get("/check")
async def check_access(
    lobby_id: str = Query(alias="lobbyId"),
    player_id: str = Query(alias="playerId"),
    role: str = Query(),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Check if a player may take a role in a lobby."""
    lobby = _unwrap(await services.queue.get_lobby(lobby_id))
    decision = await services.resolver.can_assume_role(lobby, player_id, role)
    return decision.to_dict()


# Access configs


@router.get("/{owner_id}/configs")
async def list_configs(
    owner_id: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    """List config names visible to an owner."""
    return {"configs": await manager.config_names(owner_id)}


@router.post("/{owner_id}/configs", dependencies=[Depends(access_edit_rate_limit)])
async def create_config(
    owner_id: str,
    request: NameRequest,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    """Create an empty access config."""
    config = _unwrap(await manager.create_config(owner_id, request.name))
    return config.to_dict()


@router.post("/{owner_id}/configs/import", dependencies=[Depends(access_edit_rate_limit)])
async def import_config(
    owner_id: str,
    request: ImportRequest,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    """Import an exported access config."""
    config = _unwrap(await manager.import_config(owner_id, request.contents))
    return config.to_dict()


@router.get("/{owner_id}/configs/{name}")
async def view_config(
    owner_id: str,
    name: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    config = _unwrap(await manager.view_config(owner_id, name))
    return config.to_dict()


@router.delete("/{owner_id}/configs/{name}", dependencies=[Depends(access_edit_rate_limit)])
async def delete_config(
    owner_id: str,
    name: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    _unwrap(await manager.delete_config(owner_id, name))
    return {"success": True}


@router.get("/{owner_id}/configs/{name}/export")
async def export_config(
    owner_id: str,
    name: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    contents = _unwrap(await manager.export_config(owner_id, name))
    return {"contents": contents}


@router.put(
    "/{owner_id}/configs/{name}/actions/{action}",
    dependencies=[Depends(access_edit_rate_limit)],
)
async def set_access_list(
    owner_id: str,
    name: str,
    action: str,
    request: SetAccessListRequest,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    """Set or clear (listName null) the list gating an action."""
    config = _unwrap(
        await manager.set_access_list(owner_id, name, request.kind, action, request.list_name)
    )
    return config.to_dict()


# Access lists


@router.get("/{owner_id}/lists")
async def list_lists(
    owner_id: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    """List list names visible to an owner."""
    return {"lists": await manager.list_names(owner_id)}


@router.post("/{owner_id}/lists", dependencies=[Depends(access_edit_rate_limit)])
async def create_list(
    owner_id: str,
    request: NameRequest,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    """Create an empty access list."""
    access_list = _unwrap(await manager.create_list(owner_id, request.name))
    return access_list.to_dict()


@router.post("/{owner_id}/lists/import", dependencies=[Depends(access_edit_rate_limit)])
async def import_list(
    owner_id: str,
    request: ImportRequest,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    """Import an exported access list."""
    access_list = _unwrap(await manager.import_list(owner_id, request.contents))
    return access_list.to_dict()


@router.get("/{owner_id}/lists/{name}")
async def view_list(
    owner_id: str,
    name: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    access_list = _unwrap(await manager.view_list(owner_id, name))
    return access_list.to_dict()


@router.delete("/{owner_id}/lists/{name}", dependencies=[Depends(access_edit_rate_limit)])
async def delete_list(
    owner_id: str,
    name: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    _unwrap(await manager.delete_list(owner_id, name))
    return {"success": True}


@router.get("/{owner_id}/lists/{name}/export")
async def export_list(
    owner_id: str,
    name: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    contents = _unwrap(await manager.export_list(owner_id, name))
    return {"contents": contents}


@router.post(
    "/{owner_id}/lists/{name}/players/{player_id}",
    dependencies=[Depends(access_edit_rate_limit)],
)
async def add_player(
    owner_id: str,
    name: str,
    player_id: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    access_list = _unwrap(await manager.add_player(owner_id, name, player_id))
    return access_list.to_dict()


@router.delete(
    "/{owner_id}/lists/{name}/players/{player_id}",
    dependencies=[Depends(access_edit_rate_limit)],
)
async def remove_player(
    owner_id: str,
    name: str,
    player_id: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    access_list = _unwrap(await manager.remove_player(owner_id, name, player_id))
    return access_list.to_dict()


@router.post(
    "/{owner_id}/lists/{name}/groups/{group_id}",
    dependencies=[Depends(access_edit_rate_limit)],
)
async def add_group(
    owner_id: str,
    name: str,
    group_id: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    access_list = _unwrap(await manager.add_group(owner_id, name, group_id))
    return access_list.to_dict()


@router.delete(
    "/{owner_id}/lists/{name}/groups/{group_id}",
    dependencies=[Depends(access_edit_rate_limit)],
)
async def remove_group(
    owner_id: str,
    name: str,
    group_id: str,
    manager: AccessManager = Depends(get_access_manager),
) -> dict[str, Any]:
    access_list = _unwrap(await manager.remove_group(owner_id, name, group_id))
    return access_list.to_dict()
