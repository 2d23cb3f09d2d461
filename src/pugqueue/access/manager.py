"""Access config and access list management.

Every operation works on one owner's scope: a player ID for personal
configs and lists, or "guild" for the shared ones. Lists referenced from a
config may live in the owner's scope or a shared scope.
"""

import json
import logging
from typing import Any

from pugqueue.access.models import AccessConfig, AccessList, ActionRule, ListKind
from pugqueue.access.resolver import AccessResolver
from pugqueue.access.store import ACCESS_CONFIGS_KEY, ACCESS_LISTS_KEY, PreferenceStore
from pugqueue.errors import NOT_FOUND, VALIDATION_ERROR, LobbyError
from pugqueue.roles import actionable_roles

logger = logging.getLogger(__name__)


def _not_found(kind: str, name: str) -> LobbyError:
    return LobbyError(
        code=NOT_FOUND,
        message=f"Access {kind} with the name '{name}' does not exist",
        details={"name": name},
    )


def _already_exists(kind: str, name: str) -> LobbyError:
    return LobbyError(
        code=VALIDATION_ERROR,
        message=f"Access {kind} with the name '{name}' already exists",
        details={"name": name},
    )


def _parse_import(contents: str) -> dict[str, Any] | LobbyError:
    try:
        data = json.loads(contents)
    except ValueError:
        return LobbyError(code=VALIDATION_ERROR, message="Invalid JSON")
    if not isinstance(data, dict) or not isinstance(data.get("name"), str) or not data["name"]:
        return LobbyError(code=VALIDATION_ERROR, message="Imported data must have a name")
    return data


class AccessManager:
    """Create, edit and share access configs and lists."""

    def __init__(self, store: PreferenceStore, resolver: AccessResolver) -> None:
        self.store = store
        self.resolver = resolver

    async def _configs(self, owner_id: str) -> dict[str, Any]:
        return await self.store.get_data(owner_id, ACCESS_CONFIGS_KEY) or {}

    async def _lists(self, owner_id: str) -> dict[str, Any]:
        return await self.store.get_data(owner_id, ACCESS_LISTS_KEY) or {}

    async def _names(self, owner_id: str, key: str) -> list[str]:
        """Names visible to an owner: their own first, then unshadowed shared ones."""
        names: list[str] = []
        for scope in self.resolver.scopes_for(owner_id):
            data = await self.store.get_data(scope, key) or {}
            names.extend(n for n in data if n not in names)
        return names

    # Access configs

    async def create_config(self, owner_id: str, name: str) -> AccessConfig | LobbyError:
        """Create an empty access config."""
        name = name.strip().lower()
        if not name:
            return LobbyError(code=VALIDATION_ERROR, message="Config name cannot be empty")

        configs = await self._configs(owner_id)
        if name in configs:
            return _already_exists("config", name)

        config = AccessConfig(name=name)
        configs[name] = config.to_dict()
        await self.store.store_data(owner_id, ACCESS_CONFIGS_KEY, configs)
        logger.info(f"Access config '{name}' created by {owner_id}")
        return config

    async def delete_config(self, owner_id: str, name: str) -> AccessConfig | LobbyError:
        configs = await self._configs(owner_id)
        if name not in configs:
            return _not_found("config", name)

        config = AccessConfig.from_dict(configs.pop(name))
        await self.store.store_data(owner_id, ACCESS_CONFIGS_KEY, configs)
        logger.info(f"Access config '{name}' deleted by {owner_id}")
        return config

    async def view_config(self, owner_id: str, name: str) -> AccessConfig | LobbyError:
        configs = await self._configs(owner_id)
        if name not in configs:
            return _not_found("config", name)
        return AccessConfig.from_dict(configs[name])

    async def export_config(self, owner_id: str, name: str) -> str | LobbyError:
        """Export a config as a JSON document that ``import_config`` accepts."""
        config = await self.view_config(owner_id, name)
        if isinstance(config, LobbyError):
            return config
        return json.dumps(config.to_dict(), indent=2)

    async def import_config(self, owner_id: str, contents: str) -> AccessConfig | LobbyError:
        """Import an exported config under a new name."""
        data = _parse_import(contents)
        if isinstance(data, LobbyError):
            return data
        if not isinstance(data.get("accessLists"), dict):
            return LobbyError(
                code=VALIDATION_ERROR, message="Access config must contain access lists"
            )

        known = set(actionable_roles())
        unknown = [action for action in data["accessLists"] if action not in known]
        if unknown:
            return LobbyError(
                code=VALIDATION_ERROR,
                message=f"Unknown actions: {', '.join(unknown)}",
                details={"actions": unknown},
            )

        configs = await self._configs(owner_id)
        config = AccessConfig.from_dict(data)
        if config.name in configs:
            return _already_exists("config", config.name)

        configs[config.name] = config.to_dict()
        await self.store.store_data(owner_id, ACCESS_CONFIGS_KEY, configs)
        logger.info(f"Access config '{config.name}' imported by {owner_id}")
        return config

    async def set_access_list(
        self,
        owner_id: str,
        name: str,
        kind: ListKind,
        action: str,
        list_name: str | None,
    ) -> AccessConfig | LobbyError:
        """Set or clear the whitelist/blacklist gating an action.

        Args:
            owner_id: Owner of the config
            name: Config name
            kind: Whitelist or blacklist
            action: Role tag the list applies to
            list_name: List to apply, or None to remove the entry
        """
        configs = await self._configs(owner_id)
        if name not in configs:
            return _not_found("config", name)

        if action not in actionable_roles():
            return LobbyError(
                code=VALIDATION_ERROR,
                message=f"Action with the name '{action}' does not exist",
                details={"action": action},
            )

        if list_name:
            found = await self.resolver.resolve_list(list_name, self.resolver.scopes_for(owner_id))
            if found is None:
                return _not_found("list", list_name)
        else:
            list_name = None

        config = AccessConfig.from_dict(configs[name])
        rule = config.rules.get(action, ActionRule())
        rule.set(kind, list_name)
        if rule.is_empty:
            config.rules.pop(action, None)
        else:
            config.rules[action] = rule

        configs[name] = config.to_dict()
        await self.store.store_data(owner_id, ACCESS_CONFIGS_KEY, configs)
        logger.info(
            f"Access config '{name}' of {owner_id}: {kind.value} for {action} "
            f"set to {list_name!r}"
        )
        return config

    async def config_names(self, owner_id: str) -> list[str]:
        return await self._names(owner_id, ACCESS_CONFIGS_KEY)

    # Access lists

    async def create_list(self, owner_id: str, name: str) -> AccessList | LobbyError:
        """Create an empty access list."""
        name = name.strip().lower()
        if not name:
            return LobbyError(code=VALIDATION_ERROR, message="List name cannot be empty")

        lists = await self._lists(owner_id)
        if name in lists:
            return _already_exists("list", name)

        access_list = AccessList(name=name)
        lists[name] = access_list.to_dict()
        await self.store.store_data(owner_id, ACCESS_LISTS_KEY, lists)
        logger.info(f"Access list '{name}' created by {owner_id}")
        return access_list

    async def delete_list(self, owner_id: str, name: str) -> AccessList | LobbyError:
        lists = await self._lists(owner_id)
        if name not in lists:
            return _not_found("list", name)

        access_list = AccessList.from_dict(lists.pop(name))
        await self.store.store_data(owner_id, ACCESS_LISTS_KEY, lists)
        logger.info(f"Access list '{name}' deleted by {owner_id}")
        return access_list

    async def view_list(self, owner_id: str, name: str) -> AccessList | LobbyError:
        lists = await self._lists(owner_id)
        if name not in lists:
            return _not_found("list", name)
        return AccessList.from_dict(lists[name])

    async def export_list(self, owner_id: str, name: str) -> str | LobbyError:
        access_list = await self.view_list(owner_id, name)
        if isinstance(access_list, LobbyError):
            return access_list
        return json.dumps(access_list.to_dict(), indent=2)

    async def import_list(self, owner_id: str, contents: str) -> AccessList | LobbyError:
        """Import an exported list under a new name."""
        data = _parse_import(contents)
        if isinstance(data, LobbyError):
            return data
        if not data.get("users") and not data.get("roles"):
            return LobbyError(
                code=VALIDATION_ERROR,
                message="No users or roles were found in the access list",
            )

        lists = await self._lists(owner_id)
        access_list = AccessList.from_dict(data)
        if access_list.name in lists:
            return _already_exists("list", access_list.name)

        lists[access_list.name] = access_list.to_dict()
        await self.store.store_data(owner_id, ACCESS_LISTS_KEY, lists)
        logger.info(f"Access list '{access_list.name}' imported by {owner_id}")
        return access_list

    async def add_player(self, owner_id: str, name: str, player_id: str) -> AccessList | LobbyError:
        return await self._edit_list(owner_id, name, "users", player_id, add=True)

    async def remove_player(
        self, owner_id: str, name: str, player_id: str
    ) -> AccessList | LobbyError:
        return await self._edit_list(owner_id, name, "users", player_id, add=False)

    async def add_group(self, owner_id: str, name: str, group_id: str) -> AccessList | LobbyError:
        return await self._edit_list(owner_id, name, "groups", group_id, add=True)

    async def remove_group(
        self, owner_id: str, name: str, group_id: str
    ) -> AccessList | LobbyError:
        return await self._edit_list(owner_id, name, "groups", group_id, add=False)

    async def list_names(self, owner_id: str) -> list[str]:
        return await self._names(owner_id, ACCESS_LISTS_KEY)

    async def _edit_list(
        self, owner_id: str, name: str, field: str, member: str, add: bool
    ) -> AccessList | LobbyError:
        lists = await self._lists(owner_id)
        if name not in lists:
            return _not_found("list", name)

        access_list = AccessList.from_dict(lists[name])
        members: list[str] = getattr(access_list, field)
        if add:
            if member not in members:
                members.append(member)
        else:
            if member not in members:
                kind = "Player" if field == "users" else "Group"
                return LobbyError(
                    code=NOT_FOUND,
                    message=f"{kind} not found in access list",
                    details={"name": name, "member": member},
                )
            members.remove(member)

        lists[name] = access_list.to_dict()
        await self.store.store_data(owner_id, ACCESS_LISTS_KEY, lists)
        action = "added to" if add else "removed from"
        logger.info(f"{member} {action} access list '{name}' of {owner_id}")
        return access_list
