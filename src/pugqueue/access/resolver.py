"""Access resolution for role-assuming actions.

A lobby may name an access config. The config maps actions (role tags) to a
whitelist and/or a blacklist, and both configs and lists are looked up by
name through an ordered list of scopes: the lobby creator's own scope first,
then the shared guild scope. Anything that doesn't resolve is treated as
absent, so a misconfigured lobby stays open rather than locking everyone out.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from pugqueue.access.models import GUILD_SCOPE, AccessConfig, AccessList, ListKind
from pugqueue.access.store import ACCESS_CONFIGS_KEY, ACCESS_LISTS_KEY, PreferenceStore
from pugqueue.lobby.models import Lobby

logger = logging.getLogger(__name__)


class MemberDirectory(Protocol):
    async def get_groups(self, player_id: str) -> list[str]: ...


@dataclass
class AccessDecision:
    """Outcome of an access check.

    Attributes:
        allowed: Whether the action is allowed
        reason: Short machine-readable reason
        list_name: Name of the deciding list, if a list decided
        list_kind: Kind of the deciding list, if a list decided
    """

    allowed: bool
    reason: str
    list_name: str | None = None
    list_kind: ListKind | None = None

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "listName": self.list_name,
            "listKind": self.list_kind.value if self.list_kind else None,
        }


class AccessResolver:
    """Decides whether a player may take a role in a lobby."""

    def __init__(
        self,
        store: PreferenceStore,
        members: MemberDirectory,
        shared_scopes: list[str] | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Store holding access configs and lists
            members: Roster used to look up a player's groups
            shared_scopes: Scopes consulted after the lobby creator's own
        """
        self.store = store
        self.members = members
        self.shared_scopes = shared_scopes if shared_scopes is not None else [GUILD_SCOPE]

    def scopes_for(self, owner_id: str) -> list[str]:
        """Scope priority for names referenced by ``owner_id``."""
        scopes = [owner_id]
        scopes.extend(s for s in self.shared_scopes if s != owner_id)
        return scopes

    async def resolve_config(self, name: str, scopes: list[str]) -> AccessConfig | None:
        """Find a config by name, first scope wins."""
        for scope in scopes:
            configs = await self.store.get_data(scope, ACCESS_CONFIGS_KEY) or {}
            if name in configs:
                return AccessConfig.from_dict(configs[name])
        return None

    async def resolve_list(self, name: str, scopes: list[str]) -> AccessList | None:
        """Find a list by name, first scope wins."""
        for scope in scopes:
            lists = await self.store.get_data(scope, ACCESS_LISTS_KEY) or {}
            if name in lists:
                return AccessList.from_dict(lists[name])
        return None

    async def can_assume_role(self, lobby: Lobby, player_id: str, role: str) -> AccessDecision:
        """Check if a player may take ``role`` in a lobby.

        Raises:
            RemoteServiceError: If the store can't be read
            MembershipLookupError: If the player's groups are needed and can't
                be looked up
        """
        if not lobby.access_config:
            return AccessDecision(allowed=True, reason="no_config")

        scopes = self.scopes_for(lobby.created_by)
        config = await self.resolve_config(lobby.access_config, scopes)
        if config is None:
            logger.warning(
                f"Access config '{lobby.access_config}' of lobby {lobby.id} not found "
                f"in scopes {scopes}, allowing {role} for {player_id}"
            )
            return AccessDecision(allowed=True, reason="config_not_found")

        rule = config.rule_for(role)
        if rule is None or rule.is_empty:
            return AccessDecision(allowed=True, reason="no_rule")

        blacklist = await self._resolve_rule_list(rule.blacklist, scopes, lobby)
        whitelist = await self._resolve_rule_list(rule.whitelist, scopes, lobby)

        groups: list[str] | None = None

        if blacklist is not None:
            listed = blacklist.matches(player_id)
            if not listed and blacklist.has_groups:
                groups = await self.members.get_groups(player_id)
                listed = blacklist.matches(player_id, groups)
            if listed:
                return AccessDecision(
                    allowed=False,
                    reason="blacklisted",
                    list_name=blacklist.name,
                    list_kind=ListKind.BLACKLIST,
                )

        if whitelist is not None:
            listed = whitelist.matches(player_id)
            if not listed and whitelist.has_groups:
                if groups is None:
                    groups = await self.members.get_groups(player_id)
                listed = whitelist.matches(player_id, groups)
            return AccessDecision(
                allowed=listed,
                reason="whitelisted" if listed else "not_whitelisted",
                list_name=whitelist.name,
                list_kind=ListKind.WHITELIST,
            )

        return AccessDecision(allowed=True, reason="not_blacklisted" if blacklist else "no_list")

    async def _resolve_rule_list(
        self, name: str | None, scopes: list[str], lobby: Lobby
    ) -> AccessList | None:
        if name is None:
            return None
        access_list = await self.resolve_list(name, scopes)
        if access_list is None:
            logger.warning(
                f"Access list '{name}' referenced by config '{lobby.access_config}' "
                f"of lobby {lobby.id} not found, ignoring it"
            )
        return access_list
