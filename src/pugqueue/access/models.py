"""Access config and access list models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

GUILD_SCOPE = "guild"  # Owner ID of the shared, community-wide scope


class ListKind(Enum):
    """How an access list is applied to an action."""

    WHITELIST = "whitelist"
    BLACKLIST = "blacklist"


@dataclass
class ActionRule:
    """Lists gating one action (role)."""

    whitelist: str | None = None
    blacklist: str | None = None

    def get(self, kind: ListKind) -> str | None:
        return self.whitelist if kind is ListKind.WHITELIST else self.blacklist

    def set(self, kind: ListKind, list_name: str | None) -> None:
        if kind is ListKind.WHITELIST:
            self.whitelist = list_name
        else:
            self.blacklist = list_name

    @property
    def is_empty(self) -> bool:
        return self.whitelist is None and self.blacklist is None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActionRule":
        return cls(whitelist=data.get("whitelist"), blacklist=data.get("blacklist"))

    def to_dict(self) -> dict[str, Any]:
        data = {}
        if self.whitelist is not None:
            data["whitelist"] = self.whitelist
        if self.blacklist is not None:
            data["blacklist"] = self.blacklist
        return data


@dataclass
class AccessConfig:
    """Named mapping of actions to the lists that gate them.

    Attributes:
        name: Config name, lower case
        rules: Action (role tag) -> whitelist/blacklist names
    """

    name: str
    rules: dict[str, ActionRule] = field(default_factory=dict)

    def rule_for(self, action: str) -> ActionRule | None:
        return self.rules.get(action)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccessConfig":
        return cls(
            name=data["name"],
            rules={
                action: ActionRule.from_dict(rule or {})
                for action, rule in (data.get("accessLists") or {}).items()
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "accessLists": {action: rule.to_dict() for action, rule in self.rules.items()},
        }


@dataclass
class AccessList:
    """Named set of player IDs and chat-platform group IDs."""

    name: str
    users: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)

    @property
    def has_groups(self) -> bool:
        return bool(self.groups)

    def matches(self, player_id: str, groups: list[str] | None = None) -> bool:
        """Check if the player, or one of their groups, is on this list."""
        if player_id in self.users:
            return True
        return any(g in self.groups for g in groups or ())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccessList":
        return cls(
            name=data["name"],
            users=[str(u) for u in data.get("users") or []],
            groups=[str(r) for r in data.get("roles") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "users": list(self.users), "roles": list(self.groups)}
