"""Role access control: access configs, access lists and their resolution."""

from pugqueue.access.manager import AccessManager
from pugqueue.access.members import DiscordMemberDirectory, StaticMemberDirectory
from pugqueue.access.models import GUILD_SCOPE, AccessConfig, AccessList, ActionRule, ListKind
from pugqueue.access.resolver import AccessDecision, AccessResolver
from pugqueue.access.store import ACCESS_CONFIGS_KEY, ACCESS_LISTS_KEY, PreferenceStore

__all__ = [
    "ACCESS_CONFIGS_KEY",
    "ACCESS_LISTS_KEY",
    "GUILD_SCOPE",
    "AccessConfig",
    "AccessDecision",
    "AccessList",
    "AccessManager",
    "AccessResolver",
    "ActionRule",
    "DiscordMemberDirectory",
    "ListKind",
    "PreferenceStore",
    "StaticMemberDirectory",
]
