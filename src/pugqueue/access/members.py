"""Chat-platform member roster lookups."""

import logging

import httpx

from pugqueue.errors import MembershipLookupError

logger = logging.getLogger(__name__)


class DiscordMemberDirectory:
    """Looks up the guild roles (groups) a player holds on Discord."""

    def __init__(
        self,
        api_url: str,
        bot_token: str,
        guild_id: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.guild_id = guild_id
        # Shared HTTP client, reuses connections across lookups
        self._http = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers={"Authorization": f"Bot {bot_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    async def get_groups(self, player_id: str) -> list[str]:
        """Get the group IDs a player holds in the guild.

        A player who isn't a guild member holds no groups.

        Raises:
            MembershipLookupError: If the roster can't be queried
        """
        try:
            response = await self._http.get(f"/guilds/{self.guild_id}/members/{player_id}")
        except httpx.TimeoutException as e:
            logger.error(f"Timeout looking up guild member {player_id}")
            raise MembershipLookupError(f"Timed out looking up member {player_id}") from e
        except httpx.TransportError as e:
            logger.error(f"Failed to look up guild member {player_id}: {e}")
            raise MembershipLookupError(f"Could not look up member {player_id}") from e

        if response.status_code == 404:
            return []
        if response.status_code != 200:
            logger.error(
                f"Member lookup for {player_id} failed: {response.status_code} {response.text}"
            )
            raise MembershipLookupError(
                f"Member lookup for {player_id} failed",
                status_code=response.status_code,
            )

        return [str(role) for role in response.json().get("roles", [])]


class StaticMemberDirectory:
    """Member roster backed by a fixed mapping, used when Discord isn't configured."""

    def __init__(self, groups: dict[str, list[str]] | None = None) -> None:
        self.groups = groups or {}

    async def get_groups(self, player_id: str) -> list[str]:
        return list(self.groups.get(player_id, []))
