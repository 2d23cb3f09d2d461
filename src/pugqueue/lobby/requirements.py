"""Requirement tracking for lobby queues.

Computes role occupancy of a queue against a lobby's requirements and
answers the two questions every distribution strategy asks: is the lobby
ready, and which roles can still be taken.
"""

import logging
from collections import Counter
from collections.abc import Iterable

from pugqueue.lobby.models import Distribution, Lobby, QueuedPlayer, Requirement
from pugqueue.roles import ClassRole, Team

logger = logging.getLogger(__name__)


class RequirementTracker:
    """Stateless occupancy and availability calculations."""

    def occupancy(
        self,
        players: Iterable[QueuedPlayer],
        requirements: Iterable[Requirement] | None = None,
    ) -> Counter[str]:
        """Count how many players hold each tag.

        A player counts toward every tag they hold, so a ``player`` + ``scout``
        entry adds one to both.

        Args:
            players: Queued players
            requirements: If given, requirement roles nobody holds are
                included with a count of 0

        Returns:
            Counter of tag -> number of players holding it
        """
        counts: Counter[str] = Counter()
        for requirement in requirements or ():
            counts[requirement.name] += 0
        for player in players:
            counts.update(player.roles)
        return counts

    def unfilled(self, lobby: Lobby) -> list[Requirement]:
        """Requirements with fewer players than required."""
        counts = self.occupancy(lobby.players)
        return [r for r in lobby.requirements if counts[r.name] < r.count]

    def overfilled(self, lobby: Lobby) -> list[Requirement]:
        """Requirements exceeded without overfill being allowed."""
        counts = self.occupancy(lobby.players)
        return [r for r in lobby.requirements if counts[r.name] > r.count and not r.overfill]

    def is_ready(self, lobby: Lobby) -> bool:
        """Check if a lobby's requirements are met.

        Every requirement must be filled and none may be overfilled unless it
        allows overfill. Captain-draft lobbies also need a full queue.
        """
        if self.unfilled(lobby) or self.overfilled(lobby):
            return False
        if lobby.distribution is Distribution.CAPTAIN_DRAFT:
            return len(lobby.players) >= lobby.max_players
        return True

    def available_roles(
        self,
        candidate_tags: Iterable[str],
        players: Iterable[QueuedPlayer],
        requirements: Iterable[Requirement],
        team: Team | None = None,
    ) -> list[str]:
        """List the roles still open.

        Without a team, a role is open to the candidate if they declared it
        and fewer unpicked players hold it than required (overfill roles are
        always open).

        With a team, every class requirement is split evenly between the two
        teams and a role is open while the team has fewer locked players in it
        than its half. Locked players are the ones holding the team's
        color-qualified tag. The candidate's tags are ignored in this mode.

        Returns:
            Role names in requirement order
        """
        players = list(players)
        requirements = list(requirements)

        if team is not None:
            return self._available_for_team(players, requirements, team)

        declared = set(candidate_tags)
        unpicked = self.occupancy(p for p in players if not p.is_picked)

        available = []
        for requirement in requirements:
            if requirement.name not in declared:
                continue
            if requirement.overfill or unpicked[requirement.name] < requirement.count:
                available.append(requirement.name)
        return available

    def _available_for_team(
        self,
        players: list[QueuedPlayer],
        requirements: list[Requirement],
        team: Team,
    ) -> list[str]:
        counts = self.occupancy(players)

        available = []
        for requirement in requirements:
            role = ClassRole.parse(requirement.name)
            if role is None or role.team is not None:
                continue
            required = requirement.count // 2
            taken = counts[role.for_team(team).tag]
            if required - taken > 0:
                available.append(requirement.name)

        logger.debug(f"Available roles for {team.value}: {available}")
        return available

    def is_role_available(self, role: str, lobby: Lobby) -> bool:
        """Check if one more player can take ``role`` in a lobby."""
        return role in self.available_roles([role], lobby.players, lobby.requirements)
