"""Distribution strategies.

Each strategy decides what a joining player may declare, which tags that
puts on their queue entry, which of those tags are gated by the lobby's
access config, and which must still have room.
"""

from dataclasses import dataclass, field
from typing import Any

from pugqueue.errors import ROLE_UNAVAILABLE, VALIDATION_ERROR, LobbyError
from pugqueue.lobby.models import Distribution, Lobby
from pugqueue.lobby.requirements import RequirementTracker
from pugqueue.roles import ClassRole, RoleTag


@dataclass
class JoinPlan:
    """What joining a lobby with a set of declared roles amounts to.

    Attributes:
        roles: Tags the player is queued with
        access_checks: Tags the access config must allow, in check order
        capacity_checks: Tags that must still have room
    """

    roles: set[str]
    access_checks: list[str] = field(default_factory=list)
    capacity_checks: list[str] = field(default_factory=list)


class DistributionStrategy:
    """Base class for distribution strategies."""

    distribution: Distribution

    def __init__(self, tracker: RequirementTracker) -> None:
        self.tracker = tracker

    def plan_join(self, lobby: Lobby, declared: list[str]) -> JoinPlan | LobbyError:
        """Validate declared roles and build the join plan."""
        raise NotImplementedError

    def check_capacity(self, lobby: Lobby, plan: JoinPlan) -> LobbyError | None:
        """Check every capacity-limited tag of a plan still has room."""
        candidates = [r for r in plan.capacity_checks if lobby.requirement(r) is not None]
        available = self.tracker.available_roles(candidates, lobby.players, lobby.requirements)
        for role in candidates:
            if role not in available:
                return LobbyError(
                    code=ROLE_UNAVAILABLE,
                    message=f"The {role} role is already full",
                    details={"role": role},
                )
        return None

    @property
    def drafts(self) -> bool:
        """Whether lobbies of this strategy go through a captain draft."""
        return False

    def slots(self, lobby: Lobby) -> list[dict[str, Any]]:
        """Per-requirement fill status, for rendering the queue."""
        counts = self.tracker.occupancy(lobby.players, lobby.requirements)
        return [
            {
                "role": r.name,
                "required": r.count,
                "filled": counts[r.name],
                "overfill": r.overfill,
                "players": [p.player_id for p in lobby.players if p.has(r.name)],
            }
            for r in lobby.requirements
        ]

    def _class_requirement(
        self, lobby: Lobby, tag: str, team_locked: bool
    ) -> ClassRole | LobbyError:
        role = ClassRole.parse(tag)
        if role is None or (role.team is not None) != team_locked:
            kind = "team class" if team_locked else "class"
            return LobbyError(
                code=VALIDATION_ERROR,
                message=f"'{tag}' is not a valid {kind} role",
                details={"role": tag},
            )
        if lobby.requirement(role.tag) is None:
            return LobbyError(
                code=VALIDATION_ERROR,
                message=f"The {role.tag} role is not part of this lobby",
                details={"role": role.tag},
            )
        return role


class OpenStrategy(DistributionStrategy):
    """Players pick a single class; teams are assigned later."""

    distribution = Distribution.OPEN

    def plan_join(self, lobby: Lobby, declared: list[str]) -> JoinPlan | LobbyError:
        if len(declared) != 1:
            return LobbyError(code=VALIDATION_ERROR, message="Select exactly one class")

        role = self._class_requirement(lobby, declared[0], team_locked=False)
        if isinstance(role, LobbyError):
            return role

        return JoinPlan(
            roles={RoleTag.PLAYER.value, role.tag},
            access_checks=[RoleTag.PLAYER.value, role.tag],
            capacity_checks=[role.tag],
        )


class TeamRoleStrategy(DistributionStrategy):
    """Players pick a class on a team, e.g. ``red-medic``.

    The team tag is implied by the color and is queued together with the
    class, so a join assigns both or neither.
    """

    distribution = Distribution.TEAM_ROLE

    def plan_join(self, lobby: Lobby, declared: list[str]) -> JoinPlan | LobbyError:
        if len(declared) != 1:
            return LobbyError(code=VALIDATION_ERROR, message="Select exactly one team class")

        role = self._class_requirement(lobby, declared[0], team_locked=True)
        if isinstance(role, LobbyError):
            return role

        team = role.team.value
        return JoinPlan(
            roles={RoleTag.PLAYER.value, team, role.tag},
            access_checks=[RoleTag.PLAYER.value, role.tag, team, role.base.tag],
            capacity_checks=[role.tag, team],
        )


class CaptainDraftStrategy(DistributionStrategy):
    """Players declare the classes they can play; captains draft them.

    Class requirements are eligibility pools here, so declaring a class
    never runs into capacity. The queue itself is bounded by max players.
    """

    distribution = Distribution.CAPTAIN_DRAFT

    def plan_join(self, lobby: Lobby, declared: list[str]) -> JoinPlan | LobbyError:
        if not declared:
            return LobbyError(code=VALIDATION_ERROR, message="Select at least one class")

        tags: list[str] = []
        for tag in declared:
            role = self._class_requirement(lobby, tag, team_locked=False)
            if isinstance(role, LobbyError):
                return role
            if role.tag not in tags:
                tags.append(role.tag)

        return JoinPlan(
            roles={RoleTag.PLAYER.value, *tags},
            access_checks=[RoleTag.PLAYER.value, *tags],
            capacity_checks=[],
        )

    @property
    def drafts(self) -> bool:
        return True


def build_strategies(tracker: RequirementTracker) -> dict[Distribution, DistributionStrategy]:
    """Create one strategy per distribution sharing a tracker."""
    strategies: list[DistributionStrategy] = [
        OpenStrategy(tracker),
        TeamRoleStrategy(tracker),
        CaptainDraftStrategy(tracker),
    ]
    return {s.distribution: s for s in strategies}
