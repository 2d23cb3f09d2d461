"""Captain draft state machine.

Phases run COLLECTING -> DRAFTING -> ASSIGNING -> COMPLETE. The machine is
pure: every transition takes the current ``DraftState`` and a lobby snapshot
and returns a new ``DraftState`` (or a ``LobbyError``) without touching the
input, so the caller can apply the remote mutation first and only then
commit the new local state.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from pugqueue.errors import (
    DRAFT_FINISHED,
    INVALID_STATE,
    NOT_QUEUED,
    NOT_YOUR_TURN,
    ROLE_UNAVAILABLE,
    VALIDATION_ERROR,
    LobbyError,
)
from pugqueue.lobby.models import DraftPhase, DraftState, Lobby
from pugqueue.lobby.requirements import RequirementTracker
from pugqueue.roles import ClassRole, RoleTag, Team

logger = logging.getLogger(__name__)


@dataclass
class PickPlan:
    """A validated pick, ready to be sent to the lobby service.

    Attributes:
        captain_id: Captain making the pick
        target_id: Player being picked
        team: Team the player joins
        role: Class role the player is locked into
        tags: Tags to add to the target, in order
        expired: Whether the pick landed after the turn deadline
    """

    captain_id: str
    target_id: str
    team: Team
    role: ClassRole
    tags: list[str]
    expired: bool = False


@dataclass
class CaptainAssignment:
    """Residual role handed to a captain when the draft ends."""

    captain_id: str
    team: Team
    role: ClassRole
    tags: list[str]


def build_turn_order(captain_a: str, captain_b: str, picks: int) -> list[str]:
    """Alternate picks between the captains, captain A first."""
    return [captain_a if i % 2 == 0 else captain_b for i in range(picks)]


class DraftStateMachine:
    """Transitions of the captain draft."""

    def __init__(self, tracker: RequirementTracker) -> None:
        self.tracker = tracker

    def should_begin(self, lobby: Lobby, draft: DraftState) -> bool:
        """Check if a collecting lobby has just become draftable."""
        return draft.phase is DraftPhase.COLLECTING and self.tracker.is_ready(lobby)

    def begin(
        self,
        lobby: Lobby,
        draft: DraftState,
        now: datetime,
        pick_timeout: int,
    ) -> DraftState | LobbyError:
        """COLLECTING -> DRAFTING.

        Fixes the turn order from the players holding the captain tags.
        """
        if draft.phase is not DraftPhase.COLLECTING:
            return LobbyError(code=INVALID_STATE, message="The draft has already started")

        captains = lobby.captains
        if Team.TEAM_A not in captains or Team.TEAM_B not in captains:
            return LobbyError(
                code=INVALID_STATE,
                message="Both captains must be selected before the draft can start",
            )

        pick_count = max(lobby.max_players - len(captains), 0)
        picks = build_turn_order(
            captains[Team.TEAM_A].player_id,
            captains[Team.TEAM_B].player_id,
            pick_count,
        )

        logger.info(f"Draft starting in lobby {lobby.id} with {pick_count} picks")

        return replace(
            draft,
            phase=DraftPhase.DRAFTING,
            position=0,
            picks=picks,
            pick_expires=now + timedelta(seconds=pick_timeout),
            version=draft.version + 1,
        )

    def validate_pick(
        self,
        lobby: Lobby,
        draft: DraftState,
        captain_id: str,
        target_id: str,
        role: str,
        now: datetime,
    ) -> PickPlan | LobbyError:
        """Check a pick against turn order and role availability."""
        if draft.phase is DraftPhase.COLLECTING:
            return LobbyError(code=INVALID_STATE, message="The draft has not started yet")

        if draft.phase is DraftPhase.FAILED:
            return LobbyError(
                code=INVALID_STATE,
                message="The draft was stopped because the lobby no longer matches it",
            )

        if draft.phase is not DraftPhase.DRAFTING or draft.position >= len(draft.picks):
            return LobbyError(code=DRAFT_FINISHED, message="All picks have been made")

        expected = draft.picks[draft.position]
        if expected != captain_id:
            return LobbyError(
                code=NOT_YOUR_TURN,
                message="It is not your turn to pick",
                details={"position": draft.position, "captain": expected},
            )

        team = self._team_of_captain(lobby, captain_id)
        if team is None:
            return LobbyError(code=INVALID_STATE, message="You are not a captain in this lobby")

        target = lobby.get_player(target_id)
        if target is None:
            return LobbyError(code=NOT_QUEUED, message="That player is not queued in this lobby")
        if target.is_picked or target.captain_of is not None:
            return LobbyError(
                code=VALIDATION_ERROR,
                message="That player cannot be picked",
                details={"player": target_id},
            )

        class_role = ClassRole.parse(role)
        if class_role is None or class_role.team is not None:
            return LobbyError(
                code=VALIDATION_ERROR,
                message=f"'{role}' is not a valid class",
                details={"role": role},
            )
        if not target.has(class_role.tag):
            return LobbyError(
                code=ROLE_UNAVAILABLE,
                message=f"{target.name} did not queue as {class_role.tag}",
                details={"role": class_role.tag},
            )

        open_roles = self.tracker.available_roles(
            [], lobby.players, lobby.requirements, team=team
        )
        if class_role.tag not in open_roles:
            return LobbyError(
                code=ROLE_UNAVAILABLE,
                message=f"Your team already has every {class_role.tag} it needs",
                details={"role": class_role.tag, "team": team.value},
            )

        locked = class_role.for_team(team)
        tags = [locked.tag, team.value, RoleTag.PICKED.value]
        expired = draft.pick_expires is not None and now > draft.pick_expires

        return PickPlan(
            captain_id=captain_id,
            target_id=target_id,
            team=team,
            role=locked,
            tags=[t for t in tags if not target.has(t)],
            expired=expired,
        )

    def advance(self, draft: DraftState, now: datetime, pick_timeout: int) -> DraftState:
        """Move to the next turn after a confirmed pick.

        When the last pick has been made the draft moves to ASSIGNING and the
        deadline is cleared.
        """
        position = draft.position + 1
        if position >= len(draft.picks):
            return replace(
                draft,
                phase=DraftPhase.ASSIGNING,
                position=len(draft.picks),
                pick_expires=None,
                version=draft.version + 1,
            )
        return replace(
            draft,
            position=position,
            pick_expires=now + timedelta(seconds=pick_timeout),
            version=draft.version + 1,
        )

    def residual_assignments(
        self, lobby: Lobby, draft: DraftState
    ) -> list[CaptainAssignment] | LobbyError:
        """Work out the last open role of each team for its captain."""
        if draft.phase is not DraftPhase.ASSIGNING:
            return LobbyError(code=INVALID_STATE, message="The draft is not assigning roles")

        captains = lobby.captains
        assignments = []
        for team in Team:
            captain = captains.get(team)
            if captain is None:
                return LobbyError(
                    code=INVALID_STATE,
                    message=f"Team {team.display_name} has no captain",
                )

            open_roles = self.tracker.available_roles(
                [], lobby.players, lobby.requirements, team=team
            )
            if len(open_roles) != 1:
                logger.error(
                    f"Lobby {lobby.id}: expected one open role for {team.value} "
                    f"after the draft, found {open_roles}"
                )
                return LobbyError(
                    code=INVALID_STATE,
                    message=f"Could not determine the captain role for {team.display_name}",
                    details={"team": team.value, "openRoles": open_roles},
                )

            base = ClassRole.parse(open_roles[0])
            locked = base.for_team(team)
            tags = [t for t in (base.tag, locked.tag) if not captain.has(t)]
            assignments.append(
                CaptainAssignment(
                    captain_id=captain.player_id,
                    team=team,
                    role=locked,
                    tags=tags,
                )
            )
        return assignments

    def complete(self, draft: DraftState) -> DraftState:
        """ASSIGNING -> COMPLETE."""
        return replace(
            draft,
            phase=DraftPhase.COMPLETE,
            pick_expires=None,
            version=draft.version + 1,
        )

    def pickable_players(self, lobby: Lobby) -> list[str]:
        """IDs of queued players a captain can still pick."""
        return [
            p.player_id
            for p in lobby.players
            if not p.is_picked and p.captain_of is None
        ]

    @staticmethod
    def _team_of_captain(lobby: Lobby, captain_id: str) -> Team | None:
        for team, captain in lobby.captains.items():
            if captain.player_id == captain_id:
                return team
        return None
