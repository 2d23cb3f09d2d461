"""Lobby domain models.

A ``Lobby`` is a snapshot of a queue held by the remote lobby service.
Snapshots are rebuilt from every service response; the only state this
package owns locally is the ``DraftState`` of captain-draft lobbies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pugqueue.roles import RoleTag, Team


class Distribution(Enum):
    """How players in a lobby end up in roles and teams."""

    OPEN = "RANDOM"  # Pick a class, teams assigned later
    TEAM_ROLE = "TEAM_ROLE_BASED"  # Pick a class and a team
    CAPTAIN_DRAFT = "CAPTAIN_BASED"  # Captains draft players into roles

    @property
    def display_name(self) -> str:
        return {
            Distribution.OPEN: "Open",
            Distribution.TEAM_ROLE: "Team & Role",
            Distribution.CAPTAIN_DRAFT: "Captains",
        }[self]


class LobbyStatus(Enum):
    """Lobby lifecycle status as reported by the lobby service."""

    UNKNOWN = "UNKNOWN"
    WAITING_FOR_REQUIRED_PLAYERS = "WAITING_FOR_REQUIRED_PLAYERS"
    DISTRIBUTING = "DISTRIBUTING"
    DISTRIBUTED = "DISTRIBUTED"
    LOBBY_READY = "LOBBY_READY"
    CREATING_SERVER = "CREATING_SERVER"
    WAITING = "WAITING"
    LIVE = "LIVE"
    FINISHED = "FINISHED"
    CLOSED = "CLOSED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: str | None) -> "LobbyStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_queueing(self) -> bool:
        """Whether players can still join or leave the queue."""
        return self is LobbyStatus.WAITING_FOR_REQUIRED_PLAYERS

    @property
    def is_terminal(self) -> bool:
        return self in (
            LobbyStatus.FINISHED,
            LobbyStatus.CLOSED,
            LobbyStatus.EXPIRED,
            LobbyStatus.FAILED,
        )


@dataclass(frozen=True)
class Requirement:
    """How many players a lobby needs in a role."""

    name: str
    count: int
    overfill: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Requirement":
        return cls(
            name=data["name"],
            count=int(data["count"]),
            overfill=bool(data.get("overfill", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "count": self.count, "overfill": self.overfill}


@dataclass
class QueuedPlayer:
    """A player in a lobby queue.

    Attributes:
        player_id: Discord user ID
        name: Display name
        steam_id: Linked Steam account (optional)
        roles: Role tags currently held
    """

    player_id: str
    name: str
    steam_id: str | None = None
    roles: set[str] = field(default_factory=set)

    def has(self, tag: str | Enum) -> bool:
        value = tag.value if isinstance(tag, Enum) else tag
        return value in self.roles

    @property
    def is_picked(self) -> bool:
        return RoleTag.PICKED.value in self.roles

    @property
    def captain_of(self) -> Team | None:
        """The team this player captains, if any."""
        for team in Team:
            if team.captain_tag in self.roles:
                return team
        return None

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "QueuedPlayer":
        return cls(
            player_id=str(data["discord"]),
            name=data.get("name", ""),
            steam_id=data.get("steam"),
            roles=set(data.get("roles") or []),
        )

    def to_document(self) -> dict[str, Any]:
        """Serialize for the lobby service."""
        return {
            "name": self.name,
            "discord": self.player_id,
            "steam": self.steam_id,
            "roles": sorted(self.roles),
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict for API responses."""
        return {
            "playerId": self.player_id,
            "name": self.name,
            "steamId": self.steam_id,
            "roles": sorted(self.roles),
        }


@dataclass
class Lobby:
    """Snapshot of a lobby queue.

    Attributes:
        id: Lobby ID assigned by the lobby service
        distribution: Distribution strategy
        requirements: Role requirements, fixed for the lobby's lifetime
        players: Queued players, unique by player_id
        max_players: Queue capacity
        status: Lifecycle status
        created_by: Discord ID of the creator
        region: Server region
        format_name: Name of the lobby format
        match_id: Match ID once one has been created
        access_config: Name of the access config gating roles (None = open)
        afk_check: Whether an AFK check runs once the queue fills
        pick_timeout: Seconds a captain has per pick
    """

    id: str
    distribution: Distribution
    requirements: list[Requirement]
    players: list[QueuedPlayer] = field(default_factory=list)
    max_players: int = 12
    status: LobbyStatus = LobbyStatus.WAITING_FOR_REQUIRED_PLAYERS
    created_by: str = ""
    region: str = ""
    format_name: str = ""
    match_id: str | None = None
    access_config: str | None = None
    afk_check: bool = True
    pick_timeout: int | None = None

    def get_player(self, player_id: str) -> QueuedPlayer | None:
        for player in self.players:
            if player.player_id == player_id:
                return player
        return None

    def has_player(self, player_id: str) -> bool:
        return self.get_player(player_id) is not None

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    @property
    def captains(self) -> dict[Team, QueuedPlayer]:
        """Players holding a captain tag, keyed by the team they captain."""
        found: dict[Team, QueuedPlayer] = {}
        for player in self.players:
            team = player.captain_of
            if team is not None and team not in found:
                found[team] = player
        return found

    def requirement(self, name: str) -> Requirement | None:
        for requirement in self.requirements:
            if requirement.name == name:
                return requirement
        return None

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Lobby":
        """Build a snapshot from a lobby service document."""
        extra = data.get("data") or {}
        pick_timeout = extra.get("captainPickTimeout")
        return cls(
            id=str(data["_id"]),
            distribution=Distribution(data["distribution"]),
            requirements=[Requirement.from_dict(r) for r in data.get("requirements", [])],
            players=[QueuedPlayer.from_document(p) for p in data.get("queuedPlayers", [])],
            max_players=int(data.get("maxPlayers", 0)),
            status=LobbyStatus.parse(data.get("status")),
            created_by=str(data.get("createdBy", "")),
            region=data.get("region", ""),
            format_name=extra.get("format") or data.get("format", ""),
            match_id=data.get("match"),
            access_config=extra.get("accessConfig") or None,
            afk_check=bool(extra.get("afkCheck", True)),
            pick_timeout=int(pick_timeout) if pick_timeout is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict for API responses."""
        return {
            "id": self.id,
            "distribution": self.distribution.value,
            "requirements": [r.to_dict() for r in self.requirements],
            "players": [p.to_dict() for p in self.players],
            "maxPlayers": self.max_players,
            "status": self.status.value,
            "createdBy": self.created_by,
            "region": self.region,
            "format": self.format_name,
            "matchId": self.match_id,
            "accessConfig": self.access_config,
            "afkCheck": self.afk_check,
        }


class DraftPhase(Enum):
    """Draft lifecycle for captain-draft lobbies."""

    COLLECTING = "collecting"  # Queue filling, pre-draft
    DRAFTING = "drafting"  # Captains picking
    ASSIGNING = "assigning"  # Last pick applied, captains getting residual roles
    COMPLETE = "complete"  # All roles locked
    FAILED = "failed"  # Lobby roles out of step with the picks, no more picks


@dataclass
class DraftState:
    """Local pick bookkeeping for a captain-draft lobby.

    Attributes:
        lobby_id: Lobby this draft belongs to
        phase: Current draft phase
        position: Index into picks of the captain whose turn it is
        picks: Captain IDs in turn order, fixed once drafting begins
        pick_expires: Deadline for the current pick
        version: Incremented on every accepted mutation
        announced: Whether the "lobby is about to start" notice went out
    """

    lobby_id: str
    phase: DraftPhase = DraftPhase.COLLECTING
    position: int = 0
    picks: list[str] = field(default_factory=list)
    pick_expires: datetime | None = None
    version: int = 0
    announced: bool = False

    @property
    def is_finished(self) -> bool:
        return self.phase is not DraftPhase.COLLECTING and self.position >= len(self.picks)

    @property
    def current_captain(self) -> str | None:
        """ID of the captain whose turn it is, or None outside drafting."""
        if self.phase is not DraftPhase.DRAFTING or self.position >= len(self.picks):
            return None
        return self.picks[self.position]

    def to_dict(self) -> dict[str, Any]:
        return {
            "lobbyId": self.lobby_id,
            "phase": self.phase.value,
            "position": self.position,
            "picks": list(self.picks),
            "pickExpires": self.pick_expires.isoformat() if self.pick_expires else None,
            "currentCaptain": self.current_captain,
            "version": self.version,
        }
