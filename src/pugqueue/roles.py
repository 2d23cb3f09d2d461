"""Role tag vocabulary.

Every queued player carries a set of string tags. The strings are the wire
representation shared with the remote lobby service; inside the package,
class roles are handled as ``ClassRole`` values (a base class plus an
optional team) and only turned back into strings at the boundary.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class RoleTag(Enum):
    """Non-class tags a queued player can hold."""

    PLAYER = "player"
    CREATOR = "creator"
    ACTIVE = "active"  # Passed the AFK check
    NEEDS_SUBSTITUTE = "needs-substitute"
    CAPTAIN_A = "captain-a"
    CAPTAIN_B = "captain-b"
    PICKED = "picked"  # Locked by a captain pick


class Team(Enum):
    """The two sides of a match."""

    TEAM_A = "team_a"
    TEAM_B = "team_b"

    @property
    def color(self) -> str:
        """Color prefix used by color-qualified class tags."""
        return "red" if self is Team.TEAM_A else "blu"

    @property
    def captain_tag(self) -> str:
        """Tag held by this team's captain."""
        return RoleTag.CAPTAIN_A.value if self is Team.TEAM_A else RoleTag.CAPTAIN_B.value

    @property
    def display_name(self) -> str:
        return self.color.upper()

    @classmethod
    def from_color(cls, color: str) -> "Team | None":
        for team in cls:
            if team.color == color:
                return team
        return None


class GameClass(Enum):
    """TF2 classes a player can queue as."""

    SCOUT = "scout"
    SOLDIER = "soldier"
    PYRO = "pyro"
    DEMOMAN = "demoman"
    HEAVY = "heavy"
    ENGINEER = "engineer"
    MEDIC = "medic"
    SNIPER = "sniper"
    SPY = "spy"


@dataclass(frozen=True)
class ClassRole:
    """A class role, optionally locked to a team.

    ``ClassRole(GameClass.SCOUT)`` is the plain ``scout`` tag and
    ``ClassRole(GameClass.SCOUT, Team.TEAM_A)`` is ``red-scout``.
    """

    game_class: GameClass
    team: Team | None = None

    @property
    def tag(self) -> str:
        """Wire representation of this role."""
        if self.team is None:
            return self.game_class.value
        return f"{self.team.color}-{self.game_class.value}"

    @property
    def base(self) -> "ClassRole":
        """The same class without a team."""
        return ClassRole(self.game_class)

    def for_team(self, team: Team) -> "ClassRole":
        """The same class locked to ``team``."""
        return ClassRole(self.game_class, team)

    @classmethod
    def parse(cls, tag: str) -> "ClassRole | None":
        """Parse a plain or color-qualified class tag.

        Returns:
            The parsed role, or None if the tag is not a class tag
        """
        color, sep, name = tag.partition("-")
        if sep:
            team = Team.from_color(color)
            if team is None:
                return None
            try:
                return cls(GameClass(name), team)
            except ValueError:
                return None
        try:
            return cls(GameClass(tag))
        except ValueError:
            return None

    def __str__(self) -> str:
        return self.tag


TEAM_TAGS = frozenset(team.value for team in Team)
SPECIAL_TAGS = frozenset(tag.value for tag in RoleTag) | TEAM_TAGS


def is_class_tag(tag: str) -> bool:
    """Check if a tag names a class role (plain or color-qualified)."""
    return ClassRole.parse(tag) is not None


def is_known_tag(tag: str) -> bool:
    """Check if a tag belongs to the closed vocabulary."""
    return tag in SPECIAL_TAGS or is_class_tag(tag)


def class_roles(tags: Iterable[str]) -> list[ClassRole]:
    """Extract the class roles from a set of tags, in sorted order."""
    roles = [ClassRole.parse(tag) for tag in sorted(tags)]
    return [role for role in roles if role is not None]


def team_of(tags: Iterable[str]) -> Team | None:
    """Determine which team a set of tags places a player on.

    A team tag, a captain tag or any color-qualified class tag is enough.
    """
    tags = set(tags)
    for team in Team:
        if team.value in tags or team.captain_tag in tags:
            return team
    for role in class_roles(tags):
        if role.team is not None:
            return role.team
    return None


def actionable_roles() -> list[str]:
    """Tags an access config can carry rules for.

    Bookkeeping tags (captain, picked, creator, ...) are assigned by the
    system and never requested by a player, so only ``player``, the team
    tags and the class roles are actions.
    """
    actions = [RoleTag.PLAYER.value, Team.TEAM_A.value, Team.TEAM_B.value]
    for game_class in GameClass:
        actions.append(game_class.value)
        for team in Team:
            actions.append(ClassRole(game_class, team).tag)
    return actions
