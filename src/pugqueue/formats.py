"""Lobby formats.

A format fixes the class counts and the queue size of a lobby. The
requirement list sent to the lobby service depends on the distribution the
lobby is created with:

- Open: the class counts as-is, plus ``player``
- Team & Role: each class count split into ``red-``/``blu-`` halves, plus
  ``player`` and the team tags
- Captains: the class counts as overfillable eligibility pools, plus
  ``player`` and one of each captain tag
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pugqueue.lobby.models import Distribution, Requirement
from pugqueue.roles import ClassRole, GameClass, RoleTag, Team

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LobbyFormat:
    """A playable format.

    Attributes:
        name: Format name (e.g. "Highlander")
        class_counts: Players needed per class across both teams
        max_players: Queue size
        distributions: Distributions this format can be played with
        maps: Maps in the format's pool
        hidden: Hidden formats are not offered for selection
    """

    name: str
    class_counts: dict[GameClass, int]
    max_players: int
    distributions: tuple[Distribution, ...] = tuple(Distribution)
    maps: tuple[str, ...] = ()
    hidden: bool = False

    def supports(self, distribution: Distribution) -> bool:
        return distribution in self.distributions

    def requirements_for(self, distribution: Distribution) -> list[Requirement]:
        """Build the requirement list for a lobby of this format."""
        requirements = [Requirement(RoleTag.PLAYER.value, self.max_players)]

        if distribution is Distribution.OPEN:
            for game_class, count in self.class_counts.items():
                requirements.append(Requirement(game_class.value, count))

        elif distribution is Distribution.TEAM_ROLE:
            for team in Team:
                requirements.append(Requirement(team.value, self.max_players // 2))
            for game_class, count in self.class_counts.items():
                for team in Team:
                    role = ClassRole(game_class, team)
                    requirements.append(Requirement(role.tag, count // 2))

        elif distribution is Distribution.CAPTAIN_DRAFT:
            requirements.append(Requirement(RoleTag.CAPTAIN_A.value, 1))
            requirements.append(Requirement(RoleTag.CAPTAIN_B.value, 1))
            for game_class, count in self.class_counts.items():
                requirements.append(Requirement(game_class.value, count, overfill=True))

        return requirements

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LobbyFormat":
        distributions = data.get("distributions")
        return cls(
            name=data["name"],
            class_counts={GameClass(k): int(v) for k, v in data["classes"].items()},
            max_players=int(data["maxPlayers"]),
            distributions=(
                tuple(Distribution(d) for d in distributions)
                if distributions
                else tuple(Distribution)
            ),
            maps=tuple(data.get("maps", [])),
            hidden=bool(data.get("hidden", False)),
        )


BUILTIN_FORMATS: tuple[LobbyFormat, ...] = (
    LobbyFormat(
        name="Highlander",
        class_counts={game_class: 2 for game_class in GameClass},
        max_players=18,
        maps=("pl_upward", "koth_product", "pl_badwater", "cp_steel"),
    ),
    LobbyFormat(
        name="Sixes",
        class_counts={
            GameClass.SCOUT: 4,
            GameClass.SOLDIER: 4,
            GameClass.DEMOMAN: 2,
            GameClass.MEDIC: 2,
        },
        max_players=12,
        maps=("cp_process_final", "cp_gullywash_final1", "koth_product", "cp_sunshine"),
    ),
    LobbyFormat(
        name="Ultiduo",
        class_counts={GameClass.SOLDIER: 2, GameClass.MEDIC: 2},
        max_players=4,
        maps=("ultiduo_baloo", "ultiduo_grove"),
    ),
)


@dataclass
class FormatCatalogue:
    """Lookup of the formats lobbies can be created with."""

    formats: dict[str, LobbyFormat] = field(default_factory=dict)

    def get(self, name: str) -> LobbyFormat | None:
        return self.formats.get(name)

    def available(self, distribution: Distribution | None = None) -> list[LobbyFormat]:
        """Formats offered for selection, optionally filtered by distribution."""
        return [
            f
            for f in self.formats.values()
            if not f.hidden and (distribution is None or f.supports(distribution))
        ]

    @classmethod
    def builtin(cls) -> "FormatCatalogue":
        return cls({f.name: f for f in BUILTIN_FORMATS})

    @classmethod
    def from_file(cls, path: str | Path) -> "FormatCatalogue":
        """Load formats from a JSON file holding a list of format objects."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        formats = [LobbyFormat.from_dict(entry) for entry in data]
        logger.info(f"Loaded {len(formats)} lobby formats from {path}")
        return cls({f.name: f for f in formats})


def load_catalogue(formats_file: str | None = None) -> FormatCatalogue:
    """Load the format catalogue from a file, or fall back to the built-ins."""
    if formats_file:
        return FormatCatalogue.from_file(formats_file)
    return FormatCatalogue.builtin()
