"""Tests for distribution strategies."""

import pytest

from pugqueue.errors import ROLE_UNAVAILABLE, VALIDATION_ERROR, LobbyError
from pugqueue.formats import FormatCatalogue
from pugqueue.lobby.models import Distribution, Lobby, QueuedPlayer
from pugqueue.lobby.requirements import RequirementTracker
from pugqueue.lobby.strategies import (
    CaptainDraftStrategy,
    JoinPlan,
    OpenStrategy,
    TeamRoleStrategy,
    build_strategies,
)


def make_lobby(distribution: Distribution, format_name: str = "Sixes") -> Lobby:
    fmt = FormatCatalogue.builtin().get(format_name)
    return Lobby(
        id="lobby-1",
        distribution=distribution,
        requirements=fmt.requirements_for(distribution),
        max_players=fmt.max_players,
    )


@pytest.fixture
def tracker() -> RequirementTracker:
    return RequirementTracker()


class TestOpenStrategy:
    """Tests for open distribution."""

    def test_plan_single_class(self, tracker: RequirementTracker) -> None:
        plan = OpenStrategy(tracker).plan_join(make_lobby(Distribution.OPEN), ["scout"])
        assert isinstance(plan, JoinPlan)
        assert plan.roles == {"player", "scout"}
        assert plan.access_checks == ["player", "scout"]
        assert plan.capacity_checks == ["scout"]

    def test_requires_exactly_one_class(self, tracker: RequirementTracker) -> None:
        strategy = OpenStrategy(tracker)
        lobby = make_lobby(Distribution.OPEN)
        for declared in ([], ["scout", "medic"]):
            result = strategy.plan_join(lobby, declared)
            assert isinstance(result, LobbyError)
            assert result.code == VALIDATION_ERROR

    def test_rejects_team_class(self, tracker: RequirementTracker) -> None:
        result = OpenStrategy(tracker).plan_join(make_lobby(Distribution.OPEN), ["red-scout"])
        assert isinstance(result, LobbyError)
        assert result.code == VALIDATION_ERROR

    def test_rejects_class_outside_format(self, tracker: RequirementTracker) -> None:
        """Sixes has no spy requirement."""
        result = OpenStrategy(tracker).plan_join(make_lobby(Distribution.OPEN), ["spy"])
        assert isinstance(result, LobbyError)
        assert result.details == {"role": "spy"}

    def test_capacity_check(self, tracker: RequirementTracker) -> None:
        """Test that a full class is reported as unavailable."""
        strategy = OpenStrategy(tracker)
        lobby = make_lobby(Distribution.OPEN)
        lobby.players = [
            QueuedPlayer(player_id=p, name=p, roles={"player", "medic"}) for p in ("a", "b")
        ]
        plan = strategy.plan_join(lobby, ["medic"])

        error = strategy.check_capacity(lobby, plan)
        assert error is not None
        assert error.code == ROLE_UNAVAILABLE
        assert error.details == {"role": "medic"}

        assert strategy.check_capacity(lobby, strategy.plan_join(lobby, ["scout"])) is None


class TestTeamRoleStrategy:
    """Tests for team & role distribution."""

    def test_plan_includes_team(self, tracker: RequirementTracker) -> None:
        plan = TeamRoleStrategy(tracker).plan_join(make_lobby(Distribution.TEAM_ROLE), ["blu-medic"])
        assert isinstance(plan, JoinPlan)
        assert plan.roles == {"player", "team_b", "blu-medic"}
        assert plan.access_checks == ["player", "blu-medic", "team_b", "medic"]
        assert plan.capacity_checks == ["blu-medic", "team_b"]

    def test_rejects_plain_class(self, tracker: RequirementTracker) -> None:
        result = TeamRoleStrategy(tracker).plan_join(make_lobby(Distribution.TEAM_ROLE), ["medic"])
        assert isinstance(result, LobbyError)
        assert result.code == VALIDATION_ERROR

    def test_full_team_blocks_join(self, tracker: RequirementTracker) -> None:
        """Test that a full team rejects the join even when the class has room."""
        strategy = TeamRoleStrategy(tracker)
        lobby = make_lobby(Distribution.TEAM_ROLE, "Ultiduo")
        lobby.players = [
            QueuedPlayer(player_id="a", name="a", roles={"player", "team_a", "red-soldier"}),
            QueuedPlayer(player_id="b", name="b", roles={"player", "team_a", "red-soldier"}),
        ]
        plan = strategy.plan_join(lobby, ["red-medic"])

        error = strategy.check_capacity(lobby, plan)
        assert error is not None
        assert error.details == {"role": "team_a"}


class TestCaptainDraftStrategy:
    """Tests for captain draft distribution."""

    def test_plan_multiple_classes(self, tracker: RequirementTracker) -> None:
        plan = CaptainDraftStrategy(tracker).plan_join(
            make_lobby(Distribution.CAPTAIN_DRAFT), ["scout", "medic", "scout"]
        )
        assert isinstance(plan, JoinPlan)
        assert plan.roles == {"player", "scout", "medic"}
        assert plan.access_checks == ["player", "scout", "medic"]
        assert plan.capacity_checks == []

    def test_requires_a_class(self, tracker: RequirementTracker) -> None:
        result = CaptainDraftStrategy(tracker).plan_join(make_lobby(Distribution.CAPTAIN_DRAFT), [])
        assert isinstance(result, LobbyError)
        assert result.code == VALIDATION_ERROR

    def test_drafts(self, tracker: RequirementTracker) -> None:
        strategies = build_strategies(tracker)
        assert strategies[Distribution.CAPTAIN_DRAFT].drafts
        assert not strategies[Distribution.OPEN].drafts
        assert not strategies[Distribution.TEAM_ROLE].drafts


class TestSlots:
    """Tests for per-requirement fill status."""

    def test_slots(self, tracker: RequirementTracker) -> None:
        strategy = OpenStrategy(tracker)
        lobby = make_lobby(Distribution.OPEN, "Ultiduo")
        lobby.players = [QueuedPlayer(player_id="a", name="a", roles={"player", "medic"})]

        slots = {s["role"]: s for s in strategy.slots(lobby)}
        assert slots["medic"] == {
            "role": "medic",
            "required": 2,
            "filled": 1,
            "overfill": False,
            "players": ["a"],
        }
        assert slots["soldier"]["filled"] == 0
        assert slots["player"]["required"] == 4
