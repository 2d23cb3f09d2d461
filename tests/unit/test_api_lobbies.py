"""Tests for the lobbies API endpoints."""

from collections.abc import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from pugqueue.access.members import StaticMemberDirectory
from pugqueue.dependencies import build_services
from pugqueue.main import app
from pugqueue.settings import get_settings


@pytest.fixture
def client(fake_service) -> Generator[TestClient, None, None]:
    """Create a test client backed by the fake lobby service."""
    app.state.services = build_services(
        get_settings(),
        lobby_transport=httpx.MockTransport(fake_service.handle),
        members=StaticMemberDirectory(),
    )
    yield TestClient(app)
    app.state.services = None


def create_lobby(client: TestClient, **overrides) -> dict:
    body = {
        "creatorId": "c1",
        "format": "Ultiduo",
        "distribution": "RANDOM",
        "region": "eu",
    }
    body.update(overrides)
    response = client.post("/api/lobbies", json=body)
    assert response.status_code == 200, response.json()
    return response.json()


def join(client: TestClient, lobby_id: str, player_id: str, roles: list[str]):
    return client.post(
        f"/api/lobbies/{lobby_id}/join",
        json={"playerId": player_id, "name": player_id.upper(), "roles": roles},
    )


class TestFormats:
    """Tests for GET /api/lobbies/formats."""

    def test_list_formats(self, client: TestClient) -> None:
        response = client.get("/api/lobbies/formats")
        assert response.status_code == 200
        formats = {f["name"]: f for f in response.json()["formats"]}
        assert set(formats) == {"Highlander", "Sixes", "Ultiduo"}
        assert formats["Sixes"]["maxPlayers"] == 12
        assert "CAPTAIN_BASED" in formats["Ultiduo"]["distributions"]

    def test_filter_by_distribution(self, client: TestClient) -> None:
        response = client.get("/api/lobbies/formats", params={"distribution": "TEAM_ROLE_BASED"})
        assert response.status_code == 200
        assert len(response.json()["formats"]) == 3

        response = client.get("/api/lobbies/formats", params={"distribution": "SNAKE"})
        assert response.status_code == 422


class TestCreateLobby:
    """Tests for POST /api/lobbies."""

    def test_create_open_lobby(self, client: TestClient) -> None:
        data = create_lobby(client)

        assert data["distribution"] == "RANDOM"
        assert data["format"] == "Ultiduo"
        assert data["createdBy"] == "c1"
        assert data["status"] == "WAITING_FOR_REQUIRED_PLAYERS"
        assert data["draft"] is None
        slots = {s["role"]: s for s in data["slots"]}
        assert slots["medic"]["required"] == 2
        assert slots["medic"]["filled"] == 0

    def test_create_captain_lobby(self, client: TestClient) -> None:
        data = create_lobby(client, distribution="CAPTAIN_BASED", pickTimeout=45)
        assert data["draft"]["phase"] == "collecting"
        assert data["draft"]["currentCaptain"] is None

        response = client.get(f"/api/lobbies/{data['id']}/draft")
        assert response.status_code == 200
        assert response.json()["lobbyId"] == data["id"]

    def test_create_unknown_format(self, client: TestClient) -> None:
        response = client.post(
            "/api/lobbies",
            json={"creatorId": "c1", "format": "Fours", "distribution": "RANDOM", "region": "eu"},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "validation_error"

    def test_create_missing_access_config(self, client: TestClient) -> None:
        response = client.post(
            "/api/lobbies",
            json={
                "creatorId": "c1",
                "format": "Ultiduo",
                "distribution": "RANDOM",
                "region": "eu",
                "accessConfig": "comp",
            },
        )
        assert response.status_code == 404
        assert response.json()["detail"]["details"] == {"accessConfig": "comp"}

    def test_create_invalid_body(self, client: TestClient) -> None:
        response = client.post("/api/lobbies", json={"creatorId": "c1"})
        assert response.status_code == 422


class TestGetLobby:
    """Tests for reading lobbies."""

    def test_get_lobby(self, client: TestClient) -> None:
        lobby = create_lobby(client)
        response = client.get(f"/api/lobbies/{lobby['id']}")
        assert response.status_code == 200
        assert response.json()["id"] == lobby["id"]

    def test_get_missing_lobby(self, client: TestClient) -> None:
        response = client.get("/api/lobbies/nope")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    def test_list_lobbies(self, client: TestClient) -> None:
        create_lobby(client)
        create_lobby(client, creatorId="c2")

        response = client.get("/api/lobbies")
        assert response.status_code == 200
        assert [lobby["createdBy"] for lobby in response.json()["lobbies"]] == ["c1", "c2"]

    def test_draft_of_open_lobby(self, client: TestClient) -> None:
        lobby = create_lobby(client)
        response = client.get(f"/api/lobbies/{lobby['id']}/draft")
        assert response.status_code == 404


class TestQueueActions:
    """Tests for join, leave, kick and role changes."""

    def test_join_and_leave(self, client: TestClient) -> None:
        lobby = create_lobby(client)

        response = join(client, lobby["id"], "p1", ["medic"])
        assert response.status_code == 200
        data = response.json()
        assert data["players"][0]["playerId"] == "p1"
        assert data["players"][0]["roles"] == ["medic", "player"]
        medic = next(s for s in data["slots"] if s["role"] == "medic")
        assert medic["players"] == ["p1"]

        response = join(client, lobby["id"], "p1", ["soldier"])
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "already_queued"

        response = client.post(f"/api/lobbies/{lobby['id']}/leave", json={"playerId": "p1"})
        assert response.status_code == 200
        assert response.json()["players"] == []

    def test_join_invalid_roles(self, client: TestClient) -> None:
        lobby = create_lobby(client)
        response = join(client, lobby["id"], "p1", ["medic", "soldier"])
        assert response.status_code == 400

    def test_kick(self, client: TestClient) -> None:
        lobby = create_lobby(client)
        join(client, lobby["id"], "p1", ["medic"])

        response = client.post(
            f"/api/lobbies/{lobby['id']}/kick", json={"actorId": "p2", "playerId": "p1"}
        )
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "not_creator"

        response = client.post(
            f"/api/lobbies/{lobby['id']}/kick", json={"actorId": "c1", "playerId": "p1"}
        )
        assert response.status_code == 200
        assert response.json()["players"] == []

    def test_roles(self, client: TestClient) -> None:
        lobby = create_lobby(client)
        join(client, lobby["id"], "p1", ["medic"])

        response = client.put(
            f"/api/lobbies/{lobby['id']}/players/p1/roles/soldier", params={"actorId": "c1"}
        )
        assert response.status_code == 200
        assert "soldier" in response.json()["players"][0]["roles"]

        response = client.delete(
            f"/api/lobbies/{lobby['id']}/players/p1/roles/medic", params={"actorId": "c1"}
        )
        assert response.status_code == 200
        assert response.json()["players"][0]["roles"] == ["player", "soldier"]

        response = client.put(
            f"/api/lobbies/{lobby['id']}/players/p1/roles/picked", params={"actorId": "c1"}
        )
        assert response.status_code == 400

    def test_confirm_active(self, client: TestClient) -> None:
        lobby = create_lobby(client)
        join(client, lobby["id"], "p1", ["medic"])

        response = client.post(f"/api/lobbies/{lobby['id']}/active", json={"playerId": "p1"})
        assert response.status_code == 200
        assert "active" in response.json()["players"][0]["roles"]

    def test_available_roles(self, client: TestClient) -> None:
        lobby = create_lobby(client)
        join(client, lobby["id"], "p1", ["medic"])
        join(client, lobby["id"], "p2", ["medic"])

        response = client.get(f"/api/lobbies/{lobby['id']}/available-roles")
        assert response.status_code == 200
        assert response.json()["roles"] == ["player", "soldier"]

        response = client.get(
            f"/api/lobbies/{lobby['id']}/available-roles", params={"team": "team_a"}
        )
        assert response.json()["roles"] == ["soldier", "medic"]

    def test_remote_failure(self, client: TestClient, fake_service) -> None:
        lobby = create_lobby(client)
        fake_service.fail("POST", "/join")

        response = join(client, lobby["id"], "p1", ["medic"])
        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["code"] == "remote_error"
        assert detail["details"]["action"] == "join"


class TestSubstitutes:
    """Tests for ringers."""

    def test_ringer_and_substitute(self, client: TestClient) -> None:
        lobby = create_lobby(client)
        join(client, lobby["id"], "p1", ["medic"])

        response = client.post(
            f"/api/lobbies/{lobby['id']}/ringer", json={"actorId": "c1", "playerId": "p1"}
        )
        assert response.status_code == 200
        assert "needs-substitute" in response.json()["players"][0]["roles"]

        response = client.post(
            f"/api/lobbies/{lobby['id']}/substitute",
            json={"playerId": "p2", "name": "Ringer", "steamId": "765"},
        )
        assert response.status_code == 200
        player = response.json()["players"][0]
        assert player == {
            "playerId": "p2",
            "name": "Ringer",
            "steamId": "765",
            "roles": ["medic", "player"],
        }

    def test_substitute_without_request(self, client: TestClient) -> None:
        lobby = create_lobby(client)
        response = client.post(
            f"/api/lobbies/{lobby['id']}/substitute", json={"playerId": "p2", "name": "Ringer"}
        )
        assert response.status_code == 404


class TestDraftEndpoints:
    """Tests for draft endpoints that don't need a running draft."""

    def test_pick_before_draft(self, client: TestClient) -> None:
        lobby = create_lobby(client, distribution="CAPTAIN_BASED")
        join(client, lobby["id"], "p1", ["medic"])

        response = client.post(
            f"/api/lobbies/{lobby['id']}/pick",
            json={"captainId": "c1", "playerId": "p1", "role": "medic"},
        )
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "invalid_state"

    def test_assign_before_draft(self, client: TestClient) -> None:
        lobby = create_lobby(client, distribution="CAPTAIN_BASED")
        response = client.post(f"/api/lobbies/{lobby['id']}/draft/assign")
        assert response.status_code == 409

    def test_pickable(self, client: TestClient) -> None:
        lobby = create_lobby(client, distribution="CAPTAIN_BASED")
        join(client, lobby["id"], "p1", ["medic"])
        join(client, lobby["id"], "p2", ["soldier"])
        client.put(f"/api/lobbies/{lobby['id']}/players/p1/roles/captain-a", params={"actorId": "p1"})

        response = client.get(f"/api/lobbies/{lobby['id']}/pickable")
        assert response.status_code == 200
        assert [p["playerId"] for p in response.json()["players"]] == ["p2"]


class TestCloseLobby:
    """Tests for DELETE /api/lobbies/{id}."""

    def test_close(self, client: TestClient) -> None:
        lobby = create_lobby(client, distribution="CAPTAIN_BASED")

        response = client.delete(f"/api/lobbies/{lobby['id']}", params={"actorId": "p1"})
        assert response.status_code == 403

        response = client.delete(f"/api/lobbies/{lobby['id']}", params={"actorId": "c1"})
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["lobby"]["status"] == "CLOSED"

        assert client.get(f"/api/lobbies/{lobby['id']}/draft").status_code == 404
        assert client.get("/api/lobbies").json()["lobbies"] == []
