"""
Tests for the HTTP and WebSocket API.
"""

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from ..api.app import create_app
from ..api.schemas import CommandRequest, CommandKind, SettingsPayload, DirectionValue
from ..api.service import MatchService
from ..engine_core import CommandType, Direction


@pytest.fixture
def service():
    return MatchService.seeded(5)


@pytest.fixture
def client(service):
    return TestClient(create_app(service=service, auto_advance=False))


@pytest.fixture
def bidding_match(client, service):
    """Match m1 with ana and ben, waiting for ana's first bid."""
    client.post("/api/v1/matches", json={"player_ids": ["ana", "ben"], "match_id": "m1"})
    client.post("/api/v1/matches/m1/start")
    service.advance("m1")
    return "m1"


class TestSchemas:
    """Tests for request model conversion."""

    def test_bid_request(self):
        command = CommandRequest(command=CommandKind.BID, player_id="ana", count=3, value=4).to_command()
        assert command.command_type == CommandType.BID
        assert (command.count, command.value) == (3, 4)

    def test_direction_request(self):
        request = CommandRequest(
            command="set_direction", player_id="ana", direction=DirectionValue.COUNTER_CLOCKWISE,
        )
        assert request.to_command().direction == Direction.COUNTER_CLOCKWISE

    def test_simple_commands(self):
        for kind in ("dudo", "calza", "leave", "disconnect", "reconnect"):
            command = CommandRequest(command=kind, player_id="ana").to_command()
            assert command.command_type.value == kind
            assert command.player_id == "ana"

    def test_unknown_command_kind(self):
        with pytest.raises(ValidationError):
            CommandRequest(command="advance_from_rolling", player_id="ana")

    def test_settings_bounds(self):
        assert SettingsPayload(starting_dice=3).to_settings().starting_dice == 3
        with pytest.raises(ValidationError):
            SettingsPayload(starting_dice=7)


class TestMatchEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_match(self, client):
        response = client.post("/api/v1/matches", json={"player_ids": ["ana", "ben"]})
        assert response.status_code == 200
        data = response.json()
        assert data["phase"] == "lobby"
        assert data["player_order"] == ["ana", "ben"]
        assert data["version"] == 0

    def test_duplicate_players(self, client):
        response = client.post("/api/v1/matches", json={"player_ids": ["ana", "ana"]})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_match_not_found(self, client):
        response = client.get("/api/v1/matches/nope")
        assert response.status_code == 404
        assert response.json()["error_code"] == "MATCH_NOT_FOUND"

    def test_list_and_end(self, client):
        client.post("/api/v1/matches", json={"match_id": "m1"})
        assert client.get("/api/v1/matches").json() == {"matches": ["m1"], "count": 1}

        response = client.delete("/api/v1/matches/m1")
        assert response.json() == {"success": True, "match_id": "m1"}
        assert client.get("/api/v1/matches/m1").status_code == 404


class TestLobbyEndpoints:

    def test_join_ready_start(self, client):
        client.post("/api/v1/matches", json={"match_id": "m1"})
        client.post("/api/v1/matches/m1/join", json={"player_id": "ana"})
        response = client.post("/api/v1/matches/m1/join", json={"player_id": "ben"})
        assert response.status_code == 200
        assert response.json()["state"]["player_order"] == ["ana", "ben"]

        response = client.post("/api/v1/matches/m1/ready", json={"player_id": "ana"})
        assert response.json()["state"]["players"]["ana"]["is_ready"] is True

        response = client.post("/api/v1/matches/m1/start", json={"settings": {"starting_dice": 3}})
        assert response.status_code == 200
        data = response.json()
        assert data["state"]["phase"] == "rolling"
        assert data["state"]["players"]["ana"]["dice_count"] == 3
        assert all(p["current_dice"] == [] for p in data["state"]["players"].values())
        assert data["effects"][0] == {"type": "dice_rolled", "player_id": "ana", "dice_count": 3}

    def test_start_alone(self, client):
        client.post("/api/v1/matches", json={"player_ids": ["ana"], "match_id": "m1"})
        response = client.post("/api/v1/matches/m1/start")
        assert response.status_code == 409
        assert response.json()["details"]["code"] == "NOT_ENOUGH_PLAYERS"

    def test_update_settings(self, client):
        client.post("/api/v1/matches", json={"player_ids": ["ana", "ben"], "match_id": "m1"})
        response = client.put("/api/v1/matches/m1/settings", json={"starting_dice": 2, "ghost_mode": False})
        assert response.status_code == 200
        settings = response.json()["state"]["settings"]
        assert settings["starting_dice"] == 2
        assert settings["ghost_mode"] is False

    def test_join_unknown_match(self, client):
        response = client.post("/api/v1/matches/nope/join", json={"player_id": "ana"})
        assert response.status_code == 404


class TestCommandEndpoint:
    """Tests for gameplay commands over HTTP."""

    def test_viewer_sees_own_dice(self, client, bidding_match):
        data = client.get("/api/v1/matches/m1", params={"viewer_id": "ana"}).json()
        assert len(data["players"]["ana"]["current_dice"]) == 5
        assert data["players"]["ben"]["current_dice"] == []

    def test_bid(self, client, bidding_match):
        response = client.post(
            "/api/v1/matches/m1/commands",
            json={"command": "bid", "player_id": "ana", "count": 2, "value": 3},
        )
        assert response.status_code == 200
        state = response.json()["state"]
        assert state["current_wager"] == {"player_id": "ana", "count": 2, "value": 3}
        assert state["current_player_id"] == "ben"
        assert state["phase"] == "bidding"

    def test_not_your_turn(self, client, bidding_match):
        response = client.post(
            "/api/v1/matches/m1/commands",
            json={"command": "bid", "player_id": "ben", "count": 2, "value": 3},
        )
        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "COMMAND_REJECTED"
        assert body["details"]["code"] == "NOT_YOUR_TURN"

    def test_invalid_bid_reason(self, client, bidding_match):
        client.post(
            "/api/v1/matches/m1/commands",
            json={"command": "bid", "player_id": "ana", "count": 3, "value": 4},
        )
        response = client.post(
            "/api/v1/matches/m1/commands",
            json={"command": "bid", "player_id": "ben", "count": 3, "value": 3},
        )
        assert response.status_code == 400
        details = response.json()["details"]
        assert details["code"] == "INVALID_BID"
        assert details["reason"] == "must strictly increase"

    def test_unknown_player(self, client, bidding_match):
        response = client.post("/api/v1/matches/m1/commands", json={"command": "dudo", "player_id": "zed"})
        assert response.status_code == 404
        assert response.json()["details"]["code"] == "PLAYER_NOT_FOUND"

    def test_dudo_reveals(self, client, bidding_match):
        client.post(
            "/api/v1/matches/m1/commands",
            json={"command": "bid", "player_id": "ana", "count": 1, "value": 2},
        )
        response = client.post("/api/v1/matches/m1/commands", json={"command": "dudo", "player_id": "ben"})
        state = response.json()["state"]
        assert state["phase"] == "revealing"
        assert state["pending_round_result"]["action"] == "dudo"
        assert all(len(p["current_dice"]) == 5 for p in state["players"].values())

    def test_malformed_command(self, client, bidding_match):
        response = client.post("/api/v1/matches/m1/commands", json={"command": "fold", "player_id": "ana"})
        assert response.status_code == 422


class TestWebSocket:

    def test_initial_state_and_ping(self, client, bidding_match):
        with client.websocket_connect("/api/v1/matches/m1/ws") as ws:
            message = ws.receive_json()
            assert message["type"] == "state_update"
            assert message["payload"]["state"]["phase"] == "awaiting_first_bid"

            ws.send_text('{"type": "ping"}')
            assert ws.receive_json() == {"type": "pong"}

    def test_unknown_match(self, client):
        with client.websocket_connect("/api/v1/matches/nope/ws") as ws:
            assert ws.receive_json()["type"] == "error"
