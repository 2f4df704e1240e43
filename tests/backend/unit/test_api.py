import asyncio

import pytest

fastapi = pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from pokeraid.backend.api import RoomChangeHub, create_app
from pokeraid.backend.config import BackendSettings
from pokeraid.backend.errors import StoreError
from pokeraid.backend.store import InMemoryRaidStore

SETTINGS = BackendSettings(server_salt="test-salt", database_url=None, host="127.0.0.1", port=8000)


def _client(store=None) -> TestClient:
    return TestClient(create_app(store=store or InMemoryRaidStore(), settings=SETTINGS))


def _create(client: TestClient, name: str = "Ana") -> dict:
    response = client.post("/api/raid/create", json={"playerName": name, "masterPokemon": [{"name": "Mewtwo"}]})
    assert response.status_code == 200
    return response.json()


def _join(client: TestClient, code: str, name: str) -> dict:
    response = client.post("/api/raid/join", json={"roomCode": code, "playerName": name})
    assert response.status_code == 200
    return response.json()


def _act(client: TestClient, seat: dict, action_type: str, action_data: dict | None = None):
    return client.post(
        "/api/raid/action",
        json={
            "roomId": seat["room"]["id"],
            "playerId": seat["player"]["id"],
            "playerToken": seat["playerToken"],
            "actionType": action_type,
            "actionData": action_data,
        },
    )


def test_create_room_returns_room_player_and_token() -> None:
    client = _client()

    data = _create(client)

    assert data["playerToken"]
    assert data["room"]["status"] == "waiting"
    assert data["room"]["master_pokemon"] == [{"name": "Mewtwo"}]
    assert data["player"]["role"] == "master"
    assert data["player"]["is_ready"] is True
    assert "token_hash" not in data["player"]
    assert "player_token" not in data["player"]


def test_create_room_without_name_is_bad_request() -> None:
    client = _client()

    missing = client.post("/api/raid/create", json={})
    empty = client.post("/api/raid/create", json={"playerName": ""})

    assert missing.status_code == 400
    assert missing.json()["detail"] == "playerName is required"
    assert empty.status_code == 400


def test_join_room_errors() -> None:
    client = _client()
    created = _create(client)
    code = created["room"]["room_code"]

    not_found = client.post("/api/raid/join", json={"roomCode": "ZZZZZZ", "playerName": "Beto"})
    missing = client.post("/api/raid/join", json={"roomCode": code})
    for name in ("Beto", "Carla", "Davi", "Eva"):
        _join(client, code, name)
    full = client.post("/api/raid/join", json={"roomCode": code, "playerName": "Fabio"})

    assert not_found.status_code == 404
    assert not_found.json()["detail"] == "Room not found"
    assert missing.status_code == 400
    assert full.status_code == 400
    assert "full" in full.json()["detail"]


def test_battle_flow_over_http() -> None:
    client = _client()
    ana = _create(client)
    code = ana["room"]["room_code"]
    beto = _join(client, code.lower(), "Beto")
    carla = _join(client, code, "Carla")

    not_ready = _act(client, ana, "start_battle")
    assert not_ready.status_code == 400
    assert not_ready.json()["detail"] == "Not all trainers are ready"

    assert _act(client, beto, "ready").status_code == 200
    assert _act(client, carla, "ready").status_code == 200
    started = _act(client, ana, "start_battle")
    assert started.status_code == 200
    assert started.json()["room"]["current_turn_player_id"] == beto["player"]["id"]
    assert started.json()["room"]["turn_number"] == 1
    assert "battleLog" not in started.json()

    _act(client, beto, "attack", {"damage": 5})
    after_carla = _act(client, carla, "attack", {"damage": 5}).json()
    assert after_carla["room"]["current_turn_player_id"] == ana["player"]["id"]

    after_master = _act(client, ana, "master_attack", {"damage": 12}).json()
    assert after_master["room"]["current_turn_player_id"] == beto["player"]["id"]
    assert after_master["room"]["turn_number"] == 2
    assert [player["player_name"] for player in after_master["players"]] == ["Ana", "Beto", "Carla"]

    snapshot = client.get(f"/api/raid/room/{ana['room']['id']}")
    assert snapshot.status_code == 200
    log = snapshot.json()["battleLog"]
    assert [entry["action_type"] for entry in log] == ["system", "attack", "attack", "master_attack"]


def test_action_authorization_errors() -> None:
    client = _client()
    ana = _create(client)
    beto = _join(client, ana["room"]["room_code"], "Beto")

    wrong_token = _act(client, {**beto, "playerToken": "nope"}, "ready")
    wrong_role = _act(client, beto, "end_battle")
    missing_fields = client.post("/api/raid/action", json={"roomId": ana["room"]["id"]})
    unknown_player = _act(client, {**beto, "player": {"id": "missing"}}, "ready")

    assert wrong_token.status_code == 403
    assert wrong_token.json()["detail"] == "Player not authorized"
    assert wrong_role.status_code == 403
    assert missing_fields.status_code == 400
    assert unknown_player.status_code == 404


def test_end_battle_by_master_finishes_room() -> None:
    client = _client()
    ana = _create(client)
    beto = _join(client, ana["room"]["room_code"], "Beto")
    _act(client, beto, "ready")
    _act(client, ana, "start_battle")

    finished = _act(client, ana, "end_battle")

    assert finished.status_code == 200
    assert finished.json()["room"]["status"] == "finished"


def test_snapshot_of_unknown_room_is_not_found() -> None:
    response = _client().get("/api/raid/room/missing")

    assert response.status_code == 404


def test_store_failure_is_server_error() -> None:
    class BrokenStore(InMemoryRaidStore):
        def insert_room(self, room):
            raise StoreError("Raid store is unavailable")

    response = _client(store=BrokenStore()).post("/api/raid/create", json={"playerName": "Ana"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Raid store is unavailable"


def test_websocket_notifies_room_changes() -> None:
    app = create_app(store=InMemoryRaidStore(), settings=SETTINGS)

    with TestClient(app) as client:
        ana = _create(client)
        room_id = ana["room"]["id"]

        with client.websocket_connect(f"/ws/raid/{room_id}") as first:
            with client.websocket_connect(f"/ws/raid/{room_id}") as second:
                beto = _join(client, ana["room"]["room_code"], "Beto")
                assert first.receive_json() == {"type": "room.changed", "roomId": room_id}
                assert second.receive_json() == {"type": "room.changed", "roomId": room_id}

                _act(client, beto, "ready")
                assert first.receive_json()["type"] == "room.changed"
                assert second.receive_json()["roomId"] == room_id


def test_websocket_rejects_unknown_room() -> None:
    client = _client()

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/raid/missing"):
            pass


def test_non_finite_damage_is_bad_request() -> None:
    client = _client()
    ana = _create(client)
    body = (
        '{"roomId": "%s", "playerId": "%s", "playerToken": "%s", '
        '"actionType": "damage", "actionData": {"damage": 1e999}}'
    ) % (ana["room"]["id"], ana["player"]["id"], ana["playerToken"])

    response = client.post("/api/raid/action", content=body, headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Damage must be a whole number"


class _ClosedSocket:
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def accept(self) -> None:
        return None

    async def send_json(self, data) -> None:
        raise self.error


class _OpenSocket:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def accept(self) -> None:
        return None

    async def send_json(self, data) -> None:
        self.sent.append(data)


@pytest.mark.parametrize("error", [RuntimeError("closed"), WebSocketDisconnect(code=1006)])
def test_broadcast_drops_closed_subscribers(error: Exception) -> None:
    hub = RoomChangeHub()
    closed = _ClosedSocket(error)
    healthy = _OpenSocket()

    async def scenario() -> None:
        await hub.connect("room-1", closed)
        await hub.connect("room-1", healthy)
        await hub.broadcast_change("room-1")
        await hub.broadcast_change("room-1")

    asyncio.run(scenario())

    assert healthy.sent == [{"type": "room.changed", "roomId": "room-1"}] * 2
    assert closed not in hub._connections["room-1"]
