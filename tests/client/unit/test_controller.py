import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from pokeraid.backend.api import create_app
from pokeraid.backend.config import BackendSettings
from pokeraid.backend.store import InMemoryRaidStore
from pokeraid.client.api_client import RaidApiClient, RaidApiError
from pokeraid.client.controller import RaidController, screen_for_status

SETTINGS = BackendSettings(server_salt="test-salt", database_url=None, host="127.0.0.1", port=8000)


@pytest.fixture
def http() -> TestClient:
    with TestClient(create_app(store=InMemoryRaidStore(), settings=SETTINGS)) as client:
        yield client


def _controller(http: TestClient) -> RaidController:
    return RaidController(RaidApiClient(http))


def test_screen_for_status() -> None:
    assert screen_for_status("waiting") == "lobby"
    assert screen_for_status("battle") == "battle"
    assert screen_for_status("finished") == "finished"
    assert screen_for_status(None) == "lobby"


def test_create_room_moves_to_lobby_with_own_seat(http: TestClient) -> None:
    ana = _controller(http)

    ana.create_room("Ana", [{"name": "Mewtwo"}])

    assert ana.screen == "lobby"
    assert ana.error is None
    assert ana.is_loading is False
    assert ana.my_token
    assert ana.my_player["role"] == "master"
    assert ana.players == [ana.my_player]


def test_create_room_failure_records_error_and_keeps_state(http: TestClient) -> None:
    ana = _controller(http)

    ana.create_room("")

    assert ana.error == "playerName is required"
    assert ana.screen == "menu"
    assert ana.room is None
    assert ana.is_loading is False


def test_join_room_fetches_full_player_list(http: TestClient) -> None:
    ana = _controller(http)
    ana.create_room("Ana")
    beto = _controller(http)

    beto.join_room(ana.room["room_code"], "Beto", [{"name": "Pikachu"}])

    assert beto.screen == "lobby"
    assert [player["player_name"] for player in beto.players] == ["Ana", "Beto"]
    assert beto.my_player["role"] == "trainer"


def test_join_unknown_room_shows_error(http: TestClient) -> None:
    beto = _controller(http)

    beto.join_room("ZZZZZZ", "Beto")

    assert beto.error == "Room not found"
    assert beto.room is None


def test_battle_round_through_controllers(http: TestClient) -> None:
    ana = _controller(http)
    ana.create_room("Ana")
    beto = _controller(http)
    beto.join_room(ana.room["room_code"], "Beto")

    ana.send_action("start_battle")
    assert ana.error == "Not all trainers are ready"
    assert ana.screen == "lobby"

    beto.send_action("ready")
    assert beto.my_player["is_ready"] is True

    ana.send_action("start_battle")
    assert ana.error is None
    assert ana.screen == "battle"
    assert ana.battle_log[-1]["action_type"] == "system"

    beto.fetch_room()
    assert beto.is_my_turn
    assert beto.current_turn_player["player_name"] == "Beto"

    beto.send_action("attack", {"damage": 7})
    assert beto.battle_log[-1]["action_data"] == {"damage": 7}
    assert not beto.is_my_turn

    ana.fetch_room()
    assert ana.is_my_turn
    ana.send_action("master_attack", {"damage": 9})
    assert ana.room["turn_number"] == 2

    ana.send_action("end_battle")
    assert ana.screen == "finished"


def test_forbidden_action_is_shown_verbatim(http: TestClient) -> None:
    ana = _controller(http)
    ana.create_room("Ana")
    beto = _controller(http)
    beto.join_room(ana.room["room_code"], "Beto")
    room_before = dict(beto.room)

    beto.send_action("end_battle")

    assert beto.error == "Only the master can end the battle"
    assert beto.room == room_before


def test_send_action_without_seat_does_nothing(http: TestClient) -> None:
    controller = _controller(http)

    controller.send_action("attack")

    assert controller.room is None
    assert controller.error is None


def test_change_notifications_trigger_refetch(http: TestClient) -> None:
    ana = _controller(http)
    ana.create_room("Ana")

    with http.websocket_connect(ana.subscription_path) as feed:
        beto = _controller(http)
        beto.join_room(ana.room["room_code"], "Beto")

        ana.handle_change(feed.receive_json())

    assert [player["player_name"] for player in ana.players] == ["Ana", "Beto"]


def test_change_for_other_room_is_ignored(http: TestClient) -> None:
    ana = _controller(http)
    ana.create_room("Ana")
    beto = _controller(http)
    beto.join_room(ana.room["room_code"], "Beto")

    ana.listen([{"type": "room.changed", "roomId": "other"}])
    assert len(ana.players) == 1

    ana.listen([{"type": "room.changed", "roomId": ana.room_id}])
    assert len(ana.players) == 2


def test_fetch_failures_are_swallowed() -> None:
    class FailingApi:
        def fetch_room(self, room_id):
            raise RaidApiError("boom", 500)

    controller = RaidController(FailingApi())
    controller.room = {"id": "r1", "status": "battle"}
    controller.screen = "battle"

    controller.fetch_room()

    assert controller.error is None
    assert controller.room == {"id": "r1", "status": "battle"}
    assert controller.screen == "battle"


def test_leave_raid_resets_everything(http: TestClient) -> None:
    ana = _controller(http)
    ana.create_room("Ana")

    ana.leave_raid()

    assert ana.screen == "menu"
    assert ana.room is None
    assert ana.players == []
    assert ana.my_token is None
    assert ana.subscription_path is None
