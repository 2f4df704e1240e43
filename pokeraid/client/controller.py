"""Client-side mirror of a raid room.

The controller keeps the latest room, player list and battle log, and the
local participant's identity and token. It holds no turn logic of its own:
every state change comes from the server, either as an action response or
as a full snapshot fetched after a change notification.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from pokeraid.client.api_client import RaidApiClient, RaidApiError
from pokeraid.client.realtime import RoomSubscription

logger = logging.getLogger(__name__)

SCREEN_MENU = "menu"
SCREEN_CREATE = "create"
SCREEN_JOIN = "join"
SCREEN_LOBBY = "lobby"
SCREEN_BATTLE = "battle"
SCREEN_FINISHED = "finished"

_SCREEN_BY_STATUS = {
    "waiting": SCREEN_LOBBY,
    "battle": SCREEN_BATTLE,
    "finished": SCREEN_FINISHED,
}


def screen_for_status(status: str | None) -> str:
    return _SCREEN_BY_STATUS.get(status or "", SCREEN_LOBBY)


class RaidController:
    def __init__(self, api: RaidApiClient) -> None:
        self.api = api
        self.screen = SCREEN_MENU
        self.room: dict[str, Any] | None = None
        self.players: list[dict[str, Any]] = []
        self.my_player: dict[str, Any] | None = None
        self.my_token: str | None = None
        self.battle_log: list[dict[str, Any]] = []
        self.is_loading = False
        self.error: str | None = None

    @property
    def room_id(self) -> str | None:
        return self.room["id"] if self.room else None

    @property
    def subscription_path(self) -> str | None:
        if self.room_id is None:
            return None
        return f"/ws/raid/{self.room_id}"

    @property
    def is_my_turn(self) -> bool:
        if not self.room or not self.my_player:
            return False
        return self.room.get("current_turn_player_id") == self.my_player["id"]

    @property
    def current_turn_player(self) -> dict[str, Any] | None:
        if not self.room:
            return None
        turn_id = self.room.get("current_turn_player_id")
        return next((player for player in self.players if player["id"] == turn_id), None)

    def set_screen(self, screen: str) -> None:
        self.screen = screen

    def create_room(self, player_name: str, master_pokemon: Any = None) -> None:
        self._begin()
        try:
            data = self.api.create_room(player_name, master_pokemon)
        except RaidApiError as exc:
            self._fail(exc)
            return

        self.room = data["room"]
        self.my_player = data["player"]
        self.my_token = data["playerToken"]
        self.players = [data["player"]]
        self.screen = SCREEN_LOBBY
        self.is_loading = False

    def join_room(self, room_code: str, player_name: str, pokemon_data: Any = None) -> None:
        self._begin()
        try:
            data = self.api.join_room(room_code, player_name, pokemon_data)
        except RaidApiError as exc:
            self._fail(exc)
            return

        self.room = data["room"]
        self.my_player = data["player"]
        self.my_token = data["playerToken"]
        self.screen = SCREEN_LOBBY
        self.is_loading = False
        self.fetch_room()

    def fetch_room(self) -> None:
        """Re-read the full snapshot; failures are dropped until the next signal."""
        if self.room_id is None:
            return
        try:
            data = self.api.fetch_room(self.room_id)
        except RaidApiError as exc:
            logger.debug("Snapshot fetch for room %s failed: %s", self.room_id, exc.message)
            return

        self.room = data["room"]
        self.players = data["players"]
        self.battle_log = data["battleLog"]
        self.screen = screen_for_status(self.room.get("status"))
        self._refresh_my_player()

    def send_action(self, action_type: str, action_data: dict[str, Any] | None = None) -> None:
        if not self.room or not self.my_player or not self.my_token:
            return

        self._begin()
        try:
            data = self.api.submit_action(
                room_id=self.room["id"],
                player_id=self.my_player["id"],
                player_token=self.my_token,
                action_type=action_type,
                action_data=action_data,
            )
        except RaidApiError as exc:
            self._fail(exc)
            return

        self.room = data["room"]
        self.players = data["players"]
        self._refresh_my_player()
        self.is_loading = False
        # Action responses omit the battle log.
        self.fetch_room()

    def handle_change(self, event: dict[str, Any] | None = None) -> None:
        """React to a change notification by re-fetching the snapshot."""
        if event and event.get("roomId") not in (None, self.room_id):
            return
        self.fetch_room()

    def listen(self, events: Iterable[dict[str, Any]]) -> None:
        for event in events:
            self.handle_change(event)

    def subscribe(self, ws_base_url: str, connect: Callable[[str], Any] | None = None) -> Callable[[], None]:
        """Open the room's change feed; returns a callable that closes it."""
        path = self.subscription_path
        if path is None:
            raise RuntimeError("No room to subscribe to")
        subscription = RoomSubscription(self, ws_base_url.rstrip("/") + path, connect=connect)
        return subscription.start().close

    def leave_raid(self) -> None:
        self.screen = SCREEN_MENU
        self.room = None
        self.players = []
        self.my_player = None
        self.my_token = None
        self.battle_log = []
        self.is_loading = False
        self.error = None

    def _begin(self) -> None:
        self.is_loading = True
        self.error = None

    def _fail(self, exc: RaidApiError) -> None:
        logger.info("Raid request failed: %s", exc.message)
        self.error = exc.message
        self.is_loading = False

    def _refresh_my_player(self) -> None:
        if self.my_player is None:
            return
        for player in self.players:
            if player["id"] == self.my_player["id"]:
                self.my_player = player
                return
