"""Raid session service: room creation, joining, actions and snapshots."""

from __future__ import annotations

import logging
import math
from typing import Any, Callable

from pokeraid.backend import engine
from pokeraid.backend.errors import (
    ConflictError,
    NotFoundError,
    RaidValidationError,
    RuleViolationError,
    UnauthorizedError,
)
from pokeraid.backend.models import (
    LOG_ATTACK,
    LOG_DAMAGE,
    LOG_MASTER_ATTACK,
    LOG_SYSTEM,
    ROLE_MASTER,
    ROLE_TRAINER,
    ROOM_WAITING,
    CreatedSeat,
    Player,
    Room,
    RoomSnapshot,
    RoomState,
)
from pokeraid.backend.security import generate_room_code, generate_token, hash_token, verify_token
from pokeraid.backend.state import build_log_entry, build_player, build_room
from pokeraid.backend.store import RaidStore

logger = logging.getLogger(__name__)

BATTLE_STARTED_MESSAGE = "The RAID battle has begun!"
BATTLE_ENDED_MESSAGE = "The RAID battle has ended!"

ActionHandler = Callable[[Room, Player, dict[str, Any]], None]


def _damage_amount(value: Any) -> int:
    """Parse a damage amount; only whole, finite numbers are accepted."""
    if value is None:
        return 0
    if isinstance(value, bool):
        raise RaidValidationError("Damage must be a whole number")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        raise RaidValidationError("Damage must be a whole number")
    try:
        return int(str(value).strip() or 0)
    except ValueError as exc:
        raise RaidValidationError("Damage must be a whole number") from exc


class RaidSessionService:
    def __init__(
        self,
        store: RaidStore,
        server_salt: str,
        max_players: int = 5,
        default_hp: int = 100,
    ) -> None:
        self.store = store
        self.server_salt = server_salt
        self.max_players = max_players
        self.default_hp = default_hp
        self._handlers: dict[str, ActionHandler] = {
            "ready": self._ready,
            "start_battle": self._start_battle,
            "attack": self._attack,
            "master_attack": self._master_attack,
            "damage": self._damage,
            "end_battle": self._end_battle,
        }

    def create_room(self, player_name: str, master_pokemon: Any = None) -> CreatedSeat:
        player_name = (player_name or "").strip()
        if not player_name:
            raise RaidValidationError("Player name is required")

        room = self.store.insert_room(
            build_room(
                room_code=generate_room_code(),
                room_name=f"{player_name}'s Raid",
                master_pokemon=master_pokemon,
            )
        )
        token = generate_token()
        player = self.store.insert_player(
            build_player(
                room_id=room.id,
                player_name=player_name,
                token_hash=hash_token(token, self.server_salt),
                role=ROLE_MASTER,
                pokemon_data=None,
                hp=self.default_hp,
            )
        )
        logger.info("Room %s created by %s (code %s)", room.id, player.id, room.room_code)
        return CreatedSeat(room=room, player=player, player_token=token)

    def join_room(self, room_code: str, player_name: str, pokemon_data: Any = None) -> CreatedSeat:
        room_code = (room_code or "").strip().upper()
        player_name = (player_name or "").strip()
        if not room_code or not player_name:
            raise RaidValidationError("Room code and player name are required")

        room = self.store.find_room_by_code(room_code)
        if room is None:
            raise NotFoundError("Room not found")
        if room.status != ROOM_WAITING:
            logger.warning("Join rejected for room %s: status is %s", room.id, room.status)
            raise RuleViolationError("Room is already in battle")
        if self.store.count_players(room.id) >= self.max_players:
            logger.warning("Join rejected for room %s: room is full", room.id)
            raise RuleViolationError(f"Room is full (maximum {self.max_players} players)")

        token = generate_token()
        player = self.store.insert_player(
            build_player(
                room_id=room.id,
                player_name=player_name,
                token_hash=hash_token(token, self.server_salt),
                role=ROLE_TRAINER,
                pokemon_data=pokemon_data,
                hp=self.default_hp,
            )
        )
        logger.info("Player %s joined room %s", player.id, room.id)
        return CreatedSeat(room=room, player=player, player_token=token)

    def submit_action(
        self,
        room_id: str,
        player_id: str,
        player_token: str,
        action_type: str,
        action_data: dict[str, Any] | None = None,
    ) -> RoomState:
        """Authenticate the caller, apply one action and return room plus players.

        Not idempotent: a resubmitted attack advances the turn again.
        """
        if not room_id or not player_id or not player_token:
            raise RaidValidationError("Missing room, player or token")

        player = self.store.get_player(player_id)
        if player is None:
            raise NotFoundError("Player not found")
        if not verify_token(player_token, player.token_hash, self.server_salt):
            logger.warning("Rejected action %r for player %s: bad token", action_type, player_id)
            raise UnauthorizedError("Player not authorized")

        room = self.store.get_room(room_id)
        if room is None:
            raise NotFoundError("Room not found")
        if player.room_id != room.id:
            logger.warning("Rejected action %r: player %s is not in room %s", action_type, player_id, room_id)
            raise UnauthorizedError("Player not authorized")

        handler = self._handlers.get(action_type)
        if handler is None:
            logger.info("Ignoring unknown action %r in room %s", action_type, room_id)
        else:
            handler(room, player, dict(action_data or {}))
            logger.info("Applied %s by %s in room %s", action_type, player.id, room.id)

        return self._room_state(room_id)

    def get_snapshot(self, room_id: str) -> RoomSnapshot:
        room = self.store.get_room(room_id)
        if room is None:
            raise NotFoundError("Room not found")
        return RoomSnapshot(
            room=room,
            players=self.store.list_players(room_id),
            battle_log=self.store.list_log(room_id),
        )

    def _room_state(self, room_id: str) -> RoomState:
        room = self.store.get_room(room_id)
        if room is None:
            raise NotFoundError("Room not found")
        return RoomState(room=room, players=self.store.list_players(room_id))

    def _require_master(self, player: Player, message: str) -> None:
        if not player.is_master:
            logger.warning("Player %s is not the master: %s", player.id, message)
            raise UnauthorizedError(message)

    def _write_room(self, room: Room, changes: dict[str, Any]) -> None:
        if not changes:
            return
        if self.store.update_room(room.id, changes, expected_version=room.version) is None:
            logger.warning("Room %s changed concurrently at version %s", room.id, room.version)
            raise ConflictError("Room changed while the action was processed, refresh and try again")

    def _log(self, room: Room, player: Player, turn_number: int, action_type: str, data: dict[str, Any]) -> None:
        self.store.append_log(
            build_log_entry(
                room_id=room.id,
                player=player,
                turn_number=turn_number,
                action_type=action_type,
                action_data=data,
            )
        )

    def _ready(self, room: Room, player: Player, data: dict[str, Any]) -> None:
        changes: dict[str, Any] = {"is_ready": True}
        if data.get("pokemonData") is not None:
            changes["pokemon_data"] = data["pokemonData"]
        self.store.update_player(player.id, changes)

    def _start_battle(self, room: Room, player: Player, data: dict[str, Any]) -> None:
        self._require_master(player, "Only the master can start the battle")
        players = self.store.list_players(room.id)
        changes = engine.start_battle_changes(room, players, master_pokemon=data.get("masterPokemon"))
        self._write_room(room, changes)
        self._log(room, player, 1, LOG_SYSTEM, {"message": BATTLE_STARTED_MESSAGE})

    def _attack(self, room: Room, player: Player, data: dict[str, Any]) -> None:
        players = self.store.list_players(room.id)
        self._write_room(room, engine.attack_changes(players, player.id))
        self._log(room, player, room.turn_number, LOG_ATTACK, data)

    def _master_attack(self, room: Room, player: Player, data: dict[str, Any]) -> None:
        self._require_master(player, "Only the master can use the boss attack")
        players = self.store.list_players(room.id)
        self._write_room(room, engine.master_attack_changes(room, players))
        self._log(room, player, room.turn_number, LOG_MASTER_ATTACK, data)

    def _damage(self, room: Room, player: Player, data: dict[str, Any]) -> None:
        damage = _damage_amount(data.get("damage"))

        target_id = data.get("targetPlayerId") or player.id
        target = self.store.get_player(target_id)
        if target is None or target.room_id != room.id:
            raise NotFoundError("Target player not found")

        # The caller's HP is the base even when another player is the target.
        self.store.update_player(target.id, {"current_hp": engine.damaged_hp(player.current_hp, damage)})
        self._log(room, player, room.turn_number, LOG_DAMAGE, data)

    def _end_battle(self, room: Room, player: Player, data: dict[str, Any]) -> None:
        self._require_master(player, "Only the master can end the battle")
        self._write_room(room, engine.end_battle_changes())
        self._log(room, player, room.turn_number, LOG_SYSTEM, {"message": BATTLE_ENDED_MESSAGE})
