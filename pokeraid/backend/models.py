"""Domain models for raid rooms, players and the battle log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

RoomStatus = Literal["waiting", "battle", "finished"]
PlayerRole = Literal["master", "trainer"]

ROOM_WAITING: RoomStatus = "waiting"
ROOM_BATTLE: RoomStatus = "battle"
ROOM_FINISHED: RoomStatus = "finished"

ROLE_MASTER: PlayerRole = "master"
ROLE_TRAINER: PlayerRole = "trainer"

LOG_SYSTEM = "system"
LOG_ATTACK = "attack"
LOG_MASTER_ATTACK = "master_attack"
LOG_DAMAGE = "damage"


@dataclass(frozen=True)
class Room:
    id: str
    room_code: str
    room_name: str
    status: RoomStatus
    current_turn_player_id: str | None
    turn_number: int
    master_pokemon: Any
    created_at: datetime
    version: int = 1


@dataclass(frozen=True)
class Player:
    id: str
    room_id: str
    player_name: str
    token_hash: str
    role: PlayerRole
    is_ready: bool
    pokemon_data: Any
    current_hp: int
    max_hp: int
    joined_at: datetime

    @property
    def is_master(self) -> bool:
        return self.role == ROLE_MASTER

    @property
    def is_trainer(self) -> bool:
        return self.role == ROLE_TRAINER


@dataclass(frozen=True)
class BattleLogEntry:
    id: str
    room_id: str
    player_id: str | None
    player_name: str | None
    turn_number: int
    action_type: str
    action_data: dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class CreatedSeat:
    """Result of create/join: the caller's only chance to see its raw token."""

    room: Room
    player: Player
    player_token: str


@dataclass(frozen=True)
class RoomState:
    room: Room
    players: list[Player] = field(default_factory=list)


@dataclass(frozen=True)
class RoomSnapshot:
    room: Room
    players: list[Player] = field(default_factory=list)
    battle_log: list[BattleLogEntry] = field(default_factory=list)
