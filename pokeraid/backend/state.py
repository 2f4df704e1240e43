"""Record builders for freshly created rooms, players and log entries."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
import uuid

from pokeraid.backend.models import (
    ROLE_MASTER,
    ROOM_WAITING,
    BattleLogEntry,
    Player,
    PlayerRole,
    Room,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_room(room_code: str, room_name: str, master_pokemon: Any) -> Room:
    """Return a room in the lobby state with no turn assigned."""
    return Room(
        id=str(uuid.uuid4()),
        room_code=room_code,
        room_name=room_name,
        status=ROOM_WAITING,
        current_turn_player_id=None,
        turn_number=1,
        master_pokemon=master_pokemon if master_pokemon is not None else [],
        created_at=utc_now(),
        version=1,
    )


def build_player(
    room_id: str,
    player_name: str,
    token_hash: str,
    role: PlayerRole,
    pokemon_data: Any,
    hp: int,
) -> Player:
    return Player(
        id=str(uuid.uuid4()),
        room_id=room_id,
        player_name=player_name,
        token_hash=token_hash,
        role=role,
        is_ready=role == ROLE_MASTER,
        pokemon_data=pokemon_data if pokemon_data is not None else [],
        current_hp=hp,
        max_hp=hp,
        joined_at=utc_now(),
    )


def build_log_entry(
    room_id: str,
    player: Player | None,
    turn_number: int,
    action_type: str,
    action_data: dict[str, Any] | None,
) -> BattleLogEntry:
    return BattleLogEntry(
        id=str(uuid.uuid4()),
        room_id=room_id,
        player_id=player.id if player is not None else None,
        player_name=player.player_name if player is not None else None,
        turn_number=turn_number,
        action_type=action_type,
        action_data=dict(action_data or {}),
        created_at=utc_now(),
    )
