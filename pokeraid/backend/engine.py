"""Turn-order rules for raid battles.

Trainers act once per round in join order, then the master acts once and
closes the round. Functions here are pure: they take the current room and
player list and return the room fields that should change.
"""

from __future__ import annotations

from typing import Any

from pokeraid.backend.errors import RuleViolationError
from pokeraid.backend.models import ROOM_BATTLE, ROOM_FINISHED, ROOM_WAITING, Player, Room


def players_in_join_order(players: list[Player]) -> list[Player]:
    return sorted(players, key=lambda player: player.joined_at)


def trainers_in_join_order(players: list[Player]) -> list[Player]:
    return [player for player in players_in_join_order(players) if player.is_trainer]


def find_master(players: list[Player]) -> Player | None:
    for player in players:
        if player.is_master:
            return player
    return None


def start_battle_changes(room: Room, players: list[Player], master_pokemon: Any = None) -> dict[str, Any]:
    """Room fields for the lobby -> battle transition; every trainer must be ready."""
    if room.status != ROOM_WAITING:
        raise RuleViolationError("The battle has already started")
    trainers = trainers_in_join_order(players)
    if not trainers or not all(trainer.is_ready for trainer in trainers):
        raise RuleViolationError("Not all trainers are ready")

    changes: dict[str, Any] = {
        "status": ROOM_BATTLE,
        "current_turn_player_id": trainers[0].id,
        "turn_number": 1,
    }
    if master_pokemon is not None:
        changes["master_pokemon"] = master_pokemon
    return changes


def attack_changes(players: list[Player], attacker_id: str) -> dict[str, Any]:
    """Pass the turn to the next trainer, or to the master after the last trainer.

    An attacker that is not a trainer hands the turn to the first trainer.
    The turn number is left alone; only the master's attack closes a round.
    """
    ordered = players_in_join_order(players)
    trainers = [player for player in ordered if player.is_trainer]
    current_index = next((index for index, trainer in enumerate(trainers) if trainer.id == attacker_id), -1)
    next_index = current_index + 1

    if next_index < len(trainers):
        return {"current_turn_player_id": trainers[next_index].id}

    master = find_master(ordered)
    if master is None:
        return {}
    return {"current_turn_player_id": master.id}


def master_attack_changes(room: Room, players: list[Player]) -> dict[str, Any]:
    """Close the round: back to the first trainer, next turn number."""
    trainers = trainers_in_join_order(players)
    if not trainers:
        return {}
    return {
        "current_turn_player_id": trainers[0].id,
        "turn_number": room.turn_number + 1,
    }


def end_battle_changes() -> dict[str, Any]:
    return {"status": ROOM_FINISHED}


def damaged_hp(current_hp: int, damage: int) -> int:
    return max(0, current_hp - damage)
