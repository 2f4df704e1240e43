"""Persistence interfaces and implementations for raid rooms, players and logs."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
import logging
import threading
from typing import Any, Iterator, Protocol

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from pokeraid.backend.errors import StoreError
from pokeraid.backend.models import BattleLogEntry, Player, Room

logger = logging.getLogger(__name__)

ROOM_COLUMNS = tuple(f.name for f in fields(Room))
PLAYER_COLUMNS = tuple(f.name for f in fields(Player))
LOG_COLUMNS = tuple(f.name for f in fields(BattleLogEntry))

ROOM_UPDATABLE = frozenset({"status", "current_turn_player_id", "turn_number", "master_pokemon"})
PLAYER_UPDATABLE = frozenset({"is_ready", "pokemon_data", "current_hp", "max_hp"})
JSON_COLUMNS = frozenset({"master_pokemon", "pokemon_data", "action_data"})


class RaidStore(Protocol):
    def insert_room(self, room: Room) -> Room:
        """Persist a new room."""

    def insert_player(self, player: Player) -> Player:
        """Persist a new player."""

    def get_room(self, room_id: str) -> Room | None:
        """Return the room or None."""

    def find_room_by_code(self, room_code: str) -> Room | None:
        """Return the most recently created room with this code."""

    def get_player(self, player_id: str) -> Player | None:
        """Return the player or None."""

    def list_players(self, room_id: str) -> list[Player]:
        """Return the room's players ordered by join time."""

    def count_players(self, room_id: str) -> int:
        """Return how many players joined the room."""

    def update_room(self, room_id: str, changes: dict[str, Any], expected_version: int) -> Room | None:
        """Apply changes only when the stored version matches; bumps the version."""

    def update_player(self, player_id: str, changes: dict[str, Any]) -> Player | None:
        """Apply changes to a single player."""

    def append_log(self, entry: BattleLogEntry) -> BattleLogEntry:
        """Append a battle-log entry."""

    def list_log(self, room_id: str) -> list[BattleLogEntry]:
        """Return the room's log in creation order."""


def _check_columns(changes: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")


class InMemoryRaidStore:
    """Dict-backed store; one lock guards every read-modify-write."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rooms: dict[str, Room] = {}
        self._players: dict[str, Player] = {}
        self._log: list[BattleLogEntry] = []

    def insert_room(self, room: Room) -> Room:
        with self._lock:
            self._rooms[room.id] = room
        return room

    def insert_player(self, player: Player) -> Player:
        with self._lock:
            self._players[player.id] = player
        return player

    def get_room(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def find_room_by_code(self, room_code: str) -> Room | None:
        matches = [room for room in self._rooms.values() if room.room_code == room_code]
        if not matches:
            return None
        return max(matches, key=lambda room: room.created_at)

    def get_player(self, player_id: str) -> Player | None:
        return self._players.get(player_id)

    def list_players(self, room_id: str) -> list[Player]:
        with self._lock:
            players = [player for player in self._players.values() if player.room_id == room_id]
        return sorted(players, key=lambda player: player.joined_at)

    def count_players(self, room_id: str) -> int:
        return len(self.list_players(room_id))

    def update_room(self, room_id: str, changes: dict[str, Any], expected_version: int) -> Room | None:
        _check_columns(changes, ROOM_UPDATABLE)
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None or room.version != expected_version:
                return None
            updated = replace(room, version=room.version + 1, **changes)
            self._rooms[room_id] = updated
        return updated

    def update_player(self, player_id: str, changes: dict[str, Any]) -> Player | None:
        _check_columns(changes, PLAYER_UPDATABLE)
        with self._lock:
            player = self._players.get(player_id)
            if player is None:
                return None
            updated = replace(player, **changes)
            self._players[player_id] = updated
        return updated

    def append_log(self, entry: BattleLogEntry) -> BattleLogEntry:
        with self._lock:
            self._log.append(entry)
        return entry

    def list_log(self, room_id: str) -> list[BattleLogEntry]:
        with self._lock:
            return [entry for entry in self._log if entry.room_id == room_id]


def _db_value(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS:
        return Jsonb(value)
    return value


@dataclass
class PostgresRaidStore:
    database_url: str

    def _connect(self) -> Any:
        return psycopg.connect(self.database_url, row_factory=dict_row)

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
        except psycopg.Error as exc:
            logger.exception("Raid store query failed")
            raise StoreError("Raid store is unavailable") from exc

    def _insert(self, table: str, columns: tuple[str, ...], record: Any) -> None:
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values})").format(
            table=sql.Identifier(table),
            columns=sql.SQL(", ").join(map(sql.Identifier, columns)),
            values=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        params = tuple(_db_value(column, getattr(record, column)) for column in columns)
        with self._cursor() as cur:
            cur.execute(query, params)

    def _select(self, table: str, columns: tuple[str, ...], where: str, order_by: str | None = None) -> sql.Composed:
        query = sql.SQL("SELECT {columns} FROM {table} WHERE {where} = %s").format(
            columns=sql.SQL(", ").join(map(sql.Identifier, columns)),
            table=sql.Identifier(table),
            where=sql.Identifier(where),
        )
        if order_by is not None:
            query = query + sql.SQL(" ORDER BY {order} ASC, id ASC").format(order=sql.Identifier(order_by))
        return query

    def insert_room(self, room: Room) -> Room:
        self._insert("raid_rooms", ROOM_COLUMNS, room)
        return room

    def insert_player(self, player: Player) -> Player:
        self._insert("raid_players", PLAYER_COLUMNS, player)
        return player

    def get_room(self, room_id: str) -> Room | None:
        with self._cursor() as cur:
            cur.execute(self._select("raid_rooms", ROOM_COLUMNS, "id"), (room_id,))
            row = cur.fetchone()
        return Room(**row) if row is not None else None

    def find_room_by_code(self, room_code: str) -> Room | None:
        query = self._select("raid_rooms", ROOM_COLUMNS, "room_code") + sql.SQL(" ORDER BY created_at DESC LIMIT 1")
        with self._cursor() as cur:
            cur.execute(query, (room_code,))
            row = cur.fetchone()
        return Room(**row) if row is not None else None

    def get_player(self, player_id: str) -> Player | None:
        with self._cursor() as cur:
            cur.execute(self._select("raid_players", PLAYER_COLUMNS, "id"), (player_id,))
            row = cur.fetchone()
        return Player(**row) if row is not None else None

    def list_players(self, room_id: str) -> list[Player]:
        with self._cursor() as cur:
            cur.execute(self._select("raid_players", PLAYER_COLUMNS, "room_id", order_by="joined_at"), (room_id,))
            rows = cur.fetchall()
        return [Player(**row) for row in rows]

    def count_players(self, room_id: str) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) AS total FROM raid_players WHERE room_id = %s", (room_id,))
            row = cur.fetchone()
        return int(row["total"]) if row is not None else 0

    def update_room(self, room_id: str, changes: dict[str, Any], expected_version: int) -> Room | None:
        _check_columns(changes, ROOM_UPDATABLE)
        assignments = [
            sql.SQL("{column} = %s").format(column=sql.Identifier(column)) for column in changes
        ]
        assignments.append(sql.SQL("version = version + 1"))
        query = sql.SQL(
            "UPDATE raid_rooms SET {assignments} WHERE id = %s AND version = %s RETURNING {columns}"
        ).format(
            assignments=sql.SQL(", ").join(assignments),
            columns=sql.SQL(", ").join(map(sql.Identifier, ROOM_COLUMNS)),
        )
        params = [_db_value(column, value) for column, value in changes.items()]
        params.extend([room_id, expected_version])
        with self._cursor() as cur:
            cur.execute(query, tuple(params))
            row = cur.fetchone()
        return Room(**row) if row is not None else None

    def update_player(self, player_id: str, changes: dict[str, Any]) -> Player | None:
        _check_columns(changes, PLAYER_UPDATABLE)
        if not changes:
            return self.get_player(player_id)
        query = sql.SQL("UPDATE raid_players SET {assignments} WHERE id = %s RETURNING {columns}").format(
            assignments=sql.SQL(", ").join(
                sql.SQL("{column} = %s").format(column=sql.Identifier(column)) for column in changes
            ),
            columns=sql.SQL(", ").join(map(sql.Identifier, PLAYER_COLUMNS)),
        )
        params = [_db_value(column, value) for column, value in changes.items()]
        params.append(player_id)
        with self._cursor() as cur:
            cur.execute(query, tuple(params))
            row = cur.fetchone()
        return Player(**row) if row is not None else None

    def append_log(self, entry: BattleLogEntry) -> BattleLogEntry:
        self._insert("raid_battle_log", LOG_COLUMNS, entry)
        return entry

    def list_log(self, room_id: str) -> list[BattleLogEntry]:
        with self._cursor() as cur:
            cur.execute(self._select("raid_battle_log", LOG_COLUMNS, "room_id", order_by="created_at"), (room_id,))
            rows = cur.fetchall()
        return [BattleLogEntry(**row) for row in rows]


def create_store(database_url: str | None) -> RaidStore:
    if database_url:
        return PostgresRaidStore(database_url=database_url)
    return InMemoryRaidStore()
