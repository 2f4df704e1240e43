"""FastAPI endpoints for raid rooms and websocket change notifications."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
import logging
from typing import Any

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import BackendSettings, load_settings
from .errors import RaidError
from .models import BattleLogEntry, CreatedSeat, Player, Room, RoomSnapshot, RoomState
from .service import RaidSessionService
from .store import RaidStore, create_store

logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateRoomRequest(CamelModel):
    player_name: str = Field(alias="playerName", min_length=1, max_length=100)
    master_pokemon: Any = Field(default=None, alias="masterPokemon")


class JoinRoomRequest(CamelModel):
    room_code: str = Field(alias="roomCode", min_length=1, max_length=16)
    player_name: str = Field(alias="playerName", min_length=1, max_length=100)
    pokemon_data: Any = Field(default=None, alias="pokemonData")


class ActionRequest(CamelModel):
    room_id: str = Field(alias="roomId", min_length=1)
    player_id: str = Field(alias="playerId", min_length=1)
    player_token: str = Field(alias="playerToken", min_length=1)
    action_type: str = Field(alias="actionType", min_length=1)
    action_data: dict[str, Any] | None = Field(default=None, alias="actionData")


class RoomOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    room_code: str
    room_name: str
    status: str
    current_turn_player_id: str | None
    turn_number: int
    master_pokemon: Any
    created_at: datetime
    version: int


class PlayerOut(BaseModel):
    """Public view of a player; the token hash never leaves the server."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    room_id: str
    player_name: str
    role: str
    is_ready: bool
    pokemon_data: Any
    current_hp: int
    max_hp: int
    joined_at: datetime


class BattleLogEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    room_id: str
    player_id: str | None
    player_name: str | None
    turn_number: int
    action_type: str
    action_data: dict[str, Any]
    created_at: datetime


class SeatResponse(CamelModel):
    room: RoomOut
    player: PlayerOut
    player_token: str = Field(alias="playerToken")


class RoomStateResponse(CamelModel):
    room: RoomOut
    players: list[PlayerOut]


class RoomSnapshotResponse(CamelModel):
    room: RoomOut
    players: list[PlayerOut]
    battle_log: list[BattleLogEntryOut] = Field(alias="battleLog")


def _room_out(room: Room) -> RoomOut:
    return RoomOut.model_validate(room)


def _players_out(players: list[Player]) -> list[PlayerOut]:
    return [PlayerOut.model_validate(player) for player in players]


def _log_out(entries: list[BattleLogEntry]) -> list[BattleLogEntryOut]:
    return [BattleLogEntryOut.model_validate(entry) for entry in entries]


def _seat_response(seat: CreatedSeat) -> SeatResponse:
    return SeatResponse(
        room=_room_out(seat.room),
        player=PlayerOut.model_validate(seat.player),
        player_token=seat.player_token,
    )


def _state_response(state: RoomState) -> RoomStateResponse:
    return RoomStateResponse(room=_room_out(state.room), players=_players_out(state.players))


def _snapshot_response(snapshot: RoomSnapshot) -> RoomSnapshotResponse:
    return RoomSnapshotResponse(
        room=_room_out(snapshot.room),
        players=_players_out(snapshot.players),
        battle_log=_log_out(snapshot.battle_log),
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = str(first.get("loc", ("body",))[-1])
    if first.get("type") in {"missing", "string_too_short"}:
        return f"{field} is required"
    return f"{field}: {first.get('msg', 'invalid value')}"


class RoomChangeHub:
    """Websocket fan-out of "room changed" signals; clients re-fetch on receipt."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, room_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[room_id].add(websocket)

    def disconnect(self, room_id: str, websocket: WebSocket) -> None:
        connections = self._connections.get(room_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(room_id, None)

    async def broadcast_change(self, room_id: str) -> None:
        stale_connections: list[WebSocket] = []
        for websocket in list(self._connections.get(room_id, set())):
            try:
                await websocket.send_json({"type": "room.changed", "roomId": room_id})
            except (RuntimeError, WebSocketDisconnect):
                logger.info("Dropping closed subscriber for room %s", room_id)
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(room_id=room_id, websocket=websocket)


def create_app(store: RaidStore | None = None, settings: BackendSettings | None = None) -> FastAPI:
    settings = settings if settings is not None else load_settings()
    if store is None:
        store = create_store(settings.database_url)
    service = RaidSessionService(
        store=store,
        server_salt=settings.server_salt,
        max_players=settings.max_players,
        default_hp=settings.default_hp,
    )

    app = FastAPI(title="Pokeraid API", version="0.1.0")
    hub = RoomChangeHub()
    app.state.change_hub = hub
    app.state.raid_service = service

    @app.exception_handler(RaidError)
    async def raid_error_handler(request: Request, exc: RaidError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": _validation_message(exc)})

    def get_service() -> RaidSessionService:
        return service

    @app.post("/api/raid/create", response_model=SeatResponse)
    def create_room(
        payload: CreateRoomRequest,
        raid: RaidSessionService = Depends(get_service),
    ) -> SeatResponse:
        seat = raid.create_room(player_name=payload.player_name, master_pokemon=payload.master_pokemon)
        return _seat_response(seat)

    @app.post("/api/raid/join", response_model=SeatResponse)
    async def join_room(
        payload: JoinRoomRequest,
        raid: RaidSessionService = Depends(get_service),
    ) -> SeatResponse:
        seat = raid.join_room(
            room_code=payload.room_code,
            player_name=payload.player_name,
            pokemon_data=payload.pokemon_data,
        )
        await hub.broadcast_change(seat.room.id)
        return _seat_response(seat)

    @app.post("/api/raid/action", response_model=RoomStateResponse)
    async def post_action(
        payload: ActionRequest,
        raid: RaidSessionService = Depends(get_service),
    ) -> RoomStateResponse:
        state = raid.submit_action(
            room_id=payload.room_id,
            player_id=payload.player_id,
            player_token=payload.player_token,
            action_type=payload.action_type,
            action_data=payload.action_data,
        )
        await hub.broadcast_change(state.room.id)
        return _state_response(state)

    @app.get("/api/raid/room/{room_id}", response_model=RoomSnapshotResponse)
    def get_room(
        room_id: str,
        raid: RaidSessionService = Depends(get_service),
    ) -> RoomSnapshotResponse:
        return _snapshot_response(raid.get_snapshot(room_id))

    @app.websocket("/ws/raid/{room_id}")
    async def room_ws(websocket: WebSocket, room_id: str) -> None:
        if service.store.get_room(room_id) is None:
            await websocket.close(code=1008)
            return

        await hub.connect(room_id=room_id, websocket=websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            hub.disconnect(room_id=room_id, websocket=websocket)

    return app


app = create_app()
