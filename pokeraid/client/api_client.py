"""HTTP client for the raid room API."""

from __future__ import annotations

from typing import Any

import httpx


class RaidApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RaidApiClient:
    """Thin wrapper over httpx; every call returns the decoded JSON body or raises RaidApiError."""

    def __init__(self, http: httpx.Client) -> None:
        self._http = http

    @classmethod
    def from_url(cls, base_url: str, timeout: float = 10.0) -> "RaidApiClient":
        return cls(httpx.Client(base_url=base_url, timeout=timeout))

    def close(self) -> None:
        self._http.close()

    def create_room(self, player_name: str, master_pokemon: Any = None) -> dict[str, Any]:
        return self._request(
            "POST",
            "/api/raid/create",
            json={"playerName": player_name, "masterPokemon": master_pokemon},
        )

    def join_room(self, room_code: str, player_name: str, pokemon_data: Any = None) -> dict[str, Any]:
        return self._request(
            "POST",
            "/api/raid/join",
            json={"roomCode": room_code, "playerName": player_name, "pokemonData": pokemon_data},
        )

    def submit_action(
        self,
        room_id: str,
        player_id: str,
        player_token: str,
        action_type: str,
        action_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return self._request(
            "POST",
            "/api/raid/action",
            json={
                "roomId": room_id,
                "playerId": player_id,
                "playerToken": player_token,
                "actionType": action_type,
                "actionData": action_data or {},
            },
        )

    def fetch_room(self, room_id: str) -> dict[str, Any]:
        return self._request("GET", f"/api/raid/room/{room_id}")

    def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = self._http.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise RaidApiError(f"Could not reach the raid server: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.is_error:
            detail = data.get("detail") if isinstance(data, dict) else None
            raise RaidApiError(str(detail or f"Request failed ({response.status_code})"), response.status_code)
        return data
