"""Configuration helpers for backend runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class BackendSettings:
    server_salt: str
    database_url: str | None
    host: str
    port: int
    log_level: str = "INFO"
    max_players: int = 5
    default_hp: int = 100


def load_settings() -> BackendSettings:
    port_raw = os.getenv("POKERAID_PORT", "8000")
    return BackendSettings(
        server_salt=os.getenv("POKERAID_SERVER_SALT", "dev-salt"),
        database_url=os.getenv("POKERAID_DATABASE_URL") or None,
        host=os.getenv("POKERAID_HOST", "127.0.0.1"),
        port=int(port_raw),
        log_level=os.getenv("POKERAID_LOG_LEVEL", "INFO").upper(),
        max_players=int(os.getenv("POKERAID_MAX_PLAYERS", "5")),
        default_hp=int(os.getenv("POKERAID_DEFAULT_HP", "100")),
    )
