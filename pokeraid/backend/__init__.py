"""Backend package for the raid room service."""

from .config import BackendSettings, load_settings
from .security import generate_room_code, generate_token, hash_token, verify_token
from .service import RaidSessionService
from .store import InMemoryRaidStore, PostgresRaidStore, RaidStore, create_store

__all__ = [
    "BackendSettings",
    "create_store",
    "generate_room_code",
    "generate_token",
    "hash_token",
    "InMemoryRaidStore",
    "load_settings",
    "PostgresRaidStore",
    "RaidSessionService",
    "RaidStore",
    "verify_token",
]
