"""Security helpers for player tokens and room codes."""

from __future__ import annotations

import hashlib
import secrets
import string
import time


ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6
TOKEN_RANDOM_BITS = 56
_BASE36_DIGITS = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_room_code() -> str:
    """Draw a room code; codes are not checked for uniqueness."""
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def generate_token() -> str:
    """Generate a player token: random base36 fragment + millisecond timestamp in base36."""
    random_part = to_base36(secrets.randbits(TOKEN_RANDOM_BITS))
    timestamp_part = to_base36(time.time_ns() // 1_000_000)
    return f"{random_part}{timestamp_part}"


def hash_token(token: str, server_salt: str) -> str:
    """Create deterministic token hash via sha256(token + server_salt)."""
    payload = f"{token}{server_salt}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def verify_token(raw_token: str, expected_hash: str, server_salt: str) -> bool:
    """Compare raw token against a stored hash."""
    return secrets.compare_digest(hash_token(raw_token, server_salt), expected_hash)
