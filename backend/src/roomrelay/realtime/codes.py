"""Utility helpers for allocating room codes."""

from __future__ import annotations

import secrets
import string
from typing import Callable

from .errors import RoomCodeExhausted

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
MIN_ROOM_CODE_LENGTH = 6


def normalize_code(value: str) -> str:
    """Normalize a client supplied room code prior to lookup."""

    return value.strip().upper()


def generate_code(length: int = MIN_ROOM_CODE_LENGTH) -> str:
    """Return a random room code drawn from ``ROOM_CODE_ALPHABET``."""

    length = max(length, MIN_ROOM_CODE_LENGTH)
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def unique_code(
    exists: Callable[[str], bool],
    *,
    length: int = MIN_ROOM_CODE_LENGTH,
    max_attempts: int = 32,
    generator: Callable[[int], str] = generate_code,
) -> str:
    """Generate a room code the *exists* callback does not know about.

    Colliding codes are discarded and regenerated; after ``max_attempts``
    collisions in a row ``RoomCodeExhausted`` is raised.
    """

    for _ in range(max(1, max_attempts)):
        code = generator(length)
        if not exists(code):
            return code
    raise RoomCodeExhausted()


__all__ = [
    "ROOM_CODE_ALPHABET",
    "MIN_ROOM_CODE_LENGTH",
    "generate_code",
    "normalize_code",
    "unique_code",
]
