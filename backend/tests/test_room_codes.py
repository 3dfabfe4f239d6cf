from __future__ import annotations

import itertools

import pytest

from roomrelay.realtime import RoomCodeExhausted
from roomrelay.realtime.codes import (
    MIN_ROOM_CODE_LENGTH,
    ROOM_CODE_ALPHABET,
    generate_code,
    normalize_code,
    unique_code,
)


def test_generate_code_uses_alphabet_and_minimum_length() -> None:
    code = generate_code(3)
    assert len(code) == MIN_ROOM_CODE_LENGTH
    assert set(code) <= set(ROOM_CODE_ALPHABET)

    assert len(generate_code(10)) == 10


def test_normalize_code_is_case_insensitive() -> None:
    assert normalize_code("  ab12cd ") == "AB12CD"


def test_unique_code_regenerates_on_collision() -> None:
    candidates = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
    taken = {"AAAAAA"}

    code = unique_code(taken.__contains__, generator=lambda length: next(candidates))

    assert code == "BBBBBB"


def test_unique_code_gives_up_after_max_attempts() -> None:
    calls = itertools.count()

    def generator(length: int) -> str:
        next(calls)
        return "AAAAAA"

    with pytest.raises(RoomCodeExhausted):
        unique_code(lambda code: True, max_attempts=4, generator=generator)

    assert next(calls) == 4
