from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.config import Settings


def test_defaults_match_documented_limits() -> None:
    settings = Settings(_env_file=None)

    assert settings.room_code_length == 6
    assert settings.chat_history_max_messages == 500
    assert settings.max_inline_payload_bytes == 10 * 1024 * 1024
    assert settings.like_policy == "toggle"


def test_cors_origins_accept_comma_separated_env(monkeypatch) -> None:
    monkeypatch.setenv("CORS_ORIGINS", "http://a.example, http://b.example")

    settings = Settings(_env_file=None)

    assert [str(origin).rstrip("/") for origin in settings.cors_origins] == [
        "http://a.example",
        "http://b.example",
    ]


def test_log_level_is_normalised(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", " debug ")
    assert Settings(_env_file=None).log_level == "DEBUG"


@pytest.mark.parametrize(
    "overrides",
    [{"room_code_length": 4}, {"like_policy": "sometimes"}, {"chat_history_max_messages": 0}],
)
def test_invalid_values_are_rejected(overrides) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)
