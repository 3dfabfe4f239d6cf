"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.main import app
from app.monitoring.registry import registry
from roomrelay.realtime import RealtimeHub, configure_realtime


class DummyWebSocket:
    """Records every JSON frame pushed to it."""

    def __init__(self) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)

    def types(self) -> list[str]:
        return [frame.get("type") for frame in self.sent]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame.get("type") == event_type]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    registry.reset()
    yield
    registry.reset()


@pytest.fixture()
def hub() -> RealtimeHub:
    """A fresh hub with small limits so bounds are easy to hit."""

    return RealtimeHub(history_limit=5, max_payload_bytes=32)


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """Yield a FastAPI TestClient backed by a brand new realtime hub."""

    configure_realtime()
    with TestClient(app) as test_client:
        yield test_client
    configure_realtime()
