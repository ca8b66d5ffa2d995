"""
tests.conftest
~~~~~~~~~~~~~~

Shared fixtures: a recording Socket.IO emitter, a scripted video provider
and a mocked stream store, so coordinator tests never reach the network or
a database.
"""
from __future__ import annotations

import asyncio
import os
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest

# ── Environment must be set before app.core.config is imported ───────
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-live-streams.db")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "ACtest")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")

from app.realtime.broadcaster import EventBroadcaster  # noqa: E402
from app.realtime.coordinator import RoomCoordinator  # noqa: E402
from app.realtime.lifecycle import RoomLifecycleManager  # noqa: E402
from app.realtime.registry import ConnectionRegistry  # noqa: E402
from app.services.stream_store import StreamStore  # noqa: E402
from app.services.video_rooms import (  # noqa: E402
    RemoteVideoRoom,
    VideoProviderError,
    VideoRoomConflictError,
    VideoRoomStatus,
)


class RecordingEmitter:
    """Stands in for ``sio.emit`` and keeps every emitted event."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Any, str | None]] = []

    async def __call__(self, event: str, data: Any = None, to: str | None = None, **kwargs: Any) -> None:
        self.sent.append((event, data, to))

    def payloads(self, event: str, to: str | None = None) -> list[Any]:
        return [data for name, data, target in self.sent if name == event and (to is None or target == to)]

    def events_to(self, sid: str) -> list[str]:
        return [name for name, _, target in self.sent if target == sid]

    def clear(self) -> None:
        self.sent.clear()


class ScriptedVideoClient:
    """In-memory video provider.

    Unique names behave like the real service: creating a name that is
    already known raises a conflict. ``gate`` holds every create call until
    it is set, which lets tests interleave handlers at the provider call.
    """

    def __init__(self) -> None:
        self.rooms: dict[str, RemoteVideoRoom] = {}
        self.created: list[str] = []
        self.fetched: list[str] = []
        self.gate: asyncio.Event | None = None
        self.fail_with: Exception | None = None
        self.closed = False
        self._next_sid = 0

    def preload(self, name: str, status: VideoRoomStatus, sid: str = "RMold") -> None:
        self.rooms[name] = RemoteVideoRoom(sid=sid, unique_name=name, status=status)

    async def create_room(self, name: str, capacity: int) -> RemoteVideoRoom:
        self.created.append(name)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        if name in self.rooms:
            raise VideoRoomConflictError("Room exists", status_code=400, code=53113)
        self._next_sid += 1
        room = RemoteVideoRoom(sid=f"RM{self._next_sid:04d}", unique_name=name, status=VideoRoomStatus.IN_PROGRESS)
        self.rooms[name] = room
        return room

    async def fetch_room(self, name: str) -> RemoteVideoRoom:
        self.fetched.append(name)
        if name not in self.rooms:
            raise VideoProviderError("Room not found", status_code=404, code=20404)
        return self.rooms[name]

    async def aclose(self) -> None:
        self.closed = True


def _stored_message(stream_id: str, user_id: str, content: str, message_type: str = "text") -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        stream_id=stream_id,
        user_id=user_id,
        content=content,
        type=message_type,
        timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture()
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture()
def video_client() -> ScriptedVideoClient:
    return ScriptedVideoClient()


@pytest.fixture()
def store() -> MagicMock:
    """Mocked ``StreamStore``; every method is an ``AsyncMock``."""
    mock = MagicMock(spec=StreamStore)
    mock.increment_viewer.return_value = None
    mock.decrement_viewer.return_value = None
    mock.current_viewer_count.return_value = 0
    mock.stream_exists.return_value = True
    mock.append_message.side_effect = _stored_message
    return mock


@pytest.fixture()
def lifecycle(video_client: ScriptedVideoClient) -> RoomLifecycleManager:
    return RoomLifecycleManager(video_client, capacity=50, max_attempts=3)


@pytest.fixture()
def coordinator(
    emitter: RecordingEmitter,
    lifecycle: RoomLifecycleManager,
    store: MagicMock,
) -> RoomCoordinator:
    registry = ConnectionRegistry()
    return RoomCoordinator(
        registry=registry,
        lifecycle=lifecycle,
        broadcaster=EventBroadcaster(registry, emitter),
        store=store,
    )
