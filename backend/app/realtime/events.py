from __future__ import annotations

import logging
from typing import Any

from app.core.config import settings
from app.db.session import SessionLocal
from app.realtime.coordinator import build_coordinator
from app.realtime.server import sio
from app.services.stream_store import StreamStore

logger = logging.getLogger(__name__)

coordinator = build_coordinator(settings, sio.emit, StreamStore(SessionLocal))


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: dict[str, Any] | None = None) -> None:
    logger.debug("Socket connected: sid=%s", sid)


@sio.event
async def disconnect(sid: str, reason: Any = None) -> None:
    await coordinator.disconnect(sid, reason=str(reason) if reason is not None else None)


@sio.on("join_stream")
async def handle_join_stream(sid: str, data: Any = None) -> None:
    await coordinator.dispatch("join_stream", sid, data)


@sio.on("leave_stream")
async def handle_leave_stream(sid: str, data: Any = None) -> None:
    await coordinator.dispatch("leave_stream", sid, data)


@sio.on("send_message")
async def handle_send_message(sid: str, data: Any = None) -> None:
    await coordinator.dispatch("send_message", sid, data)


@sio.on("stream_status")
async def handle_stream_status(sid: str, data: Any = None) -> None:
    await coordinator.dispatch("stream_status", sid, data)


@sio.on("create_twilio_room")
async def handle_create_twilio_room(sid: str, data: Any = None) -> None:
    await coordinator.dispatch("create_twilio_room", sid, data)


@sio.on("participant_status")
async def handle_participant_status(sid: str, data: Any = None) -> None:
    await coordinator.dispatch("participant_status", sid, data)
