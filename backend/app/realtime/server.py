from __future__ import annotations

from typing import Sequence

import socketio
from fastapi import FastAPI

from app.core.config import settings


def _allowed_origins(origins: list[str]) -> Sequence[str] | str:
    if not origins:
        return []
    if "*" in origins:
        return "*"
    return origins


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=_allowed_origins(settings.cors_allow_origins),
    cors_credentials=settings.cors_allow_credentials,
    ping_interval=settings.websocket_ping_interval,
    ping_timeout=settings.websocket_ping_interval * 2,
    logger=settings.debug,
    engineio_logger=settings.debug,
)


def create_socket_app(app: FastAPI) -> socketio.ASGIApp:
    """Serve stream room events next to the HTTP API on one ASGI app."""

    return socketio.ASGIApp(
        sio,
        other_asgi_app=app,
        socketio_path=settings.socketio_path,
    )
