from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable

from app.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

Emitter = Callable[..., Awaitable[Any]]


class EventBroadcaster:
    """Fans room-scoped events out to the connections registered at emit time."""

    def __init__(self, registry: ConnectionRegistry, emit: Emitter) -> None:
        self._registry = registry
        self._emit = emit

    async def to_room(self, stream_id: str, event: str, payload: dict[str, Any]) -> int:
        # Targets come from the registry, not Socket.IO rooms, so a connection
        # removed from the registry stops receiving the stream's events at once.
        connection_ids = [participant.connection_id for participant in self._registry.participants_of(stream_id)]
        return await self.to_connections(connection_ids, event, payload)

    async def to_connections(self, connection_ids: Iterable[str], event: str, payload: dict[str, Any]) -> int:
        targets = list(dict.fromkeys(connection_ids))
        if not targets:
            return 0
        results = await asyncio.gather(
            *(self._emit(event, payload, to=connection_id) for connection_id in targets),
            return_exceptions=True,
        )
        delivered = 0
        for connection_id, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning("Failed to deliver %s to %s: %s", event, connection_id, result)
            else:
                delivered += 1
        return delivered

    async def to_connection(self, connection_id: str, event: str, payload: dict[str, Any]) -> bool:
        return await self.to_connections([connection_id], event, payload) == 1

    async def error(self, connection_id: str, message: str) -> None:
        await self.to_connection(connection_id, "error", {"message": message})
