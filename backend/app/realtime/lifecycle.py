from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from app.core.errors import VideoRoomProvisionError
from app.services.video_rooms import (
    RemoteVideoRoom,
    VideoProviderError,
    VideoRoomClient,
    VideoRoomConflictError,
)

logger = logging.getLogger(__name__)


@dataclass
class VideoRoom:
    stream_id: str
    external_room_id: str
    room_name: str
    connection_ids: set[str] = field(default_factory=set)

    def payload(self) -> dict[str, object]:
        return {
            "externalRoomId": self.external_room_id,
            "roomName": self.room_name,
            "streamId": self.stream_id,
        }


class RoomLifecycleManager:
    """Keeps at most one external video room mapped per stream.

    Provisioning for a stream is serialized through an in-flight future, so
    concurrent ``ensure_room`` callers share a single provider call. Each
    ``release_room`` starts a new epoch for the stream: results of a
    provisioning that straddled a release are not recorded, and later rooms
    get a fresh provider name.

    Name counters and epochs are kept for every stream ever seen, for the
    life of the process. Dropping them would let a later room take the name
    of a remote room that may still be live.
    """

    def __init__(self, client: VideoRoomClient, *, capacity: int, max_attempts: int = 3) -> None:
        self._client = client
        self._capacity = capacity
        self._max_attempts = max_attempts
        self._rooms: Dict[str, VideoRoom] = {}
        self._pending: Dict[str, asyncio.Future[VideoRoom]] = {}
        self._name_counters: Dict[str, int] = {}
        self._epochs: Dict[str, int] = {}

    def get(self, stream_id: str) -> Optional[VideoRoom]:
        return self._rooms.get(stream_id)

    def external_room_id(self, stream_id: str) -> Optional[str]:
        room = self._rooms.get(stream_id)
        return room.external_room_id if room else None

    def is_provisioning(self, stream_id: str) -> bool:
        return stream_id in self._pending

    async def ensure_room(self, stream_id: str) -> VideoRoom:
        room = self._rooms.get(stream_id)
        if room is not None:
            return room

        pending = self._pending.get(stream_id)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future[VideoRoom] = asyncio.get_running_loop().create_future()
        self._pending[stream_id] = future
        epoch = self._epochs.get(stream_id, 0)
        try:
            remote = await self._provision(stream_id, reuse_live=True)
            room = self._record(stream_id, remote, epoch=epoch, overwrite=False)
            future.set_result(room)
            return room
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            future.exception()
            raise
        finally:
            if self._pending.get(stream_id) is future:
                self._pending.pop(stream_id, None)

    async def create_room(self, stream_id: str) -> VideoRoom:
        if stream_id in self._rooms:
            self._next_name(stream_id)
        epoch = self._epochs.get(stream_id, 0)
        remote = await self._provision(stream_id, reuse_live=False)
        return self._record(stream_id, remote, epoch=epoch, overwrite=True)

    def attach(self, stream_id: str, connection_id: str) -> None:
        room = self._rooms.get(stream_id)
        if room is not None:
            room.connection_ids.add(connection_id)

    def detach(self, stream_id: str, connection_id: str) -> None:
        room = self._rooms.get(stream_id)
        if room is not None:
            room.connection_ids.discard(connection_id)

    async def aclose(self) -> None:
        await self._client.aclose()

    def release_room(self, stream_id: str) -> Optional[VideoRoom]:
        self._epochs[stream_id] = self._epochs.get(stream_id, 0) + 1
        room = self._rooms.pop(stream_id, None)
        in_flight = self._pending.pop(stream_id, None)
        if room is not None or in_flight is not None:
            self._next_name(stream_id)
        if room is not None:
            logger.info("Released video room %s for stream %s", room.external_room_id, stream_id)
        if in_flight is not None:
            logger.info("Dropped in-flight video room provisioning for stream %s", stream_id)
        return room

    def _record(self, stream_id: str, remote: RemoteVideoRoom, *, epoch: int, overwrite: bool) -> VideoRoom:
        current = self._rooms.get(stream_id)
        room = VideoRoom(
            stream_id=stream_id,
            external_room_id=remote.sid,
            room_name=remote.unique_name,
            connection_ids=set(current.connection_ids) if current else set(),
        )
        if self._epochs.get(stream_id, 0) != epoch:
            logger.info("Stream %s was torn down while provisioning; not recording %s", stream_id, remote.sid)
            return room
        if current is not None and not overwrite:
            return current
        self._rooms[stream_id] = room
        return room

    async def _provision(self, stream_id: str, *, reuse_live: bool) -> RemoteVideoRoom:
        for _ in range(self._max_attempts):
            name = self._room_name(stream_id)
            try:
                return await self._client.create_room(name, self._capacity)
            except VideoRoomConflictError:
                try:
                    existing = await self._client.fetch_room(name)
                except VideoProviderError as exc:
                    raise VideoRoomProvisionError(f"Fetching video room {name} failed: {exc}") from exc
                if reuse_live and not existing.status.is_terminal:
                    logger.info("Reusing live video room %s (%s)", existing.sid, name)
                    return existing
                logger.info("Video room name %s is taken (%s), trying a new name", name, existing.status.value)
                self._next_name(stream_id)
            except VideoProviderError as exc:
                raise VideoRoomProvisionError(f"Creating video room {name} failed: {exc}") from exc
        raise VideoRoomProvisionError(
            f"No free video room name for stream {stream_id} after {self._max_attempts} attempts"
        )

    def _room_name(self, stream_id: str) -> str:
        counter = self._name_counters.get(stream_id, 0)
        return stream_id if counter == 0 else f"{stream_id}_{counter}"

    def _next_name(self, stream_id: str) -> None:
        self._name_counters[stream_id] = self._name_counters.get(stream_id, 0) + 1
