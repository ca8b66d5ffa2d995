from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings
from app.core.errors import (
    InternalError,
    NotFoundError,
    PersistenceError,
    StreamRoomError,
    ValidationError,
    VideoRoomProvisionError,
)
from app.models import DEFAULT_MESSAGE_TYPE, ParticipantRole, StreamStatus
from app.realtime.broadcaster import EventBroadcaster, Emitter
from app.realtime.lifecycle import RoomLifecycleManager, VideoRoom
from app.realtime.registry import ConnectionRegistry, Participant
from app.schemas.common import EventPayload
from app.schemas.stream_events import (
    CreateVideoRoomPayload,
    JoinStreamPayload,
    LeaveStreamPayload,
    ParticipantStatusPayload,
    SendMessagePayload,
    StreamStatusPayload,
)
from app.services.stream_store import StreamStore
from app.services.video_rooms import VideoRoomClient

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=EventPayload)
Handler = Callable[[str, Any], Awaitable[None]]


class RoomCoordinator:
    """Sequences inbound stream events across registry, storage, video rooms
    and fan-out.

    Registry changes are made before any await so that concurrent handlers
    always observe a consistent membership. After every await the handler
    re-checks membership instead of trusting what it saw before.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        lifecycle: RoomLifecycleManager,
        broadcaster: EventBroadcaster,
        store: StreamStore,
        *,
        stream_id_pattern: str = r"^[A-Za-z0-9_-]{1,64}$",
        max_message_length: int = 500,
        require_stream_record: bool = False,
    ) -> None:
        self.registry = registry
        self.lifecycle = lifecycle
        self.broadcaster = broadcaster
        self.store = store
        self._stream_id_re = re.compile(stream_id_pattern)
        self._max_message_length = max_message_length
        self._require_stream_record = require_stream_record
        self._handlers: Dict[str, Handler] = {
            "join_stream": self.join_stream,
            "leave_stream": self.leave_stream,
            "send_message": self.send_message,
            "stream_status": self.stream_status,
            "create_twilio_room": self.create_video_room,
            "participant_status": self.participant_status,
        }

    @property
    def events(self) -> List[str]:
        return list(self._handlers)

    async def dispatch(self, event: str, sid: str, data: Any) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning("Ignoring unknown event %s from %s", event, sid)
            return
        try:
            await handler(sid, data)
        except StreamRoomError as exc:
            logger.info("%s rejected for %s: %s", event, sid, exc)
            await self.broadcaster.error(sid, exc.public_message)
        except Exception:
            logger.exception("Unhandled error in %s for %s", event, sid)
            await self.broadcaster.error(sid, InternalError.default_message)

    async def join_stream(self, sid: str, data: Any) -> None:
        payload = self._parse(JoinStreamPayload, data)
        self._require(payload, "stream_id", "user_id")
        stream_id = self._check_stream_id(payload.stream_id)
        role = self._parse_role(payload.role)
        if self._require_stream_record:
            await self._check_stream_exists(stream_id)

        self.registry.join(sid, stream_id, payload.user_id, role)
        logger.info("User %s joined stream %s as %s (sid=%s)", payload.user_id, stream_id, role.value, sid)

        await self._persist_viewer_added(stream_id, payload.user_id)
        room = await self._ensure_video_room(stream_id)

        if not self.registry.is_member(sid, stream_id):
            logger.info("sid=%s left stream %s before its join completed", sid, stream_id)
            return
        if room is not None:
            self.lifecycle.attach(stream_id, sid)

        await self._emit_viewer_count(stream_id)
        await self.broadcaster.to_connection(
            sid,
            "room_info",
            {
                "externalRoomId": room.external_room_id if room else None,
                "roomName": room.room_name if room else None,
                "streamId": stream_id,
            },
        )

    async def leave_stream(self, sid: str, data: Any) -> None:
        payload = self._parse(LeaveStreamPayload, data)
        self._require(payload, "stream_id", "user_id")
        stream_id = self._check_stream_id(payload.stream_id)

        participant = self.registry.leave(sid, stream_id)
        if participant is None:
            logger.debug("leave_stream for %s ignored, sid=%s was not in the room", stream_id, sid)
            return
        self.lifecycle.detach(stream_id, sid)
        logger.info("User %s left stream %s (sid=%s)", participant.user_id, stream_id, sid)

        await self._persist_viewer_removed(stream_id, participant.user_id)
        await self._emit_viewer_count(stream_id)

    async def send_message(self, sid: str, data: Any) -> None:
        payload = self._parse(SendMessagePayload, data)
        self._require(payload, "stream_id", "user_id", "content")
        stream_id = self._check_stream_id(payload.stream_id)
        content = payload.content[: self._max_message_length]
        message_type = payload.type or DEFAULT_MESSAGE_TYPE

        message_id = str(uuid4())
        timestamp = datetime.now(tz=timezone.utc)
        try:
            stored = await self.store.append_message(stream_id, payload.user_id, content, message_type)
        except PersistenceError as exc:
            logger.warning("Message from %s on stream %s not persisted: %s", payload.user_id, stream_id, exc)
        else:
            message_id = str(stored.id)
            timestamp = stored.timestamp

        await self.broadcaster.to_room(
            stream_id,
            "new_message",
            {
                "id": message_id,
                "streamId": stream_id,
                "userId": payload.user_id,
                "content": content,
                "type": message_type,
                "timestamp": timestamp.isoformat(),
            },
        )

    async def stream_status(self, sid: str, data: Any) -> None:
        payload = self._parse(StreamStatusPayload, data)
        self._require(payload, "stream_id", "status")
        stream_id = self._check_stream_id(payload.stream_id)
        try:
            status = StreamStatus(payload.status)
        except ValueError as exc:
            allowed = ", ".join(item.value for item in StreamStatus)
            raise ValidationError(f"status must be one of: {allowed}") from exc

        logger.info("Stream %s status: %s", stream_id, status.value)
        await self.broadcaster.to_room(stream_id, "stream_status", {"streamId": stream_id, "status": status.value})

    async def create_video_room(self, sid: str, data: Any) -> None:
        payload = self._parse(CreateVideoRoomPayload, data)
        self._require(payload, "stream_id", "user_id")
        stream_id = self._check_stream_id(payload.stream_id)

        self.registry.join(sid, stream_id, payload.user_id, ParticipantRole.BROADCASTER)
        try:
            room = await self.lifecycle.create_room(stream_id)
        except VideoRoomProvisionError as exc:
            logger.warning("Video room for stream %s unavailable, continuing without video: %s", stream_id, exc)
            if self.registry.is_member(sid, stream_id):
                await self._emit_viewer_count(stream_id)
            await self.broadcaster.error(sid, exc.public_message)
            return

        if not self.registry.is_member(sid, stream_id):
            logger.info("Broadcaster sid=%s left stream %s while its room was created", sid, stream_id)
            return
        self.lifecycle.attach(stream_id, sid)
        logger.info("Broadcaster %s opened video room %s for stream %s", payload.user_id, room.external_room_id, stream_id)

        await self.broadcaster.to_connection(sid, "twilio_room_created", room.payload())
        await self._emit_viewer_count(stream_id)

    async def participant_status(self, sid: str, data: Any) -> None:
        payload = self._parse(ParticipantStatusPayload, data)
        self._require(payload, "stream_id", "user_id", "status")
        stream_id = self._check_stream_id(payload.stream_id)

        participant = self.registry.find_participant(stream_id, payload.user_id)
        if participant is not None:
            participant.status = payload.status

        await self.broadcaster.to_room(
            stream_id,
            "participant_status_update",
            {
                "userId": payload.user_id,
                "status": payload.status,
                "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            },
        )

    async def disconnect(self, sid: str, reason: Optional[str] = None) -> None:
        try:
            await self._drop(sid)
        except Exception:
            logger.exception("Cleanup failed for disconnected sid=%s", sid)
        logger.debug("Socket disconnected: sid=%s reason=%s", sid, reason)

    async def aclose(self) -> None:
        await self.lifecycle.aclose()

    async def _drop(self, sid: str) -> None:
        dropped = self.registry.drop_connection(sid)
        torn_down: Dict[str, List[Participant]] = {}
        for stream_id, participant in dropped.items():
            self.lifecycle.detach(stream_id, sid)
            if participant.role is ParticipantRole.BROADCASTER and not self.registry.has_broadcaster(stream_id):
                torn_down[stream_id] = self.registry.remove_room(stream_id)
                self.lifecycle.release_room(stream_id)

        for stream_id, participant in dropped.items():
            if stream_id in torn_down:
                remaining = torn_down[stream_id]
                logger.info("Broadcaster %s disconnected, closed stream room %s", participant.user_id, stream_id)
                await self.broadcaster.to_connections(
                    [member.connection_id for member in remaining],
                    "broadcaster_disconnected",
                    {"streamId": stream_id},
                )
                for member in remaining:
                    await self._persist_viewer_removed(stream_id, member.user_id)
            else:
                await self._emit_viewer_count(stream_id)
            await self._persist_viewer_removed(stream_id, participant.user_id)

    def _parse(self, model: Type[PayloadT], data: Any) -> PayloadT:
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValidationError("Payload must be an object")
        try:
            return model.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid payload: {exc.error_count()} error(s)", public_message="Invalid payload") from exc

    @staticmethod
    def _require(payload: EventPayload, *names: str) -> None:
        missing = payload.missing(*names)
        if missing:
            verb = "is" if len(missing) == 1 else "are"
            raise ValidationError(f"{' and '.join(missing)} {verb} required")

    def _check_stream_id(self, stream_id: str) -> str:
        if not self._stream_id_re.fullmatch(stream_id):
            raise ValidationError(f"Malformed stream id {stream_id!r}", public_message="Invalid streamId format")
        return stream_id

    @staticmethod
    def _parse_role(raw: Optional[str]) -> ParticipantRole:
        if not raw:
            return ParticipantRole.VIEWER
        try:
            return ParticipantRole(raw.lower())
        except ValueError as exc:
            raise ValidationError(f"Unknown role: {raw}") from exc

    async def _check_stream_exists(self, stream_id: str) -> None:
        try:
            exists = await self.store.stream_exists(stream_id)
        except PersistenceError as exc:
            logger.warning("Could not verify stream %s, admitting join: %s", stream_id, exc)
            return
        if not exists:
            raise NotFoundError(f"Stream {stream_id} not found", public_message="Stream not found")

    async def _ensure_video_room(self, stream_id: str) -> Optional[VideoRoom]:
        try:
            return await self.lifecycle.ensure_room(stream_id)
        except VideoRoomProvisionError as exc:
            logger.warning("Video room for stream %s unavailable, continuing without video: %s", stream_id, exc)
            return None

    async def _persist_viewer_added(self, stream_id: str, user_id: str) -> None:
        try:
            await self.store.increment_viewer(stream_id, user_id)
        except PersistenceError as exc:
            logger.warning("Viewer %s not recorded for stream %s: %s", user_id, stream_id, exc)

    async def _persist_viewer_removed(self, stream_id: str, user_id: str) -> None:
        try:
            await self.store.decrement_viewer(stream_id, user_id)
        except PersistenceError as exc:
            logger.warning("Viewer %s not removed for stream %s: %s", user_id, stream_id, exc)

    async def _emit_viewer_count(self, stream_id: str) -> None:
        await self.broadcaster.to_room(stream_id, "viewer_count", {"count": self.registry.count(stream_id)})


def build_coordinator(settings: Settings, emit: Emitter, store: StreamStore) -> RoomCoordinator:
    registry = ConnectionRegistry()
    client = VideoRoomClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        base_url=settings.twilio_video_base_url,
        room_type=settings.video_room_type,
        status_callback=settings.video_room_status_callback,
        timeout=settings.video_request_timeout_seconds,
    )
    return RoomCoordinator(
        registry=registry,
        lifecycle=RoomLifecycleManager(
            client,
            capacity=settings.video_room_max_participants,
            max_attempts=settings.video_provision_attempts,
        ),
        broadcaster=EventBroadcaster(registry, emit),
        store=store,
        stream_id_pattern=settings.stream_id_pattern,
        max_message_length=settings.chat_max_message_length,
        require_stream_record=settings.require_stream_record,
    )
