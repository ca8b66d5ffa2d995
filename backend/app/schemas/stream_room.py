from __future__ import annotations

from datetime import datetime

from pydantic import Field

from app.models import ParticipantRole
from app.schemas.common import APIModel


class ParticipantRead(APIModel):
    user_id: str = Field(alias="userId")
    role: ParticipantRole
    status: str
    joined_at: datetime = Field(alias="joinedAt")


class StreamRoomRead(APIModel):
    stream_id: str = Field(alias="streamId")
    external_room_id: str | None = Field(default=None, alias="externalRoomId")
    room_name: str | None = Field(default=None, alias="roomName")
    viewer_count: int = Field(alias="viewerCount")
    persisted_viewer_count: int | None = Field(default=None, alias="persistedViewerCount")
    participants: list[ParticipantRead] = Field(default_factory=list)
