from __future__ import annotations

from pydantic import Field

from app.schemas.common import EventPayload


class JoinStreamPayload(EventPayload):
    stream_id: str | None = Field(default=None, alias="streamId")
    user_id: str | None = Field(default=None, alias="userId")
    role: str | None = Field(default=None)


class LeaveStreamPayload(EventPayload):
    stream_id: str | None = Field(default=None, alias="streamId")
    user_id: str | None = Field(default=None, alias="userId")


class SendMessagePayload(EventPayload):
    stream_id: str | None = Field(default=None, alias="streamId")
    user_id: str | None = Field(default=None, alias="userId")
    content: str | None = Field(default=None)
    type: str | None = Field(default=None)


class StreamStatusPayload(EventPayload):
    stream_id: str | None = Field(default=None, alias="streamId")
    status: str | None = Field(default=None)


class CreateVideoRoomPayload(EventPayload):
    stream_id: str | None = Field(default=None, alias="streamId")
    user_id: str | None = Field(default=None, alias="userId")


class ParticipantStatusPayload(EventPayload):
    stream_id: str | None = Field(default=None, alias="streamId")
    user_id: str | None = Field(default=None, alias="userId")
    status: str | None = Field(default=None)
