"""Thin async client for the Twilio Video rooms REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

logger = logging.getLogger(__name__)

ROOM_EXISTS_ERROR_CODE = 53113


class VideoRoomStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoRoomStatus.COMPLETED, VideoRoomStatus.FAILED)


@dataclass(frozen=True)
class RemoteVideoRoom:
    sid: str
    unique_name: str
    status: VideoRoomStatus

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RemoteVideoRoom":
        return cls(
            sid=str(payload["sid"]),
            unique_name=str(payload.get("unique_name") or payload["sid"]),
            status=VideoRoomStatus(payload.get("status", VideoRoomStatus.IN_PROGRESS.value)),
        )


class VideoProviderError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class VideoRoomConflictError(VideoProviderError):
    """A non-terminal room already holds the requested unique name."""


class VideoRoomClient:
    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        *,
        base_url: str = "https://video.twilio.com",
        room_type: str = "group",
        status_callback: str | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._room_type = room_type
        self._status_callback = status_callback
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            auth=(account_sid, auth_token),
            timeout=timeout,
        )

    async def create_room(self, name: str, capacity: int) -> RemoteVideoRoom:
        form: dict[str, str] = {
            "UniqueName": name,
            "Type": self._room_type,
            "MaxParticipants": str(capacity),
        }
        if self._status_callback:
            form["StatusCallback"] = self._status_callback
        room = _parse_room(await self._request("POST", "/v1/Rooms", data=form))
        logger.info("Video room created: sid=%s name=%s", room.sid, room.unique_name)
        return room

    async def fetch_room(self, name: str) -> RemoteVideoRoom:
        return _parse_room(await self._request("GET", f"/v1/Rooms/{name}"))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise VideoProviderError(f"{method} {url} failed: {exc!r}") from exc

        if response.is_success:
            try:
                return response.json()
            except ValueError as exc:
                raise VideoProviderError(f"{method} {url} returned a non-JSON body") from exc

        code: int | None = None
        message = response.text
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message") or message

        if code == ROOM_EXISTS_ERROR_CODE:
            raise VideoRoomConflictError(message, status_code=response.status_code, code=code)
        raise VideoProviderError(
            f"{method} {url} returned {response.status_code}: {message}",
            status_code=response.status_code,
            code=code,
        )


def _parse_room(payload: dict[str, Any]) -> RemoteVideoRoom:
    try:
        return RemoteVideoRoom.from_payload(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise VideoProviderError(f"Unexpected room payload: {payload!r}") from exc
