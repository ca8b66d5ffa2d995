"""Error taxonomy for the stream room coordinator.

Every error carries a ``public_message`` that is safe to send to a client.
The ``str()`` of an error may hold provider or database detail and is only
meant for server-side logs.
"""

from __future__ import annotations


class StreamRoomError(Exception):
    default_message = "Request could not be processed"

    def __init__(self, detail: str | None = None, *, public_message: str | None = None) -> None:
        super().__init__(detail or public_message or self.default_message)
        self.public_message = public_message or detail or self.default_message


class ValidationError(StreamRoomError):
    default_message = "Invalid request"


class NotFoundError(StreamRoomError):
    default_message = "Not found"


class VideoRoomProvisionError(StreamRoomError):
    default_message = "Service is temporarily unavailable"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, public_message=self.default_message)


class PersistenceError(StreamRoomError):
    default_message = "Service is temporarily unavailable"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, public_message=self.default_message)


class InternalError(StreamRoomError):
    default_message = "Something went wrong, please try again"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, public_message=self.default_message)
