from .enums import ParticipantRole, StreamStatus
from .message import DEFAULT_MESSAGE_TYPE, Message
from .stream import Stream, StreamViewer

__all__ = [
	"DEFAULT_MESSAGE_TYPE",
	"Message",
	"ParticipantRole",
	"Stream",
	"StreamStatus",
	"StreamViewer",
]
