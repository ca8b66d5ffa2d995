from enum import Enum


class ParticipantRole(str, Enum):
    BROADCASTER = "broadcaster"
    VIEWER = "viewer"


class StreamStatus(str, Enum):
    START = "start"
    STOP = "stop"
