from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from app.models.enums import ParticipantRole


@dataclass
class Participant:
    connection_id: str
    user_id: str
    role: ParticipantRole
    status: str = "connected"
    joined_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @property
    def is_broadcaster(self) -> bool:
        return self.role is ParticipantRole.BROADCASTER

    def payload(self) -> dict[str, object]:
        return {
            "userId": self.user_id,
            "role": self.role.value,
            "status": self.status,
            "joinedAt": self.joined_at.isoformat(),
        }


@dataclass
class StreamRoom:
    stream_id: str
    participants: Dict[str, Participant] = field(default_factory=dict)


class ConnectionRegistry:
    """Who is in which stream room right now.

    Methods never await, so every mutation is atomic with respect to other
    handlers on the event loop.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, StreamRoom] = {}
        self._connections: Dict[str, Set[str]] = {}

    def join(self, connection_id: str, stream_id: str, user_id: str, role: ParticipantRole) -> Participant:
        room = self._rooms.setdefault(stream_id, StreamRoom(stream_id=stream_id))
        participant = room.participants.get(connection_id)
        if participant is None:
            participant = Participant(connection_id=connection_id, user_id=user_id, role=role)
            room.participants[connection_id] = participant
        else:
            participant.user_id = user_id
            participant.role = role
        self._connections.setdefault(connection_id, set()).add(stream_id)
        return participant

    def leave(self, connection_id: str, stream_id: str) -> Optional[Participant]:
        room = self._rooms.get(stream_id)
        if room is None:
            return None
        participant = room.participants.pop(connection_id, None)
        if participant is None:
            return None
        self._forget_membership(connection_id, stream_id)
        if not room.participants:
            self._rooms.pop(stream_id, None)
        return participant

    def drop_connection(self, connection_id: str) -> Dict[str, Participant]:
        dropped: Dict[str, Participant] = {}
        for stream_id in sorted(self._connections.get(connection_id, set())):
            participant = self.leave(connection_id, stream_id)
            if participant is not None:
                dropped[stream_id] = participant
        self._connections.pop(connection_id, None)
        return dropped

    def remove_room(self, stream_id: str) -> List[Participant]:
        room = self._rooms.pop(stream_id, None)
        if room is None:
            return []
        for connection_id in room.participants:
            self._forget_membership(connection_id, stream_id)
        return list(room.participants.values())

    def participants_of(self, stream_id: str) -> List[Participant]:
        room = self._rooms.get(stream_id)
        if room is None:
            return []
        return [replace(participant) for participant in room.participants.values()]

    def find_participant(self, stream_id: str, user_id: str) -> Optional[Participant]:
        room = self._rooms.get(stream_id)
        if room is None:
            return None
        return next((p for p in room.participants.values() if p.user_id == user_id), None)

    def is_member(self, connection_id: str, stream_id: str) -> bool:
        room = self._rooms.get(stream_id)
        return room is not None and connection_id in room.participants

    def has_broadcaster(self, stream_id: str) -> bool:
        room = self._rooms.get(stream_id)
        if room is None:
            return False
        return any(p.is_broadcaster for p in room.participants.values())

    def has_room(self, stream_id: str) -> bool:
        return stream_id in self._rooms

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self._connections.get(connection_id, set()))

    def count(self, stream_id: str) -> int:
        room = self._rooms.get(stream_id)
        return len(room.participants) if room else 0

    def _forget_membership(self, connection_id: str, stream_id: str) -> None:
        streams = self._connections.get(connection_id)
        if streams is None:
            return
        streams.discard(stream_id)
        if not streams:
            self._connections.pop(connection_id, None)
