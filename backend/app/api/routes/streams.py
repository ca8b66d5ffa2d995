import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status

from app.api.dependencies import get_coordinator
from app.core.config import settings
from app.core.errors import NotFoundError, PersistenceError
from app.realtime.coordinator import RoomCoordinator
from app.schemas.stream_room import ParticipantRead, StreamRoomRead

logger = logging.getLogger(__name__)

router = APIRouter()


async def _live_room(stream_id: str, coordinator: RoomCoordinator) -> StreamRoomRead:
    registry = coordinator.registry
    if not registry.has_room(stream_id):
        raise NotFoundError(f"No live room for stream {stream_id}", public_message="Stream room is not live")

    persisted: int | None = None
    try:
        persisted = await coordinator.store.current_viewer_count(stream_id)
    except PersistenceError as exc:
        logger.warning("Persisted viewer count unavailable for %s: %s", stream_id, exc)

    video_room = coordinator.lifecycle.get(stream_id)
    return StreamRoomRead(
        stream_id=stream_id,
        external_room_id=video_room.external_room_id if video_room else None,
        room_name=video_room.room_name if video_room else None,
        viewer_count=registry.count(stream_id),
        persisted_viewer_count=persisted,
        participants=[ParticipantRead.model_validate(p) for p in registry.participants_of(stream_id)],
    )


@router.get("/{stream_id}/room", response_model=StreamRoomRead)
async def get_stream_room(
    stream_id: str = Path(pattern=settings.stream_id_pattern),
    coordinator: RoomCoordinator = Depends(get_coordinator),
) -> StreamRoomRead:
    try:
        return await _live_room(stream_id, coordinator)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.public_message) from exc
