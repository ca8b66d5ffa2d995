from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import PersistenceError
from app.models import DEFAULT_MESSAGE_TYPE, Message, Stream, StreamViewer

logger = logging.getLogger(__name__)


class StreamStore:
    """Durable viewer set and chat log for live streams.

    Each call opens its own short-lived session. Any SQLAlchemy failure is
    re-raised as ``PersistenceError`` so callers can treat storage as
    best-effort.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def stream_exists(self, stream_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Stream.id).where(Stream.id == stream_id))
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Stream lookup failed for {stream_id}: {exc}") from exc

    async def increment_viewer(self, stream_id: str, user_id: str) -> None:
        try:
            async with self._session_factory() as session:
                existing = await session.execute(
                    select(StreamViewer.id).where(
                        StreamViewer.stream_id == stream_id,
                        StreamViewer.user_id == user_id,
                    )
                )
                if existing.scalar_one_or_none() is None:
                    session.add(StreamViewer(stream_id=stream_id, user_id=user_id))
                    await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Viewer add failed for {stream_id}/{user_id}: {exc}") from exc

    async def decrement_viewer(self, stream_id: str, user_id: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(StreamViewer).where(
                        StreamViewer.stream_id == stream_id,
                        StreamViewer.user_id == user_id,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Viewer removal failed for {stream_id}/{user_id}: {exc}") from exc

    async def current_viewer_count(self, stream_id: str) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count(StreamViewer.id)).where(StreamViewer.stream_id == stream_id)
                )
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Viewer count failed for {stream_id}: {exc}") from exc

    async def append_message(
        self,
        stream_id: str,
        user_id: str,
        content: str,
        message_type: str = DEFAULT_MESSAGE_TYPE,
    ) -> Message:
        try:
            async with self._session_factory() as session:
                message = Message(
                    stream_id=stream_id,
                    user_id=user_id,
                    content=content,
                    type=message_type,
                    filtered=False,
                )
                session.add(message)
                await session.commit()
                await session.refresh(message)
                logger.debug("Stored message %s for stream %s", message.id, stream_id)
                return message
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Message append failed for {stream_id}: {exc}") from exc
