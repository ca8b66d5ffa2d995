from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base

DEFAULT_MESSAGE_TYPE = "text"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    stream_id: Mapped[str] = mapped_column(String(64), ForeignKey("streams.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), default=DEFAULT_MESSAGE_TYPE, nullable=False)
    filtered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    stream: Mapped["Stream"] = relationship(back_populates="messages")

    def __repr__(self) -> str:
        return f"Message(id={self.id}, stream={self.stream_id}, user={self.user_id})"
