from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Stream(Base):
    __tablename__ = "streams"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    is_live: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    viewers: Mapped[list["StreamViewer"]] = relationship(back_populates="stream", cascade="all, delete-orphan")
    messages: Mapped[list["Message"]] = relationship(back_populates="stream", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Stream(id={self.id}, live={self.is_live})"


class StreamViewer(Base):
    __tablename__ = "stream_viewers"
    __table_args__ = (UniqueConstraint("stream_id", "user_id", name="uq_stream_viewer"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    stream_id: Mapped[str] = mapped_column(String(64), ForeignKey("streams.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    stream: Mapped[Stream] = relationship(back_populates="viewers")
