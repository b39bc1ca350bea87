from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clipworker.db.session import Base
from clipworker.models.common import TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from clipworker.models.clip import Clip


class Video(Base, TimestampMixin):
    __tablename__ = "videos"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    storage_path: Mapped[str] = mapped_column(String, nullable=False)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(32), default="uploaded", nullable=False)  # uploaded|transcribing|ready|error

    transcript: Mapped[Optional["Transcript"]] = relationship(back_populates="video", uselist=False)
    clips: Mapped[List["Clip"]] = relationship("Clip", back_populates="video")


class Transcript(Base, TimestampMixin):
    __tablename__ = "transcripts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    video_id: Mapped[UUID] = mapped_column(ForeignKey("videos.id"), unique=True, nullable=False)
    content: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)  # [{"start": 0.0, "end": 1.2, "text": "..."}]

    video: Mapped["Video"] = relationship(back_populates="transcript")
