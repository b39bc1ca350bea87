from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Float, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clipworker.db.session import Base
from clipworker.models.common import TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from clipworker.models.video import Video


class Clip(Base, TimestampMixin):
    __tablename__ = "clips"
    __table_args__ = (CheckConstraint("start_time < end_time", name="ck_clips_time_range"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    video_id: Mapped[UUID] = mapped_column(ForeignKey("videos.id"), nullable=False, index=True)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    start_time: Mapped[float] = mapped_column(Float, nullable=False)
    end_time: Mapped[float] = mapped_column(Float, nullable=False)
    storage_path: Mapped[Optional[str]] = mapped_column(String)
    title: Mapped[Optional[str]] = mapped_column(String)
    status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False)  # pending|processing|ready|error

    video: Mapped["Video"] = relationship(back_populates="clips")
