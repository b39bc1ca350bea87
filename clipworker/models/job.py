from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from clipworker.db.session import Base
from clipworker.models.common import TimestampMixin


class JobModel(Base, TimestampMixin):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_status_created_at", "status", "created_at"),
        Index("ix_jobs_status_timeout_at", "status", "timeout_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    type: Mapped[str] = mapped_column(String(32), nullable=False)  # transcribe|generate_clip
    payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False)  # pending|processing|completed|failed
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    result: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON(none_as_null=True))
    error: Mapped[Optional[str]] = mapped_column(Text)
    processing_progress: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON(none_as_null=True))  # {"stage": ..., "percent": ...}
    timeout_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    lease_token: Mapped[Optional[str]] = mapped_column(String(64))
