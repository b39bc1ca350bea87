from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


class JobStatus(str, Enum):
    """Lifecycle states for queued pipeline jobs."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    TRANSCRIBE = "transcribe"
    GENERATE_CLIP = "generate_clip"


class VideoStatus(str, Enum):
    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    READY = "ready"
    ERROR = "error"


class ClipStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class TranscribePayload(BaseModel):
    type: Literal["transcribe"] = "transcribe"
    video_id: UUID


class GenerateClipPayload(BaseModel):
    type: Literal["generate_clip"] = "generate_clip"
    video_id: UUID
    clip_id: UUID
    start: float = Field(ge=0)
    end: float

    @model_validator(mode="after")
    def _check_range(self) -> "GenerateClipPayload":
        if self.end <= self.start:
            raise ValueError(f"Clip end ({self.end}) must be after start ({self.start})")
        return self

    @property
    def duration(self) -> float:
        return self.end - self.start


JobPayload = Annotated[Union[TranscribePayload, GenerateClipPayload], Field(discriminator="type")]

_payload_adapter: TypeAdapter[JobPayload] = TypeAdapter(JobPayload)


def decode_payload(job_type: str, payload: dict[str, Any] | None) -> JobPayload:
    """Decode a stored payload map into the variant named by the job type."""

    data = dict(payload or {})
    data["type"] = job_type
    return _payload_adapter.validate_python(data)


class Job(BaseModel):
    """Immutable snapshot of a job row as seen by the worker that holds its lease."""

    id: UUID
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus
    attempts: int = 0
    max_attempts: int = 3
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    processing_progress: Optional[dict[str, Any]] = None
    timeout_at: Optional[datetime] = None
    lease_token: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("payload", mode="before")
    @classmethod
    def _payload_or_empty(cls, value: Any) -> Any:
        return value if value is not None else {}

    @property
    def retries_left(self) -> bool:
        return self.attempts < self.max_attempts
