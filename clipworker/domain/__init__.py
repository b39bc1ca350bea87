from .jobs import (
    ClipStatus,
    GenerateClipPayload,
    Job,
    JobPayload,
    JobStatus,
    JobType,
    TranscribePayload,
    VideoStatus,
    decode_payload,
)

__all__ = [
    "ClipStatus",
    "GenerateClipPayload",
    "Job",
    "JobPayload",
    "JobStatus",
    "JobType",
    "TranscribePayload",
    "VideoStatus",
    "decode_payload",
]
