from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session, sessionmaker

from clipworker.core.config import Settings
from clipworker.repositories.jobs import JobQueue
from clipworker.services.captions import Caption
from clipworker.services.storage import ObjectStorage


class Transcriber(Protocol):
    def transcribe(self, audio_path) -> list[Caption]: ...


@dataclass
class WorkerContext:
    """Everything a job handler needs, built once per process."""

    settings: Settings
    session_factory: sessionmaker[Session]
    storage: ObjectStorage
    transcriber: Transcriber
    queue: JobQueue
