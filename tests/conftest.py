"""Pytest configuration and fixtures for worker tests."""

from datetime import datetime, timedelta
from pathlib import Path
from uuid import uuid4

import pytest

from clipworker.core.config import Settings
from clipworker.db.session import build_engine, build_session_factory, init_db
from clipworker.models import Clip, Transcript, Video
from clipworker.repositories.jobs import JobQueue
from clipworker.services.captions import Caption
from clipworker.worker.context import WorkerContext


class FakeClock:
    """Manually advanced naive-UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeStorage:
    """In-memory object store keyed by (bucket, key)."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.uploads: list[dict] = []

    def download_to_path(self, bucket, object_key, destination):
        if (bucket, object_key) not in self.objects:
            raise FileNotFoundError(f"{bucket}/{object_key}")
        target = Path(destination)
        target.write_bytes(self.objects[(bucket, object_key)])
        return target

    def upload_file(self, bucket, object_key, file_path, *, content_type=None, cache_control=None):
        data = Path(file_path).read_bytes()
        self.objects[(bucket, object_key)] = data
        self.uploads.append(
            {
                "bucket": bucket,
                "key": object_key,
                "content_type": content_type,
                "cache_control": cache_control,
            }
        )


class FakeTranscriber:
    def __init__(self, captions=None, error: Exception | None = None):
        self.captions = captions or []
        self.error = error
        self.calls: list[Path] = []

    def transcribe(self, audio_path):
        self.calls.append(Path(audio_path))
        if self.error is not None:
            raise self.error
        return list(self.captions)


@pytest.fixture
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    return engine


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture
def queue(session_factory, clock):
    return JobQueue(session_factory, transcribe_lease_seconds=600, clip_lease_seconds=300, clock=clock)


@pytest.fixture
def scratch_dir(tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def worker_settings(scratch_dir):
    return Settings(
        database_url="sqlite:///:memory:",
        s3_endpoint_url="http://minio:9000",
        s3_access_key="minio",
        s3_secret_key="minio-secret",
        transcription_api_key="gsk_test",
        scratch_dir=str(scratch_dir),
        caption_pop_in=False,
        caption_format="srt",
        max_video_duration_seconds=1200,
    )


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def transcriber():
    return FakeTranscriber(
        captions=[
            Caption(0.0, 1.5, "hello there"),
            Caption(1.5, 3.0, "general kenobi"),
        ]
    )


@pytest.fixture
def ctx(worker_settings, session_factory, storage, transcriber, queue):
    return WorkerContext(
        settings=worker_settings,
        session_factory=session_factory,
        storage=storage,
        transcriber=transcriber,
        queue=queue,
    )


@pytest.fixture
def make_video(session_factory, storage):
    """Insert a Video row and place its source bytes in the fake store."""

    def _make(filename="talk.mp4", status="uploaded", data=b"fake-video-bytes"):
        video = Video(
            user_id=uuid4(),
            filename=filename,
            storage_path=f"uploads/{uuid4()}/{filename}",
            status=status,
        )
        with session_factory() as db:
            db.add(video)
            db.commit()
        storage.objects[("videos", video.storage_path)] = data
        return video

    return _make


@pytest.fixture
def make_clip(session_factory):
    def _make(video, start=10.0, end=20.0):
        clip = Clip(
            video_id=video.id,
            user_id=video.user_id,
            start_time=start,
            end_time=end,
            title="clip",
        )
        with session_factory() as db:
            db.add(clip)
            db.commit()
        return clip

    return _make


@pytest.fixture
def make_transcript(session_factory):
    def _make(video, captions):
        transcript = Transcript(video_id=video.id, content=[c.to_dict() for c in captions])
        with session_factory() as db:
            db.add(transcript)
            db.commit()
        return transcript

    return _make
