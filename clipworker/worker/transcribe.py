"""Transcription job: source video -> audio track -> stored caption units."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import select

from clipworker.domain.jobs import Job, TranscribePayload, VideoStatus
from clipworker.models import Transcript, Video
from clipworker.services import media
from clipworker.services.progress_tracker import create_transcription_tracker
from clipworker.worker.context import WorkerContext

logger = structlog.get_logger(__name__)


def _source_suffix(filename: str | None) -> str:
    suffix = Path(filename or "").suffix
    return suffix or ".mp4"


def process_transcription(ctx: WorkerContext, job: Job, payload: TranscribePayload) -> dict[str, Any]:
    settings = ctx.settings
    video_id = payload.video_id

    with ctx.session_factory() as db:
        video = db.get(Video, video_id)
        if video is None:
            raise ValueError(f"Video not found: {video_id}")

        existing = db.scalars(select(Transcript).where(Transcript.video_id == video_id)).first()
        if existing is not None:
            # An earlier attempt stored the transcript before losing its lease.
            video.status = VideoStatus.READY.value
            db.commit()
            logger.info("transcribe.transcript_exists", video_id=str(video_id), transcript_id=str(existing.id))
            return {"transcript_id": str(existing.id)}

        video.status = VideoStatus.TRANSCRIBING.value
        db.commit()
        storage_path = video.storage_path
        filename = video.filename

    tracker = create_transcription_tracker(
        lambda stage, percent: ctx.queue.record_progress(job, stage, percent), job.id
    )

    with tempfile.TemporaryDirectory(prefix="transcribe-", dir=settings.scratch_dir) as scratch:
        workdir = Path(scratch)
        source = workdir / f"source{_source_suffix(filename)}"

        tracker.start_step("downloading_video")
        ctx.storage.download_to_path(settings.videos_bucket, storage_path, source)

        duration = media.probe_duration(source, ffprobe_bin=settings.ffprobe_bin)
        with ctx.session_factory() as db:
            video = db.get(Video, video_id)
            if video is not None:
                video.duration_seconds = round(duration)
                db.commit()

        if duration > settings.max_video_duration_seconds:
            minutes = settings.max_video_duration_seconds // 60
            raise media.VideoTooLongError(f"Video too long. Maximum duration is {minutes} minutes.")

        tracker.start_step("extracting_audio")
        audio = media.extract_audio(source, workdir / "audio.mp3", ffmpeg_bin=settings.ffmpeg_bin)

        tracker.start_step("transcribing")
        captions = ctx.transcriber.transcribe(audio)

    tracker.start_step("saving_transcript")
    with ctx.session_factory() as db:
        transcript = Transcript(video_id=video_id, content=[c.to_dict() for c in captions])
        db.add(transcript)
        video = db.get(Video, video_id)
        if video is not None:
            video.status = VideoStatus.READY.value
        db.commit()
        transcript_id = transcript.id
    tracker.finish()

    logger.info(
        "transcribe.done",
        job_id=str(job.id),
        video_id=str(video_id),
        transcript_id=str(transcript_id),
        captions=len(captions),
        duration_sec=round(duration, 2),
    )
    return {"transcript_id": str(transcript_id)}
