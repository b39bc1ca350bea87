"""Clip generation job: trim, reframe to 9:16, burn captions, upload."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Optional

import structlog
from sqlalchemy import select

from clipworker.domain.jobs import ClipStatus, GenerateClipPayload, Job
from clipworker.models import Clip, Transcript, Video
from clipworker.services import media
from clipworker.services.caption_style import resolve_style
from clipworker.services.captions import captions_from_content, render_ass, render_srt, window_captions
from clipworker.services.progress_tracker import create_clip_generation_tracker
from clipworker.worker.context import WorkerContext

logger = structlog.get_logger(__name__)


def clip_object_key(user_id: object, clip_id: object) -> str:
    return f"{user_id}/{clip_id}.mp4"


def _set_clip_status(ctx: WorkerContext, clip_id, status: ClipStatus, storage_path: Optional[str] = None) -> None:
    with ctx.session_factory() as db:
        clip = db.get(Clip, clip_id)
        if clip is None:
            return
        clip.status = status.value
        if storage_path is not None:
            clip.storage_path = storage_path
        db.commit()


def write_subtitles(ctx: WorkerContext, content, payload: GenerateClipPayload, workdir: Path) -> Optional[Path]:
    """Write the windowed caption track for the clip, or None when nothing overlaps."""
    settings = ctx.settings
    cues = window_captions(
        captions_from_content(content),
        payload.start,
        payload.end,
        min_duration=settings.caption_min_cue_seconds,
    )
    if not cues:
        return None

    if settings.caption_format == "ass":
        path = workdir / "captions.ass"
        text = render_ass(
            cues,
            resolve_style(settings),
            settings.clip_width,
            settings.clip_height,
            pop_in=settings.caption_pop_in,
        )
    else:
        path = workdir / "captions.srt"
        text = render_srt(cues, pop_in=settings.caption_pop_in)
    path.write_text(text, encoding="utf-8")
    logger.info("clip.subtitles_written", path=str(path), cues=len(cues), format=settings.caption_format)
    return path


def process_clip_generation(ctx: WorkerContext, job: Job, payload: GenerateClipPayload) -> dict[str, Any]:
    settings = ctx.settings
    tracker = create_clip_generation_tracker(
        lambda stage, percent: ctx.queue.record_progress(job, stage, percent), job.id
    )

    try:
        with ctx.session_factory() as db:
            video = db.get(Video, payload.video_id)
            if video is None:
                raise ValueError(f"Video not found: {payload.video_id}")
            clip = db.get(Clip, payload.clip_id)
            if clip is None:
                raise ValueError(f"Clip not found: {payload.clip_id}")
            transcript = db.scalars(select(Transcript).where(Transcript.video_id == payload.video_id)).first()

            source_key = video.storage_path
            suffix = Path(video.filename or "").suffix or ".mp4"
            user_id = clip.user_id
            content = transcript.content if transcript is not None else None

            clip.status = ClipStatus.PROCESSING.value
            db.commit()

        with tempfile.TemporaryDirectory(prefix="clip-", dir=settings.scratch_dir) as scratch:
            workdir = Path(scratch)
            source = workdir / f"source{suffix}"

            tracker.start_step("downloading_video")
            ctx.storage.download_to_path(settings.videos_bucket, source_key, source)

            tracker.start_step("generating_clip")
            subtitle_path = write_subtitles(ctx, content, payload, workdir) if content else None
            output = media.render_vertical_clip(
                source,
                workdir / "clip.mp4",
                payload.start,
                payload.end,
                width=settings.clip_width,
                height=settings.clip_height,
                subtitle_path=subtitle_path,
                subtitle_format=settings.caption_format,
                style=resolve_style(settings),
                ffmpeg_bin=settings.ffmpeg_bin,
            )

            tracker.start_step("uploading")
            object_key = clip_object_key(user_id, payload.clip_id)
            ctx.storage.upload_file(
                settings.clips_bucket,
                object_key,
                output,
                content_type="video/mp4",
                cache_control=settings.clip_cache_control,
            )
    except Exception:
        _set_clip_status(ctx, payload.clip_id, ClipStatus.ERROR)
        raise

    _set_clip_status(ctx, payload.clip_id, ClipStatus.READY, storage_path=object_key)
    tracker.finish()

    logger.info(
        "clip.done",
        job_id=str(job.id),
        clip_id=str(payload.clip_id),
        storage_path=object_key,
        duration_sec=round(payload.duration, 3),
    )
    return {"clip_id": str(payload.clip_id)}
