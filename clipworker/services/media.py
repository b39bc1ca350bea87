"""ffmpeg / ffprobe primitives used by the pipeline jobs."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import ffmpeg
import structlog

from clipworker.services.caption_style import DEFAULT_CAPTION_STYLE, CaptionStyle, force_style

logger = structlog.get_logger(__name__)

# Never crop wider than the source, so inputs narrower than 9:16 keep their frame.
VERTICAL_CROP = "crop='min(iw,ih*9/16)':'min(ih,iw*16/9)'"


class MediaProcessingError(RuntimeError):
    """Raised when ffmpeg or ffprobe exits with a non-zero status."""


class VideoTooLongError(ValueError):
    """Raised when source media exceeds the configured maximum duration."""


def _stderr_tail(exc: ffmpeg.Error, limit: int = 500) -> str:
    stderr = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else ""
    return stderr.strip()[-limit:]


def probe_duration(path: Path | str, ffprobe_bin: str = "ffprobe") -> float:
    try:
        info = ffmpeg.probe(str(path), cmd=ffprobe_bin)
    except ffmpeg.Error as exc:
        raise MediaProcessingError(f"ffprobe failed: {_stderr_tail(exc)}") from exc
    try:
        duration = float(info["format"]["duration"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MediaProcessingError("Could not parse video duration") from exc
    logger.info("ffprobe.duration", path=str(path), duration_sec=duration)
    return duration


def build_audio_stream(source: Path | str, destination: Path | str):
    """Mono 16 kHz low-bitrate MP3, small enough for the transcription upload limit."""
    return (
        ffmpeg.input(str(source))
        .output(
            str(destination),
            vn=None,
            acodec="libmp3lame",
            ar=16000,
            ac=1,
            audio_bitrate="64k",
        )
        .overwrite_output()
    )


def extract_audio(source: Path | str, destination: Path | str, ffmpeg_bin: str = "ffmpeg") -> Path:
    target = Path(destination)
    target.parent.mkdir(parents=True, exist_ok=True)
    stream = build_audio_stream(source, target)
    logger.info("ffmpeg.extract_audio", cmd=" ".join(stream.compile(cmd=ffmpeg_bin)))
    try:
        stream.run(cmd=ffmpeg_bin, capture_stdout=True, capture_stderr=True)
    except ffmpeg.Error as exc:
        raise MediaProcessingError(f"FFmpeg audio extraction failed: {_stderr_tail(exc)}") from exc
    if not target.exists():
        raise MediaProcessingError("FFmpeg audio extraction produced no output")
    return target


def escape_filter_path(path: str) -> str:
    """Escape a file path for use inside an ffmpeg filter argument."""
    escaped = path.replace("\\", "/")
    escaped = escaped.replace("'", "'\\''")
    escaped = escaped.replace(":", "\\:")
    return escaped


def build_video_filter(
    width: int,
    height: int,
    subtitle_path: Optional[Path | str] = None,
    subtitle_format: str = "srt",
    style: CaptionStyle = DEFAULT_CAPTION_STYLE,
) -> str:
    parts: List[str] = [VERTICAL_CROP, f"scale={width}:{height}"]
    if subtitle_path is not None:
        escaped = escape_filter_path(str(subtitle_path))
        if subtitle_format == "ass":
            parts.append(f"ass='{escaped}'")
        else:
            # original_size keeps font scaling relative to the output frame
            parts.append(
                f"subtitles='{escaped}':original_size={width}x{height}:force_style='{force_style(style)}'"
            )
    return ",".join(parts)


def build_clip_stream(
    source: Path | str,
    output: Path | str,
    start: float,
    end: float,
    width: int = 1080,
    height: int = 1920,
    subtitle_path: Optional[Path | str] = None,
    subtitle_format: str = "srt",
    style: CaptionStyle = DEFAULT_CAPTION_STYLE,
):
    """
    Single pass: trim, crop to 9:16, scale, and optionally burn captions.

    Input seeking resets timestamps to zero at ``start``, which is what the
    re-based subtitle track expects.
    """
    video_filter = build_video_filter(width, height, subtitle_path, subtitle_format, style)
    return (
        ffmpeg.input(str(source), ss=start)
        .output(
            str(output),
            t=round(end - start, 3),
            vf=video_filter,
            vcodec="libx264",
            preset="fast",
            crf=23,
            acodec="aac",
            audio_bitrate="128k",
            movflags="+faststart",
        )
        .overwrite_output()
    )


def render_vertical_clip(
    source: Path | str,
    output: Path | str,
    start: float,
    end: float,
    width: int = 1080,
    height: int = 1920,
    subtitle_path: Optional[Path | str] = None,
    subtitle_format: str = "srt",
    style: CaptionStyle = DEFAULT_CAPTION_STYLE,
    ffmpeg_bin: str = "ffmpeg",
) -> Path:
    target = Path(output)
    stream = build_clip_stream(source, target, start, end, width, height, subtitle_path, subtitle_format, style)
    logger.info("ffmpeg.render_clip", cmd=" ".join(stream.compile(cmd=ffmpeg_bin)))
    try:
        stream.run(cmd=ffmpeg_bin, capture_stdout=True, capture_stderr=True)
    except ffmpeg.Error as exc:
        raise MediaProcessingError(f"FFmpeg clip generation failed: {_stderr_tail(exc)}") from exc
    if not target.exists():
        raise MediaProcessingError("FFmpeg clip generation produced no output")
    logger.info("ffmpeg.render_clip_done", output_path=str(target))
    return target
