"""Tests for the ffmpeg command builders and their error mapping."""

from unittest.mock import MagicMock, patch

import ffmpeg
import pytest

from clipworker.services import media
from clipworker.services.caption_style import DEFAULT_CAPTION_STYLE


def test_clip_command_seeks_input_and_trims_to_duration():
    args = media.build_clip_stream("in.mp4", "out.mp4", 10.0, 20.0).compile()

    assert args[0] == "ffmpeg"
    assert args.index("-ss") < args.index("-i")
    assert args[args.index("-ss") + 1] == "10.0"
    assert args[args.index("-t") + 1] == "10.0"
    assert args[args.index("-vcodec") + 1] == "libx264"
    assert args[args.index("-acodec") + 1] == "aac"
    assert args[args.index("-movflags") + 1] == "+faststart"
    assert args.index("out.mp4") > args.index("-t")
    assert args[-1] == "-y"


def test_video_filter_crops_to_nine_sixteen_before_scaling():
    vf = media.build_video_filter(1080, 1920)
    assert vf == "crop='min(iw,ih*9/16)':'min(ih,iw*16/9)',scale=1080:1920"


def test_video_filter_burns_srt_with_forced_style():
    vf = media.build_video_filter(1080, 1920, "/tmp/clip-x/captions.srt", "srt", DEFAULT_CAPTION_STYLE)
    assert "subtitles='/tmp/clip-x/captions.srt'" in vf
    assert "original_size=1080x1920" in vf
    assert "force_style='FontName=Arial" in vf


def test_video_filter_uses_ass_filter_for_styled_tracks():
    vf = media.build_video_filter(720, 1280, "/tmp/clip-x/captions.ass", "ass")
    assert vf.endswith(",ass='/tmp/clip-x/captions.ass'")
    assert "force_style" not in vf


def test_filter_path_escaping():
    assert media.escape_filter_path("C:\\clips\\it's.srt") == "C\\:/clips/it'\\''s.srt"


def test_audio_command_is_mono_low_bitrate_mp3():
    args = media.build_audio_stream("in.mp4", "audio.mp3").compile()
    assert "-vn" in args
    assert args[args.index("-acodec") + 1] == "libmp3lame"
    assert args[args.index("-ar") + 1] == "16000"
    assert args[args.index("-ac") + 1] == "1"
    assert args[args.index("-b:a") + 1] == "64k"


def test_probe_duration_parses_format_duration():
    with patch("ffmpeg.probe", return_value={"format": {"duration": "125.48"}}) as probe:
        assert media.probe_duration("in.mp4", ffprobe_bin="/usr/bin/ffprobe") == pytest.approx(125.48)
    probe.assert_called_once_with("in.mp4", cmd="/usr/bin/ffprobe")


def test_probe_duration_errors_are_media_errors():
    with patch("ffmpeg.probe", return_value={"format": {}}):
        with pytest.raises(media.MediaProcessingError, match="Could not parse video duration"):
            media.probe_duration("in.mp4")

    error = ffmpeg.Error("ffprobe", b"", b"in.mp4: No such file or directory")
    with patch("ffmpeg.probe", side_effect=error):
        with pytest.raises(media.MediaProcessingError, match="No such file or directory"):
            media.probe_duration("in.mp4")


def test_render_failure_carries_stderr_tail(tmp_path):
    stream = MagicMock()
    stream.compile.return_value = ["ffmpeg", "-i", "in.mp4", "out.mp4"]
    stream.run.side_effect = ffmpeg.Error("ffmpeg", b"", b"x" * 600 + b"Invalid data found")

    with patch.object(media, "build_clip_stream", return_value=stream):
        with pytest.raises(media.MediaProcessingError) as excinfo:
            media.render_vertical_clip(tmp_path / "in.mp4", tmp_path / "out.mp4", 0.0, 5.0)

    message = str(excinfo.value)
    assert message.startswith("FFmpeg clip generation failed: ")
    assert message.endswith("Invalid data found")
    assert len(message) < 600


def test_render_without_output_file_is_an_error(tmp_path):
    stream = MagicMock()
    stream.compile.return_value = ["ffmpeg"]

    with patch.object(media, "build_clip_stream", return_value=stream):
        with pytest.raises(media.MediaProcessingError, match="produced no output"):
            media.render_vertical_clip(tmp_path / "in.mp4", tmp_path / "out.mp4", 0.0, 5.0)
