"""Tests for the speech-to-text and object storage adapters with fake SDK clients."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from clipworker.core.config import Settings
from clipworker.services.captions import Caption
from clipworker.services.storage import MinioStorageService, StorageConfigurationError, build_storage_service
from clipworker.services.transcription import TranscriptionClient, TranscriptionError


def test_transcription_requests_word_and_segment_timestamps(tmp_path):
    audio = tmp_path / "audio.mp3"
    audio.write_bytes(b"\x00" * 1024)
    response = SimpleNamespace(
        model_dump=lambda: {
            "text": "hello big world",
            "words": [
                {"word": "hello", "start": 0.0, "end": 0.4},
                {"word": "big", "start": 0.4, "end": 0.7},
                {"word": "world", "start": 0.7, "end": 1.1},
            ],
        }
    )
    sdk = MagicMock()
    sdk.audio.transcriptions.create.return_value = response

    client = TranscriptionClient(client=sdk, model="whisper-large-v3", language="en", words_per_group=2)
    captions = client.transcribe(audio)

    assert captions == [Caption(0.0, 0.7, "hello big"), Caption(0.7, 1.1, "world")]
    kwargs = sdk.audio.transcriptions.create.call_args.kwargs
    assert kwargs["model"] == "whisper-large-v3"
    assert kwargs["response_format"] == "verbose_json"
    assert kwargs["timestamp_granularities"] == ["word", "segment"]
    assert kwargs["language"] == "en"


def test_oversized_audio_is_rejected_before_upload(tmp_path):
    audio = tmp_path / "audio.mp3"
    audio.write_bytes(b"\x00" * (2 * 1024 * 1024))
    sdk = MagicMock()

    client = TranscriptionClient(client=sdk, model="whisper-large-v3", max_upload_mb=1)
    with pytest.raises(TranscriptionError, match="too large"):
        client.transcribe(audio)

    sdk.audio.transcriptions.create.assert_not_called()


def test_upload_sets_cache_control_and_creates_bucket_once(tmp_path):
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"mp4")
    minio = MagicMock()
    minio.bucket_exists.return_value = False

    storage = MinioStorageService(client=minio)
    storage.upload_file("clips", "u/c.mp4", clip, content_type="video/mp4", cache_control="3600")
    storage.upload_file("clips", "u/d.mp4", clip, content_type="video/mp4", cache_control="3600")

    minio.make_bucket.assert_called_once_with(bucket_name="clips")
    kwargs = minio.fput_object.call_args.kwargs
    assert kwargs["bucket_name"] == "clips"
    assert kwargs["object_name"] == "u/d.mp4"
    assert kwargs["content_type"] == "video/mp4"
    assert kwargs["metadata"] == {"Cache-Control": "max-age=3600"}


def test_download_writes_to_requested_path(tmp_path):
    minio = MagicMock()
    storage = MinioStorageService(client=minio)

    target = storage.download_to_path("videos", "uploads/a.mp4", tmp_path / "nested" / "source.mp4")

    assert target.parent.is_dir()
    minio.fget_object.assert_called_once_with(
        bucket_name="videos", object_name="uploads/a.mp4", file_path=str(target)
    )


def test_storage_requires_endpoint_and_credentials():
    with pytest.raises(StorageConfigurationError):
        build_storage_service(Settings(s3_endpoint_url="", s3_access_key="", s3_secret_key=""))
