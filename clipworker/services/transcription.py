from pathlib import Path
from typing import Any, List, Optional

import structlog
from openai import OpenAI

from clipworker.services.captions import Caption, segment_transcription

logger = structlog.get_logger(__name__)


class TranscriptionError(RuntimeError):
    """Raised when audio cannot be submitted or the response is unusable."""


def _response_to_dict(resp: Any) -> Any:
    if hasattr(resp, "model_dump"):
        return resp.model_dump()
    return resp


class TranscriptionClient:
    """Speech-to-text over an OpenAI compatible ``audio/transcriptions`` endpoint."""

    def __init__(
        self,
        *,
        client: OpenAI,
        model: str,
        language: Optional[str] = "en",
        max_upload_mb: float = 25.0,
        words_per_group: int = 3,
    ) -> None:
        self._client = client
        self._model = model
        self._language = language
        self._max_upload_mb = max_upload_mb
        self._words_per_group = words_per_group

    def transcribe(self, audio_path: Path | str) -> List[Caption]:
        path = Path(audio_path)
        size_mb = path.stat().st_size / (1024 * 1024)
        logger.info("transcription.submit", audio_path=str(path), size_mb=round(size_mb, 2), model=self._model)
        if size_mb > self._max_upload_mb:
            raise TranscriptionError(
                f"Audio file too large for transcription (max {self._max_upload_mb:g}MB)"
            )

        options: dict[str, Any] = {
            "model": self._model,
            "response_format": "verbose_json",
            "timestamp_granularities": ["word", "segment"],
        }
        if self._language:
            options["language"] = self._language

        with path.open("rb") as f:
            resp = self._client.audio.transcriptions.create(file=f, **options)

        captions = segment_transcription(_response_to_dict(resp), self._words_per_group)
        logger.info("transcription.done", audio_path=str(path), captions=len(captions))
        return captions


def build_transcription_client(settings) -> TranscriptionClient:
    client = OpenAI(
        api_key=settings.transcription_api_key,
        base_url=settings.transcription_base_url,
        timeout=settings.transcription_timeout_seconds,
        max_retries=0,
    )
    return TranscriptionClient(
        client=client,
        model=settings.transcription_model,
        language=settings.transcription_language or None,
        max_upload_mb=settings.transcription_max_upload_mb,
        words_per_group=settings.caption_words_per_group,
    )
