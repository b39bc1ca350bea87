from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parents[1]
REPO_ROOT = PACKAGE_DIR.parent
ENV_FILES = [REPO_ROOT / ".env", Path.cwd() / ".env"]

for env_path in ENV_FILES:
    if env_path.exists():
        load_dotenv(env_path, override=False)


class ConfigurationError(RuntimeError):
    """Raised when required worker configuration is missing."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, extra="allow", populate_by_name=True)

    app_name: str = Field(default="ClipGenius Worker", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")

    database_url: str = Field(default="", alias="DATABASE_URL")

    # Object storage (S3 / MinIO compatible)
    s3_endpoint_url: str = Field(default="", alias="S3_ENDPOINT_URL")
    s3_access_key: str = Field(default="", alias="S3_ACCESS_KEY")
    s3_secret_key: str = Field(default="", alias="S3_SECRET_KEY")
    s3_region: str = Field(default="us-east-1", alias="S3_REGION")
    s3_secure: Optional[bool] = Field(default=None, alias="S3_SECURE")
    videos_bucket: str = Field(default="videos", alias="VIDEOS_BUCKET")
    clips_bucket: str = Field(default="clips", alias="CLIPS_BUCKET")
    clip_cache_control: str = Field(default="3600", alias="CLIP_CACHE_CONTROL")

    # Speech-to-text (OpenAI compatible endpoint, Groq by default)
    transcription_api_key: str = Field(default="", alias="GROQ_API_KEY")
    transcription_base_url: str = Field(default="https://api.groq.com/openai/v1", alias="TRANSCRIPTION_BASE_URL")
    transcription_model: str = Field(default="whisper-large-v3", alias="TRANSCRIPTION_MODEL")
    transcription_language: str = Field(default="en", alias="TRANSCRIPTION_LANGUAGE")
    transcription_max_upload_mb: float = Field(default=25.0, gt=0, alias="TRANSCRIPTION_MAX_UPLOAD_MB")
    transcription_timeout_seconds: float = Field(default=300.0, gt=0, alias="TRANSCRIPTION_TIMEOUT_SECONDS")

    ffmpeg_bin: str = Field(default="ffmpeg", alias="FFMPEG_BIN")
    ffprobe_bin: str = Field(default="ffprobe", alias="FFPROBE_BIN")
    scratch_dir: Optional[str] = Field(default=None, alias="SCRATCH_DIR")

    # Queue tuning
    poll_interval_seconds: float = Field(default=5.0, gt=0, alias="WORKER_POLL_INTERVAL_SECONDS")
    busy_sleep_seconds: float = Field(default=1.0, ge=0, alias="WORKER_BUSY_SLEEP_SECONDS")
    transcribe_lease_seconds: int = Field(default=600, ge=1, alias="TRANSCRIBE_LEASE_SECONDS")
    clip_lease_seconds: int = Field(default=300, ge=1, alias="CLIP_LEASE_SECONDS")

    # Pipeline limits
    max_video_duration_seconds: int = Field(default=20 * 60, ge=1, alias="MAX_VIDEO_DURATION_SECONDS")
    clip_width: int = Field(default=1080, ge=2, alias="CLIP_WIDTH")
    clip_height: int = Field(default=1920, ge=2, alias="CLIP_HEIGHT")

    # Captions
    caption_words_per_group: int = Field(default=3, ge=1, alias="CAPTION_WORDS_PER_GROUP")
    caption_min_cue_seconds: float = Field(default=0.1, ge=0, alias="CAPTION_MIN_CUE_SECONDS")
    caption_format: str = Field(default="srt", pattern="^(srt|ass)$", alias="CAPTION_FORMAT")
    caption_pop_in: bool = Field(default=True, alias="CAPTION_POP_IN")
    caption_font_name: Optional[str] = Field(default=None, alias="CAPTION_FONT_NAME")
    caption_font_size: Optional[int] = Field(default=None, alias="CAPTION_FONT_SIZE")
    caption_text_color: Optional[str] = Field(default=None, alias="CAPTION_TEXT_COLOR")
    caption_outline_color: Optional[str] = Field(default=None, alias="CAPTION_OUTLINE_COLOR")
    caption_margin_v: Optional[int] = Field(default=None, alias="CAPTION_MARGIN_V")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    worker_prometheus_port: Optional[int] = Field(default=None, alias="WORKER_PROMETHEUS_PORT")
    worker_prometheus_host: str = Field(default="0.0.0.0", alias="WORKER_PROMETHEUS_HOST")

    def missing_required(self) -> List[str]:
        required = {
            "DATABASE_URL": self.database_url,
            "S3_ENDPOINT_URL": self.s3_endpoint_url,
            "S3_ACCESS_KEY": self.s3_access_key,
            "S3_SECRET_KEY": self.s3_secret_key,
            "GROQ_API_KEY": self.transcription_api_key,
        }
        return [name for name, value in required.items() if not value]


def validate_settings(settings: Settings) -> Settings:
    missing = settings.missing_required()
    if missing:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")
    return settings


@lru_cache
def get_settings() -> Settings:
    return validate_settings(Settings())
