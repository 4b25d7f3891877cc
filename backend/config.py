# config.py
import os
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env from this file's directory and OVERRIDE any existing env vars
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path, override=True)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """
    Process-wide configuration, read once at startup.

    Every value comes from the environment (or the backend .env file).
    Only DATABASE_URL is mandatory; backend credentials are checked when the
    clients are built.
    """
    database_url: str

    # Speech backend (OpenAI Whisper)
    openai_api_key: Optional[str] = None
    speech_model: str = "whisper-1"
    speech_language: str = "en-US"
    speech_timeout_seconds: float = Field(default=120.0, gt=0)

    # Storage gateway (S3-compatible bucket, e.g. Cloudflare R2)
    r2_endpoint: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: Optional[str] = None
    r2_public_base_url: Optional[str] = None

    # Ingestion
    max_video_bytes: int = Field(default=100 * 1024 * 1024, gt=0)
    max_retakes: int = Field(default=1, ge=0)

    # Scratch files
    temp_root: str = "."
    temp_max_age_minutes: float = Field(default=30, gt=0)
    temp_cleanup_interval_minutes: float = Field(default=15, gt=0)

    # Background transcription
    transcription_workers: int = Field(default=2, ge=1)
    ffmpeg_binary: str = "ffmpeg"

    cors_origins: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set in the environment (.env)")

        values = {
            "database_url": database_url,
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "r2_endpoint": os.getenv("R2_ENDPOINT"),
            "r2_access_key_id": os.getenv("R2_ACCESS_KEY_ID"),
            "r2_secret_access_key": os.getenv("R2_SECRET_ACCESS_KEY"),
            "r2_bucket_name": os.getenv("R2_BUCKET_NAME"),
            "r2_public_base_url": os.getenv("R2_PUBLIC_BASE_URL"),
        }

        # Optional overrides; pydantic coerces the strings
        optional = {
            "speech_model": "SPEECH_MODEL",
            "speech_language": "SPEECH_LANGUAGE",
            "speech_timeout_seconds": "SPEECH_TIMEOUT_SECONDS",
            "max_video_bytes": "MAX_VIDEO_BYTES",
            "max_retakes": "MAX_RETAKES",
            "temp_root": "TEMP_ROOT",
            "temp_max_age_minutes": "TEMP_MAX_AGE_MINUTES",
            "temp_cleanup_interval_minutes": "TEMP_CLEANUP_INTERVAL_MINUTES",
            "transcription_workers": "TRANSCRIPTION_WORKERS",
            "ffmpeg_binary": "FFMPEG_BINARY",
        }
        for field_name, env_name in optional.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()

        origins = os.getenv("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

        settings = cls.model_validate(values)
        logger.info(
            f"Settings loaded: bucket={settings.r2_bucket_name}, "
            f"speech_model={settings.speech_model}, workers={settings.transcription_workers}"
        )
        return settings
