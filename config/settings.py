# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.constants import ExternalURIs
from util.enums import Environment
import logging


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()

_log = logging.getLogger("config.settings")


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(..., validation_alias="APP_ENV")
    REDIS_URL: str = Field(..., validation_alias="REDIS_URL")

    # CORS & Limits
    ALLOWED_ORIGIN: str = Field(..., validation_alias="ALLOWED_ORIGIN")
    RATE_LIMIT_TIMES: int = Field(default=10, validation_alias="RATE_LIMIT_TIMES")
    RATE_LIMIT_SECONDS: int = Field(default=60, validation_alias="RATE_LIMIT_SECONDS")
    MAX_FILE_MB: int = Field(default=500, validation_alias="MAX_FILE_MB")
    TRUST_PROXY: bool = Field(default=False, validation_alias="TRUST_PROXY")

    # Upload storage
    UPLOAD_DIR: str = Field(default="uploads", validation_alias="UPLOAD_DIR")
    FRAMES_DIR_NAME: str = "temp_frames"

    # Pipeline knobs
    FRAME_COUNT: int = Field(default=3, validation_alias="FRAME_COUNT")
    PROGRESS_STEP: int = 10
    PROGRESS_INTERVAL_SECONDS: float = Field(
        default=0.5, validation_alias="PROGRESS_INTERVAL_SECONDS"
    )

    # Content classifier (SightEngine)
    SIGHTENGINE_API_USER: str = Field(..., validation_alias="SIGHTENGINE_API_USER")
    SIGHTENGINE_API_SECRET: str = Field(
        ..., validation_alias="SIGHTENGINE_API_SECRET"
    )
    CLASSIFIER_URL: str = ExternalURIs.SIGHTENGINE_CHECK
    CLASSIFIER_MODELS: str = "nudity,wad,offensive,gore"
    CLASSIFIER_TIMEOUT_SECONDS: float = Field(
        default=20.0, validation_alias="CLASSIFIER_TIMEOUT_SECONDS"
    )

    # Media tools
    FFMPEG_PATH: str = Field(default="ffmpeg", validation_alias="FFMPEG_PATH")
    FFPROBE_PATH: str = Field(default="ffprobe", validation_alias="FFPROBE_PATH")
    MEDIA_TOOL_TIMEOUT_SECONDS: float = Field(
        default=60.0, validation_alias="MEDIA_TOOL_TIMEOUT_SECONDS"
    )

    # Logging knobs
    LOGGER_NAME: str = "streamsafe"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    @property
    def frames_dir(self) -> str:
        return os.path.join(self.UPLOAD_DIR, self.FRAMES_DIR_NAME)


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
