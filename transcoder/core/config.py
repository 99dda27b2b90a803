"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class TranscodeConfig:
    """Configuration handed to the transcode orchestrator and driver."""

    uploads_dir: str
    transcoded_dir: str
    allowed_formats: tuple[str, ...]
    ffmpeg_path: str = "ffmpeg"

    def is_allowed_format(self, fmt: Optional[str]) -> bool:
        """Check a target format against the allowed set, ignoring case."""
        if not fmt:
            return False
        return fmt.strip().lower() in self.allowed_formats


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Video Transcoder API"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"
    DEBUG: bool = False

    # Database - REQUIRED
    DATABASE_URL: str

    # Security - REQUIRED (no defaults for sensitive values)
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS
    CORS_ORIGINS: list[str] = []

    # Storage directories
    UPLOADS_DIR: str = "./uploads"
    TRANSCODED_DIR: str = "./transcoded"

    # Upload and conversion rules
    ALLOWED_VIDEO_TYPES: list[str] = [
        "video/mp4",
        "video/avi",
        "video/mov",
        "video/quicktime",
        "video/wmv",
        "video/flv",
        "video/webm",
    ]
    ALLOWED_FORMATS: list[str] = ["mp4", "avi", "mov", "webm"]

    # FFmpeg
    FFMPEG_PATH: str = "ffmpeg"
    TRANSCODE_SHUTDOWN_GRACE_SECONDS: float = 10.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    def transcode_config(self) -> TranscodeConfig:
        """Build the immutable transcode configuration from these settings."""
        return TranscodeConfig(
            uploads_dir=self.UPLOADS_DIR,
            transcoded_dir=self.TRANSCODED_DIR,
            allowed_formats=tuple(f.lower() for f in self.ALLOWED_FORMATS),
            ffmpeg_path=self.FFMPEG_PATH,
        )


settings = Settings()
