"""Pydantic schemas for the transcoding API."""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field, field_serializer, field_validator

from transcoder.core.schemas import CamelModel
from transcoder.core.timestamps import to_iso

DELETED_VIDEO_NAME = "Deleted Video"


class TranscodeRequest(CamelModel):
    """Body of ``POST /transcode``.

    Fields are read leniently: numbers become strings and other non-string
    values become ``None``, so bad input is reported by the service as a
    400 instead of failing body parsing.
    """
    video_id: Optional[str] = Field(None, description="Source video ID")
    format: Optional[str] = Field(None, description="Target container format")

    @field_validator("video_id", "format", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Optional[str]:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None


class TranscodeStartedResponse(CamelModel):
    message: str = "Transcoding started"
    job_id: str
    status: str


class TranscodeJobResponse(CamelModel):
    """A transcode job as listed to its owner."""
    id: str
    video_id: str
    user_id: str
    input_path: str
    output_path: str
    output_filename: str
    format: str
    status: str
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    original_video_name: str = DELETED_VIDEO_NAME
    original_filename: Optional[str] = None

    @field_serializer("created_at", "completed_at")
    def serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return to_iso(value)


class TranscodeJobListResponse(CamelModel):
    jobs: list[TranscodeJobResponse]


class TranscodeJobStatusResponse(CamelModel):
    """Result of a status poll."""
    job_id: str
    status: str
    format: str
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    @field_serializer("created_at", "completed_at")
    def serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return to_iso(value)


class DirectoryStatus(CamelModel):
    uploads: bool
    transcoded: bool


class TranscodeHealthResponse(CamelModel):
    """Transcoding subsystem diagnostics."""
    status: str
    ffmpeg_available: bool
    ffmpeg_version: Optional[str] = None
    supported_formats: int = 0
    supported_codecs: int = 0
    allowed_formats: list[str]
    directories: DirectoryStatus
    active_jobs: int = 0
    error: Optional[str] = None
