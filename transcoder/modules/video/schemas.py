"""Pydantic schemas for the video registry API."""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_serializer

from transcoder.core.schemas import CamelModel
from transcoder.core.timestamps import to_iso


class VideoResponse(CamelModel):
    """A registered video as returned by the API."""

    id: str
    original_name: str
    filename: str
    user_id: str
    size: Optional[int] = None
    mimetype: Optional[str] = None
    uploaded_at: datetime = Field(alias="uploadDate")

    @field_serializer("uploaded_at")
    def serialize_uploaded_at(self, value: datetime) -> Optional[str]:
        return to_iso(value)


class VideoListResponse(CamelModel):
    videos: list[VideoResponse]


class VideoUploadResponse(CamelModel):
    message: str
    video_id: str
    filename: str
