"""Video registry module."""

from transcoder.modules.video.models import Video
from transcoder.modules.video.repository import VideoRepository
from transcoder.modules.video.service import (
    VideoService,
    VideoServiceError,
    VideoNotFoundError,
    InvalidFileError,
    validate_video_upload,
)

__all__ = [
    # Models
    "Video",
    # Repositories
    "VideoRepository",
    # Service
    "VideoService",
    "VideoServiceError",
    "VideoNotFoundError",
    "InvalidFileError",
    "validate_video_upload",
]
