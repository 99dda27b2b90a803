"""Video service for business logic.

Implements upload, listing, deletion and original-file download lookup for
the videos that transcode jobs are made from.
"""

import asyncio
import logging
from pathlib import Path
from typing import BinaryIO, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from transcoder.core.errors import ServiceError
from transcoder.core.logging import log_info
from transcoder.core.storage import LocalDirectory, generate_unique_filename
from transcoder.modules.video.models import Video
from transcoder.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)


class VideoServiceError(ServiceError):
    """Base exception for video service errors."""

    status_code = 500


class VideoNotFoundError(VideoServiceError):
    """Raised when a video is missing or owned by someone else."""

    status_code = 404

    def __init__(self, message: str = "Video not found"):
        super().__init__(message)


class InvalidFileError(VideoServiceError):
    """Raised when upload validation fails."""

    status_code = 400


def validate_video_upload(
    filename: Optional[str],
    content_type: Optional[str],
    allowed_types: Sequence[str],
) -> None:
    """Validate an uploaded video file.

    Raises:
        InvalidFileError: If no file was sent or its MIME type is not allowed
    """
    if not filename:
        raise InvalidFileError("No video file uploaded")
    if content_type not in allowed_types:
        raise InvalidFileError("Invalid file type. Only video files are allowed.")


class VideoService:
    """Service for video management operations."""

    def __init__(
        self,
        session: AsyncSession,
        uploads: LocalDirectory,
        allowed_types: Sequence[str],
    ):
        self.session = session
        self.uploads = uploads
        self.allowed_types = allowed_types
        self.video_repo = VideoRepository(session)

    async def upload_video(
        self,
        user_id: str,
        fileobj: BinaryIO,
        original_name: Optional[str],
        content_type: Optional[str],
    ) -> Video:
        """Store an uploaded file and register it.

        Args:
            user_id: Owner of the upload
            fileobj: Readable binary stream with the file content
            original_name: Client-side filename
            content_type: Reported MIME type

        Returns:
            Video: Created video record
        """
        validate_video_upload(original_name, content_type, self.allowed_types)

        filename = generate_unique_filename(original_name)
        size = await asyncio.to_thread(self.uploads.save_fileobj, fileobj, filename)

        try:
            video = await self.video_repo.create(
                user_id=user_id,
                original_name=original_name,
                filename=filename,
                size=size,
                mimetype=content_type,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            self.uploads.delete_if_exists(filename)
            raise

        logger.info(
            "Video uploaded",
            extra={"video_id": video.id, "user_id": user_id, "size": size},
        )
        return video

    async def list_videos(self, user_id: str) -> list[Video]:
        return await self.video_repo.list_by_user(user_id)

    async def get_video(self, video_id: str, user_id: str) -> Video:
        """Get a video owned by the user.

        Raises:
            VideoNotFoundError: If missing or owned by another user
        """
        video = await self.video_repo.get_by_id(video_id)
        if video is None or video.user_id != user_id:
            raise VideoNotFoundError()
        return video

    async def delete_video(self, video_id: str, user_id: str) -> None:
        """Delete the stored file and the record.

        Transcode jobs made from the video are left in place.
        """
        video = await self.get_video(video_id, user_id)

        self.uploads.delete_if_exists(video.filename)
        await self.video_repo.delete(video_id, user_id)
        await self.session.commit()

        log_info(logger, "Video deleted", video_id=video_id, user_id=user_id)

    async def get_original_download(self, filename: str, user_id: str) -> tuple[Path, str]:
        """Resolve an original upload for download.

        Returns:
            tuple: File path and the name to serve it under

        Raises:
            VideoNotFoundError: If no such video is owned by the user or its
                file is gone
        """
        video = await self.video_repo.get_by_filename(filename, user_id)
        if video is None:
            raise VideoNotFoundError()
        if not self.uploads.exists(video.filename):
            raise VideoNotFoundError("File not found")
        return self.uploads.path_for(video.filename), video.original_name
