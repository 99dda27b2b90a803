"""Video repository for database operations."""

import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from transcoder.modules.video.models import Video


class VideoRepository:
    """Repository for Video CRUD operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        user_id: str,
        original_name: str,
        filename: str,
        size: Optional[int] = None,
        mimetype: Optional[str] = None,
        video_id: Optional[str] = None,
    ) -> Video:
        """Create a new video record.

        Args:
            user_id: Owner of the video
            original_name: Name of the file as uploaded
            filename: Unique stored filename in the uploads directory
            size: File size in bytes
            mimetype: Reported MIME type
            video_id: Optional caller-assigned id

        Returns:
            Video: Created video instance
        """
        video = Video(
            id=video_id or str(uuid.uuid4()),
            user_id=user_id,
            original_name=original_name,
            filename=filename,
            size=size,
            mimetype=mimetype,
        )
        self.session.add(video)
        await self.session.flush()
        return video

    async def get_by_id(self, video_id: str) -> Optional[Video]:
        """Get video by ID regardless of owner."""
        result = await self.session.execute(
            select(Video).where(Video.id == video_id)
        )
        return result.scalar_one_or_none()

    async def get_by_filename(self, filename: str, user_id: str) -> Optional[Video]:
        """Get a user's video by its stored filename."""
        result = await self.session.execute(
            select(Video).where(
                Video.filename == filename,
                Video.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: str) -> list[Video]:
        """List a user's videos, newest first."""
        result = await self.session.execute(
            select(Video)
            .where(Video.user_id == user_id)
            .order_by(Video.uploaded_at.desc())
        )
        return list(result.scalars().all())

    async def delete(self, video_id: str, user_id: str) -> bool:
        """Delete a user's video record.

        Returns:
            bool: True if a row was deleted
        """
        result = await self.session.execute(
            delete(Video).where(
                Video.id == video_id,
                Video.user_id == user_id,
            )
        )
        return result.rowcount > 0
