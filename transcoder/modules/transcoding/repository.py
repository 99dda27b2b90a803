"""Repository for transcode job database operations."""

from datetime import datetime
from typing import Iterable, Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from transcoder.core.timestamps import TimestampLike, to_utc
from transcoder.modules.transcoding.models import TranscodeJob, TranscodeStatus
from transcoder.modules.video.models import Video

# (job, original video name, original stored filename); the names are None
# once the source video has been deleted
JobListing = tuple[TranscodeJob, Optional[str], Optional[str]]


class TranscodeJobRepository:
    """Repository for TranscodeJob operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        job_id: str,
        video_id: str,
        user_id: str,
        input_path: str,
        output_path: str,
        output_filename: str,
        fmt: str,
    ) -> TranscodeJob:
        """Insert a new job in ``processing`` status.

        A second in-flight row for the same video and format, or a reused
        output filename, surfaces as ``IntegrityError`` on flush.

        Returns:
            Created TranscodeJob
        """
        job = TranscodeJob(
            id=job_id,
            video_id=video_id,
            user_id=user_id,
            input_path=input_path,
            output_path=output_path,
            output_filename=output_filename,
            format=fmt,
            status=TranscodeStatus.PROCESSING.value,
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: str) -> Optional[TranscodeJob]:
        """Get a job by ID regardless of owner."""
        result = await self.session.execute(
            select(TranscodeJob).where(TranscodeJob.id == job_id)
        )
        return result.scalar_one_or_none()

    async def get_for_user(self, job_id: str, user_id: str) -> Optional[TranscodeJob]:
        """Get a job by ID if it belongs to the user."""
        result = await self.session.execute(
            select(TranscodeJob).where(
                TranscodeJob.id == job_id,
                TranscodeJob.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_completed_by_filename(
        self, filename: str, user_id: str
    ) -> Optional[TranscodeJob]:
        """Get a user's completed job by its output filename."""
        result = await self.session.execute(
            select(TranscodeJob).where(
                TranscodeJob.output_filename == filename,
                TranscodeJob.user_id == user_id,
                TranscodeJob.status == TranscodeStatus.COMPLETED.value,
            )
        )
        return result.scalar_one_or_none()

    async def get_in_flight(
        self,
        video_id: str,
        fmt: str,
        user_id: Optional[str] = None,
    ) -> Optional[TranscodeJob]:
        """Get the processing job for a video and format, if any."""
        query = select(TranscodeJob).where(
            TranscodeJob.video_id == video_id,
            TranscodeJob.format == fmt,
            TranscodeJob.status == TranscodeStatus.PROCESSING.value,
        )
        if user_id is not None:
            query = query.where(TranscodeJob.user_id == user_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: str) -> list[JobListing]:
        """List a user's jobs newest first, with their source video names."""
        result = await self.session.execute(
            select(TranscodeJob, Video.original_name, Video.filename)
            .outerjoin(Video, Video.id == TranscodeJob.video_id)
            .where(TranscodeJob.user_id == user_id)
            .order_by(TranscodeJob.created_at.desc())
        )
        return [(job, name, filename) for job, name, filename in result.all()]

    async def list_by_video(self, video_id: str, user_id: str) -> list[TranscodeJob]:
        """List a user's jobs for one source video, newest first."""
        result = await self.session.execute(
            select(TranscodeJob)
            .where(
                TranscodeJob.video_id == video_id,
                TranscodeJob.user_id == user_id,
            )
            .order_by(TranscodeJob.created_at.desc())
        )
        return list(result.scalars().all())

    async def update_status(
        self,
        job_id: str,
        status: Union[TranscodeStatus, str],
        error_message: Optional[str] = None,
        completed_at: Optional[TimestampLike] = None,
    ) -> bool:
        """Move a processing job to a terminal status.

        The update only applies while the row is still ``processing``, so a
        job changes status at most once.

        Args:
            job_id: Job to update
            status: ``completed`` or ``failed``
            error_message: Failure text
            completed_at: Completion time as datetime or ISO-8601 string

        Returns:
            True if the row transitioned, False if it was missing or already
            terminal

        Raises:
            ValueError: If the id or status is missing or the status is not terminal
        """
        if not job_id or not status:
            raise ValueError("Job ID and status are required")

        target = TranscodeStatus(status)
        if not target.is_terminal:
            raise ValueError(f"Cannot transition a job to {target.value}")

        finished: Optional[datetime] = to_utc(completed_at)

        result = await self.session.execute(
            update(TranscodeJob)
            .where(
                TranscodeJob.id == job_id,
                TranscodeJob.status == TranscodeStatus.PROCESSING.value,
            )
            .values(
                status=target.value,
                error_message=error_message,
                completed_at=finished,
            )
        )
        return result.rowcount > 0

    async def fail_in_flight(
        self,
        error_message: str,
        exclude_ids: Iterable[str] = (),
    ) -> list[str]:
        """Mark every processing job as failed, except those in ``exclude_ids``.

        Uses the same ``status = 'processing'`` guard as ``update_status``,
        so jobs that finished meanwhile are left alone.

        Returns:
            IDs of the jobs that were failed
        """
        query = select(TranscodeJob.id).where(
            TranscodeJob.status == TranscodeStatus.PROCESSING.value
        )
        excluded = list(exclude_ids)
        if excluded:
            query = query.where(TranscodeJob.id.not_in(excluded))
        job_ids = list((await self.session.execute(query)).scalars().all())
        if not job_ids:
            return []

        await self.session.execute(
            update(TranscodeJob)
            .where(
                TranscodeJob.id.in_(job_ids),
                TranscodeJob.status == TranscodeStatus.PROCESSING.value,
            )
            .values(status=TranscodeStatus.FAILED.value, error_message=error_message)
        )
        return job_ids

    async def delete(self, job_id: str, user_id: str) -> bool:
        """Delete a user's job record.

        Returns:
            bool: True if a row was deleted
        """
        result = await self.session.execute(
            delete(TranscodeJob).where(
                TranscodeJob.id == job_id,
                TranscodeJob.user_id == user_id,
            )
        )
        return result.rowcount > 0
