"""Service layer for transcoding operations.

Validates requests, guards against duplicate in-flight jobs, persists jobs
and hands them to the task manager, which starts ffmpeg and records the
outcome later. Callers poll for completion.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from transcoder.core.config import TranscodeConfig
from transcoder.core.errors import ServiceError
from transcoder.core.logging import log_error, log_info
from transcoder.core.metrics import TRANSCODE_JOBS_TOTAL
from transcoder.core.storage import LocalDirectory, generate_output_filename
from transcoder.modules.transcoding.ffmpeg import ProcessStartError
from transcoder.modules.transcoding.models import TranscodeJob, TranscodeStatus
from transcoder.modules.transcoding.repository import TranscodeJobRepository
from transcoder.modules.transcoding.schemas import (
    DELETED_VIDEO_NAME,
    DirectoryStatus,
    TranscodeHealthResponse,
    TranscodeJobResponse,
    TranscodeJobStatusResponse,
)
from transcoder.modules.transcoding.tasks import TranscodeTaskManager
from transcoder.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)


class TranscodingServiceError(ServiceError):
    """Base exception for transcoding service errors."""

    status_code = 500


class ValidationError(TranscodingServiceError):
    """Raised when a transcode request is malformed."""

    status_code = 400


class NotFoundError(TranscodingServiceError):
    """Raised when a video or job is missing or owned by someone else."""

    status_code = 404


class ConflictError(TranscodingServiceError):
    """Raised when the same video and format is already being transcoded."""

    status_code = 409

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(
            "Transcoding already in progress for this format",
            extra={"jobId": job_id},
        )


class TranscodingService:
    """Service for managing transcode jobs."""

    def __init__(
        self,
        session: AsyncSession,
        config: TranscodeConfig,
        task_manager: TranscodeTaskManager,
    ):
        self.session = session
        self.config = config
        self.task_manager = task_manager
        self.job_repo = TranscodeJobRepository(session)
        self.video_repo = VideoRepository(session)
        self.uploads = LocalDirectory(config.uploads_dir)
        self.transcoded = LocalDirectory(config.transcoded_dir)

    async def request_transcode(
        self,
        video_id: Optional[str],
        fmt: Optional[str],
        requester_id: str,
    ) -> TranscodeJob:
        """Create a transcode job and start converting.

        Returns once ffmpeg has been spawned; the job is still ``processing``.

        Raises:
            ValidationError: Missing fields or unsupported format
            NotFoundError: Video missing, not owned, or its file is gone
            ConflictError: A job for this video and format is in flight
            ProcessStartError: ffmpeg could not be started; the job is
                recorded as failed. Other launch errors are recorded the
                same way and re-raised unchanged
        """
        if not video_id or not fmt or not fmt.strip():
            raise ValidationError("Video ID and format are required")
        if not self.config.is_allowed_format(fmt):
            raise ValidationError(
                f"Unsupported format. Allowed: {', '.join(self.config.allowed_formats)}"
            )
        fmt = fmt.strip().lower()

        video = await self.video_repo.get_by_id(video_id)
        if video is None or video.user_id != requester_id:
            raise NotFoundError("Video not found")

        if not self.uploads.exists(video.filename):
            raise NotFoundError("Source file not found")
        input_path = self.uploads.path_for(video.filename)

        existing = await self.job_repo.get_in_flight(video_id, fmt, user_id=requester_id)
        if existing is not None:
            raise ConflictError(existing.id)

        output_filename = generate_output_filename(video.filename, fmt)
        output_path = self.transcoded.path_for(output_filename)

        try:
            job = await self.job_repo.create(
                job_id=str(uuid.uuid4()),
                video_id=video_id,
                user_id=requester_id,
                input_path=str(input_path),
                output_path=str(output_path),
                output_filename=output_filename,
                fmt=fmt,
            )
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            winner = await self.job_repo.get_in_flight(video_id, fmt)
            if winner is None:
                raise
            raise ConflictError(winner.id)

        log_info(
            logger,
            "Transcode job created",
            job_id=job.id,
            video_id=video_id,
            format=fmt,
        )

        try:
            await self.task_manager.launch(job)
        except Exception as e:
            # No process is running once launch has raised
            message = e.message if isinstance(e, ProcessStartError) else str(e) or repr(e)
            await self.job_repo.update_status(job.id, TranscodeStatus.FAILED, error_message=message)
            await self.session.commit()
            TRANSCODE_JOBS_TOTAL.labels(format=fmt, status=TranscodeStatus.FAILED.value).inc()
            log_error(
                logger,
                "Transcode failed to start",
                exception=None if isinstance(e, ProcessStartError) else e,
                job_id=job.id,
                error=message,
            )
            raise

        return job

    async def list_jobs(self, requester_id: str) -> list[TranscodeJobResponse]:
        """List the requester's jobs newest first."""
        listings = await self.job_repo.list_by_user(requester_id)
        return [
            TranscodeJobResponse(
                id=job.id,
                video_id=job.video_id,
                user_id=job.user_id,
                input_path=job.input_path,
                output_path=job.output_path,
                output_filename=job.output_filename,
                format=job.format,
                status=job.status,
                error_message=job.error_message,
                created_at=job.created_at,
                completed_at=job.completed_at,
                original_video_name=original_name or DELETED_VIDEO_NAME,
                original_filename=original_filename,
            )
            for job, original_name, original_filename in listings
        ]

    async def get_job(self, job_id: str, requester_id: str) -> TranscodeJob:
        """Get a job owned by the requester.

        Raises:
            NotFoundError: If missing or owned by another user
        """
        job = await self.job_repo.get_for_user(job_id, requester_id)
        if job is None:
            raise NotFoundError("Transcode job not found")
        return job

    async def get_job_status(
        self, job_id: str, requester_id: str
    ) -> TranscodeJobStatusResponse:
        job = await self.get_job(job_id, requester_id)
        return TranscodeJobStatusResponse(
            job_id=job.id,
            status=job.status,
            format=job.format,
            error_message=job.error_message,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )

    async def delete_job(self, job_id: str, requester_id: str) -> None:
        """Delete a job and its output file.

        A missing output file is not an error. A running ffmpeg process is
        left alone.
        """
        job = await self.get_job(job_id, requester_id)

        removed = self.transcoded.delete_if_exists(job.output_filename)
        await self.job_repo.delete(job_id, requester_id)
        await self.session.commit()

        log_info(logger, "Transcode job deleted", job_id=job_id, output_removed=removed)

    async def get_transcoded_download(
        self, filename: str, requester_id: str
    ) -> tuple[Path, str]:
        """Resolve a completed output for download.

        Returns:
            tuple: File path and the name to serve it under
        """
        job = await self.job_repo.get_completed_by_filename(filename, requester_id)
        if job is None:
            raise NotFoundError("Transcoded video not found")
        if not self.transcoded.exists(job.output_filename):
            raise NotFoundError("File not found")
        return (
            self.transcoded.path_for(job.output_filename),
            f"transcoded_{job.format}_{job.output_filename}",
        )

    async def health(self) -> TranscodeHealthResponse:
        """Report ffmpeg availability and storage directory state."""
        capabilities = await self.task_manager.transcoder.describe_capabilities()
        directories = DirectoryStatus(
            uploads=self.uploads.is_present(),
            transcoded=self.transcoded.is_present(),
        )
        healthy = capabilities.available and directories.uploads and directories.transcoded
        return TranscodeHealthResponse(
            status="ok" if healthy else "degraded",
            ffmpeg_available=capabilities.available,
            ffmpeg_version=capabilities.version,
            supported_formats=len(capabilities.formats),
            supported_codecs=len(capabilities.codecs),
            allowed_formats=list(self.config.allowed_formats),
            directories=directories,
            active_jobs=self.task_manager.active_count,
            error=capabilities.error,
        )
