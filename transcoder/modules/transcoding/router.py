"""Transcoding API router.

Implements REST endpoints for requesting conversions, polling and deleting
jobs, and downloading finished outputs.
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from transcoder.core.config import settings
from transcoder.core.database import get_db
from transcoder.core.schemas import MessageResponse
from transcoder.modules.auth.jwt import get_current_user_id
from transcoder.modules.transcoding.schemas import (
    TranscodeHealthResponse,
    TranscodeJobListResponse,
    TranscodeJobStatusResponse,
    TranscodeRequest,
    TranscodeStartedResponse,
)
from transcoder.modules.transcoding.service import TranscodingService
from transcoder.modules.transcoding.tasks import TranscodeTaskManager

router = APIRouter(tags=["transcoding"])


def get_task_manager(request: Request) -> TranscodeTaskManager:
    """Task manager created at application startup."""
    return request.app.state.task_manager


def get_transcoding_service(
    db: AsyncSession = Depends(get_db),
    task_manager: TranscodeTaskManager = Depends(get_task_manager),
) -> TranscodingService:
    return TranscodingService(db, settings.transcode_config(), task_manager)


@router.post(
    "/transcode",
    response_model=TranscodeStartedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_transcode(
    data: TranscodeRequest,
    user_id: str = Depends(get_current_user_id),
    service: TranscodingService = Depends(get_transcoding_service),
):
    """Start converting a video. Poll the job for the result."""
    job = await service.request_transcode(data.video_id, data.format, user_id)
    return TranscodeStartedResponse(job_id=job.id, status=job.status)


@router.get("/transcode/health", response_model=TranscodeHealthResponse)
async def transcode_health(
    service: TranscodingService = Depends(get_transcoding_service),
):
    """Report ffmpeg availability and storage state."""
    return await service.health()


@router.get("/jobs", response_model=TranscodeJobListResponse)
async def list_jobs(
    user_id: str = Depends(get_current_user_id),
    service: TranscodingService = Depends(get_transcoding_service),
):
    """List the caller's transcode jobs, newest first."""
    return TranscodeJobListResponse(jobs=await service.list_jobs(user_id))


@router.get("/jobs/{job_id}/status", response_model=TranscodeJobStatusResponse)
async def get_job_status(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TranscodingService = Depends(get_transcoding_service),
):
    return await service.get_job_status(job_id, user_id)


@router.delete("/jobs/{job_id}", response_model=MessageResponse)
async def delete_job(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TranscodingService = Depends(get_transcoding_service),
):
    """Delete a job and its output file."""
    await service.delete_job(job_id, user_id)
    return MessageResponse(message="Transcoded video deleted successfully")


@router.get("/download/transcoded/{filename}")
async def download_transcoded(
    filename: str,
    user_id: str = Depends(get_current_user_id),
    service: TranscodingService = Depends(get_transcoding_service),
):
    """Download a finished conversion."""
    path, download_name = await service.get_transcoded_download(filename, user_id)
    return FileResponse(path, filename=download_name)
