"""Video API router.

Implements REST endpoints for uploading, listing and deleting source videos
and for downloading the original files.
"""

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from transcoder.core.config import settings
from transcoder.core.database import get_db
from transcoder.core.schemas import MessageResponse
from transcoder.core.storage import LocalDirectory
from transcoder.modules.auth.jwt import get_current_user_id
from transcoder.modules.video.schemas import (
    VideoListResponse,
    VideoResponse,
    VideoUploadResponse,
)
from transcoder.modules.video.service import VideoService

router = APIRouter(prefix="/videos", tags=["videos"])
download_router = APIRouter(prefix="/download", tags=["downloads"])


def get_video_service(db: AsyncSession = Depends(get_db)) -> VideoService:
    """Build the video service for one request."""
    return VideoService(
        db,
        uploads=LocalDirectory(settings.UPLOADS_DIR),
        allowed_types=settings.ALLOWED_VIDEO_TYPES,
    )


@router.post("", response_model=VideoUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_video(
    video: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """Upload a video file."""
    record = await service.upload_video(
        user_id=user_id,
        fileobj=video.file,
        original_name=video.filename,
        content_type=video.content_type,
    )
    return VideoUploadResponse(
        message="Video uploaded successfully",
        video_id=record.id,
        filename=record.filename,
    )


@router.get("", response_model=VideoListResponse)
async def list_videos(
    user_id: str = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """List the caller's videos, newest first."""
    videos = await service.list_videos(user_id)
    return VideoListResponse(videos=[VideoResponse.model_validate(v) for v in videos])


@router.delete("/{video_id}", response_model=MessageResponse)
async def delete_video(
    video_id: str,
    user_id: str = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """Delete a video and its file. Transcoded outputs stay available."""
    await service.delete_video(video_id, user_id)
    return MessageResponse(
        message="Original video deleted successfully. Transcoded videos remain available."
    )


@download_router.get("/original/{filename}")
async def download_original(
    filename: str,
    user_id: str = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """Download an uploaded file under its original name."""
    path, download_name = await service.get_original_download(filename, user_id)
    return FileResponse(path, filename=download_name)
