"""Transcoding module for converting uploaded videos with FFmpeg."""

from transcoder.modules.transcoding.ffmpeg import (
    FFmpegTranscoder,
    ConversionRequest,
    TranscodeHandle,
    TranscodeOutcome,
    TranscoderCapabilities,
    ProcessStartError,
    FORMAT_PROFILES,
    DEFAULT_PROFILE,
)
from transcoder.modules.transcoding.models import TranscodeJob, TranscodeStatus
from transcoder.modules.transcoding.repository import TranscodeJobRepository
from transcoder.modules.transcoding.service import (
    TranscodingService,
    TranscodingServiceError,
    ValidationError,
    NotFoundError,
    ConflictError,
)
from transcoder.modules.transcoding.tasks import TranscodeTaskManager

__all__ = [
    # Driver
    "FFmpegTranscoder",
    "ConversionRequest",
    "TranscodeHandle",
    "TranscodeOutcome",
    "TranscoderCapabilities",
    "ProcessStartError",
    "FORMAT_PROFILES",
    "DEFAULT_PROFILE",
    # Models
    "TranscodeJob",
    "TranscodeStatus",
    # Repositories
    "TranscodeJobRepository",
    # Service
    "TranscodingService",
    "TranscodingServiceError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    # Tasks
    "TranscodeTaskManager",
]
