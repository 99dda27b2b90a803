"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from transcoder.core.config import settings
from transcoder.core.database import async_session_maker, init_models
from transcoder.core.errors import register_exception_handlers
from transcoder.core.logging import setup_logging
from transcoder.core.metrics import render_latest, set_app_info
from transcoder.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
)
from transcoder.core.storage import LocalDirectory
from transcoder.modules.transcoding.ffmpeg import FFmpegTranscoder
from transcoder.modules.transcoding.router import router as transcoding_router
from transcoder.modules.transcoding.tasks import TranscodeTaskManager
from transcoder.modules.video.router import download_router as video_download_router
from transcoder.modules.video.router import router as video_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare storage and the database, and drain transcodes on shutdown."""
    for path in (settings.UPLOADS_DIR, settings.TRANSCODED_DIR):
        LocalDirectory(path).ensure()
    await init_models()

    app.state.task_manager = TranscodeTaskManager(
        async_session_maker,
        FFmpegTranscoder(settings.transcode_config()),
    )
    await app.state.task_manager.recover_interrupted()
    logger.info(
        "Application started",
        extra={"uploads_dir": settings.UPLOADS_DIR, "transcoded_dir": settings.TRANSCODED_DIR},
    )

    yield

    await app.state.task_manager.drain(settings.TRANSCODE_SHUTDOWN_GRACE_SECONDS)
    logger.info("Application stopped")


OPENAPI_TAGS = [
    {"name": "health", "description": "Liveness and metrics"},
    {"name": "videos", "description": "Upload, list and delete source videos"},
    {"name": "transcoding", "description": "Request, poll and delete transcode jobs"},
    {"name": "downloads", "description": "Original and transcoded file downloads"},
]


def create_app() -> FastAPI:
    """Build the application with middleware, error handlers and routers."""
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description=(
            "Upload videos, convert them to another container format with "
            "FFmpeg, and download the results. Everything except `/health`, "
            "`/metrics` and the transcode health check needs a Bearer token."
        ),
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Last added runs first: metrics wrap everything, logging sees the correlation ID
    application.add_middleware(RequestLoggingMiddleware)
    application.add_middleware(CorrelationIdMiddleware)
    application.add_middleware(MetricsMiddleware)

    register_exception_handlers(application)

    @application.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    @application.get("/metrics", tags=["health"], include_in_schema=False)
    async def metrics() -> Response:
        payload, content_type = render_latest()
        return Response(content=payload, media_type=content_type)

    for router in (video_router, video_download_router, transcoding_router):
        application.include_router(router, prefix=settings.API_PREFIX)

    return application


setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
)
set_app_info(
    version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
)

app = create_app()
