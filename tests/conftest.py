"""Shared fixtures: isolated SQLite database, storage directories and a fake driver."""

import asyncio
import os
import uuid

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("LOG_JSON", "false")

from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from transcoder.core.config import TranscodeConfig
from transcoder.core.database import Base
from transcoder.modules.transcoding import models as _transcoding_models  # noqa: F401
from transcoder.modules.transcoding.ffmpeg import (
    ConversionRequest,
    ProcessStartError,
    TranscodeOutcome,
    TranscoderCapabilities,
)
from transcoder.modules.transcoding.tasks import TranscodeTaskManager
from transcoder.modules.video.models import Video
from transcoder.modules.video.repository import VideoRepository

ALLOWED_FORMATS = ("mp4", "avi", "mov", "webm")


class FakeHandle:
    """Handle whose outcome the test decides."""

    def __init__(self, job_id: str, future: "asyncio.Future[TranscodeOutcome]"):
        self.job_id = job_id
        self.pid = 4242
        self._future = future

    async def wait(self) -> TranscodeOutcome:
        return await self._future


class FakeTranscoder:
    """Conversion driver double that never runs ffmpeg."""

    def __init__(self):
        self.requests: list[ConversionRequest] = []
        self.start_error: Optional[str] = None
        self.capabilities = TranscoderCapabilities(
            available=True,
            version="ffmpeg version 6.1",
            formats=["mp4", "avi", "mov", "webm"],
            codecs=["h264", "aac"],
        )
        self._futures: dict[str, asyncio.Future] = {}

    async def start(self, request: ConversionRequest, on_progress=None) -> FakeHandle:
        if self.start_error is not None:
            raise ProcessStartError(self.start_error)
        self.requests.append(request)
        future = asyncio.get_running_loop().create_future()
        self._futures[request.job_id] = future
        return FakeHandle(request.job_id, future)

    async def describe_capabilities(self) -> TranscoderCapabilities:
        return self.capabilities

    def complete(self, job_id: str) -> None:
        self._futures[job_id].set_result(TranscodeOutcome(success=True, return_code=0))

    def fail(self, job_id: str, message: str = "Conversion failed") -> None:
        self._futures[job_id].set_result(
            TranscodeOutcome(success=False, error_message=message, return_code=1)
        )

    def crash(self, job_id: str, error: BaseException) -> None:
        self._futures[job_id].set_exception(error)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def transcode_config(tmp_path) -> TranscodeConfig:
    uploads = tmp_path / "uploads"
    transcoded = tmp_path / "transcoded"
    uploads.mkdir()
    transcoded.mkdir()
    return TranscodeConfig(
        uploads_dir=str(uploads),
        transcoded_dir=str(transcoded),
        allowed_formats=ALLOWED_FORMATS,
    )


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def task_manager(session_factory, fake_transcoder) -> TranscodeTaskManager:
    return TranscodeTaskManager(session_factory, fake_transcoder)


@pytest.fixture
def make_video(session, transcode_config):
    """Register a video and write its source file."""

    async def _make_video(
        user_id: str = "user-1",
        original_name: str = "clip.mov",
        with_file: bool = True,
    ) -> Video:
        filename = f"{os.path.splitext(original_name)[0]}_{uuid.uuid4().hex[:12]}.mov"
        if with_file:
            with open(os.path.join(transcode_config.uploads_dir, filename), "wb") as f:
                f.write(b"\x00\x00\x00\x18ftypqt  ")
        video = await VideoRepository(session).create(
            user_id=user_id,
            original_name=original_name,
            filename=filename,
            size=12,
            mimetype="video/quicktime",
        )
        await session.commit()
        return video

    return _make_video
