"""Tests for the transcode job store.

**Feature: video-transcoder, Property: Monotonic Job Status**
"""

import uuid
from datetime import datetime, timezone

import pytest
from hypothesis import given, settings, strategies as st
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from transcoder.core.database import Base
from transcoder.modules.transcoding.models import TranscodeStatus
from transcoder.modules.transcoding.repository import TranscodeJobRepository
from transcoder.modules.video.repository import VideoRepository


async def create_job(
    repo: TranscodeJobRepository,
    video_id: str = "video-1",
    user_id: str = "user-1",
    fmt: str = "mp4",
):
    job_id = str(uuid.uuid4())
    return await repo.create(
        job_id=job_id,
        video_id=video_id,
        user_id=user_id,
        input_path="/uploads/clip.mov",
        output_path=f"/transcoded/clip_{job_id}.{fmt}",
        output_filename=f"clip_{job_id}.{fmt}",
        fmt=fmt,
    )


class TestJobLookup:
    """Owner-scoped point lookups."""

    @pytest.mark.asyncio
    async def test_new_job_is_processing(self, session: AsyncSession) -> None:
        repo = TranscodeJobRepository(session)
        job = await create_job(repo)
        await session.commit()

        assert job.status == TranscodeStatus.PROCESSING.value
        assert job.created_at is not None
        assert job.completed_at is None
        assert job.error_message is None

    @pytest.mark.asyncio
    async def test_get_for_user_is_owner_scoped(self, session: AsyncSession) -> None:
        repo = TranscodeJobRepository(session)
        job = await create_job(repo, user_id="owner")
        await session.commit()

        assert (await repo.get_for_user(job.id, "owner")).id == job.id
        assert await repo.get_for_user(job.id, "someone-else") is None
        assert await repo.get_for_user("missing", "owner") is None

    @pytest.mark.asyncio
    async def test_get_in_flight_ignores_terminal_jobs(self, session: AsyncSession) -> None:
        repo = TranscodeJobRepository(session)
        job = await create_job(repo)
        await session.commit()

        assert (await repo.get_in_flight("video-1", "mp4")).id == job.id
        assert (await repo.get_in_flight("video-1", "mp4", user_id="user-1")).id == job.id
        assert await repo.get_in_flight("video-1", "mp4", user_id="user-2") is None
        assert await repo.get_in_flight("video-1", "webm") is None

        await repo.update_status(job.id, TranscodeStatus.FAILED, error_message="boom")
        await session.commit()

        assert await repo.get_in_flight("video-1", "mp4") is None

    @pytest.mark.asyncio
    async def test_get_completed_by_filename_requires_completion(
        self, session: AsyncSession
    ) -> None:
        repo = TranscodeJobRepository(session)
        job = await create_job(repo)
        await session.commit()

        assert await repo.get_completed_by_filename(job.output_filename, "user-1") is None

        await repo.update_status(job.id, "completed", completed_at=datetime.now(timezone.utc))
        await session.commit()

        found = await repo.get_completed_by_filename(job.output_filename, "user-1")
        assert found is not None and found.id == job.id
        assert await repo.get_completed_by_filename(job.output_filename, "user-2") is None


class TestInFlightUniqueness:
    """At most one processing job per video and format."""

    @pytest.mark.asyncio
    async def test_second_processing_row_is_rejected(self, session: AsyncSession) -> None:
        repo = TranscodeJobRepository(session)
        await create_job(repo)
        await session.commit()

        with pytest.raises(IntegrityError):
            await create_job(repo)
        await session.rollback()

    @pytest.mark.asyncio
    async def test_other_format_is_allowed(self, session: AsyncSession) -> None:
        repo = TranscodeJobRepository(session)
        await create_job(repo, fmt="mp4")
        await create_job(repo, fmt="webm")
        await session.commit()

        assert len(await repo.list_by_video("video-1", "user-1")) == 2

    @pytest.mark.asyncio
    async def test_new_job_allowed_after_terminal_status(self, session: AsyncSession) -> None:
        repo = TranscodeJobRepository(session)
        first = await create_job(repo)
        await session.commit()
        await repo.update_status(first.id, TranscodeStatus.COMPLETED)
        await session.commit()

        second = await create_job(repo)
        await session.commit()

        assert second.id != first.id


class TestUpdateStatus:
    """Status moves once, out of processing only."""

    @pytest.mark.asyncio
    async def test_completed_at_accepts_iso_string(self, session_factory) -> None:
        async with session_factory() as session:
            repo = TranscodeJobRepository(session)
            job = await create_job(repo)
            await session.commit()

            updated = await repo.update_status(
                job.id, TranscodeStatus.COMPLETED, completed_at="2024-05-01T12:30:00Z"
            )
            await session.commit()
            assert updated is True

        async with session_factory() as session:
            stored = await TranscodeJobRepository(session).get_by_id(job.id)

        assert stored.status == TranscodeStatus.COMPLETED.value
        completed_at = stored.completed_at
        if completed_at.tzinfo is None:
            completed_at = completed_at.replace(tzinfo=timezone.utc)
        assert completed_at == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_second_terminal_update_is_a_no_op(self, session: AsyncSession) -> None:
        repo = TranscodeJobRepository(session)
        job = await create_job(repo)
        await session.commit()

        assert await repo.update_status(job.id, TranscodeStatus.COMPLETED) is True
        await session.commit()
        assert await repo.update_status(job.id, TranscodeStatus.FAILED, "late") is False
        await session.commit()

        stored = await repo.get_by_id(job.id)
        assert stored.status == TranscodeStatus.COMPLETED.value
        assert stored.error_message is None

    @pytest.mark.asyncio
    async def test_unknown_job_is_reported(self, session: AsyncSession) -> None:
        repo = TranscodeJobRepository(session)
        assert await repo.update_status("missing", TranscodeStatus.FAILED) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "job_id,status",
        [
            ("", TranscodeStatus.COMPLETED),
            ("job", None),
            ("job", ""),
            ("job", TranscodeStatus.PROCESSING),
            ("job", "paused"),
        ],
    )
    async def test_invalid_updates_are_rejected(
        self, session: AsyncSession, job_id, status
    ) -> None:
        repo = TranscodeJobRepository(session)
        with pytest.raises(ValueError):
            await repo.update_status(job_id, status)

    @given(
        updates=st.lists(
            st.sampled_from([TranscodeStatus.COMPLETED, TranscodeStatus.FAILED]),
            min_size=1,
            max_size=5,
        )
    )
    @settings(max_examples=25, deadline=None)
    @pytest.mark.asyncio
    async def test_status_changes_at_most_once(self, updates) -> None:
        """**Feature: video-transcoder, Property: Monotonic Job Status**

        For any sequence of terminal updates, only the first applies and the
        job keeps the status it was first given.
        """
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

            async with factory() as session:
                repo = TranscodeJobRepository(session)
                job = await create_job(repo)
                await session.commit()

                results = []
                for status in updates:
                    results.append(await repo.update_status(job.id, status, "error"))
                    await session.commit()

                stored = await repo.get_by_id(job.id)
        finally:
            await engine.dispose()

        assert results[0] is True
        assert not any(results[1:])
        assert stored.status == updates[0].value

    @pytest.mark.asyncio
    async def test_fail_in_flight_skips_terminal_and_excluded_jobs(
        self, session: AsyncSession
    ) -> None:
        repo = TranscodeJobRepository(session)
        orphan = await create_job(repo, fmt="mp4")
        watched = await create_job(repo, fmt="webm")
        done = await create_job(repo, fmt="avi")
        await session.commit()
        await repo.update_status(done.id, TranscodeStatus.COMPLETED)
        await session.commit()

        failed = await repo.fail_in_flight("Interrupted", exclude_ids={watched.id})
        await session.commit()

        assert failed == [orphan.id]
        session.expire_all()
        assert (await repo.get_by_id(orphan.id)).status == TranscodeStatus.FAILED.value
        assert (await repo.get_by_id(orphan.id)).error_message == "Interrupted"
        assert (await repo.get_by_id(watched.id)).status == TranscodeStatus.PROCESSING.value
        assert (await repo.get_by_id(done.id)).status == TranscodeStatus.COMPLETED.value
        assert await repo.fail_in_flight("Interrupted") == [watched.id]


class TestListing:
    """Owner listings with source video names."""

    @pytest.mark.asyncio
    async def test_list_by_user_joins_video_names(self, session: AsyncSession) -> None:
        videos = VideoRepository(session)
        video = await videos.create(
            user_id="user-1", original_name="Holiday.mov", filename="holiday_1.mov"
        )
        repo = TranscodeJobRepository(session)
        kept = await create_job(repo, video_id=video.id)
        orphan = await create_job(repo, video_id="deleted-video")
        await create_job(repo, video_id=video.id, user_id="user-2", fmt="webm")
        await session.commit()

        listings = {job.id: (name, filename) for job, name, filename in await repo.list_by_user("user-1")}

        assert set(listings) == {kept.id, orphan.id}
        assert listings[kept.id] == ("Holiday.mov", "holiday_1.mov")
        assert listings[orphan.id] == (None, None)

    @pytest.mark.asyncio
    async def test_delete_is_owner_scoped(self, session: AsyncSession) -> None:
        repo = TranscodeJobRepository(session)
        job = await create_job(repo)
        await session.commit()

        assert await repo.delete(job.id, "user-2") is False
        assert await repo.delete(job.id, "user-1") is True
        await session.commit()
        assert await repo.get_by_id(job.id) is None
