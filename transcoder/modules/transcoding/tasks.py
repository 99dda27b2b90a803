"""Background tasks for the transcoding service.

Each started conversion gets an asyncio task that waits for the ffmpeg
outcome and writes the terminal status with its own database session.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from transcoder.core.logging import job_context, log_warning
from transcoder.core.metrics import (
    TRANSCODE_DURATION_SECONDS,
    TRANSCODE_JOBS_IN_FLIGHT,
    TRANSCODE_JOBS_TOTAL,
)
from transcoder.core.timestamps import utc_now
from transcoder.modules.transcoding.ffmpeg import (
    ConversionRequest,
    ProgressCallback,
    TranscodeHandle,
    TranscodeOutcome,
    TranscoderCapabilities,
)
from transcoder.modules.transcoding.models import TranscodeJob, TranscodeStatus
from transcoder.modules.transcoding.repository import TranscodeJobRepository

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]

INTERRUPTED_MESSAGE = "Interrupted by service restart"


class Transcoder(Protocol):
    """Conversion driver interface used by the transcoding service."""

    async def start(
        self,
        request: ConversionRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscodeHandle: ...

    async def describe_capabilities(self) -> TranscoderCapabilities: ...


class TranscodeTaskManager:
    """Starts conversions and records their outcomes.

    Holds references to the reconciliation tasks so they are not garbage
    collected mid-flight, and drains them on shutdown. Running ffmpeg
    processes are never killed.
    """

    def __init__(self, session_factory: SessionFactory, transcoder: Transcoder):
        self.session_factory = session_factory
        self.transcoder = transcoder
        self._tasks: set[asyncio.Task] = set()
        self._job_ids: set[str] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def launch(self, job: TranscodeJob) -> asyncio.Task:
        """Start ffmpeg for a job and schedule outcome reconciliation.

        Returns:
            The reconciliation task

        Raises:
            ProcessStartError: If the driver could not start the process
        """
        request = ConversionRequest(
            job_id=job.id,
            input_path=job.input_path,
            output_path=job.output_path,
            format=job.format,
        )
        handle = await self.transcoder.start(request)
        self._job_ids.add(job.id)

        TRANSCODE_JOBS_IN_FLIGHT.inc()
        task = asyncio.create_task(
            self._reconcile(handle, job.format),
            name=f"transcode-reconcile-{job.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _reconcile(self, handle: TranscodeHandle, fmt: str) -> None:
        job_id = handle.job_id
        with job_context(job_id):
            await self._settle(handle, job_id, fmt)

    async def _settle(self, handle: TranscodeHandle, job_id: str, fmt: str) -> None:
        try:
            try:
                outcome = await handle.wait()
            except Exception as e:
                logger.exception(
                    "Transcode monitor failed", extra={"job_id": job_id, "pid": handle.pid}
                )
                outcome = TranscodeOutcome(success=False, error_message=str(e) or repr(e))

            await self._record_outcome(job_id, fmt, outcome)
        except Exception:
            logger.exception("Failed to record transcode outcome", extra={"job_id": job_id})
        finally:
            self._job_ids.discard(job_id)
            TRANSCODE_JOBS_IN_FLIGHT.dec()

    async def _record_outcome(self, job_id: str, fmt: str, outcome: TranscodeOutcome) -> None:
        if outcome.success:
            status = TranscodeStatus.COMPLETED
            completed_at = utc_now()
            error_message = None
        else:
            status = TranscodeStatus.FAILED
            completed_at = None
            error_message = outcome.error_message

        async with self.session_factory() as session:
            repo = TranscodeJobRepository(session)
            updated = await repo.update_status(
                job_id,
                status,
                error_message=error_message,
                completed_at=completed_at,
            )
            await session.commit()

        TRANSCODE_JOBS_TOTAL.labels(format=fmt, status=status.value).inc()
        TRANSCODE_DURATION_SECONDS.labels(format=fmt).observe(outcome.elapsed_seconds)

        if not updated:
            log_warning(
                logger,
                "Transcode outcome not recorded; job deleted or already terminal",
                job_id=job_id,
                status=status.value,
            )
        elif outcome.success:
            logger.info("Transcode completed", extra={"job_id": job_id, "format": fmt})
        else:
            logger.warning(
                "Transcode failed",
                extra={"job_id": job_id, "format": fmt, "error": error_message},
            )

    async def recover_interrupted(self) -> list[str]:
        """Fail processing jobs that no task of this manager is watching.

        Run at startup, before requests are served: jobs left processing by a
        previous run have lost their ffmpeg process and would otherwise block
        new requests for the same video and format.

        Returns:
            IDs of the jobs marked failed
        """
        async with self.session_factory() as session:
            job_ids = await TranscodeJobRepository(session).fail_in_flight(
                INTERRUPTED_MESSAGE, exclude_ids=self._job_ids
            )
            await session.commit()

        if job_ids:
            log_warning(
                logger,
                "Failed transcode jobs interrupted by restart",
                count=len(job_ids),
                job_ids=job_ids,
            )
        return job_ids

    async def drain(self, timeout: float) -> int:
        """Wait for running reconciliations to finish.

        Returns:
            Number of tasks still running after the timeout
        """
        if not self._tasks:
            return 0

        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(
                "Transcode tasks still running at shutdown",
                extra={"pending": len(pending)},
            )
        return len(pending)
