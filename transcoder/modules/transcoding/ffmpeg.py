"""FFmpeg transcoding driver.

Starts ``ffmpeg`` as an asyncio subprocess and reports its outcome through a
handle. ``FFmpegTranscoder.start`` returns as soon as the process has been
spawned; the conversion itself runs in the background.
"""

import asyncio
import logging
import os
import re
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from transcoder.core.config import TranscodeConfig
from transcoder.core.errors import ServiceError

logger = logging.getLogger(__name__)

# Number of stderr lines kept for failure messages
STDERR_TAIL_LINES = 20

# Seconds allowed for capability probes
PROBE_TIMEOUT = 10.0

# Duration:  00:01:23.45, start: ...
DURATION_PATTERN = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")

# frame=   24 fps= 12 q=28.0 size=       0kB time=00:00:01.00 bitrate=...
TIME_PATTERN = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")

_LINE_SPLIT = re.compile(r"[\r\n]")


class ProcessStartError(ServiceError):
    """Raised when ffmpeg could not be started."""

    status_code = 500


class FFmpegCapabilitiesError(Exception):
    """Raised when an ffmpeg capability probe fails."""


@dataclass(frozen=True)
class FormatProfile:
    """Codec choice for one output container."""
    video_codec: str
    audio_codec: str
    extra_args: tuple[str, ...] = ()


_FASTSTART = ("-movflags", "+faststart")

FORMAT_PROFILES: dict[str, FormatProfile] = {
    "mp4": FormatProfile("libx264", "aac", _FASTSTART),
    "mov": FormatProfile("libx264", "aac", _FASTSTART),
    "avi": FormatProfile("libxvid", "libmp3lame"),
    "webm": FormatProfile("libvpx", "libvorbis"),
}

DEFAULT_PROFILE = FormatProfile("libx264", "aac", _FASTSTART)


def get_format_profile(fmt: str) -> FormatProfile:
    """Look up the codecs for a target format, falling back to H.264/AAC."""
    return FORMAT_PROFILES.get(fmt.lower(), DEFAULT_PROFILE)


@dataclass
class ConversionRequest:
    """Input for one conversion."""
    job_id: str
    input_path: str
    output_path: str
    format: str


@dataclass
class TranscodeOutcome:
    """Result of a finished ffmpeg process."""
    success: bool
    error_message: Optional[str] = None
    return_code: Optional[int] = None
    elapsed_seconds: float = 0.0


@dataclass
class TranscoderCapabilities:
    """What the local ffmpeg build supports."""
    available: bool
    version: Optional[str] = None
    formats: list[str] = field(default_factory=list)
    codecs: list[str] = field(default_factory=list)
    error: Optional[str] = None


ProgressCallback = Callable[[float], None]


def _parse_clock(hours: str, minutes: str, seconds: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class ProgressTracker:
    """Turn ffmpeg stderr lines into a completion percentage.

    The input duration comes from the ``Duration:`` banner line; each
    ``time=`` status line then yields a percentage in the 0-100 range.
    """

    def __init__(self):
        self.duration: Optional[float] = None
        self.percent: float = 0.0

    def feed(self, line: str) -> Optional[float]:
        """Consume one line; return the new percentage if it carried progress."""
        if self.duration is None:
            match = DURATION_PATTERN.search(line)
            if match:
                self.duration = _parse_clock(*match.groups())
                return None

        match = TIME_PATTERN.search(line)
        if not match or not self.duration:
            return None

        current = _parse_clock(*match.groups())
        self.percent = max(0.0, min(100.0, current / self.duration * 100.0))
        return self.percent


async def _read_lines(stream: asyncio.StreamReader) -> AsyncIterator[str]:
    """Yield stderr lines, treating carriage returns as line breaks."""
    pending = ""
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        pending += chunk.decode("utf-8", errors="replace")
        *lines, pending = _LINE_SPLIT.split(pending)
        for line in lines:
            if line.strip():
                yield line.strip()
    if pending.strip():
        yield pending.strip()


class TranscodeHandle:
    """A running ffmpeg process and the future of its outcome."""

    def __init__(
        self,
        job_id: str,
        process: asyncio.subprocess.Process,
        task: "asyncio.Task[TranscodeOutcome]",
    ):
        self.job_id = job_id
        self.process = process
        self._task = task

    @property
    def pid(self) -> int:
        return self.process.pid

    async def wait(self) -> TranscodeOutcome:
        """Wait for the process to exit and return its outcome."""
        return await asyncio.shield(self._task)


def parse_listing(output: str) -> list[str]:
    """Extract names from an ``ffmpeg -formats`` or ``-codecs`` table.

    Rows follow a dashed separator line and look like ``" DE mp4  MP4 ..."``;
    the name is the second column and may hold several comma-separated aliases.
    """
    names: list[str] = []
    seen: set[str] = set()
    in_table = False

    for line in output.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("--"):
            in_table = True
            continue
        if not in_table:
            continue

        parts = stripped.split()
        if len(parts) < 2:
            continue
        for name in parts[1].split(","):
            if name and name not in seen:
                seen.add(name)
                names.append(name)

    return names


class FFmpegTranscoder:
    """FFmpeg-based video transcoder."""

    def __init__(self, config: TranscodeConfig):
        self.config = config
        self.ffmpeg_path = config.ffmpeg_path

    def build_transcode_command(self, request: ConversionRequest) -> list[str]:
        """Build the ffmpeg argument list for a conversion.

        Args:
            request: Conversion input and output

        Returns:
            FFmpeg command as list of arguments
        """
        profile = get_format_profile(request.format)
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-y",  # Overwrite output
            "-i", request.input_path,
            "-c:v", profile.video_codec,
            "-c:a", profile.audio_codec,
            *profile.extra_args,
            request.output_path,
        ]

    async def start(
        self,
        request: ConversionRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscodeHandle:
        """Spawn ffmpeg for a conversion.

        Returns once the process exists. The returned handle resolves to
        exactly one ``TranscodeOutcome`` when the process exits.

        Raises:
            ProcessStartError: If the input is unusable or ffmpeg cannot be spawned
        """
        input_path = Path(request.input_path)
        if not input_path.is_file() or not os.access(input_path, os.R_OK):
            raise ProcessStartError(
                f"Input file not found or not readable: {request.input_path}"
            )

        try:
            Path(request.output_path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProcessStartError(f"Cannot create output directory: {e}") from e

        cmd = self.build_transcode_command(request)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessStartError(f"Failed to start ffmpeg: {e}") from e

        logger.info(
            "FFmpeg process started",
            extra={"job_id": request.job_id, "pid": process.pid, "command": " ".join(cmd)},
        )

        task = asyncio.create_task(
            self._monitor(process, request, on_progress),
            name=f"ffmpeg-{request.job_id}",
        )
        return TranscodeHandle(request.job_id, process, task)

    async def _monitor(
        self,
        process: asyncio.subprocess.Process,
        request: ConversionRequest,
        on_progress: Optional[ProgressCallback],
    ) -> TranscodeOutcome:
        started = time.monotonic()
        tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        tracker = ProgressTracker()

        async for line in _read_lines(process.stderr):
            tail.append(line)
            percent = tracker.feed(line)
            if percent is None:
                continue
            logger.debug(
                "Transcode progress",
                extra={"job_id": request.job_id, "percent": round(percent, 1)},
            )
            if on_progress is not None:
                try:
                    on_progress(percent)
                except Exception:
                    logger.exception(
                        "Progress callback failed", extra={"job_id": request.job_id}
                    )

        return_code = await process.wait()
        elapsed = time.monotonic() - started

        if return_code == 0:
            return TranscodeOutcome(success=True, return_code=0, elapsed_seconds=elapsed)

        message = "\n".join(tail).strip() or f"ffmpeg exited with code {return_code}"
        return TranscodeOutcome(
            success=False,
            error_message=message,
            return_code=return_code,
            elapsed_seconds=elapsed,
        )

    async def _run_probe(self, *args: str) -> str:
        """Run a short ffmpeg query and return its combined output.

        Raises:
            FFmpegCapabilitiesError: If ffmpeg is missing, times out or fails
        """
        try:
            process = await asyncio.create_subprocess_exec(
                self.ffmpeg_path,
                "-hide_banner",
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise FFmpegCapabilitiesError(f"Failed to run ffmpeg: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), PROBE_TIMEOUT)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise FFmpegCapabilitiesError("ffmpeg command timed out")

        if process.returncode != 0:
            raise FFmpegCapabilitiesError(
                f"ffmpeg {' '.join(args)} exited with code {process.returncode}"
            )
        # FFmpeg writes some listings to stderr
        return (stdout + stderr).decode("utf-8", errors="replace")

    async def describe_capabilities(self) -> TranscoderCapabilities:
        """Report the ffmpeg version and the formats and codecs it lists."""
        try:
            version_output = await self._run_probe("-version")
            formats = parse_listing(await self._run_probe("-formats"))
            codecs = parse_listing(await self._run_probe("-codecs"))
        except FFmpegCapabilitiesError as e:
            logger.warning("FFmpeg capability probe failed", extra={"error": str(e)})
            return TranscoderCapabilities(available=False, error=str(e))

        first_line = version_output.strip().splitlines()[0] if version_output.strip() else ""
        return TranscoderCapabilities(
            available=True,
            version=first_line or None,
            formats=formats,
            codecs=codecs,
        )
