"""Prometheus metrics for the transcoder service.

All collectors live in a private registry so tests and embedded apps do not
collide with the process-wide default one.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

REGISTRY = CollectorRegistry()

APP_INFO = Info("video_transcoder_app", "Application information", registry=REGISTRY)

# HTTP
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "HTTP requests by method, route template and status code",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=REGISTRY,
)
HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently being served",
    ["method"],
    registry=REGISTRY,
)

# Transcoding
TRANSCODE_JOBS_TOTAL = Counter(
    "transcode_jobs_total",
    "Transcode jobs reaching a terminal status, by target format",
    ["format", "status"],
    registry=REGISTRY,
)
TRANSCODE_JOBS_IN_FLIGHT = Gauge(
    "transcode_jobs_in_flight",
    "ffmpeg processes started and not yet reconciled",
    registry=REGISTRY,
)
TRANSCODE_DURATION_SECONDS = Histogram(
    "transcode_duration_seconds",
    "Wall-clock time from ffmpeg spawn to exit",
    ["format"],
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800, 3600),
    registry=REGISTRY,
)


def render_latest() -> tuple[bytes, str]:
    """Exposition payload and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    APP_INFO.info({"version": version, "environment": environment})
