"""Database models for the transcoding service."""

import uuid
from enum import Enum

from sqlalchemy import Column, DateTime, Index, String, Text, text

from transcoder.core.database import Base
from transcoder.core.timestamps import utc_now


class TranscodeStatus(str, Enum):
    """Status of a transcoding job."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TranscodeStatus.PROCESSING


IN_FLIGHT_CONDITION = text("status = 'processing'")


class TranscodeJob(Base):
    """One request to convert a source video into a target format.

    Rows are created in ``processing`` and move at most once to ``completed``
    or ``failed``. ``video_id`` is a plain reference: the source video may be
    deleted while its jobs stay listable.
    """
    __tablename__ = "transcode_jobs"
    __table_args__ = (
        Index(
            "uq_transcode_jobs_in_flight",
            "video_id",
            "format",
            unique=True,
            sqlite_where=IN_FLIGHT_CONDITION,
            postgresql_where=IN_FLIGHT_CONDITION,
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Ownership
    video_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)

    # Files
    input_path = Column(String(1024), nullable=False)
    output_path = Column(String(1024), nullable=False)
    output_filename = Column(String(255), nullable=False, unique=True)

    # Target
    format = Column(String(16), nullable=False)

    # Status tracking
    status = Column(String(20), nullable=False, default=TranscodeStatus.PROCESSING.value)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<TranscodeJob {self.id} - {self.format} - {self.status}>"
