"""Video asset model.

Uploaded source files and their metadata. Transcode jobs reference videos by
id without a foreign key so that deleting a video leaves its jobs in place.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from transcoder.core.database import Base
from transcoder.core.timestamps import utc_now


class Video(Base):
    """An uploaded source video owned by one user."""

    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)  # bytes
    mimetype: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, filename={self.filename})>"
