"""Core module for configuration and utilities."""

from transcoder.core.config import TranscodeConfig, settings
from transcoder.core.database import Base, async_session_maker, get_db

__all__ = [
    "TranscodeConfig",
    "settings",
    "Base",
    "async_session_maker",
    "get_db",
]
