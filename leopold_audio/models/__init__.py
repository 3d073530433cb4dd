"""Data models for the Leopold audio core."""

from .audio import WindowType, PatternType, AudioFeatures, Recording, format_duration
from .session import SessionStatus, SessionProgress

__all__ = [
    "WindowType",
    "PatternType",
    "AudioFeatures",
    "Recording",
    "format_duration",
    "SessionStatus",
    "SessionProgress",
]
