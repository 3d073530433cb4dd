"""Services layer: recording sessions and the current-recording store."""

from .recording_store import RecordingStore
from .recording_session import RecordingSessionController

__all__ = [
    "RecordingStore",
    "RecordingSessionController",
]
