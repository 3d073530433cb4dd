"""Holder of the most recent finished recording."""

import logging
import os
import tempfile
import threading
from typing import Callable, List, Optional

from ..models.audio import Recording

logger = logging.getLogger(__name__)

StoreListener = Callable[[Optional[Recording]], None]


class RecordingStore:
    """Keeps at most one current Recording and its playback file.

    This is where finished recordings are handed to whatever submits the
    observation. Listeners are told about every change.
    """

    def __init__(self, playback_dir: Optional[str] = None):
        """Initialize recording store.

        Args:
            playback_dir: Directory for temporary playback files (system temp dir if None)
        """
        self.playback_dir = playback_dir
        self._current: Optional[Recording] = None
        self._playback_path: Optional[str] = None
        self._listeners: List[StoreListener] = []
        self._lock = threading.RLock()

    def get_current(self) -> Optional[Recording]:
        return self._current

    def set_current(self, recording: Recording) -> None:
        """Replace the current recording, releasing the previous one's playback file."""
        with self._lock:
            self._release_playback()
            self._current = recording
            listeners = list(self._listeners)
        logger.info(f"Current recording set: {recording.id} "
                    f"({recording.duration_seconds:.2f}s, {recording.size} bytes)")
        self._notify(listeners, recording)

    def clear(self) -> None:
        """Drop the current recording."""
        with self._lock:
            if self._current is None:
                return
            self._release_playback()
            self._current = None
            listeners = list(self._listeners)
        logger.info("Current recording cleared")
        self._notify(listeners, None)

    def playback_path(self) -> Optional[str]:
        """Path of a WAV file holding the current recording, created on first use.

        The file lives until the recording is replaced or cleared.
        """
        with self._lock:
            if self._current is None:
                return None
            if self._playback_path is None:
                fd, path = tempfile.mkstemp(suffix=".wav", prefix="leopold_", dir=self.playback_dir)
                with os.fdopen(fd, "wb") as f:
                    f.write(self._current.encoded_bytes)
                self._playback_path = path
                logger.debug(f"Playback file written: {path}")
            return self._playback_path

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _release_playback(self) -> None:
        if self._playback_path is None:
            return
        try:
            os.remove(self._playback_path)
            logger.debug(f"Playback file removed: {self._playback_path}")
        except FileNotFoundError:
            logger.debug(f"Playback file already gone: {self._playback_path}")
        self._playback_path = None

    @staticmethod
    def _notify(listeners: List[StoreListener], recording: Optional[Recording]) -> None:
        for listener in listeners:
            try:
                listener(recording)
            except Exception as e:
                logger.exception(f"Recording store listener failed: {e}")
