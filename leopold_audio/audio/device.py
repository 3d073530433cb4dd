"""Capture device abstraction injected into the recording session controller."""

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np

ChunkCallback = Callable[[np.ndarray], None]
ErrorCallback = Callable[[str], None]

_stream_ids = itertools.count(1)


@dataclass
class StreamHandle:
    """A live input stream owned by exactly one recording session."""
    sample_rate: int
    channels: int
    native: Any = None  # Backend-specific stream state
    stream_id: int = field(default_factory=lambda: next(_stream_ids))


class CaptureDevice(ABC):
    """Source of live microphone audio.

    Implementations deliver float32 chunks of shape (frames, channels) in
    capture order through `on_chunk`, and report a failure of a running
    stream (disconnect, stream ended) through `on_error` with a readable reason.
    """

    @abstractmethod
    def is_supported(self) -> bool:
        """Return True if audio capture is possible on this system."""
        pass

    @abstractmethod
    def acquire(
        self,
        sample_rate: int,
        channels: int,
        chunk_size: int,
        on_chunk: ChunkCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle:
        """Open the microphone and start streaming.

        Raises:
            MicrophonePermissionError: If access is denied or no device is available
        """
        pass

    @abstractmethod
    def release(self, handle: StreamHandle) -> None:
        """Stop the stream and free the device."""
        pass
