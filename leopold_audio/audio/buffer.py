"""Signal buffer and the chunk accumulator used while recording."""

import logging
import threading
from collections import deque
from typing import Optional

import numpy as np

from ..exceptions import ChannelIndexError, InvalidInputError

logger = logging.getLogger(__name__)


class SignalBuffer:
    """Immutable multi-channel audio samples with rate metadata.

    Samples are floats, nominally in [-1.0, 1.0], stored as a read-only
    array of shape (channel_count, sample_count).
    """

    bit_depth = 16  # Depth used when the buffer is encoded

    def __init__(self, samples, sample_rate: int):
        """Initialize signal buffer.

        Args:
            samples: One sequence per channel, or a single 1-D sequence for mono
            sample_rate: Sample rate in Hz
        """
        if int(sample_rate) != sample_rate or sample_rate <= 0:
            raise InvalidInputError(f"Sample rate must be a positive integer, got {sample_rate}")

        try:
            data = np.array(samples, dtype=np.float64)
        except ValueError as e:
            raise InvalidInputError(f"Channels must all have the same length: {e}") from e

        if data.ndim == 1:
            data = data.reshape(1, -1)
        if data.ndim != 2 or data.shape[0] < 1:
            raise InvalidInputError(f"Expected (channels, samples) data, got shape {data.shape}")
        if not np.all(np.isfinite(data)):
            raise InvalidInputError("Samples must be finite")

        data.setflags(write=False)
        self._samples = data
        self._sample_rate = int(sample_rate)

    @classmethod
    def from_interleaved(cls, data, sample_rate: int, channel_count: int) -> "SignalBuffer":
        """Build a buffer from frame-interleaved samples (L R L R ...)."""
        flat = np.asarray(data, dtype=np.float64).ravel()
        if channel_count < 1 or flat.size % channel_count:
            raise InvalidInputError(
                f"{flat.size} interleaved samples do not divide into {channel_count} channels")
        return cls(flat.reshape(-1, channel_count).T, sample_rate)

    @property
    def samples(self) -> np.ndarray:
        return self._samples

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channel_count(self) -> int:
        return self._samples.shape[0]

    @property
    def sample_count(self) -> int:
        """Number of samples per channel."""
        return self._samples.shape[1]

    def duration(self) -> float:
        """Duration in seconds."""
        return self.sample_count / self._sample_rate

    def get_channel(self, index: int) -> np.ndarray:
        """Return the samples of one channel."""
        if index < 0 or index >= self.channel_count:
            raise ChannelIndexError(
                f"Channel {index} out of range for a {self.channel_count}-channel buffer")
        return self._samples[index]

    def mono(self) -> np.ndarray:
        """Average all channels into a single analysis signal."""
        if self.channel_count == 1:
            return self._samples[0].copy()
        return self._samples.mean(axis=0)

    def __len__(self) -> int:
        return self.sample_count

    def __repr__(self) -> str:
        return (f"SignalBuffer(channels={self.channel_count}, samples={self.sample_count}, "
                f"sample_rate={self._sample_rate})")


class ChunkAccumulator:
    """Collects captured chunks, in arrival order, until a session is stopped."""

    def __init__(self, sample_rate: int, channels: int = 1):
        """Initialize chunk accumulator.

        Args:
            sample_rate: Audio sample rate
            channels: Number of audio channels
        """
        self.sample_rate = sample_rate
        self.channels = channels

        # Thread-safe buffer, the capture device delivers on its own thread
        self.chunks = deque()
        self.lock = threading.Lock()
        self.frame_count = 0
        self.chunk_count = 0

    def append(self, chunk) -> np.ndarray:
        """Add a captured chunk.

        Args:
            chunk: Float samples, either (frames, channels) or flat interleaved

        Returns:
            The chunk as a (frames, channels) array
        """
        data = np.array(chunk, dtype=np.float64)
        if data.ndim == 2 and data.shape[1] == self.channels:
            frames = data
        elif data.size % self.channels == 0:
            frames = data.reshape(-1, self.channels)
        else:
            raise InvalidInputError(
                f"Chunk of {data.size} samples does not fit {self.channels} channels")

        with self.lock:
            self.chunks.append(frames)
            self.frame_count += frames.shape[0]
            self.chunk_count += 1

            logger.debug(f"Added audio chunk #{self.chunk_count}: {frames.shape[0]} frames, "
                         f"{self.frame_count} frames total")
        return frames

    def latest(self) -> Optional[np.ndarray]:
        """Most recent chunk, or None before the first one arrives."""
        with self.lock:
            return self.chunks[-1] if self.chunks else None

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / self.sample_rate

    def to_signal_buffer(self) -> SignalBuffer:
        """Concatenate everything received so far into one SignalBuffer."""
        with self.lock:
            if self.chunks:
                frames = np.concatenate(list(self.chunks), axis=0)
            else:
                frames = np.zeros((0, self.channels))

        logger.debug(f"Assembled signal buffer from {self.chunk_count} chunks "
                     f"({frames.shape[0]} frames)")
        return SignalBuffer(frames.T, self.sample_rate)

    def clear(self) -> None:
        """Discard all accumulated chunks."""
        with self.lock:
            self.chunks.clear()
            self.frame_count = 0
            self.chunk_count = 0
            logger.debug("Chunk accumulator cleared")
