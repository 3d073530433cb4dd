"""PCM WAV encoding and decoding for signal buffers."""

import io
import logging
import wave
from pathlib import Path
from typing import BinaryIO, Union

import numpy as np

from ..exceptions import EncodingError
from .buffer import SignalBuffer

logger = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44
SAMPLE_WIDTH = 2  # 16-bit


def wav_size(sample_count: int, channel_count: int) -> int:
    """Size in bytes of the encoded file for a buffer of this shape."""
    return WAV_HEADER_SIZE + sample_count * channel_count * SAMPLE_WIDTH


def quantize(samples) -> np.ndarray:
    """Convert float samples to int16, clamping to [-1, 1] and truncating toward zero."""
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return np.trunc(scaled).astype("<i2")


def encode_wav(buffer: SignalBuffer) -> bytes:
    """Serialize a buffer as a canonical 44-byte-header, 16-bit PCM WAV file.

    Args:
        buffer: Samples to encode

    Returns:
        The complete WAV file contents

    Raises:
        EncodingError: If the buffer has no channels or ragged channels
    """
    channels = [np.asarray(channel, dtype=np.float64) for channel in buffer.samples]
    if not channels:
        raise EncodingError("Cannot encode a buffer with no channels")
    lengths = {channel.size for channel in channels}
    if len(lengths) != 1:
        raise EncodingError(f"Channel lengths differ: {sorted(lengths)}")

    interleaved = quantize(np.stack(channels, axis=1).ravel())

    output = io.BytesIO()
    try:
        with wave.open(output, "wb") as wf:
            wf.setnchannels(len(channels))
            wf.setsampwidth(SAMPLE_WIDTH)
            wf.setframerate(int(buffer.sample_rate))
            wf.writeframes(interleaved.tobytes())
    except wave.Error as e:
        raise EncodingError(f"Failed to write WAV data: {e}") from e

    data = output.getvalue()
    logger.debug(f"Encoded {len(channels)}-channel buffer: {lengths.pop()} samples, "
                 f"{len(data)} bytes")
    return data


def decode_wav(source: Union[bytes, str, Path, BinaryIO]) -> SignalBuffer:
    """Read a 16-bit PCM WAV file back into a SignalBuffer.

    Args:
        source: File contents, a path, or an open binary file

    Raises:
        EncodingError: If the data is not 16-bit PCM WAV
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    elif isinstance(source, Path):
        source = str(source)

    try:
        with wave.open(source, "rb") as wf:
            if wf.getsampwidth() != SAMPLE_WIDTH:
                raise EncodingError(
                    f"Only 16-bit PCM is supported, got {wf.getsampwidth() * 8}-bit samples")
            channel_count = wf.getnchannels()
            sample_rate = wf.getframerate()
            frames = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as e:
        raise EncodingError(f"Not a readable WAV file: {e}") from e

    samples = np.frombuffer(frames, dtype="<i2").astype(np.float64) / 32768.0
    return SignalBuffer.from_interleaved(samples, sample_rate, channel_count)


class WavEncoder:
    """16-bit PCM WAV encoder; the default encoder of a recording session."""

    def encode(self, buffer: SignalBuffer) -> bytes:
        return encode_wav(buffer)
