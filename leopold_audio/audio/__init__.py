"""Audio buffering, analysis and encoding."""

from .buffer import SignalBuffer, ChunkAccumulator
from .device import CaptureDevice, StreamHandle
from .features import extract_features
from .wav import encode_wav, decode_wav, WavEncoder

__all__ = [
    'SignalBuffer',
    'ChunkAccumulator',
    'CaptureDevice',
    'StreamHandle',
    'extract_features',
    'encode_wav',
    'decode_wav',
    'WavEncoder',
]
