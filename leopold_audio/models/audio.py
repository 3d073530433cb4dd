"""Audio-related data models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Dict, Any


class WindowType(Enum):
    """Analysis window applied to a frame before the spectrum is taken."""
    HANN = "hann"
    HAMMING = "hamming"
    BLACKMAN = "blackman"


class PatternType(Enum):
    """Temporal shape of a call, classified from envelope peaks."""
    SINGLE = "single"
    REPETITIVE = "repetitive"
    COMPLEX = "complex"
    CONTINUOUS = "continuous"


@dataclass(frozen=True)
class AudioFeatures:
    """Acoustic descriptors computed once for a finished recording."""
    dominant_frequency: float
    spectral_centroid: float
    spectral_rolloff: float
    zero_crossing_rate: float
    rms: float
    amplitude: float  # Peak absolute amplitude
    frequency_range: Tuple[float, float]
    noise_ratio: float
    pattern_type: PatternType
    average_amplitude: float = 0.0
    silence_ratio: float = 0.0
    duration_seconds: float = 0.0
    sample_rate: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "dominant_frequency": self.dominant_frequency,
            "spectral_centroid": self.spectral_centroid,
            "spectral_rolloff": self.spectral_rolloff,
            "zero_crossing_rate": self.zero_crossing_rate,
            "rms": self.rms,
            "amplitude": self.amplitude,
            "frequency_range": list(self.frequency_range),
            "noise_ratio": self.noise_ratio,
            "pattern_type": self.pattern_type.value,
            "average_amplitude": self.average_amplitude,
            "silence_ratio": self.silence_ratio,
            "duration_seconds": self.duration_seconds,
            "sample_rate": self.sample_rate,
        }


@dataclass(frozen=True)
class Recording:
    """A finished recording: encoded WAV bytes plus what we know about them."""
    encoded_bytes: bytes
    duration_seconds: float
    sample_rate: int
    channel_count: int
    features: Optional[AudioFeatures] = None
    bit_depth: int = 16
    format: str = "audio/wav"
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_buffer(cls, buffer, encoded_bytes: bytes,
                    features: Optional[AudioFeatures] = None) -> "Recording":
        """Build a recording for an encoded SignalBuffer."""
        return cls(
            encoded_bytes=encoded_bytes,
            duration_seconds=buffer.duration(),
            sample_rate=buffer.sample_rate,
            channel_count=buffer.channel_count,
            bit_depth=buffer.bit_depth,
            features=features,
        )

    @property
    def size(self) -> int:
        """Size of the encoded file in bytes."""
        return len(self.encoded_bytes)

    @property
    def file_name(self) -> str:
        return f"recording_{self.created_at.strftime('%Y%m%d_%H%M%S')}.wav"

    def to_dict(self, include_bytes: bool = False) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary (bytes omitted by default)."""
        data = {
            "id": self.id,
            "file_name": self.file_name,
            "format": self.format,
            "size": self.size,
            "duration_seconds": self.duration_seconds,
            "sample_rate": self.sample_rate,
            "channels": self.channel_count,
            "bit_depth": self.bit_depth,
            "created_at": self.created_at.isoformat(),
            "features": self.features.to_dict() if self.features else None,
        }
        if include_bytes:
            data["encoded_bytes"] = self.encoded_bytes
        return data


def format_duration(seconds: float) -> str:
    """Format a duration for display: '4.2s', '3:07' or '1:02:09'."""
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)
    if minutes < 60:
        return f"{minutes}:{remaining_seconds:02d}"

    hours = minutes // 60
    remaining_minutes = minutes % 60
    return f"{hours}:{remaining_minutes:02d}:{remaining_seconds:02d}"
