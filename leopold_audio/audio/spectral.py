"""Windowing and spectral utilities.

Every function here is pure: inputs are read, never modified, and results are
freshly allocated numpy arrays or Python floats. Invalid input (an empty
frame, a nonsensical parameter) raises InvalidInputError instead of producing
NaN so that callers can decide how to degrade.
"""

import math
from typing import Union

import numpy as np
from scipy import fft as sp_fft
from scipy import ndimage
from scipy import signal as sp_signal

from ..exceptions import InvalidInputError
from ..models.audio import WindowType
from .buffer import SignalBuffer

SILENCE_FLOOR = 0.01


def _as_samples(samples, min_length: int = 1) -> np.ndarray:
    data = np.asarray(samples, dtype=np.float64)
    if data.ndim != 1:
        raise InvalidInputError(f"Expected a single channel, got shape {data.shape}")
    if data.size < min_length:
        raise InvalidInputError(f"Need at least {min_length} samples, got {data.size}")
    return data


def apply_window(samples, window_type: Union[WindowType, str] = WindowType.HANN) -> np.ndarray:
    """Multiply a frame by a symmetric Hann, Hamming or Blackman window."""
    data = _as_samples(samples, min_length=2)
    try:
        window_type = WindowType(window_type)
    except ValueError as e:
        raise InvalidInputError(f"Unknown window type: {window_type}") from e

    weights = sp_signal.get_window(window_type.value, data.size, fftbins=False)
    return data * weights


def magnitude_spectrum(frame) -> np.ndarray:
    """Magnitudes of the first N/2 frequency bins of a (windowed) frame."""
    data = _as_samples(frame, min_length=2)
    return np.abs(sp_fft.rfft(data))[: data.size // 2]


def bin_frequencies(bin_count: int, sample_rate: int) -> np.ndarray:
    """Center frequency of each bin of an N/2-bin magnitude spectrum."""
    return np.arange(bin_count) * sample_rate / (2 * bin_count)


def _as_magnitudes(magnitudes) -> np.ndarray:
    mags = _as_samples(magnitudes)
    if np.any(mags < 0):
        raise InvalidInputError("Magnitudes must be non-negative")
    return mags


def spectral_centroid(magnitudes, sample_rate: int) -> float:
    """Magnitude-weighted mean frequency, 0.0 for an empty spectrum."""
    mags = _as_magnitudes(magnitudes)
    total = mags.sum()
    if total == 0:
        return 0.0
    freqs = bin_frequencies(mags.size, sample_rate)
    return float(np.dot(freqs, mags) / total)


def spectral_rolloff(magnitudes, sample_rate: int, threshold: float = 0.85) -> float:
    """Lowest frequency below which `threshold` of the spectral energy lies."""
    if not 0 < threshold <= 1:
        raise InvalidInputError(f"Rolloff threshold must be in (0, 1], got {threshold}")
    mags = _as_magnitudes(magnitudes)
    energy = np.cumsum(mags ** 2)
    if energy[-1] == 0:
        return 0.0
    index = int(np.searchsorted(energy, threshold * energy[-1]))
    index = min(index, mags.size - 1)
    return float(bin_frequencies(mags.size, sample_rate)[index])


def dominant_frequency(magnitudes, sample_rate: int) -> float:
    """Frequency of the strongest bin."""
    mags = _as_magnitudes(magnitudes)
    if not mags.any():
        return 0.0
    return float(bin_frequencies(mags.size, sample_rate)[int(np.argmax(mags))])


def spectral_flatness(magnitudes) -> float:
    """Geometric over arithmetic mean of the power spectrum, in [0, 1]."""
    power = _as_magnitudes(magnitudes) ** 2
    mean_power = power.mean()
    if mean_power == 0:
        return 0.0
    geometric = np.exp(np.mean(np.log(power + 1e-12)))
    return float(np.clip(geometric / mean_power, 0.0, 1.0))


def zero_crossing_rate(samples) -> float:
    """Fraction of adjacent sample pairs whose sign differs (0 counts as positive)."""
    data = _as_samples(samples)
    if data.size == 1:
        return 0.0
    non_negative = data >= 0
    crossings = np.count_nonzero(non_negative[1:] != non_negative[:-1])
    return crossings / (data.size - 1)


def rms(samples) -> float:
    data = _as_samples(samples)
    return float(np.sqrt(np.mean(data ** 2)))


def silence_ratio(samples, floor: float = SILENCE_FLOOR) -> float:
    """Share of samples whose magnitude is below `floor`."""
    data = _as_samples(samples)
    return float(np.count_nonzero(np.abs(data) < floor) / data.size)


def detect_peaks(samples, threshold: float, min_distance: int) -> np.ndarray:
    """Find amplitude peaks at least `min_distance` samples apart.

    A peak is an index whose absolute value exceeds `threshold` and is
    strictly greater than every other absolute value within +/- `min_distance`.
    A flat top has no strict maximum, so it yields no peak. Two such indices
    can never lie within `min_distance` of each other.

    Returns:
        Sorted array of peak indices
    """
    magnitude = np.abs(_as_samples(samples))
    if min_distance < 1:
        raise InvalidInputError(f"min_distance must be at least 1, got {min_distance}")
    distance = int(min_distance)

    # Neighbourhood maximum excluding the centre sample
    footprint = np.ones(2 * distance + 1, dtype=bool)
    footprint[distance] = False
    neighbour_max = ndimage.maximum_filter(
        magnitude, footprint=footprint, mode="constant", cval=0.0)

    peaks = np.flatnonzero((magnitude > threshold) & (magnitude > neighbour_max))
    return peaks.astype(np.int64)


def normalize(samples) -> np.ndarray:
    """Scale so the largest absolute sample is 1.0; silence stays silent."""
    data = _as_samples(samples)
    peak = np.max(np.abs(data))
    if peak == 0:
        return np.zeros_like(data)
    return data / peak


def frame_signal(samples, frame_size: int, hop_size: int) -> np.ndarray:
    """Split a signal into full frames; a short signal becomes one short frame."""
    data = _as_samples(samples)
    if frame_size < 1 or hop_size < 1:
        raise InvalidInputError(f"Invalid framing: frame_size={frame_size}, hop_size={hop_size}")
    if data.size <= frame_size:
        return data.reshape(1, -1).copy()
    return np.lib.stride_tricks.sliding_window_view(data, frame_size)[::hop_size].copy()


def resample(buffer: SignalBuffer, target_rate: int) -> SignalBuffer:
    """Nearest-neighbour resampling.

    This does no band-limiting, so downsampling aliases anything above the new
    Nyquist frequency. Good enough for metering and coarse matching only.
    """
    if target_rate <= 0 or int(target_rate) != target_rate:
        raise InvalidInputError(f"Target rate must be a positive integer, got {target_rate}")
    target_rate = int(target_rate)
    old_rate = buffer.sample_rate
    if target_rate == old_rate:
        return SignalBuffer(buffer.samples.copy(), old_rate)

    old_length = buffer.sample_count
    new_length = int(math.floor(old_length * target_rate / old_rate + 0.5))
    indices = (np.arange(new_length, dtype=np.int64) * old_rate) // target_rate
    if old_length:
        indices = np.minimum(indices, old_length - 1)
    return SignalBuffer(buffer.samples[:, indices], target_rate)
