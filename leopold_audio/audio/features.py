"""Acoustic feature extraction for finished recordings."""

import logging
from typing import Tuple

import numpy as np

from ..exceptions import InvalidInputError
from ..models.audio import AudioFeatures, PatternType, WindowType
from . import spectral
from .buffer import SignalBuffer

logger = logging.getLogger(__name__)

# Bins at least this fraction of the loudest bin count towards the frequency range
RANGE_FLOOR = 0.1

ENVELOPE_HOP_SECONDS = 0.01
PEAK_THRESHOLD = 0.5
PEAK_SPACING_SECONDS = 0.05
CONTINUOUS_ACTIVE_SHARE = 0.8
REPETITIVE_MAX_VARIATION = 0.25


def extract_features(buffer: SignalBuffer,
                     window_type: WindowType = WindowType.HANN,
                     frame_size: int = 2048,
                     rolloff_threshold: float = 0.85) -> AudioFeatures:
    """Compute the descriptor set for a whole buffer.

    The buffer is mixed down to mono and cut into half-overlapping frames;
    spectral descriptors come from the average magnitude spectrum of those
    frames, time-domain descriptors from the full signal.

    Args:
        buffer: Finished recording
        window_type: Analysis window applied to each frame
        frame_size: Samples per analysis frame
        rolloff_threshold: Energy fraction used for the rolloff frequency

    Returns:
        AudioFeatures for the buffer

    Raises:
        InvalidInputError: If the buffer is too short to analyse
    """
    if buffer.sample_count < 2:
        raise InvalidInputError(
            f"Need at least 2 samples for feature extraction, got {buffer.sample_count}")
    if frame_size < 2:
        raise InvalidInputError(f"Frame size must be at least 2, got {frame_size}")

    signal = buffer.mono()
    sample_rate = buffer.sample_rate

    magnitudes = average_spectrum(signal, window_type, frame_size)
    peak_amplitude = float(np.max(np.abs(signal)))

    features = AudioFeatures(
        dominant_frequency=spectral.dominant_frequency(magnitudes, sample_rate),
        spectral_centroid=spectral.spectral_centroid(magnitudes, sample_rate),
        spectral_rolloff=spectral.spectral_rolloff(magnitudes, sample_rate, rolloff_threshold),
        zero_crossing_rate=spectral.zero_crossing_rate(signal),
        rms=min(spectral.rms(signal), 1.0),
        amplitude=min(peak_amplitude, 1.0),
        frequency_range=frequency_range(magnitudes, sample_rate),
        noise_ratio=spectral.spectral_flatness(magnitudes),
        pattern_type=classify_pattern(signal, sample_rate),
        average_amplitude=min(float(np.mean(np.abs(signal))), 1.0),
        silence_ratio=spectral.silence_ratio(signal),
        duration_seconds=buffer.duration(),
        sample_rate=sample_rate,
    )
    logger.debug(f"Extracted features: dominant={features.dominant_frequency:.1f}Hz, "
                 f"centroid={features.spectral_centroid:.1f}Hz, pattern={features.pattern_type.value}")
    return features


def average_spectrum(signal: np.ndarray, window_type: WindowType, frame_size: int) -> np.ndarray:
    """Mean magnitude spectrum over half-overlapping windowed frames."""
    # Even frame lengths keep bin k at exactly k * rate / N
    if signal.size < frame_size and signal.size % 2:
        signal = signal[:-1]
    frames = spectral.frame_signal(signal, frame_size, max(frame_size // 2, 1))
    spectra = [spectral.magnitude_spectrum(spectral.apply_window(frame, window_type))
               for frame in frames]
    return np.mean(spectra, axis=0)


def frequency_range(magnitudes: np.ndarray, sample_rate: int) -> Tuple[float, float]:
    """Lowest and highest frequency carrying a meaningful share of the energy."""
    peak = magnitudes.max()
    if peak == 0:
        return (0.0, 0.0)
    freqs = spectral.bin_frequencies(magnitudes.size, sample_rate)
    strong = np.flatnonzero(magnitudes >= RANGE_FLOOR * peak)
    return (float(freqs[strong[0]]), float(freqs[strong[-1]]))


def amplitude_envelope(signal: np.ndarray, sample_rate: int,
                       hop_seconds: float = ENVELOPE_HOP_SECONDS) -> np.ndarray:
    """RMS of consecutive non-overlapping blocks of `hop_seconds`."""
    hop = max(int(sample_rate * hop_seconds), 1)
    block_count = max(signal.size // hop, 1)
    blocks = np.array_split(signal[: block_count * hop] if signal.size >= hop else signal,
                            block_count)
    return np.array([spectral.rms(block) for block in blocks])


def classify_pattern(signal: np.ndarray, sample_rate: int) -> PatternType:
    """Classify the temporal shape of a call from its envelope peaks."""
    envelope = spectral.normalize(amplitude_envelope(signal, sample_rate))
    if not envelope.any():
        return PatternType.SINGLE

    active_share = np.count_nonzero(envelope >= PEAK_THRESHOLD) / envelope.size
    if active_share >= CONTINUOUS_ACTIVE_SHARE:
        return PatternType.CONTINUOUS

    spacing = max(int(round(PEAK_SPACING_SECONDS / ENVELOPE_HOP_SECONDS)), 1)
    peaks = spectral.detect_peaks(envelope, PEAK_THRESHOLD, spacing)
    if peaks.size <= 1:
        return PatternType.SINGLE

    intervals = np.diff(peaks)
    variation = intervals.std() / intervals.mean()
    if variation <= REPETITIVE_MAX_VARIATION:
        return PatternType.REPETITIVE
    return PatternType.COMPLEX
