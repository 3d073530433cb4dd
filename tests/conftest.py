"""Pytest configuration and fixtures for leopold_audio tests."""

import pytest
import tempfile
import logging
from unittest.mock import Mock, patch
import numpy as np

from leopold_audio.audio.device import CaptureDevice, StreamHandle


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    for marker in ("unit", "integration", "slow"):
        config.addinivalue_line("markers", f"{marker}: {marker} tests")


class FakeCaptureDevice(CaptureDevice):
    """Capture device driven by the test: chunks and failures are pushed by hand."""

    def __init__(self, supported=True, acquire_error=None):
        self.supported = supported
        self.acquire_error = acquire_error
        self.handles = []
        self.released = []
        self.on_chunk = None
        self.on_error = None
        self.before_acquire_returns = None

    def is_supported(self):
        return self.supported

    def acquire(self, sample_rate, channels, chunk_size, on_chunk, on_error):
        if self.acquire_error is not None:
            raise self.acquire_error
        self.on_chunk = on_chunk
        self.on_error = on_error
        handle = StreamHandle(sample_rate=sample_rate, channels=channels)
        self.handles.append(handle)
        if self.before_acquire_returns is not None:
            self.before_acquire_returns()
        return handle

    def release(self, handle):
        self.released.append(handle)

    def feed(self, chunk):
        self.on_chunk(chunk)

    def fail(self, reason):
        self.on_error(reason)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fake_device():
    return FakeCaptureDevice()


@pytest.fixture
def fake_device_factory():
    return FakeCaptureDevice


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sine_wave():
    """Generate float sine waves in [-1, 1]."""
    def generate(freq=1000.0, duration_seconds=1.0, sample_rate=44100, amplitude=0.5):
        t = np.arange(int(duration_seconds * sample_rate)) / sample_rate
        return amplitude * np.sin(2 * np.pi * freq * t)

    return generate


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns as float samples."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000):
        """Generate audio data for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence', 'pulses')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz
        """
        samples = int(duration_seconds * sample_rate)
        t = np.arange(samples) / sample_rate

        if pattern == "sine":
            return 0.5 * np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            rng = np.random.default_rng(1234)
            return rng.uniform(-0.8, 0.8, samples)
        elif pattern == "silence":
            return np.zeros(samples)
        elif pattern == "pulses":
            # 30 ms bursts of 3 kHz every 200 ms, each swelling and fading like a chirp
            carrier = 0.8 * np.sin(2 * np.pi * 3000 * t)
            position = t % 0.2
            gate = np.where(position < 0.03, np.sin(np.pi * position / 0.03), 0.0)
            return carrier * gate
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

    return generate_audio


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    pyaudio = pytest.importorskip("pyaudio")
    with patch.object(pyaudio, 'PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }
