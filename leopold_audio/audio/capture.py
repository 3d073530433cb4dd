"""PyAudio-backed microphone capture."""

import logging
import threading
from dataclasses import dataclass
from threading import Thread, Event
from typing import Optional

import numpy as np
import pyaudio

from ..exceptions import MicrophonePermissionError
from .device import CaptureDevice, ChunkCallback, ErrorCallback, StreamHandle

logger = logging.getLogger(__name__)


@dataclass
class _PyAudioStream:
    pyaudio_instance: pyaudio.PyAudio
    stream: "pyaudio.Stream"
    stop_event: Event
    thread: Optional[Thread] = None


class PyAudioCaptureDevice(CaptureDevice):
    """Reads 16-bit chunks from the default input device on a background thread."""

    def __init__(self, input_device_index: Optional[int] = None):
        """Initialize capture device.

        Args:
            input_device_index: PyAudio device index, or None for the system default
        """
        self.input_device_index = input_device_index

    def is_supported(self) -> bool:
        """Check if an input device is available for recording."""
        pa = None
        try:
            pa = pyaudio.PyAudio()
            if self.input_device_index is None:
                pa.get_default_input_device_info()
            else:
                pa.get_device_info_by_index(self.input_device_index)
            return True
        except (OSError, IOError) as e:
            logger.debug(f"Microphone not available: {e}")
            return False
        finally:
            if pa:
                pa.terminate()

    def acquire(
        self,
        sample_rate: int,
        channels: int,
        chunk_size: int,
        on_chunk: ChunkCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle:
        """Open the input stream and start the reader thread."""
        pyaudio_instance = pyaudio.PyAudio()
        try:
            stream = pyaudio_instance.open(
                format=pyaudio.paInt16,
                channels=channels,
                rate=sample_rate,
                input=True,
                input_device_index=self.input_device_index,
                frames_per_buffer=chunk_size,
                stream_callback=None
            )
        except (OSError, IOError, ValueError) as e:
            pyaudio_instance.terminate()
            logger.error(f"Could not open audio input: {e}")
            raise MicrophonePermissionError(
                f"Microphone is unavailable ({e}). Check that a microphone is connected "
                f"and that this application is allowed to use it.") from e

        logger.info(f"Audio stream opened: {sample_rate}Hz, {channels} channel(s), "
                    f"{chunk_size} samples/chunk")

        native = _PyAudioStream(pyaudio_instance=pyaudio_instance, stream=stream,
                                stop_event=Event())
        handle = StreamHandle(sample_rate=sample_rate, channels=channels, native=native)

        native.thread = Thread(
            target=self._record_continuously,
            args=(native, channels, chunk_size, on_chunk, on_error),
            daemon=True,
        )
        native.thread.name = f"AudioCaptureThread-{handle.stream_id}"
        native.thread.start()
        return handle

    def _record_continuously(self, native: _PyAudioStream, channels: int, chunk_size: int,
                             on_chunk: ChunkCallback, on_error: ErrorCallback) -> None:
        """Internal method: continuous recording loop in background thread."""
        total_chunks = 0
        while not native.stop_event.is_set():
            try:
                audio_chunk = native.stream.read(chunk_size, exception_on_overflow=False)
            except (OSError, IOError) as e:
                if native.stop_event.is_set():
                    break
                logger.error(f"Audio input failed after {total_chunks} chunks: {e}")
                on_error(f"The microphone stopped delivering audio ({e}). "
                         f"It may have been disconnected.")
                return

            total_chunks += 1
            samples = np.frombuffer(audio_chunk, dtype="<i2").astype(np.float32) / 32768.0
            on_chunk(samples.reshape(-1, channels))

        logger.debug(f"Capture loop finished after {total_chunks} chunks")

    def release(self, handle: StreamHandle) -> None:
        """Stop the reader thread and close the stream."""
        native: _PyAudioStream = handle.native
        native.stop_event.set()

        # Wait for recording thread to finish (unless the reader itself is releasing)
        if native.thread and native.thread.is_alive() and native.thread is not threading.current_thread():
            native.thread.join(timeout=2.0)
            if native.thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")

        try:
            native.stream.stop_stream()
            native.stream.close()
        finally:
            native.pyaudio_instance.terminate()
        logger.info(f"Audio stream {handle.stream_id} released")
