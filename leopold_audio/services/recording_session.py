"""Recording session controller: microphone lifecycle, metering and finalization."""

import logging
import threading
import time
from functools import partial
from typing import Callable, List, Optional

from ..audio import spectral
from ..audio.buffer import ChunkAccumulator
from ..audio.device import CaptureDevice, StreamHandle
from ..audio.features import extract_features
from ..audio.wav import WavEncoder
from ..config import RecordingConfig
from ..exceptions import (
    DeviceError,
    EncodingError,
    InvalidInputError,
    LeopoldAudioError,
    MicrophonePermissionError,
)
from ..models.audio import Recording
from ..models.session import SessionProgress, SessionStatus
from .recording_store import RecordingStore

logger = logging.getLogger(__name__)

ProgressListener = Callable[[SessionProgress], None]

_ACTIVE = (SessionStatus.REQUESTING_PERMISSION, SessionStatus.RECORDING)


class RecordingSessionController:
    """Owns one capture device and turns microphone sessions into Recordings.

    States: IDLE -> REQUESTING_PERMISSION -> RECORDING -> STOPPED, with ERROR
    reachable from permission denial or a device failure, and cancel()
    returning an active session straight to IDLE. A finished session
    publishes its Recording to the store; cancelled or failed sessions never
    produce one.

    The capture device calls back from its own thread, and the ticker runs on
    another, so all state changes happen under one lock. Listeners are called
    outside the lock.
    """

    def __init__(
        self,
        device: CaptureDevice,
        config: Optional[RecordingConfig] = None,
        store: Optional[RecordingStore] = None,
        encoder: Optional[WavEncoder] = None,
        clock: Callable[[], float] = time.monotonic,
        auto_tick: bool = True,
    ):
        """Initialize session controller.

        Args:
            device: Capture device used for every session
            config: Recording settings (defaults if None)
            store: Where finished recordings are published
            encoder: Turns the finished buffer into file bytes (16-bit WAV if None)
            clock: Monotonic time source in seconds
            auto_tick: Run tick() on a background thread every tick interval.
                Disable to drive tick() manually.
        """
        self.device = device
        self.config = config or RecordingConfig()
        self.store = store
        self.encoder = encoder or WavEncoder()
        self.clock = clock
        self.auto_tick = auto_tick

        self._lock = threading.RLock()
        self._status = SessionStatus.IDLE
        self._session_token = 0
        self._handle: Optional[StreamHandle] = None
        self._accumulator: Optional[ChunkAccumulator] = None
        self._started_at: Optional[float] = None
        self._elapsed = 0.0
        self._live_level = 0.0
        self._last_error: Optional[LeopoldAudioError] = None
        self._listeners: List[ProgressListener] = []

        # Ticker thread management
        self._ticker: Optional[threading.Thread] = None
        self._ticker_stop: Optional[threading.Event] = None

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def elapsed_seconds(self) -> float:
        return self._elapsed

    @property
    def live_level(self) -> float:
        return self._live_level

    @property
    def last_error(self) -> Optional[LeopoldAudioError]:
        return self._last_error

    def is_supported(self) -> bool:
        return self.device.is_supported()

    def progress(self) -> SessionProgress:
        """Current session snapshot, for polling consumers."""
        with self._lock:
            return self._snapshot()

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a progress listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def start(self) -> bool:
        """Acquire the microphone and start recording.

        Blocks while the device asks for permission.

        Returns:
            True if recording started, False if it was rejected or cancelled

        Raises:
            MicrophonePermissionError: If the microphone is denied or unavailable
        """
        with self._lock:
            if self._status in _ACTIVE:
                logger.warning("Recording already in progress")
                return False

            self._session_token += 1
            token = self._session_token
            self._accumulator = ChunkAccumulator(self.config.sample_rate, self.config.channel_count)
            self._handle = None
            self._started_at = None
            self._elapsed = 0.0
            self._live_level = 0.0
            self._last_error = None
            self._status = SessionStatus.REQUESTING_PERMISSION
            progress = self._snapshot()

        logger.info("Requesting microphone access")
        self._notify(progress)

        try:
            supported = self.device.is_supported()
        except Exception as e:
            error = MicrophonePermissionError(f"Could not check for a microphone: {e}")
            if self._fail(token, error):
                raise error from e
            return False

        if not supported:
            error = MicrophonePermissionError(
                "Audio recording is not supported here: no microphone was found.")
            if self._fail(token, error):
                raise error
            return False

        try:
            handle = self.device.acquire(
                sample_rate=self.config.sample_rate,
                channels=self.config.channel_count,
                chunk_size=self.config.chunk_size,
                on_chunk=partial(self._on_chunk, token),
                on_error=partial(self._on_device_error, token),
            )
        except MicrophonePermissionError as e:
            if self._fail(token, e):
                raise
            return False
        except Exception as e:
            error = MicrophonePermissionError(f"Microphone is unavailable: {e}")
            if self._fail(token, error):
                raise error from e
            return False

        with self._lock:
            cancelled = token != self._session_token or self._status is not SessionStatus.REQUESTING_PERMISSION
            if not cancelled:
                self._handle = handle
                self._started_at = self.clock()
                self._status = SessionStatus.RECORDING
                progress = self._snapshot()

        if cancelled:
            logger.info("Session ended while waiting for the microphone, releasing it")
            self._release(handle)
            return False

        logger.info(f"Recording started: {self.config.sample_rate}Hz, "
                    f"{self.config.channel_count} channel(s), max {self.config.max_duration_seconds}s")
        self._notify(progress)
        if self.auto_tick:
            self._start_ticker(token)
        return True

    def tick(self) -> None:
        """Update elapsed time and live level; stop once the maximum duration is reached."""
        with self._lock:
            if self._status is not SessionStatus.RECORDING:
                return
            token = self._session_token
            self._elapsed = max(self._elapsed, self.clock() - self._started_at)
            latest = self._accumulator.latest()
            if latest is not None and latest.size:
                self._live_level = min(spectral.rms(latest.mean(axis=1)), 1.0)
            should_stop = self._elapsed >= self.config.max_duration_seconds
            progress = self._snapshot()

        self._notify(progress)
        if should_stop:
            logger.info(f"Maximum duration of {self.config.max_duration_seconds}s reached")
            self._stop(token)

    def stop(self) -> Optional[Recording]:
        """Stop recording and publish the finished Recording.

        Returns:
            The Recording, or None if nothing was recording

        Raises:
            EncodingError: If the captured audio could not be encoded
        """
        return self._stop(None)

    def cancel(self) -> bool:
        """Abandon the active session without producing a Recording."""
        with self._lock:
            if self._status not in _ACTIVE:
                logger.warning("No recording session to cancel")
                return False

            # Invalidates device callbacks and any acquire still in flight
            self._session_token += 1
            handle, self._handle = self._handle, None
            self._discard_chunks()
            self._elapsed = 0.0
            self._live_level = 0.0
            self._status = SessionStatus.IDLE
            progress = self._snapshot()

        self._stop_ticker()
        self._release(handle)
        logger.info("Recording session cancelled")
        self._notify(progress)
        return True

    def close(self) -> None:
        """Cancel any active session and stop background work."""
        with self._lock:
            active = self._status in _ACTIVE
        if active:
            self.cancel()
        self._stop_ticker()

    def __enter__(self) -> "RecordingSessionController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _stop(self, token: Optional[int]) -> Optional[Recording]:
        with self._lock:
            if self._status is not SessionStatus.RECORDING:
                if token is None:
                    logger.warning("No recording in progress")
                return None
            if token is not None and token != self._session_token:
                return None

            # A manual stop records the exact elapsed time; an automatic one keeps the tick's value
            if token is None:
                self._elapsed = max(self._elapsed, self.clock() - self._started_at)
            self._status = SessionStatus.STOPPED
            handle, self._handle = self._handle, None
            accumulator, self._accumulator = self._accumulator, None

        self._stop_ticker()
        try:
            recording = self._finalize(accumulator)
        except (EncodingError, InvalidInputError) as e:
            logger.exception(f"Failed to finalize recording: {e.reason}")
            with self._lock:
                self._status = SessionStatus.ERROR
                self._last_error = e
                progress = self._snapshot()
            self._notify(progress)
            raise
        finally:
            self._release(handle)

        logger.info(f"Recording stopped: {recording.duration_seconds:.2f}s, "
                    f"{recording.size} bytes, features={'yes' if recording.features else 'no'}")
        if self.store is not None:
            self.store.set_current(recording)
        self._notify(self.progress())
        return recording

    def _finalize(self, accumulator: ChunkAccumulator) -> Recording:
        """Assemble, analyse and encode the captured chunks."""
        buffer = accumulator.to_signal_buffer()

        features = None
        if self.config.compute_features:
            try:
                features = extract_features(
                    buffer,
                    window_type=self.config.window_type,
                    frame_size=self.config.frame_size,
                    rolloff_threshold=self.config.rolloff_threshold,
                )
            except Exception as e:
                logger.warning(f"Feature extraction failed, keeping recording without features: {e}",
                               exc_info=True)

        encoded = self.encoder.encode(buffer)
        return Recording.from_buffer(buffer, encoded, features)

    def _on_chunk(self, token: int, chunk) -> None:
        """Device callback: store a captured chunk."""
        with self._lock:
            if token != self._session_token or self._status not in _ACTIVE:
                return
            try:
                self._accumulator.append(chunk)
                return
            except InvalidInputError as e:
                reason = f"The microphone delivered unusable audio: {e.reason}"
        self._on_device_error(token, reason)

    def _on_device_error(self, token: int, reason: str) -> None:
        """Device callback: the stream failed mid-session."""
        with self._lock:
            if token != self._session_token or self._status not in _ACTIVE:
                return
            handle, self._handle = self._handle, None
            self._discard_chunks()
            self._last_error = DeviceError(reason)
            self._status = SessionStatus.ERROR
            progress = self._snapshot()

        logger.error(f"Capture device failed: {reason}")
        self._stop_ticker()
        self._release(handle)
        self._notify(progress)

    def _fail(self, token: int, error: LeopoldAudioError) -> bool:
        """Move a session that is still acquiring the device into ERROR."""
        with self._lock:
            if token != self._session_token or self._status is not SessionStatus.REQUESTING_PERMISSION:
                return False
            self._discard_chunks()
            self._last_error = error
            self._status = SessionStatus.ERROR
            progress = self._snapshot()

        logger.error(f"Could not start recording: {error.reason}")
        self._notify(progress)
        return True

    def _discard_chunks(self) -> None:
        if self._accumulator is not None:
            self._accumulator.clear()
        self._accumulator = None

    def _release(self, handle: Optional[StreamHandle]) -> None:
        if handle is None:
            return
        try:
            self.device.release(handle)
        except Exception as e:
            logger.error(f"Error releasing capture device: {e}")

    def _start_ticker(self, token: int) -> None:
        stop_event = threading.Event()
        thread = threading.Thread(target=self._tick_continuously, args=(token, stop_event), daemon=True)
        thread.name = "RecordingTickerThread"
        with self._lock:
            self._ticker = thread
            self._ticker_stop = stop_event
        thread.start()

    def _tick_continuously(self, token: int, stop_event: threading.Event) -> None:
        """Internal method: tick loop in background thread."""
        while not stop_event.wait(self.config.tick_interval_seconds):
            with self._lock:
                if token != self._session_token or self._status is not SessionStatus.RECORDING:
                    break
            try:
                self.tick()
            except LeopoldAudioError:
                # Already logged and reflected in the ERROR state
                break

    def _stop_ticker(self) -> None:
        with self._lock:
            thread, stop_event = self._ticker, self._ticker_stop
            self._ticker = None
            self._ticker_stop = None
        if stop_event is not None:
            stop_event.set()
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def _snapshot(self) -> SessionProgress:
        return SessionProgress(
            status=self._status,
            elapsed_seconds=self._elapsed,
            live_level=self._live_level,
            error_message=self._last_error.reason if self._last_error else None,
        )

    def _notify(self, progress: SessionProgress) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(progress)
            except Exception as e:
                logger.exception(f"Progress listener failed: {e}")
