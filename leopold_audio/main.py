"""Command line entry point for leopold_audio."""

import sys
import argparse
import threading
import logging
from pathlib import Path
from typing import Optional

from pubsub import pub
from rich.console import Console
from rich.table import Table

from . import __version__
from .audio.audio_pub import ProgressPublisher
from .audio.features import extract_features
from .audio.wav import decode_wav
from .config import LeopoldAudioConfig
from .exceptions import LeopoldAudioError, MicrophonePermissionError
from .models.audio import AudioFeatures, Recording, format_duration
from .models.session import SessionProgress, SessionStatus
from .services.recording_session import RecordingSessionController
from .services.recording_store import RecordingStore
from .storage.file_manager import FileManager

logger = logging.getLogger(__name__)

PROGRESS_TOPIC = "recording.progress"


def open_capture_device():
    """Create the PyAudio capture device.

    Imported lazily so that `analyze` and `sessions` work on machines without PortAudio.

    Raises:
        MicrophonePermissionError: If PyAudio cannot be loaded
    """
    try:
        from .audio.capture import PyAudioCaptureDevice
    except ImportError as e:
        logger.error(f"PyAudio could not be loaded: {e}")
        raise MicrophonePermissionError(
            f"Audio capture is unavailable: PyAudio could not be loaded ({e}). "
            f"Install PortAudio and the pyaudio package.") from e
    return PyAudioCaptureDevice()


class Recorder:
    """Records one clip from the default microphone and saves it."""

    def __init__(self, config: LeopoldAudioConfig, console: Console):
        self.config = config
        self.console = console
        self.recording_config = config.recording_config()
        self.store = RecordingStore()
        self.publisher = ProgressPublisher(PROGRESS_TOPIC)
        self.controller: Optional[RecordingSessionController] = None
        self._last_shown = -1.0
        self._subscribed = False
        self._finished = threading.Event()
        self.store.subscribe(self._on_recording)

    def init(self) -> None:
        logger.info("Initializing recorder...")
        self.controller = RecordingSessionController(
            device=open_capture_device(),
            config=self.recording_config,
            store=self.store,
        )
        self.controller.subscribe(self.publisher.publish_progress)
        pub.subscribe(self._on_progress, PROGRESS_TOPIC)
        self._subscribed = True

    def _on_recording(self, recording: Optional[Recording]) -> None:
        if recording is not None:
            self._finished.set()

    def _on_progress(self, progress: SessionProgress) -> None:
        if progress.status is SessionStatus.RECORDING and progress.elapsed_seconds - self._last_shown >= 0.5:
            self._last_shown = progress.elapsed_seconds
            bar = "#" * int(progress.live_level * 40)
            self.console.print(f"{format_duration(progress.elapsed_seconds):>7} |{bar:<40}|")
        elif progress.status is SessionStatus.ERROR:
            self.console.print(f"Error: {progress.error_message}", style="bold red")

    def run(self) -> Optional[Recording]:
        """Record until the configured maximum duration has passed or Ctrl+C."""
        try:
            if not self.controller.start():
                return None
            self.console.print(
                f"Recording up to {format_duration(self.recording_config.max_duration_seconds)}... "
                f"press Ctrl+C to stop", style="bold green")
            # STOPPED lasts until the finished recording reaches the store
            while not self._finished.wait(0.1):
                if self.controller.status not in (SessionStatus.RECORDING, SessionStatus.STOPPED):
                    return None
        except KeyboardInterrupt:
            return self.controller.stop() or self.store.get_current()
        return self.store.get_current()

    def cleanup(self) -> None:
        if self.controller:
            self.controller.close()
        if self._subscribed:
            pub.unsubscribe(self._on_progress, PROGRESS_TOPIC)
            self._subscribed = False


def setup_logging(config: LeopoldAudioConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/leopold_audio.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("leopold_audio starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def features_table(features: Optional[AudioFeatures], title: str) -> Table:
    """Render a feature set as a rich table."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Feature")
    table.add_column("Value", justify="right")

    if features is None:
        table.add_row("features", "not available")
        return table

    low, high = features.frequency_range
    table.add_row("Duration", format_duration(features.duration_seconds))
    table.add_row("Dominant frequency", f"{features.dominant_frequency:.1f} Hz")
    table.add_row("Spectral centroid", f"{features.spectral_centroid:.1f} Hz")
    table.add_row("Spectral rolloff", f"{features.spectral_rolloff:.1f} Hz")
    table.add_row("Frequency range", f"{low:.1f} - {high:.1f} Hz")
    table.add_row("Zero-crossing rate", f"{features.zero_crossing_rate:.3f}")
    table.add_row("RMS", f"{features.rms:.3f}")
    table.add_row("Peak amplitude", f"{features.amplitude:.3f}")
    table.add_row("Average amplitude", f"{features.average_amplitude:.3f}")
    table.add_row("Silence ratio", f"{features.silence_ratio:.2f}")
    table.add_row("Noise ratio", f"{features.noise_ratio:.2f}")
    table.add_row("Pattern", features.pattern_type.value)
    return table


def record_command(args, config: LeopoldAudioConfig, console: Console) -> int:
    if args.duration is not None:
        config.set('recording.max_duration_seconds', args.duration)

    recorder = Recorder(config, console)
    try:
        recorder.init()
        if not recorder.controller.is_supported():
            console.print("No microphone found.", style="bold red")
            return 1
        recording = recorder.run()
    finally:
        recorder.cleanup()

    if recording is None:
        console.print("No recording was produced.", style="yellow")
        return 1

    if args.output:
        output_path = Path(args.output)
        output_path.write_bytes(recording.encoded_bytes)
    else:
        file_manager = FileManager(config.get_data_directory())
        session_id = file_manager.create_session_directory()
        output_path = Path(file_manager.save_recording(recording, session_id))

    console.print(f"Saved {format_duration(recording.duration_seconds)} recording to {output_path}",
                  style="bold green")
    console.print(features_table(recording.features, "Recording features"))
    return 0


def analyze_command(args, config: LeopoldAudioConfig, console: Console) -> int:
    recording_config = config.recording_config()
    buffer = decode_wav(Path(args.path))
    features = extract_features(
        buffer,
        window_type=recording_config.window_type,
        frame_size=recording_config.frame_size,
        rolloff_threshold=recording_config.rolloff_threshold,
    )
    console.print(features_table(features, str(args.path)))
    return 0


def sessions_command(args, config: LeopoldAudioConfig, console: Console) -> int:
    file_manager = FileManager(config.get_data_directory())
    session_ids = file_manager.list_sessions()

    table = Table(title=f"Saved recordings in {file_manager.sessions_dir}",
                  show_header=True, header_style="bold magenta")
    table.add_column("Session", no_wrap=True)
    table.add_column("Duration", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Dominant", justify="right")
    table.add_column("Pattern")

    for session_id in session_ids:
        info = file_manager.load_recording_info(session_id)
        if info is None:
            continue
        features = info.get("features") or {}
        dominant = features.get("dominant_frequency")
        table.add_row(
            session_id,
            format_duration(info.get("duration_seconds", 0.0)),
            f"{info.get('size', 0)} B",
            f"{dominant:.1f} Hz" if dominant is not None else "-",
            features.get("pattern_type", "-"),
        )

    console.print(table)
    console.print(f"{len(session_ids)} recording(s)")
    return 0


def check_command(args, config: LeopoldAudioConfig, console: Console) -> int:
    try:
        supported = open_capture_device().is_supported()
    except MicrophonePermissionError as e:
        console.print(f"Audio capture is not supported: {e.reason}", style="bold red")
        return 1

    if supported:
        console.print("Audio capture is supported", style="bold green")
        return 0
    console.print("Audio capture is not supported: no input device found", style="bold red")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="leopold-audio - record wildlife sounds and extract acoustic features"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"leopold-audio v{__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    record = subparsers.add_parser("record", help="Record from the default microphone")
    record.add_argument(
        "--duration",
        type=float,
        help="Stop after this many seconds (default: the configured maximum duration)"
    )
    record.add_argument(
        "--output",
        type=str,
        help="Write the WAV file here instead of a new session directory"
    )
    record.set_defaults(handler=record_command)

    analyze = subparsers.add_parser("analyze", help="Print the features of a 16-bit PCM WAV file")
    analyze.add_argument("path", type=str, help="WAV file to analyze")
    analyze.set_defaults(handler=analyze_command)

    sessions = subparsers.add_parser("sessions", help="List recordings saved in the data directory")
    sessions.set_defaults(handler=sessions_command)

    check = subparsers.add_parser("check", help="Check whether a microphone is available")
    check.set_defaults(handler=check_command)

    return parser


def main(argv=None) -> None:
    """Main entry point for leopold-audio."""
    args = build_parser().parse_args(argv)
    console = Console()

    try:
        config = LeopoldAudioConfig(args.config)
        setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))
        sys.exit(args.handler(args, config, console))
    except (LeopoldAudioError, FileNotFoundError, ValueError) as e:
        console.print(f"Error: {e}", style="bold red")
        logger.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
