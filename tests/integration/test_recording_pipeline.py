"""Integration tests for the complete record, analyse and save workflow."""

import pytest
import time
import logging
import sys
from pathlib import Path
from unittest.mock import patch

import numpy as np

from leopold_audio.audio.buffer import SignalBuffer
from leopold_audio.audio.features import extract_features
from leopold_audio.audio.wav import decode_wav, encode_wav, wav_size
from leopold_audio.config import RecordingConfig
from leopold_audio.main import main
from leopold_audio.models.audio import Recording
from leopold_audio.models.session import SessionStatus
from leopold_audio.services.recording_session import RecordingSessionController
from leopold_audio.services.recording_store import RecordingStore
from leopold_audio.storage.file_manager import FileManager

RATE = 8000


def wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def restore_logging():
    """main() reconfigures the root logger; put pytest's handlers back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(temp_data_dir):
    path = Path(temp_data_dir) / "leopold_audio.yaml"
    path.write_text(
        "recording:\n"
        "  sample_rate: 8000\n"
        "  frame_size: 512\n"
        "  tick_interval_seconds: 0.05\n"
        "storage:\n"
        "  data_directory: data\n"
        "logging:\n"
        "  file_path: logs/test.log\n"
        "  console_output: false\n",
        encoding="utf-8",
    )
    return str(path)


@pytest.mark.integration
class TestRecordingPipeline:
    """End-to-end sessions with the background ticker running."""

    def test_auto_stop_with_ticker_thread(self, fake_device, temp_data_dir):
        store = RecordingStore(playback_dir=temp_data_dir)
        config = RecordingConfig(sample_rate=RATE, max_duration_seconds=0.3,
                                 tick_interval_seconds=0.02, frame_size=256)
        controller = RecordingSessionController(fake_device, config=config, store=store)
        t = np.arange(RATE // 10) / RATE
        chunk = 0.4 * np.sin(2 * np.pi * 1000 * t)

        assert controller.start() is True
        for _ in range(3):
            fake_device.feed(chunk)

        assert wait_until(lambda: controller.status is SessionStatus.STOPPED)
        recording = store.get_current()

        assert recording is not None
        assert controller.elapsed_seconds >= 0.3
        assert recording.size == wav_size(3 * chunk.size, 1)
        assert recording.features.dominant_frequency == pytest.approx(1000.0, abs=RATE / 256)
        assert len(fake_device.released) == 1

        # The playback file decodes back to the captured audio
        decoded = decode_wav(store.playback_path())
        assert decoded.sample_count == 3 * chunk.size
        controller.close()

    def test_cancel_with_ticker_thread(self, fake_device):
        store = RecordingStore()
        config = RecordingConfig(sample_rate=RATE, tick_interval_seconds=0.02)
        controller = RecordingSessionController(fake_device, config=config, store=store)
        levels = []
        controller.subscribe(lambda progress: levels.append(progress.live_level))

        controller.start()
        fake_device.feed(np.full(RATE // 10, 0.25))
        assert wait_until(lambda: any(level > 0 for level in levels))
        controller.cancel()
        time.sleep(0.1)

        assert controller.status is SessionStatus.IDLE
        assert store.get_current() is None
        assert len(fake_device.released) == 1
        assert max(levels) == pytest.approx(0.25)

    def test_session_to_disk(self, fake_device, temp_data_dir):
        store = RecordingStore()
        file_manager = FileManager(temp_data_dir)
        controller = RecordingSessionController(
            fake_device, config=RecordingConfig(sample_rate=RATE), store=store, auto_tick=False)
        store.subscribe(lambda recording: recording and file_manager.save_recording(
            recording, file_manager.create_session_directory()))

        controller.start()
        fake_device.feed(np.zeros(RATE))
        controller.stop()

        sessions = file_manager.list_sessions()
        assert len(sessions) == 1
        info = file_manager.load_recording_info(sessions[0])
        assert info["duration_seconds"] == pytest.approx(1.0)
        assert info["features"]["silence_ratio"] == 1.0


@pytest.mark.integration
class TestCommandLine:
    """Test cases for the leopold-audio command."""

    def test_analyze(self, temp_data_dir, config_file, restore_logging, capsys):
        path = Path(temp_data_dir) / "call.wav"
        t = np.arange(RATE) / RATE
        path.write_bytes(encode_wav(SignalBuffer(0.5 * np.sin(2 * np.pi * 1500 * t), RATE)))

        with pytest.raises(SystemExit) as excinfo:
            main(["--config", config_file, "analyze", str(path)])

        assert excinfo.value.code == 0
        output = capsys.readouterr().out
        assert "Dominant frequency" in output
        assert "continuous" in output
        assert (Path(temp_data_dir) / "logs" / "test.log").exists()

    def test_analyze_rejects_non_wav(self, temp_data_dir, config_file, restore_logging, capsys):
        path = Path(temp_data_dir) / "notes.txt"
        path.write_text("not audio")

        with pytest.raises(SystemExit) as excinfo:
            main(["--config", config_file, "analyze", str(path)])

        assert excinfo.value.code == 1
        assert "Error" in capsys.readouterr().out

    def test_missing_config(self, temp_data_dir, restore_logging):
        with pytest.raises(SystemExit) as excinfo:
            main(["--config", str(Path(temp_data_dir) / "missing.yaml"), "check"])

        assert excinfo.value.code == 1

    def test_check(self, config_file, restore_logging, mock_pyaudio, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--config", config_file, "check"])

        assert excinfo.value.code == 0
        assert "supported" in capsys.readouterr().out

    def test_check_without_microphone(self, config_file, restore_logging, mock_pyaudio):
        mock_pyaudio['instance'].get_default_input_device_info.side_effect = OSError("No Default Input Device Available")

        with pytest.raises(SystemExit) as excinfo:
            main(["--config", config_file, "check"])

        assert excinfo.value.code == 1

    @pytest.mark.slow
    def test_record(self, temp_data_dir, config_file, restore_logging, mock_pyaudio):
        def read(frames, exception_on_overflow=True):
            time.sleep(frames / RATE)
            return b"\x00\x10" * frames

        mock_pyaudio['stream'].read.side_effect = read
        output = Path(temp_data_dir) / "out.wav"

        with pytest.raises(SystemExit) as excinfo:
            main(["--config", config_file, "record", "--duration", "0.5", "--output", str(output)])

        assert excinfo.value.code == 0
        decoded = decode_wav(output)
        assert decoded.sample_rate == RATE
        assert decoded.sample_count > 0
        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called()

    def test_check_without_pyaudio(self, config_file, restore_logging, capsys):
        with patch.dict(sys.modules, {"leopold_audio.audio.capture": None}):
            with pytest.raises(SystemExit) as excinfo:
                main(["--config", config_file, "check"])

        assert excinfo.value.code == 1
        output = capsys.readouterr().out
        assert "not supported" in output
        assert "PyAudio" in output

    def test_record_without_pyaudio(self, config_file, restore_logging, capsys):
        with patch.dict(sys.modules, {"leopold_audio.audio.capture": None}):
            with pytest.raises(SystemExit) as excinfo:
                main(["--config", config_file, "record", "--duration", "0.5"])

        assert excinfo.value.code == 1
        assert "PyAudio" in capsys.readouterr().out

    def test_sessions(self, temp_data_dir, config_file, restore_logging, capsys):
        t = np.arange(RATE) / RATE
        buffer = SignalBuffer(0.5 * np.sin(2 * np.pi * 1500 * t), RATE)
        recording = Recording(encoded_bytes=encode_wav(buffer), duration_seconds=1.0,
                              sample_rate=RATE, channel_count=1,
                              features=extract_features(buffer, frame_size=512))
        file_manager = FileManager(str(Path(temp_data_dir) / "data"))
        session_id = file_manager.create_session_directory()
        file_manager.save_recording(recording, session_id)

        with pytest.raises(SystemExit) as excinfo:
            main(["--config", config_file, "sessions"])

        assert excinfo.value.code == 0
        output = capsys.readouterr().out
        assert session_id in output
        assert "continuous" in output
        assert "1 recording(s)" in output

    def test_sessions_empty(self, config_file, restore_logging, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--config", config_file, "sessions"])

        assert excinfo.value.code == 0
        assert "0 recording(s)" in capsys.readouterr().out
