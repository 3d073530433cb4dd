"""Unit tests for configuration loading and recording settings."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from leopold_audio.config import LeopoldAudioConfig, RecordingConfig
from leopold_audio.models.audio import WindowType


@pytest.mark.unit
class TestRecordingConfig:
    """Test cases for RecordingConfig."""

    def test_defaults(self):
        config = RecordingConfig()

        assert config.max_duration_seconds == 60
        assert config.sample_rate == 44100
        assert config.channel_count == 1
        assert config.window_type is WindowType.HANN
        assert config.compute_features is True
        assert config.tick_interval_seconds == pytest.approx(0.1)
        assert config.frame_size == 2048
        assert config.rolloff_threshold == pytest.approx(0.85)

    def test_window_type_from_name(self):
        assert RecordingConfig(window_type="blackman").window_type is WindowType.BLACKMAN

    @pytest.mark.parametrize("field, value", [
        ("max_duration_seconds", 0),
        ("sample_rate", -1),
        ("channel_count", 0),
        ("frame_size", 1),
        ("frame_size", 1023),
        ("rolloff_threshold", 1.5),
        ("window_type", "triangle"),
    ])
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            RecordingConfig(**{field: value})

    def test_is_frozen(self):
        config = RecordingConfig()

        with pytest.raises(ValidationError):
            config.sample_rate = 8000


@pytest.mark.unit
class TestLeopoldAudioConfig:
    """Test cases for LeopoldAudioConfig."""

    def write_config(self, directory, text):
        path = Path(directory) / "leopold_audio.yaml"
        path.write_text(text, encoding="utf-8")
        return str(path)

    def test_defaults_without_file(self):
        config = LeopoldAudioConfig()

        assert config.config_file is None
        assert config.get("logging.level") == "INFO"
        assert config.recording_config() == RecordingConfig()

    def test_loads_and_merges_yaml(self, temp_data_dir):
        path = self.write_config(temp_data_dir, (
            "recording:\n"
            "  max_duration_seconds: 5\n"
            "  sample_rate: 16000\n"
            "  window_type: hamming\n"
            "logging:\n"
            "  level: DEBUG\n"
        ))

        config = LeopoldAudioConfig(path)
        recording = config.recording_config()

        assert recording.max_duration_seconds == 5
        assert recording.sample_rate == 16000
        assert recording.window_type is WindowType.HAMMING
        assert config.get("logging.level") == "DEBUG"
        # Untouched defaults survive the merge
        assert config.get("logging.console_output") is True

    def test_resolves_relative_paths(self, temp_data_dir):
        path = self.write_config(temp_data_dir, "storage:\n  data_directory: recordings\n")

        config = LeopoldAudioConfig(path)

        assert config.get("storage.data_directory") == str(Path(temp_data_dir) / "recordings")
        assert config.get("logging.file_path") == str(Path(temp_data_dir) / "data/logs/leopold_audio.log")
        assert os.path.isabs(config.get_data_directory())

    def test_absolute_paths_are_kept(self, temp_data_dir):
        absolute = str(Path(temp_data_dir) / "elsewhere")
        path = self.write_config(temp_data_dir, f"storage:\n  data_directory: {absolute}\n")

        assert LeopoldAudioConfig(path).get("storage.data_directory") == absolute

    def test_missing_file(self, temp_data_dir):
        with pytest.raises(FileNotFoundError):
            LeopoldAudioConfig(str(Path(temp_data_dir) / "missing.yaml"))

    @pytest.mark.parametrize("text", ["", "recording: [unclosed\n", "- just\n- a list\n"])
    def test_rejects_bad_files(self, temp_data_dir, text):
        path = self.write_config(temp_data_dir, text)

        with pytest.raises(ValueError):
            LeopoldAudioConfig(path)

    def test_get_and_set(self):
        config = LeopoldAudioConfig()

        assert config.get("recording.sample_rate") is None
        assert config.get("nothing.here", "fallback") == "fallback"

        config.set("recording.sample_rate", 22050)
        config.set("new.section.value", 3)

        assert config.get("recording.sample_rate") == 22050
        assert config.get("new.section.value") == 3
        assert config.recording_config().sample_rate == 22050

    def test_invalid_recording_section(self):
        config = LeopoldAudioConfig()
        config.set("recording.frame_size", 333)

        with pytest.raises(ValidationError):
            config.recording_config()
