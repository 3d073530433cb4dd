"""YAML configuration loader and recording settings for leopold_audio."""

import os
import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.audio import WindowType

logger = logging.getLogger(__name__)


class RecordingConfig(BaseModel):
    """Settings for one recording session."""

    model_config = ConfigDict(frozen=True)

    max_duration_seconds: float = Field(60.0, gt=0)
    sample_rate: int = Field(44100, gt=0)
    channel_count: int = Field(1, ge=1)
    window_type: WindowType = WindowType.HANN
    compute_features: bool = True
    tick_interval_seconds: float = Field(0.1, gt=0)
    chunk_size: int = Field(1024, gt=0)
    frame_size: int = Field(2048, ge=2)
    rolloff_threshold: float = Field(0.85, gt=0, le=1)

    @field_validator("frame_size")
    @classmethod
    def _even_frame_size(cls, value: int) -> int:
        if value % 2:
            raise ValueError("frame_size must be even")
        return value


DEFAULT_CONFIG: Dict[str, Any] = {
    "recording": {},
    "storage": {"data_directory": "data"},
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/leopold_audio.log",
        "console_output": True,
    },
}


class LeopoldAudioConfig:
    """Application configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults are used.
        """
        if config_path is None:
            self.config_file = None
            self.config = copy.deepcopy(DEFAULT_CONFIG)
            logger.info("No configuration file given, using defaults")
            return

        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        merged = copy.deepcopy(DEFAULT_CONFIG)
        for section, values in config.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = values

        # Resolve relative paths
        self._resolve_paths(merged)

        logger.info("Configuration loaded successfully")
        return merged

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        # Resolve data directory
        if 'storage' in config and 'data_directory' in config['storage']:
            data_dir = config['storage']['data_directory']
            if not os.path.isabs(data_dir):
                config['storage']['data_directory'] = str(config_dir / data_dir)

        # Resolve log file path
        if 'logging' in config and 'file_path' in config['logging']:
            log_path = config['logging']['file_path']
            if not os.path.isabs(log_path):
                config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'recording.sample_rate').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'recording.max_duration_seconds')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        # Set the final value
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def recording_config(self) -> RecordingConfig:
        """Build validated recording settings from the 'recording' section."""
        return RecordingConfig(**(self.get('recording') or {}))

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())


__all__ = ["RecordingConfig", "LeopoldAudioConfig", "DEFAULT_CONFIG"]
