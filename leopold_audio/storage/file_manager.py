"""File management module for finished recordings and their metadata."""

import json
import logging
import random
import string
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional, List

from ..models.audio import Recording

logger = logging.getLogger(__name__)

RECORDING_INFO_FILE = "recording_info.json"


class FileManager:
    """Stores each recording in its own session directory."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize file manager with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "sessions"

        # Create directory structure
        for directory in [self.data_dir, self.sessions_dir]:
            directory.mkdir(parents=True, exist_ok=True)

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def create_session_directory(self) -> str:
        """Create new session directory with timestamp and random suffix.

        Returns:
            Session ID (timestamp-based with random suffix)
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        session_id = f"{timestamp}_{random_suffix}"
        session_path = self.sessions_dir / session_id
        session_path.mkdir(exist_ok=True)

        logger.info(f"Created session directory: {session_path}")
        return session_id

    def save_recording(self, recording: Recording, session_id: str) -> str:
        """Write the WAV file and its metadata into a session directory.

        Args:
            recording: Finished recording
            session_id: Session identifier

        Returns:
            Full path to saved audio file
        """
        session_path = self.get_session_path(session_id)
        session_path.mkdir(exist_ok=True)

        audio_file_path = session_path / recording.file_name
        with open(audio_file_path, 'wb') as f:
            f.write(recording.encoded_bytes)
        logger.info(f"Audio file saved: {audio_file_path} ({recording.size} bytes)")

        info_file = session_path / RECORDING_INFO_FILE
        with open(info_file, 'w') as f:
            json.dump(recording.to_dict(), f, indent=2)
        logger.info(f"Recording info saved: {info_file}")

        return str(audio_file_path)

    def load_recording_info(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Load recording metadata from a session directory.

        Returns:
            Metadata dictionary or None if not found
        """
        info_file = self.get_session_path(session_id) / RECORDING_INFO_FILE

        if not info_file.exists():
            logger.warning(f"Recording info file not found: {info_file}")
            return None

        with open(info_file, 'r') as f:
            return json.load(f)

    def list_sessions(self) -> List[str]:
        """List all session IDs that hold a saved recording, oldest first."""
        sessions = [
            path.name for path in self.sessions_dir.iterdir()
            if path.is_dir() and (path / RECORDING_INFO_FILE).exists()
        ]
        sessions.sort()  # Sort chronologically
        logger.debug(f"Found {len(sessions)} sessions")
        return sessions

    def get_session_path(self, session_id: str) -> Path:
        return self.sessions_dir / session_id
