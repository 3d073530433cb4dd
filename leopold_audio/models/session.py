"""Recording session state models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionStatus(Enum):
    """Lifecycle state of a recording session."""
    IDLE = "idle"
    REQUESTING_PERMISSION = "requesting_permission"
    RECORDING = "recording"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass(frozen=True)
class SessionProgress:
    """Snapshot of a session, published on every transition and tick."""
    status: SessionStatus
    elapsed_seconds: float = 0.0
    live_level: float = 0.0  # 0.0 to 1.0
    error_message: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in (SessionStatus.REQUESTING_PERMISSION, SessionStatus.RECORDING)
