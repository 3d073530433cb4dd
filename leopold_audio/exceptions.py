"""Error types raised by the audio recording and analysis core."""


class LeopoldAudioError(Exception):
    """Base class for all leopold_audio errors."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MicrophonePermissionError(LeopoldAudioError, PermissionError):
    """Microphone access was denied or no capture device is available."""


class DeviceError(LeopoldAudioError, OSError):
    """The capture device failed while a session was recording."""


class InvalidInputError(LeopoldAudioError, ValueError):
    """A signal-processing function was called with unusable input."""


class EncodingError(LeopoldAudioError):
    """A buffer could not be converted to (or from) the WAV container."""


class ChannelIndexError(LeopoldAudioError, IndexError):
    """A channel index outside the buffer's channel range was requested."""
