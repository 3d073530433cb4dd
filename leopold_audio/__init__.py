"""Audio recording and acoustic feature extraction for Leopold wildlife observations."""

__version__ = "0.1.0"
