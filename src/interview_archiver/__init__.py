"""Archive interview recordings: compress, upload, transcribe, record."""

__version__ = "0.1.0"
