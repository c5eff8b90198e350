"""Error taxonomy shared by the queue, adapters and outer surfaces.

Every failure raised by a collaborator is an ``ArchiverError`` carrying an
``ErrorKind`` so callers (retry predicate, HTTP bridge, CLI) can branch on the
kind instead of parsing messages.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    TRANSIENT = "transient"  # network hiccup, 5xx, rate limit
    FATAL = "fatal"  # bad input, bad credentials, missing binary


class ArchiverError(Exception):
    """Base error with a kind."""

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    def __str__(self) -> str:
        return self.message


class InterviewNotFoundError(ArchiverError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, interview_id: int):
        super().__init__(f"Interview {interview_id} not found")
        self.interview_id = interview_id


class RecordingAlreadyExistsError(ArchiverError):
    """The interview already has a recording link attached."""

    kind = ErrorKind.ALREADY_EXISTS

    def __init__(self, existing_link: str, backup_link: Optional[str] = None):
        super().__init__(
            "Recording already uploaded!\n\n"
            f"Google Drive: {existing_link}\n"
            f"YouTube: {backup_link or 'N/A'}"
        )
        self.existing_link = existing_link
        self.backup_link = backup_link


class RecordStoreError(ArchiverError):
    pass


class UploadError(ArchiverError):
    pass


class CompressionError(ArchiverError):
    pass


class TranscriptionError(ArchiverError):
    pass


class MediaProbeError(ArchiverError):
    pass


class ConfigurationError(ArchiverError):
    pass


def kind_for_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an error kind."""
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code == 409:
        return ErrorKind.ALREADY_EXISTS
    if status_code == 429 or status_code >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def is_transient(exc: BaseException) -> bool:
    """Return True for failures worth retrying.

    Unclassified exceptions (``OSError`` from a dropped socket, timeouts) are
    treated as transient; classified ones answer from their kind.
    """
    if isinstance(exc, ArchiverError):
        return exc.kind == ErrorKind.TRANSIENT
    return isinstance(exc, (OSError, TimeoutError, ConnectionError))
