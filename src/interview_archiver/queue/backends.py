"""Abstract base classes for the collaborators the queue manager drives.

The queue manager only talks to these interfaces; concrete adapters
(ffprobe/ffmpeg, whisper.cpp, Google Drive, YouTube, the HTTP record store)
live in their own modules and tests substitute in-memory fakes.

Progress callbacks receive an integer percentage of the collaborator's own
work (0-100); mapping onto the job's overall progress is the caller's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from ..compression_policy import CompressionStrategy
    from ..media import MediaInfo
    from .models import InterviewDetails

ProgressCallback = Callable[[int], None]


@dataclass
class CompressionResult:
    """Outcome of a compression run."""
    output_path: str
    original_size: int
    compressed_size: int
    skipped: bool = False
    duration_s: float = 0.0
    reason: str = ""

    @property
    def savings(self) -> float:
        """Size reduction in percent."""
        if not self.original_size:
            return 0.0
        return (self.original_size - self.compressed_size) / self.original_size * 100


@dataclass
class TranscriptResult:
    transcript_path: str
    text: str


class RecordStore(ABC):
    """Remote system of record for interviews."""

    @abstractmethod
    async def get_details(self, interview_id: int) -> "InterviewDetails":
        """Fetch interview metadata.

        Raises:
            InterviewNotFoundError: No interview with that id
            RecordingAlreadyExistsError: The interview already has a recording link
        """

    @abstractmethod
    async def write_back(
        self,
        interview_id: int,
        primary_link: str,
        backup_link: Optional[str],
        transcript_link: Optional[str],
        filename: str,
    ) -> None:
        """Attach archive links to the interview. Raises on failure."""

    async def test_connection(self) -> bool:
        """True when the store is reachable. Never raises."""
        return True


class MediaInspector(ABC):
    @abstractmethod
    async def analyze(self, path: str) -> "MediaInfo":
        """Return stream metadata for ``path``."""


class Compressor(ABC):
    @abstractmethod
    async def compress(
        self,
        in_path: str,
        out_path: str,
        strategy: "CompressionStrategy",
        on_progress: Optional[ProgressCallback] = None,
        info: Optional["MediaInfo"] = None,
    ) -> CompressionResult:
        """Re-encode ``in_path`` into ``out_path`` using ``strategy``.

        ``info`` is the caller's analysis of ``in_path``; when omitted the
        compressor analyzes the file itself.
        """


class Uploader(ABC):
    """Uploads a local file somewhere and returns a reference link."""

    @abstractmethod
    async def upload(
        self,
        path: str,
        filename: str,
        organization: str,
        folder_id: Optional[str] = None,
    ) -> str:
        """Upload ``path`` as ``filename``; return a shareable link."""


class Transcriber(ABC):
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the transcription binary and model are available."""

    @abstractmethod
    async def transcribe(
        self,
        video_path: str,
        out_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscriptResult:
        """Write a plain-text transcript of ``video_path`` to ``out_path``."""
