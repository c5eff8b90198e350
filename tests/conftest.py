import os
import tempfile
from typing import List, Optional

import pytest

from interview_archiver.media import MediaInfo
from interview_archiver.queue import (
    CompressionResult,
    Compressor,
    DeletionStore,
    InterviewDetails,
    MediaInspector,
    PipelineConfig,
    QueueManager,
    RecordStore,
    Transcriber,
    TranscriptResult,
    Uploader,
)


class FakeRecordStore(RecordStore):
    """In-memory interviews keyed by id; records every write-back."""

    def __init__(self, interviews=None, fail_write_back: Optional[Exception] = None):
        self.interviews = dict(interviews or {})
        self.fail_write_back = fail_write_back
        self.write_backs: List[tuple] = []

    async def get_details(self, interview_id: int):
        return self.interviews.get(interview_id)

    async def write_back(self, interview_id, primary_link, backup_link, transcript_link, filename):
        if self.fail_write_back:
            raise self.fail_write_back
        self.write_backs.append((interview_id, primary_link, backup_link, transcript_link, filename))


class FakeInspector(MediaInspector):
    def __init__(self, info: Optional[MediaInfo] = None):
        self.info = info or MediaInfo(width=1280, height=720, codec="mpeg4", size=10)
        self.calls: List[str] = []

    async def analyze(self, path: str) -> MediaInfo:
        self.calls.append(path)
        return self.info


class FakeCompressor(Compressor):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[tuple] = []
        self.infos: List[Optional[MediaInfo]] = []

    async def compress(self, in_path, out_path, strategy, on_progress=None, info=None):
        self.calls.append((in_path, out_path, strategy))
        self.infos.append(info)
        if self.error:
            raise self.error
        if on_progress:
            on_progress(50)
            on_progress(100)
        with open(out_path, "wb") as f:
            f.write(b"compressed")
        return CompressionResult(out_path, os.path.getsize(in_path), 10)


class FakeUploader(Uploader):
    """Returns ``{prefix}/{filename}``; fails the first ``failures`` calls."""

    def __init__(self, prefix: str = "https://drive.test", failures: int = 0,
                 error: Optional[Exception] = None, log: Optional[list] = None):
        self.prefix = prefix
        self.failures = failures
        self.error = error or OSError("connection reset")
        self.calls: List[tuple] = []
        self.log = log

    async def upload(self, path, filename, organization, folder_id=None):
        self.calls.append((path, filename, organization, folder_id))
        if self.log is not None:
            self.log.append((self.prefix, filename))
        if len(self.calls) <= self.failures:
            raise self.error
        return f"{self.prefix}/{filename}"


class FakeTranscriber(Transcriber):
    def __init__(self, configured: bool = True, error: Optional[Exception] = None,
                 text: str = "hello world"):
        self.configured = configured
        self.error = error
        self.text = text
        self.calls: List[tuple] = []

    def is_configured(self) -> bool:
        return self.configured

    async def transcribe(self, video_path, out_path, on_progress=None):
        self.calls.append((video_path, out_path))
        if self.error:
            raise self.error
        if on_progress:
            on_progress(100)
        with open(out_path, "w") as f:
            f.write(self.text)
        return TranscriptResult(out_path, self.text)


async def no_sleep(seconds: float) -> None:
    no_sleep.calls.append(seconds)


no_sleep.calls = []


def make_details(interview_id: int = 1, **overrides) -> InterviewDetails:
    data = {
        "id": interview_id,
        "candidate_id": 100 + interview_id,
        "candidate_name": "Jane Doe",
        "company": "Acme & Co",
        "interview_type": "Technical",
        "interview_date": "2024-03-15T10:00:00Z",
    }
    data.update(overrides)
    return InterviewDetails(**data)


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def recording(temp_dir):
    """A small fake video file on disk."""
    path = os.path.join(temp_dir, "call.mp4")
    with open(path, "wb") as f:
        f.write(b"\x00" * 1024)
    return path


@pytest.fixture
def sleeps():
    no_sleep.calls = []
    return no_sleep.calls


@pytest.fixture
def make_manager(temp_dir, sleeps):
    """Factory building a QueueManager wired with fakes.

    Every keyword overrides the corresponding collaborator.
    """

    def _make(**overrides):
        storage = os.path.join(temp_dir, "compressed")
        collaborators = {
            "record_store": FakeRecordStore({1: make_details(1), 2: make_details(2, candidate_name="John Roe")}),
            "inspector": FakeInspector(),
            "compressor": FakeCompressor(),
            "primary_uploader": FakeUploader("https://drive.test"),
            "backup_uploader": FakeUploader("https://youtube.test"),
            "transcriber": FakeTranscriber(),
            "transcript_uploader": FakeUploader("https://docs.test"),
            "deletion_store": DeletionStore(":memory:"),
            "retry_delay_s": 10.0,
            "sleep": no_sleep,
            "clock": lambda: 1_700_000_000.0,
        }
        config = overrides.pop("config", PipelineConfig(compressed_storage=storage))
        collaborators.update(overrides)
        manager = QueueManager(**collaborators)
        manager.set_config(config)
        return manager

    return _make
