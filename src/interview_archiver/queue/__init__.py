"""Upload queue, pipeline collaborators and deferred deletion."""

from .backends import (
    CompressionResult,
    Compressor,
    MediaInspector,
    RecordStore,
    Transcriber,
    TranscriptResult,
    Uploader,
)
from .deletion import DeletionScheduler, DeletionStore
from .manager import QueueManager
from .models import (
    AddVideoResult,
    InterviewDetails,
    Job,
    JobStatus,
    PipelineConfig,
    PipelineStage,
    ProgressEvent,
)

__all__ = [
    "CompressionResult",
    "Compressor",
    "MediaInspector",
    "RecordStore",
    "Transcriber",
    "TranscriptResult",
    "Uploader",
    "DeletionScheduler",
    "DeletionStore",
    "QueueManager",
    "AddVideoResult",
    "InterviewDetails",
    "Job",
    "JobStatus",
    "PipelineConfig",
    "PipelineStage",
    "ProgressEvent",
]
