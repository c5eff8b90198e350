"""Pydantic models for the upload queue.

This module defines the job record, the pipeline configuration injected into
the queue manager, and the structured progress events it emits.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..errors import ErrorKind


class JobStatus(str, Enum):
    """Job processing states.

    State transitions:
        waiting → compressing    (processing loop picks the job)
        compressing → uploading  (compressed copy ready)
        uploading → completed    (uploads, transcription, write-back done)
        compressing|uploading → failed

    Transcription runs while the job is ``uploading``.
    """

    WAITING = "waiting"
    COMPRESSING = "compressing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.COMPRESSING, JobStatus.UPLOADING)


class PipelineStage(str, Enum):
    """Stages reported on the progress event stream."""

    QUEUED = "queued"
    COMPRESS = "compress"
    PRIMARY_UPLOAD = "primary_upload"
    BACKUP_UPLOAD = "backup_upload"
    BACKUP_SKIPPED = "backup_skipped"
    TRANSCRIBE = "transcribe"
    TRANSCRIPT_UPLOAD = "transcript_upload"
    WRITE_BACK = "write_back"
    COMPLETED = "completed"
    FAILED = "failed"


# Progress checkpoints (percent of the whole job) at which each stage begins.
STAGE_ANCHORS: Dict[PipelineStage, int] = {
    PipelineStage.QUEUED: 0,
    PipelineStage.COMPRESS: 0,
    PipelineStage.PRIMARY_UPLOAD: 50,
    PipelineStage.BACKUP_UPLOAD: 75,
    PipelineStage.BACKUP_SKIPPED: 75,
    PipelineStage.TRANSCRIBE: 80,
    PipelineStage.TRANSCRIPT_UPLOAD: 90,
    PipelineStage.WRITE_BACK: 95,
    PipelineStage.COMPLETED: 100,
}


class Job(BaseModel):
    """One queued recording's end-to-end processing record.

    Identity, source and interview metadata are frozen at intake; only the
    progress fields change while the job runs.
    """

    id: str = Field(..., frozen=True, description="Unique job identifier (UUID)")
    original_file_path: str = Field(..., frozen=True, description="Absolute path to the source file")
    original_file_name: str = Field(..., frozen=True, description="Basename of the source file")
    interview_id: int = Field(..., frozen=True, description="Record store interview id")
    candidate_name: str = Field(..., frozen=True)
    company: str = Field(..., frozen=True)
    interview_type: str = Field(..., frozen=True)
    interview_date: str = Field(..., frozen=True, description="Interview date as returned by the record store")
    final_file_name: str = Field(..., frozen=True, description="Archived file name")
    added_at: datetime = Field(default_factory=datetime.now, frozen=True)

    status: JobStatus = Field(default=JobStatus.WAITING)
    progress: int = Field(default=0, ge=0, le=100, description="Percent of the whole job")
    current_step: str = Field(default="Waiting in queue")
    error: Optional[str] = Field(default=None, description="Failure message when failed")
    completed_at: Optional[datetime] = Field(default=None)

    primary_link: Optional[str] = Field(default=None, description="Cloud storage link once uploaded")
    backup_link: Optional[str] = Field(default=None, description="Backup hosting link once uploaded")
    transcript_link: Optional[str] = Field(default=None, description="Transcript link once uploaded")


class PipelineConfig(BaseModel):
    """Per-job pipeline settings; read once when a job starts."""

    compressed_storage: Optional[str] = Field(
        default=None, description="Directory receiving compressed copies and transcripts"
    )
    drive_folder_id: Optional[str] = Field(
        default=None, description="Cloud storage folder for uploads (None = per-company folder)"
    )
    force_compress: bool = Field(default=False, description="Re-encode even when the policy says skip")


class ProgressEvent(BaseModel):
    """Structured progress record emitted at every job update."""

    job_id: str
    stage: PipelineStage
    status: JobStatus
    percent: int = Field(ge=0, le=100)
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)


class InterviewDetails(BaseModel):
    """Interview metadata fetched from the record store at intake."""

    id: int
    candidate_id: Optional[int] = None
    candidate_name: str = "Unknown"
    company: str = ""
    interview_type: str = ""
    interview_date: str = ""
    recording_link: Optional[str] = None
    backup_recording_url: Optional[str] = None

    @property
    def has_recording(self) -> bool:
        return bool(self.recording_link and self.recording_link.strip())


class AddVideoResult(BaseModel):
    """Outcome of an enqueue request."""

    success: bool
    item: Optional[Job] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
