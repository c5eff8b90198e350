"""Tests for Pydantic models and validation."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from interview_archiver.models import (
    ArchiverConfig,
    DeletionConfig,
    FfmpegConfig,
    LoggingConfig,
    RetryConfig,
)
from interview_archiver.queue import InterviewDetails, Job, JobStatus, ProgressEvent, PipelineStage


def make_job(**overrides):
    data = {
        "id": "job-1",
        "original_file_path": "/recordings/call.mp4",
        "original_file_name": "call.mp4",
        "interview_id": 1,
        "candidate_name": "Jane Doe",
        "company": "Acme",
        "interview_type": "Technical",
        "interview_date": "2024-03-15",
        "final_file_name": "Jane_Doe_Acme_Technical_2024-03-15.mp4",
    }
    data.update(overrides)
    return Job(**data)


def test_retry_config_valid():
    """Test creating valid RetryConfig."""
    config = RetryConfig(max_attempts=5, delay_s=1.5)
    assert config.max_attempts == 5
    assert config.delay_s == 1.5


def test_retry_config_zero_attempts_invalid():
    """Test that an empty attempt budget raises ValidationError."""
    with pytest.raises(ValidationError) as exc_info:
        RetryConfig(max_attempts=0)
    assert "max_attempts" in str(exc_info.value)


def test_deletion_config_negative_retention_invalid():
    with pytest.raises(ValidationError):
        DeletionConfig(retention_days=-1)


def test_ffmpeg_config_invalid_timeout():
    with pytest.raises(ValidationError):
        FfmpegConfig(global_timeout_s=0)


def test_logging_config_invalid_level():
    with pytest.raises(ValidationError):
        LoggingConfig(level="LOUD")


def test_archiver_config_from_dict():
    """Test creating ArchiverConfig from dict."""
    data = {
        "storage": {"compressed_storage": "/data"},
        "retry": {"delay_s": 3.0},
        "google": {"youtube_enabled": False},
    }
    config = ArchiverConfig.from_dict(data)
    assert config.storage.compressed_storage == "/data"
    assert config.retry.delay_s == 3.0
    assert config.google.youtube_enabled is False
    assert config.retry.max_attempts == 3


def test_archiver_config_merge_cli_overrides():
    """Test merging CLI overrides into config."""
    config = ArchiverConfig()
    new_config = config.merge_cli_overrides({"compressed_storage": "/data", "no_youtube": True})

    assert new_config.storage.compressed_storage == "/data"
    assert new_config.google.youtube_enabled is False
    # Original config unchanged
    assert config.storage.compressed_storage is None
    assert config.google.youtube_enabled is True


def test_job_defaults():
    job = make_job()
    assert job.status == JobStatus.WAITING
    assert job.progress == 0
    assert job.current_step == "Waiting in queue"
    assert job.error is None
    assert job.completed_at is None
    assert isinstance(job.added_at, datetime)


@pytest.mark.parametrize("field", [
    "id", "original_file_path", "interview_id", "candidate_name", "final_file_name",
])
def test_job_identity_fields_are_frozen(field):
    """Identity and interview metadata cannot change after intake."""
    job = make_job()
    with pytest.raises(ValidationError):
        setattr(job, field, "changed")


def test_job_progress_fields_are_mutable():
    job = make_job()
    job.status = JobStatus.UPLOADING
    job.progress = 50
    job.current_step = "Uploading compressed file to cloud storage..."
    assert job.status == JobStatus.UPLOADING
    assert job.progress == 50


def test_job_progress_bounds():
    with pytest.raises(ValidationError):
        make_job(progress=101)


def test_job_status_properties():
    assert JobStatus.COMPLETED.is_terminal
    assert JobStatus.FAILED.is_terminal
    assert not JobStatus.WAITING.is_terminal
    assert JobStatus.COMPRESSING.is_active
    assert JobStatus.UPLOADING.is_active
    assert not JobStatus.WAITING.is_active


def test_progress_event_percent_bounds():
    with pytest.raises(ValidationError):
        ProgressEvent(
            job_id="job-1", stage=PipelineStage.COMPRESS, status=JobStatus.COMPRESSING,
            percent=150, message="Compressing: 300%",
        )


def test_interview_details_has_recording():
    assert not InterviewDetails(id=1).has_recording
    assert not InterviewDetails(id=1, recording_link="").has_recording
    assert InterviewDetails(id=1, recording_link="https://drive.test/x").has_recording
    assert InterviewDetails(id=1).candidate_name == "Unknown"
