"""Sequential upload queue.

One ``QueueManager`` owns the job list, the processing flag and the current
pipeline configuration. Jobs are processed strictly one at a time, in the order
they were added:

    compress (0-50%) → primary upload (50%) → backup upload (75%, skipped for
    audio-only sources) → transcription (80-90%) → transcript upload (90%) →
    record-store write-back (95%) → completed (100%)

Any failure inside a job marks that job failed and the loop moves on.
Transcription and transcript upload are best effort.
"""

import asyncio
import logging
import math
import os
import shutil
import time
import uuid
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, TypeVar

from ..compression_policy import CompressionStrategy, decide_for_file
from ..errors import (
    ArchiverError,
    ConfigurationError,
    ErrorKind,
    InterviewNotFoundError,
    RecordingAlreadyExistsError,
    TranscriptionError,
)
from ..naming import generate_file_name, generate_transcript_file_name, is_audio_only
from ..retry import DEFAULT_DELAY_S, DEFAULT_MAX_ATTEMPTS, retry
from .backends import Compressor, MediaInspector, RecordStore, Transcriber, Uploader
from .deletion import DEFAULT_RETENTION_DAYS, DeletionStore
from .models import (
    STAGE_ANCHORS,
    AddVideoResult,
    Job,
    JobStatus,
    PipelineConfig,
    PipelineStage,
    ProgressEvent,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SnapshotCallback = Callable[[List[Job]], None]
EventCallback = Callable[[ProgressEvent], None]


class QueueManager:
    """Owns the upload queue and drives each job through the pipeline.

    Example:
        >>> manager = QueueManager(record_store, inspector, compressor, drive, youtube)
        >>> manager.set_config(PipelineConfig(compressed_storage="/data/compressed"))
        >>> result = await manager.add_video("/recordings/call.mp4", 42)
        >>> await manager.wait_until_idle()
    """

    def __init__(
        self,
        record_store: RecordStore,
        inspector: MediaInspector,
        compressor: Compressor,
        primary_uploader: Uploader,
        backup_uploader: Optional[Uploader] = None,
        transcriber: Optional[Transcriber] = None,
        transcript_uploader: Optional[Uploader] = None,
        deletion_store: Optional[DeletionStore] = None,
        retry_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay_s: float = DEFAULT_DELAY_S,
        retry_predicate: Optional[Callable[[BaseException], bool]] = None,
        retention_days: float = DEFAULT_RETENTION_DAYS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize queue manager.

        Args:
            record_store: Interview metadata source and write-back target
            inspector: Media inspector feeding the compression policy
            compressor: Encoder used when the policy asks for compression
            primary_uploader: Receives the compressed copy
            backup_uploader: Receives the original (None = never back up)
            transcriber: Optional speech-to-text adapter
            transcript_uploader: Receives the transcript text file
            deletion_store: Where originals are scheduled for deletion
            retry_attempts: Attempt budget for each upload
            retry_delay_s: Fixed delay between upload attempts
            retry_predicate: Optional filter for retryable failures (None = retry all)
            retention_days: Days to keep the original after completion
            sleep: Awaitable sleep used between retries
            clock: Returns current epoch seconds
        """
        self.record_store = record_store
        self.inspector = inspector
        self.compressor = compressor
        self.primary_uploader = primary_uploader
        self.backup_uploader = backup_uploader
        self.transcriber = transcriber
        self.transcript_uploader = transcript_uploader
        self.deletion_store = deletion_store
        self.retry_attempts = retry_attempts
        self.retry_delay_s = retry_delay_s
        self.retry_predicate = retry_predicate
        self.retention_days = retention_days
        self._sleep = sleep
        self._clock = clock

        self._queue: List[Job] = []
        self._processing = False
        self._task: Optional[asyncio.Task] = None
        self._config: Optional[PipelineConfig] = None
        self._update_callback: Optional[SnapshotCallback] = None
        self._progress_callback: Optional[EventCallback] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set_config(self, config: Optional[PipelineConfig]) -> None:
        """Replace the pipeline configuration; applies from the next job."""
        self._config = config

    def get_config(self) -> Optional[PipelineConfig]:
        return self._config.model_copy() if self._config else None

    def set_update_callback(self, callback: Optional[SnapshotCallback]) -> None:
        self._update_callback = callback

    def set_progress_callback(self, callback: Optional[EventCallback]) -> None:
        self._progress_callback = callback

    @property
    def is_processing(self) -> bool:
        return self._processing

    def get_queue(self) -> List[Job]:
        """Snapshot of the queue; mutating it does not affect the manager."""
        return [job.model_copy(deep=True) for job in self._queue]

    def clear_completed(self) -> None:
        """Drop completed jobs. Failed jobs stay visible until re-added."""
        self._queue = [job for job in self._queue if job.status != JobStatus.COMPLETED]
        self._emit_snapshot()

    async def add_video(self, file_path: str, interview_id: int) -> AddVideoResult:
        """Validate an interview, name the output and enqueue a job.

        Never raises; failures come back as ``success=False`` and nothing is
        enqueued.
        """
        try:
            if not os.path.isfile(file_path):
                raise ArchiverError(f"File not found: {file_path}", ErrorKind.NOT_FOUND)

            details = await self.record_store.get_details(interview_id)
            if details is None:
                raise InterviewNotFoundError(interview_id)
            if details.has_recording:
                raise RecordingAlreadyExistsError(
                    details.recording_link, details.backup_recording_url
                )

            extension = os.path.splitext(file_path)[1] or ".mp4"
            final_file_name = generate_file_name(
                details.candidate_name,
                details.company,
                details.interview_type,
                details.interview_date,
                extension,
            )
            job = Job(
                id=str(uuid.uuid4()),
                original_file_path=os.path.abspath(file_path),
                original_file_name=os.path.basename(file_path),
                interview_id=interview_id,
                candidate_name=details.candidate_name,
                company=details.company,
                interview_type=details.interview_type,
                interview_date=details.interview_date,
                final_file_name=final_file_name,
                added_at=datetime.fromtimestamp(self._clock()),
            )
        except ArchiverError as e:
            logger.warning("Rejected interview %s: %s", interview_id, e)
            return AddVideoResult(success=False, error=str(e), error_kind=e.kind)
        except Exception as e:
            logger.error("Failed to enqueue interview %s: %s", interview_id, e)
            return AddVideoResult(success=False, error=str(e), error_kind=ErrorKind.FATAL)

        self._queue.append(job)
        logger.info("Queued %s as %s (queue length %d)", file_path, final_file_name, len(self._queue))
        self._emit(job, PipelineStage.QUEUED)
        self._ensure_processing()

        return AddVideoResult(
            success=True, item=job.model_copy(deep=True), details=details.model_dump()
        )

    async def wait_until_idle(self) -> None:
        """Wait until no job is waiting or running."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    # ------------------------------------------------------------------
    # Processing loop
    # ------------------------------------------------------------------

    def _ensure_processing(self) -> None:
        if self._processing:
            return
        # Flag is set before the task is scheduled so a second add_video in
        # the same tick cannot start another loop.
        self._processing = True
        self._task = asyncio.create_task(self._process_queue())

    def _next_waiting(self) -> Optional[Job]:
        for job in self._queue:
            if job.status == JobStatus.WAITING:
                return job
        return None

    async def _process_queue(self) -> None:
        try:
            while True:
                job = self._next_waiting()
                if job is None:
                    break
                await self._process_item(job)
        finally:
            self._processing = False

    async def _process_item(self, job: Job) -> None:
        config = self._config
        try:
            if config is None:
                raise ConfigurationError("Configuration not set")
            if not config.compressed_storage:
                raise ConfigurationError("Compressed storage path not configured")

            logger.info("Processing job %s (%s)", job.id, job.final_file_name)

            # Step 1: compressed copy
            compressed_path = os.path.join(config.compressed_storage, job.final_file_name)
            self._update(job, PipelineStage.COMPRESS, "Compressing video...",
                         status=JobStatus.COMPRESSING)
            await self._compress(job, compressed_path, config)

            # Step 2: compressed copy to primary storage
            self._update(job, PipelineStage.PRIMARY_UPLOAD,
                         "Uploading compressed file to cloud storage...",
                         status=JobStatus.UPLOADING)
            primary_link = await self._with_retry(
                lambda: self.primary_uploader.upload(
                    compressed_path, job.final_file_name, job.company, config.drive_folder_id
                ),
                f"Primary upload of {job.final_file_name}",
            )
            job.primary_link = primary_link

            # Step 3: original to backup hosting
            backup_link = None
            if is_audio_only(job.original_file_path):
                self._update(job, PipelineStage.BACKUP_SKIPPED,
                             "Skipping backup hosting (audio-only file)...")
            elif self.backup_uploader is None:
                self._update(job, PipelineStage.BACKUP_SKIPPED,
                             "Skipping backup hosting (not configured)...")
            else:
                self._update(job, PipelineStage.BACKUP_UPLOAD, "Uploading original to backup hosting...")
                backup_link = await self._with_retry(
                    lambda: self.backup_uploader.upload(
                        job.original_file_path, job.final_file_name, job.company
                    ),
                    f"Backup upload of {job.final_file_name}",
                )
                job.backup_link = backup_link

            # Step 4: transcript (best effort)
            self._update(job, PipelineStage.TRANSCRIBE, "Transcribing audio...")
            transcript_link = await self._transcribe(job, config)

            # Step 5: write-back (not retried)
            self._update(job, PipelineStage.WRITE_BACK, "Updating database...")
            await self.record_store.write_back(
                job.interview_id, primary_link, backup_link, transcript_link, job.final_file_name
            )

            now = self._clock()
            if self.deletion_store is not None:
                self.deletion_store.schedule(job.original_file_path, self.retention_days, now=now)

            job.completed_at = datetime.fromtimestamp(now)
            self._update(job, PipelineStage.COMPLETED, "Completed", status=JobStatus.COMPLETED)
            logger.info("Job %s completed", job.id)

        except Exception as e:
            message = str(e)
            logger.error("Job %s failed: %s", job.id, message)
            job.error = message
            self._update(job, PipelineStage.FAILED, f"Failed: {message}", status=JobStatus.FAILED)

    async def _compress(self, job: Job, compressed_path: str, config: PipelineConfig) -> None:
        source = job.original_file_path
        info = await self.inspector.analyze(source)
        size = info.size or os.path.getsize(source)
        strategy: CompressionStrategy = decide_for_file(size, info)
        if config.force_compress and info.codec is not None and not strategy.should_compress:
            strategy = strategy.model_copy(update={"should_compress": True})

        logger.info("Compression strategy for %s: %s", job.final_file_name, strategy.reason)
        os.makedirs(config.compressed_storage, exist_ok=True)

        if not strategy.should_compress:
            await asyncio.to_thread(shutil.copyfile, source, compressed_path)
            return

        def on_progress(percent: int) -> None:
            percent = max(0, min(100, percent))
            self._update(job, PipelineStage.COMPRESS, f"Compressing: {math.floor(percent)}%",
                         progress=math.floor(percent * 0.5))

        await self.compressor.compress(source, compressed_path, strategy, on_progress, info=info)

    async def _transcribe(self, job: Job, config: PipelineConfig) -> Optional[str]:
        if self.transcriber is None or not self.transcriber.is_configured():
            logger.info("Transcription not configured, skipping")
            return None

        try:
            transcript_name = generate_transcript_file_name(
                job.candidate_name, job.company, job.interview_type, job.interview_date
            )
            transcript_path = os.path.join(config.compressed_storage, "transcripts", transcript_name)
            os.makedirs(os.path.dirname(transcript_path), exist_ok=True)

            def on_progress(percent: int) -> None:
                percent = max(0, min(100, percent))
                self._update(job, PipelineStage.TRANSCRIBE, f"Transcribing: {percent}%",
                             progress=80 + math.floor(percent * 0.1))

            result = await self.transcriber.transcribe(
                job.original_file_path, transcript_path, on_progress
            )
            if not os.path.exists(result.transcript_path):
                raise TranscriptionError(f"Transcript file not found at: {result.transcript_path}")

            if self.transcript_uploader is None:
                return None

            self._update(job, PipelineStage.TRANSCRIPT_UPLOAD, "Uploading transcript...")
            link = await self._with_retry(
                lambda: self.transcript_uploader.upload(
                    result.transcript_path,
                    os.path.basename(result.transcript_path),
                    job.company,
                    config.drive_folder_id,
                ),
                f"Transcript upload for {job.final_file_name}",
            )
            job.transcript_link = link
            return link
        except Exception as e:
            logger.error("Transcription failed for job %s, continuing without transcript: %s",
                         job.id, e)
            return None

    async def _with_retry(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        return await retry(
            operation,
            self.retry_attempts,
            self.retry_delay_s,
            should_retry=self.retry_predicate,
            sleep=self._sleep,
            description=description,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _update(
        self,
        job: Job,
        stage: PipelineStage,
        step: str,
        status: Optional[JobStatus] = None,
        progress: Optional[int] = None,
    ) -> None:
        if status is not None:
            job.status = status
        if progress is None:
            progress = STAGE_ANCHORS.get(stage)
        if progress is not None:
            job.progress = progress
        job.current_step = step
        self._emit(job, stage)

    def _emit(self, job: Job, stage: PipelineStage) -> None:
        self._emit_snapshot()
        if self._progress_callback is None:
            return
        event = ProgressEvent(
            job_id=job.id,
            stage=stage,
            status=job.status,
            percent=job.progress,
            message=job.current_step,
        )
        try:
            self._progress_callback(event)
        except Exception as e:
            logger.error("Progress callback error: %s", e)

    def _emit_snapshot(self) -> None:
        if self._update_callback is None:
            return
        try:
            self._update_callback(self.get_queue())
        except Exception as e:
            logger.error("Update callback error: %s", e)
