"""High-level entry points wiring configuration to the queue.

Usage:
    config = resolve_config()
    manager = build_queue_manager(config)
    jobs = await archive_files(manager, [("/recordings/call.mp4", 42)])

    # One-off maintenance
    removed = run_deletion_sweep(config)
    info, strategy = plan_compression("/recordings/call.mp4")
"""

import asyncio
import logging
import os
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .compression_policy import CompressionStrategy, decide_for_file
from .compressor import VideoCompressor
from .errors import is_transient
from .ffmpeg_runner import FfmpegRunner
from .media import FfprobeInspector, MediaInfo, probe_media
from .models import ArchiverConfig
from .queue import (
    AddVideoResult,
    DeletionStore,
    Job,
    JobStatus,
    ProgressEvent,
    QueueManager,
    RecordStore,
    Transcriber,
    Uploader,
)
from .record_store import RecordStoreClient
from .transcription import WhisperTranscriber
from .uploads import GoogleDriveTranscriptUploader, GoogleDriveUploader, YouTubeUploader

logger = logging.getLogger(__name__)

DELETION_DB_NAME = "scheduled_deletions.db"


def ffmpeg_runner_factory(config: ArchiverConfig) -> Callable[..., FfmpegRunner]:
    """FfmpegRunner constructor pre-bound to the ``ffmpeg`` config section."""
    settings = config.ffmpeg
    return partial(
        FfmpegRunner,
        global_timeout_s=settings.global_timeout_s,
        no_progress_timeout_s=settings.no_progress_timeout_s,
        kill_grace_period_s=settings.kill_grace_period_s,
        save_artifacts_on_failure=settings.save_artifacts_on_failure,
        ffmpeg_loglevel=settings.ffmpeg_loglevel,
        temp_dir=settings.temp_dir,
    )


def build_deletion_store(config: ArchiverConfig) -> DeletionStore:
    return DeletionStore(str(Path(config.storage.state_dir) / DELETION_DB_NAME))


def build_transcriber(config: ArchiverConfig) -> Optional[Transcriber]:
    settings = config.transcription
    if not settings.enabled:
        return None
    return WhisperTranscriber(
        settings.whisper_path,
        settings.model_path,
        language=settings.language,
        threads=settings.threads,
        runner_factory=ffmpeg_runner_factory(config),
    )


def build_queue_manager(
    config: ArchiverConfig,
    record_store: Optional[RecordStore] = None,
    primary_uploader: Optional[Uploader] = None,
    backup_uploader: Optional[Uploader] = None,
    transcript_uploader: Optional[Uploader] = None,
    deletion_store: Optional[DeletionStore] = None,
) -> QueueManager:
    """Construct a QueueManager with production adapters.

    Any collaborator passed explicitly replaces the one built from config.
    """
    google = config.google
    inspector = FfprobeInspector()

    if record_store is None:
        record_store = RecordStoreClient(
            config.record_store.base_url,
            token=config.record_store.token,
            employee_id=config.record_store.employee_id,
            timeout_s=config.record_store.timeout_s,
        )
    if primary_uploader is None:
        primary_uploader = GoogleDriveUploader(google.access_token, google.token_file, google.timeout_s)
    if backup_uploader is None and google.youtube_enabled:
        backup_uploader = YouTubeUploader(google.access_token, google.token_file, google.timeout_s)
    if transcript_uploader is None:
        transcript_uploader = GoogleDriveTranscriptUploader(
            google.access_token, google.token_file, google.timeout_s
        )
    if deletion_store is None:
        deletion_store = build_deletion_store(config)

    manager = QueueManager(
        record_store=record_store,
        inspector=inspector,
        compressor=VideoCompressor(inspector, ffmpeg_runner_factory(config)),
        primary_uploader=primary_uploader,
        backup_uploader=backup_uploader,
        transcriber=build_transcriber(config),
        transcript_uploader=transcript_uploader,
        deletion_store=deletion_store,
        retry_attempts=config.retry.max_attempts,
        retry_delay_s=config.retry.delay_s,
        retry_predicate=is_transient if config.retry.transient_only else None,
        retention_days=config.deletion.retention_days,
    )
    manager.set_config(config.pipeline_config())
    return manager


async def archive_files(
    manager: QueueManager,
    items: Sequence[Tuple[str, int]],
    show_progress: bool = True,
) -> Tuple[List[AddVideoResult], List[Job]]:
    """Enqueue ``(path, interview_id)`` pairs and wait for the queue to drain.

    Returns:
        (enqueue results in input order, final job snapshots for accepted items)
    """
    bars: Dict[str, tqdm] = {}

    def on_event(event: ProgressEvent) -> None:
        bar = bars.get(event.job_id)
        if bar is None:
            return
        bar.n = event.percent
        bar.set_postfix_str(event.message[:60])
        bar.refresh()

    if show_progress:
        manager.set_progress_callback(on_event)

    results = []
    for path, interview_id in items:
        result = await manager.add_video(path, interview_id)
        results.append(result)
        if result.success and show_progress:
            bars[result.item.id] = tqdm(
                total=100, desc=os.path.basename(path)[:30], unit="%", leave=True
            )

    try:
        await manager.wait_until_idle()
    finally:
        for bar in bars.values():
            bar.close()
        if show_progress:
            manager.set_progress_callback(None)

    accepted = {r.item.id for r in results if r.success}
    jobs = [job for job in manager.get_queue() if job.id in accepted]
    return results, jobs


def summarize(jobs: Sequence[Job]) -> Dict[str, int]:
    return {
        "completed": sum(1 for j in jobs if j.status == JobStatus.COMPLETED),
        "failed": sum(1 for j in jobs if j.status == JobStatus.FAILED),
        "total": len(jobs),
    }


def plan_compression(path: str, force: bool = False) -> Tuple[MediaInfo, CompressionStrategy]:
    """Analyze ``path`` and return the strategy the pipeline would use."""
    info = probe_media(path)
    strategy = decide_for_file(info.size or os.path.getsize(path), info)
    if force and info.has_video:
        strategy = strategy.model_copy(update={"should_compress": True})
    return info, strategy


def run_deletion_sweep(config: ArchiverConfig, store: Optional[DeletionStore] = None) -> List[str]:
    """Delete every original whose retention window has passed."""
    store = store or build_deletion_store(config)
    removed = store.sweep()
    logger.info("Deletion sweep removed %d record(s)", len(removed))
    return removed


def check_record_store(config: ArchiverConfig) -> Optional[bool]:
    """Whether the record store answers; None when no base URL is configured."""
    if not config.record_store.base_url:
        return None

    async def _check():
        async with RecordStoreClient(
            config.record_store.base_url,
            token=config.record_store.token,
            timeout_s=config.record_store.timeout_s,
        ) as client:
            return await client.test_connection()

    return asyncio.run(_check())


def run_archive(config: ArchiverConfig, items: Sequence[Tuple[str, int]]) -> Tuple[List[AddVideoResult], List[Job]]:
    """Synchronous wrapper used by the CLI."""

    async def _main():
        manager = build_queue_manager(config)
        try:
            return await archive_files(manager, items)
        finally:
            if isinstance(manager.record_store, RecordStoreClient):
                await manager.record_store.aclose()

    return asyncio.run(_main())
