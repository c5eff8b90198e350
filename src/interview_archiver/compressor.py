"""Async compressor backed by FfmpegRunner."""

import asyncio
import logging
import os
import time
from typing import Callable, Optional

from .compression_policy import CompressionStrategy
from .errors import CompressionError, ErrorKind
from .ffmpeg_runner import FfmpegErrorType, FfmpegProgress, FfmpegRunner
from .media import MediaInfo
from .queue.backends import CompressionResult, Compressor, MediaInspector, ProgressCallback

logger = logging.getLogger(__name__)

RunnerFactory = Callable[..., FfmpegRunner]


class VideoCompressor(Compressor):
    """Re-encodes recordings with libx264 off the event loop.

    Duration (for progress percentages) and channel count (to downmix
    surround audio) come from the caller's MediaInfo, or from the inspector
    when none is passed.
    """

    def __init__(self, inspector: MediaInspector, runner_factory: RunnerFactory = FfmpegRunner):
        self.inspector = inspector
        self.runner_factory = runner_factory

    async def compress(
        self,
        in_path: str,
        out_path: str,
        strategy: CompressionStrategy,
        on_progress: Optional[ProgressCallback] = None,
        info: Optional[MediaInfo] = None,
    ) -> CompressionResult:
        if not os.path.exists(in_path):
            raise CompressionError(f"Input file does not exist: {in_path}")

        if info is None:
            info = await self.inspector.analyze(in_path)
        original_size = os.path.getsize(in_path)
        loop = asyncio.get_running_loop()

        def forward(progress: FfmpegProgress) -> None:
            if on_progress is not None:
                loop.call_soon_threadsafe(on_progress, int(progress.percent))

        runner = self.runner_factory(progress_callback=forward)
        logger.info(
            "Compressing %s: CRF=%s preset=%s audio=%s (%s)",
            os.path.basename(in_path), strategy.crf, strategy.preset,
            strategy.audio_bitrate, strategy.reason,
        )

        started = time.time()
        result = await asyncio.to_thread(
            runner.compress_video,
            in_path,
            out_path,
            strategy,
            info.duration,
            info.audio_channels,
        )
        if not result.success:
            kind = (ErrorKind.TRANSIENT if result.error_type == FfmpegErrorType.TRANSIENT
                    else ErrorKind.FATAL)
            raise CompressionError(f"FFmpeg exited with code {result.returncode}", kind)
        if not os.path.exists(out_path):
            raise CompressionError("Output file was not created")

        if on_progress is not None:
            on_progress(100)

        compressed = CompressionResult(
            output_path=out_path,
            original_size=original_size,
            compressed_size=os.path.getsize(out_path),
            skipped=False,
            duration_s=time.time() - started,
            reason=strategy.reason,
        )
        logger.info(
            "Compression complete: %.2f MB -> %.2f MB (saved %.1f%%) in %.1fs",
            compressed.original_size / 1024 / 1024,
            compressed.compressed_size / 1024 / 1024,
            compressed.savings,
            compressed.duration_s,
        )
        return compressed
